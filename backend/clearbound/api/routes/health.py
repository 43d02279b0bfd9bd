"""
Health check endpoints
"""
from datetime import datetime, timezone

from fastapi import APIRouter

from clearbound import __version__
from clearbound.core.config import get_settings
from clearbound.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "timestamp": _now(),
        "service": get_settings().app_name,
    }


@router.get("/health/detailed")
async def detailed_health_check():
    """
    Detailed health check with component configuration status

    No outbound calls are made; each component reports whether it is
    configured well enough to serve a generation request.

    Returns:
        dict: Detailed health status of all components
    """
    settings = get_settings()
    health_status = {
        "status": "healthy",
        "timestamp": _now(),
        "service": settings.app_name,
        "version": __version__,
        "environment": settings.app_env,
        "components": {}
    }

    if settings.prompts_source == "local":
        root = settings.prompts_local_path
        template_ok = root.is_dir()
        health_status["components"]["template_store"] = {
            "status": "healthy" if template_ok else "unhealthy",
            "source": "local",
            "message": "Template directory found" if template_ok else "Template directory missing",
        }
    else:
        template_ok = bool(settings.prompts_repo)
        health_status["components"]["template_store"] = {
            "status": "healthy" if template_ok else "unhealthy",
            "source": "github",
            "ref": settings.prompts_ref,
            "message": "Prompt repository configured" if template_ok else "PROMPTS_REPO is not set",
        }

    generator_ok = bool(settings.openai_api_key)
    health_status["components"]["generator"] = {
        "status": "healthy" if generator_ok else "unhealthy",
        "models": {
            "default": settings.model_default,
            "high_risk": settings.model_high_risk,
            "analysis": settings.model_analysis,
        },
        "message": "API key configured" if generator_ok else "OPENAI_API_KEY is not set",
    }

    if not (template_ok and generator_ok):
        health_status["status"] = "degraded"
        logger.warning(
            "Detailed health check reports degraded configuration",
            extra={"template_store": template_ok, "generator": generator_ok}
        )

    return health_status
