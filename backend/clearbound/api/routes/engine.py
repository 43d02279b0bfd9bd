"""
Decision engine endpoint (no generation)
"""
from fastapi import APIRouter, Depends, Request

from clearbound.api.routes._body import read_json_object
from clearbound.core.config import Settings, get_settings
from clearbound.core.logging_config import LoggingConfig
from clearbound.services.generation_service import evaluate_state

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["engine"])


@router.post("/engine")
async def engine(
    request: Request,
    settings: Settings = Depends(get_settings),
):
    """Return the EngineDecision for a caller state"""
    payload = await read_json_object(request)
    _, decision = evaluate_state(payload, settings)
    logger.info(
        "Engine evaluated",
        extra={"risk_level": decision.risk_level, "record_safe_level": decision.record_safe_level}
    )
    return {"ok": True, "engine": decision.model_dump()}
