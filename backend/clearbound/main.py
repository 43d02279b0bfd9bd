"""
FastAPI application factory
"""
import warnings

# Suppress pkg_resources deprecation warning from opentelemetry
warnings.filterwarnings('ignore', message='.*pkg_resources is deprecated.*', category=UserWarning)

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clearbound import __version__
from clearbound.api.routes import engine, generate, health, metrics
from clearbound.core.config import get_settings
from clearbound.core.errors import ClearBoundError, InternalError
from clearbound.core.logging_config import LoggingConfig
from clearbound.core.middleware import LoggingContextMiddleware, MetricsMiddleware
from clearbound.core.tracing import configure_tracing, shutdown_tracing
from clearbound.services.generation_service import close_generation_service

logger = LoggingConfig.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")
    configure_tracing(app)

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await close_generation_service()
    shutdown_tracing()


async def clearbound_error_handler(request: Request, exc: ClearBoundError):
    """Render a pipeline error as the failure envelope"""
    logger.warning(
        "Request failed",
        extra={
            "error_code": exc.code,
            "error_kind": exc.kind.value,
            "stage": exc.stage,
            "status_code": exc.status_code,
        }
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled errors with traceback; callers get a generic envelope"""
    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        }
    )
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


def create_app() -> FastAPI:
    """Build the application with middleware, handlers and routers"""
    LoggingConfig.configure()
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Boundary-message decision and generation backend",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(LoggingContextMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ClearBoundError, clearbound_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(generate.router)
    app.include_router(engine.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    @app.get("/api")
    async def root():
        """Root API endpoint"""
        return {
            "name": settings.app_name,
            "version": __version__,
            "status": "running",
            "environment": settings.app_env,
        }

    return app
