"""
Prometheus metrics endpoint
"""
from fastapi import APIRouter
from fastapi.responses import Response

from clearbound.core.logging_config import LoggingConfig
from clearbound.core.metrics import get_metrics, get_metrics_content_type

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint

    Returns metrics in Prometheus text format
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
