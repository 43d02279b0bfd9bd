"""
Generation endpoint
"""
from fastapi import APIRouter, Depends, Request

from clearbound.api.routes._body import read_json_object
from clearbound.core.logging_config import LoggingConfig
from clearbound.services.generation_service import (GenerationService,
                                                    get_generation_service)

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["generate"])


@router.post("/generate")
async def generate(
    request: Request,
    service: GenerationService = Depends(get_generation_service),
):
    """
    Generate the drafts licensed by the requested package

    Body is the caller state itself or `{"state": {...}}`.

    Returns:
        dict: `{ok, data: FinalResponse, meta}`
    """
    payload = await read_json_object(request)
    outcome = await service.generate(payload)
    return {
        "ok": True,
        "data": outcome.response.model_dump(),
        "meta": outcome.meta(),
    }
