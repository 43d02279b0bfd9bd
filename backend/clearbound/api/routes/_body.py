"""
Request body parsing shared by the JSON routes
"""
from typing import Any

from fastapi import Request

from clearbound.core.errors import InvalidPayloadError


async def read_json_object(request: Request) -> Any:
    """Parse the body as a JSON object or raise InvalidPayloadError"""
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidPayloadError("Request body is not valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidPayloadError()
    return body
