"""
Text generator client (OpenAI Responses API over httpx)

The client performs exactly one outbound call per `generate` invocation and
reports failures as ProviderError / ProviderTimeoutError / EmptyResponseError.
Retry policy belongs to the stage runner.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from clearbound.core.config import Settings, get_settings
from clearbound.core.errors import EmptyResponseError, ProviderError, ProviderTimeoutError
from clearbound.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


class GenerationRequest(BaseModel):
    """One call to the text generator"""
    model: str
    system_prompt: str
    user_prompt: str
    token_budget: int = Field(..., ge=1)
    temperature: float = Field(default=0.6, ge=0.0, le=2.0)


class TextGenerator(ABC):
    """Black-box generator: prompt pair + budget in, text out"""

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> str:
        """Return generated text or raise a provider error"""

    async def close(self):
        """Release network resources"""


def extract_output_text(data: Dict[str, Any]) -> str:
    """Pull text out of a Responses API payload"""
    text = data.get("output_text")
    if isinstance(text, str) and text.strip():
        return text

    parts = []
    for item in data.get("output") or []:
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and isinstance(content.get("text"), str):
                parts.append(content["text"])
    return "".join(parts)


class OpenAIResponsesClient(TextGenerator):
    """Generator backed by the OpenAI Responses API"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._settings = settings
        self._client = client

    @property
    def settings(self) -> Settings:
        """Lazy load settings"""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.openai_base_url.rstrip("/"),
                timeout=self.settings.llm_timeout_seconds,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=20,
                )
            )
        return self._client

    async def generate(self, request: GenerationRequest) -> str:
        """
        Run one generation call

        Args:
            request: model, prompt pair, token budget and temperature

        Returns:
            Raw generated text (not stripped or parsed)
        """
        api_key = self.settings.openai_api_key
        if not api_key:
            raise ProviderError(401, "generator api key is not configured")

        payload = {
            "model": request.model,
            "input": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": request.temperature,
            "max_output_tokens": request.token_budget,
        }

        try:
            response = await self._get_client().post(
                "/responses",
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self.settings.llm_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"generator call exceeded {self.settings.llm_timeout_seconds}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(None, f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(response.status_code, response.text[:400])

        try:
            data = response.json()
        except ValueError as e:
            raise EmptyResponseError(f"non-JSON body from model {request.model}") from e

        text = extract_output_text(data) if isinstance(data, dict) else ""
        if not text.strip():
            raise EmptyResponseError(f"empty output from model {request.model}")

        logger.debug(
            "Generator call completed",
            extra={"model": request.model, "output_chars": len(text)}
        )
        return text

    async def close(self):
        """Close HTTP client"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
