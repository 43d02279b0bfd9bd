"""
Tests for the OpenAI Responses generator client
"""
import json

import httpx
import pytest

from clearbound.core.errors import (EmptyResponseError, ProviderError,
                                    ProviderTimeoutError)
from clearbound.core.llm_client import (GenerationRequest,
                                        OpenAIResponsesClient,
                                        extract_output_text)

REQUEST = GenerationRequest(
    model="gpt-test",
    system_prompt="system text",
    user_prompt="user text",
    token_budget=300,
    temperature=0.3,
)


def make_client(settings, handler) -> OpenAIResponsesClient:
    http = httpx.AsyncClient(
        base_url="https://api.example.test/v1",
        transport=httpx.MockTransport(handler),
    )
    return OpenAIResponsesClient(settings=settings, client=http)


def test_extract_output_text_prefers_output_text():
    assert extract_output_text({"output_text": "hello", "output": []}) == "hello"


def test_extract_output_text_concatenates_content():
    data = {
        "output": [
            {"type": "message", "content": [{"type": "output_text", "text": "foo"}, {"text": "bar"}]},
            "ignored",
            {"content": [{"no_text": True}]},
        ]
    }
    assert extract_output_text(data) == "foobar"
    assert extract_output_text({}) == ""


@pytest.mark.asyncio
async def test_generate_sends_responses_payload(settings):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"output_text": '{"notes": "ok"}'})

    text = await make_client(settings, handler).generate(REQUEST)

    assert text == '{"notes": "ok"}'
    assert captured["url"].endswith("/v1/responses")
    assert captured["auth"] == "Bearer test-key"
    body = captured["body"]
    assert body["model"] == "gpt-test"
    assert body["max_output_tokens"] == 300
    assert body["temperature"] == 0.3
    assert body["input"][0] == {"role": "system", "content": "system text"}
    assert body["input"][1] == {"role": "user", "content": "user text"}


@pytest.mark.asyncio
async def test_error_status_maps_to_provider_error(settings):
    client = make_client(settings, lambda request: httpx.Response(429, text="rate limited"))
    with pytest.raises(ProviderError) as exc:
        await client.generate(REQUEST)
    assert exc.value.status == 429


@pytest.mark.asyncio
async def test_timeout_maps_to_provider_timeout(settings):
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(ProviderTimeoutError):
        await make_client(settings, handler).generate(REQUEST)


@pytest.mark.asyncio
async def test_connection_error_has_no_status(settings):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError) as exc:
        await make_client(settings, handler).generate(REQUEST)
    assert exc.value.status is None


@pytest.mark.asyncio
async def test_blank_output_is_empty_response(settings):
    client = make_client(settings, lambda request: httpx.Response(200, json={"output_text": "   "}))
    with pytest.raises(EmptyResponseError):
        await client.generate(REQUEST)


@pytest.mark.asyncio
async def test_non_json_success_body_is_empty_response(settings):
    client = make_client(settings, lambda request: httpx.Response(200, text="<html>upstream page</html>"))
    with pytest.raises(EmptyResponseError):
        await client.generate(REQUEST)


@pytest.mark.asyncio
async def test_missing_api_key(settings):
    settings = settings.model_copy(update={"openai_api_key": None})
    client = make_client(settings, lambda request: httpx.Response(200, json={"output_text": "x"}))
    with pytest.raises(ProviderError) as exc:
        await client.generate(REQUEST)
    assert exc.value.status == 401


@pytest.mark.asyncio
async def test_close_releases_client(settings):
    client = make_client(settings, lambda request: httpx.Response(200))
    await client.close()
    assert client._client is None
