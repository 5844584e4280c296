import json

import httpx
import pytest

from aigate.errors import ProbeFailure, ProviderInvocationError
from aigate.provider.base import GenerationRequest, estimate_quality_score
from aigate.provider.http_adapter import (
    GeminiAdapter,
    OpenAICompatibleAdapter,
    build_adapter,
    classify_status,
)
from aigate.storage.provider_metrics import error_count, load_snapshot
from tests.utils import make_config


def _openai_payload(content: str, tokens: int = 42) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": tokens},
    }


@pytest.mark.asyncio
async def test_openai_invoke_records_success(store):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_openai_payload("Hello there", tokens=42))

    config = make_config("openai", cost_per_token=0.001)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = OpenAICompatibleAdapter(config, client=client)
        result = await adapter.invoke(
            GenerationRequest(prompt="Say hi", system_prompt="Be brief"), store
        )

    assert seen["url"] == "https://api.mock.local/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "mock-model"
    assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]
    assert result.content == "Hello there"
    assert result.tokens_used == 42
    assert result.cost == pytest.approx(0.042)
    assert result.provider == "openai"

    snapshot = await load_snapshot(store, "openai", config.capabilities)
    assert snapshot.successful_requests == 1
    assert snapshot.current_load > 0


@pytest.mark.asyncio
async def test_openai_server_error_is_retryable_and_recorded(store):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream overloaded")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = OpenAICompatibleAdapter(make_config("openai"), client=client)
        with pytest.raises(ProviderInvocationError) as excinfo:
            await adapter.invoke(GenerationRequest(prompt="hi"), store)

    assert excinfo.value.error_type == "SERVER_ERROR"
    assert excinfo.value.retryable is True
    assert excinfo.value.status_code == 503
    snapshot = await load_snapshot(store, "openai")
    assert snapshot.failed_requests == 1
    assert await error_count(store, "openai", "SERVER_ERROR") == 1


@pytest.mark.asyncio
async def test_openai_malformed_payload_is_parse_error(store):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = OpenAICompatibleAdapter(make_config("openai"), client=client)
        with pytest.raises(ProviderInvocationError) as excinfo:
            await adapter.invoke(GenerationRequest(prompt="hi"), store)

    assert excinfo.value.error_type == "PARSE_ERROR"
    assert await error_count(store, "openai", "PARSE_ERROR") == 1


@pytest.mark.asyncio
async def test_transport_error_is_network_error(store):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = OpenAICompatibleAdapter(make_config("openai"), client=client)
        with pytest.raises(ProviderInvocationError) as excinfo:
            await adapter.invoke(GenerationRequest(prompt="hi"), store)

    assert excinfo.value.error_type == "NETWORK_ERROR"


@pytest.mark.asyncio
async def test_gemini_invoke_parses_candidates(store):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        return httpx.Response(
            200,
            json={
                "candidates": [{"content": {"parts": [{"text": "Hola "}, {"text": "mundo"}]}}],
                "usageMetadata": {"totalTokenCount": 7},
            },
        )

    config = make_config("gemini", kind="gemini", model="gemini-1.5-flash")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = build_adapter(config, client=client)
        assert isinstance(adapter, GeminiAdapter)
        result = await adapter.invoke(GenerationRequest(prompt="Translate"), store)

    assert seen["url"] == "https://api.mock.local/v1beta/models/gemini-1.5-flash:generateContent"
    assert seen["key"] == "sk-test"
    assert result.content == "Hola mundo"
    assert result.tokens_used == 7


@pytest.mark.asyncio
async def test_probe_success_and_failure():
    def ok(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/models"
        return httpx.Response(200, json={"data": []})

    def unauthorized(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "bad key"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(ok)) as client:
        latency = await OpenAICompatibleAdapter(make_config("p"), client=client).probe()
    assert latency >= 0

    async with httpx.AsyncClient(transport=httpx.MockTransport(unauthorized)) as client:
        with pytest.raises(ProbeFailure) as excinfo:
            await OpenAICompatibleAdapter(make_config("p"), client=client).probe()
    assert excinfo.value.reason == "HTTP 401"


@pytest.mark.parametrize(
    "status_code, expected",
    [
        (429, ("RATE_LIMIT_EXCEEDED", True)),
        (401, ("AUTHENTICATION_ERROR", False)),
        (403, ("AUTHENTICATION_ERROR", False)),
        (500, ("SERVER_ERROR", True)),
        (502, ("SERVER_ERROR", True)),
        (400, ("INVALID_REQUEST", False)),
    ],
)
def test_classify_status(status_code, expected):
    assert classify_status(status_code) == expected


def test_estimate_quality_score():
    assert estimate_quality_score("") == 0.0
    assert estimate_quality_score("short") == 5.0
    long_text = " ".join(["word"] * 40)
    assert estimate_quality_score(long_text) == 7.0
