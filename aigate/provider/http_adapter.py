"""
httpx-based adapters for OpenAI-compatible and Gemini backends.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple

import httpx

from aigate.errors import ProbeFailure, ProviderInvocationError
from aigate.logging_config import logger
from aigate.models import ProviderConfig
from aigate.provider.base import GenerationRequest, ProviderAdapter
from aigate.settings import settings


def classify_status(status_code: int) -> Tuple[str, bool]:
    """
    Map an upstream HTTP status to (error_type, retryable).
    """
    if status_code == 429:
        return "RATE_LIMIT_EXCEEDED", True
    if status_code in (401, 403):
        return "AUTHENTICATION_ERROR", False
    if status_code >= 500:
        return "SERVER_ERROR", True
    return "INVALID_REQUEST", False


class HttpProviderAdapter(ProviderAdapter):
    """
    Shared httpx plumbing. A client may be injected (tests, connection
    reuse); otherwise a short-lived client is created per call.
    """

    default_models_path = "/v1/models"

    def __init__(
        self, config: ProviderConfig, *, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        super().__init__(config)
        self._client = client

    def _url(self, path: str) -> str:
        base = str(self.config.base_url).rstrip("/")
        return f"{base}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def _send(
        self, method: str, url: str, *, json_body: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(
                method, url, headers=self._headers(), json=json_body
            )
        async with httpx.AsyncClient(timeout=settings.upstream_timeout, trust_env=True) as client:
            return await client.request(method, url, headers=self._headers(), json=json_body)

    async def probe(self) -> float:
        url = self._url(self.config.models_path or self.default_models_path)
        logger.debug("Health probe for provider %s at %s", self.name, url)
        start = time.perf_counter()
        try:
            resp = await self._send("GET", url)
        except httpx.HTTPError as exc:
            raise ProbeFailure(self.name, str(exc) or exc.__class__.__name__) from exc
        duration_ms = (time.perf_counter() - start) * 1000.0
        if resp.status_code >= 400:
            raise ProbeFailure(self.name, f"HTTP {resp.status_code}")
        return duration_ms

    async def _post_generation(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = await self._send("POST", url, json_body=body)
        except httpx.TimeoutException as exc:
            raise ProviderInvocationError(
                self.name, f"Upstream timeout: {exc}", error_type="TIMEOUT"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderInvocationError(
                self.name, f"Upstream transport error: {exc}", error_type="NETWORK_ERROR"
            ) from exc

        if resp.status_code >= 400:
            error_type, retryable = classify_status(resp.status_code)
            logger.warning(
                "provider=%s upstream returned HTTP %s (%s)",
                self.name,
                resp.status_code,
                error_type,
            )
            raise ProviderInvocationError(
                self.name,
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                error_type=error_type,
                retryable=retryable,
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProviderInvocationError(
                self.name, "Upstream returned a non-JSON body", error_type="PARSE_ERROR"
            ) from exc
        if not isinstance(payload, dict):
            raise ProviderInvocationError(
                self.name, "Upstream returned an unexpected payload", error_type="PARSE_ERROR"
            )
        return payload


class OpenAICompatibleAdapter(HttpProviderAdapter):
    chat_path = "/v1/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    async def _generate(self, request: GenerationRequest) -> Tuple[str, int]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        body: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens
            or self.config.capabilities.max_tokens_per_request,
        }
        payload = await self._post_generation(self._url(self.chat_path), body)
        try:
            content = payload["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderInvocationError(
                self.name, "Missing choices in completion payload", error_type="PARSE_ERROR"
            ) from exc
        usage = payload.get("usage") or {}
        tokens = int(usage.get("total_tokens") or 0)
        return content, tokens


class GeminiAdapter(HttpProviderAdapter):
    default_models_path = "/v1beta/models"

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "x-goog-api-key": self.config.api_key,
        }

    async def _generate(self, request: GenerationRequest) -> Tuple[str, int]:
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens
                or self.config.capabilities.max_tokens_per_request,
            },
        }
        if request.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        url = self._url(f"/v1beta/models/{self.config.model}:generateContent")
        payload = await self._post_generation(url, body)
        try:
            parts = payload["candidates"][0]["content"]["parts"]
            content = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderInvocationError(
                self.name, "Missing candidates in Gemini payload", error_type="PARSE_ERROR"
            ) from exc
        usage = payload.get("usageMetadata") or {}
        tokens = int(usage.get("totalTokenCount") or 0)
        return content, tokens


def build_adapter(
    config: ProviderConfig, *, client: Optional[httpx.AsyncClient] = None
) -> HttpProviderAdapter:
    if config.kind == "gemini":
        return GeminiAdapter(config, client=client)
    return OpenAICompatibleAdapter(config, client=client)


__all__ = [
    "GeminiAdapter",
    "HttpProviderAdapter",
    "OpenAICompatibleAdapter",
    "build_adapter",
    "classify_status",
]
