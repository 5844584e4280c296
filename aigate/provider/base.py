"""
Provider adapter contract.

Every upstream backend implements ``ProviderAdapter``. The base class
owns the bookkeeping shared by all backends: it times the call, counts
the request in the provider's load bucket and records the outcome in the
MetricsStore. Subclasses only implement the wire call (``_generate``)
and a cheap liveness ``probe``.
"""

from __future__ import annotations

import abc
import time
from typing import Optional, Tuple

from pydantic import BaseModel, Field

from aigate.errors import ProviderInvocationError
from aigate.logging_config import logger
from aigate.models import ProviderCapabilities, ProviderConfig
from aigate.storage import provider_metrics
from aigate.storage.metrics_store import MetricsStore


class GenerationRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    system_prompt: Optional[str] = None
    max_tokens: Optional[int] = Field(None, gt=0)
    temperature: float = Field(0.7, ge=0.0, le=2.0)


class GenerationResult(BaseModel):
    content: str
    tokens_used: int = 0
    cost: float = 0.0
    response_time_ms: float = 0.0
    quality_score: float = Field(0.0, ge=0.0, le=10.0)
    provider: str


def estimate_quality_score(content: str) -> float:
    """
    Rough quality heuristic used when the backend does not grade output.
    """
    if not content or not content.strip():
        return 0.0
    score = 5.0
    if 100 <= len(content) <= 2000:
        score += 1.0
    if len(content.split()) > 20:
        score += 1.0
    return min(10.0, score)


class ProviderAdapter(abc.ABC):
    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def cost_per_token(self) -> float:
        return self.config.cost_per_token

    def capabilities(self) -> ProviderCapabilities:
        return self.config.capabilities

    @abc.abstractmethod
    async def probe(self) -> float:
        """
        Lightweight liveness check. Returns the observed latency in ms and
        raises ``ProbeFailure`` when the backend is unreachable.
        """

    @abc.abstractmethod
    async def _generate(self, request: GenerationRequest) -> Tuple[str, int]:
        """Call the backend; return (content, tokens_used)."""

    async def invoke(
        self,
        request: GenerationRequest,
        store: MetricsStore,
        *,
        fallback: bool = False,
    ) -> GenerationResult:
        """
        Run one generation and record its outcome.

        Raises ``ProviderInvocationError`` on any backend failure; the
        failure is recorded before the exception propagates.
        """
        await self._safe_record(provider_metrics.record_request_start(store, self.name))
        start = time.perf_counter()
        try:
            content, tokens_used = await self._generate(request)
        except ProviderInvocationError as exc:
            await self._safe_record(
                provider_metrics.record_failure(store, self.name, exc.error_type)
            )
            raise
        except Exception as exc:
            await self._safe_record(
                provider_metrics.record_failure(store, self.name, "SYSTEM_ERROR")
            )
            raise ProviderInvocationError(
                self.name, f"Unexpected provider error: {exc}"
            ) from exc

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        quality = estimate_quality_score(content)
        if fallback:
            recorder = provider_metrics.record_fallback_success(
                store, self.name, elapsed_ms, quality
            )
        else:
            recorder = provider_metrics.record_success(store, self.name, elapsed_ms, quality)
        await self._safe_record(recorder)

        return GenerationResult(
            content=content,
            tokens_used=tokens_used,
            cost=tokens_used * self.cost_per_token,
            response_time_ms=elapsed_ms,
            quality_score=quality,
            provider=self.name,
        )

    async def _safe_record(self, coro) -> None:
        try:
            await coro
        except Exception as exc:
            logger.warning("provider=%s failed to record metrics: %s", self.name, exc)


__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "ProviderAdapter",
    "estimate_quality_score",
]
