from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional, Tuple

from aigate.models import AlertHandle, AlertSeverity, ProviderCapabilities, ProviderConfig
from aigate.provider.base import GenerationRequest, ProviderAdapter
from aigate.storage import provider_metrics
from aigate.storage.metrics_store import MetricsStore


# 2023-11-14 12:00:00 UTC
DEFAULT_START = 1_699_963_200.0


class FakeClock:
    def __init__(self, start: float = DEFAULT_START) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryRedis:
    """
    Minimal async Redis replacement with string values, lists and TTLs
    evaluated against an injectable clock.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.time
        self._data: dict[str, str] = {}
        self._lists: dict[str, list[str]] = {}
        self._expires: dict[str, float] = {}
        self.closed = False

    def _purge(self, key: str) -> None:
        expires_at = self._expires.get(key)
        if expires_at is not None and expires_at <= self._clock():
            self._data.pop(key, None)
            self._lists.pop(key, None)
            self._expires.pop(key, None)

    def ttl_of(self, key: str) -> Optional[float]:
        expires_at = self._expires.get(key)
        if expires_at is None:
            return None
        return expires_at - self._clock()

    async def get(self, key: str):
        self._purge(key)
        return self._data.get(key)

    async def set(self, key: str, value, ex: int | None = None, nx: bool = False):
        self._purge(key)
        if nx and key in self._data:
            return None
        self._data[key] = str(value)
        if ex is not None:
            self._expires[key] = self._clock() + ex
        else:
            self._expires.pop(key, None)
        return True

    async def incrby(self, key: str, amount: int = 1) -> int:
        self._purge(key)
        current = int(float(self._data.get(key, "0"))) + int(amount)
        self._data[key] = str(current)
        return current

    async def incr(self, key: str) -> int:
        return await self.incrby(key, 1)

    async def incrbyfloat(self, key: str, amount: float) -> float:
        self._purge(key)
        current = float(self._data.get(key, "0")) + float(amount)
        self._data[key] = repr(current)
        return current

    async def expire(self, key: str, seconds: int) -> bool:
        self._purge(key)
        if key not in self._data and key not in self._lists:
            return False
        self._expires[key] = self._clock() + seconds
        return True

    async def mget(self, keys):
        return [await self.get(k) for k in keys]

    async def lpush(self, key: str, *values) -> int:
        self._purge(key)
        items = self._lists.setdefault(key, [])
        for value in values:
            items.insert(0, str(value))
        return len(items)

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        self._purge(key)
        items = self._lists.get(key, [])
        self._lists[key] = items[start:] if end == -1 else items[start : end + 1]
        return True

    async def lrange(self, key: str, start: int, end: int):
        self._purge(key)
        items = self._lists.get(key, [])
        return list(items[start:] if end == -1 else items[start : end + 1])

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None or self._lists.pop(key, None) is not None:
                removed += 1
            self._expires.pop(key, None)
        return removed

    async def aclose(self) -> None:
        self.closed = True


def make_config(
    name: str,
    *,
    cost_per_token: float = 0.001,
    content_types=("blog_post",),
    languages=("en",),
    max_rpm: int = 60,
    **overrides,
) -> ProviderConfig:
    capabilities = ProviderCapabilities(
        supported_content_types=frozenset(content_types),
        supported_languages=frozenset(languages),
        max_requests_per_minute=max_rpm,
    )
    data = {
        "id": name,
        "name": name,
        "base_url": "https://api.mock.local",
        "api_key": "sk-test",  # pragma: allowlist secret
        "model": "mock-model",
        "cost_per_token": cost_per_token,
        "capabilities": capabilities,
    }
    data.update(overrides)
    return ProviderConfig(**data)


class FakeAdapter(ProviderAdapter):
    def __init__(
        self,
        config: ProviderConfig,
        *,
        probe_error: Optional[Exception] = None,
        probe_delay: float = 0.0,
        fail_with: Optional[Exception] = None,
        content: str = "Generated content " * 10,
        tokens: int = 100,
    ) -> None:
        super().__init__(config)
        self.probe_error = probe_error
        self.probe_delay = probe_delay
        self.fail_with = fail_with
        self.content = content
        self.tokens = tokens
        self.probe_calls = 0
        self.calls = 0

    async def probe(self) -> float:
        self.probe_calls += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if self.probe_error is not None:
            raise self.probe_error
        return 5.0

    async def _generate(self, request: GenerationRequest) -> Tuple[str, int]:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.content, self.tokens


def fake_adapter(name: str, **kwargs) -> FakeAdapter:
    adapter_kwargs = {
        key: kwargs.pop(key)
        for key in ("probe_error", "probe_delay", "fail_with", "content", "tokens")
        if key in kwargs
    }
    return FakeAdapter(make_config(name, **kwargs), **adapter_kwargs)


async def seed_metrics(
    store: MetricsStore,
    name: str,
    *,
    successes: int = 0,
    failures: int = 0,
    response_time_ms: float = 1500.0,
    quality: Optional[float] = None,
) -> None:
    """Record successes first, then failures (which stay consecutive)."""
    for _ in range(successes):
        await provider_metrics.record_success(store, name, response_time_ms, quality)
    for _ in range(failures):
        await provider_metrics.record_failure(store, name, "SERVER_ERROR")


class RecordingSink:
    def __init__(self, *, error: Optional[Exception] = None) -> None:
        self.calls: List[Tuple[str, str, AlertSeverity]] = []
        self.error = error

    async def raise_alert(
        self, alert_type: str, message: str, severity: AlertSeverity
    ) -> AlertHandle:
        self.calls.append((alert_type, message, severity))
        if self.error is not None:
            raise self.error
        return AlertHandle(
            alert_id=f"alert-{len(self.calls)}",
            alert_type=alert_type,
            severity=severity,
            message=message,
            created_at=0.0,
        )
