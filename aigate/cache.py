"""
Small TTL cache for derived values (recommendations, routing strategies).

Each entry is stored as an explicit ``{"value": ..., "expires_at": ...}``
envelope so expiry is decided against the store clock, with the Redis TTL
only acting as garbage collection.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from aigate.logging_config import logger
from aigate.storage.metrics_store import MetricsStore

ModelT = TypeVar("ModelT", bound=BaseModel)


async def cache_get(
    store: MetricsStore, key: str, model: Type[ModelT]
) -> Optional[ModelT]:
    try:
        envelope = await store.get_json(key)
    except Exception as exc:
        logger.warning("cache read failed for key=%s: %s", key, exc)
        return None
    if not isinstance(envelope, dict):
        return None
    expires_at = envelope.get("expires_at")
    if not isinstance(expires_at, (int, float)) or expires_at <= store.now():
        return None
    try:
        return model.model_validate(envelope.get("value"))
    except ValidationError:
        logger.debug("discarding malformed cache entry key=%s", key)
        return None


async def cache_put(
    store: MetricsStore, key: str, value: BaseModel, ttl_seconds: int
) -> None:
    envelope = {
        "value": value.model_dump(mode="json"),
        "expires_at": store.now() + ttl_seconds,
    }
    try:
        await store.set_json(key, envelope, ttl_seconds=ttl_seconds)
    except Exception as exc:
        logger.warning("cache write failed for key=%s: %s", key, exc)


async def get_or_compute(
    store: MetricsStore,
    key: str,
    model: Type[ModelT],
    ttl_seconds: int,
    compute: Callable[[], Awaitable[ModelT]],
) -> ModelT:
    """
    Return the cached value for ``key`` or compute, store and return it.
    Errors raised by ``compute`` propagate unchanged and nothing is cached.
    """
    cached = await cache_get(store, key, model)
    if cached is not None:
        return cached
    value = await compute()
    await cache_put(store, key, value, ttl_seconds)
    return value


__all__ = ["cache_get", "cache_put", "get_or_compute"]
