"""
Shared TTL-aware key/counter store.

Thin async wrapper around Redis exposing the handful of primitives the
routing core needs: per-key atomic increments, reads, a set-if-absent
with TTL (used for alert cooldowns) and capped lists. Every time-based
decision goes through ``now()`` so that tests can drive the clock.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, List, Optional, Sequence

from redis.asyncio import Redis


Clock = Callable[[], float]


class MetricsStore:
    def __init__(self, redis: Redis, *, clock: Clock = time.time) -> None:
        self.redis = redis
        self._clock = clock

    def now(self) -> float:
        """Current time in epoch seconds."""
        return self._clock()

    async def increment(
        self, key: str, amount: float = 1, *, ttl_seconds: int | None = None
    ) -> float:
        """
        Atomically add ``amount`` to the counter at ``key`` and refresh its TTL.
        Integer amounts use INCRBY, fractional ones INCRBYFLOAT.
        """
        if isinstance(amount, int):
            value = await self.redis.incrby(key, amount)
        else:
            value = await self.redis.incrbyfloat(key, amount)
        if ttl_seconds is not None:
            await self.redis.expire(key, ttl_seconds)
        return float(value)

    async def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        if ttl_seconds is not None:
            await self.redis.set(key, value, ex=ttl_seconds)
        else:
            await self.redis.set(key, value)

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def get_float(self, key: str, default: float = 0.0) -> float:
        raw = await self.redis.get(key)
        return parse_float(raw, default)

    async def get_many(self, keys: Sequence[str]) -> List[Optional[str]]:
        if not keys:
            return []
        return list(await self.redis.mget(list(keys)))

    async def set_if_absent_with_ttl(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """
        SET NX EX: returns True only for the caller that created the key.
        """
        created = await self.redis.set(key, value, nx=True, ex=ttl_seconds)
        return bool(created)

    async def push_capped(
        self, key: str, value: str, *, max_len: int, ttl_seconds: int | None = None
    ) -> None:
        """
        Prepend ``value`` to the list at ``key`` and keep only the newest
        ``max_len`` entries.
        """
        await self.redis.lpush(key, value)
        await self.redis.ltrim(key, 0, max_len - 1)
        if ttl_seconds is not None:
            await self.redis.expire(key, ttl_seconds)

    async def list_range(self, key: str, limit: int) -> List[str]:
        if limit <= 0:
            return []
        return list(await self.redis.lrange(key, 0, limit - 1))

    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self.redis.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    async def set_json(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        await self.set(key, json.dumps(value, ensure_ascii=False), ttl_seconds=ttl_seconds)


def parse_float(raw: Any, default: float = 0.0) -> float:
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


__all__ = ["Clock", "MetricsStore", "parse_float"]
