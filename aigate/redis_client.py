"""
Redis helper utilities.

Central place to construct Redis clients: one shared client for the API
process and dedicated clients for background tasks.
"""

from __future__ import annotations

from typing import Optional

from redis.asyncio import Redis

from .settings import settings

_redis_client: Optional[Redis] = None


def get_redis_client() -> Redis:
    """
    Return a lazily-created global Redis client.

    This is intentionally sync so it can be reused both from FastAPI
    dependencies and background tasks. The underlying driver is fully
    async and should be awaited by callers.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


def create_redis_client() -> Redis:
    """
    Build a dedicated client, e.g. for a Celery task that owns its own
    event loop and must close the connection pool afterwards.
    """
    return Redis.from_url(settings.redis_url, decode_responses=True)


__all__ = ["close_redis_client", "create_redis_client", "get_redis_client"]
