import time

from fastapi import Depends, Request
from redis.asyncio import Redis

from .provider.registry import ProviderRegistry
from .redis_client import get_redis_client
from .routing.failover import CircuitBreaker
from .services.routing_service import ProviderRoutingService


async def get_redis() -> Redis:
    """
    FastAPI dependency that provides a shared Redis client.

    Tests are expected to override this (or ``get_routing_service``) with
    an in-memory implementation.
    """
    return get_redis_client()


def get_registry(request: Request) -> ProviderRegistry:
    """
    The provider registry built once in the application lifespan.
    """
    return request.app.state.registry


def get_circuit_breaker(request: Request) -> CircuitBreaker:
    breaker = getattr(request.app.state, "circuit_breaker", None)
    if breaker is None:
        breaker = CircuitBreaker(time.time)
        request.app.state.circuit_breaker = breaker
    return breaker


async def get_routing_service(
    redis: Redis = Depends(get_redis),
    registry: ProviderRegistry = Depends(get_registry),
    breaker: CircuitBreaker = Depends(get_circuit_breaker),
) -> ProviderRoutingService:
    return ProviderRoutingService.from_redis(redis, registry, breaker=breaker)
