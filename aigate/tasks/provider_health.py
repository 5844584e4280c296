"""
Celery task: periodic provider health checks.

Each run builds the service over a dedicated Redis client, probes every
provider once (bounded by HEALTH_CHECK_TIMEOUT_SECONDS) and writes the
resulting statuses back to Redis.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from celery import shared_task

from aigate.celery_app import celery_app
from aigate.logging_config import logger
from aigate.provider.registry import ProviderRegistry, build_registry_from_settings
from aigate.redis_client import create_redis_client
from aigate.services.routing_service import ProviderRoutingService
from aigate.settings import settings


async def _run_checks(
    *,
    provider_name: Optional[str] = None,
    registry: Optional[ProviderRegistry] = None,
) -> Dict[str, str]:
    redis = create_redis_client()
    try:
        service = ProviderRoutingService.from_redis(
            redis, registry or build_registry_from_settings()
        )
        statuses = await service.force_health_check(provider_name)
        return {name: status.health_level.value for name, status in statuses.items()}
    finally:
        await redis.aclose()


@shared_task(name="tasks.provider_health.check_all")
def check_all_providers_health() -> Dict[str, str]:
    """Probe every registered provider."""
    result = asyncio.run(_run_checks())
    logger.info("Periodic health check finished: %s", result)
    return result


@shared_task(name="tasks.provider_health.check_one")
def check_provider_health(provider_name: str) -> Dict[str, str]:
    """Probe a single provider by name."""
    return asyncio.run(_run_checks(provider_name=provider_name))


celery_app.conf.beat_schedule = getattr(celery_app.conf, "beat_schedule", {}) or {}
celery_app.conf.beat_schedule.update(
    {
        "provider-health-check": {
            "task": "tasks.provider_health.check_all",
            "schedule": settings.health_check_interval_seconds,
        }
    }
)


__all__ = ["check_all_providers_health", "check_provider_health"]
