"""
Celery tasks: alert monitoring cycle and daily cost summary.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from celery import shared_task
from celery.schedules import crontab

from aigate.celery_app import celery_app
from aigate.logging_config import logger
from aigate.provider.registry import ProviderRegistry, build_registry_from_settings
from aigate.redis_client import create_redis_client
from aigate.services.routing_service import ProviderRoutingService
from aigate.settings import settings


async def _run_monitoring(registry: Optional[ProviderRegistry] = None) -> List[Dict[str, str]]:
    redis = create_redis_client()
    try:
        service = ProviderRoutingService.from_redis(
            redis, registry or build_registry_from_settings()
        )
        alerts = await service.monitor_all()
        return [
            {
                "provider": alert.provider_name,
                "type": alert.alert_type.value,
                "severity": alert.severity.value,
            }
            for alert in alerts
        ]
    finally:
        await redis.aclose()


async def _run_daily_summary(registry: Optional[ProviderRegistry] = None) -> Dict[str, float]:
    redis = create_redis_client()
    try:
        service = ProviderRoutingService.from_redis(
            redis, registry or build_registry_from_settings()
        )
        summaries = await service.daily_summary()
        return {name: summary.daily_cost for name, summary in summaries.items()}
    finally:
        await redis.aclose()


@shared_task(name="tasks.provider_alerts.monitor_all")
def monitor_all_providers() -> List[Dict[str, str]]:
    """Evaluate health, performance and budget alerts for every provider."""
    fired = asyncio.run(_run_monitoring())
    if fired:
        logger.info("Alert monitoring fired %d alert(s)", len(fired))
    return fired


@shared_task(name="tasks.provider_alerts.daily_summary")
def daily_cost_summary() -> Dict[str, float]:
    """Log per-provider daily traffic, performance and spend."""
    return asyncio.run(_run_daily_summary())


celery_app.conf.beat_schedule = getattr(celery_app.conf, "beat_schedule", {}) or {}
celery_app.conf.beat_schedule.update(
    {
        "provider-alert-monitor": {
            "task": "tasks.provider_alerts.monitor_all",
            "schedule": settings.alert_monitor_interval_seconds,
        },
        "provider-daily-cost-summary": {
            "task": "tasks.provider_alerts.daily_summary",
            "schedule": crontab(hour=0, minute=5),
        },
    }
)


__all__ = ["daily_cost_summary", "monitor_all_providers"]
