"""
Provider health monitoring.

Each check probes the backend for liveness, reads the provider's rolling
metrics and classifies the result into a ``HealthLevel``. Statuses are
cached in Redis: a status younger than ``health_cache_ttl_seconds`` is
served without probing again, and the last known status is retained for
``health_retention_seconds`` so that a provider whose probe times out
keeps its previous classification.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from pydantic import ValidationError

from aigate.errors import ProbeFailure
from aigate.logging_config import logger
from aigate.models import HealthLevel, HealthStatus, HealthSummary, ProviderMetricsSnapshot
from aigate.provider.base import ProviderAdapter
from aigate.provider.registry import ProviderRegistry
from aigate.settings import settings
from aigate.storage.metrics_store import MetricsStore
from aigate.storage.provider_metrics import HEALTH_KEY_TEMPLATE, load_snapshot

DOWN_CONSECUTIVE_FAILURES = 5
UNHEALTHY_ERROR_RATE = 0.5
DEGRADED_ERROR_RATE = 0.2


def classify_health_level(
    consecutive_failures: int,
    error_rate: float,
    average_response_time: float,
    response_time_threshold_ms: float,
) -> HealthLevel:
    if consecutive_failures >= DOWN_CONSECUTIVE_FAILURES:
        return HealthLevel.DOWN
    if error_rate > UNHEALTHY_ERROR_RATE:
        return HealthLevel.UNHEALTHY
    if error_rate > DEGRADED_ERROR_RATE or average_response_time > response_time_threshold_ms:
        return HealthLevel.DEGRADED
    return HealthLevel.HEALTHY


def health_message(level: HealthLevel, error_rate: float, consecutive_failures: int) -> str:
    if level == HealthLevel.HEALTHY:
        return "Provider is operating normally"
    if level == HealthLevel.DEGRADED:
        return "Provider is degraded - error rate: %.1f%%" % (error_rate * 100)
    if level == HealthLevel.UNHEALTHY:
        return "Provider is unhealthy - error rate: %.1f%%, consecutive failures: %d" % (
            error_rate * 100,
            consecutive_failures,
        )
    return "Provider is down - %d consecutive failures" % consecutive_failures


def summarize(statuses: List[HealthStatus]) -> HealthSummary:
    counts = {level: 0 for level in HealthLevel}
    for status in statuses:
        counts[status.health_level] += 1
    return HealthSummary(
        total=len(statuses),
        healthy=counts[HealthLevel.HEALTHY],
        degraded=counts[HealthLevel.DEGRADED],
        unhealthy=counts[HealthLevel.UNHEALTHY],
        down=counts[HealthLevel.DOWN],
        overall_healthy=counts[HealthLevel.DOWN] == 0 and counts[HealthLevel.UNHEALTHY] == 0,
    )


async def cache_health_status(
    store: MetricsStore, status: HealthStatus, *, ttl_seconds: int
) -> None:
    key = HEALTH_KEY_TEMPLATE.format(name=status.provider_name)
    await store.set_json(key, status.model_dump(mode="json"), ttl_seconds=ttl_seconds)


async def get_cached_health_status(store: MetricsStore, name: str) -> HealthStatus | None:
    data = await store.get_json(HEALTH_KEY_TEMPLATE.format(name=name))
    if not data:
        return None
    try:
        return HealthStatus.model_validate(data)
    except ValidationError:
        return None


class HealthMonitor:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: MetricsStore,
        *,
        timeout_seconds: float | None = None,
        cache_ttl_seconds: int | None = None,
        retention_seconds: int | None = None,
        degraded_response_time_ms: int | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.timeout_seconds = timeout_seconds or settings.health_check_timeout_seconds
        self.cache_ttl_seconds = cache_ttl_seconds or settings.health_cache_ttl_seconds
        self.retention_seconds = retention_seconds or settings.health_retention_seconds
        self.degraded_response_time_ms = (
            degraded_response_time_ms or settings.health_degraded_response_time_ms
        )

    def _threshold_for(self, adapter: ProviderAdapter) -> float:
        return float(
            adapter.config.response_time_threshold_ms or self.degraded_response_time_ms
        )

    def _is_fresh(self, status: HealthStatus) -> bool:
        return self.store.now() - status.last_health_check < self.cache_ttl_seconds

    def assess(
        self,
        adapter: ProviderAdapter,
        snapshot: ProviderMetricsSnapshot,
        probe_ms: Optional[float] = None,
    ) -> HealthStatus:
        """
        Classify a provider from its metrics snapshot without touching the network.
        """
        level = classify_health_level(
            snapshot.consecutive_failures,
            snapshot.error_rate,
            snapshot.average_response_time,
            self._threshold_for(adapter),
        )
        if snapshot.successful_requests > 0 or probe_ms is None:
            current_rt = snapshot.average_response_time
        else:
            current_rt = probe_ms
        return HealthStatus(
            provider_name=adapter.name,
            health_level=level,
            is_available=level != HealthLevel.DOWN,
            consecutive_failures=snapshot.consecutive_failures,
            error_rate=snapshot.error_rate,
            current_response_time=current_rt,
            last_success=snapshot.last_success,
            last_failure=snapshot.last_failure,
            message=health_message(level, snapshot.error_rate, snapshot.consecutive_failures),
            last_health_check=self.store.now(),
        )

    def _failed_status(
        self, name: str, reason: str, snapshot: Optional[ProviderMetricsSnapshot]
    ) -> HealthStatus:
        return HealthStatus(
            provider_name=name,
            health_level=HealthLevel.DOWN,
            is_available=False,
            consecutive_failures=snapshot.consecutive_failures if snapshot else 0,
            error_rate=snapshot.error_rate if snapshot else 0.0,
            current_response_time=snapshot.average_response_time if snapshot else 0.0,
            last_success=snapshot.last_success if snapshot else None,
            last_failure=snapshot.last_failure if snapshot else None,
            message=f"Health check failed: {reason}",
            last_health_check=self.store.now(),
        )

    async def check_one(self, name: str) -> HealthStatus:
        """
        Probe one provider now and overwrite its cached status.
        Raises ``ProviderNotFound`` for unknown names; probe errors become DOWN.
        """
        adapter = self.registry.get(name)
        previous = await self._safe_cached(name)

        snapshot: Optional[ProviderMetricsSnapshot] = None
        try:
            snapshot = await load_snapshot(self.store, name, adapter.capabilities())
            probe_ms = await adapter.probe()
            status = self.assess(adapter, snapshot, probe_ms)
        except ProbeFailure as exc:
            status = self._failed_status(name, exc.reason, snapshot)
        except Exception as exc:
            status = self._failed_status(name, str(exc) or exc.__class__.__name__, snapshot)

        self._log_transition(previous, status)
        try:
            await cache_health_status(self.store, status, ttl_seconds=self.retention_seconds)
        except Exception as exc:
            logger.warning("Failed to cache health status for provider %s: %s", name, exc)
        return status

    async def check_all(self) -> Dict[str, HealthStatus]:
        """
        Probe every provider concurrently within one wall-clock timeout.

        Providers whose probe has not finished in time keep their last
        known status; they are not forced to DOWN.
        """
        tasks = {
            asyncio.create_task(self.check_one(name)): name for name in self.registry.names()
        }
        if not tasks:
            return {}

        done, pending = await asyncio.wait(tasks.keys(), timeout=self.timeout_seconds)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: Dict[str, HealthStatus] = {}
        for task in done:
            name = tasks[task]
            exc = task.exception()
            if exc is not None:
                logger.error("Health check for provider %s crashed: %s", name, exc)
                continue
            results[name] = task.result()

        for task in pending:
            name = tasks[task]
            logger.warning(
                "Health check for provider %s timed out after %.1fs; keeping last known status",
                name,
                self.timeout_seconds,
            )
            previous = await self._safe_cached(name)
            if previous is not None:
                results[name] = previous

        logger.info(
            "Health check cycle finished: %d checked, %d timed out",
            len(done),
            len(pending),
        )
        return results

    async def get_status(self, name: str) -> HealthStatus:
        """
        Return the cached status when fresh, otherwise probe.
        """
        self.registry.get(name)
        cached = await self._safe_cached(name)
        if cached is not None and self._is_fresh(cached):
            return cached
        return await self.check_one(name)

    async def last_known_status(self, name: str) -> HealthStatus:
        """
        Cached status of any age, or a metrics-only assessment when the
        provider has never been checked. Never probes.
        """
        adapter = self.registry.get(name)
        cached = await self._safe_cached(name)
        if cached is not None:
            return cached
        snapshot = await load_snapshot(self.store, name, adapter.capabilities())
        return self.assess(adapter, snapshot)

    async def _bounded_status(self, name: str) -> HealthStatus:
        try:
            return await asyncio.wait_for(self.get_status(name), self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Health check for provider %s exceeded %.1fs; using last known status",
                name,
                self.timeout_seconds,
            )
            return await self.last_known_status(name)

    async def health_summary(self) -> HealthSummary:
        """
        Count providers per health level. Stale entries are refreshed by a
        probe bounded by ``timeout_seconds``.
        """
        statuses = await asyncio.gather(
            *(self._bounded_status(name) for name in self.registry.names())
        )
        return summarize(list(statuses))

    async def _safe_cached(self, name: str) -> HealthStatus | None:
        try:
            return await get_cached_health_status(self.store, name)
        except Exception as exc:
            logger.debug("Health cache lookup failed for provider %s: %s", name, exc)
            return None

    @staticmethod
    def _log_transition(previous: HealthStatus | None, status: HealthStatus) -> None:
        if previous is not None and previous.health_level == status.health_level:
            return
        if previous is not None:
            logger.info(
                "Provider %s health status changed: %s -> %s (%s)",
                status.provider_name,
                previous.health_level.value,
                status.health_level.value,
                status.message,
            )
        if status.health_level == HealthLevel.DOWN:
            logger.error("Provider %s is DOWN: %s", status.provider_name, status.message)
        elif status.health_level in (HealthLevel.DEGRADED, HealthLevel.UNHEALTHY):
            logger.warning(
                "Provider %s is %s: %s",
                status.provider_name,
                status.health_level.value,
                status.message,
            )


__all__ = [
    "HealthMonitor",
    "cache_health_status",
    "classify_health_level",
    "get_cached_health_status",
    "health_message",
    "summarize",
]
