"""
Cost accounting and alerting.

Costs are accumulated per provider in one counter per UTC day plus a
lifetime total. ``monitor_all()`` evaluates health, performance and
budget conditions for every provider and fires an alert for each breach.
Each ``(provider, alert type)`` pair has a cooldown key created with
SET NX EX; while it exists the same condition is skipped.
"""

from __future__ import annotations

import datetime as dt
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from aigate.errors import MonitoringCycleError
from aigate.logging_config import logger
from aigate.models import (
    Alert,
    AlertSeverity,
    AlertType,
    CostSummary,
    HealthLevel,
    HealthStatus,
    ProviderMetricsSnapshot,
)
from aigate.monitoring.sink import LoggingAlertSink, SystemAlertSink
from aigate.provider.health import HealthMonitor
from aigate.provider.registry import ProviderRegistry
from aigate.settings import settings
from aigate.storage.metrics_store import MetricsStore, parse_float
from aigate.storage.provider_metrics import (
    ALERT_COOLDOWN_KEY_TEMPLATE,
    ALERT_HISTORY_KEY_TEMPLATE,
    DAILY_COST_KEY_TEMPLATE,
    TOTAL_COST_KEY_TEMPLATE,
    day_bucket,
    load_snapshot,
)

DAILY_COST_TTL_SECONDS = 32 * 86400
DAILY_WARNING_RATIO = 0.8
MONTHLY_WARNING_RATIO = 0.9

Condition = Tuple[AlertType, AlertSeverity, str]


def _month_days(now: float) -> List[str]:
    today = dt.datetime.fromtimestamp(now, tz=dt.timezone.utc).date()
    first = today.replace(day=1)
    return [
        (first + dt.timedelta(days=offset)).isoformat()
        for offset in range((today - first).days + 1)
    ]


def _usage_percent(cost: float, budget: float) -> float:
    return (cost / budget) * 100.0 if budget > 0 else 0.0


def health_conditions(
    name: str, health: HealthStatus, *, consecutive_failures_threshold: int
) -> List[Condition]:
    conditions: List[Condition] = []
    if health.health_level == HealthLevel.DOWN:
        conditions.append(
            (
                AlertType.PROVIDER_DOWN,
                AlertSeverity.CRITICAL,
                "Provider %s is DOWN: %s" % (name, health.message),
            )
        )
    if health.consecutive_failures >= consecutive_failures_threshold:
        conditions.append(
            (
                AlertType.HIGH_FAILURE_RATE,
                AlertSeverity.HIGH,
                "Provider %s has %d consecutive failures" % (name, health.consecutive_failures),
            )
        )
    if health.health_level == HealthLevel.DEGRADED:
        conditions.append(
            (
                AlertType.PERFORMANCE_DEGRADED,
                AlertSeverity.MEDIUM,
                "Provider %s performance is degraded: error rate %.1f%%"
                % (name, health.error_rate * 100),
            )
        )
    return conditions


def performance_conditions(
    name: str,
    metrics: ProviderMetricsSnapshot,
    *,
    response_time_threshold_ms: int,
    error_rate_threshold: float,
) -> List[Condition]:
    conditions: List[Condition] = []
    if metrics.average_response_time > response_time_threshold_ms:
        conditions.append(
            (
                AlertType.SLOW_RESPONSE,
                AlertSeverity.MEDIUM,
                "Provider %s average response time is %dms (threshold: %dms)"
                % (name, metrics.average_response_time, response_time_threshold_ms),
            )
        )
    if metrics.error_rate > error_rate_threshold:
        conditions.append(
            (
                AlertType.HIGH_ERROR_RATE,
                AlertSeverity.HIGH,
                "Provider %s error rate is %.1f%% (threshold: %.1f%%)"
                % (name, metrics.error_rate * 100, error_rate_threshold * 100),
            )
        )
    return conditions


def budget_conditions(name: str, summary: CostSummary) -> List[Condition]:
    conditions: List[Condition] = []
    if summary.is_daily_budget_exceeded:
        conditions.append(
            (
                AlertType.DAILY_BUDGET_EXCEEDED,
                AlertSeverity.HIGH,
                "Provider %s daily cost $%.2f exceeded budget $%.2f"
                % (name, summary.daily_cost, summary.daily_budget),
            )
        )
    elif summary.is_daily_budget_warning:
        conditions.append(
            (
                AlertType.DAILY_BUDGET_WARNING,
                AlertSeverity.MEDIUM,
                "Provider %s daily cost $%.2f is at %.0f%% of budget $%.2f"
                % (name, summary.daily_cost, summary.daily_usage_percent, summary.daily_budget),
            )
        )
    if summary.is_monthly_budget_exceeded:
        conditions.append(
            (
                AlertType.MONTHLY_BUDGET_EXCEEDED,
                AlertSeverity.CRITICAL,
                "Provider %s monthly cost $%.2f exceeded budget $%.2f"
                % (name, summary.monthly_cost, summary.monthly_budget),
            )
        )
    elif summary.is_monthly_budget_warning:
        conditions.append(
            (
                AlertType.MONTHLY_BUDGET_WARNING,
                AlertSeverity.HIGH,
                "Provider %s monthly cost $%.2f is at %.0f%% of budget $%.2f"
                % (
                    name,
                    summary.monthly_cost,
                    summary.monthly_usage_percent,
                    summary.monthly_budget,
                ),
            )
        )
    return conditions


class CostAlertMonitor:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: MetricsStore,
        health_monitor: HealthMonitor,
        sink: Optional[SystemAlertSink] = None,
        *,
        cooldown_seconds: int | None = None,
        history_size: int | None = None,
        history_retention_days: int | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.health_monitor = health_monitor
        self.sink = sink or LoggingAlertSink()
        self.cooldown_seconds = cooldown_seconds or settings.alert_cooldown_seconds
        self.history_size = history_size or settings.alert_history_size
        self.history_retention_days = (
            history_retention_days or settings.alert_history_retention_days
        )

    # Cost accounting

    async def record_cost(self, name: str, amount: float) -> None:
        """
        Add ``amount`` to today's and the lifetime cost counters.

        Raises ``ProviderNotFound`` for unknown providers; store failures
        are logged and swallowed.
        """
        self.registry.get(name)
        if amount <= 0:
            if amount < 0:
                logger.warning("Ignoring negative cost %.6f for provider %s", amount, name)
            return
        day = day_bucket(self.store.now())
        try:
            await self.store.increment(
                DAILY_COST_KEY_TEMPLATE.format(name=name, day=day),
                float(amount),
                ttl_seconds=DAILY_COST_TTL_SECONDS,
            )
            await self.store.increment(TOTAL_COST_KEY_TEMPLATE.format(name=name), float(amount))
        except Exception as exc:
            logger.error("Failed to record cost %.6f for provider %s: %s", amount, name, exc)

    async def daily_cost(self, name: str) -> float:
        day = day_bucket(self.store.now())
        return await self.store.get_float(DAILY_COST_KEY_TEMPLATE.format(name=name, day=day))

    async def monthly_cost(self, name: str) -> float:
        keys = [
            DAILY_COST_KEY_TEMPLATE.format(name=name, day=day)
            for day in _month_days(self.store.now())
        ]
        return sum(parse_float(raw) for raw in await self.store.get_many(keys))

    async def total_cost(self, name: str) -> float:
        return await self.store.get_float(TOTAL_COST_KEY_TEMPLATE.format(name=name))

    async def cost_summary(self, name: str) -> CostSummary:
        config = self.registry.get(name).config
        daily_budget = config.daily_budget or settings.daily_cost_budget
        monthly_budget = config.monthly_budget or settings.monthly_cost_budget
        daily = await self.daily_cost(name)
        monthly = await self.monthly_cost(name)
        return CostSummary(
            provider_name=name,
            daily_cost=daily,
            monthly_cost=monthly,
            total_cost=await self.total_cost(name),
            daily_budget=daily_budget,
            monthly_budget=monthly_budget,
            daily_usage_percent=_usage_percent(daily, daily_budget),
            monthly_usage_percent=_usage_percent(monthly, monthly_budget),
            is_daily_budget_warning=daily > daily_budget * DAILY_WARNING_RATIO,
            is_daily_budget_exceeded=daily > daily_budget,
            is_monthly_budget_warning=monthly > monthly_budget * MONTHLY_WARNING_RATIO,
            is_monthly_budget_exceeded=monthly > monthly_budget,
        )

    async def cost_summaries(self) -> Dict[str, CostSummary]:
        return {name: await self.cost_summary(name) for name in self.registry.names()}

    async def daily_summary(self) -> Dict[str, CostSummary]:
        summaries = await self.cost_summaries()
        total = sum(s.daily_cost for s in summaries.values())
        for name, s in summaries.items():
            metrics = await load_snapshot(
                self.store, name, self.registry.get(name).capabilities()
            )
            logger.info(
                "Daily summary for %s: %d requests, %.1f%% success rate, %.0fms avg response time",
                name,
                metrics.total_requests,
                metrics.success_rate * 100,
                metrics.average_response_time,
            )
            logger.info(
                "Daily cost summary provider=%s daily=$%.2f (%.0f%% of $%.2f) monthly=$%.2f total=$%.2f",
                name,
                s.daily_cost,
                s.daily_usage_percent,
                s.daily_budget,
                s.monthly_cost,
                s.total_cost,
            )
        logger.info("Daily cost summary: %d provider(s), total $%.2f", len(summaries), total)
        return summaries

    # Alerting

    async def monitor_provider(self, name: str) -> List[Alert]:
        health = await self.health_monitor.last_known_status(name)
        adapter = self.registry.get(name)
        metrics = await load_snapshot(self.store, name, adapter.capabilities())
        summary = await self.cost_summary(name)

        conditions = health_conditions(
            name,
            health,
            consecutive_failures_threshold=settings.alert_consecutive_failures_threshold,
        )
        conditions += performance_conditions(
            name,
            metrics,
            response_time_threshold_ms=settings.alert_response_time_threshold_ms,
            error_rate_threshold=settings.alert_error_rate_threshold,
        )
        conditions += budget_conditions(name, summary)

        fired: List[Alert] = []
        for alert_type, severity, message in conditions:
            alert = await self._fire(name, alert_type, severity, message)
            if alert is not None:
                fired.append(alert)
        return fired

    async def monitor_all(self) -> List[Alert]:
        """
        Evaluate every provider once. A failure while evaluating one
        provider is logged and never stops the others.
        """
        fired: List[Alert] = []
        for name in self.registry.names():
            try:
                fired.extend(await self.monitor_provider(name))
            except Exception as exc:
                error = MonitoringCycleError(name, str(exc))
                logger.error("%s", error, exc_info=exc)
        if fired:
            logger.info("Alert monitoring cycle fired %d alert(s)", len(fired))
        return fired

    async def alert_history(self, name: str, limit: int = 20) -> List[Alert]:
        self.registry.get(name)
        raw_items = await self.store.list_range(
            ALERT_HISTORY_KEY_TEMPLATE.format(name=name), min(limit, self.history_size)
        )
        alerts: List[Alert] = []
        for raw in raw_items:
            try:
                alerts.append(Alert.model_validate_json(raw))
            except ValidationError:
                logger.debug("Skipping malformed alert history entry for %s", name)
        return alerts

    async def _fire(
        self,
        name: str,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
    ) -> Optional[Alert]:
        now = self.store.now()
        cooldown_key = ALERT_COOLDOWN_KEY_TEMPLATE.format(name=name, alert_type=alert_type.value)
        if not await self.store.set_if_absent_with_ttl(cooldown_key, now, self.cooldown_seconds):
            logger.debug("Alert %s for provider %s suppressed by cooldown", alert_type.value, name)
            return None

        alert_id: Optional[str] = None
        try:
            handle = await self.sink.raise_alert(
                alert_type.value, "[%s] %s" % (name, message), severity
            )
            alert_id = handle.alert_id
        except Exception as exc:
            logger.error(
                "Failed to deliver alert %s for provider %s: %s", alert_type.value, name, exc
            )

        alert = Alert(
            provider_name=name,
            alert_type=alert_type,
            severity=severity,
            message=message,
            timestamp=now,
            alert_id=alert_id,
        )
        await self.store.push_capped(
            ALERT_HISTORY_KEY_TEMPLATE.format(name=name),
            alert.model_dump_json(),
            max_len=self.history_size,
            ttl_seconds=self.history_retention_days * 86400,
        )
        logger.warning("Alert fired [%s/%s] %s", alert_type.value, severity.value, message)
        return alert


__all__ = [
    "CostAlertMonitor",
    "budget_conditions",
    "health_conditions",
    "performance_conditions",
]
