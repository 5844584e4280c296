"""
Per-provider rolling counters on top of the MetricsStore.

All keys for one provider are independent; each counter is updated
with a single atomic Redis command so concurrent completions of the same
provider never lose increments. Reads go through one MGET and are turned
into a ``ProviderMetricsSnapshot``.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from aigate.models import ProviderCapabilities, ProviderMetricsSnapshot
from aigate.settings import settings
from aigate.storage.metrics_store import MetricsStore, parse_float

# Key templates
METRIC_KEY_TEMPLATE = "ai:provider:metrics:{name}:{field}"
ERROR_KEY_TEMPLATE = "ai:provider:errors:{name}:{error_type}"
LOAD_KEY_TEMPLATE = "ai:provider:load:{name}:{minute}"
HEALTH_KEY_TEMPLATE = "ai:provider:health:{name}"
DAILY_COST_KEY_TEMPLATE = "ai:provider:cost:{name}:daily:{day}"
TOTAL_COST_KEY_TEMPLATE = "ai:provider:cost:{name}:total"
ALERT_COOLDOWN_KEY_TEMPLATE = "ai:provider:alert:{name}:{alert_type}"
ALERT_HISTORY_KEY_TEMPLATE = "ai:provider:alert:{name}:history"
RECOMMENDATION_KEY_TEMPLATE = "ai:provider:optimization:recommendation:{signature}"
ROUTING_STRATEGY_KEY = "ai:provider:routing:strategy"
ROUND_ROBIN_KEY = "ai:loadbalancer:round_robin"

LOAD_BUCKET_TTL_SECONDS = 120

_SNAPSHOT_FIELDS = (
    "total_requests",
    "successful_requests",
    "failed_requests",
    "consecutive_failures",
    "total_response_time",
    "min_response_time",
    "max_response_time",
    "total_quality_score",
    "quality_measurements",
    "last_success",
    "last_failure",
    "fallback_requests",
)


def metric_key(name: str, field: str) -> str:
    return METRIC_KEY_TEMPLATE.format(name=name, field=field)


def load_key(name: str, now: float) -> str:
    return LOAD_KEY_TEMPLATE.format(name=name, minute=int(now // 60))


def day_bucket(now: float) -> str:
    """UTC calendar day (YYYY-MM-DD) of an epoch timestamp."""
    return dt.datetime.fromtimestamp(now, tz=dt.timezone.utc).date().isoformat()


async def record_request_start(store: MetricsStore, name: str) -> None:
    """
    Count one request in the provider's current minute bucket.
    """
    await store.increment(
        load_key(name, store.now()), 1, ttl_seconds=LOAD_BUCKET_TTL_SECONDS
    )


async def record_success(
    store: MetricsStore,
    name: str,
    response_time_ms: float,
    quality_score: Optional[float] = None,
    *,
    ttl_seconds: int | None = None,
) -> None:
    ttl = ttl_seconds or settings.metrics_ttl_seconds
    now = store.now()
    rt = max(0.0, float(response_time_ms))

    await store.increment(metric_key(name, "total_requests"), 1, ttl_seconds=ttl)
    await store.increment(metric_key(name, "successful_requests"), 1, ttl_seconds=ttl)
    await store.increment(metric_key(name, "total_response_time"), rt, ttl_seconds=ttl)
    await store.set(metric_key(name, "last_success"), now, ttl_seconds=ttl)
    await store.set(metric_key(name, "consecutive_failures"), 0, ttl_seconds=ttl)

    # Min/max are best-effort read-compare-write.
    current_min = await store.get(metric_key(name, "min_response_time"))
    if current_min is None or rt < parse_float(current_min, rt):
        await store.set(metric_key(name, "min_response_time"), rt, ttl_seconds=ttl)
    current_max = await store.get(metric_key(name, "max_response_time"))
    if current_max is None or rt > parse_float(current_max, rt):
        await store.set(metric_key(name, "max_response_time"), rt, ttl_seconds=ttl)

    if quality_score is not None:
        await store.increment(
            metric_key(name, "total_quality_score"), float(quality_score), ttl_seconds=ttl
        )
        await store.increment(metric_key(name, "quality_measurements"), 1, ttl_seconds=ttl)


async def record_failure(
    store: MetricsStore,
    name: str,
    error_type: str,
    *,
    ttl_seconds: int | None = None,
) -> None:
    ttl = ttl_seconds or settings.metrics_ttl_seconds
    await store.increment(metric_key(name, "total_requests"), 1, ttl_seconds=ttl)
    await store.increment(metric_key(name, "failed_requests"), 1, ttl_seconds=ttl)
    await store.increment(metric_key(name, "consecutive_failures"), 1, ttl_seconds=ttl)
    await store.set(metric_key(name, "last_failure"), store.now(), ttl_seconds=ttl)
    await store.increment(
        ERROR_KEY_TEMPLATE.format(name=name, error_type=error_type or "UNKNOWN"),
        1,
        ttl_seconds=ttl,
    )


async def record_fallback_success(
    store: MetricsStore,
    name: str,
    response_time_ms: float,
    quality_score: Optional[float] = None,
    *,
    ttl_seconds: int | None = None,
) -> None:
    """
    A success served by a provider that was not the first choice.
    """
    ttl = ttl_seconds or settings.metrics_ttl_seconds
    await record_success(store, name, response_time_ms, quality_score, ttl_seconds=ttl)
    await store.increment(metric_key(name, "fallback_requests"), 1, ttl_seconds=ttl)


async def error_count(store: MetricsStore, name: str, error_type: str) -> int:
    raw = await store.get(ERROR_KEY_TEMPLATE.format(name=name, error_type=error_type))
    return int(parse_float(raw))


async def load_snapshot(
    store: MetricsStore,
    name: str,
    capabilities: ProviderCapabilities | None = None,
) -> ProviderMetricsSnapshot:
    """
    Read every rolling counter of ``name`` and derive rates and averages.

    A provider without traffic reports success rate 1.0; average quality
    falls back to the midpoint of the declared quality bounds until a
    score has been measured.
    """
    now = store.now()
    keys = [metric_key(name, field) for field in _SNAPSHOT_FIELDS]
    keys.append(load_key(name, now))
    keys.append(TOTAL_COST_KEY_TEMPLATE.format(name=name))
    raw = await store.get_many(keys)
    values = dict(zip(_SNAPSHOT_FIELDS, raw[: len(_SNAPSHOT_FIELDS)]))
    load_raw, cost_raw = raw[len(_SNAPSHOT_FIELDS)], raw[len(_SNAPSHOT_FIELDS) + 1]

    total = int(parse_float(values["total_requests"]))
    successful = int(parse_float(values["successful_requests"]))
    failed = int(parse_float(values["failed_requests"]))
    quality_count = int(parse_float(values["quality_measurements"]))

    if total > 0:
        success_rate = min(1.0, successful / total)
        error_rate = min(1.0, failed / total)
    else:
        success_rate = 1.0
        error_rate = 0.0

    avg_rt = parse_float(values["total_response_time"]) / successful if successful else 0.0

    if quality_count > 0:
        avg_quality = parse_float(values["total_quality_score"]) / quality_count
    elif capabilities is not None:
        avg_quality = capabilities.quality_midpoint
    else:
        avg_quality = 0.0

    current_load = 0.0
    if capabilities is not None:
        current_load = parse_float(load_raw) / capabilities.max_requests_per_minute

    return ProviderMetricsSnapshot(
        provider_name=name,
        total_requests=total,
        successful_requests=successful,
        failed_requests=failed,
        consecutive_failures=int(parse_float(values["consecutive_failures"])),
        fallback_requests=int(parse_float(values["fallback_requests"])),
        success_rate=success_rate,
        error_rate=error_rate,
        average_response_time=avg_rt,
        min_response_time=_optional_float(values["min_response_time"]),
        max_response_time=_optional_float(values["max_response_time"]),
        average_quality_score=max(0.0, min(10.0, avg_quality)),
        quality_measurements=quality_count,
        current_load=max(0.0, min(1.0, current_load)),
        total_cost=parse_float(cost_raw),
        last_success=_optional_float(values["last_success"]),
        last_failure=_optional_float(values["last_failure"]),
    )


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    return parse_float(raw)


__all__ = [
    "ALERT_COOLDOWN_KEY_TEMPLATE",
    "ALERT_HISTORY_KEY_TEMPLATE",
    "DAILY_COST_KEY_TEMPLATE",
    "ERROR_KEY_TEMPLATE",
    "HEALTH_KEY_TEMPLATE",
    "LOAD_KEY_TEMPLATE",
    "METRIC_KEY_TEMPLATE",
    "RECOMMENDATION_KEY_TEMPLATE",
    "ROUTING_STRATEGY_KEY",
    "ROUND_ROBIN_KEY",
    "TOTAL_COST_KEY_TEMPLATE",
    "day_bucket",
    "error_count",
    "load_key",
    "load_snapshot",
    "metric_key",
    "record_failure",
    "record_fallback_success",
    "record_request_start",
    "record_success",
]
