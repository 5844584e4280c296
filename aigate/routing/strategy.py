"""
System-wide routing strategy controller.

Looks at every provider's load, success rate, latency and quality,
picks a routing mode and derives traffic weights, a failover order and
retry / circuit-breaker parameters. All decisions are made by pure
functions over ``ProviderLoadInfo``; the controller only reads metrics
and caches the resulting strategy.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Sequence

from aigate.cache import cache_put, get_or_compute
from aigate.logging_config import logger
from aigate.models import ProviderLoadInfo, RoutingMode, RoutingStrategy
from aigate.provider.registry import ProviderRegistry
from aigate.settings import settings
from aigate.storage.metrics_store import MetricsStore
from aigate.storage.provider_metrics import ROUTING_STRATEGY_KEY, load_snapshot

OVERLOAD_THRESHOLD = 0.8
LOW_SUCCESS_RATE = 0.8
SCORE_SPREAD_THRESHOLD = 0.3
SLOW_RESPONSE_TIME_MS = 20000.0
MIN_LOAD_BALANCED_SHARE = 0.1


def composite_score(info: ProviderLoadInfo) -> float:
    return (
        info.success_rate * 0.4
        + (1.0 - info.current_load) * 0.3
        + min(info.quality_score / 10.0, 1.0) * 0.3
    )


def _mean(values: Sequence[float], default: float) -> float:
    return sum(values) / len(values) if values else default


def system_reliability(infos: Sequence[ProviderLoadInfo]) -> float:
    return _mean([i.success_rate for i in infos], 1.0)


def choose_mode(infos: Sequence[ProviderLoadInfo]) -> RoutingMode:
    if system_reliability(infos) < LOW_SUCCESS_RATE:
        return RoutingMode.PERFORMANCE_BASED
    if any(i.current_load > OVERLOAD_THRESHOLD for i in infos):
        return RoutingMode.LOAD_BALANCED
    scores = [composite_score(i) for i in infos]
    if scores and max(scores) - min(scores) > SCORE_SPREAD_THRESHOLD:
        return RoutingMode.PERFORMANCE_BASED
    return RoutingMode.ROUND_ROBIN


def _normalise(raw: Dict[str, float]) -> Dict[str, float]:
    total = sum(raw.values())
    if total <= 0:
        if not raw:
            return {}
        share = 1.0 / len(raw)
        return {name: share for name in raw}
    return {name: value / total for name, value in raw.items()}


def base_weights(mode: RoutingMode, infos: Sequence[ProviderLoadInfo]) -> Dict[str, float]:
    if mode == RoutingMode.LOAD_BALANCED:
        raw = {
            i.provider_name: max(MIN_LOAD_BALANCED_SHARE, 1.0 - i.current_load) for i in infos
        }
    elif mode == RoutingMode.PERFORMANCE_BASED:
        raw = {i.provider_name: composite_score(i) for i in infos}
    else:
        raw = {i.provider_name: 1.0 for i in infos}
    return _normalise(raw)


def adjust_weights(
    weights: Dict[str, float], infos: Sequence[ProviderLoadInfo]
) -> Dict[str, float]:
    """
    Penalise unreliable or slow providers, then renormalise to sum to 1.
    """
    adjusted = dict(weights)
    for info in infos:
        name = info.provider_name
        if name not in adjusted:
            continue
        if info.success_rate < LOW_SUCCESS_RATE:
            adjusted[name] *= 0.5
        if info.average_response_time > SLOW_RESPONSE_TIME_MS:
            adjusted[name] *= 0.8
    return _normalise(adjusted)


def failover_order(infos: Sequence[ProviderLoadInfo]) -> List[str]:
    def _failover_score(info: ProviderLoadInfo) -> float:
        return (
            0.5 * composite_score(info)
            + 0.3 * info.success_rate
            + 0.2 * (1.0 - info.current_load)
        )

    ranked = sorted(infos, key=lambda i: (-_failover_score(i), i.provider_name))
    return [i.provider_name for i in ranked]


def max_retries_for(reliability: float) -> int:
    if reliability < 0.8:
        return 5
    if reliability < 0.9:
        return 3
    return 2


def retry_delay_for(infos: Sequence[ProviderLoadInfo]) -> int:
    if any(i.is_overloaded for i in infos):
        return 2000
    if _mean([i.current_load for i in infos], 0.0) > 0.7:
        return 1500
    return 1000


def circuit_breaker_threshold_for(reliability: float) -> float:
    if reliability < 0.8:
        return 0.3
    if reliability < 0.9:
        return 0.4
    return 0.5


def _reason(mode: RoutingMode, infos: Sequence[ProviderLoadInfo], reliability: float) -> str:
    reason = "Intelligent routing selected " + mode.value.lower().replace("_", " ")
    if reliability < LOW_SUCCESS_RATE:
        return reason + " due to provider failures"
    if any(i.is_overloaded for i in infos):
        return reason + " due to high system load"
    if reliability < 0.9:
        return reason + " due to reliability concerns"
    return reason + " for optimal performance"


def build_strategy(infos: Sequence[ProviderLoadInfo], *, now: float) -> RoutingStrategy:
    if not infos:
        return RoutingStrategy(
            mode=RoutingMode.ROUND_ROBIN,
            optimization_reason="No providers registered",
            last_optimized=now,
        )
    mode = choose_mode(infos)
    reliability = system_reliability(infos)
    weights = adjust_weights(base_weights(mode, infos), infos)
    return RoutingStrategy(
        mode=mode,
        weights=weights,
        load_balancing_enabled=mode == RoutingMode.LOAD_BALANCED,
        failover_order=failover_order(infos),
        max_retries=max_retries_for(reliability),
        retry_delay_ms=retry_delay_for(infos),
        circuit_breaker_threshold=circuit_breaker_threshold_for(reliability),
        optimization_reason=_reason(mode, infos, reliability),
        last_optimized=now,
    )


class RoutingStrategyController:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: MetricsStore,
        *,
        cache_ttl_seconds: int | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.cache_ttl_seconds = cache_ttl_seconds or settings.routing_strategy_cache_ttl_seconds

    async def _load_info(self, name: str) -> ProviderLoadInfo:
        adapter = self.registry.get(name)
        snapshot = await load_snapshot(self.store, name, adapter.capabilities())
        return ProviderLoadInfo(
            provider_name=name,
            current_load=snapshot.current_load,
            average_response_time=snapshot.average_response_time,
            success_rate=snapshot.success_rate,
            quality_score=snapshot.average_quality_score,
            is_overloaded=snapshot.current_load > OVERLOAD_THRESHOLD,
        )

    async def load_infos(self) -> List[ProviderLoadInfo]:
        return list(
            await asyncio.gather(*(self._load_info(name) for name in self.registry.names()))
        )

    async def _compute(self) -> RoutingStrategy:
        infos = await self.load_infos()
        strategy = build_strategy(infos, now=self.store.now())
        logger.info(
            "Routing strategy optimised: mode=%s retries=%d delay=%dms breaker=%.1f (%s)",
            strategy.mode.value,
            strategy.max_retries,
            strategy.retry_delay_ms,
            strategy.circuit_breaker_threshold,
            strategy.optimization_reason,
        )
        return strategy

    async def optimize_routing(self) -> RoutingStrategy:
        """Recompute the strategy from current state and refresh the cache."""
        strategy = await self._compute()
        await cache_put(self.store, ROUTING_STRATEGY_KEY, strategy, self.cache_ttl_seconds)
        return strategy

    async def current_strategy(self) -> RoutingStrategy:
        """Cached strategy, recomputed when missing or expired."""
        return await get_or_compute(
            self.store,
            ROUTING_STRATEGY_KEY,
            RoutingStrategy,
            self.cache_ttl_seconds,
            self._compute,
        )


__all__ = [
    "RoutingStrategyController",
    "adjust_weights",
    "base_weights",
    "build_strategy",
    "choose_mode",
    "circuit_breaker_threshold_for",
    "composite_score",
    "failover_order",
    "max_retries_for",
    "retry_delay_for",
    "system_reliability",
]
