"""
Failover execution across providers.

Only providers that pass the selection filter are attempted. The primary
is picked by the load balancer for the current routing mode and the
remaining eligible providers follow in score order. Providers are skipped
while their circuit breaker is open or while their observed error rate is
above the strategy's breaker threshold.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from redis.exceptions import RedisError

from aigate.errors import AllProvidersFailed, NoProviderAvailable, ProviderInvocationError
from aigate.logging_config import logger
from aigate.models import ProviderSelectionCriteria, RoutingStrategy
from aigate.monitoring.alerting import CostAlertMonitor
from aigate.provider.base import GenerationRequest, GenerationResult
from aigate.provider.registry import ProviderRegistry
from aigate.routing.balancer import LoadBalancer
from aigate.routing.scoring import SelectionEngine
from aigate.routing.strategy import RoutingStrategyController
from aigate.settings import settings
from aigate.storage.metrics_store import Clock, MetricsStore
from aigate.storage.provider_metrics import load_snapshot

CIRCUIT_CLOSED = "CLOSED"
CIRCUIT_OPEN = "OPEN"


@dataclass
class _CircuitState:
    failures: int = 0
    opened_at: Optional[float] = None


class CircuitBreaker:
    """
    Per-process breaker keyed by provider name. Opens after
    ``failure_threshold`` consecutive failures and closes again once
    ``reset_seconds`` have passed.
    """

    def __init__(
        self,
        clock: Clock,
        *,
        failure_threshold: int | None = None,
        reset_seconds: float | None = None,
    ) -> None:
        self._clock = clock
        self.failure_threshold = failure_threshold or settings.circuit_breaker_failure_threshold
        self.reset_seconds = reset_seconds or settings.circuit_breaker_reset_seconds
        self._states: Dict[str, _CircuitState] = {}

    def _state(self, name: str) -> _CircuitState:
        return self._states.setdefault(name, _CircuitState())

    def is_open(self, name: str) -> bool:
        state = self._state(name)
        if state.opened_at is None:
            return False
        if self._clock() - state.opened_at >= self.reset_seconds:
            logger.info("Circuit breaker for provider %s reset after %.0fs", name, self.reset_seconds)
            state.failures = 0
            state.opened_at = None
            return False
        return True

    def record_success(self, name: str) -> None:
        state = self._state(name)
        state.failures = 0
        state.opened_at = None

    def record_failure(self, name: str) -> None:
        state = self._state(name)
        state.failures += 1
        if state.failures >= self.failure_threshold and state.opened_at is None:
            state.opened_at = self._clock()
            logger.warning(
                "Circuit breaker opened for provider %s after %d failures",
                name,
                state.failures,
            )

    def status(self, name: str) -> str:
        return CIRCUIT_OPEN if self.is_open(name) else CIRCUIT_CLOSED


def attempt_order(primary: str, ranked: Sequence[str]) -> List[str]:
    """The chosen primary first, then every other ranked provider in order."""
    return [primary] + [name for name in ranked if name != primary]


def backoff_ms(retry_delay_ms: int, retry_index: int, cap_ms: int) -> int:
    """Delay before the ``retry_index``-th retry (0-based), doubling each time."""
    return min(cap_ms, retry_delay_ms * (2 ** retry_index))


class ProviderManager:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: MetricsStore,
        selection: SelectionEngine,
        strategy_controller: RoutingStrategyController,
        cost_monitor: CostAlertMonitor,
        *,
        breaker: Optional[CircuitBreaker] = None,
        balancer: Optional[LoadBalancer] = None,
        min_requests: int | None = None,
        backoff_cap_ms: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.store = store
        self.selection = selection
        self.strategy_controller = strategy_controller
        self.cost_monitor = cost_monitor
        self.breaker = breaker or CircuitBreaker(store.now)
        self.balancer = balancer or LoadBalancer(store)
        self.min_requests = min_requests or settings.circuit_breaker_min_requests
        self.backoff_cap_ms = backoff_cap_ms or settings.failover_backoff_cap_ms
        self._sleep = sleep

    async def _select_primary(self, strategy: RoutingStrategy, ranked: List[str]) -> str:
        eligible = set(ranked)
        # Registry order keeps the round-robin rotation stable as scores move.
        in_registry_order = [name for name in self.registry.names() if name in eligible]
        try:
            return await self.balancer.select(strategy, in_registry_order)
        except RedisError as exc:
            logger.warning(
                "Load balancer failed, falling back to score-based selection: %s", exc
            )
            return ranked[0]

    async def _error_rate_tripped(self, name: str, threshold: float) -> bool:
        adapter = self.registry.get(name)
        snapshot = await load_snapshot(self.store, name, adapter.capabilities())
        return snapshot.total_requests >= self.min_requests and snapshot.error_rate > threshold

    async def generate(
        self,
        request: GenerationRequest,
        criteria: Optional[ProviderSelectionCriteria] = None,
    ) -> GenerationResult:
        """
        Generate content with automatic failover.

        Raises ``NoProviderAvailable`` when selection finds no candidate and
        ``AllProvidersFailed`` when every attempted provider fails.
        """
        criteria = criteria or ProviderSelectionCriteria()
        ranked = [score.provider for score in await self.selection.score_providers(criteria)]
        if not ranked:
            raise NoProviderAvailable(criteria=criteria.model_dump(exclude_none=True))
        strategy = await self.strategy_controller.current_strategy()
        primary = await self._select_primary(strategy, ranked)

        max_attempts = strategy.max_retries + 1
        attempted: List[str] = []
        last_error: Optional[BaseException] = None

        for name in attempt_order(primary, ranked):
            if len(attempted) >= max_attempts:
                break
            if self.breaker.is_open(name):
                logger.warning("Skipping provider %s: circuit breaker open", name)
                continue
            if await self._error_rate_tripped(name, strategy.circuit_breaker_threshold):
                logger.warning(
                    "Skipping provider %s: error rate above %.0f%%",
                    name,
                    strategy.circuit_breaker_threshold * 100,
                )
                continue

            if attempted:
                delay = backoff_ms(strategy.retry_delay_ms, len(attempted) - 1, self.backoff_cap_ms)
                await self._sleep(delay / 1000.0)

            attempted.append(name)
            adapter = self.registry.get(name)
            is_fallback = name != primary
            try:
                result = await adapter.invoke(request, self.store, fallback=is_fallback)
            except ProviderInvocationError as exc:
                self.breaker.record_failure(name)
                last_error = exc
                logger.warning(
                    "Provider %s failed (%s, retryable=%s): %s",
                    name,
                    exc.error_type,
                    exc.retryable,
                    exc,
                )
                continue

            self.breaker.record_success(name)
            await self.cost_monitor.record_cost(name, result.cost)
            if is_fallback:
                logger.info(
                    "Generation served by fallback provider %s after %d attempt(s)",
                    name,
                    len(attempted),
                )
            return result

        logger.error("All providers failed; attempted=%s", attempted)
        raise AllProvidersFailed(attempted, last_error)


__all__ = [
    "CIRCUIT_CLOSED",
    "CIRCUIT_OPEN",
    "CircuitBreaker",
    "ProviderManager",
    "attempt_order",
    "backoff_ms",
]
