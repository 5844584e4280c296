"""
Facade wiring the routing core together.

One ``ProviderRoutingService`` owns the health monitor, selection engine,
strategy controller, cost/alert monitor and failover manager built over a
shared registry and metrics store, and exposes the operations used by the
HTTP layer and the background tasks.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from redis.asyncio import Redis

from aigate.models import (
    Alert,
    CostSummary,
    HealthLevel,
    HealthStatus,
    HealthSummary,
    ProviderCapabilities,
    ProviderMetricsSnapshot,
    ProviderRecommendation,
    ProviderSelectionCriteria,
    RoutingStrategy,
)
from aigate.monitoring.alerting import CostAlertMonitor
from aigate.monitoring.sink import SystemAlertSink, build_alert_sink
from aigate.provider.base import GenerationRequest, GenerationResult
from aigate.provider.health import HealthMonitor
from aigate.provider.registry import ProviderRegistry
from aigate.routing.failover import CircuitBreaker, ProviderManager
from aigate.routing.scoring import SelectionEngine
from aigate.routing.strategy import RoutingStrategyController
from aigate.storage.metrics_store import Clock, MetricsStore
from aigate.storage.provider_metrics import load_snapshot


class ProviderStatusView(BaseModel):
    name: str
    is_available: bool
    health_level: HealthLevel
    message: str = ""
    capabilities: ProviderCapabilities
    cost_per_token: float
    average_response_time: float = 0.0
    average_quality_score: float = 0.0
    success_rate: float = Field(1.0, ge=0.0, le=1.0)
    current_load: float = Field(0.0, ge=0.0, le=1.0)
    total_requests: int = 0
    circuit_breaker: str


class ProviderRoutingService:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: MetricsStore,
        *,
        sink: Optional[SystemAlertSink] = None,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.health_monitor = HealthMonitor(registry, store)
        self.selection = SelectionEngine(registry, store, self.health_monitor)
        self.strategy_controller = RoutingStrategyController(registry, store)
        self.cost_monitor = CostAlertMonitor(
            registry, store, self.health_monitor, sink or build_alert_sink()
        )
        self.manager = ProviderManager(
            registry,
            store,
            self.selection,
            self.strategy_controller,
            self.cost_monitor,
            breaker=breaker,
        )

    @classmethod
    def from_redis(
        cls,
        redis: Redis,
        registry: ProviderRegistry,
        *,
        clock: Optional[Clock] = None,
        **kwargs,
    ) -> "ProviderRoutingService":
        store = MetricsStore(redis, clock=clock or time.time)
        return cls(registry, store, **kwargs)

    # Selection / routing

    async def recommend(self, criteria: ProviderSelectionCriteria) -> ProviderRecommendation:
        return await self.selection.recommend(criteria)

    async def optimize_routing(self) -> RoutingStrategy:
        return await self.strategy_controller.optimize_routing()

    async def current_routing_strategy(self) -> RoutingStrategy:
        return await self.strategy_controller.current_strategy()

    async def generate(
        self,
        request: GenerationRequest,
        criteria: Optional[ProviderSelectionCriteria] = None,
    ) -> GenerationResult:
        return await self.manager.generate(request, criteria)

    # Health

    async def health_summary(self) -> HealthSummary:
        return await self.health_monitor.health_summary()

    async def force_health_check(self, name: Optional[str] = None) -> Dict[str, HealthStatus]:
        if name is not None:
            return {name: await self.health_monitor.check_one(name)}
        return await self.health_monitor.check_all()

    async def check_all(self) -> Dict[str, HealthStatus]:
        return await self.health_monitor.check_all()

    # Costs / alerts

    async def record_cost(self, name: str, amount: float) -> None:
        await self.cost_monitor.record_cost(name, amount)

    async def cost_summary(self) -> Dict[str, CostSummary]:
        return await self.cost_monitor.cost_summaries()

    async def alert_history(self, name: str, limit: int = 20) -> List[Alert]:
        return await self.cost_monitor.alert_history(name, limit)

    async def monitor_all(self) -> List[Alert]:
        return await self.cost_monitor.monitor_all()

    async def daily_summary(self) -> Dict[str, CostSummary]:
        return await self.cost_monitor.daily_summary()

    # Read models

    async def provider_metrics(self, name: str) -> ProviderMetricsSnapshot:
        adapter = self.registry.get(name)
        return await load_snapshot(self.store, name, adapter.capabilities())

    async def _status_view(self, name: str) -> ProviderStatusView:
        adapter = self.registry.get(name)
        health = await self.health_monitor.last_known_status(name)
        metrics = await load_snapshot(self.store, name, adapter.capabilities())
        return ProviderStatusView(
            name=name,
            is_available=health.is_available,
            health_level=health.health_level,
            message=health.message,
            capabilities=adapter.capabilities(),
            cost_per_token=adapter.cost_per_token,
            average_response_time=metrics.average_response_time,
            average_quality_score=metrics.average_quality_score,
            success_rate=metrics.success_rate,
            current_load=metrics.current_load,
            total_requests=metrics.total_requests,
            circuit_breaker=self.manager.breaker.status(name),
        )

    async def provider_statuses(self) -> List[ProviderStatusView]:
        return list(
            await asyncio.gather(*(self._status_view(name) for name in self.registry.names()))
        )


__all__ = ["ProviderRoutingService", "ProviderStatusView"]
