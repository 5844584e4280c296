"""
Primary provider selection driven by the current routing strategy.

ROUND_ROBIN rotates through the eligible providers with a Redis counter
shared by every API process, LOAD_BALANCED draws a weighted random pick
from the strategy weights and PERFORMANCE_BASED takes the provider with
the highest weight. Only providers that passed the selection filter are
ever considered.
"""

from __future__ import annotations

import random
from typing import Callable, Dict, Sequence

from aigate.logging_config import logger
from aigate.models import RoutingMode, RoutingStrategy
from aigate.storage.metrics_store import MetricsStore
from aigate.storage.provider_metrics import ROUND_ROBIN_KEY


def weighted_choice(
    names: Sequence[str],
    weights: Dict[str, float],
    rand: Callable[[], float] = random.random,
) -> str:
    """
    Pick one name using ``weights`` as relative shares. Names without a
    weight get an equal share; when every share is zero the first name wins.
    """
    if not names:
        raise RuntimeError("Cannot choose from empty candidates")

    default = 1.0 / len(names)
    shares = [max(weights.get(name, default), 0.0) for name in names]
    total = sum(shares)
    if total <= 0.0:
        return names[0]

    r = rand() * total
    acc = 0.0
    for name, share in zip(names, shares):
        acc += share
        if r <= acc:
            return name
    return names[-1]


def best_weighted(names: Sequence[str], weights: Dict[str, float]) -> str:
    if not names:
        raise RuntimeError("Cannot choose from empty candidates")
    # max() keeps the first of equal weights, so callers control ties.
    return max(names, key=lambda name: weights.get(name, 0.0))


class LoadBalancer:
    def __init__(
        self,
        store: MetricsStore,
        *,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.store = store
        self._rand = rand

    async def _round_robin(self, names: Sequence[str]) -> str:
        ticket = int(await self.store.increment(ROUND_ROBIN_KEY))
        return names[(ticket - 1) % len(names)]

    async def select(self, strategy: RoutingStrategy, eligible: Sequence[str]) -> str:
        """
        Choose the primary provider among ``eligible`` for ``strategy.mode``.
        """
        if not eligible:
            raise RuntimeError("No eligible providers to balance across")
        if len(eligible) == 1:
            return eligible[0]

        if strategy.mode == RoutingMode.LOAD_BALANCED:
            chosen = weighted_choice(eligible, strategy.weights, self._rand)
        elif strategy.mode == RoutingMode.PERFORMANCE_BASED:
            chosen = best_weighted(eligible, strategy.weights)
        else:
            chosen = await self._round_robin(eligible)

        logger.debug(
            "Load balancer picked %s (mode=%s, eligible=%s)",
            chosen,
            strategy.mode.value,
            list(eligible),
        )
        return chosen


__all__ = ["LoadBalancer", "best_weighted", "weighted_choice"]
