"""
Multi-factor provider scoring and selection.

Six axes are normalised into [0, 1] (cost, quality, availability,
response time, load, reliability) and combined with base weights that
callers can tilt through the ``prioritize_*`` flags. The scoring
functions are pure; ``SelectionEngine`` only gathers the inputs from
Redis and caches the resulting recommendation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Sequence

from aigate.cache import get_or_compute
from aigate.errors import NoProviderAvailable
from aigate.logging_config import logger
from aigate.models import (
    HealthStatus,
    ProviderAlternative,
    ProviderCapabilities,
    ProviderMetricsSnapshot,
    ProviderRecommendation,
    ProviderScore,
    ProviderSelectionCriteria,
    ScoreBreakdown,
)
from aigate.provider.health import HealthMonitor
from aigate.provider.registry import ProviderRegistry
from aigate.settings import settings
from aigate.storage.metrics_store import MetricsStore
from aigate.storage.provider_metrics import RECOMMENDATION_KEY_TEMPLATE, load_snapshot

BASE_WEIGHTS: Dict[str, float] = {
    "cost": 0.35,
    "quality": 0.25,
    "availability": 0.20,
    "response_time": 0.15,
    "load": 0.05,
    "reliability": 0.05,
}

DEFAULT_MAX_COST_PER_TOKEN = 0.01
MIN_COST_PER_TOKEN = 0.0001
MIN_RESPONSE_TIME_MS = 1000.0
RESPONSE_TIME_CEILING_MS = {"HIGH": 10000.0, "LOW": 60000.0}
DEFAULT_RESPONSE_TIME_CEILING_MS = 30000.0
RELIABILITY_MIN_SAMPLES = 100

_AXIS_LABELS = {
    "cost": "cost efficiency",
    "quality": "quality",
    "availability": "availability",
    "response_time": "response time",
    "load": "load balance",
    "reliability": "reliability",
}


@dataclass
class Candidate:
    name: str
    capabilities: ProviderCapabilities
    cost_per_token: float
    health: HealthStatus
    metrics: ProviderMetricsSnapshot


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def filter_candidates(
    candidates: Sequence[Candidate], criteria: ProviderSelectionCriteria
) -> List[Candidate]:
    result: List[Candidate] = []
    for cand in candidates:
        if not cand.health.is_available:
            continue
        caps = cand.capabilities
        if criteria.content_type and criteria.content_type not in caps.supported_content_types:
            continue
        if criteria.language and criteria.language not in caps.supported_languages:
            continue
        if (
            criteria.min_quality_score is not None
            and cand.metrics.average_quality_score < criteria.min_quality_score
        ):
            continue
        if (
            criteria.max_cost_per_token is not None
            and cand.cost_per_token > criteria.max_cost_per_token
        ):
            continue
        result.append(cand)
    return result


def cost_score(cost_per_token: float, criteria: ProviderSelectionCriteria) -> float:
    max_cost = criteria.max_cost_per_token or DEFAULT_MAX_COST_PER_TOKEN
    if max_cost <= MIN_COST_PER_TOKEN:
        return 1.0 if cost_per_token <= max_cost else 0.0
    score = max(0.0, (max_cost - cost_per_token) / (max_cost - MIN_COST_PER_TOKEN))
    # Volume bonus for large jobs.
    if criteria.expected_token_count and criteria.expected_token_count > 1000:
        score *= 1.1
    return _clamp(score)


def quality_score(
    metrics: ProviderMetricsSnapshot,
    capabilities: ProviderCapabilities,
    criteria: ProviderSelectionCriteria,
) -> float:
    score = min(metrics.average_quality_score / 10.0, 1.0)
    if criteria.content_type and criteria.content_type in capabilities.supported_content_types:
        score *= 1.05
    if criteria.language and criteria.language in capabilities.supported_languages:
        score *= 1.03
    return _clamp(score)


def availability_score(health: HealthStatus, metrics: ProviderMetricsSnapshot) -> float:
    score = (1.0 - health.error_rate) * 0.7 + metrics.success_rate * 0.3
    score *= 0.9 ** health.consecutive_failures
    return _clamp(score)


def response_time_score(
    metrics: ProviderMetricsSnapshot, criteria: ProviderSelectionCriteria
) -> float:
    rt = metrics.average_response_time
    if rt <= 0:
        return 1.0
    ceiling = RESPONSE_TIME_CEILING_MS.get(
        criteria.urgency_level or "", DEFAULT_RESPONSE_TIME_CEILING_MS
    )
    score = max(0.0, (ceiling - rt) / (ceiling - MIN_RESPONSE_TIME_MS))
    if rt < 2000:
        score *= 1.1
    return _clamp(score)


def load_score(metrics: ProviderMetricsSnapshot) -> float:
    load = metrics.current_load
    score = 1.0 - load
    if load > 0.8:
        score *= 0.5
    elif load > 0.6:
        score *= 0.8
    return _clamp(score)


def reliability_score(metrics: ProviderMetricsSnapshot) -> float:
    sr = metrics.success_rate
    if metrics.total_requests < RELIABILITY_MIN_SAMPLES:
        # Not enough history to trust the rate.
        return _clamp(sr * 0.8)
    if sr > 0.95:
        return _clamp(sr * 1.05)
    return _clamp(sr)


def axis_weights(criteria: ProviderSelectionCriteria) -> Dict[str, float]:
    weights = dict(BASE_WEIGHTS)
    if criteria.prioritize_cost:
        weights["cost"] *= 1.5
    if criteria.prioritize_quality:
        weights["quality"] *= 1.5
    if criteria.prioritize_speed:
        weights["response_time"] *= 1.5
    if criteria.prioritize_reliability:
        weights["reliability"] *= 2.0
        weights["availability"] *= 1.3
    return weights


def _scoring_reason(breakdown: ScoreBreakdown) -> str:
    top = sorted(breakdown.axes().items(), key=lambda item: item[1], reverse=True)[:2]
    parts = []
    for axis, value in top:
        if value > 0.8:
            parts.append(f"excellent {_AXIS_LABELS[axis]}")
        elif value > 0.6:
            parts.append(f"good {_AXIS_LABELS[axis]}")
    if not parts:
        return "Selected for balanced performance"
    return "Selected for " + " and ".join(parts)


def score_candidate(candidate: Candidate, criteria: ProviderSelectionCriteria) -> ProviderScore:
    breakdown = ScoreBreakdown(
        cost=cost_score(candidate.cost_per_token, criteria),
        quality=quality_score(candidate.metrics, candidate.capabilities, criteria),
        availability=availability_score(candidate.health, candidate.metrics),
        response_time=response_time_score(candidate.metrics, criteria),
        load=load_score(candidate.metrics),
        reliability=reliability_score(candidate.metrics),
    )
    weights = axis_weights(criteria)
    axes = breakdown.axes()
    total = sum(axes[axis] * weight for axis, weight in weights.items()) / sum(weights.values())

    quality = candidate.metrics.average_quality_score
    rt = candidate.metrics.average_response_time
    if quality > 8.0:
        total *= 1.02
    elif quality < 5.0:
        total *= 0.95
    if 0 < rt < 2000:
        total *= 1.01
    elif rt > 10000:
        total *= 0.98

    return ProviderScore(
        provider=candidate.name,
        total_score=_clamp(total),
        score_breakdown=breakdown,
        scoring_reason=_scoring_reason(breakdown),
    )


def rank_candidates(
    candidates: Sequence[Candidate], criteria: ProviderSelectionCriteria
) -> List[ProviderScore]:
    """
    Score candidates, highest first. Ties break on provider name so the
    ranking is deterministic for identical inputs.
    """
    scores = [score_candidate(c, criteria) for c in candidates]
    scores.sort(key=lambda s: (-s.total_score, s.provider))
    return scores


def _alternative_reason(alt: ScoreBreakdown, primary: ScoreBreakdown) -> str:
    alt_axes = alt.axes()
    primary_axes = primary.axes()
    axis, margin = max(
        ((a, alt_axes[a] - primary_axes[a]) for a in alt_axes), key=lambda item: item[1]
    )
    if margin > 0:
        return f"Better {_AXIS_LABELS[axis]} than primary choice"
    return "Next best overall score"


def _optimization_reason(best: ProviderScore) -> str:
    b = best.score_breakdown
    reasons = []
    if b.cost > 0.8:
        reasons.append("excellent cost efficiency")
    if b.quality > 0.8:
        reasons.append("high quality output")
    if b.availability > 0.9:
        reasons.append("high reliability")
    if b.response_time > 0.8:
        reasons.append("fast response times")
    if not reasons:
        reasons.append("best overall balance of factors")
    return f"Selected {best.provider} because: " + ", ".join(reasons)


def assess_risk(metrics: ProviderMetricsSnapshot) -> str:
    if metrics.success_rate < 0.85:
        return "HIGH - Provider has low success rate"
    if metrics.current_load > 0.8:
        return "MEDIUM - Provider is under high load"
    if metrics.average_response_time > 10000:
        return "MEDIUM - Provider has slow response times"
    return "LOW - Provider shows good performance metrics"


def collect_warnings(metrics: ProviderMetricsSnapshot) -> List[str]:
    warnings = []
    if metrics.current_load > 0.9:
        warnings.append("Provider is near capacity - consider load balancing")
    if metrics.success_rate < 0.9:
        warnings.append("Provider success rate is below 90%")
    if metrics.average_response_time > 15000:
        warnings.append("Provider response time is above 15 seconds")
    return warnings


def build_recommendation(
    ranked: Sequence[ProviderScore],
    metrics_by_provider: Dict[str, ProviderMetricsSnapshot],
    *,
    generated_at: float,
) -> ProviderRecommendation:
    if not ranked:
        raise NoProviderAvailable()
    best = ranked[0]
    alternatives = [
        ProviderAlternative(
            provider=alt.provider,
            score=alt.total_score,
            reason=_alternative_reason(alt.score_breakdown, best.score_breakdown),
            score_breakdown=alt.score_breakdown,
        )
        for alt in ranked[1:3]
    ]
    if len(ranked) == 1:
        confidence = 1.0
    else:
        confidence = _clamp(0.5 + (best.total_score - ranked[1].total_score))

    best_metrics = metrics_by_provider[best.provider]
    return ProviderRecommendation(
        primary_provider=best.provider,
        primary_score=best.total_score,
        score_breakdown=best.score_breakdown,
        alternatives=alternatives,
        optimization_reason=_optimization_reason(best),
        confidence=confidence,
        risk_assessment=assess_risk(best_metrics),
        warnings=collect_warnings(best_metrics),
        generated_at=generated_at,
    )


class SelectionEngine:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: MetricsStore,
        health_monitor: HealthMonitor,
        *,
        cache_ttl_seconds: int | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.health_monitor = health_monitor
        self.cache_ttl_seconds = cache_ttl_seconds or settings.recommendation_cache_ttl_seconds

    async def _candidate(self, name: str) -> Candidate:
        adapter = self.registry.get(name)
        health = await self.health_monitor.last_known_status(name)
        metrics = await load_snapshot(self.store, name, adapter.capabilities())
        return Candidate(
            name=name,
            capabilities=adapter.capabilities(),
            cost_per_token=adapter.cost_per_token,
            health=health,
            metrics=metrics,
        )

    async def gather_candidates(self) -> List[Candidate]:
        return list(
            await asyncio.gather(*(self._candidate(name) for name in self.registry.names()))
        )

    async def score_providers(self, criteria: ProviderSelectionCriteria) -> List[ProviderScore]:
        """Rank every eligible provider without touching the cache."""
        candidates = filter_candidates(await self.gather_candidates(), criteria)
        return rank_candidates(candidates, criteria)

    async def _compute(self, criteria: ProviderSelectionCriteria) -> ProviderRecommendation:
        all_candidates = await self.gather_candidates()
        candidates = filter_candidates(all_candidates, criteria)
        if not candidates:
            logger.warning(
                "No providers available for criteria %s (%d registered)",
                criteria.model_dump(exclude_none=True),
                len(all_candidates),
            )
            raise NoProviderAvailable(criteria=criteria.model_dump(exclude_none=True))

        ranked = rank_candidates(candidates, criteria)
        recommendation = build_recommendation(
            ranked,
            {c.name: c.metrics for c in candidates},
            generated_at=self.store.now(),
        )
        logger.info(
            "Recommended provider %s (score=%.3f, confidence=%.2f, candidates=%d)",
            recommendation.primary_provider,
            recommendation.primary_score,
            recommendation.confidence,
            len(candidates),
        )
        return recommendation

    async def recommend(self, criteria: ProviderSelectionCriteria) -> ProviderRecommendation:
        """
        Best provider for ``criteria`` plus up to two alternatives.

        Cached per criteria signature; the cache is time-based only and is
        not invalidated when a provider's health changes.
        """
        key = RECOMMENDATION_KEY_TEMPLATE.format(signature=criteria.signature())
        return await get_or_compute(
            self.store,
            key,
            ProviderRecommendation,
            self.cache_ttl_seconds,
            lambda: self._compute(criteria),
        )


__all__ = [
    "BASE_WEIGHTS",
    "Candidate",
    "SelectionEngine",
    "assess_risk",
    "availability_score",
    "axis_weights",
    "build_recommendation",
    "collect_warnings",
    "cost_score",
    "filter_candidates",
    "load_score",
    "quality_score",
    "rank_candidates",
    "reliability_score",
    "response_time_score",
    "score_candidate",
]
