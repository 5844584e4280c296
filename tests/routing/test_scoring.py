import pytest

from aigate.errors import NoProviderAvailable
from aigate.models import (
    ProviderMetricsSnapshot,
    ProviderScore,
    ProviderSelectionCriteria,
    ScoreBreakdown,
)
from aigate.provider.health import HealthMonitor
from aigate.provider.registry import ProviderRegistry
from aigate.routing import scoring
from aigate.routing.scoring import SelectionEngine
from tests.utils import fake_adapter, seed_metrics


def _engine(store, *adapters, **kwargs) -> SelectionEngine:
    registry = ProviderRegistry(adapters)
    return SelectionEngine(registry, store, HealthMonitor(registry, store), **kwargs)


async def _seed_three_providers(store):
    # p1: perfect history, high quality; p2: 20% errors, two trailing failures;
    # p3: five consecutive failures -> DOWN.
    await seed_metrics(store, "p1", successes=10, response_time_ms=1500.0, quality=9.0)
    await seed_metrics(store, "p2", successes=8, failures=2, response_time_ms=1500.0, quality=6.0)
    await seed_metrics(store, "p3", failures=5)


@pytest.mark.asyncio
async def test_recommend_prefers_reliable_high_quality_provider(store):
    await _seed_three_providers(store)
    engine = _engine(store, fake_adapter("p1"), fake_adapter("p2"), fake_adapter("p3"))
    criteria = ProviderSelectionCriteria(content_type="blog_post", language="en")

    rec = await engine.recommend(criteria)

    assert rec.primary_provider == "p1"
    assert [alt.provider for alt in rec.alternatives] == ["p2"]
    assert rec.primary_score == pytest.approx(1.0)
    assert rec.alternatives[0].score == pytest.approx(0.8504, abs=1e-3)
    assert rec.alternatives[0].reason == "Next best overall score"
    assert rec.confidence == pytest.approx(0.5 + 1.0 - rec.alternatives[0].score)
    assert rec.risk_assessment.startswith("LOW")
    assert rec.warnings == []


@pytest.mark.asyncio
async def test_quality_and_reliability_outweigh_cheaper_provider(store):
    await _seed_three_providers(store)
    engine = _engine(
        store,
        fake_adapter("p1", cost_per_token=0.001),
        fake_adapter("p2", cost_per_token=0.0005),
        fake_adapter("p3", cost_per_token=0.0002),
    )

    rec = await engine.recommend(ProviderSelectionCriteria())

    assert rec.primary_provider == "p1"
    assert [alt.provider for alt in rec.alternatives] == ["p2"]
    assert rec.alternatives[0].score < rec.primary_score
    assert rec.alternatives[0].score_breakdown.cost > rec.score_breakdown.cost
    assert rec.alternatives[0].reason == "Better cost efficiency than primary choice"


@pytest.mark.asyncio
async def test_recommend_raises_when_no_candidate_matches(store):
    engine = _engine(store, fake_adapter("p1", languages=("en",)))

    with pytest.raises(NoProviderAvailable) as excinfo:
        await engine.recommend(ProviderSelectionCriteria(language="ja"))
    assert excinfo.value.criteria == {
        "language": "ja",
        "prioritize_cost": False,
        "prioritize_quality": False,
        "prioritize_speed": False,
        "prioritize_reliability": False,
    }


@pytest.mark.asyncio
async def test_recommend_is_cached_per_criteria(store, clock):
    await _seed_three_providers(store)
    engine = _engine(
        store, fake_adapter("p1"), fake_adapter("p2"), fake_adapter("p3"), cache_ttl_seconds=3600
    )
    criteria = ProviderSelectionCriteria(content_type="blog_post")

    first = await engine.recommend(criteria)
    # p1 degrades, but the cached recommendation is served until it expires.
    await seed_metrics(store, "p1", failures=5)
    second = await engine.recommend(ProviderSelectionCriteria(content_type="blog_post"))
    assert second == first

    clock.advance(3600)
    third = await engine.recommend(criteria)
    assert third.primary_provider == "p2"


@pytest.mark.asyncio
async def test_ranking_is_deterministic_for_identical_inputs(store):
    engine = _engine(store, fake_adapter("b"), fake_adapter("a"), fake_adapter("c"))
    criteria = ProviderSelectionCriteria()

    first = await engine.score_providers(criteria)
    second = await engine.score_providers(criteria)

    assert [s.provider for s in first] == ["a", "b", "c"]
    assert first == second


@pytest.mark.asyncio
async def test_filters_cost_and_quality_constraints(store):
    await seed_metrics(store, "cheap", successes=2, quality=4.0)
    await seed_metrics(store, "good", successes=2, quality=8.0)
    engine = _engine(
        store,
        fake_adapter("cheap", cost_per_token=0.0002),
        fake_adapter("good", cost_per_token=0.002),
        fake_adapter("pricey", cost_per_token=0.05),
    )

    ranked = await engine.score_providers(
        ProviderSelectionCriteria(max_cost_per_token=0.01, min_quality_score=5.0)
    )
    assert [s.provider for s in ranked] == ["good"]


def test_prioritize_flags_scale_weights():
    base = scoring.axis_weights(ProviderSelectionCriteria())
    assert base == scoring.BASE_WEIGHTS

    tilted = scoring.axis_weights(
        ProviderSelectionCriteria(
            prioritize_cost=True,
            prioritize_quality=True,
            prioritize_speed=True,
            prioritize_reliability=True,
        )
    )
    assert tilted["cost"] == pytest.approx(0.525)
    assert tilted["quality"] == pytest.approx(0.375)
    assert tilted["response_time"] == pytest.approx(0.225)
    assert tilted["reliability"] == pytest.approx(0.10)
    assert tilted["availability"] == pytest.approx(0.26)
    assert tilted["load"] == pytest.approx(0.05)


@pytest.mark.asyncio
async def test_prioritize_cost_prefers_cheaper_provider(store):
    await seed_metrics(store, "cheap", successes=10, quality=6.0)
    await seed_metrics(store, "premium", successes=10, quality=9.5)
    engine = _engine(
        store,
        fake_adapter("cheap", cost_per_token=0.0005),
        fake_adapter("premium", cost_per_token=0.004),
    )

    by_quality = await engine.score_providers(ProviderSelectionCriteria(prioritize_quality=True))
    by_cost = await engine.score_providers(ProviderSelectionCriteria(prioritize_cost=True))

    def total(ranked, name):
        return next(s.total_score for s in ranked if s.provider == name)

    gap_quality = total(by_quality, "premium") - total(by_quality, "cheap")
    gap_cost = total(by_cost, "premium") - total(by_cost, "cheap")
    assert gap_cost < gap_quality
    assert by_cost[0].provider == "cheap"


@pytest.mark.parametrize(
    "cost, criteria, expected",
    [
        (0.0001, ProviderSelectionCriteria(), 1.0),
        (0.01, ProviderSelectionCriteria(), 0.0),
        (0.02, ProviderSelectionCriteria(), 0.0),
        (0.00505, ProviderSelectionCriteria(), 0.5),
        (0.00505, ProviderSelectionCriteria(expected_token_count=5000), 0.55),
    ],
)
def test_cost_score(cost, criteria, expected):
    assert scoring.cost_score(cost, criteria) == pytest.approx(expected)


def test_response_time_score_depends_on_urgency():
    metrics = ProviderMetricsSnapshot(provider_name="p", average_response_time=5500.0)
    high = scoring.response_time_score(metrics, ProviderSelectionCriteria(urgency_level="HIGH"))
    low = scoring.response_time_score(metrics, ProviderSelectionCriteria(urgency_level="LOW"))
    assert high == pytest.approx(0.5)
    assert low > high

    idle = ProviderMetricsSnapshot(provider_name="p")
    assert scoring.response_time_score(idle, ProviderSelectionCriteria()) == 1.0


def test_load_and_reliability_scores():
    assert scoring.load_score(ProviderMetricsSnapshot(provider_name="p", current_load=0.5)) == 0.5
    assert scoring.load_score(
        ProviderMetricsSnapshot(provider_name="p", current_load=0.7)
    ) == pytest.approx(0.24)
    assert scoring.load_score(
        ProviderMetricsSnapshot(provider_name="p", current_load=0.9)
    ) == pytest.approx(0.05)

    young = ProviderMetricsSnapshot(provider_name="p", total_requests=10, success_rate=1.0)
    seasoned = ProviderMetricsSnapshot(provider_name="p", total_requests=200, success_rate=0.97)
    assert scoring.reliability_score(young) == pytest.approx(0.8)
    assert scoring.reliability_score(seasoned) == 1.0


def test_risk_and_warnings_for_struggling_provider():
    metrics = ProviderMetricsSnapshot(
        provider_name="p", success_rate=0.8, current_load=0.95, average_response_time=16000.0
    )
    assert scoring.assess_risk(metrics) == "HIGH - Provider has low success rate"
    assert scoring.collect_warnings(metrics) == [
        "Provider is near capacity - consider load balancing",
        "Provider success rate is below 90%",
        "Provider response time is above 15 seconds",
    ]


def test_build_recommendation_keeps_at_most_two_alternatives():
    def score(name, total, cost):
        return ProviderScore(
            provider=name,
            total_score=total,
            score_breakdown=ScoreBreakdown(
                cost=cost, quality=0.5, availability=0.5, response_time=0.5, load=0.5,
                reliability=0.5,
            ),
            scoring_reason="",
        )

    ranked = [score("a", 0.9, 0.5), score("b", 0.8, 0.9), score("c", 0.7, 0.1), score("d", 0.6, 0.1)]
    metrics = {s.provider: ProviderMetricsSnapshot(provider_name=s.provider) for s in ranked}

    rec = scoring.build_recommendation(ranked, metrics, generated_at=0.0)

    assert rec.primary_provider == "a"
    assert [alt.provider for alt in rec.alternatives] == ["b", "c"]
    assert rec.alternatives[0].reason == "Better cost efficiency than primary choice"
    assert rec.alternatives[1].reason == "Next best overall score"
    assert rec.confidence == pytest.approx(0.6)
