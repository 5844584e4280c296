import pytest
from fastapi.testclient import TestClient

from aigate.deps import get_redis
from aigate.errors import ProbeFailure, ProviderInvocationError
from aigate.provider.registry import ProviderRegistry
from aigate.routes import create_app
from tests.utils import InMemoryRedis, fake_adapter


@pytest.fixture()
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


def _client(fake_redis, *adapters) -> TestClient:
    app = create_app()
    app.state.registry = ProviderRegistry(adapters)
    app.dependency_overrides[get_redis] = lambda: fake_redis
    return TestClient(app=app, base_url="http://test")


def test_app_health_endpoint(fake_redis):
    client = _client(fake_redis, fake_adapter("a"))
    assert client.get("/health").json() == {"status": "ok"}


def test_recommend_returns_primary_provider(fake_redis):
    client = _client(
        fake_redis,
        fake_adapter("a", cost_per_token=0.0005),
        fake_adapter("b", cost_per_token=0.002),
    )

    resp = client.post("/providers/recommend", json={"content_type": "blog_post"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["primary_provider"] == "a"
    assert [alt["provider"] for alt in body["alternatives"]] == ["b"]


def test_recommend_without_candidates_is_503(fake_redis):
    client = _client(fake_redis, fake_adapter("a", languages=("en",)))

    resp = client.post("/providers/recommend", json={"language": "fr"})

    assert resp.status_code == 503
    detail = resp.json()["detail"]
    assert detail["error"] == "service_unavailable"
    assert detail["details"]["language"] == "fr"


def test_health_check_endpoints(fake_redis):
    client = _client(
        fake_redis,
        fake_adapter("a"),
        fake_adapter("b", probe_error=ProbeFailure("b", "HTTP 502")),
    )

    resp = client.post("/providers/health/check")
    assert resp.status_code == 200
    body = resp.json()
    assert body["checked"] == 2
    assert body["statuses"]["b"]["health_level"] == "DOWN"

    summary = client.get("/providers/health").json()
    assert summary == {
        "total": 2,
        "healthy": 1,
        "degraded": 0,
        "unhealthy": 0,
        "down": 1,
        "overall_healthy": False,
    }

    missing = client.post("/providers/health/check", params={"provider": "zzz"})
    assert missing.status_code == 404
    assert missing.json()["detail"]["error"] == "not_found"


def test_routing_endpoints(fake_redis):
    client = _client(fake_redis, fake_adapter("a"), fake_adapter("b"))

    optimised = client.post("/providers/routing/optimize").json()
    current = client.get("/providers/routing").json()

    assert optimised["mode"] == "ROUND_ROBIN"
    assert current == optimised
    assert optimised["weights"] == {"a": 0.5, "b": 0.5}


def test_costs_and_alert_history(fake_redis):
    client = _client(fake_redis, fake_adapter("a", daily_budget=1.0))

    assert client.post("/providers/a/costs", json={"amount": 1.5}).status_code == 204
    assert client.post("/providers/zzz/costs", json={"amount": 1.0}).status_code == 404
    assert client.post("/providers/a/costs", json={"amount": -1}).status_code == 422

    costs = client.get("/providers/costs").json()
    assert costs["a"]["daily_cost"] == pytest.approx(1.5)
    assert costs["a"]["is_daily_budget_exceeded"] is True

    assert client.get("/providers/a/alerts").json() == []
    assert client.get("/providers/zzz/alerts").status_code == 404
    assert client.get("/providers/a/alerts", params={"limit": 0}).status_code == 422


def test_status_endpoint_lists_providers(fake_redis):
    client = _client(fake_redis, fake_adapter("a"), fake_adapter("b"))

    body = client.get("/providers/status").json()

    assert body["total"] == 2
    assert {p["name"] for p in body["providers"]} == {"a", "b"}
    assert all(p["circuit_breaker"] == "CLOSED" for p in body["providers"])


def test_generate_endpoint_reports_upstream_failure(fake_redis):
    error = ProviderInvocationError("a", "HTTP 500: boom", error_type="SERVER_ERROR")
    client = _client(fake_redis, fake_adapter("a", fail_with=error))

    resp = client.post("/providers/generate", json={"request": {"prompt": "hello"}})

    assert resp.status_code == 502
    detail = resp.json()["detail"]
    assert detail["error"] == "all_providers_failed"
    assert detail["details"]["attempted"] == ["a"]


def test_generate_endpoint_success(fake_redis):
    client = _client(fake_redis, fake_adapter("a", content="Hello world", tokens=10))

    resp = client.post(
        "/providers/generate",
        json={"request": {"prompt": "hello"}, "criteria": {"prioritize_speed": True}},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["content"] == "Hello world"
    assert body["provider"] == "a"
    assert body["tokens_used"] == 10
