import pytest

from aigate.storage.metrics_store import parse_float


@pytest.mark.asyncio
async def test_increment_uses_integer_and_float_counters(store, redis):
    assert await store.increment("counter", 1, ttl_seconds=60) == 1.0
    assert await store.increment("counter", 2, ttl_seconds=60) == 3.0
    assert await store.increment("cost", 0.25) == pytest.approx(0.25)
    assert await store.increment("cost", 0.5) == pytest.approx(0.75)

    assert redis.ttl_of("counter") == pytest.approx(60)
    assert redis.ttl_of("cost") is None


@pytest.mark.asyncio
async def test_keys_expire_against_injected_clock(store, clock):
    await store.set("k", "v", ttl_seconds=30)
    clock.advance(29)
    assert await store.get("k") == "v"
    clock.advance(1)
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_set_if_absent_only_first_caller_wins(store, clock):
    assert await store.set_if_absent_with_ttl("cooldown", clock(), 60) is True
    assert await store.set_if_absent_with_ttl("cooldown", clock(), 60) is False

    clock.advance(61)
    assert await store.set_if_absent_with_ttl("cooldown", clock(), 60) is True


@pytest.mark.asyncio
async def test_push_capped_keeps_newest_entries(store):
    for i in range(5):
        await store.push_capped("history", f"item-{i}", max_len=3, ttl_seconds=100)

    assert await store.list_range("history", 10) == ["item-4", "item-3", "item-2"]
    assert await store.list_range("history", 1) == ["item-4"]
    assert await store.list_range("history", 0) == []


@pytest.mark.asyncio
async def test_get_many_and_json_helpers(store):
    await store.set("a", 1)
    await store.set_json("b", {"x": [1, 2]})

    assert await store.get_many(["a", "missing"]) == ["1", None]
    assert await store.get_many([]) == []
    assert await store.get_json("b") == {"x": [1, 2]}
    assert await store.get_json("missing") is None

    await store.set("broken", "{not json")
    assert await store.get_json("broken") is None


def test_parse_float_defaults():
    assert parse_float(None, 1.5) == 1.5
    assert parse_float("2.5") == 2.5
    assert parse_float("garbage", 3.0) == 3.0
