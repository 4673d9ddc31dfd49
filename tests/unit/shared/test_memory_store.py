import asyncio

import pytest

from shared.infrastructure.cache import InMemoryCounterStore
from shared.utils.clock import now_ms


async def test_incr_applies_ttl_on_create_only(store, clock):
    assert await store.incr("k", ttl_seconds=10) == 1
    clock.advance(5)
    assert await store.incr("k", ttl_seconds=10) == 2
    clock.advance(5)
    assert await store.get("k") is None


async def test_set_nx(store):
    assert await store.set("k", "a", nx=True)
    assert not await store.set("k", "b", nx=True)
    assert await store.get("k") == "a"


async def test_window_never_holds_more_than_limit(store, clock):
    now = now_ms(clock)
    results = await asyncio.gather(
        *(store.window_acquire("w", limit=3, window_ms=1000, now_ms=now, member=str(i)) for i in range(10))
    )
    assert sum(r.allowed for r in results) == 3
    assert await store.window_count("w", window_ms=1000, now_ms=now) == 3


async def test_window_prunes_old_entries(store, clock):
    start = now_ms(clock)
    await store.window_acquire("w", limit=1, window_ms=1000, now_ms=start, member="a")

    clock.advance(0.5)
    refused = await store.window_acquire("w", limit=1, window_ms=1000, now_ms=now_ms(clock), member="b")
    assert not refused.allowed
    assert refused.oldest_ms == start

    clock.advance(0.5)
    allowed = await store.window_acquire("w", limit=1, window_ms=1000, now_ms=now_ms(clock), member="c")
    assert allowed.allowed


async def test_claim_is_owner_scoped(store, clock):
    start = now_ms(clock)
    first = await store.claim("lock", owner="a", ttl_ms=1000, now_ms=start)
    other = await store.claim("lock", owner="b", ttl_ms=1000, now_ms=start + 100)
    refresh = await store.claim("lock", owner="a", ttl_ms=1000, now_ms=start + 500)
    assert first.acquired and not other.acquired and refresh.acquired
    assert other.owner == "a"
    assert refresh.acquired_at_ms == start
    assert refresh.expires_at_ms == start + 1500
    assert not first.refreshed
    assert refresh.refreshed


async def test_expired_claim_can_be_taken_over(store, clock):
    await store.claim("lock", owner="a", ttl_ms=1000, now_ms=now_ms(clock))
    clock.advance(2)
    takeover = await store.claim("lock", owner="b", ttl_ms=1000, now_ms=now_ms(clock))
    assert takeover.acquired
    assert takeover.acquired_at_ms == now_ms(clock)
    assert not takeover.refreshed


async def test_compare_and_delete(store, clock):
    await store.claim("lock", owner="a", ttl_ms=60_000, now_ms=now_ms(clock))
    assert not await store.compare_and_delete("lock", field="owner", expected="b")
    assert await store.compare_and_delete("lock", field="owner", expected="a")
    assert await store.hgetall("lock") == {}


async def test_purge_expired_respects_prefix(clock):
    store = InMemoryCounterStore(clock)
    await store.set("a:1", "x", ttl_seconds=1)
    await store.set("b:1", "x", ttl_seconds=1)
    clock.advance(2)
    assert await store.purge_expired("a:") == 1
    assert await store.purge_expired("") == 1


@pytest.mark.parametrize("amount", [1, 5])
async def test_hincrby(store, amount):
    assert await store.hincrby("h", "f", amount) == amount
    assert await store.hgetall("h") == {"f": str(amount)}
