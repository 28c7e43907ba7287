from __future__ import annotations

import asyncio

import pytest

from vouch.cache import TTLCache, make_key


def test_cache_miss_then_hit(clock):
    cache = TTLCache(clock=clock)
    assert cache.get("areas") is None
    cache.set("areas", ["London"])
    assert cache.get("areas") == ["London"]
    stats = cache.stats()
    assert stats["misses"] == 1
    assert stats["hits"] == 1
    assert stats["hit_rate"] == 50.0


def test_cache_entry_expires_after_ttl(clock):
    cache = TTLCache(clock=clock)
    cache.set("areas", ["London"], ttl=60)
    clock.advance(59)
    assert cache.get("areas") == ["London"]
    clock.advance(1)
    assert cache.get("areas") is None
    assert cache.stats()["size"] == 0


def test_invalidate_and_tags(clock):
    cache = TTLCache(clock=clock)
    cache.set("areas", 1, tags=("area",))
    cache.set("hierarchy", 2, tags=("area",))
    cache.set("categories", 3, tags=("category",))

    assert cache.invalidate_tag("area") == 2
    assert cache.get("areas") is None
    assert cache.get("categories") == 3
    assert cache.invalidate("categories") is True
    assert cache.invalidate("categories") is False


def test_make_key_ignores_dict_order():
    assert make_key({"a": 1, "b": ["x"]}) == make_key({"b": ["x"], "a": 1})
    assert make_key({"a": 1}) != make_key({"a": 2})


def test_clear_resets_stats(clock):
    cache = TTLCache(clock=clock)
    cache.set("k", 1)
    cache.get("k")
    cache.clear()
    assert cache.stats() == {
        "size": 0,
        "hits": 0,
        "misses": 0,
        "shared_fetches": 0,
        "in_flight": 0,
        "hit_rate": 0.0,
    }


@pytest.mark.asyncio
async def test_get_or_fetch_single_flight():
    cache = TTLCache()
    gate = asyncio.Event()
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        await gate.wait()
        return ["London"]

    first = asyncio.create_task(cache.get_or_fetch("areas", fetch))
    second = asyncio.create_task(cache.get_or_fetch("areas", fetch))
    await asyncio.sleep(0)
    assert cache.is_pending("areas")
    gate.set()

    a, b = await asyncio.gather(first, second)
    assert a is b
    assert calls == 1
    assert cache.stats()["shared_fetches"] == 1
    assert await cache.get_or_fetch("areas", fetch) == ["London"]
    assert calls == 1


@pytest.mark.asyncio
async def test_failed_fetch_is_not_cached():
    cache = TTLCache()
    attempts = 0

    async def flaky():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("backend down")
        return "ok"

    with pytest.raises(RuntimeError):
        await cache.get_or_fetch("k", flaky)
    assert not cache.is_pending("k")
    assert await cache.get_or_fetch("k", flaky) == "ok"
    assert attempts == 2


@pytest.mark.asyncio
async def test_cancelling_every_caller_cancels_fetch():
    cache = TTLCache()
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def slow():
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "late"

    caller = asyncio.create_task(cache.get_or_fetch("k", slow))
    await started.wait()
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    await asyncio.wait_for(cancelled.wait(), timeout=1)
    assert not cache.is_pending("k")
    assert cache.get("k") is None


@pytest.mark.asyncio
async def test_one_cancelled_caller_does_not_cancel_shared_fetch():
    cache = TTLCache()
    gate = asyncio.Event()

    async def fetch():
        await gate.wait()
        return "value"

    leaving = asyncio.create_task(cache.get_or_fetch("k", fetch))
    staying = asyncio.create_task(cache.get_or_fetch("k", fetch))
    await asyncio.sleep(0)
    leaving.cancel()
    with pytest.raises(asyncio.CancelledError):
        await leaving
    gate.set()

    assert await staying == "value"
    assert cache.get("k") == "value"


@pytest.mark.asyncio
async def test_invalidate_during_fetch_discards_result():
    cache = TTLCache()
    gate = asyncio.Event()

    async def fetch():
        await gate.wait()
        return "stale"

    caller = asyncio.create_task(cache.get_or_fetch("k", fetch, tags=("area",)))
    await asyncio.sleep(0)
    cache.invalidate_tag("area")
    gate.set()

    assert await caller == "stale"
    assert cache.get("k") is None


@pytest.mark.asyncio
async def test_cancelling_callers_of_refetch_after_invalidate_cancels_it():
    cache = TTLCache()
    gate = asyncio.Event()

    async def fetch():
        await gate.wait()
        return "value"

    stale = asyncio.create_task(cache.get_or_fetch("k", fetch))
    await asyncio.sleep(0)
    cache.invalidate("k")

    fresh = asyncio.create_task(cache.get_or_fetch("k", fetch))
    await asyncio.sleep(0)
    fresh.cancel()
    with pytest.raises(asyncio.CancelledError):
        await fresh

    gate.set()
    assert await stale == "value"
    assert cache.stats()["in_flight"] == 0
    assert cache.stats()["size"] == 0
