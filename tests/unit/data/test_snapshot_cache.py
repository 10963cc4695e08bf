from __future__ import annotations

import asyncio

import pytest

from cyclone_timeline.data.cache import SnapshotCache
from cyclone_timeline.data.loader import ContentLoader
from cyclone_timeline.data.preload import OverlayPreloader
from cyclone_timeline.errors import SessionClosed, SnapshotLoadFailed
from cyclone_timeline.runtime.lifecycle import LifecycleGuard, SessionPhase
from tests.helpers.factories import FakeTransport, documents_for, index_entry, make_descriptor


class CountingLoader(ContentLoader):
    def __init__(self, transport, preloader):
        super().__init__(transport, preloader)
        self.invocations = 0

    async def load(self, descriptor, *, await_overlays=False):
        self.invocations += 1
        return await super().load(descriptor, await_overlays=await_overlays)


def _cache(transport: FakeTransport, liveness=None) -> tuple[SnapshotCache, CountingLoader]:
    loader = CountingLoader(transport, OverlayPreloader(transport))
    return SnapshotCache(loader, liveness=liveness), loader


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_load() -> None:
    entry = index_entry(100)
    transport = FakeTransport(documents_for([entry]))
    gate = transport.gate("traj/100_0.json")
    cache, loader = _cache(transport)
    descriptor = make_descriptor(100)

    waiters = [asyncio.create_task(cache.get_or_load(descriptor)) for _ in range(5)]
    await asyncio.sleep(0)
    assert cache.is_pending(100)
    gate.set()
    results = await asyncio.gather(*waiters)

    assert loader.invocations == 1
    assert transport.count("traj/100_0.json") == 1
    assert all(r is results[0] for r in results)
    assert not cache.is_pending(100)


@pytest.mark.asyncio
async def test_resolved_entry_is_reused_without_io() -> None:
    transport = FakeTransport(documents_for([index_entry(100)]))
    cache, loader = _cache(transport)
    descriptor = make_descriptor(100)

    first = await cache.get_or_load(descriptor)
    calls_before = len(transport.calls)
    second = await cache.get_or_load(descriptor)

    assert second is first
    assert cache.get(100) is first
    assert 100 in cache and len(cache) == 1
    assert loader.invocations == 1
    assert len(transport.calls) == calls_before


@pytest.mark.asyncio
async def test_failure_propagates_to_all_waiters_and_is_not_cached() -> None:
    transport = FakeTransport(documents_for([index_entry(100)]), fail=["traj/100_0.json"])
    gate = transport.gate("traj/100_0.json")
    cache, loader = _cache(transport)
    descriptor = make_descriptor(100)

    waiters = [asyncio.create_task(cache.get_or_load(descriptor)) for _ in range(3)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    assert all(isinstance(r, SnapshotLoadFailed) for r in results)
    assert loader.invocations == 1
    assert cache.get(100) is None
    assert not cache.is_pending(100)

    # retry after the upstream recovers
    transport.fail.clear()
    snapshot = await cache.get_or_load(descriptor)
    assert snapshot.timestamp == 100
    assert loader.invocations == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_load() -> None:
    transport = FakeTransport(documents_for([index_entry(100)]))
    gate = transport.gate("traj/100_0.json")
    cache, loader = _cache(transport)
    descriptor = make_descriptor(100)

    first = asyncio.create_task(cache.get_or_load(descriptor))
    second = asyncio.create_task(cache.get_or_load(descriptor))
    await asyncio.sleep(0)
    first.cancel()
    gate.set()

    snapshot = await second
    assert first.cancelled()
    assert cache.get(100) is snapshot
    assert loader.invocations == 1


@pytest.mark.asyncio
async def test_load_resolving_after_close_is_discarded() -> None:
    transport = FakeTransport(documents_for([index_entry(100)]))
    gate = transport.gate("traj/100_0.json")
    guard = LifecycleGuard()
    cache, _ = _cache(transport, liveness=guard)

    task = asyncio.create_task(cache.get_or_load(make_descriptor(100)))
    await asyncio.sleep(0)
    guard.enter(SessionPhase.CLOSED)
    gate.set()

    with pytest.raises(SessionClosed):
        await task
    assert cache.get(100) is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_distinct_keys_load_independently() -> None:
    entries = [index_entry(1), index_entry(2)]
    transport = FakeTransport(documents_for(entries))
    cache, loader = _cache(transport)

    a, b = await asyncio.gather(cache.get_or_load(make_descriptor(1)), cache.get_or_load(make_descriptor(2)))

    assert (a.timestamp, b.timestamp) == (1, 2)
    assert list(cache) == [1, 2]
    assert loader.invocations == 2


@pytest.mark.asyncio
async def test_cache_only_grows() -> None:
    entries = [index_entry(ts) for ts in (1, 2, 3)]
    transport = FakeTransport(documents_for(entries))
    cache, loader = _cache(transport)

    loaded = [await cache.get_or_load(make_descriptor(ts)) for ts in (1, 2, 3)]
    for ts, snapshot in zip((1, 2, 3), loaded):
        assert await cache.get_or_load(make_descriptor(ts)) is snapshot

    assert list(cache) == [1, 2, 3]
    assert loader.invocations == 3
    assert not hasattr(cache, "clear")
