"""Unit tests for the background task queue and the reference data cache."""

import asyncio
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from fakes import SteppingClock

from sheet_router.utils.background import BackgroundTaskQueue
from sheet_router.utils.cache_manager import ReferenceDataCache


class TestBackgroundTaskQueue:
    """Fire-and-forget execution with draining and backpressure."""

    @pytest.mark.asyncio
    async def test_tasks_run_in_order(self):
        queue = BackgroundTaskQueue()
        seen = []

        async def record(value):
            await asyncio.sleep(0)
            seen.append(value)

        for i in range(5):
            assert queue.submit(lambda i=i: record(i), label=f"task {i}")
        await queue.drain()

        assert seen == [0, 1, 2, 3, 4]
        assert queue.completed == 5
        await queue.close()

    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(self):
        queue = BackgroundTaskQueue()

        async def explode():
            raise RuntimeError("store offline")

        queue.submit(explode)
        await queue.drain()

        assert queue.failed == 1
        await queue.close()

    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        queue = BackgroundTaskQueue(maxsize=1)
        gate = asyncio.Event()

        async def wait():
            await gate.wait()

        assert queue.submit(wait)
        await asyncio.sleep(0)  # worker picks up the first task
        assert queue.submit(wait)
        assert not queue.submit(wait)
        assert queue.dropped == 1

        gate.set()
        await queue.close()
        assert queue.completed == 2

    @pytest.mark.asyncio
    async def test_closed_queue_rejects(self):
        queue = BackgroundTaskQueue()
        await queue.close()

        async def noop():
            return None

        assert not queue.submit(noop)
        assert queue.dropped == 1

    def test_submit_without_event_loop_drops(self):
        queue = BackgroundTaskQueue()

        async def noop():
            return None

        assert queue.submit(noop, label="intent learning") is False
        assert queue.dropped == 1
        assert queue.pending == 0


class TestReferenceDataCache:
    """TTL caching with explicit refresh and invalidation."""

    @pytest.fixture
    def clock(self):
        return SteppingClock()

    @pytest.mark.asyncio
    async def test_loads_once_within_ttl(self, clock):
        cache = ReferenceDataCache(ttl_seconds=300, clock=clock)
        calls = []

        async def loader():
            calls.append(1)
            return ["template"]

        cache.register("templates", loader)
        assert await cache.get("templates") == ["template"]
        clock.now += 299
        assert await cache.get("templates") == ["template"]
        assert len(calls) == 1

        clock.now += 2
        await cache.get("templates")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_refresh_and_invalidate(self, clock):
        cache = ReferenceDataCache(ttl_seconds=300, clock=clock)
        version = {"n": 0}

        async def loader():
            version["n"] += 1
            return version["n"]

        cache.register("examples", loader)
        assert await cache.get("examples") == 1
        assert await cache.refresh("examples") == 2
        assert cache.peek("examples") == 2

        cache.invalidate("examples")
        assert cache.peek("examples") is None
        assert await cache.get("examples") == 3

    @pytest.mark.asyncio
    async def test_failed_refresh_serves_stale_value(self, clock):
        cache = ReferenceDataCache(ttl_seconds=300, clock=clock)
        cache.set("examples", ["old"])

        async def broken():
            raise RuntimeError("db down")

        assert await cache.refresh("examples", broken) == ["old"]

    @pytest.mark.asyncio
    async def test_refresh_without_loader(self, clock):
        cache = ReferenceDataCache(clock=clock)
        with pytest.raises(KeyError):
            await cache.refresh("unknown")

    def test_stats(self, clock):
        cache = ReferenceDataCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        clock.now += 11
        cache.set("c", 3)
        assert cache.stats() == {"entries": 3, "fresh": 1, "ttl_seconds": 10}
