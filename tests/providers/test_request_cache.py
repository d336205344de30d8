"""
Tests for the Request-Scoped Fetch Cache

Tests cover:
- Stored results for repeated keys
- Single-flight sharing between concurrent callers
- Eviction and retry after failures and cancellation
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from flowmetrics.providers.request_cache import RequestCache


class TestGetOrFetch:
    """Test memoized fetches"""

    @pytest.mark.asyncio
    async def test_result_reused(self):
        """Test a second call with the same key does not fetch again"""
        cache = RequestCache()
        fetch = AsyncMock(return_value=[1, 2, 3])

        first = await cache.get_or_fetch(("completed", "org-1"), fetch)
        second = await cache.get_or_fetch(("completed", "org-1"), fetch)

        assert first == second == [1, 2, 3]
        fetch.assert_awaited_once()
        assert ("completed", "org-1") in cache
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_distinct_keys_fetch_separately(self):
        """Test different keys are cached independently"""
        cache = RequestCache()
        fetch = AsyncMock(side_effect=["completed", "wip"])

        assert await cache.get_or_fetch("completed", fetch) == "completed"
        assert await cache.get_or_fetch("wip", fetch) == "wip"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self):
        """Test callers arriving while a fetch is in flight wait for it"""
        cache = RequestCache()
        release = asyncio.Event()
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await release.wait()
            return "items"

        waiters = [asyncio.create_task(cache.get_or_fetch("key", fetch)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters)

        assert results == ["items", "items", "items"]
        assert calls == 1

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test clearing forgets stored results"""
        cache = RequestCache()
        fetch = AsyncMock(return_value=1)
        await cache.get_or_fetch("key", fetch)

        cache.clear()
        await cache.get_or_fetch("key", fetch)

        assert fetch.await_count == 2


class TestFailures:
    """Test failed and cancelled fetches"""

    @pytest.mark.asyncio
    async def test_failure_evicted_and_retried(self):
        """Test a failure propagates, is not cached, and a later call retries"""
        cache = RequestCache()
        fetch = AsyncMock(side_effect=[ConnectionError("provider down"), "items"])

        with pytest.raises(ConnectionError, match="provider down"):
            await cache.get_or_fetch("key", fetch)

        assert "key" not in cache
        assert await cache.get_or_fetch("key", fetch) == "items"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter(self):
        """Test concurrent callers all see the same exception"""
        cache = RequestCache()
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            raise ValueError("bad payload")

        waiters = [asyncio.create_task(cache.get_or_fetch("key", fetch)) for _ in range(2)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(result, ValueError) for result in results)
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_cancelled_fetch_evicted(self):
        """Test cancelling the fetching caller removes the entry"""
        cache = RequestCache()

        async def fetch():
            await asyncio.sleep(10)

        task = asyncio.create_task(cache.get_or_fetch("key", fetch))
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert "key" not in cache
