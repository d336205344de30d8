"""
Request-Scoped Fetch Cache

Single-flight memoization of provider fetches for the lifetime of one
request. Concurrent callers asking for the same key share one in-flight
fetch; later callers get the stored result.

Keys are (org_id, query_shape) plus a name for the fetch, so two KPIs of the
same request asking for the completed work items trigger one provider call.
A failed fetch is evicted, and its exception reaches every caller waiting on it.

Usage:
    cache = RequestCache()

    items = await cache.get_or_fetch(
        ("completed-work-items", org_id, filters.query_shape()),
        lambda: state.get_work_items(org_id, StateCategory.COMPLETED, filters),
    )
"""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

from flowmetrics.core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RequestCache:
    """
    Single-flight cache; construct one per request.

    Not shared across requests or event loops.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, asyncio.Future[Any]] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_fetch(self, key: Hashable, fetch: Callable[[], Awaitable[T]]) -> T:
        """
        Return the cached value for key, running fetch at most once concurrently.

        Args:
            key: Hashable cache key, e.g. (name, org_id, filters.query_shape())
            fetch: Zero-argument coroutine function producing the value

        Raises:
            Whatever fetch raises; the key is evicted so a later call retries
        """
        existing = self._entries.get(key)
        if existing is not None:
            logger.debug("Request cache hit", extra={"cache_key": repr(key)})
            return await asyncio.shield(existing)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._entries[key] = future

        try:
            value = await fetch()
        except asyncio.CancelledError:
            self._entries.pop(key, None)
            future.cancel()
            raise
        except Exception as e:
            self._entries.pop(key, None)
            future.set_exception(e)
            # Mark retrieved so an unawaited failure is not reported at garbage collection
            future.exception()
            raise

        future.set_result(value)
        return value

    def clear(self) -> None:
        self._entries.clear()
