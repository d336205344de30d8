"""
Base Calculations Class

Shared plumbing for the per-request calculation classes: collaborator
references, the request-scoped fetch cache, and logged provider fetches.

Fetch failures are logged with context and re-raised unchanged; nothing here
retries.
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.work_items import StateCategory, WorkItem
from flowmetrics.providers.filters import QueryFilters
from flowmetrics.providers.interfaces import StateProvider
from flowmetrics.providers.request_cache import RequestCache
from flowmetrics.utils.error_handling import log_and_raise

logger = get_logger(__name__)

T = TypeVar("T")


class BaseCalculations:
    """
    Base class for calculation classes.

    Provides:
    - Organisation, state provider and filters of the request
    - Single-flight caching of provider fetches keyed by (name, org_id, query shape)
    - Error logging around every provider call

    Pass the same RequestCache to several calculation classes of one request
    to share fetched work items between them.
    """

    def __init__(
        self,
        org_id: str,
        state: StateProvider,
        filters: QueryFilters,
        cache: RequestCache | None = None,
    ):
        """
        Initialize calculations for one request.

        Args:
            org_id: Organisation the request is scoped to
            state: Work item provider
            filters: Query filters of the request
            cache: Request-scoped cache; a private one is created when omitted
        """
        self.org_id = org_id
        self.state = state
        self.filters = filters
        self.cache = cache if cache is not None else RequestCache()

    async def fetch(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        filters: QueryFilters | None = None,
        **context: Any,
    ) -> T:
        """
        Run a provider call through the request cache.

        Args:
            name: Fetch name, part of the cache key
            fetch: Zero-argument coroutine function doing the provider call
            filters: Filters the call is made with, when not the request filters
            **context: Extra key parts, also logged on failure

        Raises:
            The provider's exception, unchanged
        """
        filters = filters or self.filters
        key = (name, self.org_id, filters.query_shape(), tuple(sorted(context.items())))

        async def logged_fetch() -> T:
            try:
                return await fetch()
            except Exception as e:
                log_and_raise(
                    logger,
                    e,
                    context={"org_id": self.org_id, "fetch": name, **context},
                    error_type="Provider fetch",
                )

        return await self.cache.get_or_fetch(key, logged_fetch)

    async def get_work_items(
        self,
        state_category: StateCategory = StateCategory.COMPLETED,
        filters: QueryFilters | None = None,
    ) -> list[WorkItem]:
        filters = filters or self.filters
        return await self.fetch(
            "work-items",
            lambda: self.state.get_work_items(self.org_id, state_category, filters),
            filters=filters,
            state_category=state_category.value,
        )

    async def get_normalised_work_items(
        self,
        state_category: StateCategory = StateCategory.COMPLETED,
        tag: str | None = None,
        filters: QueryFilters | None = None,
    ) -> list[WorkItem]:
        filters = filters or self.filters
        return await self.fetch(
            "normalised-work-items",
            lambda: self.state.get_normalised_work_items(self.org_id, state_category, filters, tag),
            filters=filters,
            state_category=state_category.value,
            tag=tag,
        )
