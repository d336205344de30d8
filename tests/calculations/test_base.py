"""
Tests for Base Calculations

Tests cover:
- Cached provider fetches keyed by name, organisation and filter shape
- Sharing a request cache between calculation classes
- Logged, unchanged provider failures
"""

import logging
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from flowmetrics.calculations.base import BaseCalculations
from flowmetrics.domain.work_items import StateCategory, WorkItem
from flowmetrics.providers.request_cache import RequestCache


@pytest.fixture
def completed_items():
    return [WorkItem(work_item_id="A"), WorkItem(work_item_id="B")]


class TestFetch:
    """Test cached provider access"""

    @pytest.mark.asyncio
    async def test_same_request_fetches_once(self, make_state, march_filters, completed_items):
        """Test repeated reads of the completed items hit the provider once"""
        state = make_state(work_items={StateCategory.COMPLETED: completed_items})
        calculations = BaseCalculations("org-1", state, march_filters)

        first = await calculations.get_work_items()
        second = await calculations.get_work_items(StateCategory.COMPLETED)

        assert first == second == completed_items
        assert state.count("get_work_items") == 1

    @pytest.mark.asyncio
    async def test_state_category_part_of_key(self, make_state, march_filters):
        """Test each state category is fetched separately"""
        state = make_state()
        calculations = BaseCalculations("org-1", state, march_filters)

        await calculations.get_work_items(StateCategory.COMPLETED)
        await calculations.get_work_items(StateCategory.IN_PROGRESS)

        assert state.count("get_work_items") == 2

    @pytest.mark.asyncio
    async def test_filter_shape_part_of_key(self, make_state, march_filters):
        """Test undated filters do not reuse the dated result"""
        state = make_state()
        calculations = BaseCalculations("org-1", state, march_filters)

        await calculations.get_work_items(StateCategory.IN_PROGRESS)
        await calculations.get_work_items(StateCategory.IN_PROGRESS, replace(march_filters, filter_by_date=False))

        assert state.count("get_work_items") == 2
        assert state.calls[-1][3].filter_by_date is False

    @pytest.mark.asyncio
    async def test_normalised_tag_part_of_key(self, make_state, march_filters, completed_items):
        """Test normalised fetches are cached per tag"""
        state = make_state(normalised_work_items={(StateCategory.COMPLETED, "demand"): completed_items})
        calculations = BaseCalculations("org-1", state, march_filters)

        demand = await calculations.get_normalised_work_items(tag="demand")
        await calculations.get_normalised_work_items(tag="demand")
        untagged = await calculations.get_normalised_work_items()

        assert demand == completed_items
        assert untagged == []
        assert state.count("get_normalised_work_items") == 2

    @pytest.mark.asyncio
    async def test_shared_cache_across_classes(self, make_state, march_filters, completed_items):
        """Test two calculation classes with one cache share fetched items"""
        state = make_state(work_items={StateCategory.COMPLETED: completed_items})
        cache = RequestCache()

        await BaseCalculations("org-1", state, march_filters, cache).get_work_items()
        await BaseCalculations("org-1", state, march_filters, cache).get_work_items()

        assert state.count("get_work_items") == 1

    def test_empty_shared_cache_kept(self, make_state, march_filters):
        """Test a caller's cache is used even before it holds any entry"""
        cache = RequestCache()

        calculations = BaseCalculations("org-1", make_state(), march_filters, cache)

        assert calculations.cache is cache

    @pytest.mark.asyncio
    async def test_aggregation_shares_fetch(self, make_state, march_filters, completed_items):
        """Test classes bucketing by different periods reuse one fetch"""
        state = make_state(work_items={StateCategory.COMPLETED: completed_items})
        cache = RequestCache()

        await BaseCalculations("org-1", state, replace(march_filters, aggregation="week"), cache).get_work_items()
        await BaseCalculations("org-1", state, replace(march_filters, aggregation="month"), cache).get_work_items()

        assert state.count("get_work_items") == 1

    @pytest.mark.asyncio
    async def test_organisation_part_of_key(self, make_state, march_filters):
        """Test a shared cache never mixes organisations"""
        state = make_state()
        cache = RequestCache()

        await BaseCalculations("org-1", state, march_filters, cache).get_work_items()
        await BaseCalculations("org-2", state, march_filters, cache).get_work_items()

        assert [call[1] for call in state.calls] == ["org-1", "org-2"]


class TestFetchFailures:
    """Test provider errors"""

    @pytest.mark.asyncio
    async def test_error_logged_and_reraised(self, march_filters, caplog):
        """Test the provider's exception reaches the caller unchanged"""
        state = MagicMock()
        state.get_work_items = AsyncMock(side_effect=TimeoutError("provider timeout"))
        calculations = BaseCalculations("org-1", state, march_filters)

        with caplog.at_level(logging.ERROR):
            with pytest.raises(TimeoutError, match="provider timeout"):
                await calculations.get_work_items()

        assert "Provider fetch failed critically" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, march_filters):
        """Test a failed fetch is retried on the next call"""
        state = MagicMock()
        state.get_work_items = AsyncMock(side_effect=[TimeoutError("provider timeout"), []])
        calculations = BaseCalculations("org-1", state, march_filters)

        with pytest.raises(TimeoutError):
            await calculations.get_work_items()

        assert await calculations.get_work_items() == []
        assert state.get_work_items.await_count == 2
