"""
Pytest configuration and shared fixtures

Provides in-memory fakes of the collaborator protocols (state provider, work
item type service, classification lookups, widget texts) and common filters.
"""

from datetime import UTC, datetime

import pytest

from flowmetrics.domain.work_items import StateCategory, WorkItem
from flowmetrics.providers.filters import QueryFilters
from flowmetrics.providers.interfaces import (
    ClassificationEntry,
    FQLFilter,
    WidgetInformation,
    WorkItemTypeInfo,
    WorkItemTypeMap,
)

# ===== Collaborator Fakes =====


class FakeStateProvider:
    """
    StateProvider serving fixed work items and recording every call.

    Extended lookups fall back to the plain items of the same category.
    Normalised lookups are keyed by (state category, tag).
    """

    def __init__(
        self,
        work_items: dict[StateCategory, list[WorkItem]] | None = None,
        normalised_work_items: dict[tuple[StateCategory, str | None], list[WorkItem]] | None = None,
        extended_work_items: dict[StateCategory, list[WorkItem]] | None = None,
        fql_filters: dict[str, list[FQLFilter]] | None = None,
    ):
        self.work_items = work_items or {}
        self.normalised_work_items = normalised_work_items or {}
        self.extended_work_items = extended_work_items
        self.fql_filters = fql_filters or {}
        self.calls: list[tuple] = []

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def get_work_items(self, org_id, state_category, filters):
        self.calls.append(("get_work_items", org_id, state_category, filters))
        return list(self.work_items.get(state_category, []))

    async def get_normalised_work_items(self, org_id, state_category, filters, tag=None):
        self.calls.append(("get_normalised_work_items", org_id, state_category, filters, tag))
        return list(self.normalised_work_items.get((state_category, tag), []))

    async def get_extended_work_items(self, org_id, state_category, filters):
        self.calls.append(("get_extended_work_items", org_id, state_category, filters))
        source = self.extended_work_items if self.extended_work_items is not None else self.work_items
        return list(source.get(state_category, []))

    async def get_normalised_extended_work_items(self, org_id, state_category, filters, tag=None):
        self.calls.append(("get_normalised_extended_work_items", org_id, state_category, filters, tag))
        return list(self.normalised_work_items.get((state_category, tag), []))

    async def get_fql_filters(self, org_id, tag):
        self.calls.append(("get_fql_filters", org_id, tag))
        return list(self.fql_filters.get(tag, []))


class FakeWorkItemTypeService:
    def __init__(self, types: list[WorkItemTypeInfo] | None = None, type_maps: list[WorkItemTypeMap] | None = None):
        self.types = types or []
        self.type_maps = type_maps or []
        self.calls: list[str] = []

    async def get_types(self, org_id):
        self.calls.append("get_types")
        return list(self.types)

    async def get_type_maps(self, org_id):
        self.calls.append("get_type_maps")
        return list(self.type_maps)


class FakeClassificationService:
    def __init__(self, entries: list[ClassificationEntry] | None = None):
        self.entries = entries or []

    async def get_everything(self, org_id):
        return list(self.entries)


class FakeWidgetInformationProvider:
    def __init__(self):
        self.requested: list[str] = []

    async def get_widget_information(self, type_key):
        self.requested.append(type_key)
        return [WidgetInformation(name=type_key.title(), key=type_key, what_is_this_telling_me=f"About {type_key}")]


# ===== Fixtures =====


@pytest.fixture
def make_state():
    """Factory building a FakeStateProvider"""
    return FakeStateProvider


@pytest.fixture
def march_filters():
    """Four full ISO weeks, Monday 4 March to Sunday 31 March 2024, UTC"""
    return QueryFilters(start="2024-03-04", end="2024-03-31", client_timezone="UTC")


@pytest.fixture
def work_item_types():
    """Two team-level types; stories carry a project-scoped SLE"""
    return FakeWorkItemTypeService(
        types=[
            WorkItemTypeInfo(id="1", display_name="User Story", level="Team"),
            WorkItemTypeInfo(id="2", display_name="Bug", level="Team"),
        ],
        type_maps=[
            WorkItemTypeMap(work_item_type_id="1", project_id="p1", service_level_expectation_in_days=10),
            WorkItemTypeMap(work_item_type_id="1", project_id="p2", service_level_expectation_in_days=5),
            WorkItemTypeMap(work_item_type_id="2", project_id=None, service_level_expectation_in_days=3),
        ],
    )


@pytest.fixture
def classification():
    """Classification lookup with two entries"""
    return FakeClassificationService(
        [ClassificationEntry(id="1", display_name="Standard"), ClassificationEntry(id="2", display_name="Expedite")]
    )


@pytest.fixture
def widgets():
    """Widget text provider recording requested keys"""
    return FakeWidgetInformationProvider()


@pytest.fixture
def utc():
    """Build a UTC datetime"""

    def build(year, month, day, hour=12):
        return datetime(year, month, day, hour, tzinfo=UTC)

    return build
