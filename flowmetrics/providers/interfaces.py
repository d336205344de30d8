"""
Collaborator Protocols

Narrow interfaces the calculations are written against. Concrete
implementations (database access, CMS lookups) live outside this package;
tests use in-memory fakes.

Every provider call is read-only and returns a consistent snapshot for the
duration of the call, with no ordering guarantee.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from flowmetrics.domain.work_items import StateCategory, WorkItem

if TYPE_CHECKING:
    from flowmetrics.providers.filters import QueryFilters


class PredefinedFilterTags:
    NORMALISATION = "normalisation"
    DEMAND = "demand"
    VALUE_AREA = "value-area"
    QUALITY = "quality"
    PLANNED_UNPLANNED = "planned-unplanned"
    CLASS_OF_SERVICE = "class-of-service"


class WidgetTypes:
    """Keys of the descriptive widget texts attached to KPI responses."""

    LEAD_TIME = "lead-time"
    SERVICE_LEVEL = "service-level"
    PREDICTABILITY = "predictability"
    DELIVERY_RATE = "delivery-rate"
    VALUE_DELIVERED = "value-delivered"
    FLOW_EFFICIENCY = "flow-efficiency"
    COMPLETED_WORKTYPE_OVERVIEW = "completed-worktype-overview"
    WIP_WORKTYPE_OVERVIEW = "wip-worktype-overview"
    UPCOMING_WORKTYPE_OVERVIEW = "upcoming-worktype-overview"


@dataclass(frozen=True)
class FQLFilter:
    """Saved filter (e.g. a normalised demand) with its service level expectation."""

    id: str
    display_name: str
    service_level_expectation_in_days: float | None = None
    tags: str | None = None


@dataclass(frozen=True)
class ClassificationEntry:
    """Id/display-name pair of a classification (work item type, class of service, ...)."""

    id: str
    display_name: str


@dataclass(frozen=True)
class WorkItemTypeInfo(ClassificationEntry):
    """Work item type with its level and default service level expectation."""

    level: str | None = None
    service_level_expectation_in_days: float | None = None


@dataclass(frozen=True)
class WorkItemTypeMap:
    """Per-project configuration of a work item type."""

    work_item_type_id: str
    project_id: str | None
    service_level_expectation_in_days: float | None = None


@dataclass(frozen=True)
class WidgetInformation:
    name: str
    key: str
    what_is_this_telling_me: str
    how_do_i_read_this: str | None = None
    why_is_this_important: str | None = None
    reference_guide: str | None = None
    how_is_it_calculated: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "key": self.key,
            "whatIsThisTellingMe": self.what_is_this_telling_me,
            "howDoIReadThis": self.how_do_i_read_this,
            "whyIsThisImportant": self.why_is_this_important,
            "referenceGuide": self.reference_guide,
            "howIsItCalculated": self.how_is_it_calculated,
        }


class StateProvider(Protocol):
    """
    Protocol for work item retrieval.

    Implementations apply the query filters (date window, work item types,
    context) and return organisation-scoped work items.
    """

    async def get_work_items(
        self, org_id: str, state_category: StateCategory, filters: "QueryFilters"
    ) -> list[WorkItem]:
        ...

    async def get_normalised_work_items(
        self,
        org_id: str,
        state_category: StateCategory,
        filters: "QueryFilters",
        tag: str | None = None,
    ) -> list[WorkItem]:
        """
        Work items tagged with their normalised display name.

        An item matching several normalised filters is returned once per filter.
        """
        ...

    async def get_extended_work_items(
        self, org_id: str, state_category: StateCategory, filters: "QueryFilters"
    ) -> list[WorkItem]:
        ...

    async def get_normalised_extended_work_items(
        self,
        org_id: str,
        state_category: StateCategory,
        filters: "QueryFilters",
        tag: str | None = None,
    ) -> list[WorkItem]:
        ...

    async def get_fql_filters(self, org_id: str, tag: str) -> list[FQLFilter]:
        ...


class WorkItemTypeService(Protocol):
    async def get_types(self, org_id: str) -> list[WorkItemTypeInfo]:
        ...

    async def get_type_maps(self, org_id: str) -> list[WorkItemTypeMap]:
        ...


class ClassificationService(Protocol):
    """Class of service, nature of work and value area lookups."""

    async def get_everything(self, org_id: str) -> list[ClassificationEntry]:
        ...


class WidgetInformationProvider(Protocol):
    async def get_widget_information(self, type_key: str) -> list[WidgetInformation]:
        ...
