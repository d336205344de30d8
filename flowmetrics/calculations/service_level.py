"""
Service Level Calculations

Per-group statistics measured against service level expectations (SLEs), for
normalised demands and work item types, from one of three perspectives:
    - past: completed items and their lead time
    - present: in-progress items and their WIP age
    - future (or upcoming): proposed items and their inventory age

Target met and predictability are reported for past and present analysis;
the fortnight target-met trend for past analysis only.

Usage:
    calculations = ServiceLevelCalculations(org_id, state, filters, work_item_types, widgets)
    data = await calculations.get_service_level_data("past")
    for entry in data.work_item_types:
        print(entry.display_name, entry.target_met)
"""

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, tzinfo

from flowmetrics.analysis.aggregation import unique_by_id
from flowmetrics.calculations.base import BaseCalculations
from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.constants import service_level_config, statistics_config
from flowmetrics.domain.metrics import TrendAnalysisStructure
from flowmetrics.domain.service_level import (
    GroupKey,
    ServiceLevelData,
    ServiceLevelEntry,
    ServiceLevelExpectation,
    merge_service_level_expectations,
)
from flowmetrics.domain.work_items import WorkItem, get_perspective_profile, normalise_perspective
from flowmetrics.providers.filters import DateAnalysisOptions, QueryFilters
from flowmetrics.providers.interfaces import (
    PredefinedFilterTags,
    StateProvider,
    WidgetInformation,
    WidgetInformationProvider,
    WidgetTypes,
    WorkItemTypeService,
)
from flowmetrics.providers.request_cache import RequestCache
from flowmetrics.utils.datetime_utils import Week, get_last_four_full_weeks, get_zone
from flowmetrics.utils.statistics import (
    repeated_modes,
    round_half_up,
    rounded_max,
    rounded_mean,
    rounded_median,
    rounded_min,
    rounded_quantile,
)

logger = get_logger(__name__)

PREDICTABILITY_HIGH = "high"
PREDICTABILITY_LOW = "low"

NO_DATA_TREND = TrendAnalysisStructure(
    percentage=0, text="no data available", arrow_direction="stable", arrow_colour="gray"
)

_PERSPECTIVE_WIDGETS = {
    "past": WidgetTypes.COMPLETED_WORKTYPE_OVERVIEW,
    "present": WidgetTypes.WIP_WORKTYPE_OVERVIEW,
    "future": WidgetTypes.UPCOMING_WORKTYPE_OVERVIEW,
}


class NonConsecutiveWeeksError(ValueError):
    """Raised when a fortnight is built from two weeks that do not follow each other."""

    def __init__(self) -> None:
        super().__init__(
            "Invalid weeks. The weeks must be consecutive weeks. secondWeek should be the week after the firstWeek"
        )


def get_work_item_times(work_items: Sequence[WorkItem], perspective: str) -> list[float]:
    """Duration of each item for the perspective; a missing duration counts as 0."""
    age_field = get_perspective_profile(perspective).age_field
    return [getattr(item, age_field) or 0 for item in work_items]


def get_target_met(work_items: Sequence[WorkItem], sle_target: float, perspective: str) -> int:
    """
    Whole percentage of items whose duration is within the SLE.

    Returns:
        0 for no items
    """
    times = get_work_item_times(work_items, perspective)
    if not times:
        return 0
    within_target = sum(1 for time in times if time <= sle_target)
    return round_half_up(within_target / len(times) * 100)


def get_predictability(median: float, percentile_98th: float) -> str:
    """
    'high' when the tail is at most HIGH_VARIABILITY_LIMIT times the median.

    A zero median counts as predictable.
    """
    if not median:
        return PREDICTABILITY_HIGH
    if percentile_98th / median <= statistics_config.HIGH_VARIABILITY_LIMIT:
        return PREDICTABILITY_HIGH
    return PREDICTABILITY_LOW


def select_completed_items_in_week(
    week: Week, work_items: Sequence[WorkItem], zone: tzinfo | None = None
) -> list[WorkItem]:
    """Items whose departure falls in the given ISO week (in zone, when given)."""
    selected = []
    for item in work_items:
        departure = item.departure_datetime
        if departure is None:
            continue
        if zone is not None and departure.tzinfo is not None:
            departure = departure.astimezone(zone)
        if week.contains(departure.date()):
            selected.append(item)
    return selected


def get_target_met_for_fortnight(
    first_week: Week, second_week: Week, work_items: Sequence[WorkItem], sle_target: float, zone: tzinfo | None = None
) -> int:
    """
    Target met over two consecutive weeks of completed items.

    Raises:
        NonConsecutiveWeeksError: If second_week does not follow first_week
    """
    if not second_week.is_next_week_of(first_week):
        raise NonConsecutiveWeeksError()

    completed = select_completed_items_in_week(first_week, work_items, zone) + select_completed_items_in_week(
        second_week, work_items, zone
    )
    return get_target_met(completed, sle_target, "past")


def get_fortnight_trend(
    work_items: Sequence[WorkItem], sle_target: float, end_date: datetime
) -> TrendAnalysisStructure:
    """
    Change in target met between the last two full fortnights before end_date.

    A partial final week is left out so whole weeks are compared.
    """
    week1, week2, week3, week4 = get_last_four_full_weeks(end_date)
    zone = end_date.tzinfo

    last_fortnight = get_target_met_for_fortnight(week3, week4, work_items, sle_target, zone)
    second_to_last_fortnight = get_target_met_for_fortnight(week1, week2, work_items, sle_target, zone)
    change = last_fortnight - second_to_last_fortnight

    if change == 0:
        return TrendAnalysisStructure(change, "same compared to week before", "stable", "yellow")
    if change > 0:
        return TrendAnalysisStructure(change, "more compared to week before", "up", "green")
    return TrendAnalysisStructure(change, "less compared to week before", "down", "red")


def find_group_sle(key: GroupKey, expectations: Sequence[ServiceLevelExpectation]) -> ServiceLevelExpectation:
    """
    First SLE covering the group.

    Without one, the group is reported under UNAVAILABLE_DISPLAY_NAME with
    DEFAULT_SLE_DAYS.
    """
    for expectation in expectations:
        if expectation.matches(key):
            return expectation
    return ServiceLevelExpectation(
        display_name=service_level_config.UNAVAILABLE_DISPLAY_NAME,
        days=service_level_config.DEFAULT_SLE_DAYS,
    )


def calculate_statistics(
    work_items: Sequence[WorkItem],
    expectation: ServiceLevelExpectation,
    perspective: str,
    analysis_end_date: datetime,
) -> ServiceLevelEntry:
    """Service-level row of one group of work items."""
    sle_days = expectation.days or 0
    times = get_work_item_times(work_items, perspective)

    if not times:
        return ServiceLevelEntry(
            display_name=expectation.display_name,
            count=0,
            service_level_expectation_in_days=0,
            target_met=service_level_config.EMPTY_GROUP_TARGET_MET,
            trend_analysis_sle=NO_DATA_TREND,
            predictability=PREDICTABILITY_HIGH,
        )

    perspective = normalise_perspective(perspective) or "present"
    median = rounded_median(times)
    tail = rounded_quantile(0.98, times)
    use_full_statistics = perspective in ("past", "present")

    return ServiceLevelEntry(
        display_name=expectation.display_name,
        count=len(work_items),
        service_level_expectation_in_days=sle_days,
        mode=repeated_modes(times),
        median=median,
        average=rounded_mean(times),
        min=rounded_min(times),
        max=rounded_max(times),
        percentile85=rounded_quantile(0.85, times),
        tail=tail,
        target_met=get_target_met(work_items, sle_days, perspective) if use_full_statistics else None,
        trend_analysis_sle=(
            get_fortnight_trend(work_items, sle_days, analysis_end_date) if perspective == "past" else None
        ),
        predictability=(
            get_predictability(median, tail) if use_full_statistics and median and tail else None
        ),
    )


def group_by_demand(work_items: Sequence[WorkItem]) -> dict[GroupKey, list[WorkItem]]:
    groups: dict[GroupKey, list[WorkItem]] = {}
    for item in unique_by_id(work_items):
        groups.setdefault(GroupKey(item.normalised_display_name or ""), []).append(item)
    return groups


def group_by_type(
    work_items: Sequence[WorkItem], expectations: Sequence[ServiceLevelExpectation]
) -> dict[GroupKey, list[WorkItem]]:
    """
    Items grouped by work item type.

    A type with a project-scoped SLE is split into one group per project so
    each project is measured against its own SLE.
    """
    project_scoped_types = {
        expectation.display_name for expectation in expectations if expectation.is_project_scoped
    }

    groups: dict[GroupKey, list[WorkItem]] = {}
    for item in unique_by_id(work_items):
        type_name = item.work_item_type or ""
        project_id = item.project_id if type_name in project_scoped_types else None
        groups.setdefault(GroupKey(type_name, project_id), []).append(item)
    return groups


class ServiceLevelCalculations(BaseCalculations):
    """Service level table calculations for one request."""

    def __init__(
        self,
        org_id: str,
        state: StateProvider,
        filters: QueryFilters,
        work_item_types: WorkItemTypeService,
        widgets: WidgetInformationProvider,
        cache: RequestCache | None = None,
    ):
        super().__init__(org_id, state, filters, cache)
        self.work_item_types = work_item_types
        self.widgets = widgets

    async def get_work_items_by_demand(self, filters: QueryFilters, perspective: str) -> dict[GroupKey, list[WorkItem]]:
        state_category = get_perspective_profile(perspective).state_category
        work_items = await self.fetch(
            "normalised-extended-work-items",
            lambda: self.state.get_normalised_extended_work_items(
                self.org_id, state_category, filters, PredefinedFilterTags.DEMAND
            ),
            filters=filters,
            state_category=state_category.value,
            tag=PredefinedFilterTags.DEMAND,
        )
        return group_by_demand(work_items)

    async def get_type_work_items(self, filters: QueryFilters, perspective: str) -> list[WorkItem]:
        state_category = get_perspective_profile(perspective).state_category
        return await self.fetch(
            "extended-work-items",
            lambda: self.state.get_extended_work_items(self.org_id, state_category, filters),
            filters=filters,
            state_category=state_category.value,
        )

    async def get_demand_service_level_criteria(self) -> list[ServiceLevelExpectation]:
        demand_filters = await self.fetch(
            "fql-filters",
            lambda: self.state.get_fql_filters(self.org_id, PredefinedFilterTags.DEMAND),
            tag=PredefinedFilterTags.DEMAND,
        )
        return [
            ServiceLevelExpectation(
                display_name=demand_filter.display_name,
                days=demand_filter.service_level_expectation_in_days or 0,
            )
            for demand_filter in demand_filters
        ]

    async def get_item_type_service_level_criteria(self) -> list[ServiceLevelExpectation]:
        """
        SLE per work item type and project, merged where projects share the same SLE.

        A type map without a project applies to every project.
        """
        types, type_maps = await asyncio.gather(
            self.fetch("work-item-types", lambda: self.work_item_types.get_types(self.org_id)),
            self.fetch("work-item-type-maps", lambda: self.work_item_types.get_type_maps(self.org_id)),
        )
        names = {item_type.id: item_type.display_name for item_type in types}

        return merge_service_level_expectations(
            ServiceLevelExpectation(
                display_name=names.get(type_map.work_item_type_id, ""),
                days=type_map.service_level_expectation_in_days or 0,
                project_ids=(type_map.project_id,) if type_map.project_id else (),
            )
            for type_map in type_maps
        )

    async def get_service_level_data(self, perspective: str) -> ServiceLevelData:
        """
        Service level rows for normalised demands and work item types.

        Args:
            perspective: 'past', 'present', 'future' or 'upcoming'

        Returns:
            ServiceLevelData; both lists are empty without a client timezone
            or a valid analysis window
        """
        period = self.filters.date_period()
        if not self.filters.client_timezone or period.end is None:
            return ServiceLevelData(normalised_demands=[], work_item_types=[])

        client_end_date = period.end.astimezone(get_zone(self.filters.client_timezone))

        filters = self.filters
        if normalise_perspective(perspective) == "past":
            filters = replace(filters, date_analysis_option=DateAnalysisOptions.BECAME)

        demand_groups, type_items, demand_criteria, type_criteria = await asyncio.gather(
            self.get_work_items_by_demand(filters, perspective),
            self.get_type_work_items(filters, perspective),
            self.get_demand_service_level_criteria(),
            self.get_item_type_service_level_criteria(),
        )

        normalised_demands = [
            calculate_statistics(items, find_group_sle(key, demand_criteria), perspective, client_end_date)
            for key, items in demand_groups.items()
        ]

        work_item_types = []
        for key, items in group_by_type(type_items, type_criteria).items():
            entry = calculate_statistics(items, find_group_sle(key, type_criteria), perspective, client_end_date)
            work_item_types.append(replace(entry, project_id=key.project_id))

        logger.info(
            "Service level data calculated",
            extra={
                "org_id": self.org_id,
                "perspective": perspective,
                "normalised_demands": len(normalised_demands),
                "work_item_types": len(work_item_types),
            },
        )
        return ServiceLevelData(normalised_demands=normalised_demands, work_item_types=work_item_types)

    async def get_widget_information(self, perspective: str) -> list[WidgetInformation]:
        type_key = _PERSPECTIVE_WIDGETS.get(
            normalise_perspective(perspective) or "", WidgetTypes.UPCOMING_WORKTYPE_OVERVIEW
        )
        return await self.widgets.get_widget_information(type_key)
