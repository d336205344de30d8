"""
Work In Progress Calculations

In-progress analysis: WIP count, daily run chart, trend, summary table with
flow debt, daily-WIP variability per normalised demand, WIP age statistics,
histogram, scatterplot and breakdowns.

WIP is read without the date window (filter_by_date=False): an item started
before the window is still in progress inside it.

Usage:
    calculations = WipCalculations(
        org_id, state, filters,
        work_item_types=types, class_of_service=cos, nature_of_work=now, value_area=va,
    )
    wip = await calculations.get_wip_count()
    run_chart = await calculations.get_wip_run_chart()
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, timedelta
from typing import Any

import numpy as np

from flowmetrics.analysis.box_plot import build_box_plot
from flowmetrics.analysis.trend_analysis import ArrowColours, get_trend_analysis_response
from flowmetrics.calculations.base import BaseCalculations
from flowmetrics.calculations.breakdowns import (
    AssigneeGroup,
    CategoryCount,
    assignee_breakdown,
    class_of_service_breakdown,
    demand_breakdown,
    nature_of_work_breakdown,
    state_breakdown,
    value_area_breakdown,
    work_item_type_breakdown,
)
from flowmetrics.calculations.lead_time import (
    HistogramDatum,
    PercentileByName,
    build_distribution_summary,
    build_histogram,
)
from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.constants import statistics_config
from flowmetrics.domain.metrics import BoxPlotResult, DistributionSummary, TrendAnalysis
from flowmetrics.domain.work_items import StateCategory, WorkItem
from flowmetrics.providers.filters import QueryFilters
from flowmetrics.providers.interfaces import (
    ClassificationService,
    PredefinedFilterTags,
    StateProvider,
    WorkItemTypeService,
)
from flowmetrics.providers.request_cache import RequestCache
from flowmetrics.utils.datetime_utils import DateInterval, start_of
from flowmetrics.utils.statistics import (
    get_distribution_shape,
    get_modes,
    get_percentile,
    get_variability_classification,
    round_half_up,
    round_to_decimal_places,
)

logger = get_logger(__name__)

WIP_TREND_COLOURS = ArrowColours(up_colour="yellow", down_colour="yellow", stable_colour="yellow")
NO_VARIABILITY = "-"


@dataclass(frozen=True)
class WipData:
    """
    Current WIP.

    Attributes:
        count: All in-progress items
        count_in_date: Items committed inside the analysis window
        from_date: Earliest commitment inside the window (UTC)
        until_date: Latest commitment inside the window (UTC)
        num_days: Whole days between from_date and until_date
    """

    count: int
    count_in_date: int
    from_date: datetime
    until_date: datetime
    num_days: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "countInDate": self.count_in_date,
            "fromDate": self.from_date.isoformat(),
            "untilDate": self.until_date.isoformat(),
            "numDays": self.num_days,
        }


@dataclass(frozen=True)
class WipSummaryRow:
    item_type_name: str
    wip_age_85_percentile: int
    wip_count: int
    flow_debt: str
    wip_age_average: int
    wip_variability: str = NO_VARIABILITY

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemTypeName": self.item_type_name,
            "wipAge85Percentile": self.wip_age_85_percentile,
            "wipCount": self.wip_count,
            "wipVariability": self.wip_variability,
            "flowDebt": self.flow_debt,
            "wipAgeAverage": self.wip_age_average,
        }


@dataclass(frozen=True)
class WipVariabilityRow:
    item_type_name: str
    wip_variability: str

    def to_dict(self) -> dict[str, Any]:
        return {"itemTypeName": self.item_type_name, "wipVariability": self.wip_variability}


@dataclass(frozen=True)
class WipScatterplotDatum:
    work_item_id: str
    wip_age_in_whole_days: float | None
    title: str | None
    state: str | None
    work_item_type: str | None
    arrival_date: str | None
    commitment_date: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workItemId": self.work_item_id,
            "wipAgeInWholeDays": self.wip_age_in_whole_days,
            "title": self.title,
            "state": self.state,
            "workItemType": self.work_item_type,
            "arrivalDateNoTime": self.arrival_date,
            "commitmentDateNoTime": self.commitment_date,
        }


def format_flow_debt(wip_age_85_percentile: float, lead_time_85_percentile: float) -> str:
    """
    WIP age relative to lead time, e.g. '2x'.

    Example:
        >>> format_flow_debt(30, 10)
        '3x'
        >>> format_flow_debt(30, 0)
        '0x'
    """
    if not lead_time_85_percentile:
        return "0x"
    flow_debt = wip_age_85_percentile / lead_time_85_percentile
    if not flow_debt:
        return "0x"
    return f"{round_half_up(flow_debt)}x"


def _day(value: datetime | None, interval: DateInterval) -> datetime | None:
    if value is None:
        return None
    zone = interval.start.tzinfo if interval.start is not None else None
    if zone is not None and value.tzinfo is not None:
        value = value.astimezone(zone)
    return start_of(value, "day")


def _days(interval: DateInterval) -> list[datetime]:
    if not interval.is_valid:
        return []
    assert interval.start is not None and interval.end is not None
    days = []
    current = start_of(interval.start, "day")
    while current <= interval.end:
        days.append(current)
        current += timedelta(days=1)
    return days


def is_in_progress_on(work_item: WorkItem, day: datetime, interval: DateInterval) -> bool:
    """True when the item was committed on or before day and had not departed before it."""
    commitment_day = _day(work_item.commitment_datetime, interval)
    if commitment_day is None or commitment_day > day:
        return False
    departure_day = _day(work_item.departure_datetime, interval)
    return departure_day is None or departure_day >= day


def build_daily_wip(work_items: list[WorkItem], interval: DateInterval) -> list[tuple[date, int]]:
    """
    Items in progress on each day of the interval, ascending by day.

    Example:
        [(date(2024, 3, 4), 14), (date(2024, 3, 5), 15), ...]
    """
    return [
        (day.date(), sum(1 for item in work_items if is_in_progress_on(item, day, interval)))
        for day in _days(interval)
    ]


class WipCalculations(BaseCalculations):
    """Work in progress dashboard calculations for one request."""

    def __init__(
        self,
        org_id: str,
        state: StateProvider,
        filters: QueryFilters,
        work_item_types: WorkItemTypeService,
        class_of_service: ClassificationService,
        nature_of_work: ClassificationService,
        value_area: ClassificationService,
        cache: RequestCache | None = None,
    ):
        super().__init__(org_id, state, filters, cache)
        self.undated_filters = replace(filters, filter_by_date=False)
        self.work_item_types = work_item_types
        self.class_of_service = class_of_service
        self.nature_of_work = nature_of_work
        self.value_area = value_area

    async def get_work_in_progress(self) -> list[WorkItem]:
        return await self.get_work_items(StateCategory.IN_PROGRESS, self.undated_filters)

    async def get_completed_items(self) -> list[WorkItem]:
        return await self.get_work_items(StateCategory.COMPLETED, self.undated_filters)

    async def get_current_work_in_progress(self) -> list[WorkItem]:
        """In-progress items with their extended fields."""
        return await self.fetch(
            "extended-work-items",
            lambda: self.state.get_extended_work_items(self.org_id, StateCategory.IN_PROGRESS, self.undated_filters),
            filters=self.undated_filters,
            state_category=StateCategory.IN_PROGRESS.value,
        )

    async def _normalised_demand_items(self) -> list[list[WorkItem]]:
        """In-progress and completed normalised demand items, ignoring the date window."""
        demand = PredefinedFilterTags.DEMAND
        return await asyncio.gather(
            self.get_normalised_work_items(StateCategory.IN_PROGRESS, demand, self.undated_filters),
            self.get_normalised_work_items(StateCategory.COMPLETED, demand, self.undated_filters),
        )

    async def get_wip_count(self, work_in_progress: list[WorkItem] | None = None) -> WipData:
        """
        WIP count and the commitment span of the items committed in the window.

        Without items committed in the window the dates are now (UTC).
        """
        if work_in_progress is None:
            work_in_progress = await self.get_work_in_progress()

        now = datetime.now(UTC)
        period = self.filters.date_period()
        in_window = sorted(
            (
                item
                for item in work_in_progress
                if item.commitment_datetime is not None and period.contains(item.commitment_datetime)
            ),
            key=lambda item: item.commitment_datetime,  # type: ignore[arg-type, return-value]
        )

        if not in_window:
            return WipData(count=len(work_in_progress), count_in_date=0, from_date=now, until_date=now, num_days=0)

        from_date = in_window[0].commitment_datetime.astimezone(UTC)  # type: ignore[union-attr]
        until_date = in_window[-1].commitment_datetime.astimezone(UTC)  # type: ignore[union-attr]
        return WipData(
            count=len(work_in_progress),
            count_in_date=len(in_window),
            from_date=from_date,
            until_date=until_date,
            num_days=round_half_up((until_date - from_date).total_seconds() / 86400),
        )

    async def get_wip_run_chart(self) -> list[tuple[date, int]]:
        """Daily WIP over the analysis window, counting completed items while they were in progress."""
        work_in_progress, completed_items = await asyncio.gather(
            self.get_work_in_progress(), self.get_completed_items()
        )
        in_progress_ids = {item.work_item_id for item in work_in_progress}
        all_items = work_in_progress + [item for item in completed_items if item.work_item_id not in in_progress_ids]

        return build_daily_wip(all_items, self.filters.date_period())

    async def get_trend_analysis(self) -> TrendAnalysis:
        """Trend of the daily WIP; every arrow is yellow since neither direction is good."""
        period = self.filters.date_period()
        week_numbers = [
            day.isocalendar().week for day, count in await self.get_wip_run_chart() for _ in range(count)
        ]
        return get_trend_analysis_response(week_numbers, period, WIP_TREND_COLOURS)

    async def get_wip_for_summary_table(self, lead_time_data: list[PercentileByName]) -> list[WipSummaryRow]:
        """
        WIP age, count and flow debt per normalised demand.

        Flow debt relates the 85th percentile WIP age to the 85th percentile
        lead time of the same demand.
        """
        work_in_progress, _ = await self._normalised_demand_items()
        if not work_in_progress:
            return []

        lead_time_by_name = {row.item_type_name: row.leadtime_percentile for row in lead_time_data}

        groups: dict[str, list[WorkItem]] = {}
        for item in work_in_progress:
            groups.setdefault(item.normalised_display_name or "", []).append(item)

        rows = []
        for name, group_items in groups.items():
            wip_ages = [item.wip_age_in_whole_days for item in group_items if item.wip_age_in_whole_days is not None]
            wip_age_85 = round_half_up(get_percentile(85, wip_ages)) if wip_ages else 0
            rows.append(
                WipSummaryRow(
                    item_type_name=name,
                    wip_age_85_percentile=wip_age_85,
                    wip_count=len(group_items),
                    flow_debt=format_flow_debt(wip_age_85, lead_time_by_name.get(name, 0)),
                    wip_age_average=round_half_up(float(np.mean(wip_ages))) if wip_ages else 0,
                )
            )
        return rows

    async def get_wip_variability_for_summary_table(self) -> list[WipVariabilityRow]:
        """Variability of the daily WIP of each normalised demand over the analysis window."""
        work_in_progress, completed_items = await self._normalised_demand_items()
        period = self.filters.date_period()

        groups: dict[str, list[WorkItem]] = {}
        for item in completed_items + work_in_progress:
            groups.setdefault(item.normalised_display_name or "", []).append(item)

        rows = []
        for name, group_items in groups.items():
            daily_counts = [count for _, count in build_daily_wip(group_items, period)]
            variability = self.get_wip_variability(daily_counts) if daily_counts else NO_VARIABILITY
            rows.append(WipVariabilityRow(item_type_name=name, wip_variability=variability or NO_VARIABILITY))
        return rows

    def get_wip_variability(self, wip_values: list[float]) -> str:
        return get_variability_classification(get_percentile(50, wip_values), get_percentile(98, wip_values))

    async def get_wip_ages(self) -> list[float]:
        return [
            item.wip_age_in_whole_days
            for item in await self.get_work_in_progress()
            if item.wip_age_in_whole_days is not None
        ]

    async def get_minimum(self) -> float:
        wip_ages = await self.get_wip_ages()
        return min(wip_ages) if wip_ages else 0

    async def get_maximum(self) -> float:
        wip_ages = await self.get_wip_ages()
        return max(wip_ages) if wip_ages else 0

    async def get_average(self) -> int:
        wip_ages = await self.get_wip_ages()
        return round_half_up(float(np.mean(wip_ages))) if wip_ages else 0

    async def get_modes(self) -> list[float]:
        return get_modes(await self.get_wip_ages())

    async def get_wip_age_box_plot(self) -> BoxPlotResult:
        return build_box_plot(await self.get_wip_ages())

    async def get_percentile(self, percent: float) -> float:
        wip_ages = await self.get_wip_ages()
        return get_percentile(percent, wip_ages) if wip_ages else 0

    async def get_percentile_by_work_item_type_level(self, percent: float, level: str) -> float:
        wip_ages = [
            item.wip_age_in_whole_days
            for item in await self.get_current_work_in_progress()
            if item.wip_age_in_whole_days is not None
            and (item.flomatika_work_item_type_level or "").lower() == level.lower()
        ]
        if not wip_ages:
            return 0
        if len(wip_ages) == 1:
            return wip_ages[0]
        return round_to_decimal_places(get_percentile(percent, wip_ages), statistics_config.DECIMAL_PLACES)

    async def get_shape_of_wip_age_distribution(self) -> str:
        return get_distribution_shape(await self.get_percentile(50), await self.get_percentile(98))

    async def get_distribution_summary(self) -> DistributionSummary:
        return build_distribution_summary(await self.get_wip_ages())

    async def get_histogram_data(self) -> list[HistogramDatum]:
        return build_histogram(await self.get_work_in_progress(), "wip_age_in_whole_days")

    async def get_scatterplot(self) -> list[WipScatterplotDatum]:
        def day(value: datetime | None) -> str | None:
            return value.date().isoformat() if value is not None else None

        return [
            WipScatterplotDatum(
                work_item_id=item.work_item_id,
                wip_age_in_whole_days=item.wip_age_in_whole_days,
                title=item.title,
                state=item.state,
                work_item_type=item.flomatika_work_item_type_name,
                arrival_date=day(item.arrival_datetime),
                commitment_date=day(item.commitment_datetime),
            )
            for item in await self.get_work_in_progress()
        ]

    async def get_work_item_type_analysis_data(self) -> list[CategoryCount]:
        types = await self.fetch("work-item-types", lambda: self.work_item_types.get_types(self.org_id))
        return work_item_type_breakdown(await self.get_work_in_progress(), types)

    async def get_demand_analysis_data(self) -> list[CategoryCount]:
        return demand_breakdown(await self.get_work_in_progress())

    async def get_class_of_service_analysis_data(self) -> list[CategoryCount]:
        classes = await self.fetch("classes-of-service", lambda: self.class_of_service.get_everything(self.org_id))
        return class_of_service_breakdown(await self.get_work_in_progress(), classes)

    async def get_planned_unplanned_analysis_data(self) -> list[CategoryCount]:
        natures = await self.fetch("natures-of-work", lambda: self.nature_of_work.get_everything(self.org_id))
        return nature_of_work_breakdown(await self.get_work_in_progress(), natures)

    async def get_value_area_analysis_data(self) -> list[CategoryCount]:
        areas = await self.fetch("value-areas", lambda: self.value_area.get_everything(self.org_id))
        return value_area_breakdown(await self.get_work_in_progress(), areas)

    async def get_state_analysis_data(self) -> list[CategoryCount]:
        return state_breakdown(await self.get_work_in_progress())

    async def get_assigned_to_analysis_data(self) -> list[AssigneeGroup]:
        return assignee_breakdown(await self.get_work_in_progress())
