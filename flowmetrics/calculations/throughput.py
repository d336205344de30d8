"""
Throughput Calculations

Completed-work analysis: trend, summary table by normalised demand, weekly run
chart, delivery-rate statistics, breakdowns and average weekly throughput.

Usage:
    calculations = ThroughputCalculations(
        org_id, state, filters,
        work_item_types=types, class_of_service=cos, nature_of_work=now, value_area=va,
    )
    run_chart = await calculations.get_throughput_run_chart_data()
    box_plot = await calculations.get_delivery_rate_box_plot()
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

import numpy as np

from flowmetrics.analysis.aggregation import generate_date_array, unique_by_id
from flowmetrics.analysis.box_plot import build_box_plot
from flowmetrics.analysis.throughput_variability import get_throughput_variability
from flowmetrics.analysis.trend_analysis import get_trend_analysis_content, get_trend_analysis_response
from flowmetrics.calculations.base import BaseCalculations
from flowmetrics.calculations.breakdowns import (
    AssigneeGroup,
    CategoryCount,
    assignee_breakdown,
    class_of_service_breakdown,
    demand_breakdown,
    nature_of_work_breakdown,
    value_area_breakdown,
    work_item_type_breakdown,
)
from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.metrics import BoxPlotResult, TrendAnalysis, TrendAnalysisStructure
from flowmetrics.domain.work_items import WorkItem, get_perspective_profile
from flowmetrics.providers.filters import QueryFilters
from flowmetrics.providers.interfaces import (
    ClassificationService,
    PredefinedFilterTags,
    StateProvider,
    WorkItemTypeService,
)
from flowmetrics.providers.request_cache import RequestCache
from flowmetrics.utils.datetime_utils import DateInterval, end_of, is_date_last_day_of_week, shift
from flowmetrics.utils.statistics import get_percentile, round_half_up

logger = get_logger(__name__)


@dataclass(frozen=True)
class ThroughputData:
    count: int
    from_date: datetime
    until_date: datetime
    num_days: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "fromDate": self.from_date.isoformat(),
            "untilDate": self.until_date.isoformat(),
            "numDays": self.num_days,
        }


@dataclass(frozen=True)
class ThroughputSummaryRow:
    item_type_name: str
    throughput: int
    trend_analysis_throughput: TrendAnalysisStructure
    variability_throughput: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemTypeName": self.item_type_name,
            "throughput": self.throughput,
            "trendAnalysisThroughput": self.trend_analysis_throughput.to_dict(),
            "variabilityThroughput": self.variability_throughput,
        }


@dataclass
class WeeklyThroughput:
    """Items completed in the ISO week ending on week_ending_on (a Sunday)."""

    week_ending_on: date
    work_item_ids: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.work_item_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "weekEndingOn": self.week_ending_on.isoformat(),
            "workItems": [{"id": item_id} for item_id in self.work_item_ids],
        }


def _local(value: datetime, interval: DateInterval) -> datetime:
    zone = interval.start.tzinfo if interval.start is not None else None
    if zone is not None and value.tzinfo is not None:
        return value.astimezone(zone)
    return value


def build_weekly_throughput(work_items: list[WorkItem], interval: DateInterval) -> list[WeeklyThroughput]:
    """
    Weekly completed counts keyed by the Sunday ending each week.

    Weeks come from the departure dates (in the interval's timezone); every
    other week touched by the interval is added with no items, so the series
    spans the whole window. Ascending by week.
    """
    departed = sorted(
        (item for item in work_items if item.departure_datetime is not None),
        key=lambda item: item.departure_datetime,  # type: ignore[arg-type, return-value]
    )

    weeks: dict[date, WeeklyThroughput] = {}
    for item in departed:
        assert item.departure_datetime is not None
        week_ending_on = end_of(_local(item.departure_datetime, interval), "week").date()
        weeks.setdefault(week_ending_on, WeeklyThroughput(week_ending_on)).work_item_ids.append(item.work_item_id)

    if not weeks:
        return []

    for window in interval.split_by_weeks():
        assert window.end is not None
        week_ending_on = end_of(window.end, "week").date()
        weeks.setdefault(week_ending_on, WeeklyThroughput(week_ending_on))

    return [weeks[week] for week in sorted(weeks)]


class ThroughputCalculations(BaseCalculations):
    """
    Throughput dashboard calculations for one request.

    Completed work items are fetched once per request (through the request
    cache) and shared by every method.
    """

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
        summary_period_type: str = "past",
    ):
        super().__init__(org_id, state, filters, cache)
        self.work_item_types = work_item_types
        self.class_of_service = class_of_service
        self.nature_of_work = nature_of_work
        self.value_area = value_area
        self.summary_period_type = summary_period_type

    async def get_completed_items(self) -> list[WorkItem]:
        return await self.get_work_items()

    async def get_value_demand_completed_items(self) -> list[WorkItem]:
        return await self.get_normalised_work_items(tag=PredefinedFilterTags.QUALITY)

    async def get_trend_analysis(self) -> TrendAnalysis:
        period = self.filters.date_period()
        week_numbers = [
            _local(item.departure_datetime, period).isocalendar().week
            for item in await self.get_completed_items()
            if item.departure_datetime is not None
        ]
        return get_trend_analysis_response(week_numbers, period)

    async def get_throughput_data(self, completed_items: list[WorkItem] | None = None) -> ThroughputData:
        """
        Count of unique completed items and the span of their departure dates.

        Without departures both dates are now (UTC).
        """
        if completed_items is None:
            completed_items = await self.get_completed_items()
        unique_items = unique_by_id(completed_items)

        departures = [item.departure_datetime for item in unique_items if item.departure_datetime is not None]
        now = datetime.now(UTC)
        from_date = min(departures) if departures else now
        until_date = max(departures) if departures else now

        return ThroughputData(
            count=len(unique_items),
            from_date=from_date,
            until_date=until_date,
            num_days=(until_date - from_date).total_seconds() / 86400,
        )

    async def get_throughput_summary_table(self) -> list[ThroughputSummaryRow]:
        """
        Throughput, variability and week-over-week trend per normalised demand.

        The trend compares the two most recent weeks before the last week
        present in each group.
        """
        profile = get_perspective_profile(self.summary_period_type)
        date_field = profile.join_date_field
        items = await self.get_normalised_work_items(profile.state_category, PredefinedFilterTags.DEMAND)
        if not items:
            return []

        def item_date(item: WorkItem) -> datetime:
            value = getattr(item, date_field)
            return value if value is not None else datetime.min.replace(tzinfo=UTC)

        groups: dict[str, list[WorkItem]] = {}
        for item in sorted(items, key=item_date):
            groups.setdefault(item.normalised_display_name or "", []).append(item)

        rows = []
        for name, group_items in groups.items():
            throughput = len(group_items)

            per_week: dict[int, int] = {}
            for item in group_items:
                value = getattr(item, date_field)
                if value is None:
                    continue
                week = value.isocalendar().week
                per_week[week] = per_week.get(week, 0) + 1

            weeks = sorted(per_week)
            penultimate = weeks[-2] if len(weeks) >= 2 else (weeks[0] if weeks else None)
            antepenultimate = weeks[-3] if len(weeks) >= 3 else (weeks[0] if weeks else None)

            rows.append(
                ThroughputSummaryRow(
                    item_type_name=name,
                    throughput=throughput,
                    trend_analysis_throughput=get_trend_analysis_content(
                        per_week.get(antepenultimate, 0) if antepenultimate is not None else 0,
                        per_week.get(penultimate, 0) if penultimate is not None else 0,
                        "week",
                    ),
                    variability_throughput=get_throughput_variability([throughput]),
                )
            )
        return rows

    async def get_throughput_run_chart_data(
        self, completed_items: list[WorkItem] | None = None
    ) -> list[WeeklyThroughput]:
        if completed_items is None:
            completed_items = await self.get_completed_items()
        return build_weekly_throughput(completed_items, self.filters.date_period())

    async def _delivery_rate(self) -> list[int]:
        return [week.count for week in await self.get_throughput_run_chart_data()]

    async def get_delivery_rate_box_plot(self) -> BoxPlotResult:
        return build_box_plot(await self._delivery_rate())

    async def get_percentile(self, percent: float) -> float:
        """Percentile of the weekly delivery rate; 0 without completed work."""
        delivery_rate = await self._delivery_rate()
        if not delivery_rate:
            return 0
        return get_percentile(percent, delivery_rate)

    async def get_minimum(self) -> int:
        delivery_rate = await self._delivery_rate()
        return min(delivery_rate) if delivery_rate else 0

    async def get_maximum(self) -> int:
        delivery_rate = await self._delivery_rate()
        return max(delivery_rate) if delivery_rate else 0

    async def get_work_item_type_analysis_data(self) -> list[CategoryCount]:
        types = await self.fetch("work-item-types", lambda: self.work_item_types.get_types(self.org_id))
        return work_item_type_breakdown(await self.get_completed_items(), types)

    async def get_demand_analysis_data(self) -> list[CategoryCount]:
        return demand_breakdown(await self.get_completed_items())

    async def get_class_of_service_analysis_data(self) -> list[CategoryCount]:
        classes = await self.fetch("classes-of-service", lambda: self.class_of_service.get_everything(self.org_id))
        return class_of_service_breakdown(await self.get_completed_items(), classes)

    async def get_planned_unplanned_analysis_data(self) -> list[CategoryCount]:
        natures = await self.fetch("natures-of-work", lambda: self.nature_of_work.get_everything(self.org_id))
        return nature_of_work_breakdown(await self.get_completed_items(), natures)

    async def get_value_area_analysis_data(self) -> list[CategoryCount]:
        areas = await self.fetch("value-areas", lambda: self.value_area.get_everything(self.org_id))
        return value_area_breakdown(await self.get_completed_items(), areas)

    async def get_assigned_to_analysis_data(self) -> list[AssigneeGroup]:
        return assignee_breakdown(await self.get_completed_items())

    def get_average_throughput(self, completed_items: list[WorkItem]) -> int:
        """
        Mean items completed per whole week of the analysis window, rounded.

        A window ending mid-week stops at the previous Sunday; items departing
        after it are left out. Returns 0 for an invalid window.
        """
        period = self.filters.date_period()
        if not period.is_valid:
            return 0

        assert period.start is not None and period.end is not None
        effective_end = period.end
        if not is_date_last_day_of_week(effective_end):
            effective_end = end_of(shift(period.end, "week", -1), "week")

        departed = [
            item
            for item in completed_items
            if item.departure_datetime is not None and item.departure_datetime < effective_end
        ]

        weekly_counts = []
        for week_start in generate_date_array(DateInterval(period.start, effective_end), "week"):
            week_end = end_of(week_start, "week")
            weekly_counts.append(
                sum(1 for item in departed if week_start < item.departure_datetime < week_end)  # type: ignore[operator]
            )

        if not weekly_counts:
            return 0

        average = round_half_up(float(np.mean(weekly_counts)))
        logger.debug("Average weekly throughput", extra={"org_id": self.org_id, "weeks": len(weekly_counts)})
        return average
