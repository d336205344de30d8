"""
Lead Time Calculations

Completed-work duration analysis: distribution statistics, box plot,
histogram, scatterplot, per-demand summary table and per-type predictability.

Predictability trends rank each week's lead times against the type's SLE
(percent rank = share of items finishing within the SLE) and compare the two
most recent weeks, fortnights and four-week blocks.

Usage:
    calculations = LeadTimeCalculations(org_id, state, filters, work_item_types=types)
    summary = await calculations.get_distribution_summary()
    print(summary.percentile_85th, summary.target_for_predictability)
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import numpy as np

from flowmetrics.analysis.box_plot import build_box_plot
from flowmetrics.analysis.trend_analysis import get_trend_analysis_content
from flowmetrics.calculations.base import BaseCalculations
from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.constants import statistics_config
from flowmetrics.domain.metrics import (
    EMPTY_TREND,
    BoxPlotResult,
    DistributionSummary,
    TrendAnalysis,
    TrendAnalysisStructure,
)
from flowmetrics.domain.work_items import WorkItem, get_perspective_profile
from flowmetrics.providers.filters import QueryFilters
from flowmetrics.providers.interfaces import PredefinedFilterTags, StateProvider, WorkItemTypeService
from flowmetrics.providers.request_cache import RequestCache
from flowmetrics.utils.statistics import (
    get_distribution_shape,
    get_modes,
    get_percent_rank,
    get_percentile,
    get_target_for_predictability,
    get_variability_classification,
    round_half_up,
    round_to_decimal_places,
)

logger = get_logger(__name__)

DECIMAL_PLACES = statistics_config.DECIMAL_PLACES

WeekKey = tuple[int, int]


@dataclass(frozen=True)
class HistogramDatum:
    age_in_days: float
    work_item_ids: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"ageInDays": self.age_in_days, "workItems": [{"id": item_id} for item_id in self.work_item_ids]}


@dataclass(frozen=True)
class ScatterplotDatum:
    work_item_id: str
    title: str | None
    work_item_type: str | None
    arrival_date: str | None
    commitment_date: str | None
    departure_date: str | None
    lead_time_in_whole_days: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workItemId": self.work_item_id,
            "title": self.title,
            "workItemType": self.work_item_type,
            "arrivalDateNoTime": self.arrival_date,
            "commitmentDateNoTime": self.commitment_date,
            "departureDateNoTime": self.departure_date,
            "leadTimeInWholeDays": self.lead_time_in_whole_days,
        }


@dataclass(frozen=True)
class PercentileByName:
    item_type_name: str
    leadtime_percentile: int

    def to_dict(self) -> dict[str, Any]:
        return {"itemTypeName": self.item_type_name, "leadtimePercentile": self.leadtime_percentile}


@dataclass(frozen=True)
class LeadTimeSummaryRow:
    item_type_name: str
    leadtime_percentile: int
    trend_analysis_lead_time: TrendAnalysisStructure
    variability_lead_time: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemTypeName": self.item_type_name,
            "leadtimePercentile": self.leadtime_percentile,
            "trendAnalysisLeadTime": self.trend_analysis_lead_time.to_dict(),
            "variabilityLeadTime": self.variability_lead_time,
        }


@dataclass(frozen=True)
class SLEItem:
    """
    Service level of one normalised demand.

    Attributes:
        service_level_percent: Fraction (0-1, 2 decimals) of items within the SLE
    """

    item_type_name: str
    service_level_expectation_days: float
    service_level_percent: float
    trend_analysis_sle: TrendAnalysisStructure = EMPTY_TREND

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemTypeName": self.item_type_name,
            "serviceLevelExpectationDays": self.service_level_expectation_days,
            "serviceLevelPercent": self.service_level_percent,
            "trendAnalysisSLE": self.trend_analysis_sle.to_dict(),
        }


@dataclass(frozen=True)
class TypePredictability:
    item_type_name: str
    item_type_id: str
    service_level_expectation_days: float | None
    service_level_percent: float | None
    trend_analysis: TrendAnalysis = field(default_factory=TrendAnalysis)

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemTypeName": self.item_type_name,
            "itemTypeId": self.item_type_id,
            "serviceLevelExpectationDays": self.service_level_expectation_days,
            "serviceLevelPercent": self.service_level_percent,
            "trendAnalysis": self.trend_analysis.to_dict(),
        }


def build_distribution_summary(values: Sequence[float]) -> DistributionSummary:
    """
    Descriptive statistics of a duration sample.

    Returns an all-None summary for an empty sample.
    """
    if not values:
        return DistributionSummary()

    median = get_percentile(50, values)
    return DistributionSummary(
        minimum=min(values),
        maximum=max(values),
        modes=tuple(get_modes(values)),
        average=round_half_up(float(np.mean(values))),
        percentile_50th=median,
        percentile_85th=get_percentile(85, values),
        percentile_95th=get_percentile(95, values),
        percentile_98th=get_percentile(98, values),
        target_for_predictability=get_target_for_predictability(median),
    )


def build_histogram(work_items: Sequence[WorkItem], age_field: str) -> list[HistogramDatum]:
    """Work item ids grouped by whole days of age, ascending; items without an age are left out."""
    groups: dict[float, list[str]] = {}
    for item in work_items:
        age = getattr(item, age_field)
        if age is None:
            continue
        groups.setdefault(age, []).append(item.work_item_id)
    return [HistogramDatum(age_in_days=age, work_item_ids=tuple(groups[age])) for age in sorted(groups)]


def build_scatterplot(work_items: Sequence[WorkItem]) -> list[ScatterplotDatum]:
    def day(value: datetime | None) -> str | None:
        return value.date().isoformat() if value is not None else None

    return [
        ScatterplotDatum(
            work_item_id=item.work_item_id,
            title=item.title,
            work_item_type=item.flomatika_work_item_type_name,
            arrival_date=day(item.arrival_datetime),
            commitment_date=day(item.commitment_datetime),
            departure_date=day(item.departure_datetime),
            lead_time_in_whole_days=item.lead_time_in_whole_days,
        )
        for item in work_items
    ]


def _week_key(value: datetime) -> WeekKey:
    iso = value.isocalendar()
    return iso.year, iso.week


def group_durations_by_week(
    work_items: Sequence[WorkItem], date_field: str, age_field: str
) -> dict[WeekKey, list[float]]:
    """Durations per ISO (year, week) of the date field, ascending by week."""
    weeks: dict[WeekKey, list[float]] = {}
    for item in work_items:
        when = getattr(item, date_field)
        age = getattr(item, age_field)
        if when is None or age is None:
            continue
        weeks.setdefault(_week_key(when), []).append(age)
    return {week: weeks[week] for week in sorted(weeks)}


def _rank(values: Sequence[float], target: float) -> float:
    return round_to_decimal_places(get_percent_rank(values, target), DECIMAL_PLACES)


def _block_ranks(weekly: list[list[float]], block_size: int, target: float) -> list[float]:
    """Percent rank of consecutive blocks of weeks, aligned on the most recent week."""
    ranks = []
    end = len(weekly)
    while end - block_size >= 0:
        block = [value for week in weekly[end - block_size : end] for value in week]
        ranks.append(_rank(block, target))
        end -= block_size
    return list(reversed(ranks))


def _compare_latest(ranks: list[float], period: str) -> TrendAnalysisStructure:
    if len(ranks) < 2:
        return EMPTY_TREND
    return get_trend_analysis_content(ranks[-2], ranks[-1], period)


def get_percent_rank_trends(weekly_durations: dict[WeekKey, list[float]], target: float) -> TrendAnalysis:
    """
    Week, fortnight and four-week trends of the share of items within target.

    Args:
        weekly_durations: Durations per week, ascending by week
        target: SLE in days

    Returns:
        TrendAnalysis; a level without two complete blocks stays empty
    """
    weekly = list(weekly_durations.values())
    weekly_ranks = [_rank(durations, target) for durations in weekly]
    return TrendAnalysis(
        last_week=_compare_latest(weekly_ranks, "week"),
        last_two_weeks=_compare_latest(_block_ranks(weekly, 2, target), "two weeks"),
        last_four_weeks=_compare_latest(_block_ranks(weekly, 4, target), "four weeks"),
    )


def get_target_met_fraction(durations: Sequence[float], target: float) -> float | None:
    """Fraction (2 decimals) of durations within target; None without durations."""
    if not durations:
        return None
    achieved = sum(1 for duration in durations if duration <= target)
    return round_to_decimal_places(achieved / len(durations), DECIMAL_PLACES)


class LeadTimeCalculations(BaseCalculations):
    """Lead time dashboard calculations for one request."""

    def __init__(
        self,
        org_id: str,
        state: StateProvider,
        filters: QueryFilters,
        work_item_types: WorkItemTypeService,
        cache: RequestCache | None = None,
        summary_period_type: str = "past",
    ):
        super().__init__(org_id, state, filters, cache)
        self.work_item_types = work_item_types
        self.summary_period_type = summary_period_type

    async def get_completed_items(self) -> list[WorkItem]:
        return await self.get_work_items()

    async def get_lead_times(self, completed_items: list[WorkItem] | None = None) -> list[float]:
        if completed_items is None:
            completed_items = await self.get_completed_items()
        return [item.lead_time_in_whole_days for item in completed_items if item.lead_time_in_whole_days is not None]

    async def get_minimum(self) -> float:
        lead_times = await self.get_lead_times()
        return min(lead_times) if lead_times else 0

    async def get_maximum(self) -> float:
        lead_times = await self.get_lead_times()
        return max(lead_times) if lead_times else 0

    async def get_average(self, completed_items: list[WorkItem] | None = None) -> int:
        lead_times = await self.get_lead_times(completed_items)
        return round_half_up(float(np.mean(lead_times))) if lead_times else 0

    async def get_lead_time_box_plot(self) -> BoxPlotResult:
        return build_box_plot(await self.get_lead_times())

    async def get_percentile(self, percent: float) -> float:
        """Lead time percentile; 0 without completed work."""
        lead_times = await self.get_lead_times()
        return get_percentile(percent, lead_times) if lead_times else 0

    async def get_percentile_by_work_item_type_level(self, percent: float, level: str) -> float:
        """Lead time percentile of one work item type level (case-insensitive)."""
        lead_times = [
            item.lead_time_in_whole_days
            for item in await self.get_completed_items()
            if item.lead_time_in_whole_days is not None
            and (item.flomatika_work_item_type_level or "").lower() == level.lower()
        ]
        if not lead_times:
            return 0
        if len(lead_times) == 1:
            return lead_times[0]
        return get_percentile(percent, lead_times)

    async def get_shape_of_lead_time_distribution(self) -> str:
        return get_distribution_shape(await self.get_percentile(50), await self.get_percentile(98))

    def get_lead_time_variability(self, lead_times: Sequence[float]) -> str:
        return get_variability_classification(get_percentile(50, lead_times), get_percentile(98, lead_times))

    async def get_modes(self) -> list[float]:
        return get_modes(await self.get_lead_times())

    async def get_distribution_summary(self) -> DistributionSummary:
        return build_distribution_summary(await self.get_lead_times())

    async def get_histogram_data(self) -> list[HistogramDatum]:
        return build_histogram(await self.get_completed_items(), "lead_time_in_whole_days")

    async def get_completed_item_count(self) -> int:
        return len(await self.get_completed_items())

    async def get_scatterplot(self) -> list[ScatterplotDatum]:
        return build_scatterplot(await self.get_completed_items())

    async def get_lead_time_by_item_type_name(self) -> list[PercentileByName]:
        """Rounded 85th percentile lead time per normalised display name."""
        items = await self.get_normalised_work_items(tag=PredefinedFilterTags.NORMALISATION)

        groups: dict[str, list[float]] = {}
        for item in items:
            lead_times = groups.setdefault(item.normalised_display_name or "", [])
            if item.lead_time_in_whole_days is not None:
                lead_times.append(item.lead_time_in_whole_days)

        return [
            PercentileByName(
                item_type_name=name,
                leadtime_percentile=round_half_up(get_percentile(85, lead_times)) if lead_times else 0,
            )
            for name, lead_times in groups.items()
        ]

    async def get_lead_time_for_summary_table(self) -> list[LeadTimeSummaryRow]:
        """
        85th percentile, variability and week-over-week trend per normalised demand.

        The trend compares the 85th percentile of the two weeks before the last
        week of each group; a decrease is the good direction.
        """
        profile = get_perspective_profile(self.summary_period_type)
        items = await self.get_normalised_work_items(profile.state_category, PredefinedFilterTags.DEMAND)

        groups: dict[str, list[WorkItem]] = {}
        for item in items:
            groups.setdefault(item.normalised_display_name or "", []).append(item)

        rows = []
        for name, group_items in groups.items():
            durations = [getattr(item, profile.age_field) for item in group_items]
            durations = [duration for duration in durations if duration is not None]
            if not durations:
                continue

            weekly = list(group_durations_by_week(group_items, profile.join_date_field, profile.age_field).values())
            penultimate = weekly[-2] if len(weekly) >= 2 else (weekly[0] if weekly else [])
            antepenultimate = weekly[-3] if len(weekly) >= 3 else (weekly[0] if weekly else [])

            def p85(values: list[float]) -> int:
                return round_half_up(get_percentile(85, values)) if values else 0

            rows.append(
                LeadTimeSummaryRow(
                    item_type_name=name,
                    leadtime_percentile=p85(durations),
                    trend_analysis_lead_time=get_trend_analysis_content(
                        p85(antepenultimate), p85(penultimate), "week", decrease_is_good=True
                    ),
                    variability_lead_time=self.get_lead_time_variability(durations),
                )
            )
        return rows

    async def get_service_level_details_normalised(self) -> list[SLEItem]:
        """
        Share of items within the SLE and its week-over-week trend per normalised demand.

        Demands without a configured filter are left out.
        """
        profile = get_perspective_profile(self.summary_period_type)
        fql_filters = await self.fetch(
            "fql-filters",
            lambda: self.state.get_fql_filters(self.org_id, PredefinedFilterTags.DEMAND),
            tag=PredefinedFilterTags.DEMAND,
        )
        sle_by_name = {}
        for fql_filter in fql_filters:
            sle_by_name.setdefault(fql_filter.display_name, fql_filter.service_level_expectation_in_days or 0)

        items = await self.get_normalised_work_items(tag=PredefinedFilterTags.DEMAND)
        groups: dict[str, list[WorkItem]] = {}
        for item in items:
            if item.normalised_display_name in sle_by_name and getattr(item, profile.age_field) is not None:
                groups.setdefault(item.normalised_display_name, []).append(item)

        results = []
        for name, group_items in groups.items():
            target = sle_by_name[name]
            weekly = group_durations_by_week(group_items, profile.join_date_field, profile.age_field)
            weekly_ranks = [_rank(durations, target) for durations in weekly.values()]
            durations = [getattr(item, profile.age_field) for item in group_items]
            results.append(
                SLEItem(
                    item_type_name=name,
                    service_level_expectation_days=target,
                    service_level_percent=get_target_met_fraction(durations, target) or 0,
                    trend_analysis_sle=_compare_latest(weekly_ranks, "week"),
                )
            )
        return results

    async def get_predictability(self) -> list[TypePredictability]:
        """
        Percent-rank trends and target met per work item type.

        Types are restricted to filters.work_item_types when set; types
        without items are left out.
        """
        profile = get_perspective_profile(self.summary_period_type)
        types = await self.fetch("work-item-types", lambda: self.work_item_types.get_types(self.org_id))
        if self.filters.work_item_types:
            types = [item_type for item_type in types if item_type.id in self.filters.work_item_types]

        items = await self.get_work_items(profile.state_category)

        results = []
        for item_type in types:
            type_items = [item for item in items if item.flomatika_work_item_type_id == item_type.id]
            weekly = group_durations_by_week(type_items, profile.join_date_field, profile.age_field)
            if not weekly:
                continue

            target = item_type.service_level_expectation_in_days or 0
            durations = [duration for week in weekly.values() for duration in week]
            results.append(
                TypePredictability(
                    item_type_name=item_type.display_name,
                    item_type_id=item_type.id,
                    service_level_expectation_days=item_type.service_level_expectation_in_days,
                    service_level_percent=get_target_met_fraction(durations, target),
                    trend_analysis=get_percent_rank_trends(weekly, target),
                )
            )

        logger.debug(
            "Lead time predictability calculated",
            extra={"org_id": self.org_id, "work_item_types": len(results)},
        )
        return results
