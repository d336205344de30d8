"""
Fitness Criteria Calculations

The six delivery-governance KPIs, each combining a headline figure, a
historical series per aggregation bucket and, where a benchmark exists, an
industry comparison message:
    - Speed: lead time per work item type level
    - Service level expectation: share of completed items within their SLE, with a grade
    - Predictability: lead time and throughput variability
    - Productivity: weekly throughput against its own mean and spread
    - Customer value: share of value demand among completed items
    - Flow efficiency: active time against total time

Completed work items and SLE configuration are fetched once per request
through the request cache and shared by every KPI.

Usage:
    calculations = FitnessCriteriaCalculations(org_id, state, filters, work_item_types, widgets)
    speed, sle = await asyncio.gather(calculations.get_speed(), calculations.get_service_level_expectation())
    print(speed.team.percentile_85th, sle.grade)
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

import numpy as np

from flowmetrics.analysis.aggregation import (
    format_aggregation_label,
    get_completed_work_items_by_aggregation,
    unique_by_id,
)
from flowmetrics.analysis.throughput_variability import (
    ProductivityByAggregate,
    TrendColor,
    calculate_productivity_by_mean_and_stdv,
    get_productivity_color,
    get_rolling_variability,
    get_throughput_by_coefficient,
)
from flowmetrics.analysis.trend_analysis import TrendDirection, get_percentual_difference
from flowmetrics.benchmarks.industry_standard import (
    FLOW_EFFICIENCY_LABEL,
    BenchmarkTable,
    IndustryBenchmarks,
    get_benchmarks,
    get_industry_cohort_message,
    get_industry_standard_message,
)
from flowmetrics.calculations.base import BaseCalculations
from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.constants import statistics_config
from flowmetrics.domain.metrics import EMPTY_TREND, TrendAnalysisStructure
from flowmetrics.domain.work_items import WorkItem
from flowmetrics.providers.filters import QueryFilters
from flowmetrics.providers.interfaces import (
    PredefinedFilterTags,
    StateProvider,
    WidgetInformation,
    WidgetInformationProvider,
    WidgetTypes,
    WorkItemTypeService,
)
from flowmetrics.providers.request_cache import RequestCache
from flowmetrics.utils.datetime_utils import business_days_between
from flowmetrics.utils.statistics import get_percentile, is_variability_high, round_half_up

logger = get_logger(__name__)

PORTFOLIO_LEVEL = "Portfolio"
TEAM_LEVEL = "Team"
INDIVIDUAL_CONTRIBUTOR_LEVEL = "Individual Contributor"

VALUE_DEMAND = "Value Demand"
MESSAGE_SEPARATOR = "<br/><br/>"

# (minimum percentage, grade), highest first
SERVICE_LEVEL_GRADES = (
    (90, "A +"),
    (85, "A"),
    (80, "A -"),
    (77, "B +"),
    (73, "B"),
    (70, "B -"),
    (65, "C +"),
    (60, "C"),
    (55, "C -"),
    (50, "D"),
)
FAILING_GRADE = "F"

HistoricalPoint = tuple[str, Any]


@dataclass(frozen=True)
class SpeedValues:
    percentile_85th: int = 0
    median: int = 0
    average: int = 0
    tail: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "percentile85th": self.percentile_85th,
            "median": self.median,
            "average": self.average,
            "tail": self.tail,
        }


@dataclass(frozen=True)
class SpeedHistory:
    """85th percentile lead time and time to commit per bucket and level; None for an empty bucket."""

    portfolio_85th_percentile: list[HistoricalPoint]
    team_85th_percentile: list[HistoricalPoint]
    ic_85th_percentile: list[HistoricalPoint]
    time_to_commit_85th_percentile_portfolio: list[HistoricalPoint]
    time_to_commit_85th_percentile_team: list[HistoricalPoint]
    time_to_commit_85th_percentile_ic: list[HistoricalPoint]


@dataclass(frozen=True)
class Speed:
    portfolio: SpeedValues
    team: SpeedValues
    ic: SpeedValues
    history: SpeedHistory
    industry_standard_message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "portfolio": self.portfolio.to_dict(),
            "team": self.team.to_dict(),
            "ic": self.ic.to_dict(),
            "portfolioPercentile85thChart": self.history.portfolio_85th_percentile,
            "teamPercentile85thChart": self.history.team_85th_percentile,
            "icPercentile85thChart": self.history.ic_85th_percentile,
            "timeToCommit85thPercentilePortfolio": self.history.time_to_commit_85th_percentile_portfolio,
            "timeToCommit85thPercentileTeam": self.history.time_to_commit_85th_percentile_team,
            "timeToCommit85thPercentileIC": self.history.time_to_commit_85th_percentile_ic,
            "industryStandardMessage": self.industry_standard_message,
        }


@dataclass(frozen=True)
class ServiceLevelCount:
    """Completed items of one work item type measured against its SLE."""

    item_type_name: str
    item_type_id: str
    service_level_met_count: int
    service_level_count: int


@dataclass(frozen=True)
class ServiceLevelFitness:
    service_level_expectation: int
    grade: str
    historical: list[HistoricalPoint]
    industry_standard_message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "serviceLevelExpectation": self.service_level_expectation,
            "grade": self.grade,
            "historical": self.historical,
            "industryStandardMessage": self.industry_standard_message,
        }


@dataclass(frozen=True)
class Predictability:
    leadtime: str
    throughput: str
    lead_time_historical: list[HistoricalPoint]
    throughput_historical: list[HistoricalPoint]

    def to_dict(self) -> dict[str, Any]:
        return {
            "leadtime": self.leadtime,
            "throughput": self.throughput,
            "leadTimeHistorical": self.lead_time_historical,
            "throughputHistorical": self.throughput_historical,
        }


@dataclass(frozen=True)
class Productivity:
    mean: int
    current: float
    last_week: float
    trend_analysis: TrendAnalysisStructure
    productivity_label: str
    productivity_color: str
    last_productivity_result: list[ProductivityByAggregate] = field(default_factory=list)
    historical: list[tuple[str, float, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mean": self.mean,
            "current": self.current,
            "lastWeek": self.last_week,
            "trendAnalysis": self.trend_analysis.to_dict(),
            "productivityLabel": self.productivity_label,
            "productivityColor": self.productivity_color,
            "lastProductivityResult": [
                {
                    "aggregationDate": result.aggregation_date,
                    "throughput": result.throughput,
                    "mean": result.mean,
                    "stdev": result.stdev,
                    "productivityVal": result.productivity_val,
                    "productivityLabel": result.productivity_label,
                }
                for result in self.last_productivity_result
            ],
            "historical": self.historical,
        }


@dataclass(frozen=True)
class CustomerValue:
    customer_value_work_percentage: float | None
    historical: list[HistoricalPoint] = field(default_factory=list)
    industry_standard_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "customerValueWorkPercentage": self.customer_value_work_percentage,
            "historical": self.historical,
            "industryStandardMessage": self.industry_standard_message,
        }


@dataclass(frozen=True)
class FlowEfficiency:
    average_of_waiting_time: int
    industry_standard_message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "averageOfWaitingTime": self.average_of_waiting_time,
            "industryStandardMessage": self.industry_standard_message,
        }


@dataclass(frozen=True)
class FitnessWidgetInformation:
    speed: list[WidgetInformation]
    service_level_expectation: list[WidgetInformation]
    predictability: list[WidgetInformation]
    productivity: list[WidgetInformation]
    customer_value: list[WidgetInformation]
    flow_efficiency: list[WidgetInformation]

    def to_dict(self) -> dict[str, Any]:
        return {
            name: [widget.to_dict() for widget in getattr(self, attribute)]
            for name, attribute in (
                ("speed", "speed"),
                ("serviceLevelExpectation", "service_level_expectation"),
                ("predictability", "predictability"),
                ("productivity", "productivity"),
                ("customerValue", "customer_value"),
                ("flowEfficiency", "flow_efficiency"),
            )
        }


@dataclass(frozen=True)
class TypeServiceLevelConfig:
    """SLE of a work item type in one project; project_id None applies to every project."""

    id: str
    display_name: str
    service_level_expectation_in_days: float | None
    project_id: str | None = None


def get_service_level_grade(percentage: float) -> str:
    """
    Letter grade of a service level percentage.

    Example:
        >>> get_service_level_grade(86)
        'A'
        >>> get_service_level_grade(49)
        'F'
    """
    for minimum, grade in SERVICE_LEVEL_GRADES:
        if percentage >= minimum:
            return grade
    return FAILING_GRADE


def get_lead_times(work_items: Sequence[WorkItem]) -> list[float]:
    return [item.lead_time_in_whole_days for item in work_items if item.lead_time_in_whole_days is not None]


def get_speed_level_values(work_items: Sequence[WorkItem]) -> SpeedValues:
    """Rounded lead time statistics; all zero without lead times."""
    lead_times = get_lead_times(work_items)
    if not lead_times:
        return SpeedValues()

    return SpeedValues(
        percentile_85th=round_half_up(get_percentile(85, lead_times)),
        median=round_half_up(float(np.median(lead_times))),
        average=round_half_up(float(np.mean(lead_times))),
        tail=round_half_up(get_percentile(98, lead_times)),
    )


def compute_time_to_commit(work_item: WorkItem, exclude_weekends: bool) -> int:
    """Whole days from arrival to commitment; 0 when either date is missing."""
    if work_item.arrival_datetime is None or work_item.commitment_datetime is None:
        return 0
    if exclude_weekends:
        return business_days_between(work_item.arrival_datetime, work_item.commitment_datetime)
    elapsed = work_item.commitment_datetime - work_item.arrival_datetime
    return round_half_up(elapsed.total_seconds() / 86400)


def _rounded_85th_percentile(values: list[float]) -> int | None:
    if not values:
        return None
    return round_half_up(get_percentile(85, values)) or None


def get_trend_of_last_completed_weeks(throughput_values: Sequence[float]) -> TrendAnalysisStructure:
    """
    Compare the last two completed weeks with the two weeks before them.

    With fewer than four weeks, the last week is compared with the first of
    the (up to four) last weeks.
    """
    if not throughput_values:
        return EMPTY_TREND

    last_four = list(throughput_values[-4:])
    if len(throughput_values) >= 4:
        recent, earlier = sum(last_four[-2:]), sum(last_four[:2])
    else:
        recent, earlier = last_four[-1], last_four[0]

    percentage = round_half_up(get_percentual_difference(earlier, recent))
    if recent > earlier:
        return TrendAnalysisStructure(percentage, "more", TrendDirection.UP, TrendColor.UP)
    if recent < earlier:
        return TrendAnalysisStructure(percentage, "less", TrendDirection.DOWN, TrendColor.DOWN)
    return TrendAnalysisStructure(percentage, "same", TrendDirection.STABLE, TrendColor.STABLE)


def calculate_service_level_per_work_item_type(
    config_items: Sequence[TypeServiceLevelConfig], completed_items: Sequence[WorkItem]
) -> list[ServiceLevelCount]:
    """
    Items within SLE and items with a lead time, per work item type.

    Per-project configurations of the same type are summed into one row.
    Items without a lead time count as 0 days.
    """
    counts: dict[str, ServiceLevelCount] = {}
    for config in config_items:
        lead_times = [
            item.lead_time_in_whole_days or 0
            for item in completed_items
            if item.flomatika_work_item_type_id == config.id
            and (config.project_id is None or item.project_id == config.project_id)
        ]
        sle = config.service_level_expectation_in_days
        # Same-day items count as met but not as measured, so the rate can pass 100
        met = sum(1 for lead_time in lead_times if sle is not None and lead_time <= sle)
        measured = sum(1 for lead_time in lead_times if lead_time != 0)

        existing = counts.get(config.id)
        if existing is None:
            counts[config.id] = ServiceLevelCount(config.display_name, config.id, met, measured)
        else:
            counts[config.id] = replace(
                existing,
                service_level_met_count=existing.service_level_met_count + met,
                service_level_count=existing.service_level_count + measured,
            )
    return list(counts.values())


def sum_target_met_of_all_work_item_types(counts: Sequence[ServiceLevelCount]) -> int | None:
    """Whole percentage of measured items within SLE; None when nothing was measured."""
    measured = sum(count.service_level_count for count in counts)
    if not measured:
        return None
    met = sum(count.service_level_met_count for count in counts)
    return round_half_up(met / measured * 100)


def calculate_percent_of_value_demand(value_demand_count: int, total: int) -> int:
    if not value_demand_count or not total:
        return 0
    return round_half_up(value_demand_count / total * 100)


def calculate_percent_of_flow_efficiency(active_time: float | None, waiting_time: float | None) -> int:
    """
    Active share of total time as a whole percentage.

    Example:
        >>> calculate_percent_of_flow_efficiency(3, 1)
        75
    """
    active = active_time or 0
    waiting = waiting_time or 0
    if active + waiting == 0:
        return 0
    return round_half_up(active / (active + waiting) * 100)


def count_value_demand(work_items: Sequence[WorkItem]) -> int:
    return sum(1 for item in work_items if item.normalised_display_name == VALUE_DEMAND)


def _industry_messages(value: float, table: BenchmarkTable, metric_label: str, unit_label: str, **kwargs: Any) -> str:
    return (
        get_industry_cohort_message(value, table.cohorts, metric_label, unit_label)
        + MESSAGE_SEPARATOR
        + get_industry_standard_message(value, table.percentiles, metric_label, **kwargs)
    )


def _day_unit(days: float) -> str:
    return " days" if days > 1 else " day"


class FitnessCriteriaCalculations(BaseCalculations):
    """
    Delivery-governance KPI calculations for one request.

    The aggregation of the request filters is replaced by the safe aggregation
    for the window length; the caller's filters are not modified.
    """

    def __init__(
        self,
        org_id: str,
        state: StateProvider,
        filters: QueryFilters,
        work_item_types: WorkItemTypeService,
        widgets: WidgetInformationProvider,
        cache: RequestCache | None = None,
        benchmarks: IndustryBenchmarks | None = None,
    ):
        filters = replace(filters)
        filters.set_safe_aggregation()
        super().__init__(org_id, state, filters, cache)
        self.aggregation = filters.aggregation
        self.work_item_types = work_item_types
        self.widgets = widgets
        self.benchmarks = benchmarks or get_benchmarks()

    async def get_cached_completed_work_item_list(self) -> list[WorkItem]:
        return await self.get_work_items()

    async def get_sle_config_items(self) -> list[TypeServiceLevelConfig]:
        """Work item types joined with their per-project SLE configuration."""

        async def fetch_config() -> list[TypeServiceLevelConfig]:
            types, type_maps = await asyncio.gather(
                self.work_item_types.get_types(self.org_id),
                self.work_item_types.get_type_maps(self.org_id),
            )
            types_by_id = {item_type.id: item_type for item_type in types}
            return [
                TypeServiceLevelConfig(
                    id=type_map.work_item_type_id,
                    display_name=types_by_id[type_map.work_item_type_id].display_name,
                    service_level_expectation_in_days=type_map.service_level_expectation_in_days,
                    project_id=type_map.project_id,
                )
                for type_map in type_maps
                if type_map.work_item_type_id in types_by_id
            ]

        return await self.fetch("sle-config-items", fetch_config)

    def _buckets(
        self, work_items: Sequence[WorkItem], aggregation: str, exclude_incomplete_trailing_week: bool
    ) -> list[tuple[datetime, list[WorkItem]]]:
        return get_completed_work_items_by_aggregation(
            work_items, aggregation, self.filters.date_period(), exclude_incomplete_trailing_week
        )

    def get_leadtime_by_work_item_type_with_sle(
        self, completed_items: Sequence[WorkItem], config_items: Sequence[TypeServiceLevelConfig]
    ) -> list[ServiceLevelCount]:
        if self.filters.work_item_types:
            config_items = [item for item in config_items if item.id in self.filters.work_item_types]
        return calculate_service_level_per_work_item_type(config_items, completed_items)

    async def get_speed(self) -> Speed:
        """Lead time per level, its history, and the industry comparison for team and portfolio."""
        completed_items = await self.get_cached_completed_work_item_list()

        def at_level(items: Sequence[WorkItem], level: str) -> list[WorkItem]:
            return [item for item in items if item.flomatika_work_item_type_level == level]

        portfolio = get_speed_level_values(at_level(completed_items, PORTFOLIO_LEVEL))
        team = get_speed_level_values(at_level(completed_items, TEAM_LEVEL))
        ic = get_speed_level_values(at_level(completed_items, INDIVIDUAL_CONTRIBUTOR_LEVEL))

        messages = []
        for label, values, table in (
            ("Portfolio", portfolio, self.benchmarks.lead_time_portfolio),
            ("Team", team, self.benchmarks.lead_time_team),
        ):
            if values.percentile_85th:
                messages.append(
                    f"<b>{label} level items</b><br/>"
                    + _industry_messages(
                        values.percentile_85th,
                        table,
                        "Lead Time",
                        _day_unit(values.percentile_85th),
                        invert_percentile=True,
                    )
                )

        return Speed(
            portfolio=portfolio,
            team=team,
            ic=ic,
            history=self.get_85th_percentile_by_aggregation(completed_items, self.aggregation),
            industry_standard_message=MESSAGE_SEPARATOR.join(messages),
        )

    def get_85th_percentile_by_aggregation(self, work_items: Sequence[WorkItem], aggregation: str) -> SpeedHistory:
        buckets = self._buckets(work_items, aggregation, exclude_incomplete_trailing_week=False)
        exclude_weekends = self.filters.exclude_weekends

        def lead_time_series(level: str) -> list[HistoricalPoint]:
            return [
                (
                    format_aggregation_label(bucket, aggregation),
                    _rounded_85th_percentile(
                        [
                            item.lead_time_in_whole_days or 0
                            for item in items
                            if item.flomatika_work_item_type_level == level
                        ]
                    ),
                )
                for bucket, items in buckets
            ]

        def time_to_commit_series(level: str) -> list[HistoricalPoint]:
            return [
                (
                    format_aggregation_label(bucket, aggregation),
                    _rounded_85th_percentile(
                        [
                            compute_time_to_commit(item, exclude_weekends)
                            for item in items
                            if item.flomatika_work_item_type_level == level
                        ]
                    ),
                )
                for bucket, items in buckets
            ]

        return SpeedHistory(
            portfolio_85th_percentile=lead_time_series(PORTFOLIO_LEVEL),
            team_85th_percentile=lead_time_series(TEAM_LEVEL),
            ic_85th_percentile=lead_time_series(INDIVIDUAL_CONTRIBUTOR_LEVEL),
            time_to_commit_85th_percentile_portfolio=time_to_commit_series(PORTFOLIO_LEVEL),
            time_to_commit_85th_percentile_team=time_to_commit_series(TEAM_LEVEL),
            time_to_commit_85th_percentile_ic=time_to_commit_series(INDIVIDUAL_CONTRIBUTOR_LEVEL),
        )

    async def get_service_level_expectation(self) -> ServiceLevelFitness | None:
        """
        Share of completed items finishing within their type's SLE, graded.

        Returns:
            None without completed items
        """
        completed_items, config_items = await asyncio.gather(
            self.get_cached_completed_work_item_list(),
            self.get_sle_config_items(),
        )
        if not completed_items:
            return None

        counts = self.get_leadtime_by_work_item_type_with_sle(completed_items, config_items)
        met = sum(count.service_level_met_count for count in counts)
        service_level_expectation = round_half_up(met * 100 / len(completed_items)) if met else 0

        message = ""
        if service_level_expectation:
            message = _industry_messages(
                service_level_expectation, self.benchmarks.service_level_expectation, "Fitness Level", "%"
            )

        return ServiceLevelFitness(
            service_level_expectation=service_level_expectation,
            grade=get_service_level_grade(service_level_expectation),
            historical=self.get_target_met_by_aggregation(completed_items, config_items, self.aggregation),
            industry_standard_message=message,
        )

    def get_target_met_by_aggregation(
        self,
        completed_items: Sequence[WorkItem],
        config_items: Sequence[TypeServiceLevelConfig],
        aggregation: str,
    ) -> list[HistoricalPoint]:
        return [
            (
                format_aggregation_label(bucket, aggregation),
                sum_target_met_of_all_work_item_types(
                    self.get_leadtime_by_work_item_type_with_sle(items, config_items)
                ),
            )
            for bucket, items in self._buckets(completed_items, aggregation, exclude_incomplete_trailing_week=False)
        ]

    async def get_predictability(self) -> Predictability:
        """
        Lead time and throughput predictability, now and per bucket.

        Lead time is predictable ('High') when its variability is not high;
        throughput when its coefficient of variation is within the limit.
        """
        completed_items = await self.get_cached_completed_work_item_list()

        lead_times = get_lead_times(completed_items)
        leadtime = ""
        if lead_times:
            high_variability = is_variability_high(get_percentile(50, lead_times), get_percentile(98, lead_times))
            leadtime = "Low" if high_variability else "High"

        weekly_throughput = self.calculate_throughput_values(completed_items, "week", False)

        return Predictability(
            leadtime=leadtime,
            throughput=get_throughput_by_coefficient([count for _, count in weekly_throughput]),
            lead_time_historical=self.calculate_lead_time_by_aggregation(completed_items, self.aggregation),
            throughput_historical=get_rolling_variability(
                self.calculate_throughput_values(completed_items, self.aggregation, False)
            ),
        )

    def calculate_lead_time_by_aggregation(
        self, completed_items: Sequence[WorkItem], aggregation: str
    ) -> list[HistoricalPoint]:
        """'High'/'Low' lead time predictability per bucket; '' for an empty bucket or a zero median."""
        series = []
        for bucket, items in self._buckets(completed_items, aggregation, exclude_incomplete_trailing_week=False):
            variability = ""
            lead_times = [item.lead_time_in_whole_days or 0 for item in items]
            if lead_times:
                median = round_half_up(get_percentile(50, lead_times))
                tail = round_half_up(get_percentile(98, lead_times))
                ratio = tail / median if median else 0
                if ratio:
                    variability = "High" if ratio <= statistics_config.HIGH_VARIABILITY_LIMIT else "Low"
            series.append((format_aggregation_label(bucket, aggregation), variability))
        return series

    def calculate_throughput_values(
        self, completed_items: Sequence[WorkItem], aggregation: str, exclude_incomplete_trailing_week: bool
    ) -> list[tuple[str, float]]:
        return [
            (format_aggregation_label(bucket, aggregation), len(items))
            for bucket, items in self._buckets(completed_items, aggregation, exclude_incomplete_trailing_week)
        ]

    async def get_productivity(self) -> Productivity:
        """Last completed week's throughput classified against all completed weeks."""
        completed_items = await self.get_cached_completed_work_item_list()

        weekly = calculate_productivity_by_mean_and_stdv(
            self.calculate_throughput_values(completed_items, "week", True)
        )
        historical = calculate_productivity_by_mean_and_stdv(
            self.calculate_throughput_values(completed_items, self.aggregation, True)
        )
        throughputs = [week.throughput for week in weekly]

        if not weekly:
            return Productivity(
                mean=0,
                current=0,
                last_week=0,
                trend_analysis=EMPTY_TREND,
                productivity_label="",
                productivity_color=TrendColor.DEFAULT,
            )

        last = weekly[-1]
        return Productivity(
            mean=round_half_up(float(np.mean(throughputs))),
            current=last.throughput,
            last_week=last.throughput,
            trend_analysis=get_trend_of_last_completed_weeks(throughputs),
            productivity_label=last.productivity_label,
            productivity_color=get_productivity_color(last.productivity_label),
            last_productivity_result=[last],
            historical=[(point.aggregation_date, point.throughput, point.productivity_label) for point in historical],
        )

    async def get_customer_value(self) -> CustomerValue:
        """
        Share of completed items normalised as value demand.

        Returns:
            CustomerValue with a None percentage without completed items
        """
        completed_items = await self.get_cached_completed_work_item_list()
        if not completed_items:
            return CustomerValue(customer_value_work_percentage=None)

        quality_items = unique_by_id(
            await self.get_normalised_work_items(tag=PredefinedFilterTags.QUALITY)
        )
        percentage = float(calculate_percent_of_value_demand(count_value_demand(quality_items), len(quality_items)))

        message = ""
        if percentage:
            message = _industry_messages(percentage, self.benchmarks.customer_value, "Process Value", "%")

        return CustomerValue(
            customer_value_work_percentage=percentage,
            historical=self.calculate_value_demand_by_aggregation(completed_items, quality_items, self.aggregation),
            industry_standard_message=message,
        )

    def calculate_value_demand_by_aggregation(
        self, completed_items: Sequence[WorkItem], quality_items: Sequence[WorkItem], aggregation: str
    ) -> list[HistoricalPoint]:
        """Value demand percentage per bucket; None for a bucket without completed items."""
        completed_buckets = self._buckets(completed_items, aggregation, exclude_incomplete_trailing_week=True)
        quality_buckets = dict(self._buckets(quality_items, aggregation, exclude_incomplete_trailing_week=True))

        series = []
        for bucket, items in completed_buckets:
            label = format_aggregation_label(bucket, aggregation)
            if not items:
                series.append((label, None))
                continue
            value_demand = count_value_demand(quality_buckets.get(bucket, []))
            series.append((label, calculate_percent_of_value_demand(value_demand, len(items))))
        return series

    async def get_flow_efficiency(self) -> FlowEfficiency:
        """Active time as a share of active plus waiting time over all completed items."""
        completed_items = unique_by_id(await self.get_cached_completed_work_item_list())
        percentage = calculate_percent_of_flow_efficiency(
            sum(item.active_time or 0 for item in completed_items),
            sum(item.waiting_time or 0 for item in completed_items),
        )

        message = ""
        if percentage:
            message = _industry_messages(percentage, self.benchmarks.flow_efficiency, FLOW_EFFICIENCY_LABEL, "%")

        return FlowEfficiency(average_of_waiting_time=percentage, industry_standard_message=message)

    async def get_flow_efficiency_over_time(self) -> list[HistoricalPoint]:
        """Flow efficiency per bucket; None for a bucket without completed items."""
        completed_items = await self.get_cached_completed_work_item_list()
        series = []
        for bucket, items in self._buckets(completed_items, self.aggregation, exclude_incomplete_trailing_week=True):
            label = format_aggregation_label(bucket, self.aggregation)
            if not items:
                series.append((label, None))
                continue
            series.append(
                (
                    label,
                    calculate_percent_of_flow_efficiency(
                        sum(item.active_time or 0 for item in items),
                        sum(item.waiting_time or 0 for item in items),
                    ),
                )
            )
        return series

    async def get_widget_information(self) -> FitnessWidgetInformation:
        speed, service_level, predictability, productivity, customer_value, flow_efficiency = await asyncio.gather(
            self.widgets.get_widget_information(WidgetTypes.LEAD_TIME),
            self.widgets.get_widget_information(WidgetTypes.SERVICE_LEVEL),
            self.widgets.get_widget_information(WidgetTypes.PREDICTABILITY),
            self.widgets.get_widget_information(WidgetTypes.DELIVERY_RATE),
            self.widgets.get_widget_information(WidgetTypes.VALUE_DELIVERED),
            self.widgets.get_widget_information(WidgetTypes.FLOW_EFFICIENCY),
        )
        return FitnessWidgetInformation(
            speed=speed,
            service_level_expectation=service_level,
            predictability=predictability,
            productivity=productivity,
            customer_value=customer_value,
            flow_efficiency=flow_efficiency,
        )
