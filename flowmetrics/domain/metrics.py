"""
Metric result models - Derived, per-request values

Represents the summaries the calculations hand to dashboard handlers:
    - TrendAnalysisStructure / TrendAnalysis: week-over-week style comparisons
    - BoxPlot / EmptyBoxPlot: five-number summary or an explicit "no data"
    - DistributionSummary: descriptive statistics of a duration sample

None of these are persisted; each is recomputed on every request.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TrendAnalysisStructure:
    """
    One trend comparison (e.g. this week vs last week).

    Attributes:
        percentage: Absolute percentage change, rounded to a whole number
        text: Human-readable comparison ("more compared to last week"), empty when not computed
        arrow_direction: 'Up', 'Down', 'Stable', or empty when not computed
        arrow_colour: Colour name for the arrow, or empty when not computed
    """

    percentage: float = 0
    text: str = ""
    arrow_direction: str = ""
    arrow_colour: str = ""

    @property
    def is_empty(self) -> bool:
        return self.text == ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "percentage": self.percentage,
            "text": self.text,
            "arrowDirection": self.arrow_direction,
            "arrowColour": self.arrow_colour,
        }


EMPTY_TREND = TrendAnalysisStructure()


@dataclass(frozen=True)
class TrendAnalysis:
    """
    Week, fortnight and four-week comparisons for a metric.

    Example:
        trend = get_trend_analysis_response(week_numbers, period)
        if not trend.last_week.is_empty:
            print(f"{trend.last_week.percentage}% {trend.last_week.text}")
    """

    last_week: TrendAnalysisStructure = EMPTY_TREND
    last_two_weeks: TrendAnalysisStructure = EMPTY_TREND
    last_four_weeks: TrendAnalysisStructure = EMPTY_TREND

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastWeek": self.last_week.to_dict(),
            "lastTwoWeeks": self.last_two_weeks.to_dict(),
            "lastFourWeeks": self.last_four_weeks.to_dict(),
        }


@dataclass(frozen=True)
class BoxPlot:
    """
    Five-number summary of a non-empty sample.

    Invariants:
        lower_whisker = quartile_1st - 1.5 * inter_quartile_range
        upper_whisker = quartile_3rd + 1.5 * inter_quartile_range
        Outlier lists hold no duplicates and are sorted ascending.

    Attributes:
        median: 50th percentile
        quartile_1st: 25th percentile
        quartile_3rd: 75th percentile
        inter_quartile_range: quartile_3rd - quartile_1st
        lower_whisker: Lower fence
        upper_whisker: Upper fence
        lower_outliers: Distinct values strictly below the lower fence
        upper_outliers: Distinct values strictly above the upper fence
    """

    median: float
    quartile_1st: float
    quartile_3rd: float
    inter_quartile_range: float
    lower_whisker: float
    upper_whisker: float
    lower_outliers: tuple[float, ...] = field(default_factory=tuple)
    upper_outliers: tuple[float, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "median": self.median,
            "quartile1st": self.quartile_1st,
            "quartile3rd": self.quartile_3rd,
            "interQuartileRange": self.inter_quartile_range,
            "lowerWhisker": self.lower_whisker,
            "upperWhisker": self.upper_whisker,
            "lowerOutliers": list(self.lower_outliers),
            "upperOutliers": list(self.upper_outliers),
        }


@dataclass(frozen=True)
class EmptyBoxPlot:
    """Box plot of an empty sample: every statistic is absent."""

    @property
    def is_empty(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "median": None,
            "quartile1st": None,
            "quartile3rd": None,
            "interQuartileRange": None,
            "lowerWhisker": None,
            "upperWhisker": None,
            "lowerOutliers": [],
            "upperOutliers": [],
        }


BoxPlotResult = BoxPlot | EmptyBoxPlot


@dataclass(frozen=True)
class DistributionSummary:
    """
    Descriptive statistics of a duration sample (lead time or WIP age).

    All fields are None for an empty sample.
    """

    minimum: float | None = None
    maximum: float | None = None
    modes: tuple[float, ...] = ()
    average: float | None = None
    percentile_50th: float | None = None
    percentile_85th: float | None = None
    percentile_95th: float | None = None
    percentile_98th: float | None = None
    target_for_predictability: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "minimum": self.minimum,
            "maximum": self.maximum,
            "modes": list(self.modes),
            "average": self.average,
            "percentile50th": self.percentile_50th,
            "percentile85th": self.percentile_85th,
            "percentile95th": self.percentile_95th,
            "percentile98th": self.percentile_98th,
            "targetForPredictability": self.target_for_predictability,
        }
