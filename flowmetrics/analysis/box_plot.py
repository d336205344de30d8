"""
Box-Plot Builder

Five-number summary of an unordered sample, with outliers beyond
1.5 x IQR fences. An empty sample gives EmptyBoxPlot instead of placeholder
numbers.

Usage:
    from flowmetrics.analysis.box_plot import build_box_plot

    box_plot = build_box_plot([3, 5, 2, 8, 40])
    if not box_plot.is_empty:
        print(box_plot.median, box_plot.upper_outliers)
"""

from collections.abc import Sequence

from flowmetrics.domain.constants import statistics_config
from flowmetrics.domain.metrics import BoxPlot, BoxPlotResult, EmptyBoxPlot
from flowmetrics.utils.statistics import get_percentile, round_to_decimal_places

WHISKER_FACTOR = statistics_config.BOX_PLOT_WHISKER_FACTOR
DECIMAL_PLACES = statistics_config.DECIMAL_PLACES


def _distinct_sorted(values: list[float]) -> tuple[float, ...]:
    return tuple(sorted(set(values)))


def build_box_plot(values: Sequence[float]) -> BoxPlotResult:
    """
    Build a box plot from an unordered sample.

    Args:
        values: Numeric sample (e.g. items completed per week); not modified

    Returns:
        BoxPlot with every statistic rounded to 2 decimal places, or
        EmptyBoxPlot when values is empty
    """
    if not values:
        return EmptyBoxPlot()

    ordered = sorted(values)

    median = get_percentile(50, ordered)
    quartile_1st = get_percentile(25, ordered)
    quartile_3rd = get_percentile(75, ordered)
    inter_quartile_range = quartile_3rd - quartile_1st

    lower_whisker = quartile_1st - WHISKER_FACTOR * inter_quartile_range
    upper_whisker = quartile_3rd + WHISKER_FACTOR * inter_quartile_range

    lower_outliers = [value for value in ordered if value < lower_whisker]
    upper_outliers = [value for value in ordered if value > upper_whisker]

    return BoxPlot(
        median=round_to_decimal_places(median, DECIMAL_PLACES),
        quartile_1st=round_to_decimal_places(quartile_1st, DECIMAL_PLACES),
        quartile_3rd=round_to_decimal_places(quartile_3rd, DECIMAL_PLACES),
        inter_quartile_range=round_to_decimal_places(inter_quartile_range, DECIMAL_PLACES),
        lower_whisker=round_to_decimal_places(lower_whisker, DECIMAL_PLACES),
        upper_whisker=round_to_decimal_places(upper_whisker, DECIMAL_PLACES),
        lower_outliers=_distinct_sorted(lower_outliers),
        upper_outliers=_distinct_sorted(upper_outliers),
    )
