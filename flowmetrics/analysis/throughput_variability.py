"""
Throughput / Rolling Variability

Predictability and productivity classification of throughput series.

Throughput uses the ratio convention: a p50/p98 ratio, or a coefficient of
variation, at or below THROUGHPUT_VARIABILITY_LIMIT (0.4) means 'High'
predictability. This is deliberately separate from the p98/p50 >= 5.6
multiplier used for lead time and WIP.

Usage:
    from flowmetrics.analysis.throughput_variability import calculate_rolling_coefficient

    series = [("Mar-04 2024", 5), ("Mar-11 2024", 7), ("Mar-18 2024", 4)]
    for label, coefficient in calculate_rolling_coefficient(series):
        print(label, coefficient)
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from flowmetrics.domain.constants import throughput_config
from flowmetrics.utils.statistics import VariabilityClassification, get_percentile, round_half_up

THROUGHPUT_VARIABILITY_LIMIT = throughput_config.THROUGHPUT_VARIABILITY_LIMIT
DEFAULT_ROLLING_VARIABILITY = throughput_config.DEFAULT_ROLLING_VARIABILITY
ROLLING_WINDOW_SIZE = throughput_config.ROLLING_WINDOW_SIZE


class ProductivityLabels:
    NO_WORK = "No work completed"
    TERRIBLE = "Terrible"
    BAD = "Bad"
    POOR = "Poor"
    SLIGHTLY_UNDER = "Slightly Under"
    AVERAGE = "Average"
    GOOD = "Good"
    GREAT = "Great"
    EXCELLENT = "Excellent"
    PHENOMENAL = "Phenomenal"
    INVALID = "Out of range"


class TrendColor:
    UP = "GREEN"
    DOWN = "RED"
    STABLE = "YELLOW"
    DEFAULT = "GRAY"


_PRODUCTIVITY_COLORS = {
    ProductivityLabels.NO_WORK: TrendColor.DOWN,
    ProductivityLabels.TERRIBLE: TrendColor.DOWN,
    ProductivityLabels.BAD: TrendColor.DOWN,
    ProductivityLabels.POOR: TrendColor.DOWN,
    ProductivityLabels.SLIGHTLY_UNDER: TrendColor.STABLE,
    ProductivityLabels.AVERAGE: TrendColor.STABLE,
    ProductivityLabels.GOOD: TrendColor.STABLE,
    ProductivityLabels.GREAT: TrendColor.UP,
    ProductivityLabels.EXCELLENT: TrendColor.UP,
    ProductivityLabels.PHENOMENAL: TrendColor.UP,
}


@dataclass(frozen=True)
class ProductivityByAggregate:
    """
    Productivity classification of one aggregation bucket.

    Attributes:
        aggregation_date: Bucket label
        throughput: Items completed in the bucket
        mean: Rounded mean throughput of the whole series
        stdev: Rounded population standard deviation of the whole series
        productivity_val: Ordinal of the label (0-9, -1 when out of range)
        productivity_label: One of ProductivityLabels
    """

    aggregation_date: str
    throughput: float
    mean: int
    stdev: int
    productivity_val: int
    productivity_label: str


def get_throughput_variability(throughput_values: Sequence[float]) -> str:
    """
    'High' when p50 / p98 <= 0.4, otherwise 'Low'.

    A zero (or missing) percentile counts as a ratio of 0.
    """
    if not throughput_values:
        return VariabilityClassification.HIGH

    percentile_98th = get_percentile(98, throughput_values)
    percentile_50th = get_percentile(50, throughput_values)
    ratio = 0 if not percentile_98th or not percentile_50th else percentile_50th / percentile_98th
    return VariabilityClassification.HIGH if ratio <= THROUGHPUT_VARIABILITY_LIMIT else VariabilityClassification.LOW


def get_throughput_by_coefficient(throughput_values: Sequence[float]) -> str:
    """
    Classify throughput by its coefficient of variation (sample stdev / mean).

    Returns:
        'High' when CoV <= 0.4, 'Low' above it, '' when CoV is zero or undefined
    """
    if len(throughput_values) < 2:
        return ""

    values = np.asarray(throughput_values, dtype=float)
    mean = float(np.mean(values))
    if not mean:
        return ""

    coefficient = float(np.std(values, ddof=1)) / mean
    if not coefficient or math.isnan(coefficient):
        return ""
    if coefficient <= THROUGHPUT_VARIABILITY_LIMIT:
        return VariabilityClassification.HIGH
    return VariabilityClassification.LOW


def calculate_rolling_coefficient(series: Sequence[tuple[str, float]]) -> list[tuple[str, float]]:
    """
    Rolling coefficient of variation over a trailing window.

    Each point uses itself and up to ROLLING_WINDOW_SIZE - 1 previous points.
    A single-point window has a standard deviation of 0.

    Args:
        series: (label, value) pairs in chronological order

    Returns:
        (label, coefficient) pairs: NaN when both rolling stdev and mean are 0,
        0 when only one of them is, otherwise stdev / mean
    """
    if not series:
        return []

    labels = [label for label, _ in series]
    values = pd.Series([value for _, value in series], dtype=float)

    window = values.rolling(window=ROLLING_WINDOW_SIZE, min_periods=1)
    rolling_std = window.std().fillna(0)
    rolling_mean = window.mean()

    coefficients = []
    for label, stdev, mean in zip(labels, rolling_std, rolling_mean):
        if not stdev and not mean:
            coefficients.append((label, math.nan))
        elif stdev and mean:
            coefficients.append((label, float(stdev / mean)))
        else:
            coefficients.append((label, 0.0))
    return coefficients


def get_rolling_variability(series: Sequence[tuple[str, float]]) -> list[tuple[str, str]]:
    """
    'High'/'Low' predictability per point from the rolling coefficient.

    The first point is always blank: one value has no variability. Points
    with an undefined coefficient are blank as well.
    """
    labelled = []
    for index, (label, coefficient) in enumerate(calculate_rolling_coefficient(series)):
        variability = ""
        if index > 0 and not math.isnan(coefficient):
            variability = (
                VariabilityClassification.HIGH
                if coefficient <= DEFAULT_ROLLING_VARIABILITY
                else VariabilityClassification.LOW
            )
        labelled.append((label, variability))
    return labelled


def get_productivity_label(stdev: float, mean: float, throughput: float) -> tuple[str, int]:
    """
    Place a throughput value in standard-deviation bands around the mean.

    Returns:
        (label, ordinal) where ordinal runs 0 (no work) to 9 (phenomenal)
    """
    if throughput == 0:
        return ProductivityLabels.NO_WORK, 0
    if throughput < mean - 3 * stdev:
        return ProductivityLabels.TERRIBLE, 1
    if throughput < mean - 2 * stdev:
        return ProductivityLabels.BAD, 2
    if throughput < mean - stdev:
        return ProductivityLabels.POOR, 3
    if throughput < mean:
        return ProductivityLabels.SLIGHTLY_UNDER, 4
    if throughput < mean + stdev or throughput == mean:
        return ProductivityLabels.AVERAGE, 5
    if throughput < mean + 2 * stdev:
        return ProductivityLabels.GOOD, 6
    if throughput < mean + 3 * stdev:
        return ProductivityLabels.GREAT, 7
    if throughput < mean + 4 * stdev:
        return ProductivityLabels.EXCELLENT, 8
    if throughput >= mean + 4 * stdev:
        return ProductivityLabels.PHENOMENAL, 9
    return ProductivityLabels.INVALID, -1


def get_productivity_color(productivity_label: str) -> str:
    return _PRODUCTIVITY_COLORS.get(productivity_label, TrendColor.DEFAULT)


def calculate_productivity_by_mean_and_stdv(series: Sequence[tuple[str, float]]) -> list[ProductivityByAggregate]:
    """
    Classify every point of a throughput series against the whole series.

    Mean and population standard deviation are rounded to whole numbers
    before banding.
    """
    if not series:
        return []

    values = np.asarray([value for _, value in series], dtype=float)
    mean = round_half_up(float(np.mean(values)))
    stdev = round_half_up(float(np.std(values)))

    results = []
    for label, throughput in series:
        productivity_label, productivity_val = get_productivity_label(stdev, mean, throughput or 0)
        results.append(
            ProductivityByAggregate(
                aggregation_date=label,
                throughput=throughput,
                mean=mean,
                stdev=stdev,
                productivity_val=productivity_val,
                productivity_label=productivity_label,
            )
        )
    return results
