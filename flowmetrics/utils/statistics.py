"""
Statistics Utilities

Shared statistical primitives for flow-metric calculations: linear-interpolation
percentiles (Excel PERCENTILE.INC), percent rank (Excel PERCENTRANK.INC),
variability classification and the rounded summary helpers used by the
service-level tables.

Usage:
    from flowmetrics.utils.statistics import get_percentile, get_percent_rank

    p85 = get_percentile(85, lead_times)
    rank = get_percent_rank(lead_times, target=10)
"""

import math
from collections import Counter
from collections.abc import Sequence
from decimal import ROUND_FLOOR, Decimal

import numpy as np

from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.constants import statistics_config

logger = get_logger(__name__)

HIGH_VARIABILITY_LIMIT = statistics_config.HIGH_VARIABILITY_LIMIT


class InvalidPercentileError(ValueError):
    """Raised when a percentile argument is not a number in [0, 100]."""

    pass


class VariabilityClassification:
    HIGH = "High"
    LOW = "Low"


class DistributionShape:
    LOW_PREDICTABILITY = "Low Predictabilty Distribution"
    HIGH_PREDICTABILITY = "High Predictabilty Distribution"


def round_half_up(value: float) -> int:
    """
    Round to the nearest whole number, halves towards positive infinity.

    Example:
        >>> round_half_up(2.5)
        3
        >>> round_half_up(-2.5)
        -2
    """
    return math.floor(value + 0.5)


def round_to_decimal_places(num: float, places: int) -> float:
    """
    Round a float to a number of decimal places without binary artifacts.

    The value is shifted through its shortest decimal representation, so
    1.005 rounds to 1.01 rather than 1.0.

    Args:
        num: Value to round
        places: Number of decimal places

    Returns:
        Rounded value (NaN and infinities are returned unchanged)
    """
    if math.isnan(num) or math.isinf(num):
        return num

    shifted = Decimal(repr(float(num))).scaleb(places)
    rounded = (shifted + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR)
    return float(rounded.scaleb(-places))


def _percentile_error(requirement: str, percentile: object) -> InvalidPercentileError:
    return InvalidPercentileError(
        f'Expect percentile to be {requirement} but given "{percentile}" '
        f'and its type is "{type(percentile).__name__}".'
    )


def _nan_as_lowest(value: float) -> float:
    return -math.inf if math.isnan(value) else value


def get_percentile(percentile: float, values: Sequence[float]) -> float:
    """
    Calculate a percentile with linear interpolation between adjacent ranks.

    Equivalent to Excel PERCENTILE.INC: rank = p/100 * (n - 1) + 1, interpolated
    between the values either side of the rank. NaN values sort first.

    Args:
        percentile: Percentile to calculate (0-100)
        values: Unordered numeric sample (not modified)

    Returns:
        Percentile value rounded to 2 decimal places (p=0 and p=100 return the
        raw minimum and maximum)

    Raises:
        InvalidPercentileError: If percentile is not a number or out of range
        ValueError: If values is empty

    Example:
        >>> get_percentile(50, [1, 2, 3, 4])
        2.5
    """
    try:
        p = float(percentile)
    except (TypeError, ValueError) as e:
        raise _percentile_error("a number", percentile) from e

    if math.isnan(p):
        raise _percentile_error("a number", percentile)
    if p < 0:
        raise _percentile_error(">= 0", percentile)
    if p > 100:
        raise _percentile_error("<= 100", percentile)

    if not values:
        raise ValueError("Cannot calculate percentile of empty data")

    ordered = sorted(values, key=_nan_as_lowest)

    if p == 0:
        return ordered[0]
    if p == 100:
        return ordered[-1]

    rank = (p / 100) * (len(ordered) - 1) + 1
    whole_rank = math.floor(rank)
    decimal_rank = rank % 1

    lower = ordered[whole_rank - 1]
    # Single-element samples have no upper neighbour
    upper = ordered[whole_rank] if whole_rank < len(ordered) else ordered[0]

    return round_to_decimal_places(lower + decimal_rank * (upper - lower), 2)


def get_percent_rank(entries: Sequence[float], target: float) -> float:
    """
    Rank of a target within a sample as a fraction in [0, 1].

    Equivalent to Excel PERCENTRANK.INC, tolerant of targets outside the sample
    range. A target between two entries is placed at a virtual position between
    them, interpolating the ranks of those two neighbours. The recursion always
    bottoms out: both neighbours are members of the sample, so their own rank is
    an exact match.

    Args:
        entries: Unordered numeric sample (not modified)
        target: Value to rank

    Returns:
        0.0 for an empty sample or a target at/below the minimum,
        1.0 for a target at/above the maximum, otherwise the interpolated rank
    """
    ordered = sorted(entries)
    count = len(ordered)

    if count == 0 or target <= ordered[0]:
        return 0.0
    if target >= ordered[-1]:
        return 1.0

    count_below = 0
    while count_below < count and ordered[count_below] < target:
        count_below += 1

    if ordered[count_below] == target:
        return count_below / (count - 1)

    lower_entry = ordered[count_below - 1]
    higher_entry = ordered[count_below]
    virtual_position = (target - lower_entry) / (higher_entry - lower_entry)

    lower_rank = get_percent_rank(ordered, lower_entry)
    higher_rank = get_percent_rank(ordered, higher_entry)

    return lower_rank + virtual_position * (higher_rank - lower_rank)


def is_variability_high(percentile_50th: float, percentile_98th: float) -> bool:
    """
    True when the 98th percentile is at least HIGH_VARIABILITY_LIMIT times the median.

    A zero median with a positive tail counts as high variability; an all-zero
    sample does not.
    """
    if not percentile_50th:
        return percentile_98th > 0
    return percentile_98th / percentile_50th >= HIGH_VARIABILITY_LIMIT


def get_variability_classification(percentile_50th: float, percentile_98th: float) -> str:
    """'High' or 'Low' variability from the p98/p50 ratio."""
    if is_variability_high(percentile_50th, percentile_98th):
        return VariabilityClassification.HIGH
    return VariabilityClassification.LOW


def get_distribution_shape(percentile_50th: float, percentile_98th: float) -> str:
    """High variability means a low-predictability distribution, and vice versa."""
    if is_variability_high(percentile_50th, percentile_98th):
        return DistributionShape.LOW_PREDICTABILITY
    return DistributionShape.HIGH_PREDICTABILITY


def get_target_for_predictability(median: float) -> float:
    """Largest tail that still keeps the distribution predictable."""
    return median * HIGH_VARIABILITY_LIMIT


def get_modes(values: Sequence[float]) -> list[float]:
    """
    All values sharing the highest frequency, ascending.

    Returns:
        Empty list for empty input; every value when all are unique
    """
    if not values:
        return []

    frequencies = Counter(values)
    highest = max(frequencies.values())
    return sorted(value for value, frequency in frequencies.items() if frequency == highest)


# ============================================================
# Rounded summary helpers (service-level tables)
# ============================================================


def rounded_mean(values: Sequence[float]) -> int | None:
    if not values:
        return None
    return round_half_up(float(np.mean(values)))


def rounded_median(values: Sequence[float]) -> int | None:
    if not values:
        return None
    return round_half_up(float(np.median(values)))


def repeated_modes(values: Sequence[float]) -> list[int] | None:
    """
    Rounded modes, or None when no value repeats.

    A sample in which every value occurs exactly once has no meaningful mode.
    """
    if not values:
        return None

    modes = get_modes(values)
    if len(modes) == len(values):
        return None

    return sorted(round_half_up(mode) for mode in modes)


def rounded_min(values: Sequence[float]) -> int | None:
    if not values:
        return None
    return round_half_up(min(values))


def rounded_max(values: Sequence[float]) -> int | None:
    if not values:
        return None
    return round_half_up(max(values))


def rounded_quantile(fraction: float, values: Sequence[float]) -> int | None:
    """
    Quantile (0-1) by linear interpolation, rounded to a whole number.

    Returns:
        None for empty input or when the rounded quantile is 0
    """
    if not values:
        return None

    quantile = float(np.quantile(np.asarray(values, dtype=float), fraction))
    if not quantile:
        return None

    return round_half_up(quantile)
