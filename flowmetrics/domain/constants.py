#!/usr/bin/env python3
"""
Engine Constants

Centralized thresholds and labels for flow-metric calculations.
Provides immutable configuration values used across analysis and calculation modules.

Two distinct variability conventions coexist, each bound to its own call sites:
the lead-time/WIP multiplier (p98 / p50 >= 5.6 is high variability) and
the throughput ratio or coefficient (value <= 0.4 is high predictability).
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class StatisticsConfig:
    """
    Distribution and variability constants.

    Attributes:
        HIGH_VARIABILITY_LIMIT: p98/p50 ratio at or above which a distribution is highly variable
        BOX_PLOT_WHISKER_FACTOR: IQR multiplier for box-plot whiskers
        DECIMAL_PLACES: Rounding applied to percentile and box-plot outputs

    Example:
        >>> statistics_config.HIGH_VARIABILITY_LIMIT
        5.6
    """

    HIGH_VARIABILITY_LIMIT: float = 5.6
    """p98/p50 ratio at or above which a distribution is highly variable"""

    BOX_PLOT_WHISKER_FACTOR: float = 1.5
    """IQR multiplier for box-plot whiskers"""

    DECIMAL_PLACES: int = 2
    """Rounding applied to percentile and box-plot outputs"""


@dataclass(frozen=True)
class ThroughputConfig:
    """
    Throughput variability constants.

    Attributes:
        THROUGHPUT_VARIABILITY_LIMIT: p50/p98 ratio or coefficient of variation at or below which throughput is High
        DEFAULT_ROLLING_VARIABILITY: Rolling coefficient at or below which a period is 'High' predictability
        ROLLING_WINDOW_SIZE: Points in the trailing rolling window (current point plus three prior)
    """

    THROUGHPUT_VARIABILITY_LIMIT: float = 0.4
    """p50/p98 ratio (or coefficient of variation) at or below which throughput is 'High'"""

    DEFAULT_ROLLING_VARIABILITY: float = 0.4
    """Rolling coefficient at or below which a period is 'High'"""

    ROLLING_WINDOW_SIZE: int = 4
    """Points in the trailing rolling window"""


@dataclass(frozen=True)
class TrendConfig:
    """
    Trend analysis constants.

    Attributes:
        DISPLAY_PERCENTAGE_LIMIT: Cap applied to percentage changes (previous value of zero)
        MIN_WEEKS_LAST_WEEK: Distinct weeks needed before a week-over-week comparison
        MIN_WEEKS_LAST_TWO_WEEKS: Distinct weeks needed before a fortnight comparison
        MIN_WEEKS_LAST_FOUR_WEEKS: Distinct weeks needed before a four-week comparison
    """

    DISPLAY_PERCENTAGE_LIMIT: int = 9999
    """Cap applied to percentage changes"""

    MIN_WEEKS_LAST_WEEK: int = 3
    """Distinct weeks needed before a week-over-week comparison"""

    MIN_WEEKS_LAST_TWO_WEEKS: int = 5
    """Distinct weeks needed before a fortnight comparison"""

    MIN_WEEKS_LAST_FOUR_WEEKS: int = 9
    """Distinct weeks needed before a four-week comparison"""


@dataclass(frozen=True)
class ServiceLevelConfig:
    """
    Service level defaults.

    Attributes:
        UNAVAILABLE_DISPLAY_NAME: Display name used when no SLE is configured for a group
        DEFAULT_SLE_DAYS: SLE used when none is configured
        EMPTY_GROUP_TARGET_MET: Target met reported for a group with no items
    """

    UNAVAILABLE_DISPLAY_NAME: str = "Unavailable Item Type Name"
    """Display name used when no SLE is configured for a group"""

    DEFAULT_SLE_DAYS: int = 0
    """SLE used when none is configured"""

    EMPTY_GROUP_TARGET_MET: int = 100
    """Target met reported for a group with no items"""


@dataclass(frozen=True)
class DemandConfig:
    """
    Demand classification identifiers.

    Attributes:
        REQUIREMENT_LEVEL: Only items at this type level take part in demand analysis
        FAILURE_DEMAND_TYPE_ID: Work item type id classified as failure demand
        VALUE_DEMAND_TYPE_ID: Work item type id classified as value (or non-value) demand
        NON_VALUE_AREA_ID: Value area id that turns value demand into non-value demand
    """

    REQUIREMENT_LEVEL: str = "Requirement"
    FAILURE_DEMAND_TYPE_ID: str = "4"
    VALUE_DEMAND_TYPE_ID: str = "3"
    NON_VALUE_AREA_ID: str = "1"


# Module-level singletons
statistics_config = StatisticsConfig()
throughput_config = ThroughputConfig()
trend_config = TrendConfig()
service_level_config = ServiceLevelConfig()
demand_config = DemandConfig()


__all__ = [
    "StatisticsConfig",
    "ThroughputConfig",
    "TrendConfig",
    "ServiceLevelConfig",
    "DemandConfig",
    "statistics_config",
    "throughput_config",
    "trend_config",
    "service_level_config",
    "demand_config",
]
