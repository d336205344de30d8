"""
Industry Benchmark Lookup

Static industry tables (percentile rows and performer cohorts) for service
level, lead time (portfolio and team), customer value and flow efficiency,
plus the pure functions turning a KPI value into comparison messages.

The tables are loaded once from data/industry_benchmarks.json (or from
FLOWMETRICS_BENCHMARK_FILE) into frozen dataclasses. Callers pass a table to
the message functions, so tests can inject their own.

Usage:
    from flowmetrics.benchmarks.industry_standard import get_benchmarks, get_industry_standard_message

    table = get_benchmarks().service_level_expectation
    print(get_industry_standard_message(93, table.percentiles, "Fitness Level"))
"""

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from flowmetrics.core.config import get_config
from flowmetrics.core.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_BENCHMARK_FILE = Path(__file__).parent / "data" / "industry_benchmarks.json"
FLOW_EFFICIENCY_LABEL = "Process Flow Efficiency"
TABLE_NAMES = (
    "service_level_expectation",
    "lead_time_portfolio",
    "lead_time_team",
    "customer_value",
    "flow_efficiency",
)


@dataclass(frozen=True)
class PercentileRow:
    """Share of the industry (percentile) at or below a metric value."""

    percentile: float
    value: float


@dataclass(frozen=True)
class CohortBand:
    """Performer cohort covering the closed range [start, end]."""

    label: str
    start: float
    end: float


@dataclass(frozen=True)
class BenchmarkTable:
    """
    Benchmark data for one metric.

    Attributes:
        percentiles: Rows ordered by ascending value
        cohorts: Non-overlapping performer bands
    """

    percentiles: tuple[PercentileRow, ...]
    cohorts: tuple[CohortBand, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BenchmarkTable":
        percentiles = tuple(
            PercentileRow(percentile=row["percentile"], value=row["value"]) for row in data["percentiles"]
        )
        cohorts = tuple(CohortBand(label=row["label"], start=row["start"], end=row["end"]) for row in data["cohorts"])
        return cls(percentiles=tuple(sorted(percentiles, key=lambda row: row.value)), cohorts=cohorts)


@dataclass(frozen=True)
class IndustryBenchmarks:
    service_level_expectation: BenchmarkTable
    lead_time_portfolio: BenchmarkTable
    lead_time_team: BenchmarkTable
    customer_value: BenchmarkTable
    flow_efficiency: BenchmarkTable


def load_benchmarks(path: Path | None = None) -> IndustryBenchmarks:
    """
    Read benchmark tables from a JSON file.

    Args:
        path: JSON file; defaults to the packaged tables

    Raises:
        FileNotFoundError: If the file does not exist
        KeyError: If a table or row field is missing
    """
    source = path or DEFAULT_BENCHMARK_FILE
    with open(source, encoding="utf-8") as f:
        data = json.load(f)

    tables = {name: BenchmarkTable.from_dict(data[name]) for name in TABLE_NAMES}
    logger.debug("Loaded industry benchmarks", extra={"source": str(source)})
    return IndustryBenchmarks(**tables)


@lru_cache(maxsize=1)
def get_benchmarks() -> IndustryBenchmarks:
    """Benchmark tables for the process (FLOWMETRICS_BENCHMARK_FILE, else the packaged file)."""
    return load_benchmarks(get_config().benchmark_file)


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_matching_percentile(value: float, percentiles: tuple[PercentileRow, ...]) -> float:
    """
    Percentile of the last row whose value is at or below the given value.

    Returns 0 when the value is below every row.
    """
    matched: float = 0
    for row in percentiles:
        if row.value > value:
            break
        matched = row.percentile
    return matched


def get_industry_standard_message(
    value: float,
    percentiles: tuple[PercentileRow, ...],
    metric_label: str,
    invert_percentile: bool = False,
) -> str:
    """
    "ahead of / behind X%" comparison against the industry.

    Args:
        value: KPI value
        percentiles: Percentile rows of the metric's table
        metric_label: Metric name used in the message
        invert_percentile: For metrics where lower is better (e.g. lead time)

    Returns:
        HTML message, e.g. "You are <b>ahead of 92%</b> the industry for Fitness Level."
    """
    percentile = get_matching_percentile(value, percentiles)

    if metric_label == FLOW_EFFICIENCY_LABEL:
        return f"You are <b>ahead of {_format_number(100 - percentile)}%</b> the industry for {metric_label}."

    if invert_percentile:
        position = (
            f"behind {_format_number(percentile)}"
            if percentile >= 50
            else f"ahead of {_format_number(100 - percentile)}"
        )
    else:
        position = (
            f"ahead of {_format_number(percentile)}"
            if percentile >= 50
            else f"behind {_format_number(100 - percentile)}"
        )
    return f"You are <b>{position}%</b> the industry for {metric_label}."


def get_industry_cohort_message(
    value: float,
    cohorts: tuple[CohortBand, ...],
    metric_label: str,
    unit_label: str,
) -> str:
    """
    Name the performer cohort whose band contains the value.

    Example:
        >>> get_industry_cohort_message(93, cohorts, "Fitness Level", "%")
        "Your Fitness Level of <b>93</b>% matches with the industry's <b>Elite Performers</b> cohort."
    """
    label = next((band.label for band in cohorts if band.start <= value <= band.end), "")
    return (
        f"Your {metric_label} of <b>{_format_number(value)}</b>{unit_label} "
        f"matches with the industry's <b>{label}</b> cohort."
    )
