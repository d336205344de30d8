#!/usr/bin/env python3
"""
Datetime Utility Functions

Calendar arithmetic shared by the trend, aggregation and service-level code.

Handles common patterns:
- ISO timestamps with a 'Z' suffix
- Calendar boundaries (start/end of day, ISO week, month, quarter, year)
- ISO week identity and consecutive-week detection across year boundaries
- The last four *full* weeks before a date
- Timezone validation with a fallback zone
- Business-day differences
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import numpy as np

from flowmetrics.core.config import get_config
from flowmetrics.core.logging_config import get_logger
from flowmetrics.utils.error_handling import log_and_return_default

logger = get_logger(__name__)

CALENDAR_UNITS = ("day", "week", "month", "quarter", "year")
ISO_SUNDAY = 7


def parse_iso_timestamp(timestamp_str: str | None) -> datetime | None:
    """
    Parse an ISO timestamp to an aware datetime.

    Naive timestamps are taken to be UTC.

    Args:
        timestamp_str: ISO timestamp such as "2024-03-04T10:00:00Z", or None

    Returns:
        Aware datetime, or None if input is empty

    Raises:
        ValueError: If the timestamp cannot be parsed

    Examples:
        >>> parse_iso_timestamp("2024-03-04T10:00:00Z")
        datetime.datetime(2024, 3, 4, 10, 0, tzinfo=datetime.timezone.utc)
    """
    if not timestamp_str:
        return None

    if not isinstance(timestamp_str, str):
        raise ValueError(f"Timestamp must be a string, got {type(timestamp_str)}")

    try:
        parsed = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# ============================================================
# Calendar boundaries
# ============================================================


def _check_unit(unit: str) -> None:
    if unit not in CALENDAR_UNITS:
        raise ValueError(f"Unknown calendar unit: {unit}. Expected one of {', '.join(CALENDAR_UNITS)}")


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def shift(value: datetime, unit: str, amount: int = 1) -> datetime:
    """
    Move a datetime by whole calendar units (wall-clock arithmetic).

    Month-based shifts clamp the day to the end of the target month.
    """
    _check_unit(unit)
    if unit == "day":
        return value + timedelta(days=amount)
    if unit == "week":
        return value + timedelta(weeks=amount)
    if unit == "month":
        return _add_months(value, amount)
    if unit == "quarter":
        return _add_months(value, 3 * amount)
    return _add_months(value, 12 * amount)


def start_of(value: datetime, unit: str) -> datetime:
    """
    Truncate a datetime to the start of its calendar unit.

    Weeks are ISO weeks starting on Monday.

    Example:
        >>> start_of(datetime(2024, 3, 6, 15, 30), "week")
        datetime.datetime(2024, 3, 4, 0, 0)
    """
    _check_unit(unit)
    midnight = value.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit == "day":
        return midnight
    if unit == "week":
        return midnight - timedelta(days=midnight.isoweekday() - 1)
    if unit == "month":
        return midnight.replace(day=1)
    if unit == "quarter":
        return midnight.replace(month=3 * ((midnight.month - 1) // 3) + 1, day=1)
    return midnight.replace(month=1, day=1)


def end_of(value: datetime, unit: str) -> datetime:
    """
    Last representable instant of a datetime's calendar unit.

    Example:
        >>> end_of(datetime(2024, 3, 6, 15, 30), "week")
        datetime.datetime(2024, 3, 10, 23, 59, 59, 999999)
    """
    return shift(start_of(value, unit), unit, 1) - timedelta(microseconds=1)


def is_date_last_day_of_week(value: date) -> bool:
    """True when the date is a Sunday (the last day of an ISO week)."""
    return value.isoweekday() == ISO_SUNDAY


def weeks_in_iso_year(year: int) -> int:
    """Number of ISO weeks (52 or 53) in a year."""
    # 28 December always falls in the last ISO week of its year
    return date(year, 12, 28).isocalendar().week


def get_week_index(index: int, reference_year: int | None = None) -> int:
    """
    Map a week index that may have underflowed into the previous ISO year.

    Args:
        index: Week number, possibly 0 or negative after subtraction
        reference_year: ISO year the index is relative to (defaults to the current year)

    Returns:
        index unchanged when >= 1, otherwise the matching week number of the previous year

    Example:
        >>> get_week_index(0, reference_year=2024)   # 2023 has 52 ISO weeks
        52
        >>> get_week_index(-1, reference_year=2024)
        51
    """
    if index >= 1:
        return index

    year = reference_year if reference_year is not None else datetime.now(UTC).year
    return weeks_in_iso_year(year - 1) - abs(index)


# ============================================================
# Intervals and weeks
# ============================================================


@dataclass(frozen=True)
class DateInterval:
    """
    Closed analysis window [start, end].

    An interval with a missing bound, or with start after end, is invalid;
    calculations treat an invalid interval as "no data".
    """

    start: datetime | None
    end: datetime | None

    @property
    def is_valid(self) -> bool:
        return self.start is not None and self.end is not None and self.start <= self.end

    def length_in_months(self) -> float:
        """Fractional number of calendar months covered by the interval."""
        if not self.is_valid:
            return 0.0

        assert self.start is not None and self.end is not None
        whole_months = (self.end.year - self.start.year) * 12 + (self.end.month - self.start.month)
        anchor = _add_months(self.start, whole_months)
        if anchor > self.end:
            whole_months -= 1
            anchor = _add_months(self.start, whole_months)

        next_anchor = _add_months(self.start, whole_months + 1)
        fraction = (self.end - anchor) / (next_anchor - anchor)
        return whole_months + fraction

    def contains(self, value: datetime) -> bool:
        return self.is_valid and self.start <= value <= self.end  # type: ignore[operator]

    def split_by_weeks(self) -> list[DateInterval]:
        """
        Consecutive ISO-week windows covering the interval, clipped to its bounds.

        Example:
            >>> interval = DateInterval(datetime(2024, 3, 6), datetime(2024, 3, 12))
            >>> [(w.start.day, w.end.day) for w in interval.split_by_weeks()]
            [(6, 10), (11, 12)]
        """
        if not self.is_valid:
            return []

        assert self.start is not None and self.end is not None
        windows = []
        window_start = self.start
        while window_start <= self.end:
            window_end = min(end_of(window_start, "week"), self.end)
            windows.append(DateInterval(window_start, window_end))
            window_start = start_of(window_start, "week") + timedelta(weeks=1)
        return windows


@dataclass(frozen=True)
class Week:
    """
    ISO calendar week identified by (year, week_number).

    Attributes:
        year: ISO week-numbering year
        week_number: ISO week number (1-53)
        reference_date: Date the week was built from

    Example:
        >>> earlier = Week.from_date(date(2020, 12, 27))
        >>> later = Week.from_date(date(2021, 1, 3))
        >>> later.is_next_week_of(earlier)
        True
    """

    year: int
    week_number: int
    reference_date: date = field(compare=False)

    @classmethod
    def from_date(cls, reference_date: date) -> Week:
        iso = reference_date.isocalendar()
        return cls(year=iso.year, week_number=iso.week, reference_date=reference_date)

    def is_next_week_of(self, other: Week) -> bool:
        """True when this week immediately follows other, spanning year boundaries."""
        previous = Week.from_date(self.reference_date - timedelta(weeks=1))
        return previous == other

    def contains(self, value: date) -> bool:
        iso = value.isocalendar()
        return (iso.year, iso.week) == (self.year, self.week_number)


class FullWeeks(NamedTuple):
    """Four consecutive complete weeks, oldest first (week4 is the most recent)."""

    week1: Week
    week2: Week
    week3: Week
    week4: Week


def get_last_four_full_weeks(value: datetime) -> FullWeeks:
    """
    The four most recent complete weeks ending at or before a date.

    A date in the middle of a week belongs to a partial week, so the window
    ends on the Sunday of the previous week instead.

    Args:
        value: Analysis end date

    Returns:
        FullWeeks with week4 the most recent complete week
    """
    effective_end = value
    if not is_date_last_day_of_week(value):
        effective_end = end_of(value - timedelta(weeks=1), "week")

    return FullWeeks(
        week1=Week.from_date(effective_end - timedelta(weeks=3)),
        week2=Week.from_date(effective_end - timedelta(weeks=2)),
        week3=Week.from_date(effective_end - timedelta(weeks=1)),
        week4=Week.from_date(effective_end),
    )


# ============================================================
# Timezones and business days
# ============================================================


def is_valid_timezone(name: str | None) -> bool:
    """True when name is a known IANA timezone."""
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def validate_tz_or_utc(name: str | None) -> str:
    """
    Return name when it is a valid timezone, otherwise the configured fallback.

    The fallback is FLOWMETRICS_DEFAULT_TIMEZONE (UTC unless configured).
    """
    fallback = get_config().default_timezone
    if not name:
        return fallback

    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        return log_and_return_default(
            logger,
            e,
            context={"timezone": name},
            default_value=fallback,
            error_type="Timezone validation",
        )
    return name


def get_zone(name: str | None) -> tzinfo:
    """ZoneInfo for a possibly invalid timezone name (falls back like validate_tz_or_utc)."""
    return ZoneInfo(validate_tz_or_utc(name))


def business_days_between(start: datetime, end: datetime) -> int:
    """
    Weekdays from start (inclusive) to end (exclusive); negative when end precedes start.

    Example:
        >>> business_days_between(datetime(2024, 3, 1), datetime(2024, 3, 4))  # Fri -> Mon
        1
    """
    return int(np.busday_count(start.date(), end.date()))
