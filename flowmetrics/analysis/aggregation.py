"""
Aggregation / Bucketing

Slices an analysis interval into calendar buckets (day, week, month, quarter,
year) and assigns work items to them by departure date.

Buckets are contiguous, non-overlapping and ascending. An invalid or missing
interval produces no buckets rather than an error; callers read that as
"no data".

Usage:
    from flowmetrics.analysis.aggregation import get_completed_work_items_by_aggregation

    buckets = get_completed_work_items_by_aggregation(items, "week", filters.date_period())
    for bucket_start, bucket_items in buckets:
        print(format_aggregation_label(bucket_start, "week"), len(bucket_items))
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.work_items import WorkItem
from flowmetrics.utils.datetime_utils import (
    DateInterval,
    end_of,
    is_date_last_day_of_week,
    shift,
    start_of,
)

logger = get_logger(__name__)

AGGREGATIONS = ("day", "week", "month", "quarter", "year")
DEFAULT_AGGREGATION = "day"

# Interval length (months) -> safest aggregation for charts
SAFE_AGGREGATION_LIMITS = ((3, "week"), (12, "month"), (24, "quarter"))


def is_aggregation_valid(aggregation: object) -> bool:
    return isinstance(aggregation, str) and aggregation in AGGREGATIONS


def parse_aggregation(aggregation_param: object) -> str:
    """Aggregation key from a query parameter, defaulting to 'day'."""
    if is_aggregation_valid(aggregation_param):
        return aggregation_param  # type: ignore[return-value]
    return DEFAULT_AGGREGATION


def parse_filter_aggregation_option(aggregation_param: object) -> str:
    """
    Aggregation key from the UI filter option ("Weeks", "Months", ...).

    Example:
        >>> parse_filter_aggregation_option("Weeks")
        'week'
    """
    if not aggregation_param or not isinstance(aggregation_param, str):
        return DEFAULT_AGGREGATION
    return parse_aggregation(aggregation_param.lower()[:-1])


def get_safe_aggregation(interval: DateInterval) -> str | None:
    """
    Coarsest sensible aggregation for the interval length.

    Returns:
        'week' up to 3 months, 'month' up to 12, 'quarter' up to 24, else 'year';
        None for an invalid interval
    """
    if not interval.is_valid:
        return None

    months = interval.length_in_months()
    for limit, aggregation in SAFE_AGGREGATION_LIMITS:
        if months <= limit:
            return aggregation
    return "year"


def get_work_item_date_adjuster(aggregation: str) -> Callable[[WorkItem], WorkItem]:
    """
    Function returning a copy of a work item with its dates truncated to the bucket start.

    The input item is never modified.
    """

    def adjust(value: datetime | None) -> datetime | None:
        return start_of(value, aggregation) if value is not None else None

    def adjust_work_item(work_item: WorkItem) -> WorkItem:
        return replace(
            work_item,
            arrival_datetime=adjust(work_item.arrival_datetime),
            commitment_datetime=adjust(work_item.commitment_datetime),
            departure_datetime=adjust(work_item.departure_datetime),
        )

    return adjust_work_item


def generate_date_array(interval: DateInterval, aggregation: str) -> list[datetime]:
    """
    Start of every bucket touched by the interval, ascending.

    Example:
        >>> interval = DateInterval(datetime(2024, 1, 15), datetime(2024, 3, 2))
        >>> [d.month for d in generate_date_array(interval, "month")]
        [1, 2, 3]
    """
    if not interval.is_valid:
        return []

    assert interval.start is not None and interval.end is not None
    first = start_of(interval.start, aggregation)

    dates = []
    index = 0
    bucket_start = first
    while bucket_start <= interval.end:
        dates.append(bucket_start)
        index += 1
        bucket_start = shift(first, aggregation, index)
    return dates


@dataclass
class IntervalBucket:
    date_start: datetime
    date_end: datetime
    work_items: list[WorkItem]


def separate_work_items_in_interval_buckets(
    work_items: Iterable[WorkItem],
    interval: DateInterval,
    aggregation: str,
    date_field: str,
) -> list[IntervalBucket]:
    """
    Bucket work items by an arbitrary date attribute.

    An item belongs to a bucket when start < item date <= end of the bucket.

    Args:
        work_items: Items to bucket
        interval: Analysis interval
        aggregation: Bucket size
        date_field: WorkItem datetime attribute, e.g. 'commitment_datetime'
    """
    items = list(work_items)
    buckets = []
    for date_start in generate_date_array(interval, aggregation):
        date_end = end_of(date_start, aggregation)
        in_bucket = [
            item
            for item in items
            if getattr(item, date_field) is not None and date_start < getattr(item, date_field) <= date_end
        ]
        buckets.append(IntervalBucket(date_start=date_start, date_end=date_end, work_items=in_bucket))
    return buckets


def unique_by_id(work_items: Iterable[WorkItem]) -> list[WorkItem]:
    """First occurrence of each work item id, in input order."""
    seen: set[str] = set()
    unique = []
    for item in work_items:
        if item.work_item_id in seen:
            continue
        seen.add(item.work_item_id)
        unique.append(item)
    return unique


def get_completed_work_items_by_aggregation(
    work_items: Iterable[WorkItem],
    aggregation: str,
    interval: DateInterval | None,
    exclude_incomplete_trailing_week: bool = True,
) -> list[tuple[datetime, list[WorkItem]]]:
    """
    Group completed work items into calendar buckets by departure date.

    Items are deduplicated by id and compared on their departure date truncated
    to the bucket size (in the interval's timezone). Items without a departure
    date are ignored.

    Args:
        work_items: Completed work items
        aggregation: Bucket size
        interval: Analysis interval; invalid or missing gives []
        exclude_incomplete_trailing_week: For weekly buckets, drop the last
            bucket when the interval ends before that week's Sunday

    Returns:
        (bucket start, items) pairs, ascending; the input items are not modified
    """
    if interval is None or not interval.is_valid:
        logger.debug("Invalid analysis interval, no buckets generated")
        return []

    assert interval.start is not None and interval.end is not None
    bucket_dates = generate_date_array(interval, aggregation)
    zone = interval.start.tzinfo

    items_by_bucket: dict[datetime, list[WorkItem]] = {date: [] for date in bucket_dates}
    departed = sorted(
        (item for item in unique_by_id(work_items) if item.departure_datetime is not None),
        key=lambda item: item.departure_datetime,  # type: ignore[arg-type, return-value]
    )
    for item in departed:
        departure = item.departure_datetime
        assert departure is not None
        if zone is not None and departure.tzinfo is not None:
            departure = departure.astimezone(zone)
        bucket = start_of(departure, aggregation)
        if bucket in items_by_bucket:
            items_by_bucket[bucket].append(item)

    grouped = [(date, items_by_bucket[date]) for date in bucket_dates]

    if aggregation == "week" and exclude_incomplete_trailing_week and grouped:
        if not is_date_last_day_of_week(interval.end):
            grouped.pop()

    return grouped


def format_aggregation_label(value: datetime, aggregation: str) -> str:
    """
    Chart label for a bucket start.

    Example:
        >>> format_aggregation_label(datetime(2024, 3, 4), "quarter")
        'Q1 2024'
        >>> format_aggregation_label(datetime(2024, 3, 4), "week")
        'Mar-04 2024'
    """
    if aggregation == "month":
        return value.strftime("%b %Y")
    if aggregation == "quarter":
        return f"Q{(value.month - 1) // 3 + 1} {value.year}"
    if aggregation == "year":
        return value.strftime("%Y")
    return value.strftime("%b-%d %Y")
