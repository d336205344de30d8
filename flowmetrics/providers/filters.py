"""
Query Filters

Request-level filter values consumed by the calculations: the analysis date
window, the chart aggregation, the client's timezone and language, and the
work item type restriction.

Usage:
    from flowmetrics.providers.filters import QueryFilters

    filters = QueryFilters.from_query_parameters({
        "departureDateLowerBoundary": "2024-01-01",
        "departureDateUpperBoundary": "2024-03-31",
        "timezone": "Australia/Sydney",
        "currentDataAggregation": "Weeks",
    })
    period = filters.date_period()
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from flowmetrics.analysis.aggregation import get_safe_aggregation, is_aggregation_valid
from flowmetrics.core.logging_config import get_logger
from flowmetrics.utils.datetime_utils import DateInterval, end_of, get_zone, start_of
from flowmetrics.utils.error_handling import log_and_return_default

logger = get_logger(__name__)

DEFAULT_ROLLING_WINDOW_DAYS = 30
DEFAULT_FILTER_AGGREGATION = "week"


class DateAnalysisOptions:
    ALL = "all"
    WAS = "was"
    BECAME = "became"


def parse_data_aggregation(value: object) -> str:
    """
    Aggregation from the 'currentDataAggregation' parameter.

    Example:
        >>> parse_data_aggregation("Months")
        'month'
        >>> parse_data_aggregation(None)
        'week'
    """
    if not isinstance(value, str) or not value:
        return DEFAULT_FILTER_AGGREGATION

    name = value.lower()
    if name.endswith("s"):
        name = name[:-1]
    return name if is_aggregation_valid(name) else DEFAULT_FILTER_AGGREGATION


def _parse_list(value: str | None) -> tuple[str, ...] | None:
    if not value:
        return None
    return tuple(part for part in value.split(",") if part)


@dataclass
class QueryFilters:
    """
    Filters of one request.

    Attributes:
        start: Lower departure boundary (ISO date/datetime or datetime)
        end: Upper departure boundary
        client_timezone: IANA timezone of the client; invalid values fall back to the default zone
        client_language: Client locale, e.g. 'en-AU'
        aggregation: Chart bucket size
        work_item_types: Flomatika work item type ids to restrict to
        filter_by_date: Whether providers restrict items to the date window
        date_analysis_option: How providers match items to the window ('all', 'was', 'became')
        exclude_weekends: Count business days only for time-to-commit
        rolling_window_days: Window used when no lower boundary is given
    """

    start: datetime | str | None = None
    end: datetime | str | None = None
    client_timezone: str | None = None
    client_language: str | None = None
    aggregation: str = DEFAULT_FILTER_AGGREGATION
    work_item_types: tuple[str, ...] | None = None
    filter_by_date: bool = True
    date_analysis_option: str | None = None
    exclude_weekends: bool = False
    rolling_window_days: int = DEFAULT_ROLLING_WINDOW_DAYS

    @classmethod
    def from_query_parameters(cls, params: dict[str, Any] | None) -> "QueryFilters":
        """Build filters from raw query string parameters."""
        if not params:
            return cls()

        return cls(
            start=params.get("departureDateLowerBoundary"),
            end=params.get("departureDateUpperBoundary"),
            client_timezone=params.get("timezone") or params.get("tz"),
            client_language=params.get("lang"),
            aggregation=parse_data_aggregation(params.get("currentDataAggregation")),
            work_item_types=_parse_list(params.get("workItemTypes")),
            date_analysis_option=params.get("dateAnalysisOption"),
        )

    def _parse_boundary(self, value: datetime | str | None, name: str) -> datetime | None:
        if value is None or value == "":
            return None

        zone = get_zone(self.client_timezone)
        if isinstance(value, datetime):
            parsed = value
        else:
            try:
                parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            except ValueError as e:
                return log_and_return_default(
                    logger,
                    e,
                    context={"parameter": name, "value": value},
                    default_value=None,
                    error_type="Date boundary parsing",
                )

        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=zone)
        return parsed.astimezone(zone)

    def date_period(self) -> DateInterval:
        """
        Analysis window in the client timezone, from the start of the first day
        to the end of the last.

        A missing upper boundary means today; a missing lower boundary means the
        start of the week rolling_window_days before the upper boundary. The
        bounds are swapped when given in reverse order.
        """
        start = self._parse_boundary(self.start, "start")
        end = self._parse_boundary(self.end, "end")

        if end is None:
            end = datetime.now(UTC).astimezone(get_zone(self.client_timezone))
        end = end_of(end, "day")

        if start is None:
            start = start_of(end - timedelta(days=self.rolling_window_days), "week")
        else:
            start = start_of(start, "day")

        if start <= end:
            return DateInterval(start, end)
        return DateInterval(end, start)

    def set_safe_aggregation(self) -> None:
        """Switch to the coarsest sensible aggregation for the window length."""
        safe_aggregation = get_safe_aggregation(self.date_period())
        if safe_aggregation is not None:
            logger.debug(
                "Using safe aggregation",
                extra={"requested": self.aggregation, "safe": safe_aggregation},
            )
            self.aggregation = safe_aggregation

    def query_shape(self) -> tuple[Any, ...]:
        """Hashable summary of every filter value that changes provider results."""

        def boundary(value: datetime | str | None) -> str | None:
            return value.isoformat() if isinstance(value, datetime) else value

        return (
            boundary(self.start),
            boundary(self.end),
            self.client_timezone,
            self.work_item_types,
            self.filter_by_date,
            self.date_analysis_option,
            self.exclude_weekends,
            self.rolling_window_days,
        )
