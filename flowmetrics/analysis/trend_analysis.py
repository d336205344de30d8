"""
Trend Analysis

Turns per-week counts into week, fortnight and four-week comparisons with an
arrow direction and colour for the dashboards.

The current calendar week is never compared: it is still in progress, so the
most recent *complete* week is the second most recent key of the week map.

Usage:
    from flowmetrics.analysis.trend_analysis import get_trend_analysis_response

    week_numbers = [item.departure_datetime.isocalendar().week for item in completed]
    trend = get_trend_analysis_response(week_numbers, filters.date_period())
    print(trend.last_week.text)
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from flowmetrics.core.logging_config import get_logger
from flowmetrics.domain.constants import trend_config
from flowmetrics.domain.metrics import EMPTY_TREND, TrendAnalysis, TrendAnalysisStructure
from flowmetrics.utils.datetime_utils import DateInterval, end_of, get_week_index, start_of, weeks_in_iso_year
from flowmetrics.utils.statistics import round_half_up

logger = get_logger(__name__)

DISPLAY_PERCENTAGE_LIMIT = trend_config.DISPLAY_PERCENTAGE_LIMIT

# Longest possible ISO year; only used to order week numbers around a year boundary
_MAX_WEEKS = 53

# Data weeks up to this many weeks past the period end count as later than it
_MAX_WEEKS_AHEAD = 26


class TrendDirection:
    UP = "Up"
    DOWN = "Down"
    STABLE = "Stable"


@dataclass(frozen=True)
class ArrowColours:
    up_colour: str = "green"
    down_colour: str = "red"
    stable_colour: str = "yellow"

    def reversed(self) -> "ArrowColours":
        """Colours for metrics where a decrease is the good direction."""
        return ArrowColours(
            up_colour=self.down_colour,
            down_colour=self.up_colour,
            stable_colour=self.stable_colour,
        )


DEFAULT_COLOURS = ArrowColours()
REVERSE_DEFAULT_COLOURS = DEFAULT_COLOURS.reversed()


def get_percentual_difference(previous_value: float, current_value: float) -> float:
    """
    Percentage change from previous to current, capped at DISPLAY_PERCENTAGE_LIMIT.

    Both values zero gives 0. A zero previous value gives the cap (negative cap
    for a negative current value).

    Example:
        >>> get_percentual_difference(2, 3)
        50.0
        >>> get_percentual_difference(0, 4)
        9999
    """
    if not previous_value and not current_value:
        return 0
    if not previous_value:
        return DISPLAY_PERCENTAGE_LIMIT if current_value > 0 else -DISPLAY_PERCENTAGE_LIMIT

    difference = ((current_value - previous_value) / previous_value) * 100
    return min(difference, DISPLAY_PERCENTAGE_LIMIT)


def get_trend_analysis_content(
    previous_value: float,
    current_value: float,
    period: str,
    colours: ArrowColours | None = None,
    decrease_is_good: bool = False,
) -> TrendAnalysisStructure:
    """
    Compare two values and describe the change.

    Args:
        previous_value: Value of the earlier period
        current_value: Value of the later period
        period: Period name used in the text ("week", "two weeks", ...)
        colours: Arrow colours; defaults depend on decrease_is_good
        decrease_is_good: Swap the default up/down colours

    Returns:
        TrendAnalysisStructure with the absolute, rounded percentage change
    """
    if colours is None:
        colours = REVERSE_DEFAULT_COLOURS if decrease_is_good else DEFAULT_COLOURS

    comparison = f" compared to last {period}"
    percentage = get_percentual_difference(previous_value, current_value)

    if percentage > 0:
        text, direction, colour = "more" + comparison, TrendDirection.UP, colours.up_colour
    elif percentage < 0:
        text, direction, colour = "less" + comparison, TrendDirection.DOWN, colours.down_colour
    else:
        text, direction, colour = "same" + comparison, TrendDirection.STABLE, colours.stable_colour

    return TrendAnalysisStructure(
        percentage=abs(round_half_up(percentage)),
        text=text,
        arrow_direction=direction,
        arrow_colour=colour,
    )


def get_latest_week_end(week_numbers: Iterable[int], period: DateInterval | None = None) -> datetime:
    """
    End of the latest week: the week of the period end, or a later data week.

    Week numbers carry no year, so a data week counts as later only when it is
    at most _MAX_WEEKS_AHEAD weeks past the period end (wrapping into the next
    ISO year).

    Example:
        >>> period = DateInterval(datetime(2024, 2, 5), datetime(2024, 3, 27))  # weeks 6 to 13
        >>> get_latest_week_end([12, 15], period).isocalendar().week
        15
    """
    end = period.end if period and period.end else datetime.now(UTC)
    end_week = end_of(end, "week")
    end_week_number = end_week.isocalendar().week
    year_weeks = weeks_in_iso_year(end_week.isocalendar().year)

    offsets = [(week - end_week_number) % year_weeks for week in week_numbers]
    ahead = max((offset for offset in offsets if offset <= _MAX_WEEKS_AHEAD), default=0)
    return end_week + timedelta(weeks=ahead)


def format_week_count(week_count: dict[int, int], period: DateInterval | None = None) -> dict[int, int]:
    """
    Zero-fill a week-number -> count map over the analysis period.

    The current calendar week is the later of the week of the period end (or of
    today when the period has no end) and the latest week in the data. It is
    added with a zero count when absent, as is the week the period starts in,
    and every week between them.

    Args:
        week_count: ISO week number -> count
        period: Analysis interval; either bound may be missing

    Returns:
        A new, filled map (the input is not modified)
    """
    filled = dict(week_count)

    current_week_end = get_latest_week_end(week_count, period)
    filled.setdefault(current_week_end.isocalendar().week, 0)

    if period is None or period.start is None:
        return filled

    week_start = start_of(period.start, "week")
    while week_start < current_week_end:
        filled.setdefault(week_start.isocalendar().week, 0)
        week_start += timedelta(weeks=1)

    return filled


def get_current_week_num(week_count: dict[int, int], reference_week: int | None = None) -> int | None:
    """
    Most recent *complete* week: the second most recent key of the map.

    Args:
        week_count: ISO week number -> count
        reference_week: Current calendar week; defaults to the highest key.
            Pass it when the map spans a year boundary.

    Returns:
        The week number, or None when the map has fewer than two weeks
    """
    if len(week_count) < 2:
        return None

    reference = reference_week if reference_week is not None else max(week_count)
    weeks_by_recency = sorted(week_count, key=lambda week: (reference - week) % _MAX_WEEKS)
    return weeks_by_recency[1]


def _week_value(week_count: dict[int, int], week_number: int, reference_year: int | None) -> int:
    return week_count.get(get_week_index(week_number, reference_year), 0)


def get_trend_analysis_response_from_week_count(
    week_count: dict[int, int],
    colours: ArrowColours | None = None,
    decrease_is_good: bool = False,
    reference_week: int | None = None,
    reference_year: int | None = None,
) -> TrendAnalysis:
    """
    Week, fortnight and four-week comparisons from a filled week map.

    Each level needs enough distinct weeks in the map (current week included):
    3 for the week comparison, 5 for the fortnight and 9 for four weeks.
    Levels without enough data stay empty.

    Args:
        week_count: ISO week number -> count, already zero-filled
        colours: Arrow colours
        decrease_is_good: Swap the default up/down colours
        reference_week: Current calendar week (see get_current_week_num)
        reference_year: ISO year of the complete week, used when subtracting
            weeks crosses into the previous year
    """
    size = len(week_count)
    current_week_num = get_current_week_num(week_count, reference_week)
    if current_week_num is None or size < trend_config.MIN_WEEKS_LAST_WEEK:
        return TrendAnalysis()

    def value(offset: int) -> int:
        return _week_value(week_count, current_week_num - offset, reference_year)

    current_week = value(0)
    previous_week = value(1)
    last_week = get_trend_analysis_content(previous_week, current_week, "week", colours, decrease_is_good)

    last_two_weeks = EMPTY_TREND
    current_two_weeks = current_week + previous_week
    previous_two_weeks = 0
    if size >= trend_config.MIN_WEEKS_LAST_TWO_WEEKS:
        previous_two_weeks = value(2) + value(3)
        last_two_weeks = get_trend_analysis_content(
            previous_two_weeks, current_two_weeks, "two weeks", colours, decrease_is_good
        )

    last_four_weeks = EMPTY_TREND
    if size >= trend_config.MIN_WEEKS_LAST_FOUR_WEEKS:
        current_four_weeks = current_two_weeks + previous_two_weeks
        previous_four_weeks = value(4) + value(5) + value(6) + value(7)
        last_four_weeks = get_trend_analysis_content(
            previous_four_weeks, current_four_weeks, "four weeks", colours, decrease_is_good
        )

    return TrendAnalysis(last_week=last_week, last_two_weeks=last_two_weeks, last_four_weeks=last_four_weeks)


def get_trend_analysis_response(
    week_numbers: Iterable[int],
    period: DateInterval | None,
    colours: ArrowColours | None = None,
    decrease_is_good: bool = False,
) -> TrendAnalysis:
    """
    Trend analysis from one ISO week number per sample (e.g. per completed item).

    Args:
        week_numbers: Week number of every sample; repeated weeks are counted
        period: Analysis interval used to zero-fill missing weeks
        colours: Arrow colours
        decrease_is_good: Swap the default up/down colours

    Returns:
        TrendAnalysis (levels without enough weeks are empty)
    """
    week_count = format_week_count(dict(Counter(week_numbers)), period)

    current_week = get_latest_week_end(week_count, period)
    last_complete_week = current_week - timedelta(weeks=1)

    logger.debug("Trend analysis week map built", extra={"weeks": len(week_count)})
    return get_trend_analysis_response_from_week_count(
        week_count,
        colours=colours,
        decrease_is_good=decrease_is_good,
        reference_week=current_week.isocalendar().week,
        reference_year=last_complete_week.isocalendar().year,
    )
