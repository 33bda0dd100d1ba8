"""
Window Definition Calculator.

Computes calendar-aligned current / previous / year-ago date ranges for the
four CompStat comparison windows from an explicit reference instant.

Window rules:
    - 7d / 28d / 365d: `current` is the N days ending at end-of-day of the
      reference, inclusive. `previous` is the N days immediately before it.
      `yearAgo` is `current` moved back one calendar year.
    - ytd: `current` runs from January 1 of the reference year through the
      reference day. `previous` is the same number of days ending on
      December 31 of the prior year. `yearAgo` is `current` moved back one
      calendar year, so a partial year is compared to the matching partial
      year.

Invariants:
    - previous.end + TIME_UNIT == current.start (no gap, no overlap)
    - Year shifts use calendar arithmetic; February 29 maps to February 28.
    - Day boundaries are taken in a fixed operational time zone, never the
      host zone, and the reference instant is always passed in. Nothing in
      this module reads the clock.

Usage:
    from compstat.services.windows import get_all_window_definitions

    definitions = get_all_window_definitions(reference)
    for definition in definitions:
        print(definition.id, definition.current.start, definition.current.end)
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from compstat.core.config import DEFAULT_TIMEZONE
from compstat.models import DateRange, WindowDefinition, WindowId


# =============================================================================
# Constants
# =============================================================================

COMPSTAT_ZONE = ZoneInfo(DEFAULT_TIMEZONE)

# Smallest step between two instants; previous.end is exactly this far
# before current.start.
TIME_UNIT = timedelta(microseconds=1)

DEFAULT_FOCUS_WINDOW = WindowId.LAST_28_DAYS

# Insertion order is the display order of the summary tiles
WINDOW_LABELS: Dict[WindowId, str] = {
    WindowId.LAST_7_DAYS: "Last 7 days",
    WindowId.LAST_28_DAYS: "Last 28 days",
    WindowId.YEAR_TO_DATE: "Year to date",
    WindowId.LAST_365_DAYS: "Last 365 days",
}

WINDOW_LENGTHS: Dict[WindowId, int] = {
    WindowId.LAST_7_DAYS: 7,
    WindowId.LAST_28_DAYS: 28,
    WindowId.LAST_365_DAYS: 365,
}

ZoneLike = Union[ZoneInfo, str, None]


# =============================================================================
# Calendar Helpers
# =============================================================================


def resolve_zone(zone: ZoneLike = None) -> ZoneInfo:
    """Return a ZoneInfo for a zone name, an existing ZoneInfo or None (default zone)."""
    if zone is None:
        return COMPSTAT_ZONE
    if isinstance(zone, str):
        return ZoneInfo(zone)
    return zone


def localize(reference: datetime, zone: ZoneLike = None) -> datetime:
    """
    Express a reference instant in the operational zone.

    Naive datetimes are interpreted as wall-clock time in that zone; aware
    datetimes are converted.
    """
    tz = resolve_zone(zone)
    if reference.tzinfo is None:
        return reference.replace(tzinfo=tz)
    return reference.astimezone(tz)


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def shift_years(day: date, years: int) -> date:
    """
    Move a date back by whole calendar years.

    February 29 has no counterpart in a common year and lands on February 28.

    Example:
        >>> shift_years(date(2024, 2, 29), 1)
        datetime.date(2023, 2, 28)
    """
    target_year = day.year - years
    try:
        return day.replace(year=target_year)
    except ValueError:
        return day.replace(year=target_year, day=28)


def covered_years(first: date, last: date) -> Tuple[str, ...]:
    """Every calendar year touched by [first, last], as strings."""
    return tuple(str(year) for year in range(first.year, last.year + 1))


def _day_range(first: date, last: date, tz: ZoneInfo) -> DateRange:
    return DateRange(
        start=start_of_day(first, tz),
        end=end_of_day(last, tz),
        years=covered_years(first, last),
    )


# =============================================================================
# Window Builders
# =============================================================================


def _fixed_length_window(
    window_id: WindowId,
    reference_day: date,
    tz: ZoneInfo,
) -> WindowDefinition:
    days = WINDOW_LENGTHS[window_id]
    current_first = reference_day - timedelta(days=days - 1)
    previous_last = current_first - timedelta(days=1)
    previous_first = previous_last - timedelta(days=days - 1)

    return WindowDefinition(
        id=window_id,
        label=WINDOW_LABELS[window_id],
        current=_day_range(current_first, reference_day, tz),
        previous=_day_range(previous_first, previous_last, tz),
        yearAgo=_day_range(
            shift_years(current_first, 1),
            shift_years(reference_day, 1),
            tz,
        ),
        dayCount=days,
    )


def _year_to_date_window(reference_day: date, tz: ZoneInfo) -> WindowDefinition:
    current_first = date(reference_day.year, 1, 1)
    days = (reference_day - current_first).days + 1
    previous_last = current_first - timedelta(days=1)
    previous_first = previous_last - timedelta(days=days - 1)

    return WindowDefinition(
        id=WindowId.YEAR_TO_DATE,
        label=WINDOW_LABELS[WindowId.YEAR_TO_DATE],
        current=_day_range(current_first, reference_day, tz),
        previous=_day_range(previous_first, previous_last, tz),
        yearAgo=_day_range(
            shift_years(current_first, 1),
            shift_years(reference_day, 1),
            tz,
        ),
        dayCount=days,
    )


# =============================================================================
# Public API
# =============================================================================


def get_window_definition(
    window_id: Union[WindowId, str],
    reference: datetime,
    zone: ZoneLike = None,
) -> WindowDefinition:
    """
    Build the definition of one comparison window.

    Args:
        window_id: '7d', '28d', 'ytd' or '365d' (or the WindowId member).
        reference: Instant whose calendar day closes the current range.
        zone: Operational time zone (defaults to America/Chicago).

    Returns:
        WindowDefinition with current, previous and yearAgo ranges.

    Raises:
        ValueError: If window_id is not a known window.
    """
    window = WindowId(window_id)
    tz = resolve_zone(zone)
    reference_day = localize(reference, tz).date()

    if window is WindowId.YEAR_TO_DATE:
        return _year_to_date_window(reference_day, tz)
    return _fixed_length_window(window, reference_day, tz)


def get_all_window_definitions(
    reference: datetime,
    zone: ZoneLike = None,
) -> List[WindowDefinition]:
    """All four windows in tile order: 7d, 28d, ytd, 365d."""
    return [
        get_window_definition(window_id, reference, zone)
        for window_id in WINDOW_LABELS
    ]


def build_range_from_dates(
    start: Union[date, datetime],
    end: Union[date, datetime],
    zone: ZoneLike = None,
) -> DateRange:
    """
    Build an ad hoc (possibly multi-year) range normalised to day boundaries.

    Used for the long daily history behind the weekly trend.

    Raises:
        ValueError: If start falls after end.
    """
    tz = resolve_zone(zone)
    first = localize(start, tz).date() if isinstance(start, datetime) else start
    last = localize(end, tz).date() if isinstance(end, datetime) else end
    if first > last:
        raise ValueError(f"Range start {first} is after range end {last}")
    return _day_range(first, last, tz)


def parse_window_id(value: Optional[str]) -> WindowId:
    """Map a query-string value to a WindowId, falling back to the default focus window."""
    try:
        return WindowId(value)
    except ValueError:
        return DEFAULT_FOCUS_WINDOW
