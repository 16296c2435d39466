"""Date and time helpers for calendar aggregation - smartcal.

All-day values stay ``datetime.date`` objects, timed values stay
``datetime.datetime`` (aware or floating) until the day splitter converts them
into the display timezone.
"""

import logging
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

from .exceptions import ConfigError, MalformedDateError
from .models import Instant

logger = logging.getLogger(__name__)


def is_date_only(value: Instant) -> bool:
    """Check if value is a DATE (not a DATE-TIME)."""
    return isinstance(value, date) and not isinstance(value, datetime)


def recurrence_identity(value: Instant) -> str:
    """Serialize an instant into the key used to link overrides to occurrences.

    Aware values are normalized to UTC so that a TZID-qualified RECURRENCE-ID
    and a rule occurrence naming the same instant produce the same key.

    Examples:
        >>> recurrence_identity(date(2024, 5, 1))
        '20240501'
        >>> recurrence_identity(datetime(2024, 5, 1, 9, 0))
        '20240501T090000'
        >>> recurrence_identity(datetime(2024, 5, 1, 9, 0, tzinfo=UTC))
        '20240501T090000Z'
    """
    if is_date_only(value):
        return value.strftime("%Y%m%d")
    if value.tzinfo is None:
        return value.strftime("%Y%m%dT%H%M%S")
    return value.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")


def coerce_instant(prop: Any, prop_name: str = "DTSTART") -> Instant:
    """Extract a date or datetime from an icalendar date property.

    Args:
        prop: icalendar vDDDTypes property (or a raw date/datetime)
        prop_name: Property name for error messages

    Returns:
        date for DATE values, datetime for DATE-TIME values

    Raises:
        MalformedDateError: If the property is missing or holds another type
    """
    if prop is None:
        raise MalformedDateError(f"missing {prop_name}")
    value = getattr(prop, "dt", prop)
    if isinstance(value, (date, datetime)):
        return value
    raise MalformedDateError(f"{prop_name} is not a date or date-time: {value!r}")


def to_display_datetime(value: Instant, tz: tzinfo) -> datetime:
    """Convert an instant to an aware datetime in the display timezone.

    DATE values become local midnight; floating DATE-TIMEs are read as local
    wall time.
    """
    if is_date_only(value):
        return datetime(value.year, value.month, value.day, tzinfo=tz)
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def to_display_date(value: Instant, tz: tzinfo) -> date:
    """Calendar day an instant falls on in the display timezone."""
    if is_date_only(value):
        return value
    return to_display_datetime(value, tz).date()


def format_date_key(day: date) -> str:
    """Format a calendar day as a bucket key (YYYY-MM-DD)."""
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def format_hhmm(dt: datetime) -> str:
    """Format a datetime as zero-padded 24h HH:MM."""
    return f"{dt.hour:02d}:{dt.minute:02d}"


def span_between(start: Instant, end: Instant) -> timedelta:
    """Duration from start to end, tolerating DATE/DATE-TIME mixes.

    Mixed or aware/naive pairs are compared as UTC wall times; a negative span
    is clamped to zero.
    """
    try:
        span = end - start
    except TypeError:
        start_dt = to_display_datetime(start, UTC)
        end_dt = to_display_datetime(end, UTC)
        span = end_dt - start_dt
    if span < timedelta(0):
        logger.debug("Negative event span %s -> %s clamped to zero", start, end)
        return timedelta(0)
    return span


def horizon_for(now: datetime, tz: tzinfo, years: int) -> datetime:
    """Midnight of the day ``years`` after ``now`` in the display timezone."""
    local_now = now.astimezone(tz) if now.tzinfo is not None else now.replace(tzinfo=tz)
    horizon_day = local_now.date() + relativedelta(years=years)
    return datetime(horizon_day.year, horizon_day.month, horizon_day.day, tzinfo=tz)


def get_local_timezone() -> tzinfo:
    """Timezone of the host, used when no display timezone is configured."""
    local = datetime.now().astimezone().tzinfo
    return local if local is not None else UTC


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Resolve an IANA timezone name, falling back to the host timezone.

    Raises:
        ConfigError: If the name is not a known IANA timezone
    """
    if not name:
        return get_local_timezone()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: {name}") from e
