"""Data models for calendar aggregation - smartcal."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CALENDAR_COLOR = "#60a5fa"
HOLIDAY_CALENDAR_COLOR = "#ef4444"
HOLIDAY_CALENDAR_NAME = "祝日"

# Reserved feed URL: always flagged as the public holiday calendar
HOLIDAY_ICAL_URL = (
    "https://calendar.google.com/calendar/ical/"
    "ja.japanese%23holiday%40group.v.calendar.google.com/public/basic.ics"
)

# Either a DATE (all-day) or a DATE-TIME (timed, aware or floating)
Instant = Union[date, datetime]


class CalendarSource(BaseModel):
    """Configuration for one calendar feed."""

    url: str = Field(..., description="ICS calendar URL")
    color: str = Field(default=DEFAULT_CALENDAR_COLOR, description="Display color for this feed")
    name: Optional[str] = Field(default=None, description="Human-readable name for this feed")

    model_config = ConfigDict(frozen=True)

    @property
    def is_holiday_feed(self) -> bool:
        """Check if this source is the reserved public holiday feed."""
        return self.url == HOLIDAY_ICAL_URL


class CalendarEventInstance(BaseModel):
    """One event as it appears in a single day bucket.

    Field aliases are the names the rendering layer consumes; use
    ``model_dump(by_alias=True)`` when handing instances to it.
    """

    summary: str = Field(default="", description="Event title")
    start_date_key: str = Field(..., serialization_alias="start", description="YYYY-MM-DD of first day")
    end_date_key: str = Field(..., serialization_alias="end", description="YYYY-MM-DD of last day")
    time_str: str = Field(..., serialization_alias="timeStr", description="HH:MM or all-day label")
    end_time_str: str = Field(default="", serialization_alias="endTimeStr")
    is_all_day: bool = Field(default=False, serialization_alias="isAllDay")
    is_start: bool = Field(default=False, serialization_alias="isStart")
    is_end: bool = Field(default=False, serialization_alias="isEnd")

    # Source metadata, filled in by the aggregator
    source_index: Optional[int] = Field(default=None, serialization_alias="calendarIndex")
    source_color: Optional[str] = Field(default=None, serialization_alias="calendarColor")
    source_name: Optional[str] = Field(default=None, serialization_alias="calendarName")
    is_holiday_feed: bool = Field(default=False, serialization_alias="isHoliday")

    model_config = ConfigDict(frozen=True)

    def tagged(self, index: int, source: CalendarSource) -> "CalendarEventInstance":
        """Return a copy carrying the metadata of the source it came from."""
        return self.model_copy(
            update={
                "source_index": index,
                "source_color": source.color,
                "source_name": source.name,
                "is_holiday_feed": source.is_holiday_feed,
            }
        )


# YYYY-MM-DD -> instances ordered by time_str
EventDateMap = dict[str, list[CalendarEventInstance]]


@dataclass
class MasterEvent:
    """A VEVENT without RECURRENCE-ID; the authoritative event definition."""

    uid: str
    start: Instant
    end: Instant
    is_all_day: bool
    summary: str = ""
    rrule: Optional[str] = None
    exdates: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_recurring(self) -> bool:
        return bool(self.rrule)


@dataclass
class OverrideEvent:
    """A VEVENT with RECURRENCE-ID replacing or cancelling one occurrence.

    Cancellations may carry no usable timing; replacements always do.
    """

    uid: str
    recurrence_key: str
    cancelled: bool = False
    start: Optional[Instant] = None
    end: Optional[Instant] = None
    is_all_day: bool = False
    summary: str = ""


@dataclass
class ClassifiedEvents:
    """Masters in document order plus overrides indexed by UID and recurrence key."""

    masters: list[MasterEvent] = field(default_factory=list)
    overrides_by_uid: dict[str, dict[str, OverrideEvent]] = field(default_factory=dict)

    def overrides_for(self, uid: str) -> dict[str, OverrideEvent]:
        return self.overrides_by_uid.get(uid, {})


# Override resolution outcomes for one computed occurrence


@dataclass(frozen=True)
class Cancelled:
    """Occurrence removed by STATUS:CANCELLED override or EXDATE."""

    recurrence_key: str


@dataclass(frozen=True)
class Replaced:
    """Occurrence rescheduled or retitled by an override."""

    start: Instant
    end: Instant
    is_all_day: bool
    summary: str


@dataclass(frozen=True)
class Unmodified:
    """Occurrence kept as computed from the rule."""

    start: Instant


OverrideResolution = Union[Cancelled, Replaced, Unmodified]


@dataclass(frozen=True)
class ResolvedOccurrence:
    """Final timing and title of one occurrence, ready for day splitting."""

    start: Instant
    end: Instant
    summary: str
    is_all_day: bool
