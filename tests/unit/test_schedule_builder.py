"""Unit tests for smartcal.schedule_builder."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from smartcal.day_splitter import ALL_DAY_LABEL
from smartcal.exceptions import ParseError
from smartcal.models import CalendarEventInstance
from smartcal.rrule_expander import ExpanderLimits
from smartcal.schedule_builder import ScheduleBuilder, sort_day_buckets

pytestmark = pytest.mark.unit


def instance(summary: str, time_str: str) -> CalendarEventInstance:
    return CalendarEventInstance(
        summary=summary,
        start_date_key="2024-05-01",
        end_date_key="2024-05-01",
        time_str=time_str,
    )


class TestSortDayBuckets:
    def test_sort_orders_by_time_string_with_all_day_last(self) -> None:
        events = {
            "2024-05-01": [
                instance("Lunch", "12:00"),
                instance("Holiday", ALL_DAY_LABEL),
                instance("Breakfast", "07:30"),
            ]
        }

        sort_day_buckets(events)

        assert [i.summary for i in events["2024-05-01"]] == ["Breakfast", "Lunch", "Holiday"]

    def test_sort_keeps_insertion_order_for_ties(self) -> None:
        events = {"2024-05-01": [instance("first", "09:00"), instance("second", "09:00")]}

        sort_day_buckets(events)

        assert [i.summary for i in events["2024-05-01"]] == ["first", "second"]


class TestScheduleBuilder:
    def test_build_applies_overrides_cancellations_and_exdates(
        self, sample_ics_recurring_with_overrides: str, fixed_now: datetime
    ) -> None:
        events = ScheduleBuilder(UTC).build(sample_ics_recurring_with_overrides, fixed_now)

        assert sorted(events) == ["2024-05-01", "2024-05-03", "2024-05-05"]
        assert [(i.summary, i.time_str) for i in events["2024-05-03"]] == [("Moved Standup", "11:00")]
        assert events["2024-05-05"][0].summary == "Daily Standup"

    def test_build_sorts_each_day(self, make_ics, fixed_now: datetime) -> None:
        ics = make_ics(
            """
BEGIN:VEVENT
UID:late
DTSTART:20240502T150000Z
SUMMARY:Late
END:VEVENT
BEGIN:VEVENT
UID:allday
DTSTART;VALUE=DATE:20240502
SUMMARY:All day
END:VEVENT
BEGIN:VEVENT
UID:early
DTSTART:20240502T080000Z
SUMMARY:Early
END:VEVENT
"""
        )

        events = ScheduleBuilder(UTC).build(ics, fixed_now)

        assert [i.summary for i in events["2024-05-02"]] == ["Early", "Late", "All day"]

    def test_build_uses_display_timezone_for_day_keys(
        self, sample_ics_simple: str, fixed_now: datetime
    ) -> None:
        events = ScheduleBuilder(ZoneInfo("Asia/Tokyo")).build(sample_ics_simple, fixed_now)

        # 10:00Z is 19:00 in Tokyo on the same day
        assert [(i.time_str, i.end_time_str) for i in events["2024-05-02"]] == [("19:00", "20:00")]

    def test_build_honours_custom_limits(self, make_ics, fixed_now: datetime) -> None:
        ics = make_ics(
            """
BEGIN:VEVENT
UID:forever
DTSTART:20240501T090000Z
RRULE:FREQ=DAILY
SUMMARY:Forever
END:VEVENT
"""
        )

        events = ScheduleBuilder(UTC, limits=ExpanderLimits(max_occurrences=3)).build(ics, fixed_now)

        assert sorted(events) == ["2024-05-01", "2024-05-02", "2024-05-03"]

    def test_build_when_document_malformed_then_raises(self, fixed_now: datetime) -> None:
        with pytest.raises(ParseError):
            ScheduleBuilder(UTC).build("not a calendar", fixed_now)

    def test_build_returns_untagged_instances(self, sample_ics_simple: str, fixed_now: datetime) -> None:
        events = ScheduleBuilder(UTC).build(sample_ics_simple, fixed_now)

        only = events["2024-05-02"][0]
        assert only.source_index is None
        assert only.is_holiday_feed is False

    def test_build_named_returns_calendar_name(self, sample_ics_simple: str, fixed_now: datetime) -> None:
        name, events = ScheduleBuilder(UTC).build_named(sample_ics_simple, fixed_now)

        assert name == "Work"
        assert list(events) == ["2024-05-02"]
