"""Unit tests for smartcal.datetime_utils."""

from datetime import UTC, date, datetime, timedelta
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from smartcal.datetime_utils import (
    coerce_instant,
    format_date_key,
    format_hhmm,
    horizon_for,
    is_date_only,
    recurrence_identity,
    resolve_timezone,
    span_between,
    to_display_date,
    to_display_datetime,
)
from smartcal.exceptions import ConfigError, MalformedDateError

pytestmark = pytest.mark.unit

TOKYO = ZoneInfo("Asia/Tokyo")


class TestRecurrenceIdentity:
    def test_date_value_uses_basic_date_form(self) -> None:
        assert recurrence_identity(date(2024, 5, 1)) == "20240501"

    def test_floating_value_has_no_zone_suffix(self) -> None:
        assert recurrence_identity(datetime(2024, 5, 1, 9, 0)) == "20240501T090000"

    def test_aware_values_naming_same_instant_share_a_key(self) -> None:
        tokyo_nine = datetime(2024, 5, 1, 9, 0, tzinfo=TOKYO)
        utc_midnight = datetime(2024, 5, 1, 0, 0, tzinfo=UTC)

        assert recurrence_identity(tokyo_nine) == recurrence_identity(utc_midnight)
        assert recurrence_identity(tokyo_nine) == "20240501T000000Z"

    def test_date_and_datetime_never_collide(self) -> None:
        assert recurrence_identity(date(2024, 5, 1)) != recurrence_identity(
            datetime(2024, 5, 1, 0, 0, tzinfo=UTC)
        )


class TestCoerceInstant:
    def test_property_with_dt_attribute_is_unwrapped(self) -> None:
        prop = SimpleNamespace(dt=date(2024, 5, 1))

        assert coerce_instant(prop) == date(2024, 5, 1)

    def test_raw_datetime_passes_through(self) -> None:
        value = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)

        assert coerce_instant(value) is value

    def test_missing_property_raises(self) -> None:
        with pytest.raises(MalformedDateError, match="missing DTEND"):
            coerce_instant(None, "DTEND")

    def test_duration_value_raises(self) -> None:
        with pytest.raises(MalformedDateError):
            coerce_instant(SimpleNamespace(dt=timedelta(hours=1)))


class TestDisplayConversion:
    def test_date_becomes_local_midnight(self) -> None:
        result = to_display_datetime(date(2024, 5, 1), TOKYO)

        assert result == datetime(2024, 5, 1, 0, 0, tzinfo=TOKYO)

    def test_floating_datetime_is_read_as_local_wall_time(self) -> None:
        result = to_display_datetime(datetime(2024, 5, 1, 9, 0), TOKYO)

        assert (result.hour, result.tzinfo) == (9, TOKYO)

    def test_aware_datetime_is_converted(self) -> None:
        result = to_display_datetime(datetime(2024, 5, 1, 23, 30, tzinfo=UTC), TOKYO)

        assert result == datetime(2024, 5, 2, 8, 30, tzinfo=TOKYO)

    def test_display_date_of_late_utc_event_is_next_day_in_tokyo(self) -> None:
        assert to_display_date(datetime(2024, 5, 1, 23, 30, tzinfo=UTC), TOKYO) == date(2024, 5, 2)

    def test_display_date_of_date_is_unchanged(self) -> None:
        assert to_display_date(date(2024, 5, 1), TOKYO) == date(2024, 5, 1)


class TestFormatting:
    def test_format_date_key_zero_pads(self) -> None:
        assert format_date_key(date(2024, 1, 5)) == "2024-01-05"

    def test_format_hhmm_zero_pads(self) -> None:
        assert format_hhmm(datetime(2024, 1, 5, 7, 3)) == "07:03"

    def test_is_date_only(self) -> None:
        assert is_date_only(date(2024, 1, 5)) is True
        assert is_date_only(datetime(2024, 1, 5)) is False


class TestSpanAndHorizon:
    def test_span_between_datetimes(self) -> None:
        start = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)

        assert span_between(start, start + timedelta(minutes=45)) == timedelta(minutes=45)

    def test_span_between_mixed_types_is_tolerated(self) -> None:
        span = span_between(date(2024, 5, 1), datetime(2024, 5, 1, 12, 0, tzinfo=UTC))

        assert span == timedelta(hours=12)

    def test_negative_span_is_clamped_to_zero(self) -> None:
        assert span_between(date(2024, 5, 3), date(2024, 5, 1)) == timedelta(0)

    def test_horizon_is_midnight_two_years_ahead_in_display_tz(self) -> None:
        now = datetime(2024, 5, 1, 16, 0, tzinfo=UTC)  # 2024-05-02 01:00 in Tokyo

        assert horizon_for(now, TOKYO, 2) == datetime(2026, 5, 2, 0, 0, tzinfo=TOKYO)

    def test_horizon_from_leap_day_clamps_to_month_end(self) -> None:
        now = datetime(2024, 2, 29, 12, 0, tzinfo=UTC)

        assert horizon_for(now, UTC, 2) == datetime(2026, 2, 28, 0, 0, tzinfo=UTC)


class TestResolveTimezone:
    def test_known_name_resolves(self) -> None:
        assert resolve_timezone("Asia/Tokyo") == TOKYO

    def test_empty_name_falls_back_to_host_timezone(self) -> None:
        assert resolve_timezone(None) is not None

    def test_unknown_name_raises_config_error(self) -> None:
        with pytest.raises(ConfigError, match="Unknown timezone"):
            resolve_timezone("Mars/Olympus_Mons")
