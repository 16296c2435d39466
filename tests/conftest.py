"""Shared fixtures for smartcal tests."""

from collections.abc import Callable, Generator
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

import pytest


def pytest_configure(config: Any) -> None:
    """Register smartcal test markers."""
    config.addinivalue_line("markers", "unit: Fast isolated unit tests")
    config.addinivalue_line("markers", "integration: Multi-component pipeline tests")


def wrap_vevents(*vevents: str) -> str:
    """Wrap VEVENT blocks in a minimal VCALENDAR document."""
    body = "\n".join(v.strip("\n") for v in vevents)
    return (
        "BEGIN:VCALENDAR\n"
        "VERSION:2.0\n"
        "PRODID:-//smartcal test//EN\n"
        f"{body}\n"
        "END:VCALENDAR\n"
    )


@pytest.fixture
def make_ics() -> Callable[..., str]:
    """Return a helper building an ICS document from VEVENT blocks."""
    return wrap_vevents


@pytest.fixture
def fixed_now() -> datetime:
    """Deterministic 'now' used as the recurrence horizon anchor."""
    return datetime(2024, 5, 1, 0, 0, tzinfo=UTC)


@pytest.fixture
def tokyo() -> ZoneInfo:
    return ZoneInfo("Asia/Tokyo")


@pytest.fixture(autouse=True)
def clean_smartcal_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Keep smartcal environment overrides from leaking between tests."""
    for name in ("SMARTCAL_CONFIG", "SMARTCAL_DEBUG", "SMARTCAL_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield


# ==================== ICS Test Data Fixtures ====================


@pytest.fixture
def sample_ics_simple() -> str:
    """
    Return a simple ICS calendar string with a single timed event.

    Returns:
        ICS string with one event: "Team Meeting" on 2024-05-02 10:00-11:00 UTC
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//smartcal test//EN
CALSCALE:GREGORIAN
X-WR-CALNAME:Work
BEGIN:VEVENT
UID:simple-001@smartcal.test
DTSTART:20240502T100000Z
DTEND:20240502T110000Z
SUMMARY:Team Meeting
LOCATION:Conference Room A
DTSTAMP:20240501T090000Z
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def sample_ics_recurring_with_overrides() -> str:
    """
    Return an ICS string with a daily series and three kinds of override.

    Returns:
        ICS string with "Daily Standup" 09:00-09:15 UTC, COUNT=5 from
        2024-05-01, where:
        - 2024-05-02 is cancelled (STATUS:CANCELLED)
        - 2024-05-03 is retitled "Moved Standup" and moved to 11:00
        - 2024-05-04 is excluded by EXDATE
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//smartcal test//EN
BEGIN:VEVENT
UID:standup@smartcal.test
DTSTART:20240501T090000Z
DTEND:20240501T091500Z
SUMMARY:Daily Standup
RRULE:FREQ=DAILY;COUNT=5
EXDATE:20240504T090000Z
END:VEVENT
BEGIN:VEVENT
UID:standup@smartcal.test
RECURRENCE-ID:20240502T090000Z
DTSTART:20240502T090000Z
DTEND:20240502T091500Z
SUMMARY:Daily Standup
STATUS:CANCELLED
END:VEVENT
BEGIN:VEVENT
UID:standup@smartcal.test
RECURRENCE-ID:20240503T090000Z
DTSTART:20240503T110000Z
DTEND:20240503T111500Z
SUMMARY:Moved Standup
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def sample_ics_all_day_span() -> str:
    """
    Return an ICS string with a three-day all-day event.

    Returns:
        ICS string with "Conference" DTSTART;VALUE=DATE:20240501 and
        DTEND;VALUE=DATE:20240504 (exclusive), covering May 1-3
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//smartcal test//EN
BEGIN:VEVENT
UID:conference@smartcal.test
DTSTART;VALUE=DATE:20240501
DTEND;VALUE=DATE:20240504
SUMMARY:Conference
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def sample_ics_holidays() -> str:
    """Return a holiday feed with one public holiday on 2024-05-03."""
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Google Inc//Google Calendar 70.9054//EN
X-WR-CALNAME:日本の祝日
BEGIN:VEVENT
UID:20240503_holiday@google.com
DTSTART;VALUE=DATE:20240503
DTEND;VALUE=DATE:20240504
SUMMARY:憲法記念日
END:VEVENT
END:VCALENDAR
"""
