"""
End-to-end aggregation tests: ICS text through fetch, expansion, splitting
and merging, with the HTTP layer served by httpx.MockTransport.
"""

import asyncio
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import httpx
import pytest

from smartcal.day_splitter import ALL_DAY_LABEL
from smartcal.fetch_orchestrator import SourceAggregator
from smartcal.fetcher import ICSFetcher
from smartcal.models import HOLIDAY_ICAL_URL, CalendarSource
from smartcal.refresh_service import ScheduleRefresher
from smartcal.schedule_builder import ScheduleBuilder
from smartcal.scheduler import TickScheduler

pytestmark = pytest.mark.integration

NOW = datetime(2024, 5, 1, 0, 0, tzinfo=UTC)
WORK_URL = "https://work.example.com/work.ics"
FAMILY_URL = "https://family.example.com/family.ics"
DOWN_URL = "https://down.example.com/down.ics"

FAMILY_ICS = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//smartcal test//EN
BEGIN:VEVENT
UID:trip@family
DTSTART;VALUE=DATE:20240501
DTEND;VALUE=DATE:20240504
SUMMARY:Family trip
END:VEVENT
BEGIN:VEVENT
UID:dinner@family
DTSTART;TZID=Asia/Tokyo:20240503T190000
DTEND;TZID=Asia/Tokyo:20240503T210000
SUMMARY:Dinner
END:VEVENT
END:VCALENDAR
"""


def feeds_transport(documents: dict[str, str]) -> httpx.MockTransport:
    by_host = {httpx.URL(url).host: text for url, text in documents.items()}

    def handler(request: httpx.Request) -> httpx.Response:
        text = by_host.get(request.url.host)
        if text is None:
            return httpx.Response(503)
        return httpx.Response(200, text=text)

    return httpx.MockTransport(handler)


@pytest.fixture
def sources() -> list[CalendarSource]:
    return [
        CalendarSource(url=WORK_URL, color="#60a5fa", name="Work"),
        CalendarSource(url=FAMILY_URL, color="#22c55e", name="Family"),
        CalendarSource(url=DOWN_URL, color="#f97316", name="Broken"),
        CalendarSource(url=HOLIDAY_ICAL_URL, color="#ef4444", name="祝日"),
    ]


@pytest.fixture
def documents(sample_ics_recurring_with_overrides: str, sample_ics_holidays: str) -> dict[str, str]:
    return {
        WORK_URL: sample_ics_recurring_with_overrides,
        FAMILY_URL: FAMILY_ICS,
        HOLIDAY_ICAL_URL: sample_ics_holidays,
    }


@pytest.mark.asyncio
async def test_full_pipeline_merges_all_healthy_sources(
    sources: list[CalendarSource], documents: dict[str, str]
) -> None:
    tokyo = ZoneInfo("Asia/Tokyo")
    async with httpx.AsyncClient(transport=feeds_transport(documents)) as client:
        aggregator = SourceAggregator(
            fetcher=ICSFetcher(client=client, max_retries=0),
            builder=ScheduleBuilder(tokyo),
            time_provider=lambda: NOW,
        )
        events = await aggregator.aggregate(sources)

    # Standup 09:00Z is 18:00 in Tokyo; the 2nd is cancelled, the 4th excluded
    may1 = events["2024-05-01"]
    assert [(i.summary, i.time_str, i.source_index) for i in may1] == [
        ("Daily Standup", "18:00", 0),
        ("Family trip", ALL_DAY_LABEL, 1),
    ]
    assert [i.summary for i in events["2024-05-02"]] == ["Family trip"]

    may3 = events["2024-05-03"]
    assert [(i.summary, i.time_str) for i in may3] == [
        ("Dinner", "19:00"),
        ("Moved Standup", "20:00"),
        ("Family trip", ALL_DAY_LABEL),
        ("憲法記念日", ALL_DAY_LABEL),
    ]
    assert may3[2].is_end is True
    assert may3[3].is_holiday_feed is True
    assert "2024-05-04" not in events
    assert [i.summary for i in events["2024-05-05"]] == ["Daily Standup"]
    assert all(i.source_index != 2 for day in events.values() for i in day)


@pytest.mark.asyncio
async def test_refresher_publishes_aggregated_snapshot(
    sources: list[CalendarSource], documents: dict[str, str]
) -> None:
    async def never(_seconds: float) -> None:
        await asyncio.Event().wait()

    async with httpx.AsyncClient(transport=feeds_transport(documents)) as client:
        aggregator = SourceAggregator(
            fetcher=ICSFetcher(client=client, max_retries=0),
            builder=ScheduleBuilder(UTC),
            time_provider=lambda: NOW,
        )
        scheduler = TickScheduler(clock=lambda: NOW, sleep=never)
        refresher = ScheduleRefresher(aggregator, scheduler, interval_minutes=5)
        refresher.set_sources(sources)

        assert await refresher.refresh() is True
        await refresher.close()
        await scheduler.close()

    snapshot = refresher.snapshot
    assert sorted(snapshot) == ["2024-05-01", "2024-05-02", "2024-05-03", "2024-05-05"]
    assert snapshot["2024-05-01"][0].time_str == "09:00"
