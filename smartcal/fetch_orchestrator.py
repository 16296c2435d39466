"""Multi-source fetch and merge for smartcal."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Optional

from .exceptions import FetchError, ParseError
from .fetcher import CalendarFetcher
from .models import CalendarSource, EventDateMap
from .schedule_builder import ScheduleBuilder, sort_day_buckets

logger = logging.getLogger(__name__)

DEFAULT_FETCH_CONCURRENCY = 4


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SourceAggregator:
    """Fetch every configured calendar and merge them into one day map.

    Sources are processed concurrently and joined before merging; a failing
    source contributes nothing and never affects the others.
    """

    def __init__(
        self,
        fetcher: CalendarFetcher,
        builder: ScheduleBuilder,
        time_provider: Callable[[], datetime] = _utc_now,
        fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY,
    ):
        """Initialize aggregator.

        Args:
            fetcher: Fetch collaborator returning calendar text for a URL
            builder: Per-source parse/expand/split pipeline
            time_provider: Function returning the current time
            fetch_concurrency: Maximum number of sources fetched at once
        """
        self.fetcher = fetcher
        self.builder = builder
        self.time_provider = time_provider
        self.fetch_concurrency = max(1, fetch_concurrency)

    async def aggregate(self, sources: Sequence[CalendarSource]) -> EventDateMap:
        """Build a fresh EventDateMap from all sources.

        Args:
            sources: Ordered calendar sources; order defines source_index

        Returns:
            New map with each day's instances sorted by time_str (stable, so
            ties keep source order then emission order). Empty when every
            source failed.
        """
        if not sources:
            logger.debug("No calendar sources configured")
            return {}

        now = self.time_provider()
        semaphore = asyncio.Semaphore(self.fetch_concurrency)
        tasks = [
            asyncio.create_task(self._collect_source(semaphore, index, source, now))
            for index, source in enumerate(sources)
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        merged: EventDateMap = {}
        succeeded = 0
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.error("Calendar source %s failed: %s", source.url, result)
                continue
            if result is None:
                continue
            succeeded += 1
            for day_key, instances in result.items():
                merged.setdefault(day_key, []).extend(instances)

        sort_day_buckets(merged)
        logger.info(
            "Aggregated %d/%d calendar sources into %d days",
            succeeded,
            len(sources),
            len(merged),
        )
        return merged

    async def _collect_source(
        self,
        semaphore: asyncio.Semaphore,
        index: int,
        source: CalendarSource,
        now: datetime,
    ) -> Optional[EventDateMap]:
        """Fetch, build and tag one source; None when the source failed."""
        try:
            async with semaphore:
                ics_text = await self.fetcher.fetch(source.url)
            calendar_name, parsed = await asyncio.to_thread(self.builder.build_named, ics_text, now)
        except FetchError as e:
            logger.warning("iCal fetch error for %s: %s", source.url, e)
            return None
        except ParseError as e:
            logger.warning("iCal parse error for %s: %s", source.url, e)
            return None
        except Exception:
            logger.exception("Unexpected error processing calendar %s", source.url)
            return None

        if source.name is None and calendar_name:
            source = source.model_copy(update={"name": calendar_name})

        tagged: EventDateMap = {
            day_key: [instance.tagged(index, source) for instance in instances]
            for day_key, instances in parsed.items()
        }
        logger.debug("Source %d (%s) produced %d days", index, source.url, len(tagged))
        return tagged
