"""Periodic schedule refresh with atomic snapshot replacement - smartcal."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from types import MappingProxyType
from typing import Optional

from .fetch_orchestrator import SourceAggregator
from .models import CalendarEventInstance, CalendarSource, EventDateMap
from .scheduler import Disposer, TickScheduler

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_MINUTES = 5

Snapshot = MappingProxyType[str, list[CalendarEventInstance]]
UpdateListener = Callable[[Snapshot], None]

_EMPTY: EventDateMap = {}


class ScheduleRefresher:
    """Keep an up-to-date EventDateMap for readers.

    Every refresh builds a brand-new map and publishes it by swapping a single
    reference, so readers always see either the previous or the new map. A
    generation counter marks in-flight refreshes stale when the sources change
    or the service is closed; stale results are discarded, not applied.
    Overlapping refreshes are numbered in start order and a result older than
    the last published one is discarded too.
    """

    def __init__(
        self,
        aggregator: SourceAggregator,
        scheduler: TickScheduler,
        interval_minutes: float = DEFAULT_REFRESH_INTERVAL_MINUTES,
    ) -> None:
        """Initialize refresher.

        Args:
            aggregator: Builds a new EventDateMap from sources
            scheduler: Shared tick service driving periodic refreshes
            interval_minutes: Minutes between refreshes
        """
        self.aggregator = aggregator
        self.scheduler = scheduler
        self.interval_minutes = interval_minutes

        self._sources: tuple[CalendarSource, ...] = ()
        self._snapshot: Snapshot = MappingProxyType(_EMPTY)
        self._generation = 0
        self._next_ticket = 0
        self._published_ticket = -1
        self._closed = False
        self._dispose_tick: Optional[Disposer] = None
        self._tasks: set[asyncio.Task[bool]] = set()
        self._update_listeners: list[UpdateListener] = []

    @property
    def snapshot(self) -> Snapshot:
        """The most recently published, read-only EventDateMap."""
        return self._snapshot

    @property
    def sources(self) -> tuple[CalendarSource, ...]:
        return self._sources

    @property
    def generation(self) -> int:
        return self._generation

    def on_update(self, listener: UpdateListener) -> Disposer:
        """Call listener with each newly published snapshot."""
        self._update_listeners.append(listener)

        def dispose() -> None:
            if listener in self._update_listeners:
                self._update_listeners.remove(listener)

        return dispose

    def set_sources(self, sources: Iterable[CalendarSource]) -> None:
        """Replace the calendar sources; in-flight refreshes become stale.

        Sources with blank URLs are ignored. With no usable source the empty
        map is published immediately.
        """
        self._sources = tuple(s for s in sources if s.url and s.url.strip())
        self._generation += 1
        logger.debug(
            "Calendar sources set (%d active), generation %d",
            len(self._sources),
            self._generation,
        )
        if not self._sources:
            self._publish({})

    async def refresh(self) -> bool:
        """Run one aggregation cycle and publish its result if still current.

        Returns:
            True if a new snapshot was published, False if the result was
            discarded as stale or superseded by a later refresh, or there
            was nothing to do
        """
        if self._closed:
            return False
        if not self._sources:
            self._publish({})
            return True

        generation = self._generation
        sources = self._sources
        ticket = self._next_ticket
        self._next_ticket += 1
        result = await self.aggregator.aggregate(sources)

        if self._closed or generation != self._generation:
            logger.debug(
                "Discarding stale refresh result (generation %d, current %d, closed=%s)",
                generation,
                self._generation,
                self._closed,
            )
            return False
        if ticket < self._published_ticket:
            logger.debug(
                "Discarding refresh %d: refresh %d already published", ticket, self._published_ticket
            )
            return False

        self._published_ticket = ticket
        self._publish(result)
        return True

    def start(self) -> None:
        """Refresh now and then every interval, driven by the tick scheduler."""
        if self._closed:
            raise RuntimeError("ScheduleRefresher is closed")
        if self._dispose_tick is not None:
            return
        self._dispose_tick = self.scheduler.subscribe_periodic(
            self.interval_minutes, lambda _now: self._schedule_refresh()
        )
        logger.info("Schedule refresh started (every %s minutes)", self.interval_minutes)

    def _schedule_refresh(self) -> None:
        task = asyncio.get_running_loop().create_task(self._refresh_logged())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh_logged(self) -> bool:
        try:
            return await self.refresh()
        except Exception:
            logger.exception("Schedule refresh failed")
            return False

    async def close(self) -> None:
        """Stop periodic refresh; results still in flight are discarded."""
        self._closed = True
        self._generation += 1
        if self._dispose_tick is not None:
            self._dispose_tick()
            self._dispose_tick = None
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.debug("Schedule refresher closed")

    def _publish(self, events: EventDateMap) -> None:
        self._snapshot = MappingProxyType(events)
        logger.debug("Published schedule snapshot with %d days", len(events))
        for listener in list(self._update_listeners):
            try:
                listener(self._snapshot)
            except Exception:
                logger.exception("Schedule update listener failed")
