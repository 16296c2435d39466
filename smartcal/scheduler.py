"""Wall-clock minute tick service - smartcal.

One `TickScheduler` is constructed by the application and handed to whatever
needs periodic work. It runs a single asyncio task that wakes at each minute
boundary and broadcasts the current time to the registered listeners; the task
exists only while there are listeners.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Optional

from .datetime_utils import format_date_key

logger = logging.getLogger(__name__)

TickListener = Callable[[datetime], None]
Disposer = Callable[[], None]


def _local_now() -> datetime:
    return datetime.now().astimezone()


def seconds_until_next_minute(now: datetime) -> float:
    """Seconds from now to the next wall-clock minute boundary."""
    elapsed = now.second + now.microsecond / 1_000_000
    return max(60.0 - elapsed, 0.0)


class TickScheduler:
    """Broadcast the current time to subscribers once per wall-clock minute."""

    def __init__(
        self,
        clock: Callable[[], datetime] = _local_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize scheduler.

        Args:
            clock: Function returning the current (local, aware) time
            sleep: Awaitable sleep used between ticks
        """
        self.clock = clock
        self._sleep = sleep
        self._listeners: dict[int, TickListener] = {}
        self._next_token = 0
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: TickListener, fire_immediately: bool = True) -> Disposer:
        """Register a listener called at every minute boundary.

        Args:
            listener: Called with the tick time
            fire_immediately: Also call the listener once right away

        Returns:
            Disposer removing the listener; safe to call more than once
        """
        token = self._next_token
        self._next_token += 1
        self._listeners[token] = listener
        self._ensure_running()

        if fire_immediately:
            self._call_listener(listener, self.clock())

        def dispose() -> None:
            if self._listeners.pop(token, None) is not None and not self._listeners:
                self._stop()

        return dispose

    def subscribe_periodic(
        self,
        interval_minutes: float,
        listener: TickListener,
        fire_immediately: bool = True,
        align_to_wall_clock: bool = True,
    ) -> Disposer:
        """Register a listener called once per interval.

        The listener fires at most once per ``(day, minute_of_day //
        interval)`` bucket. When aligned, it only fires on minutes divisible by
        the interval (e.g. :00, :05, :10 for a 5 minute interval).
        An immediate first call counts as that bucket's call.

        Raises:
            ValueError: If interval_minutes is not a positive finite number
        """
        if (
            not isinstance(interval_minutes, (int, float))
            or not math.isfinite(interval_minutes)
            or interval_minutes <= 0
        ):
            raise ValueError("interval_minutes must be a positive number")

        last_key: Optional[str] = None

        def bucket_key(now: datetime) -> str:
            minutes_since_midnight = now.hour * 60 + now.minute
            bucket = int(minutes_since_midnight // interval_minutes)
            return f"{format_date_key(now.date())}:{bucket}"

        def handler(now: datetime) -> None:
            nonlocal last_key
            if align_to_wall_clock and now.minute % interval_minutes != 0:
                return

            key = bucket_key(now)
            if key == last_key:
                return
            last_key = key
            listener(now)

        dispose = self.subscribe(handler, fire_immediately=False)

        if fire_immediately:
            now = self.clock()
            # The immediate call occupies the current bucket
            last_key = bucket_key(now)
            self._call_listener(listener, now)

        return dispose

    def dispatch(self, now: datetime) -> None:
        """Deliver one tick to every current listener."""
        for listener in list(self._listeners.values()):
            self._call_listener(listener, now)

    def _call_listener(self, listener: TickListener, now: datetime) -> None:
        try:
            listener(now)
        except Exception:
            logger.exception("Tick listener %r failed", listener)

    def _ensure_running(self) -> None:
        if self.is_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; ticks start with the next subscription made inside one")
            return
        self._task = loop.create_task(self._run())

    def _stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        logger.debug("Tick loop started")
        while self._listeners:
            await self._sleep(seconds_until_next_minute(self.clock()))
            self.dispatch(self.clock())
        logger.debug("Tick loop stopped: no listeners")

    async def close(self) -> None:
        """Drop every listener and stop the tick loop."""
        self._listeners.clear()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
