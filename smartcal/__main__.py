"""Command-line entry for smartcal.

Runs one aggregation of the configured calendars and prints the resulting
day map as JSON, or keeps refreshing it with ``--watch``.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from collections.abc import Sequence
from datetime import tzinfo
from typing import NoReturn, Optional

from . import _init_logging
from .config_loader import Config, load_config, normalize_calendars
from .datetime_utils import resolve_timezone
from .exceptions import ConfigError
from .fetch_orchestrator import SourceAggregator
from .fetcher import ICSFetcher
from .logging_config import configure_logging
from .models import EventDateMap
from .refresh_service import ScheduleRefresher, Snapshot
from .scheduler import TickScheduler
from .schedule_builder import ScheduleBuilder

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for smartcal CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="smartcal",
        description="smartcal - merge iCalendar feeds into a day-by-day schedule",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m smartcal                               # Print schedule for configured calendars
  python -m smartcal --url https://example.com/a.ics --timezone Asia/Tokyo
  python -m smartcal --watch                       # Keep refreshing every interval
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="Path to YAML/JSON config file")
    parser.add_argument(
        "--url",
        action="append",
        metavar="URL",
        help="Calendar feed URL (repeatable); replaces calendars from the config file",
    )
    parser.add_argument("--timezone", metavar="TZ", help="IANA display timezone (default: host)")
    parser.add_argument(
        "--watch", action="store_true", help="Refresh periodically and print a summary per refresh"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def schedule_to_json(events: EventDateMap | Snapshot) -> str:
    """Serialize a day map using the rendering layer's field names."""
    payload = {
        day_key: [instance.model_dump(by_alias=True) for instance in events[day_key]]
        for day_key in sorted(events)
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def build_aggregator(config: Config, display_tz: tzinfo, fetcher: ICSFetcher) -> SourceAggregator:
    """Wire the per-source pipeline and aggregator from configuration."""
    return SourceAggregator(
        fetcher=fetcher,
        builder=ScheduleBuilder(display_tz),
        fetch_concurrency=config.fetch_concurrency,
    )


def _make_fetcher(config: Config) -> ICSFetcher:
    return ICSFetcher(
        request_timeout=config.request_timeout,
        max_retries=config.max_retries,
        proxy_url=config.proxy_url,
    )


async def run_once(config: Config, display_tz: tzinfo) -> EventDateMap:
    """Aggregate all configured calendars once."""
    async with _make_fetcher(config) as fetcher:
        aggregator = build_aggregator(config, display_tz, fetcher)
        return await aggregator.aggregate(config.calendars)


async def run_watch(config: Config, display_tz: tzinfo) -> None:
    """Refresh on the tick scheduler until interrupted."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    scheduler = TickScheduler()
    async with _make_fetcher(config) as fetcher:
        refresher = ScheduleRefresher(
            build_aggregator(config, display_tz, fetcher),
            scheduler,
            interval_minutes=config.refresh_interval_minutes,
        )

        def _print_summary(snapshot: Snapshot) -> None:
            total = sum(len(items) for items in snapshot.values())
            print(f"schedule updated: {len(snapshot)} days, {total} entries", flush=True)

        refresher.on_update(_print_summary)
        refresher.set_sources(config.calendars)
        refresher.start()
        try:
            await stop_event.wait()
        finally:
            await refresher.close()
            await scheduler.close()


def main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Run the smartcal CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"smartcal: {exc}", file=sys.stderr)
        sys.exit(2)

    _init_logging(config.log_level)
    configure_logging(
        debug_mode=args.debug or config.log_level == "DEBUG",
        default_level=config.log_level,
    )

    if args.url:
        config.calendars = normalize_calendars({"calendars": [{"url": u} for u in args.url]})

    try:
        display_tz = resolve_timezone(args.timezone or config.timezone)
    except ConfigError as exc:
        print(f"smartcal: {exc}", file=sys.stderr)
        sys.exit(2)

    if args.watch:
        asyncio.run(run_watch(config, display_tz))
    else:
        events = asyncio.run(run_once(config, display_tz))
        print(schedule_to_json(events))
    sys.exit(0)


if __name__ == "__main__":
    main()
