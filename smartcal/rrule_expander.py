"""RRULE expansion with per-occurrence overrides - smartcal."""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from typing import Optional, assert_never

from dateutil.rrule import rruleset, rrulestr

from .datetime_utils import (
    horizon_for,
    is_date_only,
    recurrence_identity,
    span_between,
    to_display_datetime,
)
from .exceptions import RecurrenceRuleError
from .models import (
    Cancelled,
    Instant,
    MasterEvent,
    OverrideEvent,
    OverrideResolution,
    Replaced,
    ResolvedOccurrence,
    Unmodified,
)

logger = logging.getLogger(__name__)

_UNTIL_RE = re.compile(r"UNTIL=(\d{8}(?:T\d{6})?)Z", re.IGNORECASE)

# Longest each month can be; February counts its leap-year length
_MONTH_LENGTHS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def _rule_parts(rule_text: str) -> dict[str, str]:
    """Split an RRULE value into upper-cased KEY -> value pairs."""
    parts: dict[str, str] = {}
    for item in rule_text.split(";"):
        key, sep, value = item.partition("=")
        if sep:
            parts[key.strip().upper()] = value.strip()
    return parts


@dataclass(frozen=True)
class ExpanderLimits:
    """Termination bounds for recurrence expansion.

    These guard against hostile or malformed rules and are not user settings.
    """

    max_occurrences: int = 2000
    horizon_years: int = 2


class RecurrenceExpander:
    """Expand master events into resolved occurrences."""

    def __init__(self, display_tz: tzinfo, limits: Optional[ExpanderLimits] = None) -> None:
        """Initialize expander.

        Args:
            display_tz: Timezone the horizon is measured in
            limits: Termination bounds (defaults to ExpanderLimits())
        """
        self.display_tz = display_tz
        self.limits = limits or ExpanderLimits()

    def expand(
        self,
        master: MasterEvent,
        overrides: dict[str, OverrideEvent],
        now: datetime,
    ) -> Iterator[ResolvedOccurrence]:
        """Yield the resolved occurrences of one master event.

        Non-recurring masters yield exactly themselves. Recurring masters
        yield each rule occurrence up to the horizon and occurrence cap, with
        cancellations skipped and overrides substituted.

        Args:
            master: Master event to expand
            overrides: Overrides for this master's UID keyed by recurrence key
            now: Current time; the horizon is measured from it

        Yields:
            ResolvedOccurrence for every occurrence that is not cancelled
        """
        if not master.is_recurring:
            yield ResolvedOccurrence(
                start=master.start,
                end=master.end,
                summary=master.summary,
                is_all_day=master.is_all_day,
            )
            return

        try:
            rule = self.build_rule(master)
        except RecurrenceRuleError as e:
            logger.warning(
                "Event %s has an unusable RRULE (%s); showing the first occurrence only",
                master.uid,
                e,
            )
            yield ResolvedOccurrence(
                start=master.start,
                end=master.end,
                summary=master.summary,
                is_all_day=master.is_all_day,
            )
            return

        duration = span_between(master.start, master.end)
        linked: set[str] = set()
        cancelled = 0

        for occurrence in self.iter_occurrences(master, rule, now):
            resolution = self.resolve(master, occurrence, overrides)

            if isinstance(resolution, Cancelled):
                linked.add(resolution.recurrence_key)
                cancelled += 1
                continue
            if isinstance(resolution, Replaced):
                linked.add(recurrence_identity(occurrence))
                yield ResolvedOccurrence(
                    start=resolution.start,
                    end=resolution.end,
                    summary=resolution.summary,
                    is_all_day=resolution.is_all_day,
                )
            elif isinstance(resolution, Unmodified):
                yield ResolvedOccurrence(
                    start=resolution.start,
                    end=resolution.start + duration,
                    summary=master.summary,
                    is_all_day=master.is_all_day,
                )
            else:
                assert_never(resolution)

        unlinked = set(overrides) - linked
        if unlinked:
            logger.debug(
                "Event %s: %d override(s) match no generated occurrence: %s",
                master.uid,
                len(unlinked),
                sorted(unlinked),
            )
        if cancelled:
            logger.debug("Event %s: %d occurrence(s) cancelled", master.uid, cancelled)

    def resolve(
        self,
        master: MasterEvent,
        occurrence: Instant,
        overrides: dict[str, OverrideEvent],
    ) -> OverrideResolution:
        """Decide what happens to one computed occurrence."""
        key = recurrence_identity(occurrence)
        if key in master.exdates:
            return Cancelled(recurrence_key=key)

        override = overrides.get(key)
        if override is None:
            return Unmodified(start=occurrence)
        if override.cancelled or override.start is None or override.end is None:
            return Cancelled(recurrence_key=key)
        return Replaced(
            start=override.start,
            end=override.end,
            is_all_day=override.is_all_day,
            summary=override.summary,
        )

    def iter_occurrences(
        self, master: MasterEvent, rule: rruleset, now: datetime
    ) -> Iterator[Instant]:
        """Occurrence starts in chronological order, bounded by horizon and cap.

        Values have the same type as the master's start: dates for all-day
        masters, datetimes in the master's own timezone otherwise.
        """
        horizon = horizon_for(now, self.display_tz, self.limits.horizon_years)
        start = master.start
        wall_tz = None if is_date_only(start) else start.tzinfo

        for index, wall_time in enumerate(rule):
            if index >= self.limits.max_occurrences:
                logger.warning(
                    "Event %s reached the %d occurrence cap; expansion stopped",
                    master.uid,
                    self.limits.max_occurrences,
                )
                break

            if is_date_only(start):
                occurrence: Instant = wall_time.date()
            else:
                occurrence = wall_time.replace(tzinfo=wall_tz)

            if to_display_datetime(occurrence, self.display_tz) > horizon:
                break
            yield occurrence

    def build_rule(self, master: MasterEvent) -> rruleset:
        """Build a dateutil rule set iterating wall-clock occurrence times.

        The rule runs on naive wall times of the master's own timezone so
        that a daily 09:00 event stays at 09:00 across DST changes. DTSTART is
        always the first occurrence and counts toward COUNT.

        Raises:
            RecurrenceRuleError: If dateutil rejects the rule or it names no
                reachable date
        """
        if not master.rrule:
            raise RecurrenceRuleError("event has no RRULE")

        start = master.start
        if is_date_only(start):
            dtstart = datetime(start.year, start.month, start.day)
        else:
            dtstart = start.replace(tzinfo=None)

        rule_text = self._normalize_until(master.rrule, start)
        try:
            parsed = rrulestr(rule_text, dtstart=dtstart)
        except (ValueError, TypeError, KeyError) as e:
            raise RecurrenceRuleError(f"{master.rrule!r}: {e}") from e

        parts = _rule_parts(rule_text)
        self._check_satisfiable(parts)

        if isinstance(parsed, rruleset):
            rule_set = parsed
        else:
            rule_set = rruleset()
            count = int(parts["COUNT"]) if parts.get("COUNT", "").isdigit() else None
            if count is not None and next(iter(parsed), None) != dtstart:
                # DTSTART is the first of the COUNT occurrences
                if count > 1:
                    rule_set.rrule(parsed.replace(count=count - 1))
            else:
                rule_set.rrule(parsed)
        rule_set.rdate(dtstart)
        return rule_set

    def _check_satisfiable(self, parts: dict[str, str]) -> None:
        """Reject BYMONTHDAY/BYMONTH combinations that name no real date.

        dateutil only checks UNTIL, the horizon and the cap against produced
        occurrences, so a rule that can never match would be scanned day by
        day up to year 9999.

        Raises:
            RecurrenceRuleError: If no month in the rule has any of its days
        """
        if "BYMONTHDAY" not in parts:
            return
        try:
            days = [int(v) for v in parts["BYMONTHDAY"].split(",") if v]
            months = (
                [int(v) for v in parts["BYMONTH"].split(",") if v]
                if "BYMONTH" in parts
                else list(range(1, 13))
            )
        except ValueError as e:
            raise RecurrenceRuleError(f"bad BYMONTH/BYMONTHDAY: {e}") from e

        for month in months:
            if 1 <= month <= 12 and any(
                1 <= abs(day) <= _MONTH_LENGTHS[month - 1] for day in days
            ):
                return
        raise RecurrenceRuleError(
            f"BYMONTHDAY={parts['BYMONTHDAY']} never falls in BYMONTH={parts.get('BYMONTH', '*')}"
        )

    def _normalize_until(self, rule_text: str, start: Instant) -> str:
        """Rewrite a UTC UNTIL into the naive wall time the rule iterates in."""

        def _convert(match: re.Match[str]) -> str:
            raw = match.group(1)
            fmt = "%Y%m%dT%H%M%S" if "T" in raw.upper() else "%Y%m%d"
            until_utc = datetime.strptime(raw.upper(), fmt).replace(tzinfo=UTC)
            if is_date_only(start) or start.tzinfo is None:
                wall = until_utc.astimezone(self.display_tz)
            else:
                wall = until_utc.astimezone(start.tzinfo)
            return f"UNTIL={wall.strftime('%Y%m%dT%H%M%S')}"

        try:
            return _UNTIL_RE.sub(_convert, rule_text)
        except ValueError as e:
            raise RecurrenceRuleError(f"bad UNTIL in {rule_text!r}: {e}") from e
