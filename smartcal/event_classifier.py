"""Master/override classification of VEVENT components - smartcal."""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from icalendar import Event as ICalEvent

from .datetime_utils import coerce_instant, is_date_only, recurrence_identity
from .exceptions import MalformedDateError
from .models import ClassifiedEvents, Instant, MasterEvent, OverrideEvent

logger = logging.getLogger(__name__)

ALL_DAY_DEFAULT_SPAN = timedelta(days=1)


def _prop_list(value: Any) -> list[Any]:
    """icalendar returns repeated properties as a list, single ones bare."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class EventClassifier:
    """Split VEVENTs into master events and per-occurrence overrides."""

    def classify(self, components: list[ICalEvent]) -> ClassifiedEvents:
        """Partition VEVENT components by presence of RECURRENCE-ID.

        VEVENTs without UID are dropped silently; VEVENTs with unusable dates
        are dropped with a warning. Neither affects sibling events.

        Args:
            components: VEVENT components in document order

        Returns:
            ClassifiedEvents with masters in document order and overrides
            indexed as overrides_by_uid[uid][recurrence_key]
        """
        result = ClassifiedEvents()
        dropped_no_uid = 0
        dropped_malformed = 0

        for component in components:
            uid = self._extract_uid(component)
            if not uid:
                dropped_no_uid += 1
                continue

            try:
                if component.get("RECURRENCE-ID") is not None:
                    override = self._build_override(uid, component)
                    by_key = result.overrides_by_uid.setdefault(uid, {})
                    by_key[override.recurrence_key] = override
                else:
                    result.masters.append(self._build_master(uid, component))
            except MalformedDateError as e:
                dropped_malformed += 1
                logger.warning("Event %s has unusable dates (%s), skipping", uid, e)

        logger.debug(
            "Classified %d masters, %d overridden UIDs (dropped: %d without UID, %d malformed)",
            len(result.masters),
            len(result.overrides_by_uid),
            dropped_no_uid,
            dropped_malformed,
        )
        return result

    def _build_master(self, uid: str, component: ICalEvent) -> MasterEvent:
        start, end, is_all_day = self._extract_timing(component)
        return MasterEvent(
            uid=uid,
            start=start,
            end=end,
            is_all_day=is_all_day,
            summary=self._extract_summary(component),
            rrule=self._extract_rrule(uid, component),
            exdates=self._extract_exdates(uid, component),
        )

    def _build_override(self, uid: str, component: ICalEvent) -> OverrideEvent:
        recurrence_id = coerce_instant(component.get("RECURRENCE-ID"), "RECURRENCE-ID")
        recurrence_key = recurrence_identity(recurrence_id)
        summary = self._extract_summary(component)

        if self._is_cancelled(component):
            # A cancellation does not need its own timing
            try:
                start, end, is_all_day = self._extract_timing(component)
            except MalformedDateError:
                return OverrideEvent(
                    uid=uid, recurrence_key=recurrence_key, cancelled=True, summary=summary
                )
            return OverrideEvent(
                uid=uid,
                recurrence_key=recurrence_key,
                cancelled=True,
                start=start,
                end=end,
                is_all_day=is_all_day,
                summary=summary,
            )

        start, end, is_all_day = self._extract_timing(component)
        return OverrideEvent(
            uid=uid,
            recurrence_key=recurrence_key,
            start=start,
            end=end,
            is_all_day=is_all_day,
            summary=summary,
        )

    def _extract_uid(self, component: ICalEvent) -> Optional[str]:
        uid = component.get("UID")
        if uid is None:
            return None
        uid_str = str(uid).strip()
        return uid_str or None

    def _extract_summary(self, component: ICalEvent) -> str:
        summary = component.get("SUMMARY")
        return str(summary) if summary else ""

    def _is_cancelled(self, component: ICalEvent) -> bool:
        status = component.get("STATUS")
        return str(status).strip().upper() == "CANCELLED" if status else False

    def _extract_timing(self, component: ICalEvent) -> tuple[Instant, Instant, bool]:
        """Start, end and all-day flag of a VEVENT.

        Without DTEND, DURATION is applied when present; otherwise an all-day
        event lasts one day and a timed event has zero length.

        Raises:
            MalformedDateError: If DTSTART is missing or DTEND is unusable
        """
        start = coerce_instant(component.get("DTSTART"), "DTSTART")
        is_all_day = is_date_only(start)

        dtend = component.get("DTEND")
        if dtend is not None:
            end = coerce_instant(dtend, "DTEND")
        else:
            duration = getattr(component.get("DURATION"), "dt", None)
            if isinstance(duration, timedelta):
                end = start + duration
            elif is_all_day:
                end = start + ALL_DAY_DEFAULT_SPAN
            else:
                end = start

        return start, self._align_end(start, end), is_all_day

    def _align_end(self, start: Instant, end: Instant) -> Instant:
        """Give the end the same value type as the start."""
        if is_date_only(start) and isinstance(end, datetime):
            return end.date()
        if isinstance(start, datetime) and is_date_only(end):
            return datetime(end.year, end.month, end.day, tzinfo=start.tzinfo)
        return end

    def _extract_rrule(self, uid: str, component: ICalEvent) -> Optional[str]:
        """First RRULE of the component as an RFC 5545 value string."""
        rules = _prop_list(component.get("RRULE"))
        if not rules:
            return None
        if len(rules) > 1:
            logger.debug("Event %s has %d RRULEs; only the first is expanded", uid, len(rules))
        rule = rules[0]
        if hasattr(rule, "to_ical"):
            value = rule.to_ical()
            return value.decode("utf-8") if isinstance(value, bytes) else str(value)
        return str(rule)

    def _extract_exdates(self, uid: str, component: ICalEvent) -> frozenset[str]:
        """Recurrence identities excluded by EXDATE properties."""
        keys: set[str] = set()
        for exdate in _prop_list(component.get("EXDATE")):
            for item in getattr(exdate, "dts", [exdate]):
                value = getattr(item, "dt", item)
                if isinstance(value, (date, datetime)):
                    keys.add(recurrence_identity(value))
                else:
                    logger.debug("Event %s has unusable EXDATE value %r", uid, value)
        return frozenset(keys)
