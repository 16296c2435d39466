"""Per-source pipeline from calendar text to a day-keyed map - smartcal."""

import logging
from datetime import datetime, tzinfo
from typing import Optional

from .day_splitter import MAX_SPAN_DAYS, DaySplitter
from .event_classifier import EventClassifier
from .ics_parser import DocumentParser
from .models import EventDateMap
from .rrule_expander import ExpanderLimits, RecurrenceExpander

logger = logging.getLogger(__name__)


def sort_day_buckets(events: EventDateMap) -> EventDateMap:
    """Stable-sort every day's instances by time_str, in place."""
    for day_key in events:
        events[day_key].sort(key=lambda instance: instance.time_str)
    return events


class ScheduleBuilder:
    """Run parse, classify, expand and split for one calendar document."""

    def __init__(
        self,
        display_tz: tzinfo,
        limits: Optional[ExpanderLimits] = None,
        max_span_days: int = MAX_SPAN_DAYS,
    ) -> None:
        self.display_tz = display_tz
        self.parser = DocumentParser()
        self.classifier = EventClassifier()
        self.expander = RecurrenceExpander(display_tz, limits)
        self.splitter = DaySplitter(display_tz, max_span_days=max_span_days)

    def build(self, ics_content: str, now: datetime) -> EventDateMap:
        """Build the sorted day map of one calendar document.

        Args:
            ics_content: Raw iCalendar text
            now: Current time; recurrence horizon is measured from it

        Returns:
            EventDateMap with each day sorted by time_str

        Raises:
            ParseError: If the document is not well-formed
        """
        return self.build_named(ics_content, now)[1]

    def build_named(self, ics_content: str, now: datetime) -> tuple[Optional[str], EventDateMap]:
        """Like `build`, also returning the document's X-WR-CALNAME."""
        calendar = self.parser.load_calendar(ics_content)
        components = self.parser.events_of(calendar)
        classified = self.classifier.classify(components)

        events: EventDateMap = {}
        occurrence_count = 0
        for master in classified.masters:
            overrides = classified.overrides_for(master.uid)
            for occurrence in self.expander.expand(master, overrides, now):
                occurrence_count += 1
                for day_key, instance in self.splitter.split(occurrence):
                    events.setdefault(day_key, []).append(instance)

        logger.debug(
            "Built schedule: %d masters, %d occurrences, %d day buckets",
            len(classified.masters),
            occurrence_count,
            len(events),
        )
        return self.parser.name_of(calendar), sort_day_buckets(events)
