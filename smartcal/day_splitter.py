"""Split occurrences across calendar-day buckets - smartcal."""

import logging
from datetime import date, timedelta, tzinfo

from .datetime_utils import (
    format_date_key,
    format_hhmm,
    to_display_date,
    to_display_datetime,
)
from .models import CalendarEventInstance, ResolvedOccurrence

logger = logging.getLogger(__name__)

ALL_DAY_LABEL = "終日"
MAX_SPAN_DAYS = 31


class DaySplitter:
    """Convert a resolved occurrence into one instance per day it covers."""

    def __init__(
        self,
        display_tz: tzinfo,
        max_span_days: int = MAX_SPAN_DAYS,
        all_day_label: str = ALL_DAY_LABEL,
    ) -> None:
        """Initialize splitter.

        Args:
            display_tz: Timezone day keys and HH:MM labels are computed in
            max_span_days: Most buckets a single occurrence may occupy
            all_day_label: time_str used for all-day events
        """
        self.display_tz = display_tz
        self.max_span_days = max_span_days
        self.all_day_label = all_day_label

    def split(self, occurrence: ResolvedOccurrence) -> list[tuple[str, CalendarEventInstance]]:
        """Bucket an occurrence over the inclusive day range it covers.

        All-day ends are exclusive and are moved back one day first. An
        occurrence whose inclusive end precedes its start covers no day.

        Returns:
            (date_key, instance) pairs in chronological order
        """
        start_day = to_display_date(occurrence.start, self.display_tz)
        end_day = self._inclusive_end_day(occurrence)
        start_key = format_date_key(start_day)
        end_key = format_date_key(end_day)

        if occurrence.is_all_day:
            time_str = self.all_day_label
            end_time_str = ""
        else:
            time_str = format_hhmm(to_display_datetime(occurrence.start, self.display_tz))
            end_time_str = format_hhmm(to_display_datetime(occurrence.end, self.display_tz))

        buckets: list[tuple[str, CalendarEventInstance]] = []
        day = start_day
        while day <= end_day and len(buckets) < self.max_span_days:
            day_key = format_date_key(day)
            buckets.append(
                (
                    day_key,
                    CalendarEventInstance(
                        summary=occurrence.summary,
                        start_date_key=start_key,
                        end_date_key=end_key,
                        time_str=time_str,
                        end_time_str=end_time_str,
                        is_all_day=occurrence.is_all_day,
                        is_start=day_key == start_key,
                        is_end=day_key == end_key,
                    ),
                )
            )
            day += timedelta(days=1)

        if day <= end_day:
            logger.debug(
                "Event %r spans %s..%s; truncated to %d days",
                occurrence.summary,
                start_key,
                end_key,
                self.max_span_days,
            )
        return buckets

    def _inclusive_end_day(self, occurrence: ResolvedOccurrence) -> date:
        end_day = to_display_date(occurrence.end, self.display_tz)
        if occurrence.is_all_day:
            return end_day - timedelta(days=1)
        return end_day
