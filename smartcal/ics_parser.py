"""iCalendar document parsing - smartcal.

Turns raw feed text into the list of VEVENT components it contains. No
interpretation of the events happens here; masters and overrides are told
apart by the classifier.
"""

import logging
from typing import Optional, cast

from icalendar import Calendar, Event as ICalEvent

from .exceptions import ParseError

logger = logging.getLogger(__name__)

MAX_ICS_SIZE_BYTES = 50 * 1024 * 1024  # 50 MiB hard limit
MAX_ICS_SIZE_WARNING = 10 * 1024 * 1024  # 10 MiB warning threshold


class DocumentParser:
    """Parse iCalendar text into VEVENT components."""

    def __init__(self, max_size_bytes: int = MAX_ICS_SIZE_BYTES) -> None:
        self.max_size_bytes = max_size_bytes

    def _validate_size(self, ics_content: str) -> None:
        """Reject oversized documents before handing them to icalendar.

        Raises:
            ParseError: If content exceeds the maximum size limit
        """
        size_bytes = len(ics_content.encode("utf-8"))
        if size_bytes > self.max_size_bytes:
            raise ParseError(
                f"ICS content too large: {size_bytes} bytes exceeds {self.max_size_bytes} limit"
            )
        if size_bytes > MAX_ICS_SIZE_WARNING:
            logger.warning(
                "Large ICS content detected: %d bytes (threshold: %d)",
                size_bytes,
                MAX_ICS_SIZE_WARNING,
            )

    def load_calendar(self, ics_content: str) -> Calendar:
        """Parse text into an icalendar VCALENDAR component.

        Args:
            ics_content: Raw ICS document

        Returns:
            Parsed calendar component

        Raises:
            ParseError: If the text is not a well-formed VCALENDAR document
        """
        if not ics_content or not ics_content.strip():
            raise ParseError("Empty ICS content")
        if "BEGIN:VCALENDAR" not in ics_content:
            raise ParseError("Missing BEGIN:VCALENDAR marker")

        self._validate_size(ics_content)

        try:
            calendar = Calendar.from_ical(ics_content)
        except Exception as e:
            raise ParseError(f"Malformed iCalendar content: {e}") from e

        if getattr(calendar, "name", None) != "VCALENDAR":
            raise ParseError(f"Top-level component is {getattr(calendar, 'name', None)!r}, expected VCALENDAR")
        return cast("Calendar", calendar)

    def parse(self, ics_content: str) -> list[ICalEvent]:
        """Return every VEVENT found anywhere in the document, in document order.

        Raises:
            ParseError: If the text is not well-formed calendar syntax
        """
        return self.events_of(self.load_calendar(ics_content))

    def events_of(self, calendar: Calendar) -> list[ICalEvent]:
        """VEVENTs of an already loaded calendar, in document order."""
        events = [
            cast("ICalEvent", component)
            for component in calendar.walk()
            if component.name == "VEVENT"
        ]
        logger.debug("Parsed %d VEVENT components", len(events))
        return events

    def calendar_name(self, ics_content: str) -> Optional[str]:
        """X-WR-CALNAME of the document, if any."""
        return self.name_of(self.load_calendar(ics_content))

    @staticmethod
    def name_of(calendar: Calendar) -> Optional[str]:
        prop = calendar.get("X-WR-CALNAME")
        name = str(prop).strip() if prop else ""
        return name or None
