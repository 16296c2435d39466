"""Exception hierarchy for smartcal.

Every failure the aggregation engine knows how to isolate has its own type so
callers can decide what to drop: a VEVENT, a whole source, or nothing at all.
None of these escape `SourceAggregator.aggregate()`.
"""

from typing import Optional


class SmartCalError(Exception):
    """Base exception for all smartcal errors."""


class ParseError(SmartCalError):
    """Calendar text is not well-formed iCalendar.

    Raised when:
    - The document is empty or has no BEGIN:VCALENDAR marker
    - icalendar cannot tokenize the content lines
    - The top-level component is not a VCALENDAR
    - The document exceeds the maximum accepted size

    The source yields zero events for the current cycle.
    """


class FetchError(SmartCalError):
    """Retrieving calendar text failed.

    The source yields zero events for the current cycle.
    """

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class FetchHTTPError(FetchError):
    """Server answered with a non-success HTTP status."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, url)
        self.status_code = status_code


class FetchNetworkError(FetchError):
    """DNS, connection or TLS failure after all retries."""


class FetchTimeoutError(FetchError):
    """Request timed out after all retries."""


class EmptyContentError(FetchError):
    """Server answered successfully with an empty body."""


class MalformedDateError(SmartCalError):
    """DTSTART/DTEND of a single VEVENT is missing or unusable.

    Only that VEVENT is dropped; sibling events are unaffected.
    """


class RecurrenceRuleError(SmartCalError):
    """RRULE value cannot be interpreted by dateutil."""


class ConfigError(SmartCalError):
    """Configuration file is unreadable or has the wrong shape."""
