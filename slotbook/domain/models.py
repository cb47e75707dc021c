"""
Domain models for calendar events, busy intervals, slots and bookings.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from pendulum import DateTime
from pydantic import BaseModel, Field, field_validator

from .rules import RecurrenceRule


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Half-open overlap test: touching ranges do not overlap."""
        return self.start < other.end and self.end > other.start

    def overlaps_window(self, window_start: DateTime, window_end: DateTime) -> bool:
        """Check overlap against a bare ``[window_start, window_end)`` window."""
        return self.start < window_end and self.end > window_start

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.to_iso8601_string(), "end": self.end.to_iso8601_string()}

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


class BusyInterval(TimeRange):
    """A concrete, non-recurring span during which the owner is unavailable."""


class Slot(TimeRange):
    """A bookable interval that overlaps no busy interval."""

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:mm – HH:mm
        """
        date_str = self.start.format("dddd, DD.MM.YYYY")
        time_str = f"{self.start.format('HH:mm')} – {self.end.format('HH:mm')}"
        return f"{date_str} | {time_str} ({self.duration_minutes()} min)"


@dataclass(frozen=True)
class CalendarEvent:
    """
    One VEVENT from a feed snapshot.

    ``exception_dates`` holds raw EXDATE values (``date`` or ``datetime``);
    turning them into calendar dates is the expander's job.
    """
    start: DateTime
    end: DateTime
    is_busy: bool = True
    rule: Optional[RecurrenceRule] = None
    exception_dates: Tuple[Union[date, datetime], ...] = ()
    uid: str = ""

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Event {self.uid or '?'} ends before it starts")

    @property
    def is_recurring(self) -> bool:
        return self.rule is not None

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=(self.end - self.start).total_seconds())


_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class RequesterDetails(BaseModel):
    """Identity and message fields supplied by the person requesting a slot."""
    name: str = Field(min_length=2, max_length=100)
    email: str
    reason: str = Field(min_length=10, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=500)
    timezone: Optional[str] = None

    @field_validator("name", "reason", "notes", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        """Trim surrounding whitespace so blank input fails the length checks."""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        """Require a ``local@domain.tld`` shaped address."""
        value = value.strip()
        if not _EMAIL_PATTERN.match(value):
            raise ValueError("Please provide a valid email address.")
        return value

    @field_validator("notes")
    @classmethod
    def empty_notes_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


@dataclass(frozen=True)
class PendingRequest:
    """A submitted request waiting for its confirmation link to be clicked."""
    token: str
    page_ref: str
    requester: RequesterDetails
    start: DateTime
    end: DateTime
    created_at: DateTime

    def is_expired(self, now: DateTime, ttl_minutes: int) -> bool:
        """True once the request is older than the TTL."""
        return (now - self.created_at).total_seconds() > ttl_minutes * 60


@dataclass(frozen=True)
class Booking:
    """A confirmed appointment. Created once and never modified."""
    id: str
    page_ref: str
    requester: RequesterDetails
    start: DateTime
    end: DateTime
    created_at: DateTime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "page_ref": self.page_ref,
            "requester": self.requester.model_dump(),
            "start": self.start.to_iso8601_string(),
            "end": self.end.to_iso8601_string(),
            "created_at": self.created_at.to_iso8601_string(),
        }


@dataclass(frozen=True)
class FeedFailure:
    """Why one configured feed contributed nothing to an availability result."""
    feed: str
    error: str


@dataclass(frozen=True)
class FeedCheck:
    """Outcome of test-loading one feed before it is added to a page."""
    feed: str
    is_valid: bool
    event_count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class Availability:
    """Result of the read path for one page view."""
    slots: List[Slot]
    feed_errors: List[FeedFailure] = field(default_factory=list)
    busy_interval_count: int = 0

    @property
    def is_degraded(self) -> bool:
        """True when at least one feed failed and was left out."""
        return bool(self.feed_errors)

    def to_dict(self) -> Dict[str, Any]:
        """Public rendering; feed URLs and error details stay server-side."""
        warnings = []
        if self.feed_errors:
            warnings.append(
                f"{len(self.feed_errors)} calendar feed(s) could not be loaded; "
                "availability may be incomplete."
            )
        return {
            "slots": [slot.to_dict() for slot in self.slots],
            "warnings": warnings,
        }
