"""
Domain layer - Pure business logic without external dependencies.
"""

from .aggregator import aggregate
from .models import (
    Availability,
    Booking,
    BusyInterval,
    CalendarEvent,
    FeedCheck,
    FeedFailure,
    PendingRequest,
    RequesterDetails,
    Slot,
    TimeRange,
)
from .recurrence import RecurrenceExpander
from .rules import RecurrenceRule
from .settings import AvailabilitySettings
from .slot_calculator import SlotCalculator, generate_slots

__all__ = [
    "Availability",
    "AvailabilitySettings",
    "Booking",
    "BusyInterval",
    "CalendarEvent",
    "FeedCheck",
    "FeedFailure",
    "PendingRequest",
    "RecurrenceExpander",
    "RecurrenceRule",
    "RequesterDetails",
    "Slot",
    "SlotCalculator",
    "TimeRange",
    "aggregate",
    "generate_slots",
]
