"""
Storage layer - pending requests and bookings.
"""

from .bookings import InMemoryBookingStore, SqliteBookingStore
from .pending_requests import InMemoryPendingRequestStore, SqlitePendingRequestStore
from .purger import PendingRequestPurger

__all__ = [
    "InMemoryBookingStore",
    "InMemoryPendingRequestStore",
    "PendingRequestPurger",
    "SqliteBookingStore",
    "SqlitePendingRequestStore",
]
