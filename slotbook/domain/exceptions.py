"""
Domain-specific exception hierarchy for the slotbook engine.
"""

from typing import List, Sequence


class SlotbookError(Exception):
    """Base class for all application-level errors."""


class FetchError(SlotbookError):
    """Raised when a calendar feed cannot be retrieved (timeout, status, size)."""


class ParseError(SlotbookError):
    """Raised when a feed contains no usable calendar."""


class RecurrenceError(SlotbookError):
    """Raised when a single event's recurrence rule cannot be expanded."""


class ValidationError(SlotbookError):
    """Raised when request input is rejected before a token is issued."""

    def __init__(self, messages: Sequence[str]):
        self.messages: List[str] = list(messages)
        super().__init__("; ".join(self.messages) or "Invalid request")


class TokenNotFoundError(SlotbookError):
    """
    Raised when a confirmation token is unknown, expired or already used.

    The message never tells those cases apart.
    """

    MESSAGE = "This link has expired or has already been used."

    def __init__(self) -> None:
        super().__init__(self.MESSAGE)


class ConfigError(SlotbookError):
    """Raised when configuration is missing or invalid."""
