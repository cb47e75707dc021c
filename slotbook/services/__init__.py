"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService, FeedFetcherProtocol, PageDirectoryProtocol
from .confirmation import ConfirmationWorkflow, NotifierProtocol

__all__ = [
    "AvailabilityService",
    "ConfirmationWorkflow",
    "FeedFetcherProtocol",
    "NotifierProtocol",
    "PageDirectoryProtocol",
]
