"""
Adapters layer - External integrations (feed HTTP, iCalendar, notifications).
"""

from .console_notifier import ConsoleNotifier
from .feed_fetcher import FeedFetcher
from .ics_parser import IcsParser
from .mock_feed_fetcher import MockFeedFetcher
from .url_safety import is_safe_to_fetch

__all__ = ["ConsoleNotifier", "FeedFetcher", "IcsParser", "MockFeedFetcher", "is_safe_to_fetch"]
