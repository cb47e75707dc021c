"""
Application service for the availability read path.

The service coordinates fetching feeds via a fetcher adapter, parsing and
expanding them, and delegates the slot grid to the domain-level
``generate_slots``. Fetchers and the page directory are plain protocols so
tests can swap in stubs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..adapters.ics_parser import IcsParser
from ..config import MAX_FEEDS_PER_PAGE, PageConfig
from ..domain.aggregator import aggregate
from ..domain.exceptions import FetchError, ParseError, SlotbookError, ValidationError
from ..domain.models import Availability, BusyInterval, FeedCheck, FeedFailure
from ..domain.recurrence import RecurrenceExpander
from ..domain.settings import AvailabilitySettings
from ..domain.slot_calculator import generate_slots

logger = logging.getLogger(__name__)

VALIDATION_WINDOW_DAYS = 60


class FeedFetcherProtocol(Protocol):
    """Protocol describing the fetcher behaviour needed by the service."""

    def fetch(self, url: str) -> str:
        """Return the raw feed text or raise ``FetchError``."""


class PageDirectoryProtocol(Protocol):
    """Read-only lookup of page settings and feed URLs."""

    def get_page(self, ref: str) -> PageConfig:
        """Return the page for ``ref``."""


class AvailabilityService:
    """
    Orchestrates feed retrieval, expansion and slot calculation.

    Partial failure policy: a feed that cannot be fetched or parsed is left
    out and reported in ``Availability.feed_errors``; only when every
    configured feed fails is an error raised.
    """

    def __init__(
        self,
        fetcher: Optional[FeedFetcherProtocol] = None,
        timezone: str = "UTC",
        parser: Optional[IcsParser] = None,
        expander: Optional[RecurrenceExpander] = None,
        pages: Optional[PageDirectoryProtocol] = None,
    ) -> None:
        self._fetcher = fetcher
        self.timezone = timezone
        self._parser = parser or IcsParser(timezone=timezone)
        self._expander = expander or RecurrenceExpander(timezone=timezone)
        self._pages = pages

    async def find_availability(
        self,
        page_ref: str,
        now: Optional[DateTime] = None,
    ) -> Availability:
        """
        Fetch a page's feeds and compute its availability.
        """
        if self._pages is None:
            raise SlotbookError("No page directory configured")

        page = self._pages.get_page(page_ref)
        now = now or pendulum.now(self.timezone)

        feed_texts, fetch_errors = await self.fetch_feeds(page.feed_urls)

        return self.get_availability(
            settings=page.availability,
            feed_texts=feed_texts,
            now=now,
            fetch_errors=fetch_errors,
        )

    async def fetch_feeds(
        self,
        urls: Sequence[str],
    ) -> Tuple[Dict[str, str], Dict[str, FetchError]]:
        """
        Fetch all feeds concurrently.

        Returns:
            (texts by URL, fetch errors by URL)
        """
        results = await asyncio.gather(
            *(asyncio.to_thread(self._fetch_one, url) for url in urls)
        )

        texts: Dict[str, str] = {}
        errors: Dict[str, FetchError] = {}
        for url, result in zip(urls, results):
            if isinstance(result, FetchError):
                errors[url] = result
            else:
                texts[url] = result

        return texts, errors

    async def validate_feeds(
        self,
        urls: Sequence[str],
        now: Optional[DateTime] = None,
    ) -> List[FeedCheck]:
        """
        Test-load feeds before they are added to a page.

        Each feed is fetched and parsed, and its busy intervals over the next
        60 days are counted. A failing feed is reported, not raised.

        Raises:
            ValidationError: If not between one and five URLs are given
        """
        urls = list(dict.fromkeys(url.strip() for url in urls if url and url.strip()))
        if not 1 <= len(urls) <= MAX_FEEDS_PER_PAGE:
            raise ValidationError([
                f"feed_urls: provide between 1 and {MAX_FEEDS_PER_PAGE} calendar URLs"
            ])

        window_start = (now or pendulum.now(self.timezone)).in_timezone(self.timezone)
        window_end = window_start.add(days=VALIDATION_WINDOW_DAYS)

        feed_texts, fetch_errors = await self.fetch_feeds(urls)

        checks: List[FeedCheck] = []
        for url in urls:
            if url in fetch_errors:
                checks.append(FeedCheck(feed=url, is_valid=False, error=str(fetch_errors[url])))
                continue
            try:
                events = self._parser.parse(feed_texts[url])
            except ParseError as exc:
                checks.append(FeedCheck(feed=url, is_valid=False, error=str(exc)))
                continue
            busy = self._expander.expand_all(events, window_start, window_end)
            checks.append(FeedCheck(feed=url, is_valid=True, event_count=len(busy)))

        logger.info(
            "Validated %d feed(s), %d usable",
            len(checks), sum(1 for check in checks if check.is_valid),
        )
        return checks

    def get_availability(
        self,
        settings: AvailabilitySettings,
        feed_texts: Mapping[str, str],
        now: DateTime,
        fetch_errors: Optional[Mapping[str, SlotbookError]] = None,
    ) -> Availability:
        """
        Compute offerable slots from already-fetched feed texts.

        Args:
            settings: The page's availability settings
            feed_texts: Raw iCalendar text keyed by feed name or URL
            now: Current instant
            fetch_errors: Feeds that already failed to download

        Raises:
            FetchError | ParseError: If feeds were configured and none of
                them could be used
        """
        failures: List[Tuple[str, SlotbookError]] = list((fetch_errors or {}).items())
        window_start, window_end = self.expansion_window(settings, now)

        per_feed: List[List[BusyInterval]] = []
        for name, text in feed_texts.items():
            try:
                events = self._parser.parse(text)
            except ParseError as exc:
                failures.append((name, exc))
                continue
            per_feed.append(self._expander.expand_all(events, window_start, window_end))

        for name, exc in failures:
            logger.warning("Calendar feed %s left out: %s", name, exc)

        if failures and not per_feed:
            name, first = failures[0]
            raise type(first)(
                f"All {len(failures)} calendar feed(s) failed; first error: {first}"
            ) from first

        busy = aggregate(per_feed)
        slots = generate_slots(busy, settings, now, timezone=self.timezone)

        return Availability(
            slots=slots,
            feed_errors=[FeedFailure(feed=name, error=str(exc)) for name, exc in failures],
            busy_interval_count=len(busy),
        )

    def expansion_window(
        self,
        settings: AvailabilitySettings,
        now: DateTime,
    ) -> Tuple[DateTime, DateTime]:
        """Window covering every day the slot grid can touch."""
        start = now.in_timezone(self.timezone).start_of("day")
        return start, start.add(days=settings.date_range_days + 1)

    def _fetch_one(self, url: str):
        if self._fetcher is None:
            return FetchError("No feed fetcher configured")
        try:
            return self._fetcher.fetch(url)
        except FetchError as exc:
            return exc
