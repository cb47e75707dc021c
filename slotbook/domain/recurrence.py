"""
Expansion of calendar events into concrete busy intervals.

Occurrences are enumerated from the event's original start in its own
timezone (so "every Monday 14:00" stays at 14:00 across DST changes) and
then converted into the expander's timezone, which is the single clock all
later comparisons use.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Set, Union

import pendulum
from pendulum import DateTime

from .exceptions import RecurrenceError
from .models import BusyInterval, CalendarEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 5000
DEFAULT_MAX_ITERATIONS = 100_000


class RecurrenceExpander:
    """
    Turns events into busy intervals within a bounded window.

    Enumeration always stops at the window end, so rules without COUNT or
    UNTIL are safe. ``max_occurrences`` caps the number of intervals a single
    event may contribute to one window; ``max_iterations`` caps how many
    occurrences are enumerated at all, including those before the window.
    """

    def __init__(
        self,
        timezone: str = "UTC",
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.timezone = timezone
        self.max_occurrences = max_occurrences
        self.max_iterations = max_iterations

    def expand(
        self,
        event: CalendarEvent,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[BusyInterval]:
        """
        Expand one event into the busy intervals overlapping the window.

        Raises:
            RecurrenceError: If the event's rule cannot be enumerated
        """
        if not event.is_busy:
            return []

        if event.rule is None:
            interval = self._to_interval(event.start, event.end)
            if interval.overlaps_window(window_start, window_end):
                return [interval]
            return []

        return self._expand_recurring(event, window_start, window_end)

    def expand_all(
        self,
        events: Iterable[CalendarEvent],
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[BusyInterval]:
        """
        Expand many events; a broken rule only loses that event's intervals.
        """
        intervals: List[BusyInterval] = []
        for event in events:
            try:
                intervals.extend(self.expand(event, window_start, window_end))
            except RecurrenceError as exc:
                logger.warning("Skipping recurring event %s: %s", event.uid or "<no uid>", exc)
        return intervals

    def _expand_recurring(
        self,
        event: CalendarEvent,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[BusyInterval]:
        rule = event.rule
        dtstart = event.start
        duration = event.duration
        until = rule.until_for(dtstart) if rule.count is not None else None
        excluded = self._exception_dates(event.exception_dates)

        # An occurrence starting before the window can still reach into it.
        search_start = window_start - duration

        intervals: List[BusyInterval] = []
        occurrences = iter(rule.build(dtstart))
        iterations = 0
        while True:
            try:
                occurrence_start = next(occurrences)
            except StopIteration:
                break
            except (ValueError, TypeError, OverflowError) as exc:
                raise RecurrenceError(f"Recurrence enumeration failed: {exc}") from exc

            iterations += 1
            if iterations > self.max_iterations:
                raise RecurrenceError(
                    f"More than {self.max_iterations} occurrences enumerated before "
                    f"reaching the end of the window"
                )

            if occurrence_start >= window_end:
                break
            if until is not None and occurrence_start > until:
                break
            if occurrence_start < search_start:
                continue

            start = pendulum.instance(occurrence_start).in_timezone(self.timezone)
            if start.date() in excluded:
                continue

            interval = BusyInterval(start=start, end=start + duration)
            if not interval.overlaps_window(window_start, window_end):
                continue

            intervals.append(interval)
            if len(intervals) >= self.max_occurrences:
                logger.warning(
                    "Event %s reached %d occurrences in window, truncating",
                    event.uid or "<no uid>",
                    self.max_occurrences,
                )
                break

        return intervals

    def _exception_dates(self, values: Iterable[Union[date, datetime]]) -> Set[date]:
        """
        Reduce raw EXDATE values to calendar dates in the expander's timezone.

        Matching by date rather than by instant tolerates feeds whose EXDATE
        and DTSTART disagree on timezone, at the cost of precision near
        midnight.
        """
        dates: Set[date] = set()
        for value in values:
            if isinstance(value, datetime):
                dates.add(pendulum.instance(value, tz=self.timezone).in_timezone(self.timezone).date())
            elif isinstance(value, date):
                dates.add(value)
            else:
                logger.debug("Ignoring exception date of type %s", type(value).__name__)
        return dates

    def _to_interval(self, start: DateTime, end: DateTime) -> BusyInterval:
        return BusyInterval(
            start=start.in_timezone(self.timezone),
            end=end.in_timezone(self.timezone),
        )
