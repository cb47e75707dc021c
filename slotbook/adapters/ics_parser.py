"""
iCalendar feed parser built on the ``icalendar`` library.
"""

import dataclasses
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

import pendulum
from icalendar import Calendar, Event
from pendulum import DateTime

from ..domain.exceptions import ParseError, RecurrenceError
from ..domain.models import CalendarEvent
from ..domain.rules import RecurrenceRule

logger = logging.getLogger(__name__)


class IcsParser:
    """
    Converts feed text into ``CalendarEvent`` records.

    A broken VEVENT is skipped; only a feed without any VCALENDAR is an
    error. When the feed as a whole is structurally broken (truncated,
    unbalanced BEGIN/END) each complete VEVENT block is parsed on its own.
    Floating times and all-day dates are read in ``timezone``.
    """

    def __init__(self, timezone: str = "UTC"):
        self.timezone = timezone

    def parse(self, raw_text: str) -> List[CalendarEvent]:
        """
        Parse raw iCalendar text.

        Args:
            raw_text: Feed body as returned by the fetcher

        Returns:
            Parsed events in feed order

        Raises:
            ParseError: If no calendar envelope and no complete event can
                be found
        """
        if not raw_text or not raw_text.strip():
            raise ParseError("Calendar feed is empty")

        if "BEGIN:VCALENDAR" not in raw_text.upper():
            raise ParseError("No VCALENDAR found in feed")

        events: List[CalendarEvent] = []
        overrides: Dict[str, List[Union[date, datetime]]] = {}
        skipped = 0

        for component in self._event_components(raw_text):
            uid = str(component.get("UID", ""))
            try:
                event = self._parse_event(component, uid)
            except RecurrenceError as exc:
                logger.warning("Skipping event %s with invalid RRULE: %s", uid or "<no uid>", exc)
                skipped += 1
                continue
            except (ValueError, TypeError, AttributeError, KeyError) as exc:
                logger.warning("Skipping malformed event %s: %s", uid or "<no uid>", exc)
                skipped += 1
                continue

            recurrence_id = component.get("RECURRENCE-ID")
            if recurrence_id is not None and uid:
                overrides.setdefault(uid, []).append(recurrence_id.dt)

            if event is not None:
                events.append(event)

        events = self._apply_overrides(events, overrides)

        logger.debug("Parsed %d events, skipped %d", len(events), skipped)
        return events

    def _event_components(self, raw_text: str) -> List[Any]:
        """VEVENT components of the feed, block by block if the feed is broken."""
        cause: Optional[Exception] = None
        try:
            components = Calendar.from_ical(raw_text, multiple=True)
        except (ValueError, IndexError, KeyError) as exc:
            cause = exc
            failure = ParseError(f"Could not parse calendar feed: {exc}")
        else:
            calendars = [c for c in components if getattr(c, "name", None) == "VCALENDAR"]
            if calendars:
                return [event for calendar in calendars for event in calendar.walk("VEVENT")]
            failure = ParseError("No complete VCALENDAR found in feed")

        logger.warning("%s; reading event blocks one by one", failure)

        events = []
        for block in _event_blocks(raw_text):
            try:
                events.append(Event.from_ical(block))
            except (ValueError, IndexError, KeyError) as exc:
                logger.warning("Skipping unreadable event block: %s", exc)

        if not events:
            raise failure from cause
        return events

    def _parse_event(self, component: Any, uid: str) -> Optional[CalendarEvent]:
        """Build one event; returns None for zero-length events."""
        dtstart = component.get("DTSTART")
        if dtstart is None:
            raise ValueError("missing or unreadable DTSTART")

        start_value = dtstart.dt
        start = self._to_datetime(start_value)
        end = self._resolve_end(component, start_value, start)

        if end == start:
            logger.debug("Ignoring zero-length event %s", uid or "<no uid>")
            return None
        if end < start:
            raise ValueError(f"end {end} is before start {start}")

        return CalendarEvent(
            start=start,
            end=end,
            is_busy=self._is_busy(component),
            rule=self._parse_rule(component),
            exception_dates=tuple(self._exception_values(component)),
            uid=uid,
        )

    def _resolve_end(self, component: Any, start_value: Any, start: DateTime) -> DateTime:
        dtend = component.get("DTEND")
        if dtend is not None:
            return self._to_datetime(dtend.dt)

        duration = component.get("DURATION")
        if duration is not None:
            if not isinstance(duration.dt, timedelta):
                raise ValueError("DURATION is not a duration")
            return start + duration.dt

        # RFC 5545: an all-day event without DTEND lasts one day
        if not isinstance(start_value, datetime):
            return start.add(days=1)

        return start

    @staticmethod
    def _is_busy(component: Any) -> bool:
        """Events block time unless marked TRANSPARENT or cancelled."""
        transparency = str(component.get("TRANSP", "OPAQUE")).strip().upper()
        if transparency == "TRANSPARENT":
            return False
        status = str(component.get("STATUS", "")).strip().upper()
        return status != "CANCELLED"

    @staticmethod
    def _parse_rule(component: Any) -> Optional[RecurrenceRule]:
        rrule = component.get("RRULE")
        if rrule is None:
            return None
        if isinstance(rrule, list):
            logger.warning("Event has %d RRULEs, using the first", len(rrule))
            rrule = rrule[0]

        text = rrule.to_ical()
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        return RecurrenceRule.from_ical(text)

    @staticmethod
    def _exception_values(component: Any) -> List[Union[date, datetime]]:
        exdate = component.get("EXDATE")
        if exdate is None:
            return []

        groups = exdate if isinstance(exdate, list) else [exdate]
        values: List[Union[date, datetime]] = []
        for group in groups:
            values.extend(item.dt for item in getattr(group, "dts", []))
        return values

    def _to_datetime(self, value: Any) -> DateTime:
        """Convert an icalendar date/datetime to an aware pendulum DateTime."""
        if isinstance(value, datetime):
            return pendulum.instance(value, tz=self.timezone)
        if isinstance(value, date):
            return pendulum.datetime(value.year, value.month, value.day, tz=self.timezone)
        raise ValueError(f"unsupported date value {value!r}")

    @staticmethod
    def _apply_overrides(
        events: List[CalendarEvent],
        overrides: Dict[str, List[Union[date, datetime]]],
    ) -> List[CalendarEvent]:
        """
        Exclude the original dates of overridden instances from their master.

        The overriding instance is an event of its own, so without this the
        moved occurrence would be busy twice.
        """
        if not overrides:
            return events

        result: List[CalendarEvent] = []
        for event in events:
            extra = overrides.get(event.uid) if event.is_recurring else None
            if extra:
                event = dataclasses.replace(
                    event, exception_dates=event.exception_dates + tuple(extra)
                )
            result.append(event)
        return result


def _event_blocks(raw_text: str) -> List[str]:
    """
    Cut the text into ``BEGIN:VEVENT`` ... ``END:VEVENT`` blocks.

    A block interrupted by the next ``BEGIN:VEVENT`` or by the end of the
    text is dropped; stray ``END`` lines outside a block are ignored.
    """
    blocks: List[str] = []
    current: Optional[List[str]] = None

    for line in raw_text.splitlines():
        marker = line.strip().upper()
        if marker == "BEGIN:VEVENT":
            if current is not None:
                logger.warning("Dropping VEVENT block without END:VEVENT")
            current = [line]
        elif current is not None:
            current.append(line)
            if marker == "END:VEVENT":
                blocks.append("\r\n".join(current) + "\r\n")
                current = None

    if current is not None:
        logger.warning("Dropping truncated VEVENT block at end of feed")
    return blocks
