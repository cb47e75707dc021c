"""
Normalized representation of an iCalendar RRULE.

Feeds deliver recurrence rules as text (``FREQ=WEEKLY;BYDAY=MO;COUNT=3``).
They are turned into a ``RecurrenceRule`` once, right after parsing, so the
expander only ever deals with one structured shape.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Tuple, Union

import pendulum
from dateutil import rrule as du_rrule
from pendulum import DateTime

from .exceptions import RecurrenceError

logger = logging.getLogger(__name__)

FREQUENCIES = {
    "YEARLY": du_rrule.YEARLY,
    "MONTHLY": du_rrule.MONTHLY,
    "WEEKLY": du_rrule.WEEKLY,
    "DAILY": du_rrule.DAILY,
    "HOURLY": du_rrule.HOURLY,
    "MINUTELY": du_rrule.MINUTELY,
    "SECONDLY": du_rrule.SECONDLY,
}

WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_BYDAY_PATTERN = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")

# Parts that narrow the occurrence set further than we model. Ignoring them
# can only produce extra busy time.
_IGNORED_PARTS = {"BYSETPOS", "BYYEARDAY", "BYWEEKNO", "BYHOUR", "BYMINUTE", "BYSECOND", "RSCALE", "SKIP"}


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Structured recurrence rule.

    ``by_weekday`` holds ``(weekday, ordinal)`` pairs with 0=Monday; the
    ordinal is ``None`` for "every" (``MO``) and e.g. ``-1`` for ``-1FR``.
    """
    frequency: str
    interval: int = 1
    count: Optional[int] = None
    until: Optional[Union[date, datetime]] = None
    by_weekday: Tuple[Tuple[int, Optional[int]], ...] = ()
    by_month_day: Tuple[int, ...] = ()
    by_month: Tuple[int, ...] = ()
    week_start: int = 0

    def __post_init__(self):
        if self.frequency not in FREQUENCIES:
            raise RecurrenceError(f"Unsupported frequency: {self.frequency!r}")
        if self.interval < 1:
            raise RecurrenceError(f"INTERVAL must be positive, got {self.interval}")
        if self.count is not None and self.count < 1:
            raise RecurrenceError(f"COUNT must be positive, got {self.count}")
        for day in self.by_month_day:
            if day == 0 or not -31 <= day <= 31:
                raise RecurrenceError(f"BYMONTHDAY out of range: {day}")
        for month in self.by_month:
            if not 1 <= month <= 12:
                raise RecurrenceError(f"BYMONTH out of range: {month}")

    @property
    def is_bounded(self) -> bool:
        """Whether the rule terminates on its own (COUNT or UNTIL)."""
        return self.count is not None or self.until is not None

    @classmethod
    def from_ical(cls, text: str) -> "RecurrenceRule":
        """
        Build a rule from RRULE text, with or without the ``RRULE:`` prefix.

        Raises:
            RecurrenceError: If the text cannot be interpreted
        """
        value = text.strip()
        if value.upper().startswith("RRULE:"):
            value = value[6:]
        if not value:
            raise RecurrenceError("Empty recurrence rule")

        parts = {}
        for chunk in value.split(";"):
            if not chunk:
                continue
            key, sep, raw = chunk.partition("=")
            if not sep or not raw:
                raise RecurrenceError(f"Malformed RRULE part: {chunk!r}")
            parts[key.strip().upper()] = raw.strip()

        if "FREQ" not in parts:
            raise RecurrenceError(f"RRULE without FREQ: {text!r}")

        try:
            kwargs = {"frequency": parts.pop("FREQ").upper()}
            if "INTERVAL" in parts:
                kwargs["interval"] = int(parts.pop("INTERVAL"))
            if "COUNT" in parts:
                kwargs["count"] = int(parts.pop("COUNT"))
            if "UNTIL" in parts:
                kwargs["until"] = _parse_until(parts.pop("UNTIL"))
            if "BYDAY" in parts:
                kwargs["by_weekday"] = tuple(_parse_byday(v) for v in parts.pop("BYDAY").split(","))
            if "BYMONTHDAY" in parts:
                kwargs["by_month_day"] = tuple(int(v) for v in parts.pop("BYMONTHDAY").split(","))
            if "BYMONTH" in parts:
                kwargs["by_month"] = tuple(int(v) for v in parts.pop("BYMONTH").split(","))
            if "WKST" in parts:
                kwargs["week_start"] = WEEKDAY_CODES.index(parts.pop("WKST").upper())
        except ValueError as exc:
            raise RecurrenceError(f"Invalid RRULE {text!r}: {exc}") from exc

        for key in parts:
            if key in _IGNORED_PARTS:
                logger.warning("Ignoring unsupported RRULE part %s in %r", key, text)
            else:
                logger.warning("Ignoring unknown RRULE part %s in %r", key, text)

        return cls(**kwargs)

    def build(self, dtstart: DateTime) -> du_rrule.rrule:
        """
        Create a ``dateutil`` rule anchored at ``dtstart``.

        ``dtstart`` must be timezone-aware. When both COUNT and UNTIL are
        present only COUNT is handed to dateutil; callers filter on UNTIL.
        """
        kwargs = {
            "freq": FREQUENCIES[self.frequency],
            "dtstart": dtstart,
            "interval": self.interval,
            "wkst": self.week_start,
        }
        if self.count is not None:
            kwargs["count"] = self.count
        elif self.until is not None:
            kwargs["until"] = self.until_for(dtstart)
        if self.by_weekday:
            kwargs["byweekday"] = [du_rrule.weekday(day, n) for day, n in self.by_weekday]
        if self.by_month_day:
            kwargs["bymonthday"] = self.by_month_day
        if self.by_month:
            kwargs["bymonth"] = self.by_month

        try:
            return du_rrule.rrule(**kwargs)
        except (ValueError, TypeError) as exc:
            raise RecurrenceError(f"Cannot build recurrence rule: {exc}") from exc

    def until_for(self, dtstart: DateTime) -> Optional[DateTime]:
        """
        Resolve UNTIL into an aware datetime in the timezone of ``dtstart``.

        A date-only UNTIL includes that whole day.
        """
        if self.until is None:
            return None
        tz = dtstart.tzinfo
        if isinstance(self.until, datetime):
            return pendulum.instance(self.until, tz=tz).in_timezone(tz)
        return pendulum.datetime(
            self.until.year, self.until.month, self.until.day, 23, 59, 59, tz=tz
        )


def _parse_until(value: str) -> Union[date, datetime]:
    """Parse an UNTIL value in one of the RFC 5545 forms."""
    value = value.strip().upper()
    if value.endswith("Z"):
        parsed = datetime.strptime(value[:-1], "%Y%m%dT%H%M%S")
        return parsed.replace(tzinfo=timezone.utc)
    if "T" in value:
        return datetime.strptime(value, "%Y%m%dT%H%M%S")
    return datetime.strptime(value, "%Y%m%d").date()


def _parse_byday(value: str) -> Tuple[int, Optional[int]]:
    match = _BYDAY_PATTERN.match(value.strip().upper())
    if not match:
        raise ValueError(f"invalid BYDAY value {value!r}")
    ordinal, code = match.groups()
    n = int(ordinal) if ordinal else None
    if n == 0:
        raise ValueError(f"invalid BYDAY ordinal in {value!r}")
    return WEEKDAY_CODES.index(code), n
