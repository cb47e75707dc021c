"""
Tests for RecurrenceExpander.
"""

from datetime import date

import pendulum
import pytest

from slotbook.domain.exceptions import RecurrenceError
from slotbook.domain.models import CalendarEvent
from slotbook.domain.recurrence import RecurrenceExpander
from slotbook.domain.rules import RecurrenceRule


class BrokenRule(RecurrenceRule):
    """Rule whose enumeration always fails."""

    def build(self, dtstart):
        raise RecurrenceError("cannot enumerate")


def _event(start, end, rule=None, exception_dates=(), is_busy=True, uid="evt"):
    return CalendarEvent(
        start=start,
        end=end,
        is_busy=is_busy,
        rule=RecurrenceRule.from_ical(rule) if isinstance(rule, str) else rule,
        exception_dates=tuple(exception_dates),
        uid=uid,
    )


@pytest.fixture
def expander():
    return RecurrenceExpander(timezone="UTC")


class TestSingleEvents:
    """Non-recurring events."""

    def test_event_in_window(self, expander):
        event = _event(
            pendulum.datetime(2024, 1, 2, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 2, 10, tz="UTC"),
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 5, tz="UTC"),
        )

        assert len(intervals) == 1
        assert intervals[0].start == event.start

    def test_event_outside_window(self, expander):
        event = _event(
            pendulum.datetime(2024, 2, 2, 9, tz="UTC"),
            pendulum.datetime(2024, 2, 2, 10, tz="UTC"),
        )

        assert expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 5, tz="UTC"),
        ) == []

    def test_free_event_yields_nothing(self, expander):
        event = _event(
            pendulum.datetime(2024, 1, 2, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 2, 10, tz="UTC"),
            rule="FREQ=DAILY",
            is_busy=False,
        )

        assert expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 5, tz="UTC"),
        ) == []

    def test_converted_to_expander_timezone(self):
        expander = RecurrenceExpander(timezone="Europe/Berlin")
        event = _event(
            pendulum.datetime(2024, 1, 2, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 2, 10, tz="UTC"),
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="Europe/Berlin"),
            pendulum.datetime(2024, 1, 5, tz="Europe/Berlin"),
        )

        assert intervals[0].start.hour == 10


class TestRecurringEvents:
    """Rule enumeration within the window."""

    def test_daily_count(self, expander):
        event = _event(
            pendulum.datetime(2024, 1, 1, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 10, tz="UTC"),
            rule="FREQ=DAILY;COUNT=5",
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 11, tz="UTC"),
        )

        assert [i.start.day for i in intervals] == [1, 2, 3, 4, 5]
        assert all(i.duration_minutes() == 60 for i in intervals)

    def test_excluded_dates_still_count(self, expander):
        """An excluded instance is consumed from COUNT, not replaced."""
        event = _event(
            pendulum.datetime(2024, 1, 1, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 10, tz="UTC"),
            rule="FREQ=DAILY;COUNT=5",
            exception_dates=[pendulum.datetime(2024, 1, 3, 9, tz="UTC")],
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 11, tz="UTC"),
        )

        assert [i.start.day for i in intervals] == [1, 2, 4, 5]

    def test_weekly_with_exception(self, expander):
        """Weekly on Monday 14:00, three times, second Monday excluded."""
        event = _event(
            pendulum.datetime(2024, 1, 1, 14, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 15, tz="UTC"),
            rule="FREQ=WEEKLY;BYDAY=MO;UNTIL=20240115T140000Z",
            exception_dates=[pendulum.datetime(2024, 1, 8, 14, tz="UTC")],
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 2, 1, tz="UTC"),
        )

        assert [i.start for i in intervals] == [
            pendulum.datetime(2024, 1, 1, 14, tz="UTC"),
            pendulum.datetime(2024, 1, 15, 14, tz="UTC"),
        ]

    def test_unbounded_rule_stops_at_window_end(self, expander):
        event = _event(
            pendulum.datetime(2024, 1, 1, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 9, 30, tz="UTC"),
            rule="FREQ=DAILY",
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 3, 1, tz="UTC"),
            pendulum.datetime(2024, 3, 8, tz="UTC"),
        )

        assert len(intervals) == 7
        assert intervals[0].start == pendulum.datetime(2024, 3, 1, 9, tz="UTC")
        assert intervals[-1].start == pendulum.datetime(2024, 3, 7, 9, tz="UTC")

    def test_occurrence_reaching_into_window(self, expander):
        """A 23:00-01:00 occurrence from the day before still blocks time."""
        event = _event(
            pendulum.datetime(2024, 2, 1, 23, tz="UTC"),
            pendulum.datetime(2024, 2, 2, 1, tz="UTC"),
            rule="FREQ=DAILY",
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 3, 1, tz="UTC"),
            pendulum.datetime(2024, 3, 3, tz="UTC"),
        )

        assert [i.start for i in intervals] == [
            pendulum.datetime(2024, 2, 29, 23, tz="UTC"),
            pendulum.datetime(2024, 3, 1, 23, tz="UTC"),
            pendulum.datetime(2024, 3, 2, 23, tz="UTC"),
        ]

    def test_count_and_until_both_apply(self, expander):
        event = _event(
            pendulum.datetime(2024, 1, 1, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 10, tz="UTC"),
            rule="FREQ=DAILY;COUNT=10;UNTIL=20240103T235959Z",
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 2, 1, tz="UTC"),
        )

        assert len(intervals) == 3

    def test_wall_clock_kept_across_dst(self):
        """Weekly 14:00 Berlin stays at 14:00 when summer time starts."""
        expander = RecurrenceExpander(timezone="Europe/Berlin")
        event = _event(
            pendulum.datetime(2024, 3, 25, 14, tz="Europe/Berlin"),
            pendulum.datetime(2024, 3, 25, 15, tz="Europe/Berlin"),
            rule="FREQ=WEEKLY;COUNT=3",
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 3, 1, tz="Europe/Berlin"),
            pendulum.datetime(2024, 4, 30, tz="Europe/Berlin"),
        )

        assert [i.start.hour for i in intervals] == [14, 14, 14]
        assert [i.start.in_timezone("UTC").hour for i in intervals] == [13, 12, 12]

    def test_occurrence_cap(self):
        expander = RecurrenceExpander(timezone="UTC", max_occurrences=10)
        event = _event(
            pendulum.datetime(2024, 1, 1, 0, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 0, 30, tz="UTC"),
            rule="FREQ=HOURLY",
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 10, tz="UTC"),
        )

        assert len(intervals) == 10

    def test_iteration_cap_before_window(self):
        expander = RecurrenceExpander(timezone="UTC", max_iterations=1000)
        event = _event(
            pendulum.datetime(2024, 1, 1, 0, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 0, 0, 30, tz="UTC"),
            rule="FREQ=MINUTELY",
        )

        with pytest.raises(RecurrenceError, match="1000 occurrences"):
            expander.expand(
                event,
                pendulum.datetime(2024, 1, 2, tz="UTC"),
                pendulum.datetime(2024, 1, 3, tz="UTC"),
            )

    def test_iteration_cap_drops_only_that_event(self):
        expander = RecurrenceExpander(timezone="UTC", max_iterations=1000)
        dense = _event(
            pendulum.datetime(2024, 1, 1, 0, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 0, 0, 30, tz="UTC"),
            rule="FREQ=MINUTELY",
            uid="dense",
        )
        weekly = _event(
            pendulum.datetime(2024, 1, 1, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 10, tz="UTC"),
            rule="FREQ=WEEKLY",
            uid="weekly",
        )

        intervals = expander.expand_all(
            [dense, weekly],
            pendulum.datetime(2024, 1, 8, tz="UTC"),
            pendulum.datetime(2024, 1, 9, tz="UTC"),
        )

        assert [i.start for i in intervals] == [pendulum.datetime(2024, 1, 8, 9, tz="UTC")]


class TestExceptionDates:
    """Exception dates are matched by calendar date in the expander's timezone."""

    def _daily_late_event(self, exception_dates):
        return _event(
            pendulum.datetime(2024, 1, 1, 23, 30, tz="UTC"),
            pendulum.datetime(2024, 1, 1, 23, 45, tz="UTC"),
            rule="FREQ=DAILY",
            exception_dates=exception_dates,
        )

    def test_exception_in_other_timezone_near_midnight(self, expander):
        """00:30 Berlin on the 3rd is 23:30 UTC on the 2nd."""
        event = self._daily_late_event(
            [pendulum.datetime(2024, 1, 3, 0, 30, tz="Europe/Berlin")]
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 5, tz="UTC"),
        )

        assert [i.start.day for i in intervals] == [1, 3, 4]

    def test_same_instance_excluded_in_local_timezone(self):
        expander = RecurrenceExpander(timezone="Europe/Berlin")
        event = self._daily_late_event(
            [pendulum.datetime(2024, 1, 3, 0, 30, tz="Europe/Berlin")]
        )

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 5, tz="UTC"),
        )

        excluded = pendulum.datetime(2024, 1, 2, 23, 30, tz="UTC")
        assert excluded not in [i.start for i in intervals]
        assert len(intervals) == 3

    def test_date_only_exception(self, expander):
        event = self._daily_late_event([date(2024, 1, 2)])

        intervals = expander.expand(
            event,
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 5, tz="UTC"),
        )

        assert [i.start.day for i in intervals] == [1, 3, 4]


class TestExpandAll:
    """Tests for expand_all."""

    def test_broken_rule_only_drops_its_event(self, expander):
        good = _event(
            pendulum.datetime(2024, 1, 2, 9, tz="UTC"),
            pendulum.datetime(2024, 1, 2, 10, tz="UTC"),
            uid="good",
        )
        broken = _event(
            pendulum.datetime(2024, 1, 2, 11, tz="UTC"),
            pendulum.datetime(2024, 1, 2, 12, tz="UTC"),
            rule=BrokenRule(frequency="DAILY"),
            uid="broken",
        )

        intervals = expander.expand_all(
            [broken, good],
            pendulum.datetime(2024, 1, 1, tz="UTC"),
            pendulum.datetime(2024, 1, 5, tz="UTC"),
        )

        assert len(intervals) == 1
        assert intervals[0].start.hour == 9

    def test_broken_rule_raises_from_expand(self, expander):
        broken = _event(
            pendulum.datetime(2024, 1, 2, 11, tz="UTC"),
            pendulum.datetime(2024, 1, 2, 12, tz="UTC"),
            rule=BrokenRule(frequency="DAILY"),
        )

        with pytest.raises(RecurrenceError):
            expander.expand(
                broken,
                pendulum.datetime(2024, 1, 1, tz="UTC"),
                pendulum.datetime(2024, 1, 5, tz="UTC"),
            )
