"""
Core business logic for calculating bookable slots.

Pure domain logic without any external dependencies (no network, no
storage, no I/O). Both the settings preview and the authoritative
availability path call ``generate_slots``.
"""

from typing import Iterator, List, Sequence

from pendulum import DateTime

from .models import BusyInterval, Slot, TimeRange
from .settings import AvailabilitySettings


class SlotCalculator:
    """
    Builds the grid of offerable slots from busy intervals and settings.

    Algorithm:
    1. Walk every calendar day from today to today + date_range_days
    2. Skip weekends unless they are included
    3. Step through the workday in slot + buffer increments
    4. Keep slots that fit the workday, respect minimum notice and
       overlap no busy interval
    """

    def __init__(self, settings: AvailabilitySettings, timezone: str = "UTC"):
        self.settings = settings
        self.timezone = timezone

    def find_available_slots(
        self,
        busy_intervals: Sequence[BusyInterval],
        now: DateTime,
    ) -> List[Slot]:
        """
        Find all offerable slots.

        Args:
            busy_intervals: Busy intervals from all feeds
            now: Current instant; defines "today" and the notice cutoff

        Returns:
            Slots in chronological order
        """
        now = now.in_timezone(self.timezone)
        earliest_start = now.add(hours=self.settings.min_notice_hours)
        sorted_busy = sorted(busy_intervals, key=lambda r: r.start)

        slots: List[Slot] = []

        for day in self._iter_days(now):
            workday = self._get_workday(day)

            # Only busy times touching this workday matter for its slots
            day_busy = [busy for busy in sorted_busy if workday.overlaps(busy)]

            slots.extend(
                self._slots_for_workday(workday, day_busy, earliest_start)
            )

        return slots

    def _iter_days(self, now: DateTime) -> Iterator[DateTime]:
        """Yield the start of each candidate day, weekends filtered."""
        today = now.start_of("day")

        for offset in range(self.settings.date_range_days + 1):
            day = today.add(days=offset)
            if not self.settings.include_weekends and day.weekday() >= 5:
                continue
            yield day

    def _get_workday(self, day: DateTime) -> TimeRange:
        """Working hours for one day as a time range."""
        start = day.set(
            hour=self.settings.workday_start_hour,
            minute=0,
            second=0,
            microsecond=0
        )
        if self.settings.workday_end_hour == 24:
            end = day.add(days=1).start_of("day")
        else:
            end = day.set(
                hour=self.settings.workday_end_hour,
                minute=0,
                second=0,
                microsecond=0
            )

        return TimeRange(start=start, end=end)

    def _slots_for_workday(
        self,
        workday: TimeRange,
        busy_ranges: Sequence[BusyInterval],
        earliest_start: DateTime,
    ) -> List[Slot]:
        """
        Step through one workday and keep the free slots.

        Example (30 min slots, no buffer):
        Working: 09:00 - 17:00
        Busy: [10:00-10:30]
        Result: 15 slots, 10:00-10:30 missing
        """
        slots: List[Slot] = []
        duration = self.settings.slot_duration_minutes
        step = self.settings.step_minutes

        current = workday.start
        while current.add(minutes=duration) <= workday.end:
            candidate = Slot(start=current, end=current.add(minutes=duration))

            if candidate.start >= earliest_start and not any(
                candidate.overlaps(busy) for busy in busy_ranges
            ):
                slots.append(candidate)

            current = current.add(minutes=step)

        return slots


def generate_slots(
    busy_intervals: Sequence[BusyInterval],
    settings: AvailabilitySettings,
    now: DateTime,
    timezone: str = "UTC",
) -> List[Slot]:
    """
    Compute offerable slots. Identical inputs always give identical output.
    """
    return SlotCalculator(settings=settings, timezone=timezone).find_available_slots(
        busy_intervals=busy_intervals,
        now=now,
    )
