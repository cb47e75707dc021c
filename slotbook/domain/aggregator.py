"""
Combines busy intervals from several feeds into one ordered list.
"""

from typing import Iterable, List

from .models import BusyInterval


def aggregate(per_feed_intervals: Iterable[Iterable[BusyInterval]]) -> List[BusyInterval]:
    """
    Concatenate intervals from every feed, drop exact duplicates and sort.

    Overlapping intervals are kept as they are; the slot generator's overlap
    test handles them.

    Args:
        per_feed_intervals: One iterable of intervals per feed

    Returns:
        Intervals sorted by (start, end)
    """
    seen = set()
    unique: List[BusyInterval] = []

    for intervals in per_feed_intervals:
        for interval in intervals:
            # Compare by instant so the same span in two timezones is one entry
            key = (interval.start.timestamp(), interval.end.timestamp())
            if key in seen:
                continue
            seen.add(key)
            unique.append(interval)

    return sorted(unique, key=lambda r: (r.start, r.end))
