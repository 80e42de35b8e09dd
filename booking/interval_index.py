"""Per-studio registry of active booking intervals."""

from __future__ import annotations

import bisect
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime
    booking_id: str
    studio_id: str = field(default="", compare=False)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


class IntervalIndex:
    """
    Intervals are kept sorted by start per studio. Insertion does no
    acceptance checks; callers decide whether an interval may go in.
    """

    def __init__(self) -> None:
        self._by_studio: dict[str, list[Interval]] = {}
        self._by_booking: dict[str, Interval] = {}
        self._lock = threading.Lock()

    def insert(self, studio_id: str, booking_id: str, start: datetime, end: datetime) -> None:
        interval = Interval(start=start, end=end, booking_id=booking_id, studio_id=studio_id)
        with self._lock:
            previous = self._by_booking.get(booking_id)
            if previous is not None:
                self._discard(previous)
            bisect.insort(self._by_studio.setdefault(studio_id, []), interval)
            self._by_booking[booking_id] = interval

    def remove(self, studio_id: str, booking_id: str) -> bool:
        """Returns False when nothing was indexed for the booking."""
        with self._lock:
            interval = self._by_booking.get(booking_id)
            if interval is None or interval.studio_id != studio_id:
                return False
            self._discard(interval)
            return True

    def overlaps(self, studio_id: str, start: datetime, end: datetime) -> list[str]:
        with self._lock:
            intervals = self._by_studio.get(studio_id, [])
            conflicts: list[str] = []
            for interval in intervals:
                # sorted by start: nothing further along can intersect
                if interval.start >= end:
                    break
                if interval.overlaps(start, end):
                    conflicts.append(interval.booking_id)
            return conflicts

    def intervals(self, studio_id: str) -> list[Interval]:
        with self._lock:
            return list(self._by_studio.get(studio_id, []))

    def load(self, intervals: Iterable[Interval]) -> int:
        """Replace the whole index. Returns the number of intervals loaded."""
        with self._lock:
            self._by_studio.clear()
            self._by_booking.clear()
            count = 0
            for interval in intervals:
                bisect.insort(self._by_studio.setdefault(interval.studio_id, []), interval)
                self._by_booking[interval.booking_id] = interval
                count += 1
            return count

    def __contains__(self, booking_id: object) -> bool:
        return booking_id in self._by_booking

    def __len__(self) -> int:
        return len(self._by_booking)

    def _discard(self, interval: Interval) -> None:
        studio_intervals = self._by_studio.get(interval.studio_id, [])
        position = bisect.bisect_left(studio_intervals, interval)
        if position < len(studio_intervals) and studio_intervals[position] == interval:
            del studio_intervals[position]
        if not studio_intervals:
            self._by_studio.pop(interval.studio_id, None)
        self._by_booking.pop(interval.booking_id, None)
