"""Accept/reject decisions for proposed studio reservations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from booking.errors import ValidationError
from booking.interval_index import IntervalIndex
from booking.rules import RuleEngine
from booking.schema import ensure_utc

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AvailabilityCheck:
    allowed: bool
    conflicting_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def reason(self) -> str | None:
        if self.allowed:
            return None
        return "The studio is not available during the requested time slot."


class ConflictChecker:
    def __init__(
        self,
        index: IntervalIndex,
        min_lead_minutes: int = 60,
        slot_rounding_minutes: int = 30,
        clock: Clock = utc_now,
    ) -> None:
        self._index = index
        self._min_lead_minutes = min_lead_minutes
        self._slot_rounding_minutes = slot_rounding_minutes
        self._clock = clock

    def validate_interval(self, start: datetime, end: datetime) -> None:
        """Raise ValidationError unless [start, end) is well formed and far enough ahead."""
        interval_check = RuleEngine.check_interval(start, end)
        if not interval_check.allowed:
            raise ValidationError(interval_check.reason)

        lead_check = RuleEngine.check_lead_time(start, self._clock(), self._min_lead_minutes)
        if not lead_check.allowed:
            raise ValidationError(lead_check.reason)

    def check_availability(
        self,
        studio_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
    ) -> AvailabilityCheck:
        start = ensure_utc(start)
        end = ensure_utc(end)
        self.validate_interval(start, end)

        conflicts = tuple(
            booking_id
            for booking_id in self._index.overlaps(studio_id, start, end)
            if booking_id != exclude_booking_id
        )
        if conflicts:
            return AvailabilityCheck(allowed=False, conflicting_ids=conflicts)
        return AvailabilityCheck(allowed=True)

    def earliest_start(self) -> datetime:
        return RuleEngine.earliest_start(self._clock(), self._min_lead_minutes, self._slot_rounding_minutes)
