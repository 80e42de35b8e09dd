"""Rule evaluation logic for requested booking intervals."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass
class RuleCheckResult:
    allowed: bool
    reason: str | None = None


class RuleEngine:
    @staticmethod
    def check_interval(start_time: datetime, end_time: datetime) -> RuleCheckResult:
        if end_time <= start_time:
            return RuleCheckResult(allowed=False, reason="End time must be after start time.")
        return RuleCheckResult(allowed=True)

    @staticmethod
    def check_lead_time(start_time: datetime, now: datetime, min_lead_minutes: int) -> RuleCheckResult:
        if start_time <= now:
            return RuleCheckResult(allowed=False, reason="Requested time is in the past.")

        earliest_allowed = now + timedelta(minutes=min_lead_minutes)
        if start_time < earliest_allowed:
            return RuleCheckResult(
                allowed=False,
                reason=f"Start time must be at least {min_lead_minutes} minutes from now.",
            )

        return RuleCheckResult(allowed=True)

    @staticmethod
    def earliest_start(now: datetime, min_lead_minutes: int, rounding_minutes: int) -> datetime:
        """First start offered to clients: now plus lead time, rounded up to the next slot boundary."""
        candidate = now + timedelta(minutes=min_lead_minutes)
        if rounding_minutes <= 0:
            return candidate
        day_start = candidate.replace(hour=0, minute=0, second=0, microsecond=0)
        slot_seconds = rounding_minutes * 60
        offset_seconds = (candidate - day_start).total_seconds()
        slots = math.ceil(offset_seconds / slot_seconds)
        return day_start + timedelta(seconds=slots * slot_seconds)
