"""Booking status state machine and the notification each transition owes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from booking.errors import InvalidStatusError, InvalidTransitionError
from booking.notifications import NotificationKind
from booking.schema import BookingStatus, is_active_status

INITIAL_STATUS = BookingStatus.PENDING

_ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

_TRANSITION_NOTIFICATIONS: dict[BookingStatus, NotificationKind] = {
    BookingStatus.CONFIRMED: NotificationKind.BOOKING_CONFIRMED,
    BookingStatus.CANCELLED: NotificationKind.BOOKING_CANCELLED,
    BookingStatus.COMPLETED: NotificationKind.STATUS_UPDATE,
}

_TRANSITION_PHRASES: dict[BookingStatus, str] = {
    BookingStatus.CONFIRMED: "has been confirmed",
    BookingStatus.CANCELLED: "has been cancelled",
    BookingStatus.COMPLETED: "has been marked as completed",
}


@dataclass(frozen=True)
class TransitionPlan:
    current: BookingStatus
    target: BookingStatus
    notification_kind: NotificationKind | None

    @property
    def changes_status(self) -> bool:
        return self.current != self.target

    @property
    def leaves_active_set(self) -> bool:
        return is_active_status(self.current) and not is_active_status(self.target)

    @property
    def enters_active_set(self) -> bool:
        return not is_active_status(self.current) and is_active_status(self.target)


def parse_status(value: object) -> BookingStatus:
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidStatusError(value) from None


def plan_transition(current: BookingStatus | str, target: BookingStatus | str) -> TransitionPlan:
    """
    Validate current -> target and describe what it entails.

    Keeping the same status is always legal and owes no notification; it is
    how notes and staff edits travel. Terminal statuses accept nothing else.
    """
    current_status = parse_status(current)
    target_status = parse_status(target)

    if current_status == target_status:
        return TransitionPlan(current=current_status, target=target_status, notification_kind=None)

    if target_status not in _ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransitionError(current=current_status.value, target=target_status.value)

    return TransitionPlan(
        current=current_status,
        target=target_status,
        notification_kind=_TRANSITION_NOTIFICATIONS[target_status],
    )


def creation_message(studio_name: str) -> str:
    return f"Your booking request for {studio_name} has been received and is pending confirmation."


def transition_message(target: BookingStatus, start_time: datetime) -> str:
    phrase = _TRANSITION_PHRASES.get(target)
    if phrase is None:
        return f"Your booking status has been updated to {target.value}."
    return f"Your booking for {start_time.strftime('%Y-%m-%d %H:%M %Z').strip()} {phrase}."
