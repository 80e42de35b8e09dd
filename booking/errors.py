"""
Exceptions raised by the scheduling core.
Raised in service.py and mapped to HTTP responses in api_server.py.
"""

from __future__ import annotations

from collections.abc import Sequence


class SchedulingError(Exception):
    """Base exception for all scheduling errors."""
    pass


class ValidationError(SchedulingError):
    """Raised when a requested interval is malformed or starts too soon."""
    pass


class EquipmentUnavailableError(ValidationError):
    """Raised when a requested equipment item is unknown or not available for the studio."""

    def __init__(self, equipment_id: str, studio_id: str) -> None:
        super().__init__(f"Equipment {equipment_id} is not available for studio {studio_id}.")
        self.equipment_id = equipment_id
        self.studio_id = studio_id


class ConflictError(SchedulingError):
    """Raised when the studio already has an active booking in the requested window."""

    def __init__(self, studio_id: str, conflicting_booking_ids: Sequence[str]) -> None:
        super().__init__("The studio is not available during the requested time slot.")
        self.studio_id = studio_id
        self.conflicting_booking_ids = list(conflicting_booking_ids)


class NotFoundError(SchedulingError):
    """Raised when a referenced studio or booking does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity.capitalize()} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStatusError(SchedulingError):
    """Raised when a status value is not part of the booking lifecycle."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Unknown booking status: {value!r}")
        self.value = value


class InvalidTransitionError(SchedulingError):
    """Raised when the lifecycle does not allow moving between two statuses."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Invalid booking status transition: {current} -> {target}")
        self.current = current
        self.target = target


class NotificationDeliveryError(SchedulingError):
    """Raised by notifier adapters when a notification could not be handed off."""
    pass
