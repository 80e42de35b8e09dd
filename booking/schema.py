"""Pydantic schemas and enums for booking flows."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


INACTIVE_STATUSES = frozenset({BookingStatus.CANCELLED})


def is_active_status(status: BookingStatus) -> bool:
    return status not in INACTIVE_STATUSES


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CLIENT = "client"


class Capability(str, Enum):
    CREATE_BOOKING = "create_booking"
    VIEW_BOOKINGS = "view_bookings"
    CHANGE_STATUS = "change_status"


_ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.STAFF: frozenset(Capability),
    Role.CLIENT: frozenset({Capability.CREATE_BOOKING, Capability.VIEW_BOOKINGS}),
}


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in _ROLE_CAPABILITIES.get(role, frozenset())


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EquipmentRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    equipment_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)


class CreateBookingRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    studio_id: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = None
    equipment: list[EquipmentRequest] = Field(default_factory=list)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_instant(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class UpdateStatusRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: str = Field(min_length=1)
    staff_id: Optional[str] = None
    notes: Optional[str] = None


class EquipmentLine(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    equipment_id: str
    quantity: int


class BookingRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    studio_id: str
    client_id: str
    staff_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    equipment: list[EquipmentLine] = Field(default_factory=list)

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def normalize_instant(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class BookingListResponse(BaseModel):
    bookings: list[BookingRecord]


class AvailabilityResponse(BaseModel):
    studio_id: str
    start_time: datetime
    end_time: datetime
    available: bool
    conflicting_booking_ids: list[str] = Field(default_factory=list)
    earliest_start: datetime
    reason: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
    conflicting_booking_ids: Optional[list[str]] = None
