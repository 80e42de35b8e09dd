"""Booking persistence on top of a SQLAlchemy session."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking.interval_index import Interval
from booking.models import Booking, BookingEquipment
from booking.schema import BookingRecord, BookingStatus, EquipmentLine, EquipmentRequest, ensure_utc


class BookingRepository:
    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, booking_id: str) -> Booking | None:
        return self._db.get(Booking, booking_id)

    def add(
        self,
        *,
        studio_id: str,
        client_id: str,
        start_time: datetime,
        end_time: datetime,
        status: BookingStatus,
        notes: str | None,
        equipment: Iterable[EquipmentRequest],
        now: datetime,
    ) -> Booking:
        booking = Booking(
            studio_id=studio_id,
            client_id=client_id,
            start_time=start_time,
            end_time=end_time,
            status=status.value,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self._db.add(booking)
        self._db.flush()

        for item in equipment:
            self._db.add(
                BookingEquipment(
                    booking_id=booking.id,
                    equipment_id=item.equipment_id,
                    quantity=item.quantity,
                )
            )
        self._db.flush()
        return booking

    def equipment_lines(self, booking_ids: list[str]) -> dict[str, list[EquipmentLine]]:
        lines: dict[str, list[EquipmentLine]] = defaultdict(list)
        if not booking_ids:
            return lines
        stmt = (
            select(BookingEquipment)
            .where(BookingEquipment.booking_id.in_(booking_ids))
            .order_by(BookingEquipment.equipment_id.asc())
        )
        for row in self._db.scalars(stmt):
            lines[row.booking_id].append(EquipmentLine.model_validate(row))
        return lines

    def to_record(self, booking: Booking) -> BookingRecord:
        lines = self.equipment_lines([booking.id])
        return _record(booking, lines.get(booking.id, []))

    def search(
        self,
        *,
        status: BookingStatus | None = None,
        studio_id: str | None = None,
        client_id: str | None = None,
        staff_id: str | None = None,
        start_from: datetime | None = None,
        start_until: datetime | None = None,
    ) -> list[BookingRecord]:
        stmt = select(Booking).order_by(Booking.start_time.asc())
        if status is not None:
            stmt = stmt.where(Booking.status == status.value)
        if studio_id:
            stmt = stmt.where(Booking.studio_id == studio_id)
        if client_id:
            stmt = stmt.where(Booking.client_id == client_id)
        if staff_id:
            stmt = stmt.where(Booking.staff_id == staff_id)
        if start_from is not None:
            stmt = stmt.where(Booking.start_time >= ensure_utc(start_from))
        if start_until is not None:
            stmt = stmt.where(Booking.start_time <= ensure_utc(start_until))

        bookings = list(self._db.scalars(stmt))
        lines = self.equipment_lines([booking.id for booking in bookings])
        return [_record(booking, lines.get(booking.id, [])) for booking in bookings]

    def active_intervals(self, ending_after: datetime) -> list[Interval]:
        stmt = select(Booking.id, Booking.studio_id, Booking.start_time, Booking.end_time).where(
            Booking.status != BookingStatus.CANCELLED.value,
            Booking.end_time > ending_after,
        )
        return [
            Interval(
                start=ensure_utc(start_time),
                end=ensure_utc(end_time),
                booking_id=booking_id,
                studio_id=studio_id,
            )
            for booking_id, studio_id, start_time, end_time in self._db.execute(stmt)
        ]


def _record(booking: Booking, equipment: list[EquipmentLine]) -> BookingRecord:
    return BookingRecord(
        id=booking.id,
        studio_id=booking.studio_id,
        client_id=booking.client_id,
        staff_id=booking.staff_id,
        start_time=booking.start_time,
        end_time=booking.end_time,
        status=booking.status,
        notes=booking.notes,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
        equipment=equipment,
    )
