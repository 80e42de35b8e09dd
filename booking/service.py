"""Scheduler service: the single entry point for creating and transitioning bookings."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.orm import sessionmaker

from booking.catalog import CatalogPort
from booking.conflicts import AvailabilityCheck, Clock, ConflictChecker, utc_now
from booking.errors import ConflictError, EquipmentUnavailableError, NotFoundError
from booking.interval_index import IntervalIndex
from booking.lifecycle import INITIAL_STATUS, creation_message, parse_status, plan_transition, transition_message
from booking.notifications import NotificationEvent, NotificationKind, NotifierPort
from booking.repository import BookingRepository
from booking.schema import BookingRecord, BookingStatus, CreateBookingRequest, ensure_utc


class StudioLocks:
    """One mutex per studio; check-then-insert and cancellations for a studio run under it."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, studio_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(studio_id)
            if lock is None:
                lock = self._locks[studio_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, studio_id: str) -> Iterator[None]:
        with self.get(studio_id):
            yield


class SchedulerService:
    def __init__(
        self,
        session_factory: sessionmaker,
        catalog: CatalogPort,
        notifier: NotifierPort,
        index: IntervalIndex | None = None,
        min_lead_minutes: int = 60,
        slot_rounding_minutes: int = 30,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = catalog
        self._notifier = notifier
        self._index = index if index is not None else IntervalIndex()
        self._clock = clock
        self._checker = ConflictChecker(
            self._index,
            min_lead_minutes=min_lead_minutes,
            slot_rounding_minutes=slot_rounding_minutes,
            clock=clock,
        )
        self._locks = StudioLocks()
        self._logger = logging.getLogger(__name__)

    @property
    def index(self) -> IntervalIndex:
        return self._index

    @property
    def checker(self) -> ConflictChecker:
        return self._checker

    def rebuild_index(self) -> int:
        """Load every non-cancelled booking that has not ended yet into the index."""
        with self._session_factory() as db:
            intervals = BookingRepository(db).active_intervals(ending_after=self._clock())
        count = self._index.load(intervals)
        self._logger.info("Interval index rebuilt with %s active bookings", count)
        return count

    def check_availability(
        self,
        studio_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
    ) -> AvailabilityCheck:
        if not self._catalog.studio_exists(studio_id):
            raise NotFoundError("studio", studio_id)
        with self._locks.hold(studio_id):
            return self._checker.check_availability(studio_id, start, end, exclude_booking_id)

    def create_booking(self, request: CreateBookingRequest) -> BookingRecord:
        studio_name = self._catalog.studio_name(request.studio_id)
        if studio_name is None:
            raise NotFoundError("studio", request.studio_id)

        start = ensure_utc(request.start_time)
        end = ensure_utc(request.end_time)
        self._checker.validate_interval(start, end)
        for item in request.equipment:
            if not self._catalog.is_equipment_available(request.studio_id, item.equipment_id):
                raise EquipmentUnavailableError(item.equipment_id, request.studio_id)

        with self._locks.hold(request.studio_id):
            decision = self._checker.check_availability(request.studio_id, start, end)
            if not decision.allowed:
                self._logger.info(
                    "Booking request rejected",
                    extra={"studio_id": request.studio_id, "conflicts": ",".join(decision.conflicting_ids)},
                )
                raise ConflictError(request.studio_id, decision.conflicting_ids)

            with self._session_factory() as db:
                with db.begin():
                    repository = BookingRepository(db)
                    booking = repository.add(
                        studio_id=request.studio_id,
                        client_id=request.client_id,
                        start_time=start,
                        end_time=end,
                        status=INITIAL_STATUS,
                        notes=request.notes,
                        equipment=request.equipment,
                        now=self._clock(),
                    )
                    record = repository.to_record(booking)

            self._index.insert(record.studio_id, record.id, record.start_time, record.end_time)

        self._logger.info(
            "Booking created",
            extra={"booking_id": record.id, "studio_id": record.studio_id, "status": record.status.value},
        )
        self._dispatch(
            NotificationEvent(
                kind=NotificationKind.BOOKING_CONFIRMATION,
                user_id=record.client_id,
                booking_id=record.id,
                message=creation_message(studio_name),
            )
        )
        return record

    def update_status(
        self,
        booking_id: str,
        new_status: BookingStatus | str,
        staff_id: str | None = None,
        notes: str | None = None,
    ) -> BookingRecord:
        """
        Apply a lifecycle transition. ``staff_id`` and ``notes`` left as None
        keep their stored values; passing the current status edits only those.
        """
        target = parse_status(new_status)
        studio_id = self._studio_of(booking_id)

        with self._locks.hold(studio_id):
            with self._session_factory() as db:
                with db.begin():
                    repository = BookingRepository(db)
                    booking = repository.get(booking_id)
                    if booking is None:
                        raise NotFoundError("booking", booking_id)

                    plan = plan_transition(booking.status, target)
                    booking.status = plan.target.value
                    if staff_id is not None:
                        booking.staff_id = staff_id
                    if notes is not None:
                        booking.notes = notes
                    booking.updated_at = self._clock()
                    db.flush()
                    record = repository.to_record(booking)

            if plan.leaves_active_set:
                self._index.remove(record.studio_id, record.id)
            elif plan.enters_active_set:
                self._index.insert(record.studio_id, record.id, record.start_time, record.end_time)

        self._logger.info(
            "Booking status updated",
            extra={"booking_id": record.id, "studio_id": record.studio_id, "status": record.status.value},
        )
        if plan.notification_kind is not None:
            self._dispatch(
                NotificationEvent(
                    kind=plan.notification_kind,
                    user_id=record.client_id,
                    booking_id=record.id,
                    message=transition_message(plan.target, record.start_time),
                )
            )
        return record

    def get_booking(self, booking_id: str) -> BookingRecord:
        with self._session_factory() as db:
            repository = BookingRepository(db)
            booking = repository.get(booking_id)
            if booking is None:
                raise NotFoundError("booking", booking_id)
            return repository.to_record(booking)

    def list_bookings(
        self,
        *,
        status: BookingStatus | str | None = None,
        studio_id: str | None = None,
        client_id: str | None = None,
        staff_id: str | None = None,
        start_from: datetime | None = None,
        start_until: datetime | None = None,
    ) -> list[BookingRecord]:
        with self._session_factory() as db:
            return BookingRepository(db).search(
                status=parse_status(status) if status is not None else None,
                studio_id=studio_id,
                client_id=client_id,
                staff_id=staff_id,
                start_from=start_from,
                start_until=start_until,
            )

    def _studio_of(self, booking_id: str) -> str:
        with self._session_factory() as db:
            booking = BookingRepository(db).get(booking_id)
            if booking is None:
                raise NotFoundError("booking", booking_id)
            return booking.studio_id

    def _dispatch(self, event: NotificationEvent) -> None:
        try:
            self._notifier.notify(event.kind, event.user_id, event.booking_id, event.message)
        except Exception:
            # the booking change is already committed; delivery is best-effort
            self._logger.exception(
                "Notification delivery failed",
                extra={"booking_id": event.booking_id, "kind": event.kind.value},
            )
