"""
Tests for the scheduler service: create/transition flows, atomicity,
concurrency and notification isolation.
"""

from __future__ import annotations

import threading

import pytest
from sqlalchemy import func, select

from booking.catalog import SqlCatalog
from booking.errors import (
    ConflictError,
    EquipmentUnavailableError,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from booking.models import Booking, BookingEquipment, Notification
from booking.notifications import DatabaseNotifier, NotificationKind
from booking.schema import BookingStatus, EquipmentRequest
from booking.service import SchedulerService
from conftest import NOW, RecordingNotifier, at, booking_request


def _row_counts(session_factory) -> tuple[int, int]:
    with session_factory() as db:
        bookings = db.scalar(select(func.count()).select_from(Booking))
        lines = db.scalar(select(func.count()).select_from(BookingEquipment))
    return bookings, lines


def test_create_booking_starts_pending_and_notifies_client(scheduler, notifier):
    record = scheduler.create_booking(
        booking_request(notes="Vocals", equipment=[EquipmentRequest(equipment_id="E1", quantity=2)])
    )

    assert record.status is BookingStatus.PENDING
    assert record.start_time == at(2)
    assert record.end_time == at(4)
    assert record.notes == "Vocals"
    assert [(line.equipment_id, line.quantity) for line in record.equipment] == [("E1", 2)]
    assert record.id in scheduler.index
    assert notifier.events == [
        (
            NotificationKind.BOOKING_CONFIRMATION,
            "client-1",
            record.id,
            "Your booking request for Studio One has been received and is pending confirmation.",
        )
    ]


def test_half_open_windows_on_same_studio(scheduler):
    first = scheduler.create_booking(booking_request(start_hours=2, end_hours=3))
    second = scheduler.create_booking(booking_request(start_hours=3, end_hours=4))

    with pytest.raises(ConflictError) as excinfo:
        scheduler.create_booking(booking_request(start_hours=2.5, end_hours=3.5))

    assert excinfo.value.conflicting_booking_ids == [first.id, second.id]


def test_rejected_create_leaves_no_trace(scheduler, session_factory, notifier):
    scheduler.create_booking(booking_request())
    before = _row_counts(session_factory)
    intervals_before = scheduler.index.intervals("S1")

    with pytest.raises(ConflictError):
        scheduler.create_booking(
            booking_request(start_hours=3, end_hours=5, equipment=[EquipmentRequest(equipment_id="E1")])
        )

    assert _row_counts(session_factory) == before
    assert scheduler.index.intervals("S1") == intervals_before
    assert len(notifier.events) == 1


def test_unavailable_equipment_rejects_whole_booking(scheduler, session_factory):
    with pytest.raises(EquipmentUnavailableError):
        scheduler.create_booking(
            booking_request(equipment=[EquipmentRequest(equipment_id="E1"), EquipmentRequest(equipment_id="E2")])
        )
    with pytest.raises(EquipmentUnavailableError):
        scheduler.create_booking(booking_request(equipment=[EquipmentRequest(equipment_id="E3")]))

    assert _row_counts(session_factory) == (0, 0)
    assert len(scheduler.index) == 0


@pytest.mark.parametrize("studio_id", ["missing", "S3"])
def test_unknown_or_inactive_studio_is_not_found(scheduler, studio_id):
    with pytest.raises(NotFoundError):
        scheduler.create_booking(booking_request(studio_id=studio_id))


def test_invalid_window_is_a_validation_error(scheduler, session_factory):
    with pytest.raises(ValidationError):
        scheduler.create_booking(booking_request(start_hours=4, end_hours=2))
    with pytest.raises(ValidationError):
        scheduler.create_booking(booking_request(start_hours=0.25, end_hours=2))

    assert _row_counts(session_factory) == (0, 0)


def test_end_to_end_confirm_then_cancel(scheduler, notifier):
    record = scheduler.create_booking(booking_request(start_hours=1, end_hours=3))

    confirmed = scheduler.update_status(record.id, "confirmed", staff_id="U1")
    assert confirmed.status is BookingStatus.CONFIRMED
    assert confirmed.staff_id == "U1"
    assert notifier.kinds() == [NotificationKind.BOOKING_CONFIRMATION, NotificationKind.BOOKING_CONFIRMED]

    cancelled = scheduler.update_status(record.id, "cancelled")
    assert cancelled.status is BookingStatus.CANCELLED
    assert cancelled.staff_id == "U1"
    assert notifier.kinds()[-1] == NotificationKind.BOOKING_CANCELLED
    assert scheduler.check_availability("S1", at(1), at(3)).allowed

    rebooked = scheduler.create_booking(booking_request(start_hours=1, end_hours=3, client_id="client-2"))
    assert rebooked.status is BookingStatus.PENDING


def test_completed_booking_stays_indexed(scheduler, notifier):
    record = scheduler.create_booking(booking_request())

    completed = scheduler.update_status(record.id, BookingStatus.COMPLETED)

    assert completed.status is BookingStatus.COMPLETED
    assert record.id in scheduler.index
    assert notifier.kinds()[-1] == NotificationKind.STATUS_UPDATE
    assert "marked as completed" in notifier.events[-1][3]


@pytest.mark.parametrize("terminal", ["cancelled", "completed"])
@pytest.mark.parametrize("target", ["pending", "confirmed"])
def test_terminal_booking_is_immutable(scheduler, notifier, terminal, target):
    record = scheduler.create_booking(booking_request(notes="original"))
    frozen = scheduler.update_status(record.id, terminal)
    events_before = list(notifier.events)

    with pytest.raises(InvalidTransitionError):
        scheduler.update_status(record.id, target, staff_id="U9", notes="changed")

    assert scheduler.get_booking(record.id) == frozen
    assert notifier.events == events_before


def test_cancelling_twice_is_harmless(scheduler, notifier):
    record = scheduler.create_booking(booking_request())
    scheduler.update_status(record.id, "cancelled")
    intervals_before = scheduler.index.intervals("S1")
    events_before = len(notifier.events)

    again = scheduler.update_status(record.id, "cancelled")

    assert again.status is BookingStatus.CANCELLED
    assert scheduler.index.intervals("S1") == intervals_before
    assert len(notifier.events) == events_before


def test_same_status_edit_updates_notes_without_notifying(scheduler, notifier):
    record = scheduler.create_booking(booking_request(notes="first draft"))

    edited = scheduler.update_status(record.id, "pending", notes="bring own cables")

    assert edited.status is BookingStatus.PENDING
    assert edited.notes == "bring own cables"
    assert edited.updated_at == NOW
    assert len(notifier.events) == 1


def test_unknown_status_leaves_booking_unchanged(scheduler):
    record = scheduler.create_booking(booking_request())

    with pytest.raises(InvalidStatusError):
        scheduler.update_status(record.id, "archived", notes="ignored")

    assert scheduler.get_booking(record.id) == record


def test_update_unknown_booking_is_not_found(scheduler):
    with pytest.raises(NotFoundError):
        scheduler.update_status("nope", "confirmed")
    with pytest.raises(NotFoundError):
        scheduler.get_booking("nope")


def test_notification_failure_does_not_undo_booking(session_factory, caplog):
    failing = RecordingNotifier(fail=True)
    scheduler = SchedulerService(
        session_factory=session_factory,
        catalog=SqlCatalog(session_factory),
        notifier=failing,
        clock=lambda: NOW,
    )

    record = scheduler.create_booking(booking_request())
    confirmed = scheduler.update_status(record.id, "confirmed")

    assert confirmed.status is BookingStatus.CONFIRMED
    assert scheduler.get_booking(record.id).status is BookingStatus.CONFIRMED
    assert "Notification delivery failed" in caplog.text


def test_concurrent_creates_for_same_window_accept_exactly_one(scheduler, session_factory):
    barrier = threading.Barrier(2)
    outcomes: list[object] = []
    outcomes_lock = threading.Lock()

    def attempt(client_id: str) -> None:
        barrier.wait()
        try:
            result: object = scheduler.create_booking(booking_request(start_hours=2, end_hours=4, client_id=client_id))
        except ConflictError as exc:
            result = exc
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(f"client-{n}",)) for n in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    conflicts = [outcome for outcome in outcomes if isinstance(outcome, ConflictError)]
    accepted = [outcome for outcome in outcomes if not isinstance(outcome, ConflictError)]
    assert len(accepted) == 1
    assert len(conflicts) == 1
    assert conflicts[0].conflicting_booking_ids == [accepted[0].id]
    assert _row_counts(session_factory)[0] == 1


def test_rebuild_index_restores_active_future_bookings(scheduler, session_factory, notifier):
    kept = scheduler.create_booking(booking_request(start_hours=2, end_hours=4))
    cancelled = scheduler.create_booking(booking_request(start_hours=5, end_hours=6))
    scheduler.update_status(cancelled.id, "cancelled")
    other = scheduler.create_booking(booking_request(studio_id="S2", start_hours=2, end_hours=4))

    restarted = SchedulerService(
        session_factory=session_factory,
        catalog=SqlCatalog(session_factory),
        notifier=notifier,
        clock=lambda: NOW,
    )

    assert restarted.rebuild_index() == 2
    assert kept.id in restarted.index
    assert other.id in restarted.index
    assert cancelled.id not in restarted.index
    with pytest.raises(ConflictError):
        restarted.create_booking(booking_request(start_hours=3, end_hours=5))


def test_list_bookings_filters(scheduler):
    first = scheduler.create_booking(booking_request(start_hours=5, end_hours=6))
    second = scheduler.create_booking(booking_request(start_hours=2, end_hours=3, client_id="client-2"))
    third = scheduler.create_booking(booking_request(studio_id="S2", start_hours=2, end_hours=3))
    scheduler.update_status(second.id, "confirmed", staff_id="U1")

    ordered = [b.id for b in scheduler.list_bookings()]
    assert set(ordered[:2]) == {second.id, third.id}
    assert ordered[-1] == first.id
    assert [b.id for b in scheduler.list_bookings(studio_id="S1")] == [second.id, first.id]
    assert [b.id for b in scheduler.list_bookings(status="confirmed")] == [second.id]
    assert [b.id for b in scheduler.list_bookings(staff_id="U1")] == [second.id]
    assert [b.id for b in scheduler.list_bookings(client_id="client-2")] == [second.id]
    assert [b.id for b in scheduler.list_bookings(start_from=at(4))] == [first.id]
    assert {b.id for b in scheduler.list_bookings(start_until=at(2))} == {second.id, third.id}


def test_database_notifier_persists_notifications(session_factory):
    scheduler = SchedulerService(
        session_factory=session_factory,
        catalog=SqlCatalog(session_factory),
        notifier=DatabaseNotifier(session_factory),
        clock=lambda: NOW,
    )

    record = scheduler.create_booking(booking_request())
    scheduler.update_status(record.id, "confirmed")

    with session_factory() as db:
        kinds = list(
            db.scalars(select(Notification.kind).where(Notification.booking_id == record.id).order_by(Notification.kind))
        )
    assert kinds == ["booking_confirmation", "booking_confirmed"]
