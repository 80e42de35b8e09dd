from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STUDIO_BOOKING_API_KEY", "test-api-key")

from datetime import datetime, timedelta, timezone

import pytest

from booking.catalog import SqlCatalog
from booking.errors import NotificationDeliveryError
from booking.models import Equipment, Studio
from booking.notifications import NotificationKind, NotifierPort
from booking.schema import CreateBookingRequest, EquipmentRequest
from booking.service import SchedulerService
from db.session import build_engine, build_session_factory, init_db

NOW = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)


class RecordingNotifier(NotifierPort):
    def __init__(self, fail: bool = False) -> None:
        self.events: list[tuple[NotificationKind, str, str, str]] = []
        self.fail = fail

    def notify(self, kind: NotificationKind, user_id: str, booking_id: str, message: str) -> None:
        if self.fail:
            raise NotificationDeliveryError("smtp relay unreachable")
        self.events.append((kind, user_id, booking_id, message))

    def kinds(self) -> list[NotificationKind]:
        return [event[0] for event in self.events]


def at(hours: float) -> datetime:
    return NOW + timedelta(hours=hours)


def booking_request(
    studio_id: str = "S1",
    start_hours: float = 2,
    end_hours: float = 4,
    client_id: str = "client-1",
    notes: str | None = None,
    equipment: list[EquipmentRequest] | None = None,
) -> CreateBookingRequest:
    return CreateBookingRequest(
        studio_id=studio_id,
        client_id=client_id,
        start_time=at(start_hours),
        end_time=at(end_hours),
        notes=notes,
        equipment=equipment or [],
    )


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = build_session_factory(engine)
    with factory() as db:
        with db.begin():
            db.add_all(
                [
                    Studio(id="S1", name="Studio One", hourly_rate=50),
                    Studio(id="S2", name="Studio Two", hourly_rate=75),
                    Studio(id="S3", name="Closed Studio", hourly_rate=40, is_active=False),
                    Equipment(id="E1", studio_id="S1", name="Neumann U87", hourly_rate=10),
                    Equipment(id="E2", studio_id="S1", name="Broken Amp", hourly_rate=5, is_available=False),
                    Equipment(id="E3", studio_id="S2", name="Drum Kit", hourly_rate=15),
                ]
            )
    return factory


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scheduler(session_factory, notifier):
    return SchedulerService(
        session_factory=session_factory,
        catalog=SqlCatalog(session_factory),
        notifier=notifier,
        min_lead_minutes=60,
        slot_rounding_minutes=30,
        clock=lambda: NOW,
    )
