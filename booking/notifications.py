from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from booking.errors import NotificationDeliveryError
from booking.models import Notification


class NotificationKind(str, Enum):
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    STATUS_UPDATE = "status_update"


@dataclass(frozen=True)
class NotificationEvent:
    kind: NotificationKind
    user_id: str
    booking_id: str
    message: str


class NotifierPort(ABC):
    @abstractmethod
    def notify(self, kind: NotificationKind, user_id: str, booking_id: str, message: str) -> None:
        """Hand a notification off for delivery. Raises NotificationDeliveryError on failure."""
        raise NotImplementedError


class LoggingNotifier(NotifierPort):
    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def notify(self, kind: NotificationKind, user_id: str, booking_id: str, message: str) -> None:
        self._logger.info(
            "Notification queued for user %s: %s",
            user_id,
            message,
            extra={"kind": kind.value, "booking_id": booking_id},
        )


class DatabaseNotifier(NotifierPort):
    """Stores notifications in their own transaction, apart from the booking mutation."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def notify(self, kind: NotificationKind, user_id: str, booking_id: str, message: str) -> None:
        with self._session_factory() as db:
            try:
                with db.begin():
                    db.add(
                        Notification(
                            kind=kind.value,
                            user_id=user_id,
                            booking_id=booking_id,
                            content=message,
                        )
                    )
            except SQLAlchemyError as exc:
                raise NotificationDeliveryError(f"Could not store {kind.value} notification: {exc}") from exc
