from functools import lru_cache
import logging

from booking.catalog import CatalogPort, SqlCatalog
from booking.notifications import DatabaseNotifier, LoggingNotifier, NotifierPort
from booking.service import SchedulerService
from config import get_settings
from db.session import SessionLocal


def get_catalog() -> CatalogPort:
    return SqlCatalog(SessionLocal)


def get_notifier() -> NotifierPort:
    settings = get_settings()
    if settings.notifier_backend == "database":
        return DatabaseNotifier(SessionLocal)
    if settings.notifier_backend != "log":
        logging.getLogger(__name__).warning(
            "Unknown NOTIFIER_BACKEND %r, falling back to log notifier", settings.notifier_backend
        )
    return LoggingNotifier()


@lru_cache
def get_scheduler() -> SchedulerService:
    """Process-wide scheduler; the interval index and studio locks live inside it."""
    settings = get_settings()
    scheduler = SchedulerService(
        session_factory=SessionLocal,
        catalog=get_catalog(),
        notifier=get_notifier(),
        min_lead_minutes=settings.min_lead_minutes,
        slot_rounding_minutes=settings.slot_rounding_minutes,
    )
    scheduler.rebuild_index()
    return scheduler
