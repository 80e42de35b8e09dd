from __future__ import annotations

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from config import get_settings

settings = get_settings()


def build_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(
        database_url,
        pool_pre_ping=True,
        future=True,
        connect_args=connect_args,
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


engine = build_engine(settings.database_url)

SessionLocal = build_session_factory(engine)


def init_db(bind: Engine | None = None) -> None:
    """Bootstrap schema for environments without migrations."""
    from booking.models import Base

    Base.metadata.create_all(bind=bind or engine)


def validate_db_compatibility(bind: Engine | None = None) -> None:
    required_tables = {"studios", "equipment", "bookings", "booking_equipment", "notifications"}
    required_columns = {
        "bookings": {"studio_id", "client_id", "staff_id", "start_time", "end_time", "status", "updated_at"},
        "booking_equipment": {"booking_id", "equipment_id", "quantity"},
    }

    inspector = inspect(bind or engine)
    existing_tables = set(inspector.get_table_names())
    missing_tables = sorted(required_tables - existing_tables)

    missing_column_msgs: list[str] = []
    for table_name, columns in required_columns.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        missing_columns = sorted(columns - existing_columns)
        if missing_columns:
            missing_column_msgs.append(f"{table_name}: {', '.join(missing_columns)}")

    if not missing_tables and not missing_column_msgs:
        return

    details: list[str] = []
    if missing_tables:
        details.append(f"missing tables [{', '.join(missing_tables)}]")
    if missing_column_msgs:
        details.append(f"missing columns [{'; '.join(missing_column_msgs)}]")

    raise RuntimeError(
        "Database compatibility check failed: "
        + "; ".join(details)
        + ". Apply required migrations before starting the API."
    )
