from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_url: str
    booking_api_key: str
    min_lead_minutes: int
    slot_rounding_minutes: int
    notifier_backend: str
    log_level: str


def _clean(value: str) -> str:
    return value.strip().strip('"').strip("'")


def _get_required_env(name: str) -> str:
    value = _clean(os.getenv(name, ""))
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _get_int_env(name: str, default: int) -> int:
    raw = _clean(os.getenv(name, ""))
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from exc


@lru_cache
def get_settings() -> Settings:
    return Settings(
        app_name="Studio Booking API",
        app_version="1.0.0",
        database_url=_get_required_env("DATABASE_URL"),
        booking_api_key=_get_required_env("STUDIO_BOOKING_API_KEY"),
        min_lead_minutes=_get_int_env("BOOKING_MIN_LEAD_MINUTES", 60),
        slot_rounding_minutes=_get_int_env("BOOKING_SLOT_ROUNDING_MINUTES", 30),
        notifier_backend=_clean(os.getenv("NOTIFIER_BACKEND", "log")).lower() or "log",
        log_level=_clean(os.getenv("LOG_LEVEL", "INFO")).upper() or "INFO",
    )
