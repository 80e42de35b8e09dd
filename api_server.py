from __future__ import annotations

import hmac
import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from booking.errors import (
    ConflictError,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from booking.schema import (
    AvailabilityResponse,
    BookingListResponse,
    BookingRecord,
    Capability,
    CreateBookingRequest,
    ErrorResponse,
    Role,
    UpdateStatusRequest,
    ensure_utc,
    has_capability,
)
from booking.service import SchedulerService
from config import get_settings
from db.session import validate_db_compatibility
from wiring import get_scheduler

settings = get_settings()

APP_NAME = settings.app_name
APP_VERSION = settings.app_version
API_KEY_HEADER = "X-API-Key"
ROLE_HEADER = "X-Caller-Role"


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("booking_id", "studio_id", "status", "conflicts", "kind"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(asctime)s %(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.log_level, logging.INFO))
root.handlers.clear()
root.addHandler(handler)


def verify_api_key(x_api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER)):
    if not x_api_key or not hmac.compare_digest(x_api_key, settings.booking_api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key.")


def caller_role(x_caller_role: Optional[str] = Header(default=None, alias=ROLE_HEADER)) -> Role:
    if not x_caller_role:
        raise HTTPException(status_code=401, detail="Missing caller role.")
    try:
        return Role(x_caller_role.strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Unknown caller role.") from exc


def require(capability: Capability):
    def dependency(role: Role = Depends(caller_role)) -> Role:
        if not has_capability(role, capability):
            raise HTTPException(status_code=403, detail="Access forbidden.")
        return role

    return dependency


class HealthResponse(BaseModel):
    status: Literal["ok", "error"]
    service: str
    version: str


app = FastAPI(title=APP_NAME, version=APP_VERSION)

_ERROR_STATUS_CODES: tuple[tuple[type[SchedulingError], int], ...] = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidTransitionError, 422),
    (InvalidStatusError, 422),
)


@app.exception_handler(SchedulingError)
def handle_scheduling_error(_: Request, exc: SchedulingError):
    status_code = next((code for error_type, code in _ERROR_STATUS_CODES if isinstance(exc, error_type)), 500)
    conflicts = exc.conflicting_booking_ids if isinstance(exc, ConflictError) else None
    body = ErrorResponse(detail=str(exc), conflicting_booking_ids=conflicts)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


@app.on_event("startup")
def startup_checks():
    _ = settings.booking_api_key
    _ = settings.database_url
    validate_db_compatibility()
    get_scheduler()


@app.get("/health/live", response_model=HealthResponse)
def health_live():
    return HealthResponse(status="ok", service=APP_NAME, version=APP_VERSION)


@app.get("/health/ready", response_model=HealthResponse)
def health_ready():
    try:
        validate_db_compatibility()
    except Exception as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return HealthResponse(status="ok", service=APP_NAME, version=APP_VERSION)


@app.get(
    "/v1/studios/{studio_id}/availability",
    response_model=AvailabilityResponse,
    dependencies=[Depends(verify_api_key), Depends(require(Capability.VIEW_BOOKINGS))],
)
def studio_availability(
    studio_id: str,
    start_time: datetime,
    end_time: datetime,
    scheduler: SchedulerService = Depends(get_scheduler),
):
    start = ensure_utc(start_time)
    end = ensure_utc(end_time)
    earliest = scheduler.checker.earliest_start()
    try:
        decision = scheduler.check_availability(studio_id, start, end)
    except ValidationError as exc:
        return AvailabilityResponse(
            studio_id=studio_id,
            start_time=start,
            end_time=end,
            available=False,
            earliest_start=earliest,
            reason=str(exc),
        )
    return AvailabilityResponse(
        studio_id=studio_id,
        start_time=start,
        end_time=end,
        available=decision.allowed,
        conflicting_booking_ids=list(decision.conflicting_ids),
        earliest_start=earliest,
        reason=decision.reason,
    )


@app.post(
    "/v1/bookings",
    response_model=BookingRecord,
    status_code=201,
    dependencies=[Depends(verify_api_key), Depends(require(Capability.CREATE_BOOKING))],
)
def create_booking(request: CreateBookingRequest, scheduler: SchedulerService = Depends(get_scheduler)):
    return scheduler.create_booking(request)


@app.patch(
    "/v1/bookings/{booking_id}/status",
    response_model=BookingRecord,
    dependencies=[Depends(verify_api_key), Depends(require(Capability.CHANGE_STATUS))],
)
def update_booking_status(
    booking_id: str,
    request: UpdateStatusRequest,
    scheduler: SchedulerService = Depends(get_scheduler),
):
    return scheduler.update_status(
        booking_id,
        request.status,
        staff_id=request.staff_id,
        notes=request.notes,
    )


@app.get(
    "/v1/bookings",
    response_model=BookingListResponse,
    dependencies=[Depends(verify_api_key), Depends(require(Capability.VIEW_BOOKINGS))],
)
def list_bookings(
    status: Optional[str] = None,
    studio_id: Optional[str] = None,
    client_id: Optional[str] = None,
    staff_id: Optional[str] = None,
    start_from: Optional[datetime] = None,
    start_until: Optional[datetime] = None,
    scheduler: SchedulerService = Depends(get_scheduler),
):
    bookings = scheduler.list_bookings(
        status=status,
        studio_id=studio_id,
        client_id=client_id,
        staff_id=staff_id,
        start_from=start_from,
        start_until=start_until,
    )
    return BookingListResponse(bookings=bookings)


@app.get(
    "/v1/bookings/{booking_id}",
    response_model=BookingRecord,
    dependencies=[Depends(verify_api_key), Depends(require(Capability.VIEW_BOOKINGS))],
)
def get_booking(booking_id: str, scheduler: SchedulerService = Depends(get_scheduler)):
    return scheduler.get_booking(booking_id)
