"""FastAPI application: entry point for the facility booking service."""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from greensync.config import get_settings
from greensync.domain.bus import EventBus
from greensync.domain.errors import (
    BookingConflictError,
    BookingValidationError,
    PersistenceFailure,
)
from greensync.domain.events import BookingDeleted, BookingSaved, BookingStatusChanged
from greensync.domain.handlers import HandlerRegistry
from greensync.domain.models import (
    TERMINAL_STATUSES,
    AppNotification,
    ConflictCheckRequest,
    ConflictCheckResponse,
    CreateEventRequest,
    EventRequest,
    EventStatus,
    Facility,
    FacilityRequest,
    StatusUpdateRequest,
    UpdateEventRequest,
    UserRole,
    Viewer,
)
from greensync.repos.json_file import JsonNotificationStore
from greensync.repos.memory import (
    EventRepository,
    MemoryNotificationStore,
    create_facility_repository,
)
from greensync.services.conflicts import candidate_for, check_conflict, ensure_no_conflict
from greensync.services.notifications import NotificationEngine
from greensync.services.recurrence import expand_dates
from greensync.services.status import can_transition

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="GreenSync Facility Booking")

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
event_repo = EventRepository()
facility_repo = create_facility_repository(seed=settings.seed_facilities)
notification_store = (
    JsonNotificationStore(settings.notification_file)
    if settings.notification_file
    else MemoryNotificationStore()
)
engine = NotificationEngine(
    notification_store,
    zone=settings.timezone,
    log_limit=settings.notification_log_limit,
    upcoming_window_minutes=settings.upcoming_window_minutes,
    suppress_hours=settings.upcoming_suppress_hours,
)

handler_registry = HandlerRegistry(bus=event_bus, event_repo=event_repo, engine=engine)

# held from the conflict check until the booking is stored
booking_lock = threading.Lock()


def get_viewer(user_id: str, role: UserRole = UserRole.USER) -> Viewer:
    """Identify the caller from ``user_id`` and ``role`` query parameters."""
    return Viewer(id=user_id, role=role)


def _require_admin(viewer: Viewer) -> None:
    if viewer.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin role required")


def _get_event_or_404(event_id: str) -> EventRequest:
    event = event_repo.get(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _get_facility_or_404(facility_id: str) -> Facility:
    facility = facility_repo.get(facility_id)
    if facility is None:
        raise HTTPException(status_code=404, detail="Facility not found")
    return facility


def _require_known_facility(name: str) -> None:
    if facility_repo.get_by_name(name) is None:
        raise BookingValidationError(f"Unknown facility {name!r}")


# ── Error mapping ─────────────────────────────────────────────────────


@app.exception_handler(BookingValidationError)
def _validation_error(request: Request, exc: BookingValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(BookingConflictError)
def _conflict_error(request: Request, exc: BookingConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": exc.report.message, "conflict": exc.report.model_dump(mode="json")},
    )


@app.exception_handler(PersistenceFailure)
def _persistence_error(request: Request, exc: PersistenceFailure) -> JSONResponse:
    logger.error("Persistence failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


# ── Facilities ────────────────────────────────────────────────────────


@app.get("/facilities", response_model=list[Facility])
def list_facilities() -> list[Facility]:
    return facility_repo.list_all()


@app.post("/facilities", response_model=Facility, status_code=201)
def add_facility(body: FacilityRequest, viewer: Viewer = Depends(get_viewer)) -> Facility:
    _require_admin(viewer)
    if facility_repo.get_by_name(body.name) is not None:
        raise HTTPException(status_code=400, detail="Facility already exists")
    facility = Facility(name=body.name, equipment=body.equipment, color=body.color)
    facility_repo.add(facility)
    return facility


@app.put("/facilities/{facility_id}", response_model=Facility)
def update_facility(
    facility_id: str, body: FacilityRequest, viewer: Viewer = Depends(get_viewer)
) -> Facility:
    _require_admin(viewer)
    facility = _get_facility_or_404(facility_id)
    clash = facility_repo.get_by_name(body.name)
    if clash is not None and clash.id != facility_id:
        raise HTTPException(status_code=400, detail="Facility already exists")
    facility.name = body.name
    facility.equipment = body.equipment
    facility.color = body.color
    return facility


@app.delete("/facilities/{facility_id}")
def delete_facility(facility_id: str, viewer: Viewer = Depends(get_viewer)) -> dict:
    _require_admin(viewer)
    _get_facility_or_404(facility_id)
    facility_repo.delete(facility_id)
    return {"status": "deleted"}


# ── Bookings ──────────────────────────────────────────────────────────


@app.post("/conflicts/check", response_model=ConflictCheckResponse)
def check_booking_conflict(body: ConflictCheckRequest) -> ConflictCheckResponse:
    """Advisory check; a later submission must still pass its own check."""
    return ConflictCheckResponse(conflict=check_conflict(body, event_repo.list_all()))


@app.get("/events", response_model=list[EventRequest])
def list_events() -> list[EventRequest]:
    """Return all bookings, newest first."""
    return event_repo.list_newest_first()


@app.get("/events/{event_id}", response_model=EventRequest)
def get_event(event_id: str) -> EventRequest:
    return _get_event_or_404(event_id)


@app.post("/events", response_model=EventRequest, status_code=201)
def create_event(body: CreateEventRequest) -> EventRequest:
    """Submit a booking request. New requests always start Pending."""
    _require_known_facility(body.facility)
    dates = body.dates or expand_dates(body.date, body.recurrence, body.recurrence_until)
    try:
        event = EventRequest(
            user_id=body.user_id,
            requester_name=body.requester_name,
            event_title=body.event_title,
            facility=body.facility,
            date=body.date if body.dates else dates[0],
            dates=dates,
            time_slot=body.time_slot,
            start_time=body.start_time,
            end_time=body.end_time,
            equipment=body.equipment,
            status=EventStatus.PENDING,
        )
    except ValidationError as exc:
        raise BookingValidationError(str(exc)) from None

    with booking_lock:
        ensure_no_conflict(candidate_for(event), event_repo.list_all())
        event_repo.add(event)
    logger.info("Booking %s requested at %s by %s", event.id, event.facility, event.user_id)
    event_bus.publish(BookingSaved(event_id=event.id, created=True))
    return event


@app.put("/events/{event_id}", response_model=EventRequest)
def update_event(
    event_id: str, body: UpdateEventRequest, viewer: Viewer = Depends(get_viewer)
) -> EventRequest:
    """Edit a booking. Owners may edit their own; admins may edit any."""
    changes = body.model_dump(exclude_unset=True)
    if "facility" in changes:
        _require_known_facility(changes["facility"])

    with booking_lock:
        stored = _get_event_or_404(event_id)
        if viewer.role != UserRole.ADMIN and viewer.id != stored.user_id:
            raise HTTPException(status_code=403, detail="Not allowed to edit this event")

        if "date" in changes and "dates" not in changes and stored.dates == [stored.date]:
            # single-date booking moved to another day
            changes["dates"] = [changes["date"]]
        if "status" in changes and not can_transition(stored.status, changes["status"]):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot move from {stored.status} to {changes['status']}",
            )

        try:
            updated = EventRequest.model_validate({**stored.model_dump(), **changes})
        except ValidationError as exc:
            raise BookingValidationError(str(exc)) from None

        if updated.status not in TERMINAL_STATUSES:
            ensure_no_conflict(candidate_for(updated), event_repo.list_all())
        event_repo.update(updated)

    event_bus.publish(BookingSaved(event_id=updated.id))
    return updated


@app.post("/events/{event_id}/status", response_model=EventRequest)
def set_event_status(
    event_id: str, body: StatusUpdateRequest, viewer: Viewer = Depends(get_viewer)
) -> EventRequest:
    """Approve, reject, cancel or reopen a booking (admin only)."""
    _require_admin(viewer)
    with booking_lock:
        stored = _get_event_or_404(event_id)
        old_status = stored.status
        if not can_transition(old_status, body.status):
            raise HTTPException(
                status_code=400, detail=f"Cannot move from {old_status} to {body.status}"
            )

        if body.status not in TERMINAL_STATUSES:
            ensure_no_conflict(candidate_for(stored), event_repo.list_all())

        updated = stored.model_copy(update={"status": body.status})
        event_repo.update(updated)

    if old_status != body.status:
        event_bus.publish(
            BookingStatusChanged(
                event_id=event_id, old_status=old_status, new_status=body.status
            )
        )
    return updated


@app.delete("/events/{event_id}")
def delete_event(event_id: str, viewer: Viewer = Depends(get_viewer)) -> dict:
    _require_admin(viewer)
    _get_event_or_404(event_id)
    event_repo.delete(event_id)
    event_bus.publish(BookingDeleted(event_id=event_id))
    return {"status": "deleted"}


# ── Notifications ─────────────────────────────────────────────────────


@app.get("/notifications", response_model=list[AppNotification])
def list_notifications(viewer: Viewer = Depends(get_viewer)) -> list[AppNotification]:
    return engine.visible_to(viewer)


@app.get("/notifications/unread-count")
def unread_count(viewer: Viewer = Depends(get_viewer)) -> dict:
    return {"unread": engine.unread_count(viewer)}


@app.post("/notifications/scan", response_model=list[AppNotification])
def scan_notifications(viewer: Viewer = Depends(get_viewer)) -> list[AppNotification]:
    """Refresh on demand: diff the bookings and return what the viewer can see."""
    return engine.scan_for_updates(event_repo.list_all(), viewer)


@app.post("/notifications/read-all", response_model=list[AppNotification])
def read_all_notifications(viewer: Viewer = Depends(get_viewer)) -> list[AppNotification]:
    return engine.mark_all_as_read(viewer)


@app.post("/notifications/{notification_id}/read", response_model=list[AppNotification])
def read_notification(
    notification_id: str, viewer: Viewer = Depends(get_viewer)
) -> list[AppNotification]:
    return engine.mark_as_read(notification_id, viewer)


@app.delete("/notifications", response_model=list[AppNotification])
def clear_notifications(viewer: Viewer = Depends(get_viewer)) -> list[AppNotification]:
    return engine.clear_all(viewer)


@app.post("/tick")
def tick(now: datetime | None = None) -> dict:
    """Periodic refresh trigger; fires the same scan a polling client would.

    Pass *now* to control the simulated clock. Naive values are read in the
    configured timezone. Defaults to the current time when omitted.
    """
    if now is not None and now.tzinfo is None:
        now = now.replace(tzinfo=engine.zone)
    current_time = now or engine.clock()
    emitted = engine.scan(event_repo.list_all(), now=current_time)
    return {"time": current_time.isoformat(), "emitted": [n.id for n in emitted]}
