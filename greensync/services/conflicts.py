"""Service for detecting double bookings at a facility."""

from __future__ import annotations

import logging
from typing import Iterable

from greensync.domain.errors import BookingConflictError, BookingValidationError
from greensync.domain.models import (
    TERMINAL_STATUSES,
    ConflictCheckRequest,
    ConflictReport,
    EventRequest,
    check_iso_date,
    parse_hhmm,
)

logger = logging.getLogger(__name__)


def time_to_minutes(value: str) -> int:
    """Convert an ``HH:mm`` string to minutes since midnight."""
    try:
        hours, minutes = parse_hhmm(value)
    except ValueError as exc:
        raise BookingValidationError(str(exc)) from None
    return hours * 60 + minutes


def occupied_dates(event: EventRequest) -> set[str]:
    return set(event.dates) if event.dates else {event.date}


def _candidate_window(candidate: ConflictCheckRequest) -> tuple[set[str], int, int]:
    if not candidate.dates:
        raise BookingValidationError("at least one date is required")
    for d in candidate.dates:
        try:
            check_iso_date(d)
        except ValueError as exc:
            raise BookingValidationError(str(exc)) from None
    start = time_to_minutes(candidate.start_time)
    end = time_to_minutes(candidate.end_time)
    if end <= start:
        raise BookingValidationError("end_time must be after start_time")
    return set(candidate.dates), start, end


def find_conflicts(
    candidate: ConflictCheckRequest,
    existing_events: Iterable[EventRequest],
) -> list[EventRequest]:
    """Return existing bookings that collide with *candidate*, in collection order.

    A booking collides when it is at the same facility, is not Rejected or
    Canceled, is not the booking being edited (``exclude_id``), shares at
    least one date, and its time range overlaps. Time ranges are half-open:
    a booking ending at 10:00 does not collide with one starting at 10:00.
    """
    dates, start, end = _candidate_window(candidate)

    conflicts: list[EventRequest] = []
    for event in existing_events:
        if event.facility != candidate.facility:
            continue
        if event.status in TERMINAL_STATUSES:
            continue
        if candidate.exclude_id is not None and event.id == candidate.exclude_id:
            continue
        if not dates & occupied_dates(event):
            continue
        if start < time_to_minutes(event.end_time) and end > time_to_minutes(
            event.start_time
        ):
            conflicts.append(event)
    return conflicts


def find_conflict(
    candidate: ConflictCheckRequest,
    existing_events: Iterable[EventRequest],
) -> EventRequest | None:
    """Return the first colliding booking, or ``None`` when the slot is free."""
    conflicts = find_conflicts(candidate, existing_events)
    return conflicts[0] if conflicts else None


def describe_conflict(
    candidate: ConflictCheckRequest, existing: EventRequest
) -> ConflictReport:
    """Build a human-readable report for a collision found by :func:`find_conflict`."""
    shared = sorted(set(candidate.dates) & occupied_dates(existing))
    on_date = shared[0] if shared else existing.date
    message = (
        f'"{existing.event_title}" already booked {existing.facility} '
        f"on {on_date} from {existing.start_time} to {existing.end_time}."
    )
    return ConflictReport(
        event=existing,
        date=on_date,
        start_time=existing.start_time,
        end_time=existing.end_time,
        message=message,
    )


def check_conflict(
    candidate: ConflictCheckRequest,
    existing_events: Iterable[EventRequest],
) -> ConflictReport | None:
    existing = find_conflict(candidate, existing_events)
    if existing is None:
        return None
    report = describe_conflict(candidate, existing)
    logger.info("Booking conflict at %s: %s", candidate.facility, report.message)
    return report


def ensure_no_conflict(
    candidate: ConflictCheckRequest,
    existing_events: Iterable[EventRequest],
) -> None:
    """Raise :class:`BookingConflictError` if *candidate* collides with a booking."""
    report = check_conflict(candidate, existing_events)
    if report is not None:
        raise BookingConflictError(report)


def candidate_for(event: EventRequest) -> ConflictCheckRequest:
    """The conflict-check view of a stored booking, excluding itself."""
    return ConflictCheckRequest.model_construct(
        facility=event.facility,
        dates=sorted(occupied_dates(event)),
        start_time=event.start_time,
        end_time=event.end_time,
        exclude_id=event.id,
    )
