"""Domain events emitted when bookings change."""

from __future__ import annotations

from pydantic import BaseModel

from greensync.domain.models import EventStatus


class BookingSaved(BaseModel):
    """Fired after a booking is created or updated."""

    event_id: str
    created: bool = False


class BookingStatusChanged(BaseModel):
    """Fired when an admin moves a booking to a new status."""

    event_id: str
    old_status: EventStatus
    new_status: EventStatus


class BookingDeleted(BaseModel):
    event_id: str


class NotificationsEmitted(BaseModel):
    """Fired after a scan produced at least one notification."""

    notification_ids: list[str]
