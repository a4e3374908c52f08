"""Domain models for the facility booking system."""

from __future__ import annotations

import re
import time
import uuid
from datetime import date as date_type
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

try:
    from enum import StrEnum
except ImportError:  # pragma: no cover - fallback for older Python runtimes

    class StrEnum(str, Enum):
        pass


ADMIN_BROADCAST = "ROLE:ADMIN"

_HHMM = re.compile(r"^(\d{2}):(\d{2})$")


class EventStatus(StrEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELED = "Canceled"


TERMINAL_STATUSES = frozenset({EventStatus.REJECTED, EventStatus.CANCELED})


class EquipmentStatus(StrEnum):
    AVAILABLE = "Available"
    UNAVAILABLE = "Unavailable"


class NotificationType(StrEnum):
    STATUS_CHANGE = "STATUS_CHANGE"
    NEW_REQUEST = "NEW_REQUEST"
    UPCOMING_EVENT = "UPCOMING_EVENT"
    INFO = "INFO"


class UserRole(StrEnum):
    USER = "USER"
    ADMIN = "ADMIN"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


def parse_hhmm(value: str) -> tuple[int, int]:
    """Split an ``HH:mm`` string into hours and minutes, validating ranges."""
    m = _HHMM.match(value or "")
    if not m:
        raise ValueError(f"invalid time {value!r}, expected HH:mm")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"invalid time {value!r}, out of range")
    return hours, minutes


def check_iso_date(value: str) -> str:
    try:
        date_type.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid date {value!r}, expected YYYY-MM-DD") from None
    return value


def _check_time_range(start_time: str, end_time: str) -> None:
    sh, sm = parse_hhmm(start_time)
    eh, em = parse_hhmm(end_time)
    if eh * 60 + em <= sh * 60 + sm:
        raise ValueError("end_time must be after start_time")


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Equipment(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    status: EquipmentStatus = EquipmentStatus.AVAILABLE


class EventRequest(BaseModel):
    """A request to book a facility over one or more dates and a time range."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    requester_name: str = ""
    event_title: str
    facility: str
    date: str
    dates: list[str] = Field(default_factory=list)
    time_slot: str = ""
    start_time: str
    end_time: str
    equipment: list[Equipment] = Field(default_factory=list)
    status: EventStatus = EventStatus.PENDING
    created_at: int = Field(default_factory=_now_ms)

    @field_validator("date")
    @classmethod
    def _valid_date(cls, v: str) -> str:
        return check_iso_date(v)

    @field_validator("dates")
    @classmethod
    def _valid_dates(cls, v: list[str]) -> list[str]:
        return [check_iso_date(d) for d in v]

    @model_validator(mode="after")
    def _end_after_start(self) -> EventRequest:
        _check_time_range(self.start_time, self.end_time)
        return self

    @property
    def occupied_dates(self) -> list[str]:
        """Dates this booking occupies; falls back to ``date`` when ``dates`` is empty."""
        return sorted(set(self.dates)) if self.dates else [self.date]


class Facility(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    equipment: list[str] = Field(default_factory=list)
    color: str = "#16a34a"
    created_at: int = Field(default_factory=_now_ms)


class AppNotification(BaseModel):
    id: str = Field(default_factory=_new_id)
    type: NotificationType
    title: str
    message: str
    timestamp: int = Field(default_factory=_now_ms)
    read: bool = False
    related_event_id: str | None = None
    recipient_id: str


class Viewer(BaseModel):
    """Whoever is looking at notifications: a user id plus a role."""

    id: str
    role: UserRole = UserRole.USER

    def can_see(self, notification: AppNotification) -> bool:
        return notification.recipient_id == self.id or (
            self.role == UserRole.ADMIN
            and notification.recipient_id == ADMIN_BROADCAST
        )


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class ConflictCheckRequest(BaseModel):
    facility: str
    dates: list[str] = Field(min_length=1)
    start_time: str
    end_time: str
    exclude_id: str | None = None

    @field_validator("dates")
    @classmethod
    def _valid_dates(cls, v: list[str]) -> list[str]:
        return [check_iso_date(d) for d in v]

    @model_validator(mode="after")
    def _end_after_start(self) -> ConflictCheckRequest:
        _check_time_range(self.start_time, self.end_time)
        return self


class ConflictReport(BaseModel):
    event: EventRequest
    date: str
    start_time: str
    end_time: str
    message: str


class ConflictCheckResponse(BaseModel):
    conflict: ConflictReport | None = None


class CreateEventRequest(BaseModel):
    """A new booking. Give either explicit ``dates`` or a ``recurrence``, not both."""

    user_id: str
    requester_name: str = ""
    event_title: str = Field(min_length=1)
    facility: str
    date: str
    dates: list[str] = Field(default_factory=list)
    time_slot: str = ""
    start_time: str
    end_time: str
    equipment: list[Equipment] = Field(default_factory=list)
    recurrence: str | None = None
    recurrence_until: str | None = None

    @model_validator(mode="after")
    def _check_schedule(self) -> CreateEventRequest:
        _check_time_range(self.start_time, self.end_time)
        if self.dates and self.recurrence:
            raise ValueError("give either dates or recurrence, not both")
        return self


class UpdateEventRequest(BaseModel):
    requester_name: str | None = None
    event_title: str | None = None
    facility: str | None = None
    date: str | None = None
    dates: list[str] | None = None
    time_slot: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    equipment: list[Equipment] | None = None
    status: EventStatus | None = None


class StatusUpdateRequest(BaseModel):
    status: EventStatus


class FacilityRequest(BaseModel):
    name: str = Field(min_length=1)
    equipment: list[str] = Field(default_factory=list)
    color: str = "#16a34a"
