"""In-memory repositories for bookings, facilities and notifications."""

from __future__ import annotations

from greensync.domain.models import AppNotification, EventRequest, Facility


class EventRepository:
    """Dict-backed store for EventRequest instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, EventRequest] = {}

    def add(self, event: EventRequest) -> None:
        self._store[event.id] = event

    def get(self, event_id: str) -> EventRequest | None:
        return self._store.get(event_id)

    def list_all(self) -> list[EventRequest]:
        return list(self._store.values())

    def list_newest_first(self) -> list[EventRequest]:
        return sorted(self._store.values(), key=lambda e: e.created_at, reverse=True)

    def update(self, event: EventRequest) -> None:
        self._store[event.id] = event

    def delete(self, event_id: str) -> None:
        self._store.pop(event_id, None)


class FacilityRepository:
    """Dict-backed store for Facility instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Facility] = {}

    def add(self, facility: Facility) -> None:
        self._store[facility.id] = facility

    def get(self, facility_id: str) -> Facility | None:
        return self._store.get(facility_id)

    def get_by_name(self, name: str) -> Facility | None:
        for facility in self._store.values():
            if facility.name == name:
                return facility
        return None

    def list_all(self) -> list[Facility]:
        return sorted(self._store.values(), key=lambda f: f.created_at)

    def delete(self, facility_id: str) -> None:
        self._store.pop(facility_id, None)


class MemoryNotificationStore:
    """Holds the event snapshot and the global notification log.

    Both are written whole: every save replaces the previous document.
    Reads hand out copies so callers never mutate stored state in place.
    """

    def __init__(self) -> None:
        self._snapshot: dict[str, EventRequest] = {}
        self._log: list[AppNotification] = []

    def load_snapshot(self) -> dict[str, EventRequest]:
        return {eid: e.model_copy(deep=True) for eid, e in self._snapshot.items()}

    def save_snapshot(self, snapshot: dict[str, EventRequest]) -> None:
        self._snapshot = {eid: e.model_copy(deep=True) for eid, e in snapshot.items()}

    def load_log(self) -> list[AppNotification]:
        return [n.model_copy() for n in self._log]

    def save_log(self, notifications: list[AppNotification]) -> None:
        self._log = [n.model_copy() for n in notifications]

    def reset(self) -> None:
        self._snapshot = {}
        self._log = []


# ---------------------------------------------------------------------------
# Seed data – the default set of bookable facilities
# ---------------------------------------------------------------------------

_DEFAULT_FACILITIES = [
    ("Auditorium", ["Projector", "Microphone", "Speakers"], "#16a34a"),
    ("Conference Room A", ["Projector", "Whiteboard"], "#2563eb"),
    ("Computer Lab", ["Computers", "Projector"], "#9333ea"),
    ("Gymnasium", ["Sound System"], "#ea580c"),
]


def _seed_facilities(repo: FacilityRepository) -> None:
    for offset, (name, equipment, color) in enumerate(_DEFAULT_FACILITIES):
        facility = Facility(name=name, equipment=equipment, color=color)
        # keep the listing order stable when seeded within the same millisecond
        facility.created_at += offset
        repo.add(facility)


def create_facility_repository(seed: bool = True) -> FacilityRepository:
    """Return a FacilityRepository, optionally pre-loaded with default facilities."""
    repo = FacilityRepository()
    if seed:
        _seed_facilities(repo)
    return repo
