"""API tests for booking submission, approval and notifications."""

from __future__ import annotations

import threading
import time

import pytest
from fastapi.testclient import TestClient

from greensync.domain.errors import BookingConflictError
from greensync.domain.models import (
    ADMIN_BROADCAST,
    CreateEventRequest,
    EventRequest,
    EventStatus,
    Facility,
    NotificationType,
)
from greensync.main import app, create_event, event_repo, facility_repo, notification_store

ADMIN = {"user_id": "admin-1", "role": "ADMIN"}
OWNER = {"user_id": "owner-1", "role": "USER"}
STRANGER = {"user_id": "stranger", "role": "USER"}


@pytest.fixture(autouse=True)
def _clear_repos():
    """Reset in-memory state before each test."""
    event_repo._store.clear()
    facility_repo._store.clear()
    facility_repo.add(Facility(name="Room A", equipment=["Projector"]))
    facility_repo.add(Facility(name="Room B"))
    notification_store.reset()
    yield
    event_repo._store.clear()
    notification_store.reset()


@pytest.fixture()
def client():
    return TestClient(app)


def _booking(**overrides) -> dict:
    body = dict(
        user_id=OWNER["user_id"],
        requester_name="Olive Owner",
        event_title="Study group",
        facility="Room A",
        date="2024-06-01",
        start_time="09:30",
        end_time="10:30",
    )
    body.update(overrides)
    return body


def _seed_approved(**overrides) -> EventRequest:
    defaults = dict(
        user_id="someone",
        requester_name="Existing Holder",
        event_title="Department meeting",
        facility="Room A",
        date="2024-06-01",
        dates=["2024-06-01"],
        start_time="09:00",
        end_time="10:00",
        status=EventStatus.APPROVED,
    )
    defaults.update(overrides)
    event = EventRequest(**defaults)
    event_repo.add(event)
    return event


# ---------------------------------------------------------------------------
# Creating bookings
# ---------------------------------------------------------------------------


def test_create_booking_is_pending_and_alerts_admins(client: TestClient):
    resp = client.post("/events", json=_booking(status="Approved"))
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "Pending"
    assert body["dates"] == ["2024-06-01"]

    admin_view = client.get("/notifications", params=ADMIN).json()
    assert [n["type"] for n in admin_view] == ["NEW_REQUEST"]
    assert admin_view[0]["recipient_id"] == ADMIN_BROADCAST
    assert admin_view[0]["related_event_id"] == body["id"]

    assert client.get("/notifications", params=OWNER).json() == []


def test_overlapping_booking_is_rejected_with_conflict(client: TestClient):
    existing = _seed_approved()

    resp = client.post("/events", json=_booking())
    assert resp.status_code == 409
    body = resp.json()
    assert body["conflict"]["event"]["id"] == existing.id
    assert body["conflict"]["date"] == "2024-06-01"
    assert body["detail"] == (
        '"Department meeting" already booked Room A on 2024-06-01 from 09:00 to 10:00.'
    )
    assert len(event_repo.list_all()) == 1


def test_back_to_back_booking_is_accepted(client: TestClient):
    _seed_approved()
    resp = client.post("/events", json=_booking(start_time="10:00", end_time="11:00"))
    assert resp.status_code == 201


def test_overlap_with_canceled_booking_is_accepted(client: TestClient):
    _seed_approved(status=EventStatus.CANCELED)
    assert client.post("/events", json=_booking()).status_code == 201


def test_unknown_facility_is_rejected(client: TestClient):
    resp = client.post("/events", json=_booking(facility="Moon Base"))
    assert resp.status_code == 422


def test_end_before_start_is_rejected(client: TestClient):
    resp = client.post("/events", json=_booking(start_time="11:00", end_time="10:00"))
    assert resp.status_code == 422


def test_malformed_date_is_rejected(client: TestClient):
    resp = client.post("/events", json=_booking(date="06/01/2024"))
    assert resp.status_code == 422


def test_recurring_booking_expands_dates(client: TestClient):
    resp = client.post(
        "/events",
        json=_booking(
            date="2026-03-02",
            recurrence="every Friday",
            recurrence_until="2026-03-14",
        ),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["dates"] == ["2026-03-06", "2026-03-13"]
    assert body["date"] == "2026-03-06"


def test_recurring_booking_conflicts_on_any_date(client: TestClient):
    _seed_approved(date="2026-03-13", dates=["2026-03-13"])
    resp = client.post(
        "/events",
        json=_booking(
            date="2026-03-02",
            recurrence="every Friday",
            recurrence_until="2026-03-14",
        ),
    )
    assert resp.status_code == 409
    assert resp.json()["conflict"]["date"] == "2026-03-13"


def test_dates_and_recurrence_together_are_rejected(client: TestClient):
    resp = client.post(
        "/events",
        json=_booking(dates=["2024-06-01"], recurrence="every Friday"),
    )
    assert resp.status_code == 422
    assert event_repo.list_all() == []


def test_advisory_conflict_check(client: TestClient):
    existing = _seed_approved()
    payload = {
        "facility": "Room A",
        "dates": ["2024-06-01"],
        "start_time": "09:30",
        "end_time": "10:30",
    }
    resp = client.post("/conflicts/check", json=payload)
    assert resp.status_code == 200
    assert resp.json()["conflict"]["event"]["id"] == existing.id

    payload["exclude_id"] = existing.id
    assert client.post("/conflicts/check", json=payload).json() == {"conflict": None}


def test_list_events_newest_first(client: TestClient):
    older = _seed_approved(created_at=1_000)
    newer = _seed_approved(created_at=2_000, facility="Room B")
    assert [e["id"] for e in client.get("/events").json()] == [newer.id, older.id]


# ---------------------------------------------------------------------------
# Editing and status changes
# ---------------------------------------------------------------------------


def test_owner_can_shift_own_booking(client: TestClient):
    created = client.post("/events", json=_booking()).json()
    resp = client.put(
        f"/events/{created['id']}",
        params=OWNER,
        json={"start_time": "10:00", "end_time": "11:00"},
    )
    assert resp.status_code == 200
    assert resp.json()["start_time"] == "10:00"
    assert resp.json()["created_at"] == created["created_at"]


def test_stranger_cannot_edit(client: TestClient):
    created = client.post("/events", json=_booking()).json()
    resp = client.put(f"/events/{created['id']}", params=STRANGER, json={"event_title": "x"})
    assert resp.status_code == 403


def test_edit_into_conflict_is_rejected(client: TestClient):
    _seed_approved()
    created = client.post(
        "/events", json=_booking(start_time="11:00", end_time="12:00")
    ).json()
    resp = client.put(
        f"/events/{created['id']}",
        params=OWNER,
        json={"start_time": "09:45", "end_time": "11:00"},
    )
    assert resp.status_code == 409
    assert event_repo.get(created["id"]).start_time == "11:00"


def test_edit_missing_event_is_404(client: TestClient):
    resp = client.put("/events/missing", params=ADMIN, json={"event_title": "x"})
    assert resp.status_code == 404


def test_admin_approval_notifies_owner(client: TestClient):
    created = client.post("/events", json=_booking()).json()

    resp = client.post(
        f"/events/{created['id']}/status", params=ADMIN, json={"status": "Approved"}
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "Approved"

    owner_view = client.get("/notifications", params=OWNER).json()
    assert [n["type"] for n in owner_view] == [NotificationType.STATUS_CHANGE.value]
    assert owner_view[0]["message"] == 'Your request "Study group" is now Approved.'


def test_regular_user_cannot_set_status(client: TestClient):
    created = client.post("/events", json=_booking()).json()
    resp = client.post(
        f"/events/{created['id']}/status", params=OWNER, json={"status": "Approved"}
    )
    assert resp.status_code == 403


def test_reopening_canceled_booking_checks_conflicts(client: TestClient):
    canceled = _seed_approved(status=EventStatus.CANCELED)
    client.post("/events", json=_booking())

    resp = client.post(
        f"/events/{canceled.id}/status", params=ADMIN, json={"status": "Approved"}
    )
    assert resp.status_code == 409
    assert event_repo.get(canceled.id).status == EventStatus.CANCELED


def test_admin_deletes_booking(client: TestClient):
    created = client.post("/events", json=_booking()).json()
    assert client.delete(f"/events/{created['id']}", params=OWNER).status_code == 403
    assert client.delete(f"/events/{created['id']}", params=ADMIN).status_code == 200
    assert client.get(f"/events/{created['id']}").status_code == 404
    assert created["id"] not in notification_store.load_snapshot()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def test_read_and_clear_notifications(client: TestClient):
    client.post("/events", json=_booking())
    client.post("/events", json=_booking(start_time="12:00", end_time="13:00"))

    notes = client.get("/notifications", params=ADMIN).json()
    assert len(notes) == 2
    assert client.get("/notifications/unread-count", params=ADMIN).json() == {"unread": 2}

    after_one = client.post(f"/notifications/{notes[0]['id']}/read", params=ADMIN).json()
    assert [n["read"] for n in after_one] == [True, False]

    after_all = client.post("/notifications/read-all", params=ADMIN).json()
    assert all(n["read"] for n in after_all)

    assert client.delete("/notifications", params=ADMIN).json() == []
    assert client.get("/notifications", params=ADMIN).json() == []


def test_scan_endpoint_is_idempotent(client: TestClient):
    client.post("/events", json=_booking())
    first = client.post("/notifications/scan", params=ADMIN).json()
    second = client.post("/notifications/scan", params=ADMIN).json()
    assert first == second
    assert len(second) == 1


def test_tick_fires_upcoming_alerts_once(client: TestClient):
    event = _seed_approved(date="2026-06-01", dates=[], start_time="12:45", end_time="13:45")

    resp = client.post("/tick", params={"now": "2026-06-01T12:00:00+00:00"})
    assert resp.status_code == 200
    assert len(resp.json()["emitted"]) == 2

    owner_view = client.get("/notifications", params={"user_id": event.user_id}).json()
    assert owner_view[0]["message"] == (
        '"Department meeting" starts in 45 minutes at Room A.'
    )

    later = client.post("/tick", params={"now": "2026-06-01T12:05:00+00:00"})
    assert later.json()["emitted"] == []


# ---------------------------------------------------------------------------
# Facilities
# ---------------------------------------------------------------------------


def test_facility_management_is_admin_only(client: TestClient):
    payload = {"name": "Chem Lab", "equipment": ["Fume hood"]}
    assert client.post("/facilities", params=OWNER, json=payload).status_code == 403

    resp = client.post("/facilities", params=ADMIN, json=payload)
    assert resp.status_code == 201
    facility_id = resp.json()["id"]

    assert client.post("/facilities", params=ADMIN, json=payload).status_code == 400

    renamed = client.put(
        f"/facilities/{facility_id}", params=ADMIN, json={"name": "Chemistry Lab"}
    )
    assert renamed.json()["name"] == "Chemistry Lab"

    names = [f["name"] for f in client.get("/facilities").json()]
    assert "Chemistry Lab" in names

    assert client.delete(f"/facilities/{facility_id}", params=ADMIN).status_code == 200
    assert client.delete(f"/facilities/{facility_id}", params=ADMIN).status_code == 404


def test_facility_cannot_be_renamed_onto_another(client: TestClient):
    room_b = facility_repo.get_by_name("Room B")

    resp = client.put(f"/facilities/{room_b.id}", params=ADMIN, json={"name": "Room A"})
    assert resp.status_code == 400
    assert facility_repo.get(room_b.id).name == "Room B"

    resp = client.put(
        f"/facilities/{room_b.id}", params=ADMIN, json={"name": "Room B", "color": "#000000"}
    )
    assert resp.status_code == 200
    assert resp.json()["color"] == "#000000"


def test_moving_single_date_booking_updates_dates(client: TestClient):
    created = client.post("/events", json=_booking()).json()
    resp = client.put(f"/events/{created['id']}", params=OWNER, json={"date": "2024-06-08"})
    assert resp.status_code == 200
    assert resp.json()["dates"] == ["2024-06-08"]


def test_simultaneous_submissions_cannot_both_book_a_slot(monkeypatch):
    list_all = event_repo.list_all

    def slow_list_all():
        events = list_all()
        time.sleep(0.2)
        return events

    monkeypatch.setattr(event_repo, "list_all", slow_list_all)
    created: list[EventRequest] = []
    conflicts: list[BookingConflictError] = []

    def submit():
        try:
            created.append(create_event(CreateEventRequest(**_booking())))
        except BookingConflictError as exc:
            conflicts.append(exc)

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(created) == 1
    assert len(conflicts) == 1
    assert [e.id for e in list_all()] == [created[0].id]
