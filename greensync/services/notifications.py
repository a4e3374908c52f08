"""Service that diffs booking state between scans and emits notifications."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Iterable, Protocol

from greensync.domain.models import (
    ADMIN_BROADCAST,
    AppNotification,
    EventRequest,
    EventStatus,
    NotificationType,
    Viewer,
)

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 100
DEFAULT_UPCOMING_WINDOW = 60  # minutes
DEFAULT_SUPPRESS_HOURS = 24


class NotificationStore(Protocol):
    def load_snapshot(self) -> dict[str, EventRequest]: ...

    def save_snapshot(self, snapshot: dict[str, EventRequest]) -> None: ...

    def load_log(self) -> list[AppNotification]: ...

    def save_log(self, notifications: list[AppNotification]) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def wall_clock_start(day: str, start_time: str, zone: tzinfo) -> datetime:
    """Interpret ``YYYY-MM-DD`` plus ``HH:mm`` as wall-clock time in *zone*."""
    year, month, dom = (int(part) for part in day.split("-"))
    hours, minutes = (int(part) for part in start_time.split(":"))
    return datetime(year, month, dom, hours, minutes, tzinfo=zone)


def minutes_until(start: datetime, now: datetime) -> int:
    """Whole minutes from *now* until *start*, truncated toward zero."""
    return int((start - now).total_seconds() / 60)


class NotificationEngine:
    """Computes per-scan deltas over the booking collection.

    Each scan compares the current bookings with the snapshot left by the
    previous scan and emits:

    * ``STATUS_CHANGE`` to the owner when a known booking changed status,
    * ``NEW_REQUEST`` to the admin broadcast marker for a never-seen Pending
      booking,
    * two ``UPCOMING_EVENT`` notifications (owner and admins) when an Approved
      booking starts within the upcoming window and has not been announced
      during the suppression period.

    The new notifications are prepended to the global log, which is capped,
    and the snapshot is then replaced by the current bookings. Scans and
    log edits on one engine are serialized.
    """

    def __init__(
        self,
        store: NotificationStore,
        zone: tzinfo = timezone.utc,
        clock: Callable[[], datetime] = _utcnow,
        log_limit: int = DEFAULT_LOG_LIMIT,
        upcoming_window_minutes: int = DEFAULT_UPCOMING_WINDOW,
        suppress_hours: int = DEFAULT_SUPPRESS_HOURS,
    ) -> None:
        self.store = store
        self.zone = zone
        self.clock = clock
        self.log_limit = log_limit
        self.upcoming_window_minutes = upcoming_window_minutes
        self.suppress_ms = int(timedelta(hours=suppress_hours).total_seconds() * 1000)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan(
        self, current_events: Iterable[EventRequest], now: datetime | None = None
    ) -> list[AppNotification]:
        """Diff *current_events* against the last snapshot and persist the result.

        Returns only the notifications emitted by this scan.
        """
        now = now or self.clock()
        now_ms = _to_ms(now)
        events = list(current_events)

        with self._lock:
            existing = self.store.load_log()
            snapshot = self.store.load_snapshot()

            emitted: list[AppNotification] = []
            for event in events:
                previous = snapshot.get(event.id)
                emitted.extend(self._status_change(event, previous, now_ms))
                emitted.extend(self._new_request(event, previous, now_ms))
                emitted.extend(self._upcoming(event, existing, now, now_ms))

            # log before snapshot: a failed log write must leave the old snapshot
            if emitted:
                self.store.save_log((emitted + existing)[: self.log_limit])
            self.store.save_snapshot({event.id: event for event in events})

        if emitted:
            counts = Counter(n.type.value for n in emitted)
            logger.info(
                "Scan of %d bookings emitted %s",
                len(events),
                ", ".join(f"{count} {kind}" for kind, count in sorted(counts.items())),
            )
        else:
            logger.debug("Scan of %d bookings emitted nothing", len(events))
        return emitted

    def scan_for_updates(
        self,
        current_events: Iterable[EventRequest],
        viewer: Viewer,
        now: datetime | None = None,
    ) -> list[AppNotification]:
        """Run a scan and return the log entries *viewer* may see."""
        with self._lock:
            self.scan(current_events, now=now)
            return self.visible_to(viewer)

    def _status_change(
        self, event: EventRequest, previous: EventRequest | None, now_ms: int
    ) -> list[AppNotification]:
        if previous is None or previous.status == event.status:
            return []
        return [
            AppNotification(
                type=NotificationType.STATUS_CHANGE,
                title="Request Updated",
                message=f'Your request "{event.event_title}" is now {event.status.value}.',
                timestamp=now_ms,
                related_event_id=event.id,
                recipient_id=event.user_id,
            )
        ]

    def _new_request(
        self, event: EventRequest, previous: EventRequest | None, now_ms: int
    ) -> list[AppNotification]:
        if previous is not None or event.status != EventStatus.PENDING:
            return []
        requester = event.requester_name or event.user_id
        return [
            AppNotification(
                type=NotificationType.NEW_REQUEST,
                title="New Request Received",
                message=f'{requester} requested "{event.event_title}".',
                timestamp=now_ms,
                related_event_id=event.id,
                recipient_id=ADMIN_BROADCAST,
            )
        ]

    def _upcoming(
        self,
        event: EventRequest,
        existing: list[AppNotification],
        now: datetime,
        now_ms: int,
    ) -> list[AppNotification]:
        if event.status != EventStatus.APPROVED:
            return []
        if self._recently_alerted(event.id, existing, now_ms):
            return []

        remaining = self._minutes_to_next_start(event, now)
        if remaining is None:
            return []

        return [
            AppNotification(
                type=NotificationType.UPCOMING_EVENT,
                title="Event Starting Soon",
                message=(
                    f'"{event.event_title}" starts in {remaining} minutes '
                    f"at {event.facility}."
                ),
                timestamp=now_ms,
                related_event_id=event.id,
                recipient_id=event.user_id,
            ),
            AppNotification(
                type=NotificationType.UPCOMING_EVENT,
                title="Event Starting Soon",
                message=f'"{event.event_title}" starts in {remaining} minutes.',
                timestamp=now_ms,
                related_event_id=event.id,
                recipient_id=ADMIN_BROADCAST,
            ),
        ]

    def _recently_alerted(
        self, event_id: str, existing: list[AppNotification], now_ms: int
    ) -> bool:
        # checked against the persisted log only, never the batch being built
        return any(
            n.related_event_id == event_id
            and n.type == NotificationType.UPCOMING_EVENT
            and now_ms - n.timestamp < self.suppress_ms
            for n in existing
        )

    def _minutes_to_next_start(self, event: EventRequest, now: datetime) -> int | None:
        for day in event.occupied_dates:
            remaining = minutes_until(
                wall_clock_start(day, event.start_time, self.zone), now
            )
            if 0 <= remaining <= self.upcoming_window_minutes:
                return remaining
        return None

    # ------------------------------------------------------------------
    # Reading and mutating the log
    # ------------------------------------------------------------------

    def visible_to(self, viewer: Viewer) -> list[AppNotification]:
        return [n for n in self.store.load_log() if viewer.can_see(n)]

    get_notifications = visible_to

    def unread_count(self, viewer: Viewer) -> int:
        return sum(1 for n in self.visible_to(viewer) if not n.read)

    def mark_as_read(self, notification_id: str, viewer: Viewer) -> list[AppNotification]:
        """Mark one log entry read, whoever asks, and return *viewer*'s entries."""
        with self._lock:
            log = self.store.load_log()
            for n in log:
                if n.id == notification_id:
                    n.read = True
            self.store.save_log(log)
            return self.visible_to(viewer)

    def mark_all_as_read(self, viewer: Viewer) -> list[AppNotification]:
        with self._lock:
            log = self.store.load_log()
            for n in log:
                if viewer.can_see(n):
                    n.read = True
            self.store.save_log(log)
            return self.visible_to(viewer)

    def clear_all(self, viewer: Viewer) -> list[AppNotification]:
        """Delete every entry *viewer* can see from the global log."""
        with self._lock:
            kept = [n for n in self.store.load_log() if not viewer.can_see(n)]
            self.store.save_log(kept)
            return self.visible_to(viewer)
