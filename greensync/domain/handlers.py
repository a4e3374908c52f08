"""Domain event handlers: wired up at application startup."""

from __future__ import annotations

import logging

from greensync.domain.bus import EventBus
from greensync.domain.errors import PersistenceFailure
from greensync.domain.events import (
    BookingDeleted,
    BookingSaved,
    BookingStatusChanged,
    NotificationsEmitted,
)
from greensync.domain.models import AppNotification
from greensync.repos.memory import EventRepository
from greensync.services.notifications import NotificationEngine

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Runs a notification scan whenever the booking collection changes.

    This replaces waiting for the next periodic refresh; the scan itself is
    the same one the refresh runs.
    """

    def __init__(
        self,
        bus: EventBus,
        event_repo: EventRepository,
        engine: NotificationEngine,
    ) -> None:
        self.bus = bus
        self.event_repo = event_repo
        self.engine = engine
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(BookingSaved, self.on_booking_saved)
        self.bus.subscribe(BookingStatusChanged, self.on_status_changed)
        self.bus.subscribe(BookingDeleted, self.on_booking_deleted)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_booking_saved(self, event: BookingSaved) -> None:
        if self.event_repo.get(event.event_id) is None:
            return
        self.refresh()

    def on_status_changed(self, event: BookingStatusChanged) -> None:
        logger.info(
            "Booking %s moved from %s to %s",
            event.event_id,
            event.old_status.value,
            event.new_status.value,
        )
        self.refresh()

    def on_booking_deleted(self, event: BookingDeleted) -> None:
        # drops the booking from the snapshot
        self.refresh()

    def refresh(self) -> list[AppNotification]:
        """Scan the current bookings; a failed scan is logged and left for the next one."""
        try:
            emitted = self.engine.scan(self.event_repo.list_all())
        except PersistenceFailure:
            logger.exception("Notification scan failed; will retry on next refresh")
            return []
        if emitted:
            self.bus.publish(NotificationsEmitted(notification_ids=[n.id for n in emitted]))
        return emitted
