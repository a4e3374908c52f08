"""Booking status transitions."""

from __future__ import annotations

from greensync.domain.models import EventStatus


def can_transition(old: EventStatus, new: EventStatus) -> bool:
    """Whether a booking may move from *old* to *new*.

    Every transition is currently allowed, including leaving a terminal
    status (e.g. Canceled -> Approved).
    """
    return True
