"""Exceptions raised by the booking and notification services."""

from __future__ import annotations

from greensync.domain.models import ConflictReport


class BookingValidationError(ValueError):
    """Malformed booking input: bad time, bad date, or an empty date set."""


class BookingConflictError(Exception):
    """A candidate booking overlaps an existing one at the same facility."""

    def __init__(self, report: ConflictReport) -> None:
        super().__init__(report.message)
        self.report = report


class PersistenceFailure(RuntimeError):
    """The backing store could not be read or written."""
