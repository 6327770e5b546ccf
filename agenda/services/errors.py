"""Scheduling, persistence, and calendar sync errors."""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from agenda.db.enums import SyncErrorKind


class SchedulingError(Exception):
    """Base exception for scheduling errors (abort the operation, nothing committed)."""

    pass


class ConflictError(SchedulingError):
    """Requested window overlaps active appointments of the same owner."""

    def __init__(self, conflicting_ids: Iterable[UUID]):
        self.conflicting_ids = list(conflicting_ids)
        super().__init__(
            "Requested time overlaps existing appointments: "
            + ", ".join(str(i) for i in self.conflicting_ids)
        )


class InvalidTransitionError(SchedulingError):
    """Status change not allowed by the appointment lifecycle."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition: {current} -> {target}")


class InvalidAppointmentError(SchedulingError):
    """Appointment fields fail validation (duration, buffer, prices)."""

    pass


class AppointmentNotEditableError(SchedulingError):
    """Appointment is in a terminal status and cannot be rescheduled or edited."""

    pass


class AppointmentNotFoundError(SchedulingError):
    """Appointment not found."""

    pass


class CustomerNotFoundError(SchedulingError):
    """Customer not found for this owner."""

    pass


class PersistenceError(Exception):
    """Storage layer failure. Always surfaced, never swallowed."""

    pass


class ConcurrentModificationError(PersistenceError):
    """Appointment changed by another writer since it was read."""

    pass


class CalendarSyncError(Exception):
    """Error raised by the external calendar adapter."""

    def __init__(
        self,
        kind: SyncErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        self.kind = kind
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind in (SyncErrorKind.TRANSIENT, SyncErrorKind.RATE_LIMITED)


class CalendarNotConnectedError(CalendarSyncError):
    """Owner has no usable calendar credentials."""

    def __init__(self, message: str = "Google Calendar is not connected"):
        super().__init__(SyncErrorKind.UNAUTHORIZED, message)
