"""Slot calculator - reserved windows and overlap detection.

Pure functions over already-loaded windows; the caller decides which
appointments are passed in (same owner, not cancelled).

Windows are half-open: [start, end). Back-to-back appointments do not
conflict. The trailing buffer is part of the reserved window but never part
of the customer-visible slot.
"""

from __future__ import annotations

from bisect import bisect_left
from datetime import datetime, timedelta
from typing import Iterable, NamedTuple
from uuid import UUID

from agenda.services.errors import ConflictError, InvalidAppointmentError


# =============================================================================
# Types
# =============================================================================

class TimeWindow(NamedTuple):
    """Effective reserved window (duration + buffer)."""
    start: datetime
    end: datetime
    visible_end: datetime


class ReservedWindow(NamedTuple):
    """Window already held by an appointment."""
    appointment_id: UUID
    start: datetime
    end: datetime


# =============================================================================
# Window Math
# =============================================================================

def compute_window(start: datetime, duration_minutes: int, buffer_minutes: int = 0) -> TimeWindow:
    """Return the reserved window for an appointment starting at `start`."""
    if duration_minutes is None or duration_minutes <= 0:
        raise InvalidAppointmentError("Duration must be a positive number of minutes")
    if buffer_minutes is None or buffer_minutes < 0:
        raise InvalidAppointmentError("Buffer must be zero or more minutes")
    visible_end = start + timedelta(minutes=duration_minutes)
    return TimeWindow(
        start=start,
        end=visible_end + timedelta(minutes=buffer_minutes),
        visible_end=visible_end,
    )


def windows_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open interval overlap."""
    return start_a < end_b and start_b < end_a


# =============================================================================
# Index
# =============================================================================

class OwnerWindowIndex:
    """
    Sorted-by-start index of one owner's reserved windows.

    Lookups are O(log n + k): bisect on starts, then walk left while the
    prefix max end still reaches past the requested start.
    """

    def __init__(self, windows: Iterable[ReservedWindow] = ()):
        self._windows = sorted(windows, key=lambda w: (w.start, w.end))
        self._starts = [w.start for w in self._windows]
        self._max_ends: list[datetime] = []
        running: datetime | None = None
        for window in self._windows:
            running = window.end if running is None or window.end > running else running
            self._max_ends.append(running)

    def __len__(self) -> int:
        return len(self._windows)

    def find_conflicts(
        self,
        start: datetime,
        end: datetime,
        exclude_appointment_id: UUID | None = None,
    ) -> list[UUID]:
        """Ids of windows overlapping [start, end), in start order."""
        conflicts: list[UUID] = []
        # Windows starting at or after `end` cannot overlap.
        i = bisect_left(self._starts, end) - 1
        while i >= 0 and self._max_ends[i] > start:
            window = self._windows[i]
            if window.end > start and window.appointment_id != exclude_appointment_id:
                conflicts.append(window.appointment_id)
            i -= 1
        conflicts.reverse()
        return conflicts


# =============================================================================
# Reservation
# =============================================================================

def reserve(
    existing: Iterable[ReservedWindow] | OwnerWindowIndex,
    start: datetime,
    duration_minutes: int,
    buffer_minutes: int = 0,
    exclude_appointment_id: UUID | None = None,
) -> TimeWindow:
    """
    Compute the window for a booking and check it against `existing`.

    Raises ConflictError with the ids of every overlapping appointment.
    """
    window = compute_window(start, duration_minutes, buffer_minutes)
    index = existing if isinstance(existing, OwnerWindowIndex) else OwnerWindowIndex(existing)
    conflicts = index.find_conflicts(window.start, window.end, exclude_appointment_id)
    if conflicts:
        raise ConflictError(conflicts)
    return window
