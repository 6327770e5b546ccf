"""Customer-facing availability - free slots inside the owner's working hours."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta
from typing import NamedTuple

from sqlalchemy.orm import Session

from agenda.services.appointment_store import (
    list_active_appointments_for_owner,
    reserved_windows,
)
from agenda.services.errors import InvalidAppointmentError
from agenda.services.settings_service import get_scheduling_config, owner_now
from agenda.services.slot_service import OwnerWindowIndex, compute_window


class TimeSlot(NamedTuple):
    """Bookable slot as shown to customers (buffer not included)."""
    start: datetime
    end: datetime


def get_available_slots(
    db: Session,
    owner_id: uuid.UUID,
    day: date,
    duration_minutes: int | None = None,
    *,
    interval_minutes: int = 60,
    now: datetime | None = None,
) -> list[TimeSlot]:
    """
    Free slots for `day` in the owner's local time.

    A slot is offered when its full reserved window (duration + current
    buffer) is free; the buffer may run past the end of the working day but
    the visible part may not. Slots already in the past are skipped.
    """
    if interval_minutes <= 0:
        raise InvalidAppointmentError("Slot interval must be positive")

    config = get_scheduling_config(db, owner_id)
    duration = duration_minutes if duration_minutes is not None else config.default_duration_minutes
    buffer_minutes = config.buffer_minutes
    # Validates duration/buffer before touching the database.
    compute_window(datetime.combine(day, time.min), duration, buffer_minutes)

    day_start = datetime.combine(day, time(hour=config.workday_start_hour))
    day_end = (
        datetime.combine(day + timedelta(days=1), time.min)
        if config.workday_end_hour == 24
        else datetime.combine(day, time(hour=config.workday_end_hour))
    )
    current_now = now or owner_now(config.timezone)

    existing = list_active_appointments_for_owner(
        db, owner_id, day_start, day_end + timedelta(minutes=buffer_minutes)
    )
    index = OwnerWindowIndex(reserved_windows(existing))

    slots: list[TimeSlot] = []
    current = day_start
    step = timedelta(minutes=interval_minutes)
    while current + timedelta(minutes=duration) <= day_end:
        if current >= current_now:
            window = compute_window(current, duration, buffer_minutes)
            if not index.find_conflicts(window.start, window.end):
                slots.append(TimeSlot(start=window.start, end=window.visible_end))
        current += step
    return slots
