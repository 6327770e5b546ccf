"""Calendar router - availability, batch sync, status presentation."""

import time
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from agenda.core.deps import get_current_owner_id, get_db
from agenda.db.enums import AppointmentStatus
from agenda.schemas.appointment import (
    AvailableSlotsResponse,
    BatchSyncResponse,
    StatusPresentationRead,
    TimeSlotRead,
)
from agenda.services import availability_service, status_machine, sync_service
from agenda.services.errors import CalendarNotConnectedError
from agenda.services.settings_service import get_scheduling_config

router = APIRouter()


@router.get("/available-slots", response_model=AvailableSlotsResponse)
def available_slots(
    day: date = Query(..., alias="date"),
    duration_minutes: int | None = Query(None, ge=1, le=1440),
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Customer-visible free slots for one day."""
    duration = duration_minutes or get_scheduling_config(db, owner_id).default_duration_minutes
    slots = availability_service.get_available_slots(db, owner_id, day, duration)
    return AvailableSlotsResponse(
        date=day,
        duration_minutes=duration,
        slots=[TimeSlotRead(start=s.start, end=s.end) for s in slots],
    )


@router.post("/sync-all", response_model=BatchSyncResponse)
def sync_all(
    max_seconds: float = Query(60.0, gt=0, le=600),
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Push every out-of-date appointment; stops when the time budget runs out."""
    deadline = time.monotonic() + max_seconds
    try:
        result = sync_service.sync_pending_appointments(
            db, owner_id, should_abort=lambda: time.monotonic() >= deadline
        )
    except CalendarNotConnectedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return BatchSyncResponse(
        processed=result.processed,
        synced=result.synced,
        failed=result.failed,
        aborted=result.aborted,
        errors=result.errors,
    )


@router.get("/statuses", response_model=list[StatusPresentationRead])
def list_statuses():
    """Label, color token, allowed next statuses and quick action for every status."""
    items = []
    for status in AppointmentStatus:
        presentation = status_machine.describe_status(status)
        items.append(
            StatusPresentationRead(
                status=status.value,
                label=presentation.label,
                color_token=presentation.color_token,
                icon=presentation.icon,
                sort_priority=presentation.sort_priority,
                next_statuses=sorted(
                    s.value for s in AppointmentStatus if status_machine.can_transition(status, s)
                ),
                quick_action=(
                    None
                    if status_machine.is_terminal(status)
                    else status_machine.next_status(status).value
                ),
                reserves_window=status_machine.is_active(status),
            )
        )
    return sorted(items, key=lambda i: i.sort_priority)
