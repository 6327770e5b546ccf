"""Appointments router - owner endpoints for booking and lifecycle management.

Scheduling errors (conflicts, invalid transitions, not found) are mapped to
HTTP responses by the handlers registered in main.py.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from agenda.core.deps import get_current_owner_id, get_db
from agenda.db.models import Appointment
from agenda.schemas.appointment import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentRead,
    AppointmentReschedule,
    AppointmentStatusChange,
    AppointmentUpdate,
    BookingResponse,
    SyncResultRead,
)
from agenda.services import appointment_service
from agenda.services.appointment_service import BookingResult
from agenda.services.status_machine import describe_status, status_color
from agenda.services.sync_service import SyncResult

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def to_appointment_read(appointment: Appointment) -> AppointmentRead:
    """Convert Appointment model to the owner read schema."""
    presentation = describe_status(appointment.status)
    return AppointmentRead(
        id=appointment.id,
        owner_id=appointment.owner_id,
        customer_id=appointment.customer_id,
        customer_name=appointment.customer.name if appointment.customer else None,
        start=appointment.start_at,
        end=appointment.visible_end_at,
        reserved_until=appointment.end_at,
        duration_minutes=appointment.duration_minutes,
        buffer_minutes=appointment.buffer_minutes,
        status=appointment.status,
        status_label=presentation.label,
        status_color=status_color(appointment.status),
        public_price=appointment.public_price,
        internal_price=appointment.internal_price,
        notes=appointment.notes,
        internal_comment=appointment.internal_comment,
        sync_state=appointment.sync_state,
        external_event_id=appointment.external_event_id,
        external_event_link=appointment.external_event_link,
        last_sync_error=appointment.last_sync_error,
        version=appointment.version,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


def to_sync_read(sync: SyncResult | None) -> SyncResultRead | None:
    if sync is None:
        return None
    return SyncResultRead(
        intent=sync.intent.value if sync.intent else None,
        state=sync.state.value,
        ok=sync.ok,
        error_kind=sync.error_kind.value if sync.error_kind else None,
        error=sync.error,
        needs_reauth=sync.needs_reauth,
    )


def to_booking_response(result: BookingResult) -> BookingResponse:
    return BookingResponse(
        appointment=to_appointment_read(result.appointment),
        sync=to_sync_read(result.sync),
        sync_warning=result.sync_warning,
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    status: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    customer_id: UUID | None = Query(None),
    limit: int = Query(200, ge=1, le=500),
    offset: int = Query(0, ge=0),
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """List appointments ordered by start time."""
    try:
        appointments = appointment_service.list_appointments(
            db,
            owner_id,
            status=status,
            date_from=date_from,
            date_to=date_to,
            customer_id=customer_id,
            limit=limit,
            offset=offset,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AppointmentListResponse(
        items=[to_appointment_read(a) for a in appointments],
        total=len(appointments),
    )


@router.post("", response_model=BookingResponse, status_code=201)
def create_appointment(
    data: AppointmentCreate,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Book an appointment. Returns 409 with the conflicting ids on overlap."""
    result = appointment_service.create_appointment(
        db,
        owner_id,
        data.customer_id,
        data.start,
        data.duration_minutes,
        notes=data.notes,
        internal_comment=data.internal_comment,
        public_price=data.public_price,
        internal_price=data.internal_price,
        created_by_owner=data.created_by_owner,
    )
    return to_booking_response(result)


@router.get("/{appointment_id}", response_model=AppointmentRead)
def get_appointment(
    appointment_id: UUID,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Get appointment details."""
    return to_appointment_read(
        appointment_service.get_appointment(db, appointment_id, owner_id)
    )


@router.patch("/{appointment_id}", response_model=BookingResponse)
def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Edit notes, internal comment and prices."""
    changes = data.model_dump(exclude_unset=True, exclude={"version"})
    result = appointment_service.update_appointment_details(
        db,
        appointment_id,
        owner_id=owner_id,
        expected_version=data.version,
        **changes,
    )
    return to_booking_response(result)


@router.post("/{appointment_id}/reschedule", response_model=BookingResponse)
def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Move an appointment to a new time."""
    result = appointment_service.reschedule_appointment(
        db,
        appointment_id,
        data.start,
        data.duration_minutes,
        owner_id=owner_id,
        expected_version=data.version,
    )
    return to_booking_response(result)


@router.post("/{appointment_id}/status", response_model=BookingResponse)
def change_status(
    appointment_id: UUID,
    data: AppointmentStatusChange,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Confirm, cancel or complete an appointment."""
    result = appointment_service.transition_status(
        db,
        appointment_id,
        data.status,
        owner_id=owner_id,
        expected_version=data.version,
    )
    return to_booking_response(result)


@router.post("/{appointment_id}/sync", response_model=BookingResponse)
def sync_appointment(
    appointment_id: UUID,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Force a calendar sync for one appointment."""
    result = appointment_service.force_sync(db, appointment_id, owner_id=owner_id)
    return to_booking_response(result)


@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(
    appointment_id: UUID,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Delete an appointment (its calendar event is removed first)."""
    appointment_service.delete_appointment(db, appointment_id, owner_id=owner_id)
