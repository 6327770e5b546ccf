"""Appointment schemas - Pydantic models for appointments API."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from agenda.db.enums import AppointmentStatus


# =============================================================================
# Requests
# =============================================================================

class AppointmentCreate(BaseModel):
    """Schema for booking an appointment."""
    customer_id: UUID
    start: datetime
    duration_minutes: int | None = Field(None, ge=1, le=1440)
    notes: str | None = Field(None, max_length=5000)
    internal_comment: str | None = Field(None, max_length=5000)
    public_price: int | None = Field(None, ge=0)
    internal_price: int | None = Field(None, ge=0)
    created_by_owner: bool = False


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment."""
    start: datetime
    duration_minutes: int | None = Field(None, ge=1, le=1440)
    version: int | None = None


class AppointmentStatusChange(BaseModel):
    """Schema for a lifecycle transition."""
    status: AppointmentStatus
    version: int | None = None


class AppointmentUpdate(BaseModel):
    """Schema for editing appointment details. Only sent fields change."""
    notes: str | None = Field(None, max_length=5000)
    internal_comment: str | None = Field(None, max_length=5000)
    public_price: int | None = Field(None, ge=0)
    internal_price: int | None = Field(None, ge=0)
    version: int | None = None


# =============================================================================
# Responses
# =============================================================================

class SyncResultRead(BaseModel):
    intent: str | None
    state: str
    ok: bool
    error_kind: str | None = None
    error: str | None = None
    needs_reauth: bool = False


class AppointmentRead(BaseModel):
    """Owner view of an appointment (includes internal fields)."""
    id: UUID
    owner_id: UUID
    customer_id: UUID
    customer_name: str | None = None
    start: datetime
    end: datetime
    reserved_until: datetime
    duration_minutes: int
    buffer_minutes: int
    status: str
    status_label: str
    status_color: str
    public_price: int | None
    internal_price: int | None
    notes: str | None
    internal_comment: str | None
    sync_state: str
    external_event_id: str | None
    external_event_link: str | None
    last_sync_error: str | None
    version: int
    created_at: datetime
    updated_at: datetime


class BookingResponse(BaseModel):
    """Mutation result: the appointment plus any calendar sync warning."""
    appointment: AppointmentRead
    sync: SyncResultRead | None = None
    sync_warning: str | None = None


class AppointmentListResponse(BaseModel):
    items: list[AppointmentRead]
    total: int


# =============================================================================
# Calendar
# =============================================================================

class TimeSlotRead(BaseModel):
    start: datetime
    end: datetime


class AvailableSlotsResponse(BaseModel):
    date: date
    duration_minutes: int
    slots: list[TimeSlotRead]


class StatusPresentationRead(BaseModel):
    status: str
    label: str
    color_token: str
    icon: str
    sort_priority: int
    next_statuses: list[str]
    quick_action: str | None = None
    reserves_window: bool


class BatchSyncResponse(BaseModel):
    processed: int
    synced: int
    failed: int
    aborted: bool
    errors: list[dict]
