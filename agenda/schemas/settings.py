"""Owner settings, integration and income schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


# =============================================================================
# Scheduling Settings
# =============================================================================

class SchedulingSettingsRead(BaseModel):
    owner_id: UUID
    timezone: str
    default_duration_minutes: int
    buffer_minutes: int
    default_price: int | None
    workday_start_hour: int
    workday_end_hour: int
    contact_phone: str | None
    calendar_sync_enabled: bool
    calendar_id: str
    calendar_connected: bool
    needs_reauth: bool


class SchedulingSettingsUpdate(BaseModel):
    """Only sent fields change."""
    timezone: str | None = Field(None, max_length=50)
    default_duration_minutes: int | None = Field(None, ge=1, le=1440)
    buffer_minutes: int | None = Field(None, ge=0, le=240)
    default_price: int | None = Field(None, ge=0)
    workday_start_hour: int | None = Field(None, ge=0, le=23)
    workday_end_hour: int | None = Field(None, ge=1, le=24)
    contact_phone: str | None = Field(None, max_length=30)
    calendar_sync_enabled: bool | None = None
    calendar_id: str | None = Field(None, max_length=255)


# =============================================================================
# Google Integration
# =============================================================================

class GoogleAuthUrlRead(BaseModel):
    auth_url: str
    state: str


class GoogleCallback(BaseModel):
    code: str = Field(..., min_length=1)
    state: str | None = None


# =============================================================================
# Income
# =============================================================================

class CustomerIncomeRead(BaseModel):
    customer_id: UUID
    customer_name: str
    total: int
    appointments: int


class IncomeSummaryRead(BaseModel):
    date_from: datetime
    date_to: datetime
    total: int
    completed_appointments: int
    pending_appointments: int
    upcoming_appointments: int
    average_per_appointment: float
    by_customer: list[CustomerIncomeRead]
