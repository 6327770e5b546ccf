"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agenda.db.base import Base
from agenda.db.enums import AppointmentStatus, SyncState


class OwnerCalendarConfig(Base):
    """
    Per-owner scheduling settings.

    Read by the slot calculator and the sync coordinator; mutated only
    through owner settings. The row doubles as the per-owner lock target
    for booking writes (SELECT ... FOR UPDATE).
    """

    __tablename__ = "owner_calendar_configs"
    __table_args__ = (
        CheckConstraint("default_duration_minutes > 0", name="ck_default_duration_positive"),
        CheckConstraint("buffer_minutes >= 0", name="ck_buffer_non_negative"),
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(primary_key=True)

    timezone: Mapped[str] = mapped_column(String(50), default="America/Santiago", nullable=False)
    default_duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    buffer_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    default_price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Working hours for the customer-facing slot listing (owner local time)
    workday_start_hour: Mapped[int] = mapped_column(Integer, default=9, nullable=False)
    workday_end_hour: Mapped[int] = mapped_column(Integer, default=18, nullable=False)
    contact_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Google Calendar
    calendar_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calendar_id: Mapped[str] = mapped_column(String(255), default="primary", nullable=False)
    access_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    account_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    needs_reauth: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Customer(Base):
    """Customer of an owner. Referenced, not owned, by appointments."""

    __tablename__ = "customers"
    __table_args__ = (Index("idx_customers_owner", "owner_id"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    appointments: Mapped[list["Appointment"]] = relationship(back_populates="customer")


class Appointment(Base):
    """
    Booked appointment.

    Lifecycle: pending → confirmed → completed, pending/confirmed → cancelled.
    `end_at` is the end of the effective window (duration + buffer) and is the
    value used for conflict detection; the customer-visible end is
    `visible_end_at`.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_owner_start", "owner_id", "start_at"),
        Index("idx_appointments_owner_status", "owner_id", "status"),
        Index("idx_appointments_owner_sync", "owner_id", "sync_state"),
        Index("idx_appointments_customer", "customer_id"),
        CheckConstraint("duration_minutes > 0", name="ck_appointment_duration_positive"),
        CheckConstraint("buffer_minutes >= 0", name="ck_appointment_buffer_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )

    # Scheduling (owner-local wall clock)
    start_at: Mapped[datetime] = mapped_column(nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    buffer_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    end_at: Mapped[datetime] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.PENDING.value, nullable=False
    )

    # Pricing (internal price never leaves owner-only views)
    public_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    internal_price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Notes
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    internal_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    # External calendar mirror
    sync_state: Mapped[str] = mapped_column(
        String(20), default=SyncState.UNSYNCED.value, nullable=False
    )
    external_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_event_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    customer: Mapped["Customer"] = relationship(back_populates="appointments")

    __mapper_args__ = {"version_id_col": version}

    @property
    def visible_end_at(self) -> datetime:
        """End of the customer-visible part of the appointment (no buffer)."""
        return self.start_at + timedelta(minutes=self.duration_minutes)

    def __repr__(self) -> str:
        return f"<Appointment {self.id} {self.start_at} {self.status}>"
