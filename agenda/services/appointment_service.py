"""Appointment service - booking, rescheduling, status changes.

Every write that depends on the owner's existing windows runs under the
per-owner lock (process lock + SELECT ... FOR UPDATE on the owner config
row). Calendar sync happens after the commit with the lock released.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator

from sqlalchemy.orm import Session

from agenda.db.enums import AppointmentStatus, SyncIntent, SyncState
from agenda.db.models import Appointment, Customer, OwnerCalendarConfig
from agenda.services import appointment_store, status_machine, sync_service
from agenda.services.appointment_store import (
    commit,
    list_active_appointments_for_owner,
    reserved_windows,
)
from agenda.services.errors import (
    AppointmentNotEditableError,
    CalendarSyncError,
    ConcurrentModificationError,
    CustomerNotFoundError,
    InvalidAppointmentError,
    PersistenceError,
)
from agenda.services.settings_service import get_or_create_owner_config, to_owner_local
from agenda.services.slot_service import compute_window, reserve
from agenda.services.sync_service import AdapterFactory, SyncResult

logger = logging.getLogger(__name__)


# =============================================================================
# Types
# =============================================================================

@dataclass
class BookingResult:
    """Committed appointment plus the outcome of its calendar sync (if any)."""

    appointment: Appointment
    sync: SyncResult | None = None

    @property
    def sync_warning(self) -> str | None:
        return self.sync.warning if self.sync else None


DETAIL_FIELDS = ("notes", "internal_comment", "public_price", "internal_price")
# Fields mirrored into the remote event description
_REMOTE_DETAIL_FIELDS = ("notes", "internal_comment")


# =============================================================================
# Per-owner Serialization
# =============================================================================

_owner_locks: dict[uuid.UUID, threading.Lock] = {}
_owner_locks_guard = threading.Lock()


def _get_owner_lock(owner_id: uuid.UUID) -> threading.Lock:
    with _owner_locks_guard:
        lock = _owner_locks.get(owner_id)
        if lock is None:
            lock = _owner_locks[owner_id] = threading.Lock()
        return lock


@contextmanager
def owner_lock(db: Session, owner_id: uuid.UUID) -> Iterator[OwnerCalendarConfig]:
    """
    Serialize booking writes for one owner.

    Yields the owner's config row locked FOR UPDATE. Any exception rolls the
    session back, so aborted operations leave nothing behind.
    """
    with _get_owner_lock(owner_id):
        try:
            yield get_or_create_owner_config(db, owner_id, for_update=True)
        except Exception:
            db.rollback()
            raise


# =============================================================================
# Helpers
# =============================================================================

def _validate_price(name: str, value: int | None) -> None:
    if value is not None and value < 0:
        raise InvalidAppointmentError(f"{name} cannot be negative")


def _check_version(appointment: Appointment, expected_version: int | None) -> None:
    if expected_version is not None and appointment.version != expected_version:
        raise ConcurrentModificationError(
            "Appointment was modified concurrently; reload and retry"
        )


def _get_customer(db: Session, owner_id: uuid.UUID, customer_id: uuid.UUID) -> Customer:
    customer = (
        db.query(Customer)
        .filter(Customer.id == customer_id, Customer.owner_id == owner_id)
        .first()
    )
    if not customer:
        raise CustomerNotFoundError(f"Customer {customer_id} not found")
    return customer


def _pending_state(intent: SyncIntent) -> str:
    if intent == SyncIntent.DELETE:
        return SyncState.PENDING_DELETE.value
    return SyncState.PENDING_PUSH.value


def _sync_after_commit(
    db: Session,
    appointment_id: uuid.UUID,
    intent: SyncIntent | None,
    adapter_factory: AdapterFactory | None,
) -> SyncResult | None:
    """Best-effort sync of a committed change. Failures come back as a warning."""
    if intent is None:
        return None
    try:
        return sync_service.sync_appointment(
            db, appointment_id, intent, adapter_factory=adapter_factory
        )
    except PersistenceError as exc:
        db.rollback()
        logger.exception("Could not record calendar sync for appointment %s", appointment_id)
        appointment = appointment_store.get_appointment(db, appointment_id)
        return SyncResult(
            appointment_id=appointment_id,
            intent=intent,
            state=SyncState(appointment.sync_state),
            ok=False,
            external_event_id=appointment.external_event_id,
            error=f"Calendar sync outcome not saved: {exc}",
        )


def _booking_result(
    db: Session, appointment_id: uuid.UUID, sync: SyncResult | None
) -> BookingResult:
    appointment = appointment_store.get_appointment(db, appointment_id)
    db.refresh(appointment)
    return BookingResult(appointment=appointment, sync=sync)


# =============================================================================
# Queries
# =============================================================================

def get_appointment(
    db: Session, appointment_id: uuid.UUID, owner_id: uuid.UUID | None = None
) -> Appointment:
    return appointment_store.get_appointment(db, appointment_id, owner_id)


def list_appointments(
    db: Session,
    owner_id: uuid.UUID,
    *,
    status: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    customer_id: uuid.UUID | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[Appointment]:
    """List an owner's appointments, optionally filtered by status and start range."""
    if status is not None:
        try:
            status = AppointmentStatus(status).value
        except ValueError:
            raise ValueError(f"Unknown appointment status: {status}")
    return appointment_store.list_appointments(
        db,
        owner_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        customer_id=customer_id,
        limit=limit,
        offset=offset,
    )


# =============================================================================
# Booking
# =============================================================================

def create_appointment(
    db: Session,
    owner_id: uuid.UUID,
    customer_id: uuid.UUID,
    start: datetime,
    duration_minutes: int | None = None,
    *,
    notes: str | None = None,
    internal_comment: str | None = None,
    public_price: int | None = None,
    internal_price: int | None = None,
    created_by_owner: bool = False,
    adapter_factory: AdapterFactory | None = None,
) -> BookingResult:
    """
    Book an appointment.

    The owner's current buffer is snapshotted onto the appointment. Raises
    ConflictError (nothing committed) when the window overlaps an active
    appointment of the same owner.
    """
    _validate_price("Public price", public_price)
    _validate_price("Internal price", internal_price)

    with owner_lock(db, owner_id) as config:
        _get_customer(db, owner_id, customer_id)
        start_at = to_owner_local(start, config.timezone)
        duration = duration_minutes if duration_minutes is not None else config.default_duration_minutes
        window = compute_window(start_at, duration, config.buffer_minutes)

        existing = list_active_appointments_for_owner(db, owner_id, window.start, window.end)
        reserve(reserved_windows(existing), start_at, duration, config.buffer_minutes)

        intent = status_machine.creation_intent(config.calendar_sync_enabled)
        appointment = Appointment(
            owner_id=owner_id,
            customer_id=customer_id,
            start_at=window.start,
            duration_minutes=duration,
            buffer_minutes=config.buffer_minutes,
            end_at=window.end,
            status=status_machine.initial_status(created_by_owner).value,
            public_price=public_price,
            internal_price=internal_price,
            notes=notes,
            internal_comment=internal_comment,
            sync_state=_pending_state(intent) if intent else SyncState.UNSYNCED.value,
        )
        appointment_store.save_appointment(db, appointment)
        appointment_id = appointment.id

    logger.info("Appointment %s created owner=%s", appointment_id, owner_id)
    sync = _sync_after_commit(db, appointment_id, intent, adapter_factory)
    return _booking_result(db, appointment_id, sync)


def reschedule_appointment(
    db: Session,
    appointment_id: uuid.UUID,
    new_start: datetime,
    new_duration_minutes: int | None = None,
    *,
    owner_id: uuid.UUID | None = None,
    expected_version: int | None = None,
    adapter_factory: AdapterFactory | None = None,
) -> BookingResult:
    """
    Move an appointment (and optionally change its duration).

    The appointment's own window is ignored in the conflict check. The buffer
    is re-snapshotted from the owner's current settings.
    """
    appointment = appointment_store.get_appointment(db, appointment_id, owner_id)

    with owner_lock(db, appointment.owner_id) as config:
        db.refresh(appointment)
        _check_version(appointment, expected_version)
        if not status_machine.is_editable(appointment.status):
            raise AppointmentNotEditableError(
                f"Cannot reschedule appointment with status {appointment.status}"
            )

        start_at = to_owner_local(new_start, config.timezone)
        duration = (
            new_duration_minutes
            if new_duration_minutes is not None
            else appointment.duration_minutes
        )
        window = compute_window(start_at, duration, config.buffer_minutes)
        existing = list_active_appointments_for_owner(
            db, appointment.owner_id, window.start, window.end
        )
        reserve(
            reserved_windows(existing),
            start_at,
            duration,
            config.buffer_minutes,
            exclude_appointment_id=appointment.id,
        )

        appointment.start_at = window.start
        appointment.duration_minutes = duration
        appointment.buffer_minutes = config.buffer_minutes
        appointment.end_at = window.end

        intent = status_machine.change_intent(
            sync_state=appointment.sync_state,
            has_remote_event=bool(appointment.external_event_id),
            sync_enabled=config.calendar_sync_enabled,
        )
        if intent:
            appointment.sync_state = _pending_state(intent)
        commit(db)

    logger.info("Appointment %s rescheduled", appointment_id)
    sync = _sync_after_commit(db, appointment_id, intent, adapter_factory)
    return _booking_result(db, appointment_id, sync)


def transition_status(
    db: Session,
    appointment_id: uuid.UUID,
    target_status: AppointmentStatus | str,
    *,
    owner_id: uuid.UUID | None = None,
    expected_version: int | None = None,
    adapter_factory: AdapterFactory | None = None,
) -> BookingResult:
    """
    Move an appointment along its lifecycle.

    Raises InvalidTransitionError for illegal pairs. Cancelling releases the
    window and removes the remote event.
    """
    appointment = appointment_store.get_appointment(db, appointment_id, owner_id)

    with owner_lock(db, appointment.owner_id) as config:
        db.refresh(appointment)
        _check_version(appointment, expected_version)
        plan = status_machine.plan_transition(
            appointment.status,
            target_status,
            sync_state=appointment.sync_state,
            has_remote_event=bool(appointment.external_event_id),
            sync_enabled=config.calendar_sync_enabled,
        )
        appointment.status = plan.target.value
        if plan.sync_intent:
            appointment.sync_state = _pending_state(plan.sync_intent)
        elif plan.releases_window and not appointment.external_event_id:
            appointment.sync_state = SyncState.UNSYNCED.value
        commit(db)

    logger.info(
        "Appointment %s status %s -> %s",
        appointment_id,
        plan.source.value,
        plan.target.value,
    )
    sync = _sync_after_commit(db, appointment_id, plan.sync_intent, adapter_factory)
    return _booking_result(db, appointment_id, sync)


def update_appointment_details(
    db: Session,
    appointment_id: uuid.UUID,
    *,
    owner_id: uuid.UUID | None = None,
    expected_version: int | None = None,
    adapter_factory: AdapterFactory | None = None,
    **changes,
) -> BookingResult:
    """
    Edit notes, internal comment and prices.

    Allowed in any status except cancelled (prices of completed appointments
    feed income reports). Only note changes are mirrored remotely.
    """
    unknown = set(changes) - set(DETAIL_FIELDS)
    if unknown:
        raise InvalidAppointmentError(f"Unknown fields: {', '.join(sorted(unknown))}")
    _validate_price("Public price", changes.get("public_price"))
    _validate_price("Internal price", changes.get("internal_price"))

    appointment = appointment_store.get_appointment(db, appointment_id, owner_id)
    with owner_lock(db, appointment.owner_id) as config:
        db.refresh(appointment)
        _check_version(appointment, expected_version)
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise AppointmentNotEditableError("Cancelled appointments cannot be edited")

        remote_changed = False
        for field_name, value in changes.items():
            if getattr(appointment, field_name) != value:
                setattr(appointment, field_name, value)
                remote_changed = remote_changed or field_name in _REMOTE_DETAIL_FIELDS

        intent = None
        if remote_changed:
            intent = status_machine.change_intent(
                sync_state=appointment.sync_state,
                has_remote_event=bool(appointment.external_event_id),
                sync_enabled=config.calendar_sync_enabled,
            )
        if intent:
            appointment.sync_state = _pending_state(intent)
        commit(db)

    sync = _sync_after_commit(db, appointment_id, intent, adapter_factory)
    return _booking_result(db, appointment_id, sync)


def force_sync(
    db: Session,
    appointment_id: uuid.UUID,
    *,
    owner_id: uuid.UUID | None = None,
    adapter_factory: AdapterFactory | None = None,
) -> BookingResult:
    """Re-sync one appointment regardless of its current sync state."""
    sync = sync_service.force_sync(
        db, appointment_id, owner_id, adapter_factory=adapter_factory
    )
    return _booking_result(db, appointment_id, sync)


def delete_appointment(
    db: Session,
    appointment_id: uuid.UUID,
    *,
    owner_id: uuid.UUID | None = None,
    adapter_factory: AdapterFactory | None = None,
) -> None:
    """
    Hard-delete an appointment.

    A mirrored appointment is first removed remotely; if that fails the local
    record is kept and CalendarSyncError is raised.
    """
    appointment = appointment_store.get_appointment(db, appointment_id, owner_id)
    if appointment.external_event_id:
        result = sync_service.sync_appointment(
            db, appointment_id, SyncIntent.DELETE, adapter_factory=adapter_factory
        )
        if not result.ok:
            raise CalendarSyncError(
                result.error_kind,
                f"Could not remove the calendar event: {result.error}",
            )

    with owner_lock(db, appointment.owner_id):
        appointment = appointment_store.get_appointment(db, appointment_id)
        if appointment.external_event_id:
            # Re-mirrored between the remote delete and the lock.
            raise ConcurrentModificationError(
                "Appointment was synced again while deleting; retry"
            )
        db.delete(appointment)
        commit(db)

    logger.info("Appointment %s deleted", appointment_id)
