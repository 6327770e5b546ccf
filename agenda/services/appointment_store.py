"""Appointment record store - queries and commits for appointments.

Every commit goes through `commit()` so storage failures surface as
PersistenceError (stale versions as ConcurrentModificationError) and the
session is always rolled back on failure.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from agenda.db.enums import RESERVING_STATUSES, SyncState
from agenda.db.models import Appointment
from agenda.services.errors import (
    AppointmentNotFoundError,
    ConcurrentModificationError,
    PersistenceError,
)
from agenda.services.slot_service import ReservedWindow

logger = logging.getLogger(__name__)


def commit(db: Session) -> None:
    """Commit the session, mapping storage errors. Rolls back on failure."""
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentModificationError(
            "Appointment was modified concurrently; reload and retry"
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database commit failed")
        raise PersistenceError("Could not save changes") from exc


def save_appointment(db: Session, appointment: Appointment) -> Appointment:
    """Persist an appointment (version checked on update) and reload it."""
    db.add(appointment)
    commit(db)
    db.refresh(appointment)
    return appointment


def get_appointment(
    db: Session,
    appointment_id: uuid.UUID,
    owner_id: uuid.UUID | None = None,
) -> Appointment:
    """Load an appointment with its customer. Raises AppointmentNotFoundError."""
    query = (
        db.query(Appointment)
        .options(joinedload(Appointment.customer))
        .filter(Appointment.id == appointment_id)
    )
    if owner_id is not None:
        query = query.filter(Appointment.owner_id == owner_id)
    appointment = query.first()
    if not appointment:
        raise AppointmentNotFoundError(f"Appointment {appointment_id} not found")
    return appointment


def list_active_appointments_for_owner(
    db: Session,
    owner_id: uuid.UUID,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[Appointment]:
    """
    Non-cancelled appointments of an owner whose window touches [date_from, date_to).

    Overlap semantics: a window that starts before `date_from` but ends after
    it is included.
    """
    query = db.query(Appointment).filter(
        Appointment.owner_id == owner_id,
        Appointment.status.in_([s.value for s in RESERVING_STATUSES]),
    )
    if date_from is not None:
        query = query.filter(Appointment.end_at > date_from)
    if date_to is not None:
        query = query.filter(Appointment.start_at < date_to)
    return query.order_by(Appointment.start_at).all()


def reserved_windows(appointments: list[Appointment]) -> list[ReservedWindow]:
    return [ReservedWindow(a.id, a.start_at, a.end_at) for a in appointments]


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
    """List an owner's appointments ordered by start time."""
    query = (
        db.query(Appointment)
        .options(joinedload(Appointment.customer))
        .filter(Appointment.owner_id == owner_id)
    )
    if status:
        query = query.filter(Appointment.status == status)
    if customer_id:
        query = query.filter(Appointment.customer_id == customer_id)
    if date_from is not None:
        query = query.filter(Appointment.start_at >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.start_at < date_to)
    return query.order_by(Appointment.start_at).offset(offset).limit(limit).all()


def list_sync_backlog(
    db: Session,
    owner_id: uuid.UUID,
    *,
    now: datetime,
    limit: int,
) -> list[Appointment]:
    """
    Appointments whose remote mirror is out of date.

    - future, non-cancelled appointments not in SYNCED state
    - any appointment left in PENDING_DELETE (interrupted removal)
    - cancelled appointments still holding a remote event
    """
    active = [s.value for s in RESERVING_STATUSES]
    return (
        db.query(Appointment)
        .filter(
            Appointment.owner_id == owner_id,
            or_(
                and_(
                    Appointment.status.in_(active),
                    Appointment.start_at >= now,
                    Appointment.sync_state != SyncState.SYNCED.value,
                ),
                Appointment.sync_state == SyncState.PENDING_DELETE.value,
                and_(
                    Appointment.status.notin_(active),
                    Appointment.external_event_id.isnot(None),
                ),
            ),
        )
        .order_by(Appointment.start_at)
        .limit(limit)
        .all()
    )
