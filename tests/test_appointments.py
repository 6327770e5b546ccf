"""Tests for booking, rescheduling and lifecycle changes (no calendar sync)."""

import random
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from agenda.db.enums import AppointmentStatus, SyncState
from agenda.db.models import Appointment
from agenda.services import appointment_service
from agenda.services.appointment_store import list_active_appointments_for_owner
from agenda.services.errors import (
    AppointmentNotEditableError,
    AppointmentNotFoundError,
    ConcurrentModificationError,
    ConflictError,
    CustomerNotFoundError,
    InvalidAppointmentError,
    InvalidTransitionError,
)
from agenda.services.settings_service import update_scheduling_config


def at(hour: int, minute: int = 0) -> datetime:
    """Owner-local wall clock on a fixed future date."""
    return datetime(2030, 5, 15, hour, minute)


def book(db, config, customer, start, duration=60, **kwargs):
    return appointment_service.create_appointment(
        db, config.owner_id, customer.id, start, duration, **kwargs
    ).appointment


# =============================================================================
# Creation
# =============================================================================

def test_create_appointment_defaults(db, owner, customer):
    result = appointment_service.create_appointment(db, owner.owner_id, customer.id, at(10))
    appointment = result.appointment

    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.duration_minutes == 60
    assert appointment.end_at == at(11)
    assert appointment.sync_state == SyncState.UNSYNCED.value
    assert appointment.version == 1
    assert result.sync is None
    assert result.sync_warning is None


def test_owner_created_booking_is_confirmed(db, owner, customer):
    appointment = book(db, owner, customer, at(10), created_by_owner=True)
    assert appointment.status == AppointmentStatus.CONFIRMED.value


def test_overlap_scenario_ten_ten_thirty_eleven(db, owner, customer):
    first = book(db, owner, customer, at(10))

    with pytest.raises(ConflictError) as exc_info:
        book(db, owner, customer, at(10, 30))
    assert exc_info.value.conflicting_ids == [first.id]

    third = book(db, owner, customer, at(11))
    assert third.start_at == at(11)
    assert db.query(Appointment).count() == 2


def test_buffer_scenario(db, customer, owner):
    update_scheduling_config(db, owner.owner_id, buffer_minutes=15)

    first = book(db, owner, customer, at(10))
    assert first.buffer_minutes == 15
    assert first.end_at == at(11, 15)
    assert first.visible_end_at == at(11)

    with pytest.raises(ConflictError):
        book(db, owner, customer, at(11))
    assert book(db, owner, customer, at(11, 15)).start_at == at(11, 15)


def test_buffer_change_only_affects_new_bookings(db, owner, customer):
    first = book(db, owner, customer, at(10))
    update_scheduling_config(db, owner.owner_id, buffer_minutes=30)

    db.refresh(first)
    assert first.buffer_minutes == 0
    assert first.end_at == at(11)
    assert book(db, owner, customer, at(11)).end_at == at(12, 30)


def test_other_owners_do_not_conflict(db, owner, customer, owner_factory, customer_factory):
    other = owner_factory()
    other_customer = customer_factory(other.owner_id)
    book(db, owner, customer, at(10))
    assert book(db, other, other_customer, at(10)).start_at == at(10)


def test_cancelled_window_is_released(db, owner, customer):
    first = book(db, owner, customer, at(10))
    appointment_service.transition_status(db, first.id, AppointmentStatus.CANCELLED)
    assert book(db, owner, customer, at(10)).start_at == at(10)


def test_completed_window_still_reserved(db, owner, customer):
    first = book(db, owner, customer, at(10), created_by_owner=True)
    appointment_service.transition_status(db, first.id, "completed")
    with pytest.raises(ConflictError):
        book(db, owner, customer, at(10, 30))


def test_customer_of_other_owner_is_rejected(db, owner, owner_factory, customer_factory):
    other = owner_factory()
    stranger = customer_factory(other.owner_id)
    with pytest.raises(CustomerNotFoundError):
        appointment_service.create_appointment(db, owner.owner_id, stranger.id, at(10))


def test_invalid_duration_and_price(db, owner, customer):
    with pytest.raises(InvalidAppointmentError):
        book(db, owner, customer, at(10), duration=0)
    with pytest.raises(InvalidAppointmentError):
        book(db, owner, customer, at(10), public_price=-1)
    assert db.query(Appointment).count() == 0


def test_aware_start_is_converted_to_owner_local(db, customer, owner):
    update_scheduling_config(db, owner.owner_id, timezone="Etc/GMT+4")  # UTC-4
    start = datetime(2030, 5, 15, 14, 0, tzinfo=timezone.utc)
    appointment = book(db, owner, customer, start)
    assert appointment.start_at == at(10)


# =============================================================================
# Rescheduling
# =============================================================================

def test_reschedule_ignores_own_window(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    result = appointment_service.reschedule_appointment(db, appointment.id, at(10, 30))
    assert result.appointment.start_at == at(10, 30)
    assert result.appointment.end_at == at(11, 30)
    assert result.appointment.version == 2


def test_reschedule_into_conflict_keeps_original(db, owner, customer):
    first = book(db, owner, customer, at(10))
    second = book(db, owner, customer, at(12))

    with pytest.raises(ConflictError) as exc_info:
        appointment_service.reschedule_appointment(db, second.id, at(10, 30))
    assert exc_info.value.conflicting_ids == [first.id]

    db.expire_all()
    assert appointment_service.get_appointment(db, second.id).start_at == at(12)


def test_reschedule_changes_duration(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    result = appointment_service.reschedule_appointment(db, appointment.id, at(10), 90)
    assert result.appointment.duration_minutes == 90
    assert result.appointment.end_at == at(11, 30)


def test_reschedule_terminal_appointment_fails(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    appointment_service.transition_status(db, appointment.id, "cancelled")
    with pytest.raises(AppointmentNotEditableError):
        appointment_service.reschedule_appointment(db, appointment.id, at(14))


def test_stale_version_is_rejected(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    appointment_service.reschedule_appointment(db, appointment.id, at(11))
    with pytest.raises(ConcurrentModificationError):
        appointment_service.reschedule_appointment(
            db, appointment.id, at(12), expected_version=1
        )


def test_random_sequences_never_overlap(db, owner, customer):
    rng = random.Random(1234)
    ids: list[uuid.UUID] = []
    for _ in range(60):
        start = at(8) + timedelta(minutes=15 * rng.randrange(0, 40))
        duration = rng.choice([15, 30, 45, 60, 90])
        try:
            if ids and rng.random() < 0.4:
                appointment_service.reschedule_appointment(
                    db, rng.choice(ids), start, duration
                )
            else:
                ids.append(book(db, owner, customer, start, duration).id)
        except ConflictError:
            pass

    active = list_active_appointments_for_owner(db, owner.owner_id)
    for i, a in enumerate(active):
        for b in active[i + 1:]:
            assert not (a.start_at < b.end_at and b.start_at < a.end_at)


# =============================================================================
# Status and details
# =============================================================================

def test_round_trip_without_sync(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    appointment_service.reschedule_appointment(db, appointment.id, at(15))
    appointment_service.transition_status(db, appointment.id, "confirmed")
    result = appointment_service.transition_status(db, appointment.id, "completed")
    assert result.appointment.status == AppointmentStatus.COMPLETED.value
    assert result.appointment.start_at == at(15)


def test_invalid_transition_leaves_status(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    with pytest.raises(InvalidTransitionError):
        appointment_service.transition_status(db, appointment.id, "completed")
    db.expire_all()
    assert appointment_service.get_appointment(db, appointment.id).status == "pending"


def test_update_details(db, owner, customer):
    appointment = book(db, owner, customer, at(10), created_by_owner=True)
    appointment_service.transition_status(db, appointment.id, "completed")
    result = appointment_service.update_appointment_details(
        db, appointment.id, internal_price=45000, notes="Bring results"
    )
    assert result.appointment.internal_price == 45000
    assert result.appointment.notes == "Bring results"


def test_update_details_rejects_unknown_fields(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    with pytest.raises(InvalidAppointmentError):
        appointment_service.update_appointment_details(db, appointment.id, start_at=at(9))


def test_list_appointments_filters(db, owner, customer):
    first = book(db, owner, customer, at(10))
    book(db, owner, customer, at(12))
    appointment_service.transition_status(db, first.id, "confirmed")

    confirmed = appointment_service.list_appointments(db, owner.owner_id, status="confirmed")
    assert [a.id for a in confirmed] == [first.id]
    assert len(appointment_service.list_appointments(db, owner.owner_id)) == 2
    with pytest.raises(ValueError):
        appointment_service.list_appointments(db, owner.owner_id, status="archived")


def test_delete_unsynced_appointment(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    appointment_service.delete_appointment(db, appointment.id)
    with pytest.raises(AppointmentNotFoundError):
        appointment_service.get_appointment(db, appointment.id)


def test_get_appointment_scoped_to_owner(db, owner, customer):
    appointment = book(db, owner, customer, at(10))
    with pytest.raises(AppointmentNotFoundError):
        appointment_service.get_appointment(db, appointment.id, uuid.uuid4())
