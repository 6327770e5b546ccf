"""Tests for the appointment status state machine."""

import pytest

from agenda.db.enums import AppointmentStatus, SyncIntent, SyncState
from agenda.services import status_machine
from agenda.services.errors import InvalidTransitionError

PENDING = AppointmentStatus.PENDING
CONFIRMED = AppointmentStatus.CONFIRMED
CANCELLED = AppointmentStatus.CANCELLED
COMPLETED = AppointmentStatus.COMPLETED


@pytest.mark.parametrize(
    "current,target",
    [
        (PENDING, CONFIRMED),
        (PENDING, CANCELLED),
        (CONFIRMED, CANCELLED),
        (CONFIRMED, COMPLETED),
    ],
)
def test_legal_transitions(current, target):
    plan = status_machine.plan_transition(current, target)
    assert plan.source == current
    assert plan.target == target


@pytest.mark.parametrize("terminal", [CANCELLED, COMPLETED])
@pytest.mark.parametrize("target", list(AppointmentStatus))
def test_terminal_statuses_reject_everything(terminal, target):
    with pytest.raises(InvalidTransitionError) as exc_info:
        status_machine.plan_transition(terminal, target)
    assert exc_info.value.current == terminal.value
    assert exc_info.value.target == target.value


@pytest.mark.parametrize("status", [PENDING, CONFIRMED])
def test_self_transition_is_rejected(status):
    with pytest.raises(InvalidTransitionError):
        status_machine.plan_transition(status, status)


def test_pending_cannot_complete_directly():
    with pytest.raises(InvalidTransitionError, match="pending -> completed"):
        status_machine.plan_transition("pending", "completed")


def test_unknown_status_is_invalid_transition():
    with pytest.raises(InvalidTransitionError):
        status_machine.plan_transition("pending", "archived")


def test_cancel_releases_window_and_deletes_remote_event():
    plan = status_machine.plan_transition(
        CONFIRMED, CANCELLED, sync_state=SyncState.SYNCED, has_remote_event=True
    )
    assert plan.releases_window
    assert plan.sync_intent == SyncIntent.DELETE


def test_cancel_without_remote_event_needs_no_sync():
    plan = status_machine.plan_transition(PENDING, CANCELLED, sync_enabled=True)
    assert plan.releases_window
    assert plan.sync_intent is None


def test_confirm_updates_synced_appointment():
    plan = status_machine.plan_transition(
        PENDING, CONFIRMED, sync_state=SyncState.SYNCED, has_remote_event=True
    )
    assert not plan.releases_window
    assert plan.sync_intent == SyncIntent.UPDATE


def test_confirm_without_sync_has_no_intent():
    plan = status_machine.plan_transition(PENDING, CONFIRMED)
    assert plan.sync_intent is None


def test_creation_intent_follows_sync_setting():
    assert status_machine.creation_intent(True) == SyncIntent.CREATE
    assert status_machine.creation_intent(False) is None


def test_helpers():
    assert status_machine.is_terminal(COMPLETED)
    assert not status_machine.is_terminal(PENDING)
    assert status_machine.is_active(COMPLETED)
    assert not status_machine.is_active(CANCELLED)
    assert status_machine.initial_status() == PENDING
    assert status_machine.initial_status(created_by_owner=True) == CONFIRMED
    assert status_machine.next_status(PENDING) == CONFIRMED
    assert status_machine.next_status(CONFIRMED) == COMPLETED
    assert status_machine.next_status(CANCELLED) == CANCELLED


def test_every_status_has_a_presentation():
    for status in AppointmentStatus:
        presentation = status_machine.describe_status(status)
        assert presentation.label
        assert presentation.color_token
    assert status_machine.describe_status("confirmed").label == "Confirmed"


def test_unknown_status_presentation():
    with pytest.raises(ValueError):
        status_machine.describe_status("archived")
    assert status_machine.status_color("archived") == "neutral"
