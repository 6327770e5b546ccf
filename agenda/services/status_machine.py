"""Appointment status state machine.

Pure functions: validates lifecycle transitions and returns the side effects
(window release, calendar sync intent) the caller must honor. No I/O here.

Also owns the single status → presentation mapping consumed by every view.
"""

from __future__ import annotations

from dataclasses import dataclass

from agenda.db.enums import AppointmentStatus, SyncIntent, SyncState
from agenda.services.errors import InvalidTransitionError


# =============================================================================
# Transitions
# =============================================================================

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}
    ),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class TransitionPlan:
    """Validated transition plus the side effects it requests."""

    source: AppointmentStatus
    target: AppointmentStatus
    releases_window: bool
    sync_intent: SyncIntent | None


def _coerce(status: AppointmentStatus | str) -> AppointmentStatus:
    try:
        return AppointmentStatus(status)
    except ValueError:
        raise InvalidTransitionError(str(status), str(status))


def is_terminal(status: AppointmentStatus | str) -> bool:
    return not TRANSITIONS[AppointmentStatus(status)]


def is_editable(status: AppointmentStatus | str) -> bool:
    """Date and duration can change only before a terminal status."""
    return not is_terminal(status)


def is_active(status: AppointmentStatus | str) -> bool:
    return AppointmentStatus(status) != AppointmentStatus.CANCELLED


def can_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    try:
        return AppointmentStatus(target) in TRANSITIONS[AppointmentStatus(current)]
    except ValueError:
        return False


def initial_status(created_by_owner: bool = False) -> AppointmentStatus:
    """Owner-created bookings skip the pending step."""
    return AppointmentStatus.CONFIRMED if created_by_owner else AppointmentStatus.PENDING


def plan_transition(
    current: AppointmentStatus | str,
    target: AppointmentStatus | str,
    *,
    sync_state: SyncState | str = SyncState.UNSYNCED,
    has_remote_event: bool = False,
    sync_enabled: bool = False,
) -> TransitionPlan:
    """
    Validate `current -> target` and describe its side effects.

    Raises InvalidTransitionError for any pair not in TRANSITIONS, including
    self-transitions and anything leaving a terminal status.
    """
    source = _coerce(current)
    destination = _coerce(target)
    if destination not in TRANSITIONS[source]:
        raise InvalidTransitionError(source.value, destination.value)

    releases_window = destination == AppointmentStatus.CANCELLED
    intent: SyncIntent | None = None
    if releases_window:
        if has_remote_event:
            intent = SyncIntent.DELETE
    elif SyncState(sync_state) == SyncState.SYNCED or has_remote_event or sync_enabled:
        intent = SyncIntent.UPDATE

    return TransitionPlan(
        source=source,
        target=destination,
        releases_window=releases_window,
        sync_intent=intent,
    )


def creation_intent(sync_enabled: bool) -> SyncIntent | None:
    return SyncIntent.CREATE if sync_enabled else None


def change_intent(
    *,
    sync_state: SyncState | str,
    has_remote_event: bool,
    sync_enabled: bool,
) -> SyncIntent | None:
    """Intent for a reschedule or detail edit of a non-terminal appointment."""
    if SyncState(sync_state) == SyncState.SYNCED or has_remote_event or sync_enabled:
        return SyncIntent.UPDATE
    return None


def next_status(current: AppointmentStatus | str) -> AppointmentStatus:
    """Forward step used by quick-action buttons; terminal statuses stay put."""
    flow = {
        AppointmentStatus.PENDING: AppointmentStatus.CONFIRMED,
        AppointmentStatus.CONFIRMED: AppointmentStatus.COMPLETED,
    }
    status = AppointmentStatus(current)
    return flow.get(status, status)


# =============================================================================
# Presentation
# =============================================================================

@dataclass(frozen=True)
class StatusPresentation:
    status: AppointmentStatus
    label: str
    color_token: str
    icon: str
    sort_priority: int


STATUS_PRESENTATION: dict[AppointmentStatus, StatusPresentation] = {
    AppointmentStatus.PENDING: StatusPresentation(
        AppointmentStatus.PENDING, "Pending", "warning", "hourglass", 1
    ),
    AppointmentStatus.CONFIRMED: StatusPresentation(
        AppointmentStatus.CONFIRMED, "Confirmed", "info", "check", 2
    ),
    AppointmentStatus.COMPLETED: StatusPresentation(
        AppointmentStatus.COMPLETED, "Completed", "success", "party", 3
    ),
    AppointmentStatus.CANCELLED: StatusPresentation(
        AppointmentStatus.CANCELLED, "Cancelled", "danger", "cross", 4
    ),
}

_UNKNOWN_COLOR_TOKEN = "neutral"


def describe_status(status: AppointmentStatus | str) -> StatusPresentation:
    """Label, color token and icon for a status. Raises ValueError for unknown values."""
    try:
        return STATUS_PRESENTATION[AppointmentStatus(status)]
    except ValueError:
        raise ValueError(f"Unknown appointment status: {status}")


def status_color(status: AppointmentStatus | str) -> str:
    try:
        return describe_status(status).color_token
    except ValueError:
        return _UNKNOWN_COLOR_TOKEN
