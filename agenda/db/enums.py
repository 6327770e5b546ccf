"""Appointment, sync, and calendar enums."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: pending → confirmed → completed
              ↘ cancelled  ↘ cancelled
    """

    PENDING = "pending"  # Requested, awaiting the owner
    CONFIRMED = "confirmed"  # Accepted by the owner
    CANCELLED = "cancelled"  # Terminal, window released
    COMPLETED = "completed"  # Terminal, meeting took place


class SyncState(str, Enum):
    """Mirror state of an appointment in the external calendar."""

    UNSYNCED = "unsynced"  # No remote event
    SYNCED = "synced"  # Remote event matches local state
    PENDING_PUSH = "pending_push"  # Create/update in flight or interrupted
    PENDING_DELETE = "pending_delete"  # Remote removal in flight or interrupted
    FAILED = "failed"  # Last sync attempt failed, see last_sync_error


class SyncIntent(str, Enum):
    """Remote operation requested by a local change."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncErrorKind(str, Enum):
    """Classification of calendar provider errors (drives retry policy)."""

    UNAUTHORIZED = "unauthorized"  # Token invalid/expired, refresh once
    NOT_FOUND = "not_found"  # Remote event missing, never retried
    RATE_LIMITED = "rate_limited"  # Backoff and retry
    TRANSIENT = "transient"  # Network/API outage, backoff and retry
    PERMANENT = "permanent"  # Rejected request, never retried


# Statuses whose windows participate in conflict checks (everything but cancelled)
RESERVING_STATUSES = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.COMPLETED,
)

DEFAULT_APPOINTMENT_STATUS = AppointmentStatus.PENDING
