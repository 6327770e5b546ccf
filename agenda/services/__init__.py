"""Service layer modules."""

from agenda.services.appointment_service import (
    BookingResult,
    create_appointment,
    delete_appointment,
    force_sync,
    reschedule_appointment,
    transition_status,
    update_appointment_details,
)
from agenda.services.errors import (
    CalendarSyncError,
    ConcurrentModificationError,
    ConflictError,
    InvalidTransitionError,
    PersistenceError,
    SchedulingError,
)
from agenda.services.sync_service import SyncResult, sync_appointment

__all__ = [
    # Appointment service
    "BookingResult",
    "create_appointment",
    "reschedule_appointment",
    "transition_status",
    "update_appointment_details",
    "force_sync",
    "delete_appointment",
    # Sync coordinator
    "SyncResult",
    "sync_appointment",
    # Errors
    "SchedulingError",
    "ConflictError",
    "InvalidTransitionError",
    "PersistenceError",
    "ConcurrentModificationError",
    "CalendarSyncError",
]
