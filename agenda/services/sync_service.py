"""Sync coordinator - mirrors appointments into the owner's Google Calendar.

Runs after the booking commit, outside the per-owner lock. Each sync:

1. marks the appointment PENDING_PUSH / PENDING_DELETE and commits
2. calls the adapter (retrying transient/rate-limited errors, refreshing the
   access token once on unauthorized)
3. records the outcome (SYNCED / UNSYNCED / FAILED) in its own commit

Remote failures never invalidate the booking; they come back as a SyncResult
that callers surface as a warning.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from agenda.core.async_utils import run_async
from agenda.core.config import settings
from agenda.core.structured_logging import build_log_context
from agenda.db.enums import AppointmentStatus, SyncErrorKind, SyncIntent, SyncState
from agenda.db.models import Appointment, OwnerCalendarConfig
from agenda.services import oauth_service
from agenda.services.appointment_store import commit, get_appointment, list_sync_backlog
from agenda.services.calendar_service import (
    CalendarAdapter,
    EventBody,
    GoogleCalendarAdapter,
    RemoteEvent,
)
from agenda.services.errors import (
    CalendarNotConnectedError,
    CalendarSyncError,
    ConcurrentModificationError,
    PersistenceError,
)
from agenda.services.http_service import call_with_retries
from agenda.services.settings_service import get_owner_config, owner_now

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str, str], CalendarAdapter]

DESCRIPTION_SEPARATOR = "\n\n--- Internal comment ---\n"


def default_adapter_factory(access_token: str, calendar_id: str) -> CalendarAdapter:
    return GoogleCalendarAdapter(access_token, calendar_id)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one appointment sync. `ok=False` is a warning, not a booking failure."""

    appointment_id: uuid.UUID
    intent: SyncIntent | None
    state: SyncState
    ok: bool
    external_event_id: str | None = None
    external_event_link: str | None = None
    error_kind: SyncErrorKind | None = None
    error: str | None = None
    needs_reauth: bool = False

    @property
    def warning(self) -> str | None:
        return None if self.ok else self.error


@dataclass
class BatchSyncResult:
    processed: int = 0
    synced: int = 0
    failed: int = 0
    aborted: bool = False
    errors: list[dict] = field(default_factory=list)


# =============================================================================
# Event Body
# =============================================================================


def build_description(notes: str | None, internal_comment: str | None) -> str | None:
    """Customer notes, then the owner's internal comment after a separator."""
    notes = (notes or "").strip()
    comment = (internal_comment or "").strip()
    if notes and comment:
        return f"{notes}{DESCRIPTION_SEPARATOR}{comment}"
    if comment:
        return DESCRIPTION_SEPARATOR.lstrip("\n") + comment
    return notes or None


def build_event_body(
    appointment: Appointment, config: OwnerCalendarConfig | None
) -> EventBody:
    """Remote event for an appointment. The buffer is never part of the event."""
    customer = appointment.customer
    name = customer.name if customer else "customer"
    contact_phone = config.contact_phone if config else None
    return EventBody(
        summary=f"Appointment with {name}",
        start=appointment.start_at,
        end=appointment.visible_end_at,
        timezone=config.timezone if config else settings.DEFAULT_TIMEZONE,
        description=build_description(appointment.notes, appointment.internal_comment),
        attendee_email=customer.email if customer and customer.email else None,
        location=f"Contact: {contact_phone}" if contact_phone else None,
    )


# =============================================================================
# Intent Resolution
# =============================================================================


def resolve_intent(appointment: Appointment, requested: SyncIntent | None) -> SyncIntent:
    """
    Turn a requested intent into the operation that keeps the mirror consistent.

    - no request: infer from status / external id (force sync)
    - cancelled appointments are only ever deleted remotely
    - CREATE with an external id degrades to UPDATE (idempotent)
    - UPDATE without an external id falls back to CREATE
    """
    cancelled = appointment.status == AppointmentStatus.CANCELLED.value
    if requested is None:
        if cancelled or appointment.sync_state == SyncState.PENDING_DELETE.value:
            return SyncIntent.DELETE
        return SyncIntent.UPDATE if appointment.external_event_id else SyncIntent.CREATE
    if requested == SyncIntent.DELETE or cancelled:
        return SyncIntent.DELETE
    if requested == SyncIntent.CREATE and appointment.external_event_id:
        return SyncIntent.UPDATE
    if requested == SyncIntent.UPDATE and not appointment.external_event_id:
        return SyncIntent.CREATE
    return requested


# =============================================================================
# Remote Call
# =============================================================================


def _call_timeout() -> float:
    attempts = max(1, settings.SYNC_MAX_ATTEMPTS)
    return attempts * (settings.CALENDAR_REQUEST_TIMEOUT_SECONDS + settings.SYNC_RETRY_MAX_DELAY)


async def _perform(
    adapter: CalendarAdapter,
    intent: SyncIntent,
    external_id: str | None,
    body: EventBody,
) -> RemoteEvent | None:
    async def _call():
        if intent == SyncIntent.CREATE:
            return await adapter.create_event(body)
        if intent == SyncIntent.UPDATE:
            return await adapter.update_event(external_id, body)
        await adapter.delete_event(external_id)
        return None

    return await call_with_retries(
        _call,
        max_attempts=settings.SYNC_MAX_ATTEMPTS,
        base_delay=settings.SYNC_RETRY_BASE_DELAY,
        max_delay=settings.SYNC_RETRY_MAX_DELAY,
    )


def _run_remote(
    adapter: CalendarAdapter,
    intent: SyncIntent,
    external_id: str | None,
    body: EventBody,
) -> RemoteEvent | None:
    try:
        return run_async(_perform(adapter, intent, external_id, body), timeout=_call_timeout())
    except TimeoutError as exc:
        raise CalendarSyncError(SyncErrorKind.TRANSIENT, "Calendar call timed out") from exc


def _push_with_reauth(
    db: Session,
    owner_id: uuid.UUID,
    config: OwnerCalendarConfig,
    adapter_factory: AdapterFactory,
    intent: SyncIntent,
    external_id: str | None,
    body: EventBody,
) -> RemoteEvent | None:
    """
    Remote call; on unauthorized refresh the token and retry exactly once.

    The first token comes from get_access_token, which refreshes expired
    tokens up front and reports unreadable credentials as unauthorized.
    """
    access_token = oauth_service.get_access_token(db, owner_id)
    calendar_id = config.calendar_id
    try:
        return _run_remote(adapter_factory(access_token, calendar_id), intent, external_id, body)
    except CalendarSyncError as exc:
        if exc.kind != SyncErrorKind.UNAUTHORIZED:
            raise
        logger.info(
            "Calendar access token rejected, refreshing",
            extra=build_log_context(owner_id=str(owner_id), intent=intent.value),
        )

    new_token = oauth_service.refresh_access_token(db, owner_id)
    return _run_remote(adapter_factory(new_token, calendar_id), intent, external_id, body)


# =============================================================================
# Persistence of Outcomes
# =============================================================================


def _now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _apply_success(
    appointment: Appointment, intent: SyncIntent, event: RemoteEvent | None
) -> None:
    if intent == SyncIntent.DELETE:
        appointment.external_event_id = None
        appointment.external_event_link = None
        appointment.sync_state = SyncState.UNSYNCED.value
    else:
        appointment.external_event_id = event.id
        appointment.external_event_link = event.link
        appointment.sync_state = SyncState.SYNCED.value
    appointment.last_sync_error = None
    appointment.last_synced_at = _now_utc()


def _apply_failure(
    appointment: Appointment, intent: SyncIntent, error: CalendarSyncError
) -> None:
    if intent == SyncIntent.UPDATE and error.kind == SyncErrorKind.NOT_FOUND:
        # Event removed on the provider side; next sync re-creates it.
        appointment.external_event_id = None
        appointment.external_event_link = None
    appointment.sync_state = SyncState.FAILED.value
    appointment.last_sync_error = str(error)[:1000]


def _record(
    db: Session,
    appointment_id: uuid.UUID,
    apply: Callable[[Appointment], None],
) -> Appointment:
    """
    Apply an outcome and commit it.

    A concurrent edit during the remote call bumps the version; the outcome
    is re-applied once on a fresh copy so the external id is never lost.
    """
    appointment = get_appointment(db, appointment_id)
    apply(appointment)
    try:
        commit(db)
    except ConcurrentModificationError:
        db.expire_all()
        appointment = get_appointment(db, appointment_id)
        apply(appointment)
        commit(db)
    return appointment


def _result(
    appointment: Appointment,
    intent: SyncIntent | None,
    *,
    error: CalendarSyncError | None = None,
    needs_reauth: bool = False,
) -> SyncResult:
    return SyncResult(
        appointment_id=appointment.id,
        intent=intent,
        state=SyncState(appointment.sync_state),
        ok=error is None,
        external_event_id=appointment.external_event_id,
        external_event_link=appointment.external_event_link,
        error_kind=error.kind if error else None,
        error=str(error) if error else None,
        needs_reauth=needs_reauth,
    )


# =============================================================================
# Coordinator
# =============================================================================


def sync_appointment(
    db: Session,
    appointment_id: uuid.UUID,
    intent: SyncIntent | None = None,
    *,
    adapter_factory: AdapterFactory | None = None,
) -> SyncResult:
    """
    Bring the remote mirror of one appointment in line with local state.

    Must be called after the booking change is committed and without the
    owner lock. Raises PersistenceError if outcomes cannot be stored.
    """
    factory = adapter_factory or default_adapter_factory
    appointment = get_appointment(db, appointment_id)
    owner_id = appointment.owner_id
    resolved = resolve_intent(appointment, intent)
    log_context = build_log_context(
        owner_id=str(owner_id),
        appointment_id=str(appointment_id),
        intent=resolved.value,
    )

    if resolved == SyncIntent.DELETE and not appointment.external_event_id:
        # Nothing mirrored remotely; just clear any in-flight marker.
        if appointment.sync_state != SyncState.UNSYNCED.value:
            appointment = _record(
                db,
                appointment_id,
                lambda a: _apply_success(a, SyncIntent.DELETE, None),
            )
        return _result(appointment, resolved)

    config = get_owner_config(db, owner_id)
    if not config or not config.access_token_encrypted:
        error = CalendarNotConnectedError()
        appointment = _record(db, appointment_id, lambda a: _apply_failure(a, resolved, error))
        logger.info("Calendar sync failed, not connected", extra=log_context)
        return _result(appointment, resolved, error=error)

    body = build_event_body(appointment, config)
    external_id = appointment.external_event_id

    appointment.sync_state = (
        SyncState.PENDING_DELETE.value
        if resolved == SyncIntent.DELETE
        else SyncState.PENDING_PUSH.value
    )
    commit(db)

    try:
        event = _push_with_reauth(db, owner_id, config, factory, resolved, external_id, body)
    except CalendarSyncError as exc:
        if resolved == SyncIntent.DELETE and exc.kind == SyncErrorKind.NOT_FOUND:
            appointment = _record(db, appointment_id, lambda a: _apply_success(a, resolved, None))
            logger.info("Remote event already gone, treated as deleted", extra=log_context)
            return _result(appointment, resolved)

        needs_reauth = exc.kind == SyncErrorKind.UNAUTHORIZED
        if needs_reauth:
            oauth_service.mark_needs_reauth(db, owner_id)
        appointment = _record(db, appointment_id, lambda a: _apply_failure(a, resolved, exc))
        logger.warning(
            "Calendar sync failed: %s",
            exc,
            extra={**log_context, "error_kind": exc.kind.value},
        )
        return _result(appointment, resolved, error=exc, needs_reauth=needs_reauth)

    appointment = _record(db, appointment_id, lambda a: _apply_success(a, resolved, event))
    logger.info("Calendar sync succeeded", extra={**log_context, "sync_state": appointment.sync_state})
    return _result(appointment, resolved)


def force_sync(
    db: Session,
    appointment_id: uuid.UUID,
    owner_id: uuid.UUID | None = None,
    *,
    adapter_factory: AdapterFactory | None = None,
) -> SyncResult:
    """
    Re-sync one appointment now, whatever its state.

    Idempotent: an appointment that already has a remote event is updated in
    place, so repeated calls never create duplicates.
    """
    appointment = get_appointment(db, appointment_id, owner_id)
    return sync_appointment(db, appointment.id, None, adapter_factory=adapter_factory)


def sync_pending_appointments(
    db: Session,
    owner_id: uuid.UUID,
    *,
    should_abort: Callable[[], bool] | None = None,
    limit: int | None = None,
    now: datetime | None = None,
    adapter_factory: AdapterFactory | None = None,
) -> BatchSyncResult:
    """
    Push every future non-synced appointment and finish interrupted deletes.

    Each appointment is committed independently; `should_abort` is checked
    between appointments. Stops early when the owner must re-authorize.
    """
    config = get_owner_config(db, owner_id)
    if not config or not config.access_token_encrypted:
        raise CalendarNotConnectedError()

    current = now or owner_now(config.timezone)
    backlog = list_sync_backlog(
        db, owner_id, now=current, limit=limit or settings.SYNC_BATCH_LIMIT
    )
    appointment_ids = [a.id for a in backlog]
    result = BatchSyncResult()

    for appointment_id in appointment_ids:
        if should_abort and should_abort():
            result.aborted = True
            logger.info("Batch calendar sync aborted owner=%s", owner_id)
            break
        result.processed += 1
        try:
            outcome = sync_appointment(db, appointment_id, adapter_factory=adapter_factory)
        except PersistenceError as exc:
            db.rollback()
            result.failed += 1
            result.errors.append({"appointment_id": str(appointment_id), "error": str(exc)})
            continue

        if outcome.ok:
            result.synced += 1
            continue
        result.failed += 1
        result.errors.append({"appointment_id": str(appointment_id), "error": outcome.error})
        if outcome.needs_reauth:
            break

    logger.info(
        "Batch calendar sync owner=%s processed=%s synced=%s failed=%s",
        owner_id,
        result.processed,
        result.synced,
        result.failed,
    )
    return result
