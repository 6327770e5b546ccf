"""Owner scheduling settings service."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from agenda.core.config import settings
from agenda.db.models import OwnerCalendarConfig
from agenda.services.appointment_store import commit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulingConfig:
    """Read-only snapshot of an owner's scheduling configuration."""

    owner_id: uuid.UUID
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


EDITABLE_FIELDS = {
    "timezone",
    "default_duration_minutes",
    "buffer_minutes",
    "default_price",
    "workday_start_hour",
    "workday_end_hour",
    "contact_phone",
    "calendar_sync_enabled",
    "calendar_id",
}


def get_owner_config(
    db: Session, owner_id: uuid.UUID, *, for_update: bool = False
) -> OwnerCalendarConfig | None:
    query = db.query(OwnerCalendarConfig).filter(OwnerCalendarConfig.owner_id == owner_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_or_create_owner_config(
    db: Session, owner_id: uuid.UUID, *, for_update: bool = False
) -> OwnerCalendarConfig:
    """Load the owner's config row, creating it from defaults (flushed, not committed)."""
    config = get_owner_config(db, owner_id, for_update=for_update)
    if config:
        return config
    config = OwnerCalendarConfig(
        owner_id=owner_id,
        timezone=settings.DEFAULT_TIMEZONE,
        default_duration_minutes=settings.DEFAULT_DURATION_MINUTES,
        buffer_minutes=settings.DEFAULT_BUFFER_MINUTES,
        workday_start_hour=9,
        workday_end_hour=18,
        calendar_sync_enabled=False,
        calendar_id="primary",
        needs_reauth=False,
    )
    db.add(config)
    db.flush()
    if for_update:
        config = get_owner_config(db, owner_id, for_update=True) or config
    return config


def to_scheduling_config(owner_id: uuid.UUID, config: OwnerCalendarConfig | None) -> SchedulingConfig:
    if config is None:
        return SchedulingConfig(
            owner_id=owner_id,
            timezone=settings.DEFAULT_TIMEZONE,
            default_duration_minutes=settings.DEFAULT_DURATION_MINUTES,
            buffer_minutes=settings.DEFAULT_BUFFER_MINUTES,
            default_price=None,
            workday_start_hour=9,
            workday_end_hour=18,
            contact_phone=None,
            calendar_sync_enabled=False,
            calendar_id="primary",
            calendar_connected=False,
            needs_reauth=False,
        )
    return SchedulingConfig(
        owner_id=config.owner_id,
        timezone=config.timezone,
        default_duration_minutes=config.default_duration_minutes,
        buffer_minutes=config.buffer_minutes,
        default_price=config.default_price,
        workday_start_hour=config.workday_start_hour,
        workday_end_hour=config.workday_end_hour,
        contact_phone=config.contact_phone,
        calendar_sync_enabled=config.calendar_sync_enabled,
        calendar_id=config.calendar_id,
        calendar_connected=bool(config.access_token_encrypted),
        needs_reauth=config.needs_reauth,
    )


def get_scheduling_config(db: Session, owner_id: uuid.UUID) -> SchedulingConfig:
    """Owner configuration, falling back to application defaults. Never writes."""
    return to_scheduling_config(owner_id, get_owner_config(db, owner_id))


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {name}")
    return name


def _validate_changes(config: OwnerCalendarConfig, changes: dict) -> None:
    if changes.get("timezone") is not None:
        validate_timezone(changes["timezone"])
    duration = changes.get("default_duration_minutes", config.default_duration_minutes)
    if duration is None or duration <= 0:
        raise ValueError("Default duration must be positive")
    buffer_minutes = changes.get("buffer_minutes", config.buffer_minutes)
    if buffer_minutes is None or buffer_minutes < 0:
        raise ValueError("Buffer must be zero or more minutes")
    start_hour = changes.get("workday_start_hour", config.workday_start_hour)
    end_hour = changes.get("workday_end_hour", config.workday_end_hour)
    if start_hour is None or end_hour is None or not (0 <= start_hour < end_hour <= 24):
        raise ValueError("Working hours must satisfy 0 <= start < end <= 24")
    price = changes.get("default_price", config.default_price)
    if price is not None and price < 0:
        raise ValueError("Default price cannot be negative")
    if changes.get("calendar_sync_enabled") and not config.access_token_encrypted:
        raise ValueError("Connect Google Calendar before enabling sync")


def update_scheduling_config(
    db: Session, owner_id: uuid.UUID, **changes
) -> SchedulingConfig:
    """
    Apply owner setting changes.

    Unknown keys raise ValueError. A new buffer only affects bookings made or
    rescheduled afterwards; existing appointments keep their snapshot.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

    config = get_or_create_owner_config(db, owner_id, for_update=True)
    try:
        _validate_changes(config, changes)
    except ValueError:
        db.rollback()
        raise

    for field_name, value in changes.items():
        if field_name in {"timezone", "calendar_id"} and value is None:
            continue
        setattr(config, field_name, value)

    commit(db)
    db.refresh(config)
    logger.info("Scheduling settings updated owner=%s fields=%s", owner_id, sorted(changes))
    return to_scheduling_config(owner_id, config)


# =============================================================================
# Owner Local Time
# =============================================================================


def to_owner_local(value: datetime, timezone_name: str) -> datetime:
    """Naive owner-local wall clock for `value`. Naive inputs are taken as already local."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(timezone_name)).replace(tzinfo=None)


def owner_now(timezone_name: str) -> datetime:
    return datetime.now(ZoneInfo(timezone_name)).replace(tzinfo=None)
