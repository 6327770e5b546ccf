"""Owner settings router - scheduling configuration."""

from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from agenda.core.deps import get_current_owner_id, get_db
from agenda.schemas.settings import (
    SchedulingSettingsRead,
    SchedulingSettingsUpdate,
)
from agenda.services import settings_service

router = APIRouter()


@router.get("/scheduling", response_model=SchedulingSettingsRead)
def get_scheduling_settings(
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return SchedulingSettingsRead(**asdict(settings_service.get_scheduling_config(db, owner_id)))


@router.patch("/scheduling", response_model=SchedulingSettingsRead)
def update_scheduling_settings(
    data: SchedulingSettingsUpdate,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Update scheduling settings. A new buffer applies to future bookings only."""
    try:
        config = settings_service.update_scheduling_config(
            db, owner_id, **data.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SchedulingSettingsRead(**asdict(config))

