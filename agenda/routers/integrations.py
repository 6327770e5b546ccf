"""Google Calendar integration router - OAuth connect/disconnect."""

import logging
from dataclasses import asdict
from uuid import UUID

import httpx
from cryptography.fernet import InvalidToken
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from agenda.core.deps import get_current_owner_id, get_db
from agenda.core.encryption import get_fernet
from agenda.schemas.settings import GoogleAuthUrlRead, GoogleCallback, SchedulingSettingsRead
from agenda.services import oauth_service

logger = logging.getLogger(__name__)

router = APIRouter()

# OAuth state lifetime
STATE_TTL_SECONDS = 600


def _make_state(owner_id: UUID) -> str:
    return get_fernet().encrypt(str(owner_id).encode()).decode()


def _check_state(state: str, owner_id: UUID) -> None:
    try:
        value = get_fernet().decrypt(state.encode(), ttl=STATE_TTL_SECONDS).decode()
    except InvalidToken:
        raise HTTPException(status_code=400, detail="Invalid or expired OAuth state")
    if value != str(owner_id):
        raise HTTPException(status_code=400, detail="OAuth state does not match owner")


@router.get("/google/connect", response_model=GoogleAuthUrlRead)
def google_connect(owner_id: UUID = Depends(get_current_owner_id)):
    """Google consent URL for the calendar.events scope."""
    state = _make_state(owner_id)
    return GoogleAuthUrlRead(auth_url=oauth_service.get_google_auth_url(state), state=state)


@router.post("/google/callback", response_model=SchedulingSettingsRead)
def google_callback(
    data: GoogleCallback,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Exchange the authorization code and enable calendar sync."""
    if data.state:
        _check_state(data.state, owner_id)
    try:
        config = oauth_service.connect_google_calendar(db, owner_id, data.code)
    except httpx.HTTPError as e:
        logger.warning("Google code exchange failed owner=%s: %s", owner_id, e)
        raise HTTPException(status_code=400, detail="Google authorization failed")
    return SchedulingSettingsRead(**asdict(config))


@router.delete("/google", status_code=204)
def google_disconnect(
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Forget stored Google tokens. Existing event links are kept."""
    if not oauth_service.disconnect_google_calendar(db, owner_id):
        raise HTTPException(status_code=404, detail="Google Calendar is not connected")
