"""Google OAuth service for the calendar integration.

Handles:
- Authorization URL and code exchange
- Encrypted token storage on OwnerCalendarConfig
- Access token refresh through the stored refresh token
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from agenda.core.async_utils import run_async
from agenda.core.config import settings
from agenda.core.encryption import decrypt_token, encrypt_token
from agenda.db.enums import SyncErrorKind
from agenda.db.models import OwnerCalendarConfig
from agenda.services.appointment_store import commit
from agenda.services.errors import CalendarNotConnectedError, CalendarSyncError
from agenda.services.http_service import request_with_retries
from agenda.services.settings_service import (
    SchedulingConfig,
    get_or_create_owner_config,
    get_owner_config,
    to_scheduling_config,
)

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar.events",
]

# Refresh a little before the provider-reported expiry.
EXPIRY_SKEW = timedelta(seconds=60)


def _now_utc() -> datetime:
    """Naive UTC timestamp (token expiry is stored naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _read_token(encrypted: str) -> str:
    """Decrypt a stored token; unreadable credentials mean the owner must reconnect."""
    try:
        return decrypt_token(encrypted)
    except (ValueError, RuntimeError) as exc:
        raise CalendarSyncError(
            SyncErrorKind.UNAUTHORIZED,
            "Stored Google credentials cannot be read; reconnect the calendar",
        ) from exc


def _is_expired(expires_at: datetime | None) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    return expires_at - EXPIRY_SKEW <= _now_utc()


# ============================================================================
# Google OAuth HTTP
# ============================================================================


def get_google_auth_url(state: str, redirect_uri: str | None = None) -> str:
    """Generate the Google OAuth consent URL (offline access for refresh tokens)."""
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": redirect_uri or settings.GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_google_code(code: str, redirect_uri: str | None = None) -> dict[str, Any]:
    """Exchange an authorization code for tokens."""
    async with httpx.AsyncClient(timeout=settings.CALENDAR_REQUEST_TIMEOUT_SECONDS) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri or settings.GOOGLE_REDIRECT_URI,
            },
        )
        response.raise_for_status()
        return response.json()


async def get_google_user_info(access_token: str) -> dict[str, Any]:
    """Get the connected account's profile (email)."""
    async with httpx.AsyncClient(timeout=settings.CALENDAR_REQUEST_TIMEOUT_SECONDS) as client:
        response = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        return response.json()


async def refresh_google_token(refresh_token: str) -> dict[str, Any]:
    """
    Exchange a refresh token for a new access token.

    Raises CalendarSyncError: unauthorized when Google rejects the grant
    (revoked or expired consent), transient for outages.
    """

    async def _post() -> httpx.Response:
        async with httpx.AsyncClient(timeout=settings.CALENDAR_REQUEST_TIMEOUT_SECONDS) as client:
            return await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": settings.GOOGLE_CLIENT_ID,
                    "client_secret": settings.GOOGLE_CLIENT_SECRET,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

    try:
        response = await request_with_retries(
            _post,
            max_attempts=settings.SYNC_MAX_ATTEMPTS,
            base_delay=settings.SYNC_RETRY_BASE_DELAY,
            max_delay=settings.SYNC_RETRY_MAX_DELAY,
        )
    except httpx.RequestError as exc:
        raise CalendarSyncError(SyncErrorKind.TRANSIENT, "Token refresh request failed") from exc

    if response.status_code in (400, 401):
        raise CalendarSyncError(
            SyncErrorKind.UNAUTHORIZED,
            "Google rejected the refresh token; reconnect the calendar",
            status_code=response.status_code,
        )
    if response.status_code != 200:
        raise CalendarSyncError(
            SyncErrorKind.TRANSIENT,
            f"Token refresh failed with HTTP {response.status_code}",
            status_code=response.status_code,
        )
    return response.json()


# ============================================================================
# Token Storage
# ============================================================================


def save_tokens(
    db: Session,
    config: OwnerCalendarConfig,
    access_token: str,
    refresh_token: str | None = None,
    expires_in: int | None = None,
    account_email: str | None = None,
) -> OwnerCalendarConfig:
    """Encrypt and store tokens; clears needs_reauth."""
    config.access_token_encrypted = encrypt_token(access_token)
    if refresh_token:
        config.refresh_token_encrypted = encrypt_token(refresh_token)
    config.token_expires_at = _now_utc() + timedelta(seconds=expires_in) if expires_in else None
    if account_email:
        config.account_email = account_email
    config.needs_reauth = False
    commit(db)
    db.refresh(config)
    return config


def connect_google_calendar(
    db: Session,
    owner_id: uuid.UUID,
    code: str,
    redirect_uri: str | None = None,
) -> SchedulingConfig:
    """Complete the OAuth callback: exchange the code, store tokens, enable sync."""
    tokens = run_async(
        exchange_google_code(code, redirect_uri),
        timeout=settings.CALENDAR_REQUEST_TIMEOUT_SECONDS * 2,
    )
    access_token = tokens["access_token"]
    account_email = None
    try:
        info = run_async(
            get_google_user_info(access_token),
            timeout=settings.CALENDAR_REQUEST_TIMEOUT_SECONDS,
        )
        account_email = info.get("email")
    except (httpx.HTTPError, TimeoutError) as exc:
        logger.warning("Could not load Google account info owner=%s: %s", owner_id, exc)

    config = get_or_create_owner_config(db, owner_id)
    config.calendar_sync_enabled = True
    save_tokens(
        db,
        config,
        access_token=access_token,
        refresh_token=tokens.get("refresh_token"),
        expires_in=tokens.get("expires_in"),
        account_email=account_email,
    )
    logger.info("Google Calendar connected owner=%s", owner_id)
    return to_scheduling_config(owner_id, config)


def disconnect_google_calendar(db: Session, owner_id: uuid.UUID) -> bool:
    """Drop stored tokens and disable sync. Existing external ids are kept."""
    config = get_owner_config(db, owner_id)
    if not config or not config.access_token_encrypted:
        return False
    config.access_token_encrypted = None
    config.refresh_token_encrypted = None
    config.token_expires_at = None
    config.account_email = None
    config.calendar_sync_enabled = False
    config.needs_reauth = False
    commit(db)
    logger.info("Google Calendar disconnected owner=%s", owner_id)
    return True


def mark_needs_reauth(db: Session, owner_id: uuid.UUID) -> None:
    config = get_owner_config(db, owner_id)
    if config and not config.needs_reauth:
        config.needs_reauth = True
        commit(db)
        logger.warning("Google Calendar needs re-authorization owner=%s", owner_id)


# ============================================================================
# Access Tokens
# ============================================================================


def refresh_access_token(db: Session, owner_id: uuid.UUID) -> str:
    """
    Refresh and persist the owner's access token. Returns the new token.

    Raises CalendarNotConnectedError when no refresh token is stored and
    CalendarSyncError when Google refuses or is unreachable.
    """
    config = get_owner_config(db, owner_id)
    if not config or not config.refresh_token_encrypted:
        raise CalendarNotConnectedError("No refresh token stored; reconnect Google Calendar")

    refresh = _read_token(config.refresh_token_encrypted)
    try:
        result = run_async(
            refresh_google_token(refresh),
            timeout=settings.CALENDAR_REQUEST_TIMEOUT_SECONDS * settings.SYNC_MAX_ATTEMPTS
            + settings.SYNC_RETRY_MAX_DELAY * settings.SYNC_MAX_ATTEMPTS,
        )
    except TimeoutError as exc:
        raise CalendarSyncError(SyncErrorKind.TRANSIENT, "Token refresh timed out") from exc

    save_tokens(
        db,
        config,
        access_token=result["access_token"],
        refresh_token=result.get("refresh_token"),
        expires_in=result.get("expires_in"),
    )
    logger.info("Google access token refreshed owner=%s", owner_id)
    return result["access_token"]


def get_access_token(db: Session, owner_id: uuid.UUID) -> str:
    """Decrypted access token, refreshed first when it has expired."""
    config = get_owner_config(db, owner_id)
    if not config or not config.access_token_encrypted:
        raise CalendarNotConnectedError()
    if _is_expired(config.token_expires_at) and config.refresh_token_encrypted:
        return refresh_access_token(db, owner_id)
    return _read_token(config.access_token_encrypted)
