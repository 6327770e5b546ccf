"""Calendar service - external calendar adapter (Google Calendar).

Handles:
- Event creation/update/deletion for mirrored appointments
- Classification of provider errors into SyncErrorKind

The adapter makes exactly one HTTP call per operation; retry, token refresh
and persistence belong to the sync coordinator (sync_service).

Note: Requires the calendar.events scope.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import httpx

from agenda.core.config import settings
from agenda.db.enums import SyncErrorKind
from agenda.services.errors import CalendarSyncError

logger = logging.getLogger(__name__)


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class EventBody:
    """Remote event fields derived from an appointment."""
    summary: str
    start: datetime
    end: datetime
    timezone: str
    description: str | None = None
    attendee_email: str | None = None
    location: str | None = None
    reminders_minutes: tuple[int, ...] = field(default=(24 * 60, 60))

    def to_google(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": self.summary,
            "start": {
                "dateTime": self.start.replace(tzinfo=None).isoformat(),
                "timeZone": self.timezone,
            },
            "end": {
                "dateTime": self.end.replace(tzinfo=None).isoformat(),
                "timeZone": self.timezone,
            },
            "attendees": [{"email": self.attendee_email}] if self.attendee_email else [],
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email" if i == 0 else "popup", "minutes": minutes}
                    for i, minutes in enumerate(self.reminders_minutes)
                ],
            },
        }
        if self.description:
            body["description"] = self.description
        if self.location:
            body["location"] = self.location
        return body


@dataclass(frozen=True)
class RemoteEvent:
    """Identity of an event in the external calendar."""
    id: str
    link: str | None = None


class CalendarAdapter(Protocol):
    """Operations the sync coordinator needs from a calendar provider."""

    async def create_event(self, body: EventBody) -> RemoteEvent: ...

    async def update_event(self, external_id: str, body: EventBody) -> RemoteEvent: ...

    async def delete_event(self, external_id: str) -> None: ...


# =============================================================================
# Error Classification
# =============================================================================

_RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded"}


def _error_reasons(response: httpx.Response) -> set[str]:
    try:
        data = response.json()
    except ValueError:
        return set()
    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict):
        return set()
    return {e.get("reason") for e in error.get("errors") or [] if isinstance(e, dict)}


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def classify_response(response: httpx.Response) -> SyncErrorKind:
    """
    Classify a non-2xx Google Calendar response.

    - 401 → unauthorized
    - 403 with a rate limit reason, 429 → rate_limited
    - 403 otherwise → unauthorized (revoked scope / access)
    - 404, 410 → not_found
    - 408, 5xx → transient
    - other 4xx → permanent
    """
    status = response.status_code
    if status == 401:
        return SyncErrorKind.UNAUTHORIZED
    if status == 429:
        return SyncErrorKind.RATE_LIMITED
    if status == 403:
        if _error_reasons(response) & _RATE_LIMIT_REASONS:
            return SyncErrorKind.RATE_LIMITED
        return SyncErrorKind.UNAUTHORIZED
    if status in (404, 410):
        return SyncErrorKind.NOT_FOUND
    if status == 408 or status >= 500:
        return SyncErrorKind.TRANSIENT
    return SyncErrorKind.PERMANENT


def error_from_response(response: httpx.Response, operation: str) -> CalendarSyncError:
    kind = classify_response(response)
    return CalendarSyncError(
        kind,
        f"Google Calendar {operation} failed with HTTP {response.status_code}",
        status_code=response.status_code,
        retry_after=_retry_after(response),
    )


# =============================================================================
# Google Calendar Adapter
# =============================================================================

class GoogleCalendarAdapter:
    """Thin Google Calendar v3 client bound to one access token."""

    def __init__(
        self,
        access_token: str,
        calendar_id: str = "primary",
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.calendar_id = calendar_id
        self.base_url = (base_url or settings.CALENDAR_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.CALENDAR_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    def _events_url(self, event_id: str | None = None) -> str:
        url = f"{self.base_url}/calendars/{self.calendar_id}/events"
        return f"{url}/{event_id}" if event_id else url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _send(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as exc:
            raise CalendarSyncError(
                SyncErrorKind.TRANSIENT, f"Google Calendar {operation} timed out"
            ) from exc
        except httpx.RequestError as exc:
            raise CalendarSyncError(
                SyncErrorKind.TRANSIENT, f"Google Calendar {operation} request failed: {exc}"
            ) from exc

    @staticmethod
    def _to_remote_event(response: httpx.Response, operation: str) -> RemoteEvent:
        try:
            data = response.json()
            return RemoteEvent(id=data["id"], link=data.get("htmlLink"))
        except (ValueError, KeyError, TypeError) as exc:
            raise CalendarSyncError(
                SyncErrorKind.PERMANENT,
                f"Google Calendar {operation} returned an unexpected payload",
                status_code=response.status_code,
            ) from exc

    async def create_event(self, body: EventBody) -> RemoteEvent:
        """Create an event; invitations go out to the attendee."""
        response = await self._send(
            "POST",
            self._events_url(),
            "create",
            json=body.to_google(),
            params={"sendUpdates": "all"},
        )
        if response.status_code not in (200, 201):
            raise error_from_response(response, "create")
        return self._to_remote_event(response, "create")

    async def update_event(self, external_id: str, body: EventBody) -> RemoteEvent:
        """Replace the event body (PUT) so removed fields are cleared remotely."""
        response = await self._send(
            "PUT",
            self._events_url(external_id),
            "update",
            json=body.to_google(),
            params={"sendUpdates": "all"},
        )
        if response.status_code != 200:
            raise error_from_response(response, "update")
        return self._to_remote_event(response, "update")

    async def delete_event(self, external_id: str) -> None:
        """Delete an event. Raises CalendarSyncError(not_found) for 404/410."""
        response = await self._send(
            "DELETE",
            self._events_url(external_id),
            "delete",
            params={"sendUpdates": "all"},
        )
        if response.status_code not in (200, 204):
            raise error_from_response(response, "delete")
