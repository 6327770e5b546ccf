"""Tests for the Google Calendar adapter and error classification."""

import json
from datetime import datetime

import httpx
import pytest

from agenda.db.enums import SyncErrorKind
from agenda.services.calendar_service import (
    EventBody,
    GoogleCalendarAdapter,
    RemoteEvent,
    classify_response,
)
from agenda.services.errors import CalendarSyncError

BASE_URL = "https://calendar.test/v3"


def make_body(**overrides) -> EventBody:
    fields = {
        "summary": "Appointment with Ana Rojas",
        "start": datetime(2030, 5, 15, 10, 0),
        "end": datetime(2030, 5, 15, 11, 0),
        "timezone": "America/Santiago",
        "description": "Bring exams",
        "attendee_email": "ana@example.com",
        "location": "Contact: +56 9 1234 5678",
    }
    fields.update(overrides)
    return EventBody(**fields)


def make_adapter(handler) -> GoogleCalendarAdapter:
    return GoogleCalendarAdapter(
        "token-123",
        "primary",
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
    )


# =============================================================================
# Event payload
# =============================================================================

def test_event_payload_uses_wall_clock_and_timezone():
    payload = make_body().to_google()

    assert payload["start"] == {"dateTime": "2030-05-15T10:00:00", "timeZone": "America/Santiago"}
    assert payload["end"]["dateTime"] == "2030-05-15T11:00:00"
    assert payload["attendees"] == [{"email": "ana@example.com"}]
    assert payload["location"] == "Contact: +56 9 1234 5678"
    assert payload["reminders"]["useDefault"] is False
    assert [r["minutes"] for r in payload["reminders"]["overrides"]] == [1440, 60]


def test_event_payload_omits_empty_optional_fields():
    payload = make_body(description=None, attendee_email=None, location=None).to_google()
    assert "description" not in payload
    assert "location" not in payload
    assert payload["attendees"] == []


# =============================================================================
# Adapter calls
# =============================================================================

@pytest.mark.asyncio
async def test_create_event_posts_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = request.url
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "abc", "htmlLink": "https://cal/abc"})

    event = await make_adapter(handler).create_event(make_body())

    assert event == RemoteEvent(id="abc", link="https://cal/abc")
    assert seen["method"] == "POST"
    assert seen["url"].path == "/v3/calendars/primary/events"
    assert seen["url"].params["sendUpdates"] == "all"
    assert seen["auth"] == "Bearer token-123"
    assert seen["body"]["summary"] == "Appointment with Ana Rojas"


@pytest.mark.asyncio
async def test_update_event_puts_to_event_url():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        return httpx.Response(200, json={"id": "abc"})

    event = await make_adapter(handler).update_event("abc", make_body())

    assert event.id == "abc"
    assert event.link is None
    assert seen == {"method": "PUT", "path": "/v3/calendars/primary/events/abc"}


@pytest.mark.asyncio
async def test_delete_event_accepts_no_content():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        return httpx.Response(204)

    assert await make_adapter(handler).delete_event("abc") is None


@pytest.mark.asyncio
async def test_delete_of_gone_event_is_not_found():
    adapter = make_adapter(lambda request: httpx.Response(410))

    with pytest.raises(CalendarSyncError) as exc_info:
        await adapter.delete_event("abc")

    assert exc_info.value.kind == SyncErrorKind.NOT_FOUND
    assert exc_info.value.status_code == 410


@pytest.mark.asyncio
async def test_rate_limit_carries_retry_after():
    adapter = make_adapter(lambda request: httpx.Response(429, headers={"Retry-After": "7"}))

    with pytest.raises(CalendarSyncError) as exc_info:
        await adapter.create_event(make_body())

    assert exc_info.value.kind == SyncErrorKind.RATE_LIMITED
    assert exc_info.value.retry_after == 7.0
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_timeout_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(CalendarSyncError) as exc_info:
        await make_adapter(handler).create_event(make_body())

    assert exc_info.value.kind == SyncErrorKind.TRANSIENT


@pytest.mark.asyncio
async def test_connection_error_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CalendarSyncError) as exc_info:
        await make_adapter(handler).delete_event("abc")

    assert exc_info.value.kind == SyncErrorKind.TRANSIENT


@pytest.mark.asyncio
async def test_unexpected_payload_is_permanent():
    adapter = make_adapter(lambda request: httpx.Response(200, json={"status": "ok"}))

    with pytest.raises(CalendarSyncError) as exc_info:
        await adapter.create_event(make_body())

    assert exc_info.value.kind == SyncErrorKind.PERMANENT


# =============================================================================
# Classification
# =============================================================================

def _rate_limit_403() -> httpx.Response:
    return httpx.Response(
        403, json={"error": {"errors": [{"reason": "rateLimitExceeded"}], "code": 403}}
    )


@pytest.mark.parametrize(
    "response,kind",
    [
        (httpx.Response(401), SyncErrorKind.UNAUTHORIZED),
        (httpx.Response(403, json={"error": {"errors": [{"reason": "forbidden"}]}}), SyncErrorKind.UNAUTHORIZED),
        (_rate_limit_403(), SyncErrorKind.RATE_LIMITED),
        (httpx.Response(429), SyncErrorKind.RATE_LIMITED),
        (httpx.Response(404), SyncErrorKind.NOT_FOUND),
        (httpx.Response(410), SyncErrorKind.NOT_FOUND),
        (httpx.Response(408), SyncErrorKind.TRANSIENT),
        (httpx.Response(500), SyncErrorKind.TRANSIENT),
        (httpx.Response(503), SyncErrorKind.TRANSIENT),
        (httpx.Response(400), SyncErrorKind.PERMANENT),
        (httpx.Response(409), SyncErrorKind.PERMANENT),
    ],
)
def test_classify_response(response, kind):
    assert classify_response(response) == kind


def test_classify_403_without_json_body():
    assert classify_response(httpx.Response(403, text="denied")) == SyncErrorKind.UNAUTHORIZED
