"""Tests for HTTP and calendar call retry helpers."""

import httpx
import pytest

from agenda.db.enums import SyncErrorKind
from agenda.services.errors import CalendarSyncError
from agenda.services.http_service import backoff_delay, call_with_retries, request_with_retries


@pytest.mark.asyncio
async def test_request_with_retries_retries_on_status():
    req = httpx.Request("POST", "https://example.com")
    responses = [
        httpx.Response(500, request=req),
        httpx.Response(200, json={"ok": True}, request=req),
    ]
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        return responses.pop(0)

    response = await request_with_retries(
        request_fn,
        max_attempts=2,
        base_delay=0,
        max_delay=0,
    )

    assert calls["count"] == 2
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_request_with_retries_raises_after_max_attempts():
    req = httpx.Request("POST", "https://example.com")
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        raise httpx.ConnectError("boom", request=req)

    with pytest.raises(httpx.RequestError):
        await request_with_retries(
            request_fn,
            max_attempts=2,
            base_delay=0,
            max_delay=0,
        )

    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_call_with_retries_retries_transient_then_succeeds():
    calls = {"count": 0}

    async def call_fn():
        calls["count"] += 1
        if calls["count"] < 3:
            raise CalendarSyncError(SyncErrorKind.RATE_LIMITED, "slow down", retry_after=1)
        return "evt-1"

    result = await call_with_retries(call_fn, max_attempts=3, base_delay=0, max_delay=0)

    assert result == "evt-1"
    assert calls["count"] == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind",
    [SyncErrorKind.UNAUTHORIZED, SyncErrorKind.NOT_FOUND, SyncErrorKind.PERMANENT],
)
async def test_call_with_retries_does_not_retry_non_retryable(kind):
    calls = {"count": 0}

    async def call_fn():
        calls["count"] += 1
        raise CalendarSyncError(kind, "nope")

    with pytest.raises(CalendarSyncError) as exc_info:
        await call_with_retries(call_fn, max_attempts=5, base_delay=0, max_delay=0)

    assert exc_info.value.kind == kind
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_call_with_retries_raises_last_error_after_max_attempts():
    calls = {"count": 0}

    async def call_fn():
        calls["count"] += 1
        raise CalendarSyncError(SyncErrorKind.TRANSIENT, f"outage {calls['count']}")

    with pytest.raises(CalendarSyncError, match="outage 2"):
        await call_with_retries(call_fn, max_attempts=2, base_delay=0, max_delay=0)


def test_backoff_delay_is_capped():
    assert backoff_delay(0, 0, 4.0) == 0
    assert 1.0 <= backoff_delay(1, 0.5, 4.0) <= 1.5
    assert backoff_delay(10, 0.5, 4.0) <= 6.0
