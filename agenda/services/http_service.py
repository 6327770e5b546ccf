"""HTTP helpers with retry/backoff for calendar integrations."""

from __future__ import annotations

import logging
import random
from typing import Awaitable, Callable, TypeVar

import anyio
import httpx

from agenda.services.errors import CalendarSyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff with up to 50% jitter."""
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay = delay + random.uniform(0, delay / 2)
    return delay


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
) -> httpx.Response:
    """Execute an HTTP request with exponential backoff retries."""
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES

    for attempt in range(max_attempts):
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if attempt >= max_attempts - 1:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning("HTTP request failed, retrying", exc_info=exc)
            if delay:
                await anyio.sleep(delay)
            continue

        if response.status_code in statuses and attempt < max_attempts - 1:
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "HTTP request returned %s, retrying", response.status_code
            )
            if delay:
                await anyio.sleep(delay)
            continue

        return response

    return response


async def call_with_retries(
    call_fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
) -> T:
    """
    Run a calendar adapter call, retrying rate-limited and transient failures.

    Other CalendarSyncError kinds (unauthorized, not_found, permanent) are
    raised on the first occurrence. A provider Retry-After hint is honored
    when it is longer than the computed backoff, capped at max_delay.
    """
    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        try:
            return await call_fn()
        except CalendarSyncError as exc:
            if not exc.retryable or attempt >= attempts - 1:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            if exc.retry_after and base_delay:
                delay = min(max_delay, max(delay, exc.retry_after))
            logger.warning(
                "Calendar call failed kind=%s attempt=%s/%s, retrying",
                exc.kind.value,
                attempt + 1,
                attempts,
            )
            if delay:
                await anyio.sleep(delay)
    raise RuntimeError("unreachable")
