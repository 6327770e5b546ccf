"""Bridge from sync services to async HTTP calls (calendar and OAuth)."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Coroutine, TypeVar

import anyio

T = TypeVar("T")


def _loop_running_here() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


async def _bounded(awaitable: Awaitable[T], timeout: float | None) -> T:
    if timeout is None:
        return await awaitable
    with anyio.fail_after(timeout):
        return await awaitable


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Run `coro` to completion from sync code and return its result.

    Sync FastAPI endpoints run in AnyIO worker threads, so the coroutine is
    handed back to the app's event loop. Without a worker thread (scripts,
    tests) a private loop is started. Raises TimeoutError after `timeout`
    seconds and RuntimeError when called on a thread that already runs a loop.
    """
    try:
        return anyio.from_thread.run(_bounded, coro, timeout)
    except RuntimeError:
        if _loop_running_here():
            coro.close()
            raise RuntimeError("run_async called from async context; use await instead")
    return anyio.run(_bounded, coro, timeout)
