import asyncio

import anyio
import pytest

from agenda.core.async_utils import run_async


async def _sample() -> str:
    await anyio.sleep(0)
    return "ok"


async def _slow() -> str:
    await anyio.sleep(5)
    return "late"


@pytest.mark.asyncio
async def test_run_async_uses_app_loop_from_worker_thread(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _fail_run(*_args: object, **_kwargs: object) -> None:
        pytest.fail("asyncio.run should not be used in request threads")

    monkeypatch.setattr(asyncio, "run", _fail_run)

    def _call() -> str:
        return run_async(_sample())

    result = await anyio.to_thread.run_sync(_call)
    assert result == "ok"


def test_run_async_without_worker_thread() -> None:
    assert run_async(_sample()) == "ok"


def test_run_async_timeout() -> None:
    with pytest.raises(TimeoutError):
        run_async(_slow(), timeout=0.01)


@pytest.mark.asyncio
async def test_run_async_rejects_running_loop() -> None:
    with pytest.raises(RuntimeError, match="use await instead"):
        run_async(_sample())
