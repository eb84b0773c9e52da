from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Future
from typing import List

import pytest

from continuity.util.concurrency import (
    CallbackDispatcher,
    CoroutineRunner,
    as_future,
    completed_future,
    failed_future,
    get_default_dispatcher,
)


def test_as_future_adopts_futures_and_wraps_values() -> None:
    fut: Future = Future()
    assert as_future(fut) is fut
    wrapped = as_future(5)
    assert wrapped.done()
    assert wrapped.result() == 5


def test_completed_and_failed_futures() -> None:
    assert completed_future("x").result() == "x"
    with pytest.raises(RuntimeError):
        failed_future(RuntimeError("nope")).result()


def test_dispatcher_runs_callbacks_in_submission_order() -> None:
    dispatcher = CallbackDispatcher(name="unit-dispatch")
    seen: List[int] = []
    try:
        futures = [dispatcher.submit(seen.append, i) for i in range(5)]
        futures[-1].result(2)
    finally:
        dispatcher.shutdown()
    assert seen == [0, 1, 2, 3, 4]


def test_dispatcher_logs_failures_and_keeps_running(caplog) -> None:
    caplog.set_level(logging.ERROR, logger="continuity.util.concurrency")
    dispatcher = CallbackDispatcher(name="unit-dispatch")
    seen: List[str] = []

    def explode() -> None:
        raise RuntimeError("callback failed")

    try:
        dispatcher.submit(explode).result(2)
        dispatcher.submit(seen.append, "after").result(2)
    finally:
        dispatcher.shutdown()

    assert seen == ["after"]
    assert any(r.getMessage() == "Settlement callback failed" for r in caplog.records)


def test_default_dispatcher_is_shared() -> None:
    assert get_default_dispatcher() is get_default_dispatcher()


def test_as_future_runs_coroutines_on_background_loop() -> None:
    async def double(value: int) -> int:
        await asyncio.sleep(0)
        return value * 2

    assert as_future(double(4)).result(2) == 8


def test_coroutine_runner_accepts_plain_awaitables() -> None:
    class _Ready:
        def __await__(self):
            yield from asyncio.sleep(0).__await__()
            return "ready"

    runner = CoroutineRunner(name="unit-loop")
    try:
        assert runner.submit(_Ready()).result(2) == "ready"
    finally:
        runner.shutdown()
