from __future__ import annotations

import asyncio
import inspect
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..logging import get_logger

LOG = get_logger(__name__)

T = TypeVar("T")


def completed_future(value: T) -> Future[T]:
    fut: Future[T] = Future()
    fut.set_result(value)
    return fut


def failed_future(exc: BaseException) -> Future[Any]:
    fut: Future[Any] = Future()
    fut.set_exception(exc)
    return fut


def as_future(value: Any) -> Future[Any]:
    """
    Adopt a worker return value: futures are returned as-is, coroutines and
    other awaitables are scheduled on the background event loop, anything else
    is treated as an already-resolved value.
    """
    if isinstance(value, Future):
        return value
    if inspect.isawaitable(value):
        return get_coroutine_runner().submit(value)
    return completed_future(value)


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


class CoroutineRunner:
    """
    Event loop on a daemon thread for workers written as `async def`.

    Awaitables must not be bound to another event loop.
    """

    def __init__(self, *, name: str = "continuity-loop") -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name=name, daemon=True)
        self._thread.start()

    def submit(self, awaitable: Awaitable[T]) -> Future[T]:
        if not asyncio.iscoroutine(awaitable):
            awaitable = _await(awaitable)
        return asyncio.run_coroutine_threadsafe(awaitable, self._loop)

    def shutdown(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()


class CallbackDispatcher:
    """
    Runs settlement callbacks off the caller's thread, one at a time and in
    submission order.

    Callbacks must not block waiting on other callbacks of the same dispatcher.
    A callback that raises is logged and does not stop the dispatcher.
    """

    def __init__(self, *, name: str = "continuity-callbacks") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

    def submit(self, func: Callable[..., Any], *args: Any) -> Future[None]:
        return self._executor.submit(self._run, func, *args)

    @staticmethod
    def _run(func: Callable[..., Any], *args: Any) -> None:
        try:
            func(*args)
        except Exception:
            LOG.exception(
                "Settlement callback failed",
                extra={"step": "dispatch", "phase": "error", "callback": getattr(func, "__qualname__", repr(func))},
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


_default_dispatcher: Optional[CallbackDispatcher] = None
_default_lock = threading.Lock()


def get_default_dispatcher() -> CallbackDispatcher:
    global _default_dispatcher
    with _default_lock:
        if _default_dispatcher is None:
            _default_dispatcher = CallbackDispatcher()
        return _default_dispatcher


_default_runner: Optional[CoroutineRunner] = None


def get_coroutine_runner() -> CoroutineRunner:
    global _default_runner
    with _default_lock:
        if _default_runner is None:
            _default_runner = CoroutineRunner()
        return _default_runner
