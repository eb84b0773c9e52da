"""
Adapters that turn other calling conventions into the canonical worker shape
`worker(item) -> Future`.
"""
from __future__ import annotations

from concurrent.futures import Executor, Future, InvalidStateError
from typing import Any, Callable, TypeVar

from .util.errors import WorkerFailure

T = TypeVar("T")
R = TypeVar("R")

Resolve = Callable[[Any], None]
Reject = Callable[[Any], None]
CallbackStyleFn = Callable[[Any, Resolve, Reject], None]


def _as_exception(reason: Any) -> BaseException:
    if isinstance(reason, BaseException):
        return reason
    return WorkerFailure(reason)


def callback_worker(fn: CallbackStyleFn) -> Callable[[Any], Future[Any]]:
    """
    Wrap a `fn(item, resolve, reject)` function.

    The first of resolve/reject wins; later calls are ignored. Rejection
    reasons that are not exceptions are wrapped in WorkerFailure. An exception
    raised by fn itself rejects the item.
    """

    def worker(item: Any) -> Future[Any]:
        fut: Future[Any] = Future()

        def resolve(value: Any = None) -> None:
            try:
                fut.set_result(value)
            except InvalidStateError:
                return

        def reject(reason: Any = None) -> None:
            try:
                fut.set_exception(_as_exception(reason))
            except InvalidStateError:
                return

        try:
            fn(item, resolve, reject)
        except Exception as exc:
            reject(exc)
        return fut

    return worker


def executor_worker(func: Callable[[T], R], executor: Executor) -> Callable[[T], Future[R]]:
    """Run a blocking func(item) on the given executor."""

    def worker(item: T) -> Future[R]:
        return executor.submit(func, item)

    return worker
