"""
Sequential iteration over a collection with asynchronous workers.

    it = Continuity([1, 10, -23], lambda v: completed_future(v + 10))
    it.progress(lambda value, original, values, count: print(count, value))
    it.then(print).catch(log_error)

Each item is handed to the worker only after the previous item's future has
settled. Results are collected in input order, progress observers see every
resolution (including ones that happened before they were attached), and
`queue` can append work while the iteration is running or before its outcome
has been consumed.
"""
from __future__ import annotations

import asyncio
import threading
from collections import deque
from concurrent.futures import CancelledError, Future
from enum import Enum
from typing import Any, Callable, Deque, Generator, Generic, Iterable, List, Optional, TypeVar

from .logging import get_logger
from .util.concurrency import CallbackDispatcher, as_future, failed_future, get_default_dispatcher
from .util.errors import IllegalStateError

LOG = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[Any, Any, List[Any], int], None]
ResolveCallback = Callable[[List[Any]], Any]
RejectCallback = Callable[[BaseException], Any]


class IterationState(str, Enum):
    RUNNING = "running"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Continuity(Generic[T, R]):
    """
    Iterates over `collection`, calling `worker(item)` one item at a time.

    The worker returns a concurrent.futures.Future (a plain value counts as
    already resolved, a raised exception as already rejected). Coroutines from
    `async def` workers run on a background event loop. Use
    `continuity.workers.callback_worker` for `fn(item, resolve, reject)` style
    functions.

    State transitions:
      RUNNING  -> RESOLVED  queue drained
      RUNNING  -> REJECTED  a worker failed
      RESOLVED -> RUNNING   queue() before any then/catch/result/await
    """

    def __init__(
        self,
        collection: Iterable[T],
        worker: Callable[[T], Any],
        *,
        dispatcher: Optional[CallbackDispatcher] = None,
    ) -> None:
        self._worker = worker
        self._dispatcher = dispatcher or get_default_dispatcher()
        self._lock = threading.RLock()
        self._originals: List[T] = list(collection)
        self._pending: Deque[T] = deque(self._originals)
        self._values: List[R] = []
        self._observers: List[ProgressCallback] = []
        self._completion: Future[List[R]] = Future()
        self._state = IterationState.RUNNING
        self._consumed = False
        self._reject_handlers = 0
        self._replaying = 0
        self._restart_pending = False
        self._drive()

    # ------------
    # Inspection
    # ------------
    @property
    def state(self) -> IterationState:
        with self._lock:
            return self._state

    @property
    def values(self) -> List[R]:
        """Snapshot of the results resolved so far."""
        with self._lock:
            return list(self._values)

    @property
    def future(self) -> Future[List[R]]:
        """The current completion future. queue() after resolution replaces it."""
        with self._lock:
            return self._completion

    @property
    def finalized(self) -> bool:
        with self._lock:
            return self._is_finalized()

    def done(self) -> bool:
        with self._lock:
            return self._state is not IterationState.RUNNING

    def _is_finalized(self) -> bool:
        if self._state is IterationState.REJECTED:
            return True
        return self._state is IterationState.RESOLVED and self._consumed

    # ------------
    # Chaining
    # ------------
    def then(
        self,
        on_resolve: Optional[ResolveCallback] = None,
        on_reject: Optional[RejectCallback] = None,
    ) -> Continuity[T, R]:
        completion = self._consume(handles_rejection=on_reject is not None)
        completion.add_done_callback(
            lambda fut: self._dispatcher.submit(_settle_callback, fut, on_resolve, on_reject)
        )
        return self

    def catch(self, on_reject: RejectCallback) -> Continuity[T, R]:
        return self.then(None, on_reject)

    def result(self, timeout: Optional[float] = None) -> List[R]:
        """Block until the iteration settles; raise the rejection if it failed."""
        return self._consume(handles_rejection=True).result(timeout)

    def __await__(self) -> Generator[Any, None, List[R]]:
        completion = self._consume(handles_rejection=True)
        return asyncio.wrap_future(completion).__await__()

    def _consume(self, *, handles_rejection: bool) -> Future[List[R]]:
        with self._lock:
            self._consumed = True
            if handles_rejection:
                self._reject_handlers += 1
            return self._completion

    # ------------
    # Progress
    # ------------
    def progress(self, callback: ProgressCallback) -> Continuity[T, R]:
        """
        Register a progress observer.

        The observer is first called synchronously once for every result
        already resolved, then once per future resolution with
        (value, original_value, values_so_far, progress_count).
        """
        with self._lock:
            history = list(self._values)
            self._replaying += 1
            try:
                for index, value in enumerate(history):
                    _notify(callback, value, self._originals[index], history[: index + 1], index + 1)
                self._observers.append(callback)
            finally:
                self._replaying -= 1
            # queue() called from a replayed observer restarts only once the lock is released
            restart = self._restart_pending and self._replaying == 0
            if restart:
                self._restart_pending = False
        if restart:
            self._drive()
        return self

    # ------------
    # Queue
    # ------------
    def queue(self, item: T) -> None:
        """
        Append an item to the iteration.

        Raises IllegalStateError when the iteration was rejected, or when it
        resolved and its outcome was already consumed.
        """
        with self._lock:
            if self._state is IterationState.REJECTED:
                raise IllegalStateError("Iteration rejected, cannot push another value")
            if self._is_finalized():
                raise IllegalStateError("All values resolved, cannot push another value")
            self._originals.append(item)
            self._pending.append(item)
            restart = self._state is IterationState.RESOLVED
            if restart:
                self._completion = Future()
                self._state = IterationState.RUNNING
                LOG.debug(
                    "Iteration restarted by queued item",
                    extra={"step": "iterate", "phase": "restart", "index": len(self._originals) - 1},
                )
                if self._replaying:
                    self._restart_pending = True
                    restart = False
        if restart:
            self._drive()

    # ------------
    # Driving
    # ------------
    def _drive(self) -> None:
        # Loop while workers settle synchronously; hand off to a done callback otherwise.
        while True:
            with self._lock:
                if not self._pending:
                    self._resolve()
                    return
                item = self._pending.popleft()
                index = len(self._values)
            LOG.debug("Processing item", extra={"step": "iterate", "phase": "start", "index": index})
            try:
                outcome = as_future(self._worker(item))
            except Exception as exc:
                outcome = failed_future(exc)
            if not outcome.done():
                outcome.add_done_callback(self._on_item_settled)
                return
            if not self._record(outcome):
                return

    def _on_item_settled(self, outcome: Future[Any]) -> None:
        if self._record(outcome):
            self._drive()

    def _record(self, outcome: Future[Any]) -> bool:
        if outcome.cancelled():
            error: Optional[BaseException] = CancelledError()
        else:
            error = outcome.exception()
        with self._lock:
            if error is not None:
                self._reject(error)
                return False
            value = outcome.result()
            self._values.append(value)
            count = len(self._values)
            LOG.debug("Item resolved", extra={"step": "iterate", "phase": "resolved", "index": count - 1})
            for callback in list(self._observers):
                _notify(callback, value, self._originals[count - 1], list(self._values), count)
        return True

    def _resolve(self) -> None:
        self._state = IterationState.RESOLVED
        LOG.debug(
            "Iteration resolved",
            extra={"step": "iterate", "phase": "settled", "count": len(self._values)},
        )
        self._completion.set_result(list(self._values))

    def _reject(self, error: BaseException) -> None:
        self._state = IterationState.REJECTED
        index = len(self._values)
        if self._reject_handlers == 0:
            LOG.warning(
                "Unhandled rejection: %s",
                error,
                extra={"step": "iterate", "phase": "rejected", "index": index},
            )
        else:
            LOG.debug("Iteration rejected", extra={"step": "iterate", "phase": "rejected", "index": index})
        self._completion.set_exception(error)


def _notify(callback: ProgressCallback, value: Any, original: Any, values: List[Any], count: int) -> None:
    try:
        callback(value, original, values, count)
    except Exception:
        LOG.exception(
            "Progress callback failed",
            extra={"step": "progress", "phase": "error", "index": count - 1},
        )


def _settle_callback(
    completion: Future[List[Any]],
    on_resolve: Optional[ResolveCallback],
    on_reject: Optional[RejectCallback],
) -> None:
    error = completion.exception()
    if error is None:
        if on_resolve is not None:
            on_resolve(list(completion.result()))
    elif on_reject is not None:
        on_reject(error)
