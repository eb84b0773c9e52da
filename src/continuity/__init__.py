from __future__ import annotations

from .iterator import Continuity, IterationState
from .util.concurrency import CallbackDispatcher, completed_future, failed_future
from .util.errors import ContinuityError, IllegalStateError, WorkerFailure
from .workers import callback_worker, executor_worker

__all__ = [
    "CallbackDispatcher",
    "Continuity",
    "ContinuityError",
    "IllegalStateError",
    "IterationState",
    "WorkerFailure",
    "callback_worker",
    "completed_future",
    "executor_worker",
    "failed_future",
]
