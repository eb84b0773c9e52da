from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    WORKER_ERROR = 4
    RUNTIME_ERROR = 5


class ContinuityError(Exception):
    """Base error for sequential iteration."""


class IllegalStateError(ContinuityError):
    """Raised when an item is queued on an iterator that can no longer accept work."""


class WorkerFailure(ContinuityError):
    """
    Rejection raised for a worker that failed with a value that is not an exception.
    The original value is kept on `reason`.
    """

    def __init__(self, reason: Any) -> None:
        super().__init__(str(reason))
        self.reason = reason


class CommandError(WorkerFailure):
    """Raised when a command run for an item exits non-zero or times out."""

    def __init__(self, reason: Any, *, item: Any = None, returncode: Optional[int] = None) -> None:
        super().__init__(reason)
        self.item = item
        self.returncode = returncode


class ConfigError(ContinuityError):
    """Raised for configuration or argument issues."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, WorkerFailure):
        return int(ExitCode.WORKER_ERROR)
    if isinstance(exc, ContinuityError):
        return int(ExitCode.RUNTIME_ERROR)
    return 1
