from __future__ import annotations

import json
import logging
import shlex
import subprocess
import sys
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional

from .config import ITEM_PLACEHOLDER, RunConfig, dump_config, load_run_config
from .iterator import Continuity
from .logging import LogConfig, get_logger, setup_logging
from .util.errors import CommandError, ConfigError, WorkerFailure, as_exit_code
from .util.rich_progress import RunProgress, render_run_summary_table
from .util.serialization import sanitize_for_json
from .workers import executor_worker

LOG = get_logger(__name__)


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def build_command_argv(template: str, item: str) -> List[str]:
    """
    Split the template shell-style and substitute the item. Without a
    placeholder the item is appended as the last argument.
    """
    parts = shlex.split(template)
    if not parts:
        raise ConfigError("Command template is empty")
    if not any(ITEM_PLACEHOLDER in part for part in parts):
        return parts + [item]
    return [part.replace(ITEM_PLACEHOLDER, item) for part in parts]


def run_command(template: str, item: str, *, timeout: Optional[float] = None) -> Dict[str, Any]:
    argv = build_command_argv(template, item)
    started = perf_counter()
    try:
        proc = subprocess.run(argv, capture_output=True, text=True, timeout=timeout, check=False)
    except subprocess.TimeoutExpired as exc:
        raise CommandError(f"Command timed out after {timeout}s for item {item!r}", item=item) from exc
    except OSError as exc:
        raise CommandError(f"Command could not be started for item {item!r}: {exc}", item=item) from exc
    if proc.returncode != 0:
        raise CommandError(
            f"Command exited with {proc.returncode} for item {item!r}",
            item=item,
            returncode=proc.returncode,
        )
    return {
        "item": item,
        "argv": argv,
        "returncode": proc.returncode,
        "stdout": proc.stdout,
        "duration_ms": int((perf_counter() - started) * 1000),
    }


def _load_items(cfg: RunConfig) -> List[str]:
    items = list(cfg.items)
    if cfg.items_file is not None:
        if not cfg.items_file.exists():
            raise ConfigError(f"Items file not found: {cfg.items_file}")
        lines = cfg.items_file.read_text(encoding="utf-8").splitlines()
        items.extend(line.strip() for line in lines if line.strip())
    return items


def _write_results(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(sanitize_for_json(payload), indent=2, sort_keys=True) + "\n", encoding="utf-8")


def cmd_run(cfg: RunConfig) -> int:
    if not cfg.command:
        raise ConfigError("run requires --command")
    items = _load_items(cfg)
    timers = _StepTimers()
    _log_event(
        LOG,
        logging.INFO,
        "Sequential run started",
        step="run",
        phase="start",
        timers=timers,
        items=len(items),
    )
    LOG.debug("Effective configuration", extra={"config": dump_config(cfg)})

    failure: Optional[WorkerFailure] = None
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="continuity-run") as executor, RunProgress(
        enabled=cfg.progress
    ) as progress:
        progress.start_items(len(items))

        def on_item(result: Dict[str, Any], item: str, _results: List[Dict[str, Any]], count: int) -> None:
            if result["stdout"]:
                sys.stdout.write(result["stdout"])
                sys.stdout.flush()
            progress.advance_items(count, item=item)
            LOG.info(
                "Item completed",
                extra={"step": "item", "phase": "complete", "index": count - 1, "duration_ms": result["duration_ms"]},
            )

        iteration: Continuity[str, Dict[str, Any]] = Continuity(
            items,
            executor_worker(partial(run_command, cfg.command, timeout=cfg.timeout), executor),
        )
        iteration.progress(on_item)
        try:
            iteration.result()
        except WorkerFailure as exc:
            failure = exc
    results = iteration.values

    status = "FAILED" if failure else "OK"
    if cfg.output is not None:
        _write_results(
            cfg.output,
            {
                "status": status,
                "total": len(items),
                "results": results,
                "error": str(failure) if failure else None,
            },
        )
    render_run_summary_table(
        enabled=cfg.progress,
        status=status,
        results=results,
        total=len(items),
        error=str(failure) if failure else None,
    )
    if failure is not None:
        _log_event(
            LOG,
            logging.ERROR,
            "Sequential run failed",
            step="run",
            phase="error",
            timers=timers,
            error=str(failure),
            index=len(results),
        )
        return as_exit_code(failure)
    _log_event(
        LOG,
        logging.INFO,
        "Sequential run complete",
        step="run",
        phase="complete",
        timers=timers,
        completed=len(results),
    )
    return 0


def main() -> None:
    try:
        command, cfg = load_run_config()
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "run":
            code = cmd_run(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
