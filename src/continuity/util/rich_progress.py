from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table


class RunProgress:
    """Progress bar for a sequential run, fed from a Continuity progress observer."""

    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._task: Optional[int] = None
        self._started = False
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TextColumn("{task.fields[item]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> RunProgress:
        if self._enabled and self._progress and not self._started:
            self._progress.start()
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._enabled and self._progress and self._started:
            self._progress.stop()
            self._started = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_items(self, total: int) -> None:
        if not self._enabled or not self._progress:
            return
        self._task = self._progress.add_task("Items", total=total, item="")

    def advance_items(self, completed: int, *, item: Any = "") -> None:
        if not self._enabled or not self._progress or self._task is None:
            return
        self._progress.update(self._task, completed=completed, item=str(item))


def render_run_summary_table(
    *,
    enabled: bool,
    status: str,
    results: List[Dict[str, Any]],
    total: int,
    error: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    if not enabled:
        return
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Status", status)
    table.add_row("Items", str(total))
    table.add_row("Completed", str(len(results)))
    table.add_row("Remaining", str(max(total - len(results), 0)))
    if error:
        table.add_row("Error", error)
    (console or Console(stderr=True)).print(table)
