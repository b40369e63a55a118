"""Live progress display for console runs."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn

from .pipeline import ProgressEvent


class ProgressDisplay:
    """
    Spinner with elapsed time and the running row count, updated in place.

    Use it as a context manager and pass the instance as the exporter's
    ``on_progress`` observer.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self.rows = 0
        self._progress = Progress(
            SpinnerColumn(spinner_name="dots"),
            TimeElapsedColumn(),
            TextColumn("{task.description}"),
            console=self.console,
            transient=False,
        )
        self._task_id: Optional[TaskID] = None

    def __enter__(self) -> "ProgressDisplay":
        self._progress.start()
        self._task_id = self._progress.add_task("Starting export...", total=None)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._progress.stop()

    def __call__(self, event: ProgressEvent) -> None:
        self.rows = event.rows
        self._update(f"Exported {event.rows} rows ({event.rows_per_sec:.0f} rows/s)")

    def finish(self, rows: int) -> None:
        self.rows = rows
        self._update(f"Export completed: {rows} rows")

    def _update(self, description: str) -> None:
        if self._task_id is not None:
            self._progress.update(self._task_id, description=description, completed=self.rows)
