"""Progress sinks: a Rich progress row for terminals and a structured-log fallback."""

from __future__ import annotations

from threading import Lock

import structlog
from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    filesize,
)
from rich.text import Text

from ..domain import JobRunSnapshot, JobState


def shorten_url(url: str | None, limit: int) -> str:
    if not url:
        return ""
    if len(url) > limit:
        return url[: max(limit - 3, 0)] + "..."
    return url


def describe_phase(snapshot: JobRunSnapshot, limit: int = 60) -> str:
    """Return the short status text shown next to the bar."""

    state = snapshot.state
    if state is JobState.DISCOVERING:
        return f"discovering: {snapshot.discovered_count} found, round {snapshot.discovery_rounds}"
    if state is JobState.PAUSED:
        return "paused"
    if state is JobState.STOPPED:
        return "stopped"
    if state is JobState.COMPLETED:
        return "done"
    if snapshot.current_ref:
        return shorten_url(snapshot.current_ref, limit)
    if snapshot.retry_pass:
        return f"retry pass {snapshot.retry_pass}"
    return "waiting…"


class RateColumn(ProgressColumn):
    """Items per second, formatted as ``X.X item/s``."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        if speed < 1000:
            return Text(f"{speed:.1f} item/s", style="progress.percentage")
        unit, suffix = filesize.pick_unit_and_suffix(
            int(speed),
            ["", "K", "M", "G", "T"],
            1000,
        )
        return Text(f"{speed / unit:.1f}{suffix} item/s", style="progress.percentage")


class RichProgressSink:
    """Render job snapshots as one Rich progress row.

    The row is created on the first active snapshot and torn down on a terminal
    one; a retry pass opens a fresh row. In non-interactive consoles the sink
    silently disables itself.
    """

    def __init__(
        self,
        label: str,
        enabled: bool = True,
        console: Console | None = None,
        max_url_length: int = 60,
    ) -> None:
        self.label = label
        self.enabled = enabled
        self.max_url_length = max_url_length
        self.console = console or Console()
        if self.enabled and not self.console.is_terminal:
            # non-TTY output would repeat the row on every refresh
            self.enabled = False
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._lock = Lock()
        self.last_snapshot: JobRunSnapshot | None = None

    def on_snapshot(self, snapshot: JobRunSnapshot) -> None:
        with self._lock:
            self.last_snapshot = snapshot
            if not self.enabled:
                return
            if snapshot.state.is_terminal:
                self._update(snapshot)
                self._close()
                return
            if snapshot.state is JobState.IDLE:
                return
            if self._progress is None:
                self._open()
            self._update(snapshot)

    def close(self) -> None:
        with self._lock:
            self._close()

    def _open(self) -> None:
        progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[source]:<18}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green", pulse_style="cyan"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("[green]✓{task.fields[success]:>3}", justify="right"),
            TextColumn("[red]✗{task.fields[failed]:>3}", justify="right"),
            TextColumn("[yellow]↺{task.fields[skipped]:>3}", justify="right"),
            TextColumn("[dim]{task.fields[status]}", justify="left"),
            console=self.console,
            transient=True,
            refresh_per_second=12,
            expand=True,
            auto_refresh=True,
        )
        try:
            progress.start()
        except LiveError:
            # another live display already owns this console
            self.enabled = False
            return
        self._progress = progress
        self._task_id = progress.add_task(
            "harvest",
            total=None,
            source=self.label,
            success=0,
            failed=0,
            skipped=0,
            status="waiting…",
        )

    def _update(self, snapshot: JobRunSnapshot) -> None:
        if self._progress is None or self._task_id is None:
            return
        total = None if snapshot.state is JobState.DISCOVERING else snapshot.planned_total
        self._progress.update(
            self._task_id,
            total=total,
            completed=snapshot.processed_count,
            success=snapshot.succeeded_count,
            failed=snapshot.failed_count,
            skipped=snapshot.skipped_count,
            status=describe_phase(snapshot, self.max_url_length),
        )

    def _close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task_id = None


class LoggingProgressSink:
    """Emit snapshots as structured log events; used with ``--quiet`` and in tests."""

    def __init__(self, logger: structlog.BoundLogger | None = None, every: int = 1) -> None:
        self.logger = logger or structlog.get_logger("listing_harvester.progress")
        self.every = max(every, 1)
        self._last_state: JobState | None = None
        self._lock = Lock()

    def on_snapshot(self, snapshot: JobRunSnapshot) -> None:
        with self._lock:
            state_changed = snapshot.state is not self._last_state
            self._last_state = snapshot.state
        if state_changed:
            self.logger.info(
                "job_state",
                source=snapshot.source_name,
                state=snapshot.state.value,
                retry_pass=snapshot.retry_pass,
                **snapshot.summary(),
            )
            return
        if snapshot.state is JobState.PROCESSING and snapshot.processed_count % self.every == 0:
            self.logger.debug(
                "job_progress",
                source=snapshot.source_name,
                processed=snapshot.processed_count,
                total=snapshot.total_to_process,
                current=snapshot.current_ref,
            )


__all__ = [
    "LoggingProgressSink",
    "RateColumn",
    "RichProgressSink",
    "describe_phase",
    "shorten_url",
]
