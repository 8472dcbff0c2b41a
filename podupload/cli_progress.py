"""Console rendering and progress helpers for podupload CLI."""
from __future__ import annotations

from typing import Any, Dict, Optional
import time

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table

from .models import SessionSnapshot, SessionState


console = Console()


def _echo(message: str) -> None:
    console.print(message)


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def _format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]podupload[/bold green]",
        subtitle="[dim]media asset upload[/dim]",
        border_style="blue",
    )
    console.print(panel)


class SessionProgressDisplay:
    """
    Snapshot-driven progress bar for one upload session.

    Subscribe on_snapshot to the orchestrator; the bar follows the session's
    progress percent and step label and is replaced by a summary line once a
    terminal snapshot arrives.
    """

    def __init__(self, filename: str):
        self.filename = filename
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[filename]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.description}"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )
        self._live: Optional[Live] = None
        self._task_id: Optional[TaskID] = None
        self._last_state: Optional[SessionState] = None
        self._started_at = 0.0
        self.final: Optional[SessionSnapshot] = None

    def start(self) -> None:
        if self._live is not None:
            return
        self._started_at = time.monotonic()
        self._live = Live(
            self._progress,
            console=console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        self._task_id = self._progress.add_task(
            "Starting",
            filename=self.filename[:60],
            total=100,
        )

    def on_snapshot(self, snapshot: SessionSnapshot) -> None:
        if snapshot.state is SessionState.UPLOADING and self._last_state is SessionState.ERROR:
            _echo(f"[yellow]Retrying:[/yellow] {self.filename} (attempt {snapshot.retry_count + 1})")
        self._last_state = snapshot.state

        if snapshot.is_terminal:
            self.complete(snapshot)
            return

        self.start()
        self._progress.update(
            self._task_id,
            completed=snapshot.progress_percent,
            description=snapshot.step_label,
        )

    def complete(self, snapshot: SessionSnapshot) -> None:
        """Stop the bar and print the outcome of snapshot."""
        self.final = snapshot
        if self._live is not None:
            if snapshot.state is SessionState.COMPLETE:
                self._progress.update(self._task_id, completed=100, description=snapshot.step_label)
            self._live.stop()
            self._live = None
            self._task_id = None
            self._progress = Progress(*self._progress.columns, expand=False, console=console)

        elapsed = time.monotonic() - self._started_at if self._started_at else 0.0
        if snapshot.state is SessionState.COMPLETE and snapshot.result is not None:
            result = snapshot.result
            _echo(f"[green]Uploaded:[/green] {self.filename} in {elapsed:.1f}s")
            _echo(f"  url: {result.public_url}")
            _echo(f"  storage: {result.storage_handle}")
            if result.metadata_warning:
                _echo("  [yellow]duration: unavailable[/yellow]")
            else:
                _echo(f"  duration: {_format_duration(result.duration_seconds)}")
            return

        if snapshot.state is SessionState.CANCELLED:
            _echo(f"[yellow]Cancelled:[/yellow] {self.filename}")
            return

        suffix = f" - {snapshot.error.message}" if snapshot.error else ""
        kind = f" ({snapshot.error.kind.value})" if snapshot.error else ""
        _echo(f"[red]Failed{kind}:[/red] {self.filename}{suffix}")
