"""Console rendering and progress helpers for the clipcoach CLI."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from .models import AnalysisRecord, AnalysisStatus, ChatMessage, ChatRole, UploadResult
from .utils.events import Notification, UploadProgress

console = Console()

STATUS_COLORS = {
    AnalysisStatus.COMPLETED: "green",
    AnalysisStatus.FAILED: "red",
    AnalysisStatus.PROCESSING: "blue",
    AnalysisStatus.UPLOADING: "blue",
}

STAGE_LABELS = {
    "start": "Preparing",
    "create": "Record created",
    "upload": "Video stored",
    "set_url": "Video linked",
    "trigger": "Analysis requested",
}


def _echo(message: str) -> None:
    console.print(message)


def format_file_size(size: int) -> str:
    """Human readable size: 0 Bytes, 512 Bytes, 1.5 KB, 9.54 MB."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    idx = 0
    while value >= 1024.0 and idx < len(units) - 1:
        value /= 1024.0
        idx += 1
    return f"{round(value, 2):g} {units[idx]}"


def format_duration(seconds: Optional[float]) -> str:
    """m:ss"""
    total = int(seconds or 0)
    mins, secs = divmod(total, 60)
    return f"{mins}:{secs:02d}"


def format_time(timestamp: str) -> str:
    """Render an ISO timestamp as 3:07 PM."""
    try:
        moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return ""
    return moment.astimezone().strftime("%I:%M %p").lstrip("0")


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
        title="[bold green]clipcoach[/bold green]",
        subtitle="[dim]AI video analyzer[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_record(record: AnalysisRecord) -> None:
    """File name with size, duration and status badges."""
    color = STATUS_COLORS.get(record.status, "white")
    badges = [f"[dim]{format_file_size(record.file_size)}[/dim]"]
    if record.duration:
        badges.append(f"[dim]{format_duration(record.duration)}[/dim]")
    badges.append(f"[{color}]{record.status.value.upper()}[/{color}]")
    _echo(f"[bold]{record.file_name}[/bold]  " + "  ".join(badges))


def render_notification(notification: Notification) -> None:
    color = "red" if notification.destructive else "green"
    _echo(f"[{color}]{notification.title}:[/{color}] {notification.description}")


def render_chat_message(message: ChatMessage) -> None:
    if message.role == ChatRole.USER:
        label = "[bold blue]You[/bold blue]"
    else:
        label = "[bold magenta]Coach[/bold magenta]"
    stamp = format_time(message.timestamp)
    _echo(f"{label} [dim]{stamp}[/dim]\n{message.message}\n")


def render_suggestions(questions: Iterable[str]) -> None:
    _echo("[dim]Ask me anything about your video analysis. Suggested questions:[/dim]")
    for idx, question in enumerate(questions, start=1):
        _echo(f"  [cyan]{idx}.[/cyan] {question}")


class UploadProgressDisplay:
    """Percent bar for the upload pipeline."""

    def __init__(self, filename: str):
        self.filename = filename
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[filename]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[stage]}"),
            expand=False,
            console=console,
        )
        self._task_id: Optional[TaskID] = None

    def start(self) -> None:
        if self._task_id is not None:
            return
        self._progress.start()
        self._task_id = self._progress.add_task(
            "upload",
            filename=self.filename[:60],
            stage=STAGE_LABELS["start"],
            total=100,
        )

    def update(self, progress: UploadProgress) -> None:
        if self._task_id is None:
            self.start()
        self._progress.update(
            self._task_id,
            completed=progress.percent,
            stage=STAGE_LABELS.get(progress.stage, progress.stage),
        )

    def complete(self, result: UploadResult) -> None:
        self._progress.stop()
        if result.success:
            _echo(f"[green]Uploaded:[/green] {self.filename}")
            return
        stage = result.stage.value if result.stage else "unknown"
        _echo(f"[red]Failed ({stage}):[/red] {self.filename} - {result.error}")

    def get_callback(self):
        def callback(progress: UploadProgress) -> None:
            self.update(progress)

        return callback


class AnalysisStatusDisplay:
    """Prints status transitions while the analysis is polled."""

    def __init__(self):
        self._last_status: Optional[AnalysisStatus] = None

    def on_update(self, record: AnalysisRecord) -> None:
        if record.status == self._last_status:
            return
        self._last_status = record.status
        if record.status == AnalysisStatus.PROCESSING:
            _echo("[blue]Analyzing your video[/blue] [dim](this usually takes 2-5 minutes)[/dim]")
        else:
            render_record(record)

    def on_settled(self, record: Optional[AnalysisRecord], notification: Notification) -> None:
        if record is not None:
            self._last_status = record.status
            render_record(record)
        render_notification(notification)
