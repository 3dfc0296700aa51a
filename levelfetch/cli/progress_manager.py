"""
Renders task events as a Rich live progress display.
"""

import asyncio
import logging

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from levelfetch.models.task import TaskEvent, TaskRecord

log = logging.getLogger("levelfetch")

_EVENT_STYLES = {
    "ok": "green",
    "skip": "yellow",
    "fail": "red",
    "fatal": "bold red",
    "cancelled": "yellow",
    "bundle_start": "cyan",
    "bundle_done": "cyan",
    "bundle_skip": "dim",
}


class ProgressManager:
    """Shows overall level progress and prints one line per task event."""

    def __init__(self, console: Console):
        self.console = console
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=40),
            MofNCompleteColumn(),
            "•",
            TextColumn("[green]{task.fields[ok]} ok[/green]"),
            TextColumn("[yellow]{task.fields[skipped]} skipped[/yellow]"),
            TextColumn("[red]{task.fields[failed]} failed[/red]"),
            "•",
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )
        self._overall_task_id: TaskID | None = None

    def handle_event(self, event: TaskEvent, record: TaskRecord | None) -> None:
        """Prints the event and refreshes counters from the task record."""
        style = _EVENT_STYLES.get(event.event)
        message = escape(event.message)
        if event.event in ("ok", "skip"):
            log.debug(message)
        elif style:
            self.console.print(f"[{style}]{message}[/{style}]")
        else:
            self.console.print(message)

        if record is None or self._overall_task_id is None:
            return
        self.progress.update(
            self._overall_task_id,
            total=record.total_ids or None,
            completed=record.processed_ids,
            ok=record.ok_count,
            skipped=record.skip_count,
            failed=record.fail_count,
        )

    async def __aenter__(self):
        self._overall_task_id = self.progress.add_task(
            "Levels", total=None, ok=0, skipped=0, failed=0
        )
        self.progress.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await asyncio.sleep(0.1)
        self.progress.stop()
