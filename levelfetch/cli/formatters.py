"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from levelfetch.media.bundler import BundleSummary
from levelfetch.models.manifest import CollectionManifestMeta
from levelfetch.models.task import TaskRecord, TaskStatus
from levelfetch.utils.formatting import format_duration


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the options you passed and `levelfetch --show-config`.",
            "• Run `levelfetch init` to store default settings.",
        ],
        "AuthenticationError": [
            "• The captcha code may be wrong or expired. Request a new one.",
            "• Your connect.sid session may have expired. Log in again.",
        ],
        "ManifestError": [
            "• Make sure every manifest is valid JSON with a `levelIds` list.",
            "• Run `levelfetch collections` to see the manifests that load.",
        ],
        "BundleError": [
            "• The downloaded files are kept in the output directory.",
            "• Retry with `levelfetch bundle <files> -o <output>`.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• The download service might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key in ("connect_sid", "key") and value:
            value = "[hidden]"
        elif hasattr(value, "value"):
            value = value.value
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{escape(str(config_path))}[/dim])",
            border_style="cyan",
        )
    )


def print_collections_table(collections: list[CollectionManifestMeta]):
    """Displays discovered manifests."""
    console = Console()
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("Name", style="bold")
    table.add_column("Levels", justify="right", style="cyan")
    table.add_column("Source")
    table.add_column("Path", style="dim")

    for item in collections:
        source_style = "magenta" if item.source == "overlay" else "green"
        table.add_row(
            escape(item.name),
            str(item.level_count),
            f"[{source_style}]{item.source}[/{source_style}]",
            escape(item.relative_path),
        )

    console.print(table)
    console.print(f"[dim]{len(collections)} manifests[/dim]")


def print_fail_table(record: TaskRecord, limit: int = 50):
    """Lists the levels that failed, with their reasons."""
    if not record.fail_items:
        return
    console = Console()
    table = Table(box=box.SIMPLE_HEAD, title="[bold red]Failed Levels[/bold red]")
    table.add_column("Level", style="bold")
    table.add_column("Reason", style="red")
    for item in record.fail_items[:limit]:
        table.add_row(escape(item.id), escape(item.reason))
    console.print(table)
    if len(record.fail_items) > limit:
        console.print(f"[dim]… and {len(record.fail_items) - limit} more[/dim]")


def print_summary_panel(record: TaskRecord, duration_s: float):
    """Displays the final summary of a download task."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("Levels:", f"{record.processed_ids}/{record.total_ids}")
    stats_table.add_row("✓ Downloaded:", f"[bold green]{record.ok_count}[/bold green]")
    if record.skip_count > 0:
        stats_table.add_row(
            "○ Skipped:", f"[yellow]{record.skip_count} (exists)[/yellow]"
        )
    if record.fail_count > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{record.fail_count}[/bold red]")
    if record.bundle_output_path:
        stats_table.add_row(
            "Bundle:", f"[cyan]{escape(record.bundle_output_path)}[/cyan]"
        )

    stats_table.add_row("", "")
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")
    if record.message:
        stats_table.add_row("Message:", escape(record.message))

    titles = {
        TaskStatus.COMPLETED: ("📦 [bold]Download Complete![/bold]", "green"),
        TaskStatus.CANCELLED: ("⚠️  [bold]Download Cancelled[/bold]", "yellow"),
        TaskStatus.FAILED: ("✗ [bold]Download Failed[/bold]", "red"),
    }
    title, border_color = titles.get(
        record.status, (f"[bold]{record.status.value}[/bold]", "white")
    )

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()


def print_bundle_summary(summary: BundleSummary):
    """Displays the result of a standalone bundling run."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()
    table.add_row("Output:", escape(summary.output_path))
    table.add_row(
        "Sources:", f"{summary.processed_count}/{summary.source_file_count} processed"
    )
    table.add_row("Videos removed:", str(summary.filtered_count))
    table.add_row("Backup:", f"[dim]{escape(summary.backup_dir)}[/dim]")
    console.print(
        Panel(
            table,
            title="[bold green]✓ Bundle Created[/bold green]",
            border_style="green",
            expand=False,
        )
    )
