"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import signal
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from levelfetch import __version__
from levelfetch.core.service import TaskService
from levelfetch.exceptions import ConfigurationError, LevelFetchError
from levelfetch.media.bundler import build_bundle
from levelfetch.models.config import AppSettings
from levelfetch.models.manifest import MANIFEST_FILENAME
from levelfetch.models.request import TaskRequest
from levelfetch.models.task import TaskStatus
from levelfetch.storage.config_manager import ConfigManager
from levelfetch.storage.history import save_task_record

from .formatters import (
    format_error_with_suggestions,
    print_bundle_summary,
    print_collections_table,
    print_config,
    print_fail_table,
    print_summary_panel,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("levelfetch")
log.setLevel("INFO")
logging.getLogger("levelfetch.events").setLevel("WARNING")

app = typer.Typer(
    name="levelfetch",
    help=(
        "Batch downloader for level payloads listed in collection manifests. Use"
        " 'levelfetch <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "levelfetch"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_settings(cli_options: dict | None = None) -> AppSettings:
    try:
        return ConfigManager(CONFIG_FILE).load_settings(cli_options)
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-v for task events, -vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Level payload batch downloader"""
    if version:
        console.print(f"[bold]levelfetch[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    if verbose >= 1:
        logging.getLogger("levelfetch.events").setLevel("INFO")
    if verbose >= 2:
        logging.getLogger("levelfetch").setLevel("DEBUG")

    if show_config:
        settings = _load_settings()
        print_config(CONFIG_FILE, settings.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    connect_sid: str = typer.Option(
        ..., "--sid", prompt="connect.sid", help="Session cookie of your account."
    ),
    key: str = typer.Option("", "--key", help="A download key, if you have one."),
    output_dir: str = typer.Option(
        "downloads", "--output-dir", "-o", help="Default download directory."
    ),
    collections_dir: str = typer.Option(
        "", "--collections-dir", help="Directory holding the builtin manifests."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Save default settings to the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "connect_sid": connect_sid,
        "key": key,
        "auth_mode": "key" if key else "captcha",
        "output_dir": output_dir,
        "collections_dir": collections_dir,
    }
    try:
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(
        f"[bold green]✓ Configuration saved to '{escape(str(CONFIG_FILE))}'"
        "[/bold green]"
    )


@app.command()
def collections(
    directory: Path | None = typer.Option(
        None, "--dir", "-d", help="Overlay directory with additional manifests."
    ),
):
    """List the available level collections."""
    settings = _load_settings()
    service = TaskService(builtin_collections_dir=settings.collections_dir)
    try:
        if directory is not None:
            service.refresh_collections_from_dir(str(directory))
        items = service.list_builtin_collections()
    except LevelFetchError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    print_collections_table(items)


@app.command(name="validate-dir")
def validate_dir(directory: Path = typer.Argument(..., help="Directory to check.")):
    """Check that a directory contains collection manifests."""
    service = TaskService()
    try:
        result = service.refresh_collections_from_dir(str(directory))
    except LevelFetchError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    console.print(
        f"[green]✓ Found {result.manifest_count} manifests in "
        f"'{escape(result.dir)}'.[/green]"
    )


def _resolve_manifest_sources(service: TaskService, sources: list[str]) -> list[str]:
    """Turns manifest paths, collection directories or collection names into paths."""
    resolved: list[str] = []
    catalog = None
    for source in sources:
        path = Path(source)
        if path.is_file():
            resolved.append(str(path))
            continue
        if path.is_dir() and (path / MANIFEST_FILENAME).is_file():
            resolved.append(str(path / MANIFEST_FILENAME))
            continue

        if catalog is None:
            catalog = service.list_builtin_collections()
        matches = [
            item.path
            for item in catalog
            if source in (item.id, item.name, item.relative_path)
        ]
        if not matches:
            raise ConfigurationError(f"Unknown manifest or collection: {source}")
        resolved.extend(matches)
    return resolved


@app.command(name="download")
def download_command(
    sources: list[str] = typer.Argument(  # noqa: B008
        ..., help="Manifest files, collection directories or collection names."
    ),
    output_dir: str | None = typer.Option(
        None, "-o", "--output-dir", help="Directory the payloads are saved to."
    ),
    connect_sid: str | None = typer.Option(
        None, "--sid", help="Session cookie (connect.sid) of your account."
    ),
    key: str | None = typer.Option(None, "--key", help="Use this download key."),
    captcha: str | None = typer.Option(
        None, "--captcha", help="Exchange this captcha code for a download key."
    ),
    no_bga: bool | None = typer.Option(
        None,
        "--no-bga/--bga",
        help="Download the variant without the background video.",
    ),
    output_format: str | None = typer.Option(
        None, "--format", "-f", help="Saved file type: 'adx' or 'zip'."
    ),
    auto_bundle: bool | None = typer.Option(
        None,
        "--bundle/--no-bundle",
        help="Merge the newly downloaded files into one bundle afterwards.",
    ),
    bundle_output: str | None = typer.Option(
        None, "--bundle-output", help="Path of the bundle file."
    ),
    retries: int | None = typer.Option(
        None, "-r", "--retries", help="Attempts per link lookup and download."
    ),
    interval_ms: int | None = typer.Option(
        None, "-i", "--interval", help="Pause between levels in milliseconds."
    ),
):
    """Download the levels listed in one or more manifests."""
    cli_options = {
        key_: value
        for key_, value in {
            "output_dir": output_dir,
            "connect_sid": connect_sid,
            "key": key,
            "download_no_bga": no_bga,
            "output_format": output_format,
            "auto_bundle": auto_bundle,
            "retries": retries,
            "request_interval_ms": interval_ms,
        }.items()
        if value is not None
    }
    if captcha:
        cli_options["auth_mode"] = "captcha"
    elif key:
        cli_options["auth_mode"] = "key"

    settings = _load_settings(cli_options)

    async def _download_async() -> int:
        service = TaskService(
            builtin_collections_dir=settings.collections_dir,
            api_base=settings.api_base,
        )
        try:
            manifest_paths = _resolve_manifest_sources(service, sources)
            request = TaskRequest(
                selected_manifest_paths=manifest_paths,
                output_dir=settings.output_dir,
                connect_sid=settings.connect_sid,
                auth_mode=settings.auth_mode,
                key=settings.key or None,
                captcha=captcha,
                download_no_bga=settings.download_no_bga,
                output_format=settings.output_format,
                auto_bundle=settings.auto_bundle,
                bundle_output_path=bundle_output,
                retries=settings.retries,
                request_interval_ms=settings.request_interval_ms,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid download options:\n{e}") from e

        subscription = service.subscribe()
        started = await service.start_download_task(request)
        task_id = started.task_id
        console.print(
            f"[bold cyan]📥 Starting download task [dim]{task_id}[/dim][/bold cyan]"
        )

        def _request_cancel() -> None:
            console.print(
                "\n[yellow]⚠️  Cancelling after the current level...[/yellow]"
            )
            asyncio.ensure_future(service.cancel_task(task_id))

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, _request_cancel)
        except (NotImplementedError, RuntimeError):
            pass

        start_time = time.monotonic()
        async with ProgressManager(console) as progress_manager:

            async def _pump_events() -> None:
                async for event in subscription:
                    if event.task_id != task_id:
                        continue
                    record = await service.get_task_state(task_id)
                    progress_manager.handle_event(event, record)

            pump = asyncio.create_task(_pump_events())
            try:
                record = await service.wait_for(task_id)
                await asyncio.wait_for(pump, timeout=5)
            except asyncio.TimeoutError:
                log.debug("Event stream did not report a final status.")
            finally:
                pump.cancel()
                subscription.close()
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except (NotImplementedError, RuntimeError):
                    pass
                await service.shutdown()

        duration = time.monotonic() - start_time
        print_summary_panel(record, duration)
        print_fail_table(record)
        save_task_record(CONFIG_DIR, record)
        return 0 if record.status is TaskStatus.COMPLETED else 1

    try:
        exit_code = asyncio.run(_download_async())
    except LevelFetchError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    if exit_code:
        raise typer.Exit(code=exit_code)


@app.command()
def bundle(
    files: list[Path] = typer.Argument(  # noqa: B008
        ..., help="Downloaded payload files to merge."
    ),
    output: Path = typer.Option(..., "-o", "--output", help="Bundle file to write."),
    backup_dir: Path | None = typer.Option(
        None, "--backup-dir", help="Where to copy the original files."
    ),
):
    """Merge payload archives into one bundle without the video entries."""
    try:
        summary = build_bundle(files, output, backup_dir=backup_dir)
    except LevelFetchError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    print_bundle_summary(summary)
