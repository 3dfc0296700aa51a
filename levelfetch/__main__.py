"""
Console entry point: `levelfetch` and `python -m levelfetch`.
"""

import asyncio
import logging
import os
import sys

from rich.console import Console

from levelfetch.cli.app import app
from levelfetch.cli.formatters import format_error_with_suggestions
from levelfetch.exceptions import LevelFetchError

EXIT_INTERRUPTED = 130


def _force_utf8_streams() -> None:
    # Progress output and panels use non-ASCII glyphs.
    if os.name != "nt":
        return
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass


def main() -> None:
    """Runs the CLI, turning errors that escape a command into an error panel."""
    _force_utf8_streams()
    console = Console(stderr=True)

    try:
        app()
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]⚠️  Interrupted.[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except LevelFetchError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        logging.getLogger("levelfetch").debug("Full traceback:", exc_info=True)
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        sys.exit(1)


if __name__ == "__main__":
    main()
