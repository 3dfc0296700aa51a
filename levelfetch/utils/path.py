"""
Utilities for turning level IDs into safe file names.
"""

from pathlib import Path

from pathvalidate import sanitize_filename

RESERVED_SUFFIX = "_file"
EMPTY_NAME = "unknown"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def sanitize_level_id(level_id: str) -> str:
    """
    Converts a level ID into a file name stem that is valid on every platform.

    Leading and trailing spaces and dots are trimmed, control characters and
    `<>:"/\\|?*` become underscores, and reserved device names get a `_file`
    suffix. Windows rules are applied everywhere so a download directory can
    be moved between systems.
    """
    return sanitize_filename(
        level_id.strip(" ."),
        replacement_text="_",
        platform="windows",
        reserved_name_handler=lambda e: f"{e.reserved_name}{RESERVED_SUFFIX}",
        null_value_handler=lambda e: EMPTY_NAME,
    )


def payload_filename(level_id: str, ext: str) -> str:
    """Builds the on-disk file name for a level payload."""
    return f"{sanitize_level_id(level_id)}.{ext}"
