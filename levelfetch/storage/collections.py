"""
Discovers level manifests on disk and parses their level IDs.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from levelfetch.exceptions import ConfigurationError, ManifestError
from levelfetch.models.manifest import (
    MANIFEST_FILENAME,
    CollectionManifestMeta,
    ParsedManifest,
)

log = logging.getLogger(__name__)

COLLECTIONS_ENV_VAR = "LEVELFETCH_COLLECTIONS_DIR"


def normalize_level_id(value: Any) -> Optional[str]:
    """
    Converts a raw manifest entry into a canonical level ID.

    Strings are kept as-is, integers and integral floats become decimal
    strings. Anything else is rejected with None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return None


def parse_manifest_file(path: Path) -> ParsedManifest:
    """
    Reads a manifest file.

    Raises:
        ManifestError: If the file cannot be read, is not valid JSON, lacks
        `levelIds`, or contains no usable IDs.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except OSError as e:
        raise ManifestError(f"open manifest failed {path}: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestError(f"parse manifest failed {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ManifestError(f"parse manifest failed {path}: expected a JSON object")

    raw_ids = raw.get("levelIds")
    if not isinstance(raw_ids, list):
        raise ManifestError(f"manifest missing levelIds: {path}")

    level_ids = [
        level_id for v in raw_ids if (level_id := normalize_level_id(v)) is not None
    ]
    if not level_ids:
        raise ManifestError(f"manifest has empty levelIds: {path}")

    name = raw.get("name")
    if not isinstance(name, str):
        name = path.parent.name or "Unnamed"
    return ParsedManifest(name=name, level_ids=level_ids)


def collect_manifest_files(root: Path) -> list[Path]:
    """Recursively finds every manifest file under `root`, in sorted order."""
    files = [
        Path(dirpath) / MANIFEST_FILENAME
        for dirpath, _, filenames in os.walk(root)
        if MANIFEST_FILENAME in filenames
    ]
    return sorted(files)


def _collect_from_source(root: Path, source: str) -> list[CollectionManifestMeta]:
    entries = []
    for path in collect_manifest_files(root):
        parsed = parse_manifest_file(path)
        relative_path = path.relative_to(root).as_posix()
        entries.append(
            CollectionManifestMeta(
                id=f"{source}:{relative_path}",
                name=parsed.name,
                path=str(path),
                relative_path=relative_path,
                level_count=len(parsed.level_ids),
                source=source,
            )
        )
    return entries


def resolve_builtin_collections_dir(configured: str = "") -> Optional[Path]:
    """
    Locates the builtin collections directory.

    Checked in order: an explicitly configured directory, the
    LEVELFETCH_COLLECTIONS_DIR environment variable, and `./collections`.
    """
    candidates = [configured, os.getenv(COLLECTIONS_ENV_VAR, "")]
    candidates.append(str(Path.cwd() / "collections"))
    for candidate in candidates:
        if candidate and Path(candidate).exists():
            return Path(candidate)
    return None


def list_collections(
    builtin_root: Optional[Path], overlay_root: Optional[Path] = None
) -> list[CollectionManifestMeta]:
    """
    Lists all manifests from the builtin directory and an optional overlay.

    Overlay manifests replace builtin ones that share the same relative path.
    """
    if builtin_root is None:
        raise ConfigurationError("Cannot find the builtin collections directory.")

    merged: dict[str, CollectionManifestMeta] = {}
    for item in _collect_from_source(builtin_root, "builtin"):
        merged[item.relative_path] = item

    if overlay_root is not None and overlay_root.exists():
        for item in _collect_from_source(overlay_root, "overlay"):
            if item.relative_path in merged:
                log.debug(f"Overlay replaces builtin manifest '{item.relative_path}'")
            merged[item.relative_path] = item

    return sorted(merged.values(), key=lambda item: item.name)


def validate_collections_dir(directory: Path) -> int:
    """Returns the number of manifests in `directory`, failing if there are none."""
    if not directory.exists():
        raise ConfigurationError(f"Directory not found: {directory}")
    count = len(collect_manifest_files(directory))
    if count == 0:
        raise ConfigurationError(f"No {MANIFEST_FILENAME} found in: {directory}")
    return count
