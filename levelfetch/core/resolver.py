"""
Merges level IDs from several manifests into one download list.
"""

import logging
from pathlib import Path
from typing import Iterable

from levelfetch.storage.collections import parse_manifest_file

log = logging.getLogger(__name__)


def resolve_level_ids(manifest_paths: Iterable[str]) -> list[str]:
    """
    Returns the sorted, de-duplicated union of all level IDs in the manifests.

    The result does not depend on the order the manifests are given in.

    Raises:
        ManifestError: If any manifest cannot be opened or parsed, or holds no
        usable IDs.
    """
    unique_ids: set[str] = set()
    total = 0
    for manifest_path in manifest_paths:
        manifest = parse_manifest_file(Path(manifest_path))
        total += len(manifest.level_ids)
        unique_ids.update(manifest.level_ids)

    if total > len(unique_ids):
        log.debug(f"Removed {total - len(unique_ids)} duplicate level IDs.")
    return sorted(unique_ids)
