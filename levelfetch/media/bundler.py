"""
Merges freshly downloaded payload archives into a single bundle archive,
dropping video entries on the way.

Everything here is blocking filesystem work; async callers run it through
`asyncio.to_thread`.
"""

import logging
import os
import shutil
import tempfile
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, Sequence

from levelfetch.exceptions import BundleError
from levelfetch.utils.formatting import compact_timestamp

log = logging.getLogger(__name__)

FILTERED_SUFFIX = ".mp4"
WORKSPACE_PREFIX = "levelfetch_bundle_"

# Raised by zipfile for corrupt, encrypted or unsupported entries.
_ARCHIVE_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    RuntimeError,
    NotImplementedError,
    EOFError,
)


@dataclass
class BundleSummary:
    """The result of one bundling run."""

    output_path: str
    source_file_count: int
    processed_count: int
    filtered_count: int
    backup_dir: str


def _ensure_parent(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise BundleError(f"create parent dir failed: {path.parent}: {e}") from e


def _safe_relative_path(entry_name: str) -> Optional[PurePosixPath]:
    """
    Returns the entry path relative to the extraction root, or None when the
    name is absolute or climbs out of the root.
    """
    name = entry_name.replace("\\", "/")
    if name.startswith("/") or (len(name) > 1 and name[1] == ":"):
        return None
    parts = [part for part in PurePosixPath(name).parts if part not in ("", ".")]
    if not parts or ".." in parts:
        return None
    return PurePosixPath(*parts)


def _backup_sources(source_files: Sequence[Path], backup_dir: Path) -> None:
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        for src in source_files:
            if src.exists():
                shutil.copy2(src, backup_dir / src.name)
    except OSError as e:
        raise BundleError(f"backup of original files failed: {e}") from e


def _extract_filtered(archive_path: Path, extract_dir: Path) -> int:
    """
    Extracts one archive into `extract_dir`, skipping filtered entries.

    Returns the number of entries that were filtered out.
    """
    filtered = 0
    with zipfile.ZipFile(archive_path) as archive:
        for info in archive.infolist():
            if info.filename.lower().endswith(FILTERED_SUFFIX):
                filtered += 1
                continue

            relative = _safe_relative_path(info.filename)
            if relative is None:
                log.debug(f"Skipping unsafe entry '{info.filename}' in {archive_path}")
                continue

            out_path = extract_dir.joinpath(*relative.parts)
            if info.is_dir():
                out_path.mkdir(parents=True, exist_ok=True)
                continue

            out_path.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(out_path, "wb") as dst:
                shutil.copyfileobj(src, dst)
    return filtered


def _write_bundle(extracted_root: Path, output_path: Path) -> None:
    with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
        for dirpath, dirnames, filenames in os.walk(extracted_root):
            dirnames.sort()
            for filename in sorted(filenames):
                file_path = Path(dirpath) / filename
                if not file_path.is_file():
                    continue
                arcname = file_path.relative_to(extracted_root).as_posix()
                bundle.write(file_path, arcname)


def _remove_workspace(work_root: Path) -> None:
    try:
        shutil.rmtree(work_root)
    except OSError as e:
        log.warning(f"Could not remove bundle workspace '{work_root}': {e}")


def build_bundle(
    source_files: Sequence[Path],
    output_path: Path,
    backup_dir: Optional[Path] = None,
) -> BundleSummary:
    """
    Repackages the given payload archives into one deflated archive.

    Each source is backed up, copied into a private workspace as a `.zip`,
    and extracted into its own subdirectory with `.mp4` entries removed. The
    merged tree is then compressed into `output_path`. Sources that no longer
    exist are ignored; a source that is not a readable archive aborts the run.

    Args:
        source_files: Payload files downloaded in this run.
        output_path: Where the bundle archive is written.
        backup_dir: Where originals are copied to. Defaults to a timestamped
            `backup_original_adx_*` directory next to the output.

    Raises:
        BundleError: If there are no sources or any step fails.
    """
    if not source_files:
        raise BundleError("no source files for bundling")

    source_files = [Path(p) for p in source_files]
    output_path = Path(output_path)
    _ensure_parent(output_path)

    ts = compact_timestamp()
    if backup_dir is None:
        backup_dir = output_path.parent / f"backup_original_adx_{ts}"
    _backup_sources(source_files, backup_dir)

    try:
        work_root = Path(tempfile.mkdtemp(prefix=f"{WORKSPACE_PREFIX}{ts}_"))
    except OSError as e:
        raise BundleError(f"create bundle workspace failed: {e}") from e

    zip_copies = work_root / "zip_copies"
    extracted = work_root / "extracted"
    processed_count = 0
    filtered_count = 0

    try:
        zip_copies.mkdir()
        extracted.mkdir()

        for src in source_files:
            if not src.exists():
                log.debug(f"Source '{src}' disappeared before bundling, skipping.")
                continue

            zip_copy = zip_copies / f"{src.stem}.zip"
            shutil.copyfile(src, zip_copy)

            extract_dir = extracted / src.stem
            extract_dir.mkdir(parents=True, exist_ok=True)
            try:
                filtered_count += _extract_filtered(zip_copy, extract_dir)
            except _ARCHIVE_READ_ERRORS as e:
                raise BundleError(f"read zip archive failed: {src}: {e}") from e
            processed_count += 1

        _write_bundle(extracted, output_path)
    except OSError as e:
        raise BundleError(f"bundling failed: {e}") from e
    finally:
        _remove_workspace(work_root)

    log.info(
        f"Bundle written to '{output_path}' ({processed_count}/{len(source_files)} "
        f"sources, {filtered_count} video entries removed)"
    )
    return BundleSummary(
        output_path=str(output_path),
        source_file_count=len(source_files),
        processed_count=processed_count,
        filtered_count=filtered_count,
        backup_dir=str(backup_dir),
    )
