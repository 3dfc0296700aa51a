"""
The task engine: turns an accepted task request into link lookups and
downloads, keeps the task record current, and optionally bundles the result.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Sequence

from levelfetch.api.client import LevelAPIClient
from levelfetch.api.retry import with_retry
from levelfetch.core.cancellation import CancellationToken
from levelfetch.core.events import EventBus
from levelfetch.core.registry import TaskRegistry
from levelfetch.core.resolver import resolve_level_ids
from levelfetch.exceptions import BundleError, LevelFetchError
from levelfetch.media.bundler import BundleSummary, build_bundle
from levelfetch.models.config import DEFAULT_API_BASE
from levelfetch.models.request import RAW_PAYLOAD_EXT, AuthMode, TaskRequest
from levelfetch.models.task import (
    Reducer,
    TaskEvent,
    TaskStatus,
    append_log,
    finalize,
    mark_running,
    record_fail,
    record_ok,
    record_skip,
    set_bundle_output,
    set_total,
)
from levelfetch.utils.formatting import (
    compact_timestamp,
    mask_secret,
    now_str,
    truncate_for_log,
)
from levelfetch.utils.path import create_dir, payload_filename

log = logging.getLogger(__name__)

FAIL_REASON_LIMIT = 280

ClientFactory = Callable[[str], LevelAPIClient]
BundleBuilder = Callable[[Sequence[Path], Path], BundleSummary]


class _FatalError(Exception):
    """Aborts the whole task with a user-facing message."""


def _existing_payload_size(path: Path) -> int:
    try:
        return path.stat().st_size if path.is_file() else 0
    except OSError:
        return 0


class TaskRunner:
    """
    Drives one download task from `running` to a terminal status.

    Failures before the download loop (HTTP client, manifests, key, output
    directory) abort the task. Failures of a single level are recorded and
    the loop moves on. Cancellation is checked before every level.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        events: EventBus,
        api_base: str = DEFAULT_API_BASE,
        client_factory: Optional[ClientFactory] = None,
        bundle_builder: BundleBuilder = build_bundle,
    ):
        self.registry = registry
        self.events = events
        self._client_factory = client_factory or (
            lambda connect_sid: LevelAPIClient(connect_sid, base_url=api_base)
        )
        self._bundle_builder = bundle_builder

    async def run(
        self, task_id: str, request: TaskRequest, token: CancellationToken
    ) -> None:
        """Runs the task to completion. Never raises, except on task cancellation."""
        try:
            await self._run(task_id, request, token)
        except _FatalError as e:
            await self._finish(task_id, TaskStatus.FAILED, str(e), "error", "fatal")
        except asyncio.CancelledError:
            await self._finish(
                task_id, TaskStatus.CANCELLED, "Task cancelled", "warn", "cancelled"
            )
            raise
        except Exception as e:
            log.debug("Full traceback:", exc_info=True)
            await self._finish(
                task_id, TaskStatus.FAILED, f"Unexpected error: {e}", "error", "fatal"
            )

    async def _run(
        self, task_id: str, request: TaskRequest, token: CancellationToken
    ) -> None:
        await self._update(task_id, mark_running(now_str(), "Task started"))
        self._emit(task_id, "info", "start", f"Task started: {task_id}")

        try:
            client = self._client_factory(request.connect_sid)
            await client.open()
        except Exception as e:
            raise _FatalError(f"HTTP client initialization failed: {e}") from e

        try:
            level_ids = await self._resolve_level_ids(task_id, request)
            key = await self._resolve_key(task_id, request, client)
            output_dir = Path(request.output_dir)
            try:
                await asyncio.to_thread(create_dir, output_dir)
            except OSError as e:
                raise _FatalError(f"Output directory is not writable: {e}") from e

            await self._update(
                task_id,
                append_log(
                    f"Task parameters: auth_mode={request.auth_mode.value}, "
                    f"connect.sid={mask_secret(request.connect_sid)}, "
                    f"key={mask_secret(key)}, type={request.variant}, "
                    f"format={request.payload_ext}, retries={request.retries}, "
                    f"interval_ms={request.request_interval_ms}, "
                    f"output_dir={request.output_dir}"
                ),
            )

            new_files: list[Path] = []
            for level_id in level_ids:
                if token.cancelled:
                    await self._finish(
                        task_id,
                        TaskStatus.CANCELLED,
                        "Task cancelled",
                        "warn",
                        "cancelled",
                    )
                    return

                out_path = output_dir / payload_filename(level_id, request.payload_ext)
                saved = await self._process_level(
                    task_id, level_id, out_path, client, key, request
                )
                if saved is not None:
                    new_files.append(saved)

                await asyncio.sleep(request.request_interval_ms / 1000)
        finally:
            await client.close()

        if request.auto_bundle:
            await self._bundle(task_id, request, output_dir, new_files)

        await self._finish(
            task_id, TaskStatus.COMPLETED, "Task completed", "info", "done"
        )

    async def _resolve_level_ids(self, task_id: str, request: TaskRequest) -> list[str]:
        if not request.selected_manifest_paths:
            raise _FatalError("No manifests selected")
        try:
            level_ids = await asyncio.to_thread(
                resolve_level_ids, request.selected_manifest_paths
            )
        except LevelFetchError as e:
            raise _FatalError(f"Failed to read manifests: {e}") from e

        await self._update(
            task_id,
            set_total(
                len(level_ids), f"Level IDs to download after merge: {len(level_ids)}"
            ),
        )
        if not level_ids:
            raise _FatalError("No level IDs to download")
        return level_ids

    async def _resolve_key(
        self, task_id: str, request: TaskRequest, client: LevelAPIClient
    ) -> str:
        if request.auth_mode is AuthMode.KEY:
            if not request.key or not request.key.strip():
                raise _FatalError("auth_mode=key but no key was provided")
            return request.key

        if not request.captcha or not request.captcha.strip():
            raise _FatalError("auth_mode=captcha but no captcha code was provided")
        try:
            key = await client.exchange_code_for_key(request.captcha)
        except LevelFetchError as e:
            raise _FatalError(f"Captcha verification failed: {e}") from e

        self._emit(task_id, "info", "auth", "Captcha verified, download key obtained")
        return key

    async def _process_level(
        self,
        task_id: str,
        level_id: str,
        out_path: Path,
        client: LevelAPIClient,
        key: str,
        request: TaskRequest,
    ) -> Optional[Path]:
        """Handles one level. Returns the saved path if a new file was written."""
        if await asyncio.to_thread(_existing_payload_size, out_path) > 0:
            line = f"SKIP {level_id}"
            await self._update(task_id, record_skip(), append_log(line))
            self._emit(task_id, "info", "skip", line)
            return None

        try:
            url = await with_retry(
                request.retries,
                request.request_interval_ms,
                lambda attempt: client.resolve_download_url(
                    key, level_id, request.variant
                ),
            )
        except Exception as e:
            reason = truncate_for_log(str(e), FAIL_REASON_LIMIT)
            line = f"FAIL {level_id}: link lookup failed | {reason}"
            await self._update(
                task_id, record_fail(level_id, f"link_fail: {reason}"), append_log(line)
            )
            self._emit(task_id, "error", "fail", line)
            return None

        try:
            await with_retry(
                request.retries,
                request.request_interval_ms,
                lambda attempt: client.download(url, out_path),
            )
        except Exception as e:
            reason = truncate_for_log(str(e), FAIL_REASON_LIMIT)
            line = f"FAIL {level_id}: download failed | {reason}"
            await self._update(
                task_id,
                record_fail(level_id, f"download_fail: {reason}"),
                append_log(line),
            )
            self._emit(task_id, "error", "fail", line)
            return None

        line = f"OK {level_id}"
        await self._update(task_id, record_ok(), append_log(line))
        self._emit(task_id, "info", "ok", line)
        return out_path

    async def _bundle(
        self,
        task_id: str,
        request: TaskRequest,
        output_dir: Path,
        new_files: list[Path],
    ) -> None:
        if not new_files:
            line = "Auto bundle skipped: no new files were downloaded in this run"
            await self._update(task_id, append_log(line))
            self._emit(task_id, "info", "bundle_skip", line)
            return

        if request.bundle_output_path:
            output_path = Path(request.bundle_output_path)
        else:
            output_path = (
                output_dir / f"bundle_merged_{compact_timestamp()}.{RAW_PAYLOAD_EXT}"
            )

        self._emit(
            task_id,
            "info",
            "bundle_start",
            "Bundling the files downloaded in this run",
        )
        try:
            summary = await asyncio.to_thread(
                self._bundle_builder, list(new_files), output_path
            )
        except BundleError as e:
            raise _FatalError(f"Auto bundle failed: {e}") from e
        except Exception as e:
            raise _FatalError(f"Auto bundle task crashed: {e}") from e

        line = (
            f"Auto bundle finished: {summary.output_path} "
            f"(sources {summary.source_file_count}, "
            f"processed {summary.processed_count})"
        )
        await self._update(
            task_id, set_bundle_output(summary.output_path), append_log(line)
        )
        self._emit(task_id, "info", "bundle_done", line)

    async def _update(self, task_id: str, *reducers: Reducer) -> None:
        await self.registry.apply(task_id, *reducers)

    async def _finish(
        self, task_id: str, status: TaskStatus, message: str, level: str, event: str
    ) -> None:
        record = await self.registry.apply(
            task_id, finalize(status, message, now_str())
        )
        if record.status is status:
            self._emit(task_id, level, event, message, status)

    def _emit(
        self,
        task_id: str,
        level: str,
        event: str,
        message: str,
        status: TaskStatus = TaskStatus.RUNNING,
    ) -> None:
        self.events.publish(
            TaskEvent(
                task_id=task_id,
                level=level,
                event=event,
                message=message,
                status=status,
            )
        )
