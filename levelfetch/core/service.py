"""
The command surface used by front-ends: collection listing, and starting,
cancelling and inspecting download tasks.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from levelfetch.core.cancellation import CancellationToken
from levelfetch.core.events import EventBus, Subscription
from levelfetch.core.registry import TaskRegistry
from levelfetch.core.task_runner import TaskRunner
from levelfetch.exceptions import ConfigurationError, TaskNotFoundError
from levelfetch.models.config import DEFAULT_API_BASE
from levelfetch.models.manifest import CollectionManifestMeta
from levelfetch.models.request import TaskRequest
from levelfetch.models.task import TaskRecord
from levelfetch.storage.collections import (
    list_collections,
    resolve_builtin_collections_dir,
    validate_collections_dir,
)

log = logging.getLogger(__name__)


class RefreshResult(BaseModel):
    manifest_count: int
    dir: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class StartTaskResult(BaseModel):
    task_id: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class TaskService:
    """
    Owns the task registry, the event bus and every running task.

    Each started task runs as its own asyncio task; there is no limit on how
    many run at once.
    """

    def __init__(
        self,
        registry: Optional[TaskRegistry] = None,
        events: Optional[EventBus] = None,
        runner: Optional[TaskRunner] = None,
        builtin_collections_dir: str = "",
        api_base: str = DEFAULT_API_BASE,
    ):
        self.registry = registry or TaskRegistry()
        self.events = events or EventBus()
        self.runner = runner or TaskRunner(self.registry, self.events, api_base=api_base)
        self._builtin_collections_dir = builtin_collections_dir
        self._overlay_dir: Optional[Path] = None
        self._tokens: dict[str, CancellationToken] = {}
        self._running: dict[str, asyncio.Task] = {}

    def list_builtin_collections(self) -> list[CollectionManifestMeta]:
        """Lists builtin manifests merged with the overlay directory, if any."""
        builtin_root = resolve_builtin_collections_dir(self._builtin_collections_dir)
        return list_collections(builtin_root, self._overlay_dir)

    def refresh_collections_from_dir(self, directory: str) -> RefreshResult:
        """Validates a directory and uses it as the overlay collection source."""
        path = Path(directory.strip())
        count = validate_collections_dir(path)
        self._overlay_dir = path
        log.info(f"Using {count} manifests from overlay directory '{path}'")
        return RefreshResult(manifest_count=count, dir=str(path))

    async def start_download_task(
        self, request: Union[TaskRequest, dict[str, Any]]
    ) -> StartTaskResult:
        """
        Registers a new task and starts running it in the background.

        Raises:
            ConfigurationError: If the request is invalid or selects no manifests.
        """
        if not isinstance(request, TaskRequest):
            try:
                request = TaskRequest.model_validate(request)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid task request:\n{e}") from e

        if not request.selected_manifest_paths:
            raise ConfigurationError("selectedManifestPaths is empty")

        task_id = str(uuid.uuid4())
        token = CancellationToken()
        await self.registry.register(TaskRecord(task_id=task_id))
        self._tokens[task_id] = token

        task = asyncio.create_task(
            self.runner.run(task_id, request, token), name=f"levelfetch-{task_id}"
        )
        self._running[task_id] = task
        task.add_done_callback(lambda _: self._forget(task_id))
        log.debug(f"Started task {task_id}")
        return StartTaskResult(task_id=task_id)

    def _forget(self, task_id: str) -> None:
        self._running.pop(task_id, None)
        self._tokens.pop(task_id, None)

    async def cancel_task(self, task_id: str) -> None:
        """
        Requests cancellation. The task stops before its next level. Cancelling
        a task that has already finished does nothing.

        Raises:
            TaskNotFoundError: If the task ID is unknown.
        """
        token = self._tokens.get(task_id)
        if token is not None:
            token.cancel()
        elif self.registry.snapshot(task_id) is None:
            raise TaskNotFoundError(f"task not found: {task_id}")

    async def get_task_state(self, task_id: str) -> Optional[TaskRecord]:
        return self.registry.snapshot(task_id)

    def subscribe(self, task_id: Optional[str] = None) -> Subscription:
        """Subscribes to events of one task, or of all tasks."""
        return self.events.subscribe(task_id)

    async def wait_for(self, task_id: str) -> Optional[TaskRecord]:
        """Waits until a task has finished and returns its final record."""
        task = self._running.get(task_id)
        if task is not None:
            await asyncio.shield(task)
        return self.registry.snapshot(task_id)

    async def shutdown(self) -> None:
        """Cancels every task that is still running and waits for them."""
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
