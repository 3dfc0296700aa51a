"""
Concurrency-safe storage of task records.
"""

import asyncio
import logging
from typing import Optional

from levelfetch.exceptions import TaskNotFoundError
from levelfetch.models.task import Reducer, TaskRecord

log = logging.getLogger(__name__)


class TaskRegistry:
    """
    Holds one `TaskRecord` per task ID.

    Records are only changed through `apply`, which runs a reducer under the
    task's own lock and stores the returned record. Terminal records are
    never changed again. Readers receive the immutable record itself, so a
    snapshot cannot be altered behind the registry's back.
    """

    def __init__(self) -> None:
        self._records: dict[str, TaskRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def register(self, record: TaskRecord) -> None:
        """Adds a new record. Task IDs must be unique."""
        if record.task_id in self._records:
            raise ValueError(f"Task '{record.task_id}' is already registered.")
        self._locks[record.task_id] = asyncio.Lock()
        self._records[record.task_id] = record

    async def apply(self, task_id: str, *reducers: Reducer) -> TaskRecord:
        """
        Applies reducers to a task's record as one atomic update.

        Returns the resulting record. If the record is already terminal it is
        returned unchanged.
        """
        lock = self._locks.get(task_id)
        if lock is None:
            raise TaskNotFoundError(f"task not found: {task_id}")

        async with lock:
            record = self._records[task_id]
            if record.status.is_terminal:
                log.debug(f"Ignoring update to finished task '{task_id}'.")
                return record
            for reduce in reducers:
                record = reduce(record)
            self._records[task_id] = record
            return record

    def snapshot(self, task_id: str) -> Optional[TaskRecord]:
        """Returns the current record, or None for unknown task IDs."""
        return self._records.get(task_id)

    def task_ids(self) -> list[str]:
        return list(self._records)
