"""
Task state models and the reducer functions that advance them.

A `TaskRecord` is never mutated in place: every change is expressed as a
function taking the current record and returning the next one, which the
`TaskRegistry` applies atomically.
"""

from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

MAX_LOG_LINES = 400

Reducer = Callable[["TaskRecord"], "TaskRecord"]


class TaskStatus(str, Enum):
    """Lifecycle states of a download task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED, TaskStatus.FAILED)


class _CamelModel(BaseModel):
    class Config:
        frozen = True
        alias_generator = to_camel
        populate_by_name = True


class FailItem(_CamelModel):
    """A level that could not be completed, with the reason."""

    id: str
    reason: str


class TaskRecord(_CamelModel):
    """The authoritative, observable state of one task."""

    task_id: str
    status: TaskStatus = TaskStatus.PENDING
    total_ids: int = 0
    processed_ids: int = 0
    ok_count: int = 0
    skip_count: int = 0
    fail_count: int = 0
    new_files_count: int = 0
    bundle_output_path: Optional[str] = None
    fail_items: tuple[FailItem, ...] = ()
    logs: tuple[str, ...] = ()
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    message: Optional[str] = None


class TaskEvent(_CamelModel):
    """A best-effort notification of a task state change."""

    task_id: str
    level: str
    event: str
    message: str
    status: Optional[TaskStatus] = None


# Reducers


def mark_running(started_at: str, message: str) -> Reducer:
    def reduce(record: TaskRecord) -> TaskRecord:
        return record.model_copy(
            update={
                "status": TaskStatus.RUNNING,
                "started_at": started_at,
                "message": message,
            }
        )

    return reduce


def set_total(total: int, message: str) -> Reducer:
    def reduce(record: TaskRecord) -> TaskRecord:
        return record.model_copy(update={"total_ids": total, "message": message})

    return reduce


def append_log(line: str, max_lines: int = MAX_LOG_LINES) -> Reducer:
    """Appends a log line, evicting the oldest lines beyond `max_lines`."""

    def reduce(record: TaskRecord) -> TaskRecord:
        logs = (*record.logs, line)
        if len(logs) > max_lines:
            logs = logs[-max_lines:]
        return record.model_copy(update={"logs": logs})

    return reduce


def record_skip() -> Reducer:
    def reduce(record: TaskRecord) -> TaskRecord:
        return record.model_copy(
            update={
                "skip_count": record.skip_count + 1,
                "processed_ids": record.processed_ids + 1,
            }
        )

    return reduce


def record_ok() -> Reducer:
    def reduce(record: TaskRecord) -> TaskRecord:
        return record.model_copy(
            update={
                "ok_count": record.ok_count + 1,
                "new_files_count": record.new_files_count + 1,
                "processed_ids": record.processed_ids + 1,
            }
        )

    return reduce


def record_fail(level_id: str, reason: str) -> Reducer:
    def reduce(record: TaskRecord) -> TaskRecord:
        return record.model_copy(
            update={
                "fail_count": record.fail_count + 1,
                "processed_ids": record.processed_ids + 1,
                "fail_items": (*record.fail_items, FailItem(id=level_id, reason=reason)),
            }
        )

    return reduce


def set_bundle_output(path: str) -> Reducer:
    def reduce(record: TaskRecord) -> TaskRecord:
        return record.model_copy(update={"bundle_output_path": path})

    return reduce


def finalize(
    status: TaskStatus, message: str, ended_at: str, max_lines: int = MAX_LOG_LINES
) -> Reducer:
    """Moves the record into a terminal state and logs the final message."""
    log_line = append_log(message, max_lines)

    def reduce(record: TaskRecord) -> TaskRecord:
        return log_line(record).model_copy(
            update={"status": status, "message": message, "ended_at": ended_at}
        )

    return reduce
