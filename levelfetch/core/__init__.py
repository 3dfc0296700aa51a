"""
Core application engine for orchestrating download tasks.

The `TaskService` is the entry point used by front-ends. It registers tasks
in the `TaskRegistry` and hands each one to the `TaskRunner`, which reports
progress through the `EventBus`.
"""

from .cancellation import CancellationToken
from .events import EventBus, Subscription
from .registry import TaskRegistry
from .resolver import resolve_level_ids
from .service import TaskService
from .task_runner import TaskRunner

__all__ = [
    "CancellationToken",
    "EventBus",
    "Subscription",
    "TaskRegistry",
    "TaskRunner",
    "TaskService",
    "resolve_level_ids",
]
