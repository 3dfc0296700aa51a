"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as task requests, task records and
configuration.
"""

from .config import AppSettings
from .manifest import CollectionManifestMeta, ParsedManifest
from .request import AuthMode, OutputFormat, TaskRequest
from .task import FailItem, TaskEvent, TaskRecord, TaskStatus

__all__ = [
    "AppSettings",
    "AuthMode",
    "CollectionManifestMeta",
    "FailItem",
    "OutputFormat",
    "ParsedManifest",
    "TaskEvent",
    "TaskRecord",
    "TaskRequest",
    "TaskStatus",
]
