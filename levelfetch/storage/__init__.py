"""
Storage Layer.

This package handles everything read from or written to local disk outside
of the download itself: manifest discovery, the configuration file, and the
task history.
"""

from .collections import list_collections, parse_manifest_file, validate_collections_dir
from .config_manager import ConfigManager
from .history import save_task_record

__all__ = [
    "ConfigManager",
    "list_collections",
    "parse_manifest_file",
    "save_task_record",
    "validate_collections_dir",
]
