"""
Remote API Layer.

This package handles all communication with the level download service.
"""

from .client import LevelAPIClient
from .retry import with_retry

__all__ = ["LevelAPIClient", "with_retry"]
