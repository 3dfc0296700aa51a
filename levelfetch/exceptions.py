"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class LevelFetchError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(LevelFetchError):
    """Raised for missing or invalid settings and task request fields."""


class AuthenticationError(LevelFetchError):
    """Raised when the captcha code cannot be exchanged for a download key."""


class ManifestError(LevelFetchError):
    """Raised when a manifest file cannot be read or yields no level IDs."""


class ProtocolError(LevelFetchError):
    """Raised when the remote service reports success but omits the payload."""


class LinkError(LevelFetchError):
    """Raised when a download link cannot be resolved for a level."""

    def __init__(self, level_id: str, message: str):
        super().__init__(message)
        self.level_id = level_id


class DownloadError(LevelFetchError):
    """Raised when a payload cannot be streamed to disk."""


class BundleError(LevelFetchError):
    """Raised when downloaded archives cannot be merged into a bundle."""


class TaskNotFoundError(LevelFetchError):
    """Raised when a task ID is not known to the service."""
