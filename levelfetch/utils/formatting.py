"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import datetime

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_str() -> str:
    """Returns the current local time as 'YYYY-mm-dd HH:MM:SS'."""
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def compact_timestamp() -> str:
    """Returns the current local time as 'YYYYmmdd_HHMMSS' for use in file names."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def truncate_for_log(text: str, max_chars: int) -> str:
    """
    Shortens text to at most `max_chars` characters, marking the cut with '...'.
    """
    if len(text) <= max_chars:
        return text
    keep = max(max_chars - 3, 0)
    return text[:keep] + "..."


def mask_secret(secret: str) -> str:
    """Masks a credential so it can appear in logs without being recoverable."""
    length = len(secret)
    if length == 0:
        return "<empty>"
    if length <= 8:
        return f"len={length} [{'*' * length}]"
    return f"len={length} {secret[:4]}****{secret[-4:]}"


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)
