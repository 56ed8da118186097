"""Shared utility functions for app services."""


def format_file_size(size_bytes: int) -> str:
    """Format a file size in bytes to a human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.5 MB")
    """
    size_float = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if abs(size_float) < 1024.0:
            return f"{size_float:.1f} {unit}"
        size_float = size_float / 1024.0
    return f"{size_float:.1f} PB"


def format_duration(seconds: float | None) -> str:
    """Format a duration as "1m 5s", or "-" when unknown."""
    if seconds is None:
        return "-"
    return f"{int(seconds // 60)}m {int(seconds % 60)}s"
