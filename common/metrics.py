"""Formatting helpers for sizes, durations, ratios and throughput."""

BYTES_CONVERSION = 1024
SIZE_UNITS = ['B', 'KB', 'MB', 'GB', 'TB']


def format_bytes(size_bytes: float) -> str:
    """
    Format a byte count into a human-readable string.

    Args:
        size_bytes: Number of bytes

    Returns:
        Formatted string (e.g., "0 B", "1.5 KB", "2 GB")
    """
    if size_bytes <= 0:
        return "0 B"

    exponent = 0
    scaled = float(size_bytes)
    while scaled >= BYTES_CONVERSION and exponent < len(SIZE_UNITS) - 1:
        scaled /= BYTES_CONVERSION
        exponent += 1

    value = round(scaled, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {SIZE_UNITS[exponent]}"


def format_duration(ms: float) -> str:
    """
    Format a duration in milliseconds.

    Args:
        ms: Duration in milliseconds

    Returns:
        Formatted string ("850ms", "1.5s", "2.0m", "1.2h")
    """
    if ms < 1000:
        return f"{int(ms)}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    if ms < 3_600_000:
        return f"{ms / 60_000:.1f}m"
    return f"{ms / 3_600_000:.1f}h"


def compression_ratio(original_size: int, patch_size: int) -> int:
    """Percentage of the original size saved by the patch."""
    if original_size == 0:
        return 0
    return round((original_size - patch_size) / original_size * 100)


def calculate_speed(processed_bytes: int, duration_ms: float) -> str:
    if duration_ms <= 0:
        return "0 B/s"
    return f"{format_bytes(processed_bytes / duration_ms * 1000)}/s"


def calculate_eta(processed: int, total: int, bytes_per_second: float) -> str:
    """
    Estimate the remaining time of a byte-counted operation.

    Args:
        processed: Bytes done so far
        total: Total bytes
        bytes_per_second: Observed throughput

    Returns:
        Formatted remaining duration
    """
    if bytes_per_second <= 0 or processed >= total:
        return "0ms"
    return format_duration((total - processed) / bytes_per_second * 1000)
