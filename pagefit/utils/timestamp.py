"""Timestamp formatting utilities."""

from datetime import datetime


def now() -> str:
    """
    Compact local timestamp for directory and file names.

    Returns:
        Timestamp like "20251114_123456"
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def format_elapsed(seconds: float) -> str:
    """
    Format an elapsed duration for timeline output.

    Args:
        seconds: Duration in seconds

    Returns:
        "+0.350s" style string with millisecond precision

    Examples:
        format_elapsed(0.35)
        # "+0.350s"
    """
    return f"+{seconds:.3f}s"
