"""
Shared utilities for PAGEFIT.

Common functionality used across contexts:
- Logger setup with provenance tracking
- Timestamps for log directories and event records
"""

from pagefit.utils.timestamp import format_elapsed, now

__all__ = ["format_elapsed", "now"]
