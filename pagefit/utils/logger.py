"""
Shared loguru setup for PAGEFIT sessions.

Each session gets its own directory with a DEBUG-level log file (every fit
cycle, every dropped notification) while the console stays at INFO unless
asked otherwise. Context wrappers that add a prefix live in
contexts/{context}/logger.py.
"""

import platform
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {message}"
CONSOLE_FORMAT = "{time:HH:mm:ss.SSS} | <level>{level: <7}</level> | <level>{message}</level>"

# Console colors; fit cycles log in quick succession so warnings need to stand out
LEVEL_COLORS = {
    "DEBUG": "<dim>",
    "WARNING": "<yellow>",
    "ERROR": "<red>",
    "CRITICAL": "<bold><red>",
}


def setup_logger(
    context_name: str,
    log_dir: Path,
    extra_provenance: Optional[dict] = None,
    level_colors: Optional[dict] = None,
    console_level: str = "INFO",
) -> Path:
    """
    Point loguru at a session directory and the console.

    Args:
        context_name: Context identifier, used as the log file stem (e.g. "fit")
        log_dir: Directory for this session (created if missing)
        extra_provenance: Additional key-value pairs for the provenance header
        level_colors: Override console colors (e.g. {"INFO": "<cyan>"})
        console_level: Minimum console level; the file always gets DEBUG

    Returns:
        Path to the log file

    Example:
        log_file = setup_logger(
            context_name="fit",
            log_dir=Path("outs/logs/simulate_20251114_123456"),
            extra_provenance={"Template": "harvard"},
        )
    """
    log_dir.mkdir(exist_ok=True, parents=True)
    log_file = log_dir / f"{context_name}.log"

    logger.remove()

    for level_name, color in {**LEVEL_COLORS, **(level_colors or {})}.items():
        logger.level(level_name, color=color)

    logger.add(log_file, format=FILE_FORMAT, level="DEBUG")
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=console_level, colorize=True)

    log_provenance(extra_provenance)
    return log_file


def restore_default_logger() -> None:
    """Drop session sinks and go back to loguru's stderr default."""
    logger.remove()
    logger.add(sys.stderr)


def log_provenance(extra_context: Optional[dict] = None) -> None:
    """
    Write a provenance header: command line, versions, working directory.

    Args:
        extra_context: Additional key-value pairs to log
    """
    from pagefit import __version__

    logger.info("=" * 80)
    logger.info(f"Command: {' '.join(sys.argv)}")
    logger.info(f"Working directory: {Path.cwd()}")
    logger.info(f"PAGEFIT: {__version__}")
    logger.info(f"Python: {platform.python_version()} ({platform.system()})")

    for key, value in (extra_context or {}).items():
        logger.info(f"{key}: {value}")

    logger.info("=" * 80)
