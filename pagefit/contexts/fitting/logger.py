"""
Fitting context logger.

Provides logging interface for the fitting context with automatic [fit] prefix.
All fitting modules should import from this module, not from utils.logger directly.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

from pagefit.utils.logger import setup_logger as _setup_logger

load_dotenv()

CONTEXT_PREFIX = "[fit]"


def setup_fitting_logger(log_dir: Path, verbose: bool = False) -> Path:
    """
    Setup logger for fitting context.

    Configures loguru with provenance tracking and fitting-specific context.

    Args:
        log_dir: Directory for this fitting session
        verbose: Show DEBUG messages (every fit cycle) on the console

    Returns:
        Path to log file

    Example:
        from pagefit.contexts.fitting.logger import setup_fitting_logger

        log_file = setup_fitting_logger(log_dir)
    """
    return _setup_logger(
        context_name="fit",
        log_dir=log_dir,
        extra_provenance={"Fit presets": os.getenv("FIT_PRESETS_PATH", "(packaged defaults)")},
        console_level="DEBUG" if verbose else "INFO",
    )


# Wrapper functions with automatic [fit] prefix


def _log_info(message: str) -> None:
    """Log info message with [fit] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [fit] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [fit] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [fit] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [fit] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level fitting-specific logging helpers


def log_reset(context_key: str, base_scale: float, page_id: str) -> None:
    """Log a controller reset (template, font or content swap)."""
    _log_info(f"Reset {page_id}: base scale {base_scale:g} ({context_key or 'no context'})")


def log_cycle_start(page_id: str, effective_scale: float, forced: bool) -> None:
    """Log start of a measure -> decide -> apply cycle."""
    kind = "forced cycle" if forced else "cycle"
    _log_debug(f"Measuring {page_id} ({kind}) at scale {effective_scale:.2f}")


def log_decision(decision, measured_height: float, page_height: float) -> None:
    """
    Log the calculator's decision for one cycle.

    Args:
        decision: FitDecision from decide()
        measured_height: Height reported by the render surface
        page_height: Page height in the same units
    """
    fill = measured_height / page_height
    _log_debug(
        f"  {decision.zone.value}: fill {fill:.1%}, proposed {decision.proposed_scale:.2f} "
        f"(change {decision.relative_change:.1%}, apply={decision.should_apply})"
    )


def log_adjustment(context_key: str, previous: Optional[float], new_scale: float) -> None:
    """Log an applied scale change."""
    before = "base" if previous is None else f"{previous:.2f}"
    _log_success(f"Scale {before} -> {new_scale:.2f} ({context_key or 'no context'})")


def log_snap_back(context_key: str, previous: float) -> None:
    """Log removal of an override that converged back near base."""
    _log_info(f"Override {previous:.2f} removed, back to base ({context_key or 'no context'})")


def log_overflow_warning(warning) -> None:
    """
    Log the one-shot overflow warning.

    Args:
        warning: OverflowWarning emitted by the controller
    """
    _log_warning(
        f"{warning.message} (measured {warning.measured_height:.1f} / page {warning.page_height:.1f}, "
        f"scale {warning.proposed_scale:.2f})"
    )


def log_measurement_unavailable(page_id: str, reason: str) -> None:
    """Log a cycle that ended without a measurement."""
    _log_debug(f"No measurement for {page_id}: {reason}")


def log_dropped_notification(reason: str) -> None:
    """Log a notification that did not schedule a cycle."""
    _log_debug(f"Notification dropped: {reason}")
