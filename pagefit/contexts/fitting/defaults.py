"""
Default values for PAGEFIT fit policies.

Provides shared defaults used by:
- policy.py (FitPolicy field defaults)
- config_resolver.py (template tuning before presets are applied)

Thresholds are empirically tuned product knobs, kept here rather than in the
calculator so callers can override them per document type.
"""

from typing import Any, Dict

# Height of an A4 page in CSS pixels at 96 DPI
A4_HEIGHT_PX = 1122.52

# Fill band and hysteresis
DEFAULT_FILL = {
    "target_fill_ratio": 0.955,
    "min_fill_ratio": 0.90,
    "max_fill_ratio": 0.98,
    "near_miss_ratio": 0.97,
    "tolerance_ratio": 0.20,
}

# Scale bounds (min_scale is absolute, the rest are multiples of base scale)
DEFAULT_BOUNDS = {
    "min_scale": 8.0,
    "grow_ceiling_ratio": 1.25,
    "near_miss_ceiling_ratio": 1.20,
    "safety_floor_ratio": 0.85,
    "snap_back_ratio": 0.08,
}

# Timing in milliseconds
DEFAULT_TIMING = {
    "debounce_interval_ms": 300,
    "settle_delay_ms": 250,
    "cooldown_ms": 600,
    "snap_back_delay_ms": 500,
    "reset_delay_ms": 100,
    "warning_display_ms": 5000,
    "measure_timeout_ms": 2000,
}

# Nominal font size per resume template
DEFAULT_BASE_SCALES = {
    "harvard": 11.0,
    "notion": 10.5,
    "consulting": 10.0,
}

# Templates that lay out sections over several render passes
MULTI_PASS_TEMPLATES = {"harvard", "notion"}
MULTI_PASS_SETTLE_DELAY_MS = 400


def get_default_policy_values() -> Dict[str, Any]:
    """
    Get complete default policy values as a flat dict.

    Returns:
        Dict with every FitPolicy field and its shipped default
    """
    return {**DEFAULT_FILL, **DEFAULT_BOUNDS, **DEFAULT_TIMING}


def get_template_overrides(template: str) -> Dict[str, Any]:
    """
    Policy overrides implied by a template's rendering behaviour.

    Args:
        template: Template name (e.g. "harvard")

    Returns:
        Overrides to apply on top of the defaults (empty for single-pass templates)
    """
    if template in MULTI_PASS_TEMPLATES:
        return {"settle_delay_ms": MULTI_PASS_SETTLE_DELAY_MS}
    return {}
