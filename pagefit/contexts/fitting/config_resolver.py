"""
Fit Policy Resolution

Builds a FitPolicy from shipped defaults, template tuning and named presets.
Presets are composable and can override each other, allowing flexible
combination of aggressiveness and timing.

Examples:
    # Template defaults only
    >>> resolve_policy("harvard")

    # Apply multiple presets (later overrides earlier)
    >>> resolve_policy("notion", ["aggressiveness_gentle", "timing_slow_renderer"])
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import OmegaConf

from pagefit.contexts.fitting.defaults import (
    DEFAULT_BASE_SCALES,
    get_default_policy_values,
    get_template_overrides,
)
from pagefit.contexts.fitting.policy import FitPolicy

load_dotenv()
PACKAGED_PRESETS_PATH = Path(__file__).parent / "fit_presets.yaml"
FIT_PRESETS_PATH = Path(os.getenv("FIT_PRESETS_PATH", PACKAGED_PRESETS_PATH))


def load_fit_presets(config_path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load fit_presets.yaml and flatten to single-level dict.

    Collapses nested structure: aggressiveness.gentle -> aggressiveness_gentle

    Args:
        config_path: Optional path to config file (defaults to FIT_PRESETS_PATH env variable)

    Returns:
        Flattened dict mapping preset names to policy overrides
        Example: {"aggressiveness_gentle": {"tolerance_ratio": 0.3, ...}, ...}
    """
    if config_path is None:
        config_path = FIT_PRESETS_PATH

    nested = OmegaConf.to_container(OmegaConf.load(config_path), resolve=True)

    flattened = {}
    for category, presets in (nested or {}).items():
        for name, config in presets.items():
            flattened[f"{category}_{name}"] = dict(config or {})

    return flattened


def resolve_policy_values(
    template: Optional[str] = None,
    preset_names: Optional[List[str]] = None,
    config_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Merge defaults, template tuning and presets into flat policy values.

    Args:
        template: Template name (e.g. "harvard"); None skips template tuning
        preset_names: Presets to apply in order (e.g. ["timing_fast"])
        config_path: Optional path to fit_presets.yaml

    Returns:
        Flat dict of policy field values

    Raises:
        ValueError: If a preset is not found
    """
    values = get_default_policy_values()
    if template:
        values.update(get_template_overrides(template))

    if not preset_names:
        return values

    presets_dict = load_fit_presets(config_path)
    for preset_name in preset_names:
        if preset_name not in presets_dict:
            available = list(presets_dict.keys())
            raise ValueError(f"Preset '{preset_name}' not found. Available presets: {available}")
        values.update(presets_dict[preset_name])

    return values


def resolve_policy(
    template: Optional[str] = None,
    preset_names: Optional[List[str]] = None,
    config_path: Optional[Path] = None,
) -> FitPolicy:
    """
    Build a validated FitPolicy for a template and presets.

    Raises:
        ValueError: If a preset is not found
        PolicyValidationError: If the merged values violate policy constraints
    """
    return FitPolicy.from_dict(resolve_policy_values(template, preset_names, config_path))


def base_scale_for(template: str) -> float:
    """
    Nominal font size for a resume template.

    Raises:
        ValueError: If the template is unknown
    """
    if template not in DEFAULT_BASE_SCALES:
        available = sorted(DEFAULT_BASE_SCALES)
        raise ValueError(f"Unknown template '{template}'. Available templates: {available}")
    return DEFAULT_BASE_SCALES[template]
