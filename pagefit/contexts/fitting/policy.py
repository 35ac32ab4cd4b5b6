"""
Fit policy: immutable thresholds governing when and how much to scale.

A FitPolicy is validated once at construction and never mutated. Use
FitPolicy.replace() to derive a tuned copy, or config_resolver.resolve_policy()
to build one from template defaults and named presets.
"""

import dataclasses
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping

from pagefit.contexts.fitting.defaults import DEFAULT_BOUNDS, DEFAULT_FILL, DEFAULT_TIMING
from pagefit.contexts.fitting.exceptions import PolicyValidationError

RATIO_FIELDS = (
    "target_fill_ratio",
    "min_fill_ratio",
    "max_fill_ratio",
    "near_miss_ratio",
    "tolerance_ratio",
    "grow_ceiling_ratio",
    "near_miss_ceiling_ratio",
    "safety_floor_ratio",
    "snap_back_ratio",
)

TIMING_FIELDS = tuple(DEFAULT_TIMING)


@dataclass(frozen=True)
class FitPolicy:
    """
    Thresholds for the page-fit controller.

    Attributes:
        target_fill_ratio: Desired fraction of page height the content should occupy
        min_fill_ratio: Below this fill the content is sparse and grows
        max_fill_ratio: Above this fill (but still on the page) the content shrinks slightly
        near_miss_ratio: Content under page * target * near_miss_ratio grows gently
        tolerance_ratio: Minimum relative scale change worth applying (hysteresis)
        min_scale: Absolute scale floor when shrinking for overflow
        grow_ceiling_ratio: Cap (x base) when growing sparse content
        near_miss_ceiling_ratio: Cap (x base) for near-miss growth
        safety_floor_ratio: Floor (x base) for the safety shrink
        snap_back_ratio: Overrides this close to base are removed once content fits
        debounce_interval_ms: Minimum spacing between applied adjustments
        settle_delay_ms: Wait after a notification before measuring
        cooldown_ms: Lock held after an applied change so the surface can re-layout
        snap_back_delay_ms: Delay before a snap-back is applied
        reset_delay_ms: Delay between reset() and its forced measurement
        warning_display_ms: How long the overflow warning stays active
        measure_timeout_ms: Timeout for asynchronous measurement probes
    """

    target_fill_ratio: float = DEFAULT_FILL["target_fill_ratio"]
    min_fill_ratio: float = DEFAULT_FILL["min_fill_ratio"]
    max_fill_ratio: float = DEFAULT_FILL["max_fill_ratio"]
    near_miss_ratio: float = DEFAULT_FILL["near_miss_ratio"]
    tolerance_ratio: float = DEFAULT_FILL["tolerance_ratio"]

    min_scale: float = DEFAULT_BOUNDS["min_scale"]
    grow_ceiling_ratio: float = DEFAULT_BOUNDS["grow_ceiling_ratio"]
    near_miss_ceiling_ratio: float = DEFAULT_BOUNDS["near_miss_ceiling_ratio"]
    safety_floor_ratio: float = DEFAULT_BOUNDS["safety_floor_ratio"]
    snap_back_ratio: float = DEFAULT_BOUNDS["snap_back_ratio"]

    debounce_interval_ms: float = DEFAULT_TIMING["debounce_interval_ms"]
    settle_delay_ms: float = DEFAULT_TIMING["settle_delay_ms"]
    cooldown_ms: float = DEFAULT_TIMING["cooldown_ms"]
    snap_back_delay_ms: float = DEFAULT_TIMING["snap_back_delay_ms"]
    reset_delay_ms: float = DEFAULT_TIMING["reset_delay_ms"]
    warning_display_ms: float = DEFAULT_TIMING["warning_display_ms"]
    measure_timeout_ms: float = DEFAULT_TIMING["measure_timeout_ms"]

    def __post_init__(self):
        for name in RATIO_FIELDS:
            _require(getattr(self, name) > 0, name, getattr(self, name), "must be > 0")

        _require(self.min_scale > 0, "min_scale", self.min_scale, "must be > 0")

        _require(
            self.min_fill_ratio < self.target_fill_ratio < self.max_fill_ratio <= 1,
            "target_fill_ratio",
            self.target_fill_ratio,
            "min_fill_ratio < target_fill_ratio < max_fill_ratio <= 1 "
            f"(got {self.min_fill_ratio} / {self.target_fill_ratio} / {self.max_fill_ratio})",
        )
        _require(self.near_miss_ratio <= 1, "near_miss_ratio", self.near_miss_ratio, "must be <= 1")
        _require(
            self.safety_floor_ratio <= 1 <= self.near_miss_ceiling_ratio <= self.grow_ceiling_ratio,
            "grow_ceiling_ratio",
            self.grow_ceiling_ratio,
            "safety_floor_ratio <= 1 <= near_miss_ceiling_ratio <= grow_ceiling_ratio "
            f"(got {self.safety_floor_ratio} / {self.near_miss_ceiling_ratio} / {self.grow_ceiling_ratio})",
        )

        for name in TIMING_FIELDS:
            _require(getattr(self, name) >= 0, name, getattr(self, name), "must be >= 0")
        _require(
            self.measure_timeout_ms > 0, "measure_timeout_ms", self.measure_timeout_ms, "must be > 0"
        )

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "FitPolicy":
        """
        Build a policy from a flat mapping (e.g. a resolved YAML preset).

        Args:
            values: Field name -> value; missing fields keep their defaults

        Returns:
            Validated FitPolicy

        Raises:
            PolicyValidationError: If a key is not a policy field or a constraint fails
        """
        known = {f.name for f in fields(cls)}
        for key in values:
            if key not in known:
                raise PolicyValidationError(
                    f"Unknown policy field '{key}'",
                    field_name=key,
                    value=values[key],
                    rule=f"one of: {', '.join(sorted(known))}",
                )
        return cls(**{key: float(value) for key, value in values.items()})

    def to_dict(self) -> Dict[str, float]:
        """Flat field -> value mapping."""
        return dataclasses.asdict(self)

    def replace(self, **overrides: Any) -> "FitPolicy":
        """Return a validated copy with some fields changed."""
        return FitPolicy.from_dict({**self.to_dict(), **overrides})

    def seconds(self, name: str) -> float:
        """Value of a *_ms timing field, in seconds (asyncio timers take seconds)."""
        if name not in TIMING_FIELDS:
            raise KeyError(f"Not a timing field: {name}")
        return getattr(self, name) / 1000.0


def _require(condition: bool, field_name: str, value: Any, rule: str) -> None:
    if not condition:
        raise PolicyValidationError(
            f"Invalid fit policy: {field_name}", field_name=field_name, value=value, rule=rule
        )
