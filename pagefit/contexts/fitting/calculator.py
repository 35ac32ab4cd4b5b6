"""
Fit calculator: measured height -> scale decision.

Pure function over five mutually exclusive height zones, evaluated in order:

1. overflow        measured > page                      shrink (floor: min_scale), always warns
2. sparse          measured < page * min_fill           grow (cap: base * grow_ceiling_ratio)
3. near miss       measured < page * target * near_miss grow gently (cap: base * near_miss_ceiling_ratio)
4. safety shrink   page * max_fill < measured <= page   shrink slightly (floor: base * safety_floor_ratio)
5. within band     anything else                        no change

A single proportional controller would oscillate at the boundary between
"fits" and "needs shrinking": every shrink drops the measured height under
the overflow line and invites a grow on the next cycle. The zones plus the
tolerance gate (should_apply only when the relative change exceeds
tolerance_ratio) break that loop. Overflow is the only zone that warns
unconditionally.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from pagefit.contexts.fitting.policy import FitPolicy


class FitZone(str, Enum):
    """Height zone a measurement falls into."""

    OVERFLOW = "overflow"
    SPARSE = "sparse"
    NEAR_MISS = "near_miss"
    SAFETY_SHRINK = "safety_shrink"
    WITHIN_BAND = "within_band"


@dataclass(frozen=True)
class FitDecision:
    """
    Result of one fit calculation.

    Attributes:
        proposed_scale: Scale the content should use
        should_apply: Whether the change clears the tolerance band
        should_warn_overflow: True whenever the content overflowed the page
        zone: Height zone the measurement fell into
        relative_change: |proposed - current| / current
        could_not_fit: Overflow persists even at the minimum scale
    """

    proposed_scale: float
    should_apply: bool
    should_warn_overflow: bool
    zone: FitZone
    relative_change: float = 0.0
    could_not_fit: bool = False


def scale_bounds(base_scale: float, policy: FitPolicy) -> Tuple[float, float]:
    """
    Range every proposed scale is clamped to.

    The lower bound is the absolute min_scale, or the base scale itself when
    the base is already below it (overflow never grows the content).

    Args:
        base_scale: Nominal scale
        policy: Fit policy

    Returns:
        (lowest, highest) allowed scale
    """
    return min(policy.min_scale, base_scale), base_scale * policy.grow_ceiling_ratio


def relative_change(proposed: float, current: float) -> float:
    """Relative difference between two scales, measured against the current one."""
    return abs(proposed - current) / current


def classify(measured_height: float, page_height: float, policy: FitPolicy) -> FitZone:
    """Zone a measured height falls into (see module docstring for the order)."""
    if measured_height > page_height:
        return FitZone.OVERFLOW
    if measured_height < page_height * policy.min_fill_ratio:
        return FitZone.SPARSE
    if measured_height < page_height * policy.target_fill_ratio * policy.near_miss_ratio:
        return FitZone.NEAR_MISS
    if measured_height > page_height * policy.max_fill_ratio:
        return FitZone.SAFETY_SHRINK
    return FitZone.WITHIN_BAND


def decide(
    measured_height: float,
    page_height: float,
    current_scale: Optional[float],
    base_scale: Optional[float],
    policy: FitPolicy,
) -> FitDecision:
    """
    Decide the next content scale from a measured height.

    Args:
        measured_height: Rendered content height (page units)
        page_height: Available page height (same units)
        current_scale: Scale in effect (None means no override, i.e. base)
        base_scale: Nominal scale (None on the first run: current is used)
        policy: Fit policy

    Returns:
        FitDecision

    Raises:
        ValueError: If page_height is not positive, measured_height is negative,
            or neither scale is known

    Example:
        >>> decision = decide(1200, 1000, 11, 11, FitPolicy())
        >>> round(decision.proposed_scale, 2), decision.should_apply
        (8.75, True)
    """
    if page_height <= 0:
        raise ValueError(f"page_height must be positive, got: {page_height}")
    if measured_height < 0:
        raise ValueError(f"measured_height must not be negative, got: {measured_height}")

    if current_scale is None and base_scale is None:
        raise ValueError("At least one of current_scale or base_scale is required")
    if base_scale is None:
        base_scale = current_scale
    if current_scale is None:
        current_scale = base_scale

    zone = classify(measured_height, page_height, policy)
    if zone is FitZone.WITHIN_BAND:
        return FitDecision(
            proposed_scale=current_scale,
            should_apply=False,
            should_warn_overflow=False,
            zone=zone,
        )

    target_height = page_height * policy.target_fill_ratio
    lowest, highest = scale_bounds(base_scale, policy)

    # Zero height means nothing rendered yet: grow as far as allowed
    if measured_height == 0:
        proportional = highest
    else:
        proportional = current_scale * target_height / measured_height

    if zone is FitZone.OVERFLOW:
        proposed = max(lowest, proportional)
    elif zone is FitZone.SPARSE:
        proposed = min(highest, proportional)
    elif zone is FitZone.NEAR_MISS:
        proposed = min(base_scale * policy.near_miss_ceiling_ratio, proportional)
    else:
        proposed = max(base_scale * policy.safety_floor_ratio, proportional)

    proposed = min(highest, max(lowest, proposed))
    change = relative_change(proposed, current_scale)

    could_not_fit = False
    if zone is FitZone.OVERFLOW:
        projected_height = measured_height * proposed / current_scale
        could_not_fit = proposed <= lowest and projected_height > page_height

    return FitDecision(
        proposed_scale=proposed,
        should_apply=change > policy.tolerance_ratio,
        should_warn_overflow=zone is FitZone.OVERFLOW,
        zone=zone,
        relative_change=change,
        could_not_fit=could_not_fit,
    )
