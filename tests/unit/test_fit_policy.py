"""Unit tests for FitPolicy validation."""

import dataclasses

import pytest

from pagefit.contexts.fitting.exceptions import PolicyValidationError
from pagefit.contexts.fitting.policy import FitPolicy


@pytest.mark.unit
def test_default_policy_values():
    """Test shipped defaults match the tuned thresholds."""
    policy = FitPolicy()

    assert policy.target_fill_ratio == 0.955
    assert policy.min_fill_ratio == 0.90
    assert policy.max_fill_ratio == 0.98
    assert policy.tolerance_ratio == 0.20
    assert policy.debounce_interval_ms == 300
    assert policy.settle_delay_ms == 250
    assert policy.min_scale == 8.0
    assert policy.grow_ceiling_ratio == 1.25
    assert policy.near_miss_ceiling_ratio == 1.20
    assert policy.safety_floor_ratio == 0.85


@pytest.mark.unit
def test_policy_is_immutable():
    """Test that a policy cannot be mutated after construction."""
    policy = FitPolicy()

    with pytest.raises(dataclasses.FrozenInstanceError):
        policy.tolerance_ratio = 0.5


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [
        {"min_fill_ratio": 0.96},  # min above target
        {"max_fill_ratio": 0.95},  # max below target
        {"max_fill_ratio": 1.05},  # band past the page
        {"target_fill_ratio": 0.0},
        {"tolerance_ratio": 0.0},
        {"tolerance_ratio": -0.1},
        {"min_scale": 0.0},
        {"near_miss_ratio": 1.2},
        {"safety_floor_ratio": 1.1},
        {"near_miss_ceiling_ratio": 1.3},  # above grow ceiling
        {"grow_ceiling_ratio": 0.9},
        {"settle_delay_ms": -1},
        {"measure_timeout_ms": 0},
    ],
)
def test_invalid_policy_fails_fast(overrides):
    """Test that constraint violations raise at construction time."""
    with pytest.raises(PolicyValidationError):
        FitPolicy(**overrides)


@pytest.mark.unit
def test_validation_error_is_value_error_with_context():
    """Test that validation errors carry the field and the violated rule."""
    with pytest.raises(ValueError) as exc_info:
        FitPolicy(tolerance_ratio=0)

    error = exc_info.value
    assert isinstance(error, PolicyValidationError)
    assert error.field_name == "tolerance_ratio"
    assert error.value == 0
    assert "must be > 0" in str(error)


@pytest.mark.unit
def test_from_dict_keeps_defaults_for_missing_fields():
    """Test building a policy from a partial mapping."""
    policy = FitPolicy.from_dict({"tolerance_ratio": 0.1, "settle_delay_ms": 400})

    assert policy.tolerance_ratio == 0.1
    assert policy.settle_delay_ms == 400
    assert policy.target_fill_ratio == 0.955


@pytest.mark.unit
def test_from_dict_rejects_unknown_fields():
    """Test that typos in config keys are reported instead of ignored."""
    with pytest.raises(PolicyValidationError) as exc_info:
        FitPolicy.from_dict({"tolerence_ratio": 0.1})

    assert exc_info.value.field_name == "tolerence_ratio"


@pytest.mark.unit
def test_replace_returns_validated_copy():
    """Test that replace() derives a new policy and validates it."""
    policy = FitPolicy()
    tuned = policy.replace(cooldown_ms=900)

    assert tuned.cooldown_ms == 900
    assert policy.cooldown_ms == 600

    with pytest.raises(PolicyValidationError):
        policy.replace(min_fill_ratio=0.99)


@pytest.mark.unit
def test_seconds_converts_timing_fields():
    """Test millisecond fields convert to asyncio seconds."""
    policy = FitPolicy()

    assert policy.seconds("settle_delay_ms") == 0.25
    assert policy.seconds("warning_display_ms") == 5.0

    with pytest.raises(KeyError):
        policy.seconds("tolerance_ratio")
