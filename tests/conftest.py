"""Shared fixtures for fitting tests."""

import asyncio

import pytest

from pagefit.contexts.fitting.policy import FitPolicy


@pytest.fixture
def policy() -> FitPolicy:
    """Default thresholds with millisecond-scale timing."""
    return FitPolicy(
        debounce_interval_ms=20,
        settle_delay_ms=10,
        cooldown_ms=40,
        snap_back_delay_ms=30,
        reset_delay_ms=5,
        warning_display_ms=300,
        measure_timeout_ms=100,
    )


class ScriptedSurface:
    """
    Render surface that answers a fixed height (or None) and records calls.

    Set `height` between notifications to simulate content changes.
    """

    def __init__(self, height=None, error=None):
        self.height = height
        self.error = error
        self.calls = []

    def measure(self, page_id):
        self.calls.append(page_id)
        if self.error is not None:
            raise self.error
        return self.height


class Recorder:
    """Collects scale-change and warning callbacks with loop timestamps."""

    def __init__(self):
        self.scales = []
        self.times = []
        self.warnings = []

    def on_scale_change(self, scale):
        self.scales.append(scale)
        self.times.append(asyncio.get_running_loop().time())

    def on_overflow_warning(self, warning):
        self.warnings.append(warning)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def surface() -> ScriptedSurface:
    return ScriptedSurface()
