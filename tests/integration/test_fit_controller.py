"""
Integration tests for FitController - drives the state machine on a real event loop.

Timings come from the `policy` fixture (settle 10ms, reset 5ms, debounce 20ms,
cooldown 40ms, snap-back 30ms); sleeps leave generous margins around them.
"""

import asyncio

import pytest

from pagefit.contexts.fitting.controller import (
    MESSAGE_COULD_NOT_FIT,
    MESSAGE_SCALED,
    FitPhase,
    create_controller,
)
from pagefit.contexts.fitting.exceptions import MeasurementUnavailableError, PolicyValidationError
from pagefit.contexts.fitting.simulation import SimulatedRenderSurface

PAGE = 1000.0
BASE = 11.0
OVERFLOW_SCALE = 11 * 955 / 1200


def make_controller(policy, surface, recorder, **kwargs):
    return create_controller(
        policy,
        surface.measure,
        page_height=PAGE,
        on_scale_change=recorder.on_scale_change,
        on_overflow_warning=recorder.on_overflow_warning,
        **kwargs,
    )


async def wait(ms):
    await asyncio.sleep(ms / 1000.0)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reset_schedules_forced_measurement(policy, surface, recorder):
    """Test reset() measures and applies an overflow shrink with one warning."""
    surface.height = 1200
    controller = make_controller(policy, surface, recorder)

    controller.reset(BASE, "harvard+Inter")
    assert controller.state.phase is FitPhase.SCHEDULED
    await wait(30)

    assert surface.calls == ["page-1"]
    assert controller.current_scale() == pytest.approx(OVERFLOW_SCALE)
    assert recorder.scales == [pytest.approx(OVERFLOW_SCALE)]
    assert len(recorder.warnings) == 1
    assert recorder.warnings[0].message == MESSAGE_SCALED
    assert recorder.warnings[0].context_key == "harvard+Inter"
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_overflow_then_fit_sequence(policy, surface, recorder):
    """Test 1200 -> 1010 -> 960: one applied shrink, one warning, then stable."""
    surface.height = 1200
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(80)  # forced cycle + cooldown

    surface.height = 1010
    controller.notify()
    await wait(40)
    assert controller.current_scale() == pytest.approx(OVERFLOW_SCALE)

    surface.height = 960
    controller.notify()
    await wait(40)

    assert len(surface.calls) == 3
    assert controller.current_scale() == pytest.approx(OVERFLOW_SCALE)
    assert len(recorder.scales) == 1
    assert len(recorder.warnings) == 1
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_sparse_content_grows(policy, surface, recorder):
    """Test sparse content at 700 grows to base * 1.25."""
    surface.height = 700
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(30)

    assert controller.current_scale() == pytest.approx(13.75)
    assert controller.effective_scale() == pytest.approx(13.75)
    assert recorder.warnings == []
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_content_within_band_stays_unscaled(policy, surface, recorder):
    """Test repeated notifications on fitting content never introduce an override."""
    surface.height = 950
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(20)

    for _ in range(5):
        controller.notify()
        await wait(25)

    assert len(surface.calls) == 6
    assert controller.current_scale() is None
    assert recorder.scales == []
    assert controller.state.phase is FitPhase.IDLE
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_notifications_coalesce(policy, surface, recorder):
    """Test a burst of notify() calls produces a single measurement."""
    surface.height = 950
    controller = make_controller(policy, surface, recorder, base_scale=BASE)

    for _ in range(10):
        controller.notify()
    assert controller.state.phase is FitPhase.SCHEDULED
    await wait(40)

    assert len(surface.calls) == 1
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_notify_without_base_scale_is_dropped(policy, surface, recorder):
    """Test nothing is measured until a base scale is known."""
    surface.height = 950
    controller = make_controller(policy, surface, recorder)

    controller.notify()
    await wait(30)

    assert surface.calls == []
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_notify_while_locked_is_dropped(policy, surface, recorder):
    """Test notifications during the post-apply cooldown are ignored."""
    policy = policy.replace(cooldown_ms=200)
    surface.height = 1200
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(30)
    assert controller.is_locked

    surface.height = 700
    controller.notify()
    await wait(50)

    assert len(surface.calls) == 1
    assert controller.current_scale() == pytest.approx(OVERFLOW_SCALE)

    await wait(200)
    assert not controller.is_locked
    assert controller.state.phase is FitPhase.IDLE
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_applied_adjustments_respect_debounce_spacing(policy, surface, recorder):
    """Test two applied changes are never closer than debounce_interval_ms."""
    policy = policy.replace(cooldown_ms=0, debounce_interval_ms=100, min_scale=1.0)
    surface.height = 2000
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)

    for _ in range(20):
        controller.notify()
        await wait(25)

    assert len(recorder.scales) >= 3
    gaps = [later - earlier for earlier, later in zip(recorder.times, recorder.times[1:])]
    assert all(gap >= 0.1 - 1e-3 for gap in gaps)
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_scale_stays_bounded(policy, surface, recorder):
    """Test the override never leaves [min_scale, base * 1.25] across wild measurements."""
    policy = policy.replace(cooldown_ms=0, debounce_interval_ms=0)
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)

    for height in [5000, 100, 3000, 0, 1200, 400, 990, 10000, 10]:
        surface.height = height
        controller.notify()
        await wait(20)
        scale = controller.current_scale()
        assert scale is None or 8.0 <= scale <= BASE * 1.25

    assert recorder.scales
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unmounted_surface_is_a_no_op(policy, surface, recorder):
    """Test a None measurement ends the cycle with no change and no lock."""
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(30)

    assert surface.calls == ["page-1"]
    assert controller.current_scale() is None
    assert not controller.is_locked
    assert controller.state.phase is FitPhase.IDLE
    assert recorder.scales == [] and recorder.warnings == []
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_failing_probe_is_absorbed(policy, recorder):
    """Test probe exceptions never reach the caller and the controller recovers."""
    surface = SimulatedRenderSurface(1200, BASE)
    surface.fail_next = 1
    controller = make_controller(policy, surface, recorder)

    controller.reset(BASE)
    await wait(30)
    assert controller.current_scale() is None
    assert not controller.is_locked

    controller.notify()
    await wait(30)
    assert controller.current_scale() == pytest.approx(OVERFLOW_SCALE)
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_probe_error_types_are_absorbed(policy, surface, recorder):
    """Test arbitrary exceptions from the surface are treated as unavailable."""
    surface.error = MeasurementUnavailableError("page-1", "not mounted")
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(30)

    surface.error = ZeroDivisionError("layout bug")
    controller.notify()
    await wait(30)

    assert len(surface.calls) == 2
    assert controller.current_scale() is None
    assert not controller.is_locked
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cancelled_probe_releases_lock(policy, recorder):
    """Test a measurement future cancelled by the surface ends the cycle cleanly."""
    loop = asyncio.get_running_loop()
    calls = []

    def measure(page_id):
        calls.append(page_id)
        pending = loop.create_future()
        loop.call_later(0.005, pending.cancel)
        return pending

    controller = create_controller(
        policy, measure, page_height=PAGE, on_scale_change=recorder.on_scale_change
    )
    controller.reset(BASE)
    await wait(40)

    assert not controller.is_locked
    assert controller.state.phase is FitPhase.IDLE
    assert recorder.scales == []

    controller.notify()
    await wait(40)
    assert len(calls) == 2
    assert not controller.is_locked
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
@pytest.mark.parametrize("height", ["n/a", float("nan"), float("inf"), -5.0])
async def test_unusable_heights_are_absorbed(policy, surface, recorder, height):
    """Test non-numeric and non-finite heights are treated as unavailable."""
    surface.height = height
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(30)

    assert not controller.is_locked
    assert controller.state.phase is FitPhase.IDLE
    assert recorder.scales == []

    surface.height = 1200
    controller.notify()
    await wait(30)
    assert controller.current_scale() == pytest.approx(OVERFLOW_SCALE)
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_hanging_probe_times_out(policy, recorder):
    """Test a probe that never resolves releases the lock after the timeout."""
    never = asyncio.get_running_loop().create_future()

    def measure(page_id):
        return never

    controller = create_controller(
        policy, measure, page_height=PAGE, on_scale_change=recorder.on_scale_change
    )
    controller.reset(BASE)
    await wait(30)
    assert controller.is_locked
    assert controller.state.phase is FitPhase.MEASURING

    await wait(120)
    assert not controller.is_locked
    assert controller.state.phase is FitPhase.IDLE
    assert recorder.scales == []
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reset_cancels_in_flight_cycle(policy, recorder):
    """Test reset() mid-measurement drops the stale result and re-measures."""
    surface = SimulatedRenderSurface(1200, BASE, latency_ms=50)
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(20)
    assert controller.state.phase is FitPhase.MEASURING

    surface.natural_height = 950
    controller.reset(10.0, "notion+Inter")
    state = controller.state
    assert state.base_scale == 10.0
    assert state.current_scale is None
    assert state.adjustment_in_flight is False
    assert state.phase is FitPhase.SCHEDULED

    await wait(100)
    assert recorder.scales == []
    assert recorder.warnings == []
    assert surface.measure_count == 1
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reset_clears_override_and_warning(policy, surface, recorder):
    """Test reset() removes the override, notifies None and re-arms the warning."""
    surface.height = 1200
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(30)
    assert controller.state.warning_active

    controller.reset(BASE)
    assert controller.current_scale() is None
    assert recorder.scales[-1] is None
    assert not controller.state.warning_active
    assert controller.state.last_adjustment_at is None

    await wait(30)
    assert len(recorder.warnings) == 2
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_warning_once_per_episode(policy, surface, recorder):
    """Test the warning is suppressed while active and re-arms after it expires."""
    policy = policy.replace(warning_display_ms=100)
    surface.height = 1200
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(60)

    surface.height = 1010
    controller.notify()
    await wait(30)
    assert len(recorder.warnings) == 1

    await wait(100)
    assert not controller.state.warning_active
    controller.notify()
    await wait(30)
    assert len(recorder.warnings) == 2
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_could_not_fit_warning(policy, surface, recorder):
    """Test overflow that survives the minimum scale is reported as could-not-fit."""
    surface.height = 3000
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(30)

    assert controller.current_scale() == 8.0
    assert recorder.warnings[0].could_not_fit is True
    assert recorder.warnings[0].message == MESSAGE_COULD_NOT_FIT
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_could_not_fit_warning_at_floor_without_change(policy, surface, recorder):
    """Test overflow at the minimum scale warns even though nothing is applied."""
    surface.height = 1200
    controller = make_controller(policy, surface, recorder)
    controller.reset(8.0)
    await wait(30)

    assert recorder.scales == []
    assert controller.current_scale() is None
    assert len(recorder.warnings) == 1
    assert recorder.warnings[0].could_not_fit is True
    assert recorder.warnings[0].proposed_scale == 8.0
    assert recorder.warnings[0].message == MESSAGE_COULD_NOT_FIT
    assert not controller.is_locked
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_override_near_base_snaps_back(policy, recorder):
    """Test an override within 8% of base is removed once content fits."""
    policy = policy.replace(tolerance_ratio=0.01)
    surface = SimulatedRenderSurface(920, 10.0)

    def on_scale_change(scale):
        recorder.on_scale_change(scale)
        surface.scale = scale

    controller = create_controller(
        policy, surface.measure, page_height=PAGE, on_scale_change=on_scale_change
    )
    controller.reset(10.0)
    await wait(30)
    assert controller.current_scale() == pytest.approx(10 * 955 / 920)

    await wait(30)  # cooldown
    controller.notify()
    await wait(80)  # settle + snap-back delay

    assert recorder.scales == [pytest.approx(10 * 955 / 920), None]
    assert controller.current_scale() is None
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_disabled_controller_does_nothing(policy, surface, recorder):
    """Test a disabled controller neither schedules nor measures."""
    surface.height = 1200
    controller = make_controller(policy, surface, recorder, enabled=False)

    controller.reset(BASE)
    controller.notify()
    await wait(30)

    assert surface.calls == []
    assert controller.state.base_scale == BASE
    assert controller.state.phase is FitPhase.IDLE
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_close_cancels_pending_work(policy, surface, recorder):
    """Test close() cancels the pending measurement and ignores later calls."""
    surface.height = 1200
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    controller.close()

    controller.notify()
    controller.reset(BASE)
    await wait(30)

    assert surface.calls == []
    assert controller.is_closed
    assert controller.is_settled


@pytest.mark.integration
@pytest.mark.asyncio
async def test_trigger_updates_base_without_reset(policy, surface, recorder):
    """Test trigger() keeps the override and measures against the new base."""
    surface.height = 1200
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(80)

    surface.height = 950
    controller.trigger(12.0, "harvard+Georgia")
    await wait(30)

    state = controller.state
    assert state.base_scale == 12.0
    assert state.context_key == "harvard+Georgia"
    assert state.current_scale == pytest.approx(OVERFLOW_SCALE)
    assert len(surface.calls) == 2
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_trigger_with_smaller_base_clamps_override(policy, surface, recorder):
    """Test an override above the new base's ceiling is clamped and reported."""
    surface.height = 700
    controller = make_controller(policy, surface, recorder)
    controller.reset(BASE)
    await wait(80)
    assert controller.current_scale() == pytest.approx(13.75)

    surface.height = 950
    controller.trigger(8.0)
    ceiling = 8.0 * policy.grow_ceiling_ratio
    assert controller.current_scale() == pytest.approx(ceiling)
    await wait(40)

    assert recorder.scales == [pytest.approx(13.75), pytest.approx(ceiling)]
    assert controller.current_scale() <= ceiling
    assert not controller.is_locked
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_callback_errors_are_absorbed(policy, surface):
    """Test a failing scale callback does not break the controller."""

    def broken(scale):
        raise RuntimeError("preview gone")

    surface.height = 1200
    controller = create_controller(policy, surface.measure, page_height=PAGE, on_scale_change=broken)
    controller.reset(BASE)
    await wait(80)

    assert controller.current_scale() == pytest.approx(OVERFLOW_SCALE)
    assert not controller.is_locked
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_async_probe_is_awaited(policy, recorder):
    """Test awaitable measurements are supported."""

    async def measure(page_id):
        await asyncio.sleep(0.005)
        return 700

    controller = create_controller(
        policy, measure, page_height=PAGE, on_scale_change=recorder.on_scale_change
    )
    controller.reset(BASE)
    await wait(40)

    assert recorder.scales == [pytest.approx(13.75)]
    controller.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_create_controller_validates_policy(surface):
    """Test invalid policy mappings fail at creation time."""
    controller = create_controller({"tolerance_ratio": 0.1}, surface.measure)
    assert controller.policy.tolerance_ratio == 0.1
    controller.close()

    with pytest.raises(PolicyValidationError):
        create_controller({"min_fill_ratio": 0.99}, surface.measure)

    with pytest.raises(ValueError):
        create_controller(None, surface.measure, page_height=0)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reset_rejects_non_positive_base(policy, surface):
    """Test base scale validation."""
    controller = create_controller(policy, surface.measure)

    with pytest.raises(ValueError):
        controller.reset(0)
    controller.close()
