"""
Page-fit controller.

Owns the fit state of one document preview and runs the feedback loop:

    notify() -> settle timer -> measure(page_id) -> decide() -> apply -> cooldown

States: IDLE -> SCHEDULED -> MEASURING -> APPLYING -> IDLE, with RESETTING as a
short-circuit back to a clean slate. The lock (adjustment_in_flight) spans
MEASURING and APPLYING; notifications arriving while it is held are dropped,
since an actively edited document keeps emitting them.

Scheduling is single-threaded asyncio: timers are loop.call_later handles and
each fit cycle runs as one task. The controller must be created inside a
running event loop.

Example:
    controller = create_controller(
        FitPolicy(),
        measure=surface.measure,
        on_scale_change=preview.set_font_size,
        on_overflow_warning=toast.show,
    )
    controller.reset(11, context_key="harvard+Inter")
    ...
    controller.notify()  # content edited
"""

import asyncio
import dataclasses
import inspect
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from pagefit.contexts.fitting.calculator import FitDecision, FitZone, decide, scale_bounds
from pagefit.contexts.fitting.defaults import A4_HEIGHT_PX
from pagefit.contexts.fitting.logger import (
    _log_error,
    log_adjustment,
    log_cycle_start,
    log_decision,
    log_dropped_notification,
    log_measurement_unavailable,
    log_overflow_warning,
    log_reset,
    log_snap_back,
)
from pagefit.contexts.fitting.policy import FitPolicy

Height = Optional[float]
MeasureFn = Callable[[str], Union[Height, Awaitable[Height]]]
ScaleCallback = Callable[[Optional[float]], Any]
WarningCallback = Callable[["OverflowWarning"], Any]

MESSAGE_SCALED = "Content was scaled down to fit on one page"
MESSAGE_COULD_NOT_FIT = "Content could not fit on one page even at the minimum size"


class FitPhase(str, Enum):
    """Controller state machine phases."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    MEASURING = "measuring"
    APPLYING = "applying"
    RESETTING = "resetting"


@dataclass
class FitState:
    """
    Mutable fit state, owned exclusively by one FitController.

    Attributes:
        current_scale: Active override (None means use base_scale)
        base_scale: Nominal scale set by reset()/trigger() (None until known)
        adjustment_in_flight: Lock held across MEASURING and APPLYING
        last_adjustment_at: Loop time (seconds) of the last applied change
        warning_active: Overflow warning shown and not yet expired
        context_key: Caller-defined label (e.g. "harvard+Inter"), logging only
        phase: Current state machine phase
    """

    current_scale: Optional[float] = None
    base_scale: Optional[float] = None
    adjustment_in_flight: bool = False
    last_adjustment_at: Optional[float] = None
    warning_active: bool = False
    context_key: str = ""
    phase: FitPhase = FitPhase.IDLE


@dataclass(frozen=True)
class OverflowWarning:
    """One-shot user notification that content was compressed to fit."""

    measured_height: float
    page_height: float
    proposed_scale: float
    could_not_fit: bool = False
    context_key: str = ""

    @property
    def message(self) -> str:
        return MESSAGE_COULD_NOT_FIT if self.could_not_fit else MESSAGE_SCALED


class FitController:
    """
    Debounced, serialized page-fit feedback loop for one preview surface.

    Args:
        policy: Validated fit policy
        measure: Probe returning the content height for a page id; may return
            None (surface not mounted), raise, or return an awaitable
        page_id: Identifier passed to measure()
        page_height: Page height in the units measure() reports
        base_scale: Initial base scale, if already known
        on_scale_change: Called with the new override (None when removed)
        on_overflow_warning: Called once per overflow episode
        enabled: Disabled controllers ignore notify() and skip measurements
    """

    def __init__(
        self,
        policy: FitPolicy,
        measure: MeasureFn,
        *,
        page_id: str = "page-1",
        page_height: float = A4_HEIGHT_PX,
        base_scale: Optional[float] = None,
        on_scale_change: Optional[ScaleCallback] = None,
        on_overflow_warning: Optional[WarningCallback] = None,
        enabled: bool = True,
    ):
        if page_height <= 0:
            raise ValueError(f"page_height must be positive, got: {page_height}")

        self.policy = policy
        self.page_id = page_id
        self.page_height = float(page_height)
        self.enabled = enabled

        self._measure = measure
        self._on_scale_change = on_scale_change
        self._on_overflow_warning = on_overflow_warning
        self._loop = asyncio.get_running_loop()

        self._state = FitState(base_scale=_validate_base_scale(base_scale))
        self._generation = 0
        self._closed = False

        self._pending: Optional[asyncio.TimerHandle] = None
        self._pending_forced = False
        self._cooldown: Optional[asyncio.TimerHandle] = None
        self._snap_back: Optional[asyncio.TimerHandle] = None
        self._warning_timer: Optional[asyncio.TimerHandle] = None
        self._cycle: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def current_scale(self) -> Optional[float]:
        """Active override for the render surface, or None for base scale."""
        return self._state.current_scale

    def effective_scale(self) -> Optional[float]:
        """Override if set, else base scale."""
        state = self._state
        return state.current_scale if state.current_scale is not None else state.base_scale

    @property
    def state(self) -> FitState:
        """Snapshot of the fit state (a copy; mutating it has no effect)."""
        return dataclasses.replace(self._state)

    @property
    def is_locked(self) -> bool:
        return self._state.adjustment_in_flight

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_settled(self) -> bool:
        """True when no timer, cycle, cooldown or snap-back is outstanding."""
        return (
            self._pending is None
            and self._cycle is None
            and self._cooldown is None
            and self._snap_back is None
            and not self._state.adjustment_in_flight
        )

    def notify(self) -> None:
        """
        Signal that the rendered content may have changed size.

        Coalesces bursts: each call restarts the single pending settle timer.
        Dropped while a cycle is in flight, within debounce_interval_ms of the
        last applied change, or before a base scale is known.
        """
        if self._closed or not self.enabled:
            return
        if self._state.base_scale is None:
            log_dropped_notification("no base scale yet")
            return
        if self._state.adjustment_in_flight:
            log_dropped_notification("adjustment in flight")
            return
        if self._pending is not None and self._pending_forced:
            # A reset's forced measurement is already queued
            return
        if self._within_debounce():
            log_dropped_notification("within debounce interval")
            return

        self._schedule(self.policy.seconds("settle_delay_ms"), forced=False)

    def trigger(self, base_scale: Optional[float] = None, context_key: Optional[str] = None) -> None:
        """
        Update base scale and context without resetting, then notify().

        Used for content edits where the current override should be kept as
        the starting point of the next cycle. An override outside the bounds
        of the new base is clamped and reported through on_scale_change.
        """
        state = self._state
        if base_scale is not None:
            state.base_scale = _validate_base_scale(base_scale)
        if context_key is not None:
            state.context_key = context_key

        # Keep the override inside the bounds of the new base
        if state.current_scale is not None and state.base_scale is not None and not self._closed:
            lowest, highest = scale_bounds(state.base_scale, self.policy)
            clamped = min(highest, max(lowest, state.current_scale))
            if clamped != state.current_scale:
                previous = state.current_scale
                state.current_scale = clamped
                log_adjustment(state.context_key, previous, clamped)
                self._emit(self._on_scale_change, clamped)

        self.notify()

    def reset(self, base_scale: float, context_key: str = "") -> None:
        """
        Start over with a new base scale (template, font or content swap).

        Cancels pending timers and any in-flight cycle, clears override,
        lock, warning and debounce history, then schedules a forced
        measurement after reset_delay_ms that bypasses lock and spacing.

        Args:
            base_scale: New nominal scale
            context_key: Caller label for logging (e.g. "harvard+Inter")

        Raises:
            ValueError: If base_scale is not positive
        """
        base_scale = _validate_base_scale(base_scale)
        if self._closed:
            return

        self._cancel_all()
        self._generation += 1

        state = self._state
        previous = state.current_scale
        state.phase = FitPhase.RESETTING
        state.base_scale = base_scale
        state.context_key = context_key
        state.current_scale = None
        state.adjustment_in_flight = False
        state.warning_active = False
        state.last_adjustment_at = None

        generation = self._generation
        log_reset(context_key, base_scale, self.page_id)
        if previous is not None:
            self._emit(self._on_scale_change, None)
            if generation != self._generation:
                return

        if self.enabled:
            self._schedule(self.policy.seconds("reset_delay_ms"), forced=True)
        else:
            state.phase = FitPhase.IDLE

    def close(self) -> None:
        """Cancel all timers and the in-flight cycle; later calls are no-ops."""
        self._cancel_all()
        self._generation += 1
        self._closed = True
        self._state.adjustment_in_flight = False
        self._state.phase = FitPhase.IDLE

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _schedule(self, delay: float, forced: bool) -> None:
        _cancel_handle(self._pending)
        self._pending_forced = forced
        self._pending = self._loop.call_later(delay, self._start_cycle, forced)
        self._state.phase = FitPhase.SCHEDULED

    def _start_cycle(self, forced: bool) -> None:
        self._pending = None
        self._pending_forced = False
        if self._closed:
            return
        if self._state.adjustment_in_flight and not forced:
            return

        self._state.adjustment_in_flight = True
        self._state.phase = FitPhase.MEASURING
        self._cycle = self._loop.create_task(self._run_cycle(forced, self._generation))

    async def _run_cycle(self, forced: bool, generation: int) -> None:
        state = self._state
        log_cycle_start(self.page_id, self.effective_scale(), forced)

        try:
            height = await self._probe()
            if height is not None:
                height = float(height)
        except asyncio.TimeoutError:
            self._abort_cycle(f"timed out after {self.policy.measure_timeout_ms:g}ms")
            return
        except asyncio.CancelledError:
            # reset() and close() bump the generation before cancelling this task
            if generation != self._generation:
                raise
            self._abort_cycle("measurement cancelled")
            return
        except Exception as e:
            # Render surface failures never reach the caller
            self._abort_cycle(f"{type(e).__name__}: {e}")
            return

        if height is None:
            self._abort_cycle("render surface not mounted")
            return
        if not math.isfinite(height) or height < 0:
            self._abort_cycle(f"unusable height {height}")
            return

        decision = decide(height, self.page_height, state.current_scale, state.base_scale, self.policy)
        log_decision(decision, height, self.page_height)

        if decision.should_warn_overflow:
            self._raise_warning(decision, height)
            if generation != self._generation:
                return

        if decision.should_apply and (forced or not self._within_debounce()):
            self._apply(decision.proposed_scale)
            return

        self._finish_cycle()
        # No snap-back while overflowing: dropping the override would overflow further
        if decision.zone is not FitZone.OVERFLOW:
            self._maybe_snap_back()

    async def _probe(self) -> Height:
        result = self._measure(self.page_id)
        if inspect.isawaitable(result):
            return await asyncio.wait_for(result, timeout=self.policy.seconds("measure_timeout_ms"))
        return result

    def _apply(self, scale: float) -> None:
        state = self._state
        previous = state.current_scale

        state.phase = FitPhase.APPLYING
        state.current_scale = scale
        state.last_adjustment_at = self._loop.time()
        _cancel_handle(self._snap_back)
        self._snap_back = None
        self._cycle = None

        # Lock stays held until the surface has had time to re-layout
        self._cooldown = self._loop.call_later(self.policy.seconds("cooldown_ms"), self._release_lock)

        log_adjustment(state.context_key, previous, scale)
        self._emit(self._on_scale_change, scale)

    def _release_lock(self) -> None:
        self._cooldown = None
        self._state.adjustment_in_flight = False
        if self._pending is None:
            self._state.phase = FitPhase.IDLE

    def _finish_cycle(self) -> None:
        self._cycle = None
        self._state.adjustment_in_flight = False
        if self._pending is None:
            self._state.phase = FitPhase.IDLE

    def _abort_cycle(self, reason: str) -> None:
        log_measurement_unavailable(self.page_id, reason)
        self._finish_cycle()

    def _within_debounce(self) -> bool:
        last = self._state.last_adjustment_at
        if last is None:
            return False
        return self._loop.time() - last < self.policy.seconds("debounce_interval_ms")

    # ------------------------------------------------------------------
    # Warning and snap-back
    # ------------------------------------------------------------------

    def _raise_warning(self, decision: FitDecision, measured_height: float) -> None:
        state = self._state
        if state.warning_active:
            return

        state.warning_active = True
        warning = OverflowWarning(
            measured_height=measured_height,
            page_height=self.page_height,
            proposed_scale=decision.proposed_scale,
            could_not_fit=decision.could_not_fit,
            context_key=state.context_key,
        )
        _cancel_handle(self._warning_timer)
        self._warning_timer = self._loop.call_later(
            self.policy.seconds("warning_display_ms"), self._clear_warning
        )

        log_overflow_warning(warning)
        self._emit(self._on_overflow_warning, warning)

    def _clear_warning(self) -> None:
        self._warning_timer = None
        self._state.warning_active = False

    def _maybe_snap_back(self) -> None:
        state = self._state
        if state.current_scale is None:
            return
        if abs(state.current_scale - state.base_scale) / state.base_scale >= self.policy.snap_back_ratio:
            return

        _cancel_handle(self._snap_back)
        self._snap_back = self._loop.call_later(
            self.policy.seconds("snap_back_delay_ms"), self._snap_back_to_base
        )

    def _snap_back_to_base(self) -> None:
        self._snap_back = None
        state = self._state
        if state.current_scale is None or state.adjustment_in_flight or self._pending is not None:
            return

        previous = state.current_scale
        state.current_scale = None
        state.warning_active = False
        _cancel_handle(self._warning_timer)
        self._warning_timer = None

        log_snap_back(state.context_key, previous)
        self._emit(self._on_scale_change, None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(self, callback: Optional[Callable[[Any], Any]], value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception as e:
            _log_error(f"Callback {getattr(callback, '__name__', callback)!s} failed: {e}")

    def _cancel_all(self) -> None:
        for handle in (self._pending, self._cooldown, self._snap_back, self._warning_timer):
            _cancel_handle(handle)
        self._pending = None
        self._pending_forced = False
        self._cooldown = None
        self._snap_back = None
        self._warning_timer = None

        cycle = self._cycle
        self._cycle = None
        if cycle is not None and not cycle.done() and cycle is not asyncio.current_task():
            cycle.cancel()


def create_controller(
    policy: Union[FitPolicy, Mapping[str, Any], None],
    measure: MeasureFn,
    **kwargs: Any,
) -> FitController:
    """
    Create a page-fit controller.

    Args:
        policy: FitPolicy, a mapping of policy fields, or None for defaults
        measure: Render surface probe, measure(page_id) -> height
        **kwargs: Forwarded to FitController (page_id, page_height, base_scale,
            on_scale_change, on_overflow_warning, enabled)

    Returns:
        FitController bound to the running event loop

    Raises:
        PolicyValidationError: If the policy is invalid
    """
    if policy is None:
        policy = FitPolicy()
    elif not isinstance(policy, FitPolicy):
        policy = FitPolicy.from_dict(policy)
    return FitController(policy, measure, **kwargs)


def _validate_base_scale(base_scale: Optional[float]) -> Optional[float]:
    if base_scale is None:
        return None
    if base_scale <= 0:
        raise ValueError(f"base_scale must be positive, got: {base_scale}")
    return float(base_scale)


def _cancel_handle(handle: Optional[asyncio.TimerHandle]) -> None:
    if handle is not None:
        handle.cancel()
