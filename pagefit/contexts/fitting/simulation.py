"""
Simulated render surface and scripted fit sessions.

The surface models a preview whose content height grows with the applied
scale: height = natural_height * (scale / base_scale) ** exponent. Every
applied scale and every content edit fires its change signal, the way a
layout observer would after a re-layout.

run_session() drives a controller through a sequence of content edits and
records a timeline; the fit_preview CLI and the integration tests use it.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pagefit.contexts.fitting.controller import FitController, OverflowWarning, create_controller
from pagefit.contexts.fitting.defaults import A4_HEIGHT_PX
from pagefit.contexts.fitting.exceptions import MeasurementUnavailableError
from pagefit.contexts.fitting.logger import _log_info
from pagefit.contexts.fitting.notifications import ChangeSignal, NotificationAdapter
from pagefit.contexts.fitting.policy import FitPolicy

POLL_INTERVAL_S = 0.005


class SimulatedRenderSurface:
    """
    Deterministic stand-in for a rendered preview.

    Attributes:
        natural_height: Content height at base scale
        base_scale: Scale at which natural_height was measured
        exponent: Growth of height with scale (1.0 = linear)
        latency_ms: Delay before measure() answers
        mounted: Unmounted surfaces answer None
        fail_next: Number of upcoming measurements that raise
        measure_count: Measurements answered so far
    """

    def __init__(
        self,
        natural_height: float,
        base_scale: float,
        exponent: float = 1.0,
        latency_ms: float = 0.0,
        signal: Optional[ChangeSignal] = None,
    ):
        self.natural_height = float(natural_height)
        self.base_scale = float(base_scale)
        self.exponent = exponent
        self.latency_ms = latency_ms
        self.signal = signal or ChangeSignal()
        self.mounted = True
        self.fail_next = 0
        self.measure_count = 0
        self.scale: Optional[float] = None

    @property
    def effective_scale(self) -> float:
        return self.scale if self.scale is not None else self.base_scale

    @property
    def height(self) -> float:
        """Current content height at the applied scale."""
        return self.natural_height * (self.effective_scale / self.base_scale) ** self.exponent

    def apply_scale(self, scale: Optional[float]) -> None:
        """Scale-change callback: re-layout and fire the change signal."""
        self.scale = scale
        self.signal.emit()

    def edit(self, natural_height: float) -> None:
        """Simulate a content edit that changes the natural height."""
        self.natural_height = float(natural_height)
        self.signal.emit()

    async def measure(self, page_id: str) -> Optional[float]:
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000.0)
        if not self.mounted:
            return None
        if self.fail_next > 0:
            self.fail_next -= 1
            raise MeasurementUnavailableError(page_id, "simulated render failure")
        self.measure_count += 1
        return self.height


@dataclass
class FitEvent:
    """One entry of a session timeline."""

    elapsed_s: float
    kind: str  # "reset" | "edit" | "scale" | "warning"
    value: Optional[float] = None
    detail: str = ""


@dataclass
class SessionResult:
    """Outcome of a scripted fit session."""

    events: List[FitEvent] = field(default_factory=list)
    final_scale: Optional[float] = None
    final_height: float = 0.0
    page_height: float = A4_HEIGHT_PX
    measure_count: int = 0

    @property
    def scale_changes(self) -> List[FitEvent]:
        return [event for event in self.events if event.kind == "scale"]

    @property
    def warnings(self) -> List[FitEvent]:
        return [event for event in self.events if event.kind == "warning"]

    @property
    def final_fill(self) -> float:
        return self.final_height / self.page_height


async def wait_until_settled(
    controller: FitController,
    adapter: Optional[NotificationAdapter] = None,
    quiet_ms: float = 50.0,
    timeout_ms: float = 10_000.0,
) -> bool:
    """
    Wait until controller (and adapter) stay idle for quiet_ms.

    Returns:
        True if settled, False on timeout
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000.0
    quiet_since = None

    while loop.time() < deadline:
        busy = not controller.is_settled or (adapter is not None and adapter.has_pending)
        if busy:
            quiet_since = None
        elif quiet_since is None:
            quiet_since = loop.time()
        elif loop.time() - quiet_since >= quiet_ms / 1000.0:
            return True
        await asyncio.sleep(POLL_INTERVAL_S)

    return False


async def run_session(
    natural_heights: Sequence[float],
    base_scale: float,
    policy: Optional[FitPolicy] = None,
    page_height: float = A4_HEIGHT_PX,
    context_key: str = "",
    exponent: float = 1.0,
    latency_ms: float = 0.0,
) -> SessionResult:
    """
    Drive a controller through a sequence of content edits.

    The first height is the content present at reset(); each further height
    is applied as an edit once the previous one has settled.

    Args:
        natural_heights: Content heights at base scale, in page units
        base_scale: Nominal scale (font size)
        policy: Fit policy (defaults to FitPolicy())
        page_height: Page height in page units
        context_key: Label for logs (e.g. "harvard+Inter")
        exponent: Height growth with scale for the simulated surface
        latency_ms: Simulated measurement latency

    Returns:
        SessionResult with the timeline of resets, edits, scale changes and warnings
    """
    if not natural_heights:
        raise ValueError("natural_heights must contain at least one height")

    policy = policy or FitPolicy()
    loop = asyncio.get_running_loop()
    started = loop.time()
    result = SessionResult(page_height=page_height)

    def record(kind: str, value: Optional[float] = None, detail: str = "") -> None:
        result.events.append(FitEvent(loop.time() - started, kind, value, detail))

    surface = SimulatedRenderSurface(
        natural_heights[0], base_scale, exponent=exponent, latency_ms=latency_ms
    )

    def on_scale_change(scale: Optional[float]) -> None:
        record("scale", scale, "base" if scale is None else "")
        surface.apply_scale(scale)

    def on_overflow_warning(warning: OverflowWarning) -> None:
        record("warning", warning.proposed_scale, warning.message)

    controller = create_controller(
        policy,
        surface.measure,
        page_height=page_height,
        on_scale_change=on_scale_change,
        on_overflow_warning=on_overflow_warning,
    )
    adapter = NotificationAdapter(controller)
    adapter.connect(surface.signal.subscribe)

    quiet_ms = policy.snap_back_delay_ms + policy.debounce_interval_ms + 50
    settle_timeout_ms = 20 * (
        policy.reset_delay_ms + policy.settle_delay_ms + policy.cooldown_ms + quiet_ms + latency_ms
    )

    try:
        record("reset", base_scale, context_key)
        controller.reset(base_scale, context_key)
        await wait_until_settled(controller, adapter, quiet_ms, settle_timeout_ms)

        for height in natural_heights[1:]:
            record("edit", height)
            surface.edit(height)
            await wait_until_settled(controller, adapter, quiet_ms, settle_timeout_ms)
    finally:
        adapter.close()
        controller.close()

    result.final_scale = controller.current_scale()
    result.final_height = surface.height
    result.measure_count = surface.measure_count
    _log_info(
        f"Session done: {len(result.scale_changes)} scale change(s), "
        f"{len(result.warnings)} warning(s), final fill {result.final_fill:.1%}"
    )
    return result
