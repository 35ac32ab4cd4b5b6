"""
Notification adapter: native size-change events -> FitController.notify().

Layout observers fire in bursts (one event per re-layout pass, per keystroke).
The adapter collapses each burst into a single notify() so the controller's own
settle timer is not restarted needlessly.
"""

import asyncio
from typing import Any, Callable, List, Optional

from pagefit.contexts.fitting.controller import FitController
from pagefit.contexts.fitting.logger import _log_debug

Listener = Callable[..., Any]
Unsubscribe = Callable[[], None]


class ChangeSignal:
    """
    Minimal in-process change-notification source.

    Stands in for a layout observer: listeners are called synchronously, in
    subscription order, on every emit().
    """

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, *args: Any, **kwargs: Any) -> None:
        for listener in list(self._listeners):
            listener(*args, **kwargs)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class NotificationAdapter:
    """
    Debounces native change events before forwarding them to a controller.

    Args:
        controller: Controller to notify
        burst_window_ms: Quiet period that ends a burst (defaults to the
            controller policy's debounce_interval_ms)

    Example:
        adapter = NotificationAdapter(controller)
        adapter.connect(layout_signal.subscribe)
        ...
        adapter.close()  # preview unmounted
    """

    def __init__(self, controller: FitController, burst_window_ms: Optional[float] = None):
        if burst_window_ms is None:
            burst_window_ms = controller.policy.debounce_interval_ms
        if burst_window_ms < 0:
            raise ValueError(f"burst_window_ms must not be negative, got: {burst_window_ms}")

        self.controller = controller
        self.burst_window_ms = burst_window_ms
        self.forwarded_count = 0

        self._loop = asyncio.get_running_loop()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._unsubscribe: Optional[Unsubscribe] = None

    def connect(self, subscribe: Callable[[Listener], Unsubscribe]) -> None:
        """
        Subscribe handle_event to a change source.

        Args:
            subscribe: Registers a listener and returns an unsubscribe callable
        """
        self.disconnect()
        self._unsubscribe = subscribe(self.handle_event)

    def disconnect(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle_event(self, *args: Any, **kwargs: Any) -> None:
        """Native callback; accepts and ignores whatever the source passes."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self.burst_window_ms / 1000.0, self._forward)

    def close(self) -> None:
        """Cancel the pending burst and unsubscribe."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.disconnect()

    @property
    def has_pending(self) -> bool:
        return self._timer is not None

    def _forward(self) -> None:
        self._timer = None
        if self.controller.is_closed or self.controller.is_locked:
            _log_debug("Burst ended while controller busy, not forwarded")
            return
        self.forwarded_count += 1
        self.controller.notify()
