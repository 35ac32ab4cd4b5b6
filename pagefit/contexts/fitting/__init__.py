"""
Fitting Context

Responsibilities:
- Holds fit policies (thresholds, timing) and resolves them from template defaults and presets
- Decides content scale from measured height (five-zone fit calculator)
- Runs the debounced, serialized measure -> decide -> apply loop for one preview
- Bridges native size-change events into controller notifications
- Raises the one-shot overflow warning

Owns: content scale override, fit state, overflow warning
Never: Renders or parses resume content, persists anything
"""

from pagefit.contexts.fitting.calculator import FitDecision, FitZone, decide
from pagefit.contexts.fitting.config_resolver import base_scale_for, resolve_policy
from pagefit.contexts.fitting.controller import (
    FitController,
    FitPhase,
    FitState,
    OverflowWarning,
    create_controller,
)
from pagefit.contexts.fitting.exceptions import MeasurementUnavailableError, PolicyValidationError
from pagefit.contexts.fitting.notifications import ChangeSignal, NotificationAdapter
from pagefit.contexts.fitting.policy import FitPolicy

__all__ = [
    # Policy and configuration
    "FitPolicy",
    "resolve_policy",
    "base_scale_for",
    # Calculator
    "decide",
    "FitDecision",
    "FitZone",
    # Controller
    "create_controller",
    "FitController",
    "FitPhase",
    "FitState",
    "OverflowWarning",
    # Notifications
    "NotificationAdapter",
    "ChangeSignal",
    # Errors
    "PolicyValidationError",
    "MeasurementUnavailableError",
]
