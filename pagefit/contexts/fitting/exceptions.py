"""Custom exceptions for the fitting context."""

from typing import Any, Optional


class PolicyValidationError(ValueError):
    """
    Exception raised when a fit policy violates its constraints.

    Raised at construction time, so a misconfigured controller never starts.

    Attributes:
        message: Error description
        field_name: Policy field that failed validation
        value: Offending value
        rule: Human-readable constraint that was violated
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        value: Any = None,
        rule: Optional[str] = None,
    ):
        self.message = message
        self.field_name = field_name
        self.value = value
        self.rule = rule

        parts = [message]

        if field_name:
            parts.append(f"Field: {field_name} = {value!r}")

        if rule:
            parts.append(f"Rule: {rule}")

        super().__init__("\n".join(parts))


class MeasurementUnavailableError(RuntimeError):
    """
    Exception a render surface may raise when it cannot measure.

    The controller treats it like any other probe failure: the cycle ends
    without a scale change.

    Attributes:
        page_id: Page the probe was asked to measure
        reason: Why the surface could not measure (e.g. "not mounted")
    """

    def __init__(self, page_id: str, reason: str = "render surface unavailable"):
        self.page_id = page_id
        self.reason = reason
        super().__init__(f"Cannot measure {page_id}: {reason}")
