"""
exceptions.py
--------------
Error taxonomy for the analytics core.

Forecasting raises these to the caller. Anomaly and insight detection catch
them internally and skip the affected metric or check, so one thin or flat
metric never blocks the others.
"""


class AnalyticsError(Exception):
    """Base class for analytics core errors."""


class InsufficientHistoryError(AnalyticsError):
    """Fewer data points than the statistical minimum for an operation."""

    def __init__(self, required: int, actual: int, what: str = "data points"):
        self.required = required
        self.actual = actual
        super().__init__(
            f"Need at least {required} {what}, got {actual}."
        )


class DegenerateInputError(AnalyticsError):
    """Zero variance, zero regression denominator, or a zero ratio denominator."""
