"""
Exception types raised by the forecasting engine.

Numeric edge cases (zero elapsed days, zero velocity, zero spread) are
handled inside the algorithms and never surface here.
"""

from __future__ import annotations


class ForecastError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(ForecastError, ValueError):
    """
    Rejected input: progress outside [0, 100], unparsable dates, unknown
    status, bad iteration count or out-of-range scenario fields.
    """


class StoreUnavailableError(ForecastError):
    """
    The scenario storage backend could not be reached or built.

    retryable is False when the failure comes from configuration, e.g. a
    malformed connection string.
    """

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable
