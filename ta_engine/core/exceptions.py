"""
Technical Analysis Exception Classes

This module defines the error taxonomy of the analysis engine. Absence of a
pattern or a level is never an error: detectors return empty lists instead.
"""

from typing import Any, Optional


class AnalysisError(Exception):
    """Base exception class for all analysis-related errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.suggestion:
            return f"{self.message}. Suggestion: {self.suggestion}"
        return self.message


# =============================================================================
# Data Errors
# =============================================================================

class InsufficientDataError(AnalysisError):
    """
    Raised when an input series is shorter than an operation's minimum window.

    Recoverable by supplying more history.
    """

    def __init__(self, operation: str, required: int, available: int):
        self.operation = operation
        self.required = required
        self.available = available
        message = (
            f"Insufficient data for {operation}: "
            f"requires {required} points, got {available}"
        )
        suggestion = f"Provide at least {required} data points"
        super().__init__(message, suggestion)


# =============================================================================
# Parameter Errors
# =============================================================================

class InvalidParameterError(AnalysisError, ValueError):
    """
    Raised when a parameter is outside its valid domain
    (e.g. a non-positive period or fast >= slow for MACD).
    """

    def __init__(self, name: str, value: Any, reason: str):
        self.name = name
        self.value = value
        self.reason = reason
        message = f"Invalid parameter {name}={value!r}"
        super().__init__(message, reason)
