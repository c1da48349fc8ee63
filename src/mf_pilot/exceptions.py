"""
Error kinds raised by the metrics engine.

All of them are recoverable by the caller, which decides whether to surface
"N/A", substitute fallback data, or abort the request.
"""

from typing import Optional


class MetricsError(Exception):
    """Base class for metrics engine errors."""
    pass


class InvalidInputError(MetricsError, ValueError):
    """Raised for malformed or out-of-domain arguments."""
    pass


class NonConvergenceError(MetricsError):
    """Raised when an iterative solver exhausts its iteration budget."""

    def __init__(
        self,
        message: str,
        iterations: int = 0,
        last_rate: Optional[float] = None,
    ):
        super().__init__(message)
        self.iterations = iterations
        self.last_rate = last_rate


class MissingDataError(MetricsError):
    """Raised when required external data (e.g. a benchmark series) is unavailable."""
    pass
