"""
Decision logging module for the mutual fund metrics engine.

Provides append-only decision logging for audit and reproducibility.
"""

from mf_pilot.logging.decision_log import (
    DecisionLogger,
    log_action,
    get_logger,
)

__all__ = [
    "DecisionLogger",
    "log_action",
    "get_logger",
]
