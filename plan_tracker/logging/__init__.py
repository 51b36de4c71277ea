"""
Logging configuration and utilities for the plan tracker.
"""
from .config import (
    configure_logging,
    get_logger,
    get_scheduler_logger,
    get_state_logger,
    log_state_transition,
    log_step_decision,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "get_scheduler_logger",
    "get_state_logger",
    "log_state_transition",
    "log_step_decision",
]
