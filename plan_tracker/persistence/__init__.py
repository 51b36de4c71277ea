"""
Persistence for caches, the per-symbol plan snapshot and the event journal.
"""

from .atomic import read_json_object, write_json_atomic
from .event_log import EventLog, EventType, build_events, derivative_context
from .state_store import PlanStateStore, symbol_state_path

__all__ = [
    "read_json_object",
    "write_json_atomic",
    "EventLog",
    "EventType",
    "build_events",
    "derivative_context",
    "PlanStateStore",
    "symbol_state_path",
]
