"""
Plan state machine.

Mode lock resolution, the grid sweep pipeline and the trend-up pipeline.
``evaluate`` is pure; the engine handles reading inputs and persistence.
"""

from .machine import evaluate, next_persisted_state, resolve_mode_lock
from .models import (
    INITIAL_STATE,
    EvaluationInputs,
    ModeLock,
    PersistedState,
    PlanCode,
    PlanEvaluation,
    PlanState,
    StepResult,
    StepSet,
    StepStatus,
    TrendMemory,
)

__all__ = [
    "evaluate",
    "next_persisted_state",
    "resolve_mode_lock",
    "INITIAL_STATE",
    "EvaluationInputs",
    "ModeLock",
    "PersistedState",
    "PlanCode",
    "PlanEvaluation",
    "PlanState",
    "StepResult",
    "StepSet",
    "StepStatus",
    "TrendMemory",
]
