"""
Plan state machine data models.

Immutable structures for mode locks, plan codes, step results, the
persisted per-symbol snapshot and the inputs/outputs of one evaluation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..config.defaults import DefaultConfig
from ..data.decision import Decision
from ..data.models import Candle, DerivativesBundle


class ModeLock(str, Enum):
    """Trading regime locked by the decision document."""
    NO_TRADE = "NO_TRADE"
    GRID = "GRID"
    TREND = "TREND"

    @classmethod
    def parse(cls, value: Any) -> Optional["ModeLock"]:
        try:
            return cls(str(value).upper()) if value is not None else None
        except ValueError:
            return None


class PlanCode(str, Enum):
    """Every plan_state value the machine can report."""
    # mode locks
    NO_TRADE_LOCKED = "NO_TRADE_LOCKED"
    TREND_MODE_LOCKED = "TREND_MODE_LOCKED"

    # grid sweep pipeline
    WAIT_SWEEP_UP = "WAIT_SWEEP_UP"
    WAIT_15M_REJECTION = "WAIT_15M_REJECTION"
    WAIT_1H_CONFIRM_FAKEOUT = "WAIT_1H_CONFIRM_FAKEOUT"
    FAKEOUT_CONFIRMED_RANGE_PLAY = "FAKEOUT_CONFIRMED_RANGE_PLAY"
    BREAKOUT_CONFIRMED_SWITCH_MODE = "BREAKOUT_CONFIRMED_SWITCH_MODE"

    # trend-up pipeline
    TREND_DATA_MISSING = "TREND_DATA_MISSING"
    TREND_WAIT_ZONE = "TREND_WAIT_ZONE"
    TREND_IN_ZONE_WAIT_CONFIRM = "TREND_IN_ZONE_WAIT_CONFIRM"
    TREND_CONFIRMED_WAIT_HL_OI = "TREND_CONFIRMED_WAIT_HL_OI"
    TREND_READY_TO_ENTER = "TREND_READY_TO_ENTER"
    TREND_IN_TRADE_PROBE_DONE = "TREND_IN_TRADE_PROBE_DONE"
    TREND_IN_TRADE_ADD_DONE = "TREND_IN_TRADE_ADD_DONE"
    TREND_TP1_HIT = "TREND_TP1_HIT"
    TREND_INVALIDATED = "TREND_INVALIDATED"


INITIAL_STATE = {
    ModeLock.NO_TRADE: PlanCode.NO_TRADE_LOCKED,
    ModeLock.TREND: PlanCode.TREND_MODE_LOCKED,
    ModeLock.GRID: PlanCode.WAIT_SWEEP_UP,
}


class StepStatus(str, Enum):
    WAITING = "WAITING"
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"
    DONE = "DONE"


class StepSet(str, Enum):
    """Which step layout a consumer should render."""
    MODE_LOCKED_NO_TRADE = "MODE_LOCKED_NO_TRADE"
    GRID_SWEEP_PIPELINE = "GRID_SWEEP_PIPELINE"
    BREAKOUT_SWITCH_MODE = "BREAKOUT_SWITCH_MODE"
    TREND_UP_STEPSET = "TREND_UP_STEPSET"


@dataclass(frozen=True)
class StepResult:
    """One pipeline step with a human-readable detail."""
    id: str
    title: str
    status: StepStatus
    detail: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "detail": self.detail,
            "data": dict(self.data),
        }


@dataclass(frozen=True)
class PlanState:
    """Current plan code, headline and step breakdown."""
    code: PlanCode
    headline: str
    direction_hint: str
    confidence: Optional[float]
    steps: tuple[StepResult, ...]
    step_set: StepSet
    next_actions: tuple[str, ...] = ()
    signals: dict[str, Any] = field(default_factory=dict)

    def step_statuses(self) -> dict[str, str]:
        return {s.id: s.status.value for s in self.steps}


@dataclass(frozen=True)
class TrendMemory:
    """Trend facts carried between evaluations through the persisted state."""
    confirm_ts: Optional[int] = None
    entry_1_done: bool = False
    entry_2_done: bool = False

    @classmethod
    def from_persisted(cls, plan_status_state: Any) -> "TrendMemory":
        state = plan_status_state.get("state") if isinstance(plan_status_state, dict) else None
        if not isinstance(state, dict):
            return cls()
        confirm_ts = state.get("confirm_ts")
        if isinstance(confirm_ts, bool) or not isinstance(confirm_ts, (int, float)):
            confirm_ts = None
        return cls(
            confirm_ts=int(confirm_ts) if confirm_ts is not None else None,
            entry_1_done=bool(state.get("entry_1_done")),
            entry_2_done=bool(state.get("entry_2_done")),
        )


KNOWN_STATE_FIELDS = ("plan_state", "decision_mode_lock", "t", "plan_status_state")


@dataclass(frozen=True)
class PersistedState:
    """
    Per-symbol snapshot rewritten after every evaluation.

    Fields this code does not know about are kept in ``extra`` and written
    back unchanged.
    """
    plan_state: Optional[str] = None
    decision_mode_lock: Optional[ModeLock] = None
    t: Optional[int] = None
    plan_status_state: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "PersistedState":
        if not isinstance(data, dict):
            return cls()
        pss = data.get("plan_status_state")
        return cls(
            plan_state=data.get("plan_state") if isinstance(data.get("plan_state"), str) else None,
            decision_mode_lock=ModeLock.parse(data.get("decision_mode_lock")),
            t=data.get("t") if isinstance(data.get("t"), int) else None,
            plan_status_state=pss if isinstance(pss, dict) else {},
            extra={k: v for k, v in data.items() if k not in KNOWN_STATE_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        doc = dict(self.extra)
        doc.update({
            "plan_state": self.plan_state,
            "decision_mode_lock": self.decision_mode_lock.value if self.decision_mode_lock else None,
            "t": self.t,
            "plan_status_state": self.plan_status_state,
        })
        return doc

    def advance(self, plan_state: str, mode_lock: ModeLock, t: int,
                plan_status_state: dict[str, Any]) -> "PersistedState":
        """Next snapshot: recognized fields overwritten, everything else carried."""
        return PersistedState(
            plan_state=plan_state,
            decision_mode_lock=mode_lock,
            t=t,
            plan_status_state=plan_status_state,
            extra=dict(self.extra),
        )


@dataclass(frozen=True)
class EvaluationInputs:
    """Everything one evaluation reads; building it is the only I/O step."""
    symbol: str
    decision: Decision
    candles_5m: tuple[Candle, ...]
    candles_1h: tuple[Candle, ...]
    bundle: DerivativesBundle
    previous: Optional[PersistedState]
    now_ms: int
    config: DefaultConfig


@dataclass(frozen=True)
class PlanEvaluation:
    """Output of the pure ``evaluate`` step."""
    symbol: str
    mode_lock: ModeLock
    previous_mode_lock: Optional[ModeLock]
    mode_changed: bool
    previous_plan_state: Optional[str]
    plan: PlanState
    explanation: str
    zone: Optional[tuple[float, float]]
    grid: Optional[Any] = None
    trend_memory: TrendMemory = TrendMemory()
    trend_levels: dict[str, Any] = field(default_factory=dict)
    plan_status_state: dict[str, Any] = field(default_factory=dict)

    @property
    def plan_state(self) -> str:
        return self.plan.code.value

    @property
    def state_changed(self) -> bool:
        return self.previous_plan_state != self.plan_state

    @property
    def mode_switched(self) -> bool:
        """True on any mode lock difference, including the very first evaluation."""
        return self.previous_mode_lock != self.mode_lock
