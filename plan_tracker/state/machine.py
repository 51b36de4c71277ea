"""
Plan state machine.

``evaluate`` combines the decision document, the cached candles, the
derivative series and the previously persisted state into the next plan
state. It performs no I/O: reading inputs, persisting the snapshot and
journaling transitions belong to the engine.
"""

from typing import Any, Optional

from ..data.decision import Decision
from ..errors import DecisionDocumentError
from ..utils.time import iso_from_ms
from .grid import DIRECTION_HINTS, grid_explanation, grid_next_actions, run_grid_pipeline
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
from .trend import DIRECTION_HINT as TREND_DIRECTION_HINT
from .trend import TREND_STEP_SET, run_trend_pipeline


def resolve_mode_lock(decision: Decision) -> ModeLock:
    """
    Mode lock from the decision's mode text.

    NO_TRADE wins over GRID, GRID over TREND/LONG/SHORT; anything else
    defaults to GRID.
    """
    text = decision.mode_text.upper()
    if "NO_TRADE" in text:
        return ModeLock.NO_TRADE
    if "GRID" in text:
        return ModeLock.GRID
    if "TREND" in text or "LONG" in text or "SHORT" in text:
        return ModeLock.TREND
    return ModeLock.GRID


def _no_trade_plan(confidence: Optional[float]) -> PlanState:
    return PlanState(
        code=PlanCode.NO_TRADE_LOCKED,
        headline="NO_TRADE locked; stand aside",
        direction_hint="NO_TRADE",
        confidence=confidence,
        steps=(StepResult(
            id="LOCK",
            title="NO_TRADE locked",
            status=StepStatus.DONE,
            detail="the decision locks this symbol to NO_TRADE",
        ),),
        step_set=StepSet.MODE_LOCKED_NO_TRADE,
        next_actions=("Stand aside until a fresh decision unlocks the mode",),
    )


def _plan_status_state(inputs: EvaluationInputs, plan: PlanState,
                       extra_plan: dict[str, Any], extra_state: dict[str, Any]) -> dict[str, Any]:
    """Snapshot consumers render directly; the trend latch lives under ``state``."""
    decision = inputs.decision
    plan_doc = {
        "market_regime": decision.market_regime,
        "market_mode": decision.market_mode,
        "risk_warning": list(decision.risk_warning),
        "confidence": decision.confidence,
    }
    plan_doc.update(extra_plan)

    state_doc = {
        "code": plan.code.value,
        "headline": plan.headline,
        "direction_hint": plan.direction_hint,
        "confidence": plan.confidence,
        "step_set": plan.step_set.value,
    }
    state_doc.update(extra_state)

    return {
        "generated_at": iso_from_ms(inputs.now_ms),
        "price": {
            "close_5m": inputs.candles_5m[-1].close if inputs.candles_5m else None,
            "close_1h": inputs.candles_1h[-1].close if inputs.candles_1h else None,
        },
        "plan": plan_doc,
        "state": state_doc,
        "signals": dict(plan.signals),
        "next_actions": list(plan.next_actions),
        "steps": [s.to_dict() for s in plan.steps],
    }


def evaluate(inputs: EvaluationInputs) -> PlanEvaluation:
    """
    Compute the next plan state for one symbol.

    On a mode lock change against the persisted lock, the reported plan code
    snaps to the new mode's initial state and the trend latch is dropped;
    the step list is still computed so consumers see current conditions.

    Raises:
        DecisionDocumentError: GRID mode with no usable sweep zone
    """
    decision = inputs.decision
    previous = inputs.previous or PersistedState()
    mode_lock = resolve_mode_lock(decision)
    prev_mode = previous.decision_mode_lock
    mode_changed = prev_mode is not None and prev_mode != mode_lock

    memory = TrendMemory() if mode_changed else TrendMemory.from_persisted(previous.plan_status_state)
    grid = None
    zone = None
    trend_levels: dict[str, Any] = {}
    extra_plan: dict[str, Any] = {}
    extra_state: dict[str, Any] = {}

    if mode_lock is ModeLock.NO_TRADE:
        plan = _no_trade_plan(decision.confidence)
        explanation = "Decision locks NO_TRADE; no setup is tracked"

    elif mode_lock is ModeLock.GRID:
        if decision.sweep_zone is None:
            raise DecisionDocumentError(
                "GRID decision has no sweep zone: set parameters_for_grid_or_trend.sweep_zone_up, "
                "levels.smc.sweep_zone_up or parameters_for_grid_or_trend.grid_upper"
            )
        zone = decision.sweep_zone
        grid = run_grid_pipeline(inputs.candles_5m, inputs.candles_1h, zone, inputs.config.grid)
        plan = PlanState(
            code=grid.code,
            headline=grid_explanation(grid.code, *zone),
            direction_hint=DIRECTION_HINTS.get(grid.code, "WAIT"),
            confidence=decision.confidence,
            steps=grid.steps,
            step_set=grid.step_set,
            next_actions=grid_next_actions(grid.code, *zone),
            signals={
                "sweep_5m": grid.sweep.state,
                "rejection_15m": grid.rejection.state,
                "breakout_1h": grid.confirm.state,
            },
        )
        explanation = plan.headline
        extra_plan = {
            "sweep_zone_up": {"low": zone[0], "high": zone[1]},
            "sweep_zone_source": decision.sweep_zone_source,
            "grid": {
                "lower": decision.grid_lower,
                "upper": decision.grid_upper,
                "count": (decision.raw.get("parameters_for_grid_or_trend") or {}).get("grid_count"),
            },
        }

    else:
        levels = decision.trend
        outcome = run_trend_pipeline(levels, inputs.candles_5m, inputs.bundle.oi5,
                                     memory, inputs.config.trend)
        memory = outcome.memory
        plan = PlanState(
            code=outcome.code,
            headline=outcome.headline,
            direction_hint=TREND_DIRECTION_HINT,
            confidence=decision.confidence,
            steps=outcome.steps,
            step_set=TREND_STEP_SET,
            next_actions=outcome.next_actions,
            signals=outcome.signals,
        )
        explanation = outcome.headline
        if levels.zone_low is not None:
            zone = (levels.zone_low, levels.zone_high)
        trend_levels = {
            "pullback_zone": {"low": levels.zone_low, "high": levels.zone_high},
            "confirm_line": levels.confirm_line,
            "invalidation": levels.invalidation,
            "tp1": levels.tp1,
            "missing": list(outcome.missing),
        }
        extra_plan = {"trend": dict(trend_levels, **{
            k: decision.smc.get(k) for k in ("swing_high_1h", "swing_low_1h", "eq_1h", "liquidity_note")
        })}
        extra_state = {
            "confirm_ts": memory.confirm_ts,
            "entry_1_done": memory.entry_1_done,
            "entry_2_done": memory.entry_2_done,
        }

    if mode_changed:
        initial = INITIAL_STATE[mode_lock]
        explanation = (f"Mode switched {prev_mode.value} -> {mode_lock.value}; "
                       f"plan reset to {initial.value}")
        plan = PlanState(
            code=initial,
            headline=explanation,
            direction_hint=plan.direction_hint,
            confidence=plan.confidence,
            steps=plan.steps,
            step_set=plan.step_set,
            next_actions=plan.next_actions,
            signals=plan.signals,
        )

    return PlanEvaluation(
        symbol=inputs.symbol,
        mode_lock=mode_lock,
        previous_mode_lock=prev_mode,
        mode_changed=mode_changed,
        previous_plan_state=previous.plan_state,
        plan=plan,
        explanation=explanation,
        zone=zone,
        grid=grid,
        trend_memory=memory,
        trend_levels=trend_levels,
        plan_status_state=_plan_status_state(inputs, plan, extra_plan, extra_state),
    )


def next_persisted_state(evaluation: PlanEvaluation, previous: Optional[PersistedState],
                         now_ms: int) -> PersistedState:
    """Carry unknown fields forward and overwrite what this evaluation owns."""
    return (previous or PersistedState()).advance(
        plan_state=evaluation.plan_state,
        mode_lock=evaluation.mode_lock,
        t=now_ms,
        plan_status_state=evaluation.plan_status_state,
    )
