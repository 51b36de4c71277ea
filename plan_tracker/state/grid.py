"""
Grid sweep pipeline.

Three independent detectors over the current candle window:

1. 5m sweep above the zone high that closes back below it
2. 15m rejection synthesized from the latest three 5m candles
3. 1h close relative to the zone (fakeout back inside or breakout above)

The reported state is the most advanced stage whose condition currently
holds; nothing is accumulated between evaluations.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config.defaults import GridParams
from ..data.models import Candle
from ..metrics.candle_structure import analyze_candle_structure, synthesize_15m
from ..utils.time import iso_from_ms
from .models import PlanCode, StepResult, StepSet, StepStatus


@dataclass(frozen=True)
class SweepResult:
    state: str
    event: Optional[dict[str, Any]] = None

    @property
    def seen(self) -> bool:
        return self.state.startswith("SWEEP_UP")


@dataclass(frozen=True)
class RejectionResult:
    state: str
    score: int
    flags: dict[str, bool] = field(default_factory=dict)
    detail: str = ""

    @property
    def confirmed(self) -> bool:
        return self.state == "REJECTION_15M_CONFIRMED"


@dataclass(frozen=True)
class ConfirmResult:
    state: str
    detail: str


@dataclass(frozen=True)
class GridAnalysis:
    """All three detectors plus the resulting plan code and steps."""
    zone_low: float
    zone_high: float
    sweep: SweepResult
    rejection: RejectionResult
    confirm: ConfirmResult
    candle_15m: Optional[Candle]
    code: PlanCode
    steps: tuple[StepResult, ...]

    @property
    def step_set(self) -> StepSet:
        if self.code is PlanCode.BREAKOUT_CONFIRMED_SWITCH_MODE:
            return StepSet.BREAKOUT_SWITCH_MODE
        return StepSet.GRID_SWEEP_PIPELINE


def analyze_sweep_up(candles_5m: Sequence[Candle], zone_low: float, zone_high: float,
                     lookback: int = 12) -> SweepResult:
    """
    Find the first candle in the lookback whose high pierced the zone high
    and whose close came back below it.
    """
    for candle in list(candles_5m)[-lookback:]:
        if candle.high > zone_high and candle.close < zone_high:
            strong = candle.close < zone_low
            return SweepResult(
                state="SWEEP_UP_CONFIRMED_STRONG" if strong else "SWEEP_UP_CONFIRMED",
                event={"t": candle.t, "high": candle.high, "close": candle.close},
            )
    return SweepResult(state="WAIT_SWEEP_UP")


def analyze_rejection_15m(candle_15m: Optional[Candle], zone_low: float, zone_high: float,
                          params: GridParams = GridParams()) -> RejectionResult:
    """
    Score the synthesized 15m candle on five conditions.

    Confirmed requires swept, closed back in and wick dominant together;
    closing below the zone low and a bearish body only add to the score.
    """
    if candle_15m is None:
        return RejectionResult(state="NO_15M_DATA", score=0,
                               detail="not enough 5m candles to build a 15m candle")

    structure = analyze_candle_structure(candle_15m)
    flags = {
        "swept": candle_15m.high > zone_high,
        "closed_back_in": candle_15m.close < zone_high,
        "closed_below_low": candle_15m.close <= zone_low,
        "bearish_close": candle_15m.close < candle_15m.open,
        "wick_dominant": (structure.upper_pct >= params.wick_ratio_min and
                          structure.upper_wick >= structure.body * params.wick_body_multiple),
    }
    score = sum(1 for v in flags.values() if v)
    confirmed = flags["swept"] and flags["closed_back_in"] and flags["wick_dominant"]

    return RejectionResult(
        state="REJECTION_15M_CONFIRMED" if confirmed else "REJECTION_15M_PENDING",
        score=score,
        flags=flags,
        detail=", ".join(f"{k}={v}" for k, v in flags.items()),
    )


def analyze_1h_confirm(candle_1h: Optional[Candle], zone_low: float, zone_high: float) -> ConfirmResult:
    if candle_1h is None:
        return ConfirmResult(state="NO_1H_DATA", detail="no hourly candle available")
    if candle_1h.close > zone_high:
        return ConfirmResult(state="BREAKOUT_1H_CONFIRMED", detail="1h close held above the zone")
    if candle_1h.close < zone_low:
        return ConfirmResult(state="FAKEOUT_1H_CONFIRMED", detail="1h close back inside the range")
    return ConfirmResult(state="1H_UNDECIDED", detail="1h close inside the zone")


def grid_plan_code(sweep: SweepResult, rejection: RejectionResult,
                   confirm: ConfirmResult) -> PlanCode:
    code = PlanCode.WAIT_SWEEP_UP
    if sweep.seen:
        code = PlanCode.WAIT_15M_REJECTION
    if rejection.confirmed:
        code = PlanCode.WAIT_1H_CONFIRM_FAKEOUT
    if confirm.state == "FAKEOUT_1H_CONFIRMED":
        code = PlanCode.FAKEOUT_CONFIRMED_RANGE_PLAY
    if confirm.state == "BREAKOUT_1H_CONFIRMED":
        code = PlanCode.BREAKOUT_CONFIRMED_SWITCH_MODE
    return code


def sweep_step_status(sweep: SweepResult) -> StepStatus:
    return StepStatus.PASS if sweep.seen else StepStatus.WAITING


def rejection_step_status(rejection: RejectionResult) -> StepStatus:
    if rejection.confirmed:
        return StepStatus.PASS
    if rejection.state in ("NO_15M_DATA", "REJECTION_15M_PENDING"):
        return StepStatus.WAITING
    return StepStatus.WARN


CONFIRM_STEP_STATUS = {
    "FAKEOUT_1H_CONFIRMED": StepStatus.PASS,
    "BREAKOUT_1H_CONFIRMED": StepStatus.FAIL,
    "NO_1H_DATA": StepStatus.WAITING,
    "1H_UNDECIDED": StepStatus.WARN,
}


def _fmt(value: float) -> str:
    return f"{value:,.0f}"


def run_grid_pipeline(candles_5m: Sequence[Candle], candles_1h: Sequence[Candle],
                      zone: tuple[float, float], params: GridParams = GridParams()) -> GridAnalysis:
    """Run all three detectors against ``zone`` and assemble the step list."""
    zone_low, zone_high = zone
    sweep = analyze_sweep_up(candles_5m, zone_low, zone_high, params.sweep_lookback)
    candle_15m = synthesize_15m(candles_5m)
    rejection = analyze_rejection_15m(candle_15m, zone_low, zone_high, params)
    candle_1h = candles_1h[-1] if candles_1h else None
    confirm = analyze_1h_confirm(candle_1h, zone_low, zone_high)

    steps = (
        StepResult(
            id="SWEEP_5M",
            title=f"5m sweep of upper zone {_fmt(zone_low)}-{_fmt(zone_high)}",
            status=sweep_step_status(sweep),
            detail=f"hit@{iso_from_ms(sweep.event['t'])}" if sweep.event else sweep.state,
            data={"state": sweep.state, "event": sweep.event},
        ),
        StepResult(
            id="REJECTION_15M",
            title="15m rejection (close back below zone)",
            status=rejection_step_status(rejection),
            detail=rejection.detail,
            data={"state": rejection.state, "score": rejection.score},
        ),
        StepResult(
            id="CONFIRM_1H",
            title="1h confirm (fakeout/breakout)",
            status=CONFIRM_STEP_STATUS.get(confirm.state, StepStatus.WARN),
            detail=confirm.detail,
            data={"state": confirm.state, "close_1h": candle_1h.close if candle_1h else None},
        ),
    )

    return GridAnalysis(
        zone_low=zone_low,
        zone_high=zone_high,
        sweep=sweep,
        rejection=rejection,
        confirm=confirm,
        candle_15m=candle_15m,
        code=grid_plan_code(sweep, rejection, confirm),
        steps=steps,
    )


DIRECTION_HINTS = {
    PlanCode.WAIT_SWEEP_UP: "UPPER_SWEEP_THEN_REJECT",
    PlanCode.WAIT_15M_REJECTION: "WAIT_15M_REJECTION",
    PlanCode.WAIT_1H_CONFIRM_FAKEOUT: "WAIT_1H_CONFIRM",
    PlanCode.FAKEOUT_CONFIRMED_RANGE_PLAY: "RANGE_PLAY",
    PlanCode.BREAKOUT_CONFIRMED_SWITCH_MODE: "BREAKOUT_SWITCH_MODE",
}


def grid_next_actions(code: PlanCode, zone_low: float, zone_high: float) -> tuple[str, ...]:
    if code is PlanCode.WAIT_SWEEP_UP:
        return (
            f"Wait for price to sweep above {_fmt(zone_low)}-{_fmt(zone_high)} and close back below the zone",
            "No entry yet; wait for the confirming candle",
            "If price keeps holding above the zone high, watch for a breakout",
        )
    if code is PlanCode.WAIT_15M_REJECTION:
        return (
            "Wait for a 15m close confirming rejection (upper wick, close back below zone high)",
            "If OI and funding rise while price closes back down, watch for trapped longs",
        )
    if code is PlanCode.WAIT_1H_CONFIRM_FAKEOUT:
        return (
            "Wait for the 1h close: back inside the range (fakeout) or holding above the zone (breakout)",
            "If 1h holds above, reduce or pause the grid and request a fresh decision",
        )
    if code is PlanCode.FAKEOUT_CONFIRMED_RANGE_PLAY:
        return ("Range play favoured; run the grid inside the range",)
    if code is PlanCode.BREAKOUT_CONFIRMED_SWITCH_MODE:
        return (
            "Breakout confirmed: stop the range game and pause the grid",
            "Request a fresh snapshot and decision to pick TREND or NO_TRADE",
        )
    return ("Wait for further confirmation",)


def grid_explanation(code: PlanCode, zone_low: float, zone_high: float) -> str:
    return {
        PlanCode.WAIT_SWEEP_UP: f"Waiting for price to sweep the upper zone {_fmt(zone_low)}-{_fmt(zone_high)}",
        PlanCode.WAIT_15M_REJECTION: "Upper sweep seen; waiting for a 15m rejection close back below the zone",
        PlanCode.WAIT_1H_CONFIRM_FAKEOUT: "15m rejection confirmed; waiting for the 1h close to rule out a real breakout",
        PlanCode.FAKEOUT_CONFIRMED_RANGE_PLAY: "1h closed back inside the range; range play has the edge",
        PlanCode.BREAKOUT_CONFIRMED_SWITCH_MODE: "1h held above the upper zone; real breakout risk, switch mode",
    }.get(code, f"Plan state: {code.value}")
