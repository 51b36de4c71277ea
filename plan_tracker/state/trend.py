"""
Trend-up pipeline.

Pullback into a zone, a 5m close above the confirm line, then a higher low
and rising open interest after the confirmation before the first entry.
The confirmation time is latched once and carried between evaluations;
entry completion flags are acknowledged externally and only carried.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from ..config.defaults import TrendParams
from ..data.decision import TrendLevels
from ..data.models import Candle, Point
from .models import PlanCode, StepResult, StepSet, StepStatus, TrendMemory

DIRECTION_HINT = "PULLBACK_THEN_CONFIRM"


@dataclass(frozen=True)
class TrendOutcome:
    code: PlanCode
    headline: str
    steps: tuple[StepResult, ...]
    next_actions: tuple[str, ...]
    signals: dict
    memory: TrendMemory
    missing: tuple[str, ...] = ()


def _fmt(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:,.0f}"


def check_higher_low(after_confirm: Sequence[Candle], window: int = 6) -> tuple[bool, str]:
    """
    Compare the lowest low of the latest ``window`` post-confirm candles with
    the ``window`` before them; needs ``2 * window`` candles.
    """
    if len(after_confirm) < 2 * window:
        return False, f"not enough candles after confirm (need >= {2 * window} 5m candles)"

    prev_low = min(c.low for c in after_confirm[-2 * window:-window])
    recent_low = min(c.low for c in after_confirm[-window:])
    if recent_low > prev_low:
        return True, f"higher low: new low {_fmt(recent_low)} > prior low {_fmt(prev_low)}"
    return False, f"no higher low yet: new low {_fmt(recent_low)} <= prior low {_fmt(prev_low)}"


def check_oi_rising(oi_5m: Sequence[Point], since_ms: int, points: int = 3) -> tuple[bool, str]:
    """The last ``points`` OI samples at or after ``since_ms`` must be strictly increasing."""
    after = [p for p in oi_5m if p.t >= since_ms][-points:]
    if len(after) < points:
        return False, f"not enough OI samples after confirm (need >= {points})"

    path = " -> ".join(_fmt(p.v) for p in after)
    if all(b.v > a.v for a, b in zip(after, after[1:])):
        return True, f"OI rising: {path}"
    return False, f"OI not rising consecutively: {path}"


def _data_missing(missing: list[str], memory: TrendMemory) -> TrendOutcome:
    return TrendOutcome(
        code=PlanCode.TREND_DATA_MISSING,
        headline="Not enough data; no trade until a fresh snapshot",
        steps=(StepResult(
            id="trend_data",
            title="Trend inputs available",
            status=StepStatus.FAIL,
            detail="missing: " + ", ".join(missing),
            data={"missing": list(missing)},
        ),),
        next_actions=(
            "Take a fresh snapshot",
            "Check the decision has pullback_zone, invalidation and tp1",
            "Check the raw 5m candle cache has data",
        ),
        signals={},
        memory=memory,
        missing=tuple(missing),
    )


def run_trend_pipeline(
    levels: TrendLevels,
    candles_5m: Sequence[Candle],
    oi_5m: Sequence[Point],
    memory: TrendMemory,
    params: TrendParams = TrendParams(),
) -> TrendOutcome:
    """
    Evaluate the trend-up checks and pick the headline by priority.

    Priority: invalidated > tp1 hit > add done > probe done > ready to enter
    > confirmed waiting for HL/OI > in zone waiting for confirm > wait zone.
    """
    missing = list(levels.missing)
    if not candles_5m:
        missing.append("raw_5m")
    if missing:
        return _data_missing(missing, memory)

    last = candles_5m[-1]
    zone_low, zone_high = levels.zone_low, levels.zone_high
    steps = []

    in_zone = zone_low <= last.close <= zone_high
    steps.append(StepResult(
        id="trend_wait_zone",
        title=f"Wait for price in zone {_fmt(zone_low)}-{_fmt(zone_high)}",
        status=StepStatus.PASS if in_zone else StepStatus.WAITING,
        detail=(f"price {_fmt(last.close)} is in the zone" if in_zone
                else f"price {_fmt(last.close)} not in the zone yet"),
        data={"close_5m": last.close, "zone_low": zone_low, "zone_high": zone_high},
    ))

    close_above = last.close > levels.confirm_line
    confirm_ts = memory.confirm_ts
    if confirm_ts is None and in_zone and close_above:
        confirm_ts = last.t

    steps.append(StepResult(
        id="trend_5m_confirm_close",
        title=f"Wait for a 5m close above {_fmt(levels.confirm_line)}",
        status=StepStatus.PASS if close_above else StepStatus.WAITING,
        detail=(f"5m close {_fmt(last.close)} > {_fmt(levels.confirm_line)}" if close_above
                else f"5m close {_fmt(last.close)} not above yet"),
        data={"confirm_ts": confirm_ts},
    ))

    hl_ok, hl_detail = False, "not started (needs confirmation first)"
    oi_ok, oi_detail = False, "not started (needs confirmation first)"
    if confirm_ts is not None:
        after = [c for c in candles_5m if c.t >= confirm_ts]
        hl_ok, hl_detail = check_higher_low(after, params.higher_low_window)
        oi_ok, oi_detail = check_oi_rising(oi_5m, confirm_ts, params.oi_rising_points)

    steps.append(StepResult(
        id="trend_5m_hl",
        title="5m higher low after confirmation",
        status=StepStatus.PASS if hl_ok else StepStatus.WAITING,
        detail=hl_detail,
    ))
    steps.append(StepResult(
        id="trend_oi_confirm",
        title="OI rising after confirmation",
        status=StepStatus.PASS if oi_ok else StepStatus.WAITING,
        detail=oi_detail,
    ))

    can_enter = in_zone and close_above and hl_ok and oi_ok
    if memory.entry_1_done:
        entry_detail = "entry 1 marked done"
    elif can_enter:
        entry_detail = "conditions met; take entry 1"
    else:
        entry_detail = "conditions not met yet"
    steps.append(StepResult(
        id="trend_entry_1",
        title="Entry 1 (small probe)",
        status=StepStatus.DONE if memory.entry_1_done else StepStatus.WAITING,
        detail=entry_detail,
        data={"entry_1_done": memory.entry_1_done, "can_enter": can_enter},
    ))

    hard_stop = last.close < levels.invalidation
    steps.append(StepResult(
        id="trend_hard_sl",
        title=f"Hard stop: below {_fmt(levels.invalidation)} invalidates the plan",
        status=StepStatus.FAIL if hard_stop else StepStatus.PASS,
        detail=(f"STOP: 5m close {_fmt(last.close)} < {_fmt(levels.invalidation)}" if hard_stop
                else "invalidation not reached"),
    ))

    tp_hit = last.high >= levels.tp1
    steps.append(StepResult(
        id="trend_tp1",
        title=f"TP1 = {_fmt(levels.tp1)} (scale out, move stop)",
        status=StepStatus.PASS if tp_hit else StepStatus.WAITING,
        detail=f"TP1 touched (5m high {_fmt(last.high)})" if tp_hit else "TP1 not reached",
    ))

    if hard_stop:
        code, headline = PlanCode.TREND_INVALIDATED, f"Plan invalidated: lost {_fmt(levels.invalidation)} (STOP)"
    elif tp_hit:
        code, headline = PlanCode.TREND_TP1_HIT, "TP1 touched; scale out and move the stop"
    elif memory.entry_2_done:
        code, headline = PlanCode.TREND_IN_TRADE_ADD_DONE, "Holding the trend (entry 2 done); focus on TP1/trailing"
    elif memory.entry_1_done:
        code, headline = PlanCode.TREND_IN_TRADE_PROBE_DONE, "Entry 1 done; wait for the add, watch for chop"
    elif can_enter:
        code, headline = PlanCode.TREND_READY_TO_ENTER, "All conditions met; ready for entry 1 (small)"
    elif confirm_ts is not None and close_above:
        code, headline = PlanCode.TREND_CONFIRMED_WAIT_HL_OI, "5m confirmation passed; waiting for HL + OI"
    elif in_zone:
        code, headline = PlanCode.TREND_IN_ZONE_WAIT_CONFIRM, "Price in zone; waiting for a 5m close above the zone"
    else:
        code, headline = (PlanCode.TREND_WAIT_ZONE,
                          f"Waiting for a pullback into {_fmt(zone_low)}-{_fmt(zone_high)}")

    if hard_stop:
        next_actions = ("Stop out per plan (hard stop)", "Wait for a fresh snapshot to re-evaluate")
    elif not in_zone:
        next_actions = (f"Wait for price to reach the buy zone {_fmt(zone_low)}-{_fmt(zone_high)}",
                        "Do not chase")
    elif not close_above:
        next_actions = (f"Wait for a 5m close above {_fmt(levels.confirm_line)} first",)
    elif not hl_ok:
        next_actions = ("Wait for a clear 5m higher low",)
    elif not oi_ok:
        next_actions = ("Wait for OI to start rising after confirmation",)
    elif not memory.entry_1_done:
        next_actions = ("Take a small probe entry, then watch the retest",)
    elif not tp_hit:
        next_actions = (f"Wait for TP1 {_fmt(levels.tp1)} and scale out",)
    else:
        next_actions = ("Scale out and trail the stop per plan",)

    return TrendOutcome(
        code=code,
        headline=headline,
        steps=tuple(steps),
        next_actions=next_actions,
        signals={
            "trend_in_zone": "IN_ZONE" if in_zone else "OUT_ZONE",
            "trend_confirm_5m": "CONFIRMED" if close_above else "WAIT",
            "trend_hl_5m": "HL_OK" if hl_ok else "WAIT",
            "trend_oi": "OK" if oi_ok else "WAIT",
            "trend_tp1": "HIT" if tp_hit else "WAIT",
            "trend_invalidation": "FAIL" if hard_stop else "OK",
        },
        memory=TrendMemory(
            confirm_ts=confirm_ts,
            entry_1_done=memory.entry_1_done,
            entry_2_done=memory.entry_2_done,
        ),
    )


TREND_STEP_SET = StepSet.TREND_UP_STEPSET
