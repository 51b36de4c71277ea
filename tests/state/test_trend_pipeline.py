"""Tests for the trend-up pipeline."""

from plan_tracker.data.decision import TrendLevels
from plan_tracker.data.models import Candle, Point
from plan_tracker.state.models import PlanCode, StepStatus, TrendMemory
from plan_tracker.state.trend import check_higher_low, check_oi_rising, run_trend_pipeline

LEVELS = TrendLevels(zone_low=95.0, zone_high=100.0, confirm_line=98.0,
                     invalidation=90.0, tp1=120.0)
T0 = 1704190000000
STEP = 300_000


def _candles(lows, close=99.0, high=99.5, start=T0):
    return [Candle(t=start + i * STEP, open=close, high=high, low=low, close=close)
            for i, low in enumerate(lows)]


def _oi(values, start=T0):
    return [Point(t=start + i * STEP, v=v) for i, v in enumerate(values)]


class TestChecks:
    def test_higher_low(self):
        ok, detail = check_higher_low(_candles([95.0] * 6 + [96.5] * 6))
        assert ok
        assert "higher low" in detail

    def test_lower_low(self):
        ok, _ = check_higher_low(_candles([96.5] * 6 + [95.0] * 6))
        assert not ok

    def test_higher_low_needs_two_windows(self):
        ok, detail = check_higher_low(_candles([95.0] * 11))
        assert not ok
        assert "need >= 12" in detail

    def test_oi_rising(self):
        assert check_oi_rising(_oi([1.0, 2.0, 3.0]), T0)[0]

    def test_oi_must_rise_strictly(self):
        assert not check_oi_rising(_oi([1.0, 2.0, 2.0]), T0)[0]

    def test_oi_ignores_points_before_confirm(self):
        ok, detail = check_oi_rising(_oi([1.0, 2.0, 3.0]), T0 + STEP)
        assert not ok
        assert "not enough" in detail


class TestRunTrendPipeline:
    """Test code priority and the confirmation latch."""

    def test_data_missing_levels(self):
        levels = TrendLevels(missing=("levels.trend.pullback_zone", "tp1"))
        outcome = run_trend_pipeline(levels, _candles([95.0]), [], TrendMemory())

        assert outcome.code is PlanCode.TREND_DATA_MISSING
        assert outcome.steps[0].status is StepStatus.FAIL
        assert "levels.trend.pullback_zone" in outcome.missing

    def test_data_missing_candles(self):
        outcome = run_trend_pipeline(LEVELS, [], [], TrendMemory())
        assert outcome.code is PlanCode.TREND_DATA_MISSING
        assert outcome.missing == ("raw_5m",)

    def test_wait_zone(self):
        outcome = run_trend_pipeline(LEVELS, _candles([104.0], close=105.0, high=106.0), [], TrendMemory())

        assert outcome.code is PlanCode.TREND_WAIT_ZONE
        assert outcome.signals["trend_in_zone"] == "OUT_ZONE"
        assert outcome.memory.confirm_ts is None

    def test_in_zone_wait_confirm(self):
        outcome = run_trend_pipeline(LEVELS, _candles([96.0], close=97.0), [], TrendMemory())

        assert outcome.code is PlanCode.TREND_IN_ZONE_WAIT_CONFIRM
        assert outcome.memory.confirm_ts is None

    def test_confirm_latches(self):
        candles = _candles([98.0], close=99.0)
        outcome = run_trend_pipeline(LEVELS, candles, [], TrendMemory())

        assert outcome.code is PlanCode.TREND_CONFIRMED_WAIT_HL_OI
        assert outcome.memory.confirm_ts == candles[-1].t

    def test_latch_is_kept(self):
        memory = TrendMemory(confirm_ts=T0 - STEP)
        outcome = run_trend_pipeline(LEVELS, _candles([98.0], close=99.0), [], memory)
        assert outcome.memory.confirm_ts == T0 - STEP

    def test_ready_to_enter(self):
        candles = _candles([95.0] * 6 + [96.5] * 6)
        outcome = run_trend_pipeline(LEVELS, candles, _oi([1000.0, 1010.0, 1020.0]),
                                     TrendMemory(confirm_ts=T0))

        assert outcome.code is PlanCode.TREND_READY_TO_ENTER
        statuses = {s.id: s.status for s in outcome.steps}
        assert statuses["trend_5m_hl"] is StepStatus.PASS
        assert statuses["trend_oi_confirm"] is StepStatus.PASS
        assert outcome.steps[4].data["can_enter"] is True

    def test_entry_flags_are_carried(self):
        memory = TrendMemory(confirm_ts=T0, entry_1_done=True)
        outcome = run_trend_pipeline(LEVELS, _candles([98.0], close=99.0), [], memory)

        assert outcome.code is PlanCode.TREND_IN_TRADE_PROBE_DONE
        assert outcome.memory.entry_1_done is True

        memory = TrendMemory(confirm_ts=T0, entry_1_done=True, entry_2_done=True)
        outcome = run_trend_pipeline(LEVELS, _candles([98.0], close=99.0), [], memory)
        assert outcome.code is PlanCode.TREND_IN_TRADE_ADD_DONE

    def test_tp1_hit(self):
        outcome = run_trend_pipeline(LEVELS, _candles([98.0], close=99.0, high=121.0), [], TrendMemory())
        assert outcome.code is PlanCode.TREND_TP1_HIT

    def test_hard_stop_beats_everything(self):
        candles = _candles([88.0], close=89.0, high=125.0)
        memory = TrendMemory(confirm_ts=T0, entry_1_done=True, entry_2_done=True)
        outcome = run_trend_pipeline(LEVELS, candles, [], memory)

        assert outcome.code is PlanCode.TREND_INVALIDATED
        assert outcome.signals["trend_invalidation"] == "FAIL"
        assert outcome.next_actions[0] == "Stop out per plan (hard stop)"
        hard_sl = next(s for s in outcome.steps if s.id == "trend_hard_sl")
        assert hard_sl.status is StepStatus.FAIL

    def test_step_order(self):
        outcome = run_trend_pipeline(LEVELS, _candles([96.0], close=97.0), [], TrendMemory())
        assert [s.id for s in outcome.steps] == [
            "trend_wait_zone", "trend_5m_confirm_close", "trend_5m_hl", "trend_oi_confirm",
            "trend_entry_1", "trend_hard_sl", "trend_tp1",
        ]
