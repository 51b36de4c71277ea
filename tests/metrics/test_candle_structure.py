"""Tests for candle structure and aggregation"""

import pytest

from plan_tracker.config.defaults import HOUR_MS
from plan_tracker.data.models import Candle
from plan_tracker.metrics.candle_structure import (
    aggregate_candles,
    aggregate_hourly,
    analyze_candle_structure,
    is_upper_wick_dominant,
    synthesize_15m,
)

H0 = 1704196800000  # 2024-01-02T12:00:00Z


class TestCandleStructureAnalysis:
    """Test candle structure analysis"""

    def test_bearish_shooting_star(self):
        """Test analysis of a candle with a long upper wick"""
        candle = Candle(t=H0, open=96, high=100, low=95, close=95.8)

        structure = analyze_candle_structure(candle)

        assert structure.range_value == 5.0
        assert structure.body == pytest.approx(0.2)
        assert structure.upper_wick == 4.0  # 100 - max(96, 95.8)
        assert structure.lower_wick == pytest.approx(0.8)
        assert structure.upper_pct == pytest.approx(0.8)
        assert structure.is_bear is True
        assert structure.is_bull is False

    def test_zero_range_is_finite(self):
        structure = analyze_candle_structure(Candle(t=H0, open=100, high=100, low=100, close=100))
        assert structure.upper_pct == 0.0

    def test_upper_wick_dominant(self):
        assert is_upper_wick_dominant(Candle(t=H0, open=96, high=100, low=95, close=95.8))
        assert not is_upper_wick_dominant(Candle(t=H0, open=95, high=100, low=95, close=99.5))


class TestAggregation:
    """Test 15m synthesis and hourly aggregation"""

    def test_aggregate_candles(self):
        group = [
            Candle(t=H0, open=10, high=12, low=9, close=11, volume=1),
            Candle(t=H0 + 1, open=11, high=15, low=10, close=14, volume=2),
            Candle(t=H0 + 2, open=14, high=14, low=8, close=9, volume=3),
        ]
        candle = aggregate_candles(group)

        assert (candle.t, candle.open, candle.high, candle.low, candle.close, candle.volume) == \
            (H0, 10, 15, 8, 9, 6)

    def test_aggregate_empty(self):
        assert aggregate_candles([]) is None

    def test_synthesize_15m_uses_last_three(self, make_candles):
        candles = make_candles([100, 101, 102, 103])
        candle = synthesize_15m(candles)

        assert candle.t == candles[1].t
        assert candle.open == 101
        assert candle.close == 103

    def test_synthesize_15m_needs_three(self, make_candles):
        assert synthesize_15m(make_candles([100, 101])) is None

    def test_aggregate_hourly_groups_by_hour(self):
        candles = [
            Candle(t=H0 + HOUR_MS + 300_000, open=3, high=4, low=2, close=3.5),
            Candle(t=H0, open=1, high=2, low=0.5, close=1.5),
            Candle(t=H0 + 300_000, open=1.5, high=3, low=1, close=2),
            Candle(t=H0 + HOUR_MS, open=2, high=3, low=1.5, close=3),
        ]
        hourly = aggregate_hourly(candles)

        assert [c.t for c in hourly] == [H0, H0 + HOUR_MS]
        assert (hourly[0].open, hourly[0].high, hourly[0].close) == (1, 3, 2)
        assert (hourly[1].open, hourly[1].low, hourly[1].close) == (2, 1.5, 3.5)
