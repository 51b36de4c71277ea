"""Tests for the volatility baseline cache."""

from unittest.mock import Mock

import pytest

from plan_tracker.data.models import Candle
from plan_tracker.errors import UpstreamError
from plan_tracker.history.volatility import VolatilityHistory

NOW = 1704198600000  # 12:30Z
STEP = 300_000
HOUR = 3_600_000


def _flat_candles(count, price=100.0, end=NOW):
    start = end - count * STEP
    return [Candle(t=start + i * STEP, open=price, high=price + 1, low=price - 1, close=price,
                   volume=1.0) for i in range(count)]


class TestVolatilitySample:
    """Test raw 5m, hourly aggregate and tf_1h maintenance."""

    def setup_method(self):
        self.client = Mock()

    def _history(self, tmp_path, now=NOW):
        return VolatilityHistory(tmp_path / "vol.json", self.client, clock=lambda: now)

    def test_sample_builds_all_sections(self, tmp_path):
        self.client.fetch_klines.return_value = _flat_candles(180)
        summary = self._history(tmp_path).sample("BTC-USDT")

        assert summary["fetched"] == 180
        assert summary["raw_5m"] == 180
        assert summary["agg_1h"] == 16
        assert summary["tf_1h"] == 1
        assert summary["atr14"] == pytest.approx(2.0)
        assert summary["bbw20"] is None
        self.client.fetch_klines.assert_called_once_with("BTC-USDT", "5m", 120)

        entry = self._history(tmp_path).load()["symbols"]["BTC-USDT"]
        assert entry["tf_1h"]["series"][0]["t"] == NOW - 30 * 60_000
        assert entry["agg_1h"]["last_agg_time"] == NOW

    def test_same_hour_overwrites_baseline_record(self, tmp_path):
        self.client.fetch_klines.return_value = _flat_candles(180)
        self._history(tmp_path).sample("BTC-USDT")
        summary = self._history(tmp_path, now=NOW + 10 * 60_000).sample("BTC-USDT")

        assert summary["tf_1h"] == 1

    def test_missing_metrics_keep_earlier_hour_reading(self, tmp_path, write_json):
        bucket = NOW - 30 * 60_000
        write_json(tmp_path / "vol.json", {
            "version": 1,
            "updated_at": NOW - STEP,
            "symbols": {"BTC-USDT": {
                "raw_5m": {"last_sample_time": NOW - STEP, "series": []},
                "agg_1h": {"last_agg_time": NOW - STEP, "series": []},
                "tf_1h": {"last_sample_time": NOW - STEP,
                          "series": [{"t": bucket, "atr14": 1.5, "bbw20": 0.02}]},
            }},
        })
        self.client.fetch_klines.return_value = _flat_candles(5)

        summary = self._history(tmp_path).sample("BTC-USDT")

        assert summary["atr14"] is None
        entry = self._history(tmp_path).load()["symbols"]["BTC-USDT"]
        assert entry["tf_1h"]["series"] == [{"t": bucket, "atr14": 1.5, "bbw20": 0.02}]
        assert entry["tf_1h"]["last_sample_time"] == NOW


    def test_missing_bbw_keeps_earlier_value(self, tmp_path, write_json):
        bucket = NOW - 30 * 60_000
        write_json(tmp_path / "vol.json", {"version": 1, "symbols": {"BTC-USDT": {
            "tf_1h": {"last_sample_time": NOW - STEP,
                      "series": [{"t": bucket, "atr14": 1.5, "bbw20": 0.02}]},
        }}})
        self.client.fetch_klines.return_value = _flat_candles(180)

        self._history(tmp_path).sample("BTC-USDT")

        record = self._history(tmp_path).load()["symbols"]["BTC-USDT"]["tf_1h"]["series"][0]
        assert record["atr14"] == pytest.approx(2.0)
        assert record["bbw20"] == 0.02


    def test_upstream_failure(self, tmp_path):
        self.client.fetch_klines.side_effect = UpstreamError("klines down")

        with pytest.raises(UpstreamError):
            self._history(tmp_path).sample("BTC-USDT")
        assert not (tmp_path / "vol.json").exists()


class TestVolatilitySnapshot:
    """Test the read side and its status ladder."""

    def setup_method(self):
        self.client = Mock()

    def _sampled(self, tmp_path, count):
        self.client.fetch_klines.return_value = _flat_candles(count)
        history = VolatilityHistory(tmp_path / "vol.json", self.client, clock=lambda: NOW)
        history.sample("BTC-USDT")
        return history

    def test_no_cache(self, tmp_path):
        snapshot = VolatilityHistory(tmp_path / "vol.json").snapshot("BTC-USDT", now=NOW)
        assert snapshot.status == "NO_DATA"
        assert snapshot.candles_5m == ()

    def test_unknown_symbol(self, tmp_path):
        snapshot = self._sampled(tmp_path, 180).snapshot("ETH-USDT", now=NOW)

        assert snapshot.status == "NO_DATA"
        assert snapshot.reason == "symbol_missing:ETH-USDT"

    def test_ok(self, tmp_path):
        snapshot = self._sampled(tmp_path, 180).snapshot("BTC-USDT", now=NOW)

        assert snapshot.status == "OK"
        assert len(snapshot.candles_5m) == 180
        assert snapshot.candles_1h[-1].t == NOW - 30 * 60_000
        assert snapshot.summary["now"]["atr_source"] == "live"
        assert snapshot.summary["relative"]["atr_ratio"] == pytest.approx(1.0)
        assert snapshot.summary["relative"]["vol_state"] == "NORMAL"
        assert snapshot.to_dict()["status"] == "OK"

    def test_stale(self, tmp_path):
        snapshot = self._sampled(tmp_path, 180).snapshot("BTC-USDT", now=NOW + 1801 * 1000)

        assert snapshot.status == "STALE"
        assert snapshot.reason == "raw_5m_age_sec:1801"

    def test_insufficient(self, tmp_path):
        snapshot = self._sampled(tmp_path, 12).snapshot("BTC-USDT", now=NOW)

        assert snapshot.status == "INSUFFICIENT_POINTS"
        assert snapshot.summary["relative"]["vol_state"] == "UNKNOWN"
        assert len(snapshot.candles_5m) == 12
