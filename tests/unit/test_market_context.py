"""Tests for session context, execution tuning and the news overlay."""

import pytest

from plan_tracker.context.execution import build_execution_tuning
from plan_tracker.context.news import read_news_overlay, summarize_news
from plan_tracker.context.session import Session, derive_session_context
from plan_tracker.metrics.volatility import VolState

DAY0 = 1704153600000  # 2024-01-02T00:00:00Z
HOUR = 3_600_000


class TestSessionContext:
    """Test UTC hour to session mapping."""

    @pytest.mark.parametrize("hour,expected", [
        (0, Session.ASIA),
        (6, Session.ASIA),
        (7, Session.LONDON),
        (11, Session.LONDON),
        (12, Session.OVERLAP),
        (13, Session.NY),
        (19, Session.NY),
        (20, Session.DEAD_ZONE),
        (23, Session.DEAD_ZONE),
    ])
    def test_hour_boundaries(self, hour, expected):
        context = derive_session_context(DAY0 + hour * HOUR + 59 * 60_000)
        assert context.current is expected
        assert context.utc_hour == hour

    def test_overlap_flags(self):
        context = derive_session_context(DAY0 + 12 * HOUR)

        assert context.is_overlap is True
        assert context.is_active is True
        assert context.confidence_bias == "HIGH"
        assert context.risk_overlay["liquidity_sweep_probability"] == "VERY_HIGH"

    @pytest.mark.parametrize("value", [None, "12", True, float("inf")])
    def test_unknown(self, value):
        context = derive_session_context(value)
        assert context.current is Session.UNKNOWN
        assert context.utc_hour is None

    def test_to_dict(self):
        doc = derive_session_context(DAY0 + 3 * HOUR).to_dict()
        assert doc["current"] == "ASIA"
        assert doc["label"] == "Asia Range / Accumulation"
        assert doc["risk_overlay"]["false_breakout_risk"] == "HIGH"


class TestExecutionTuning:
    """Test spacing, density and risk mode derivation."""

    def setup_method(self):
        self.asia = derive_session_context(DAY0 + 3 * HOUR)
        self.ny = derive_session_context(DAY0 + 15 * HOUR)

    def test_normal(self):
        tuning = build_execution_tuning("NORMAL", 1.0, 1.0, self.asia)

        assert tuning["grid_spacing_multiplier"] == 1.0
        assert tuning["grid_density"] == "MED"
        assert tuning["risk_mode"] == "NORMAL"
        assert tuning["cooldown_seconds"] == 0
        assert tuning["session"] == "ASIA"

    def test_quiet_squeeze_turns_defensive(self):
        tuning = build_execution_tuning(VolState.QUIET, 0.6, 0.5, self.asia)

        assert tuning["risk_mode"] == "DEFENSIVE"
        assert tuning["grid_density"] == "MED"
        assert tuning["grid_spacing_multiplier"] == 0.9
        assert any("squeeze" in n for n in tuning["notes"])

    def test_hot_expansion_widens(self):
        tuning = build_execution_tuning("HOT", 1.4, 1.5, self.asia)
        assert tuning["grid_spacing_multiplier"] == 1.4
        assert tuning["cooldown_seconds"] == 60

    def test_extreme_in_active_session(self):
        tuning = build_execution_tuning("EXTREME", 2.0, None, self.ny)

        assert tuning["grid_spacing_multiplier"] == 1.7
        assert tuning["cooldown_seconds"] == 120
        assert any("active session" in n for n in tuning["notes"])

    def test_unrecognized_state_is_unknown(self):
        tuning = build_execution_tuning("WILD", float("nan"), None, self.asia)

        assert tuning["inputs"]["vol_state"] == "UNKNOWN"
        assert tuning["inputs"]["atr_ratio"] is None
        assert tuning["risk_mode"] == "DEFENSIVE"


class TestNewsOverlay:
    def test_summarize(self):
        summary = summarize_news({
            "risk_level": "high",
            "has_hot_news": True,
            "macro": {"overall_risk_level": "MED"},
            "updated_at": "2024-01-02T12:00:00Z",
        })

        assert summary["status"] == "OK"
        assert summary["risk_level"] == "HIGH"
        assert summary["macro_risk"] == "MED"
        assert summary["updated_at"] == 1704196800000

    def test_incomplete(self):
        summary = summarize_news({"risk_level": "EXTREME"})
        assert summary["status"] == "INCOMPLETE"
        assert summary["risk_level"] is None

    def test_missing_file(self, tmp_path):
        overlay = read_news_overlay(tmp_path / "news_context.json")
        assert overlay["status"] == "NO_DATA"
        assert overlay["has_hot_news"] is False

    def test_reads_file(self, tmp_path, write_json):
        path = write_json(tmp_path / "news_context.json", {"risk_level": "LOW"})
        assert read_news_overlay(path)["risk_level"] == "LOW"
