"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from plan_tracker.config.defaults import MINUTE_MS, get_default_config
from plan_tracker.data.decision import DecisionNormalizer
from plan_tracker.data.models import Candle, DerivativesBundle
from plan_tracker.state.models import EvaluationInputs, PersistedState

# 2024-01-02T12:30:00Z, inside the London-NY overlap
NOW = 1704198600000
FIVE_MIN = 5 * MINUTE_MS


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def config():
    return get_default_config()


@pytest.fixture
def make_candles() -> Callable[..., list[Candle]]:
    """Factory: 5m candles ending just before NOW from closes or explicit OHLC tuples."""

    def _make(rows: list, end: int = NOW, step: int = FIVE_MIN) -> list[Candle]:
        start = end - len(rows) * step
        candles = []
        for i, row in enumerate(rows):
            if isinstance(row, (int, float)):
                o, h, lo, c = row, row + 1, row - 1, row
            else:
                o, h, lo, c = row
            candles.append(Candle(t=start + i * step, open=o, high=h, low=lo, close=c, volume=1.0))
        return candles

    return _make


@pytest.fixture
def grid_decision_doc() -> dict[str, Any]:
    return {
        "market_mode": "GRID",
        "market_regime": "RANGE",
        "confidence": 0.7,
        "risk_warning": ["thin weekend liquidity"],
        "parameters_for_grid_or_trend": {
            "grid_upper": 98,
            "grid_lower": 80,
            "grid_count": 10,
            "sweep_zone_up": [90, 98],
        },
    }


@pytest.fixture
def trend_decision_doc() -> dict[str, Any]:
    return {
        "market_mode": "TREND_UP",
        "market_regime": "TRENDING",
        "confidence": 0.6,
        "levels": {
            "trend": {
                "pullback_zone": [95, 100],
                "confirm_line": 98,
                "invalidation": 90,
                "targets": {"t1": 120},
            },
            "smc": {"swing_high_1h": 121, "swing_low_1h": 89},
        },
    }


@pytest.fixture
def make_inputs(config) -> Callable[..., EvaluationInputs]:
    """Factory for EvaluationInputs from a raw decision document."""

    def _make(decision_doc: dict[str, Any],
              candles_5m: Optional[list[Candle]] = None,
              candles_1h: Optional[list[Candle]] = None,
              previous: Optional[PersistedState] = None,
              bundle: Optional[DerivativesBundle] = None,
              now: int = NOW) -> EvaluationInputs:
        decision = DecisionNormalizer(config.grid.sweep_band_pct).normalize(decision_doc).decision
        return EvaluationInputs(
            symbol="BTC-USDT",
            decision=decision,
            candles_5m=tuple(candles_5m or ()),
            candles_1h=tuple(candles_1h or ()),
            bundle=bundle or DerivativesBundle(),
            previous=previous,
            now_ms=now,
            config=config,
        )

    return _make


@pytest.fixture
def write_json() -> Callable[[Path, Any], Path]:
    def _write(path: Path, payload: Any) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write
