"""
Volatility baseline: ATR/BBW relative to their own recent history.

The live ATR14/BBW20 are computed on hourly candles and compared against
the cached hourly series of the same metric. The ATR ratio drives the
volatility regime used by execution tuning.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..config.defaults import VolatilityParams
from ..data.models import Candle
from .atr import calculate_atr
from .bollinger import calculate_bbw


class VolState(str, Enum):
    """Volatility regime derived from the ATR ratio."""
    QUIET = "QUIET"
    NORMAL = "NORMAL"
    HOT = "HOT"
    EXTREME = "EXTREME"
    UNKNOWN = "UNKNOWN"


VOL_STATE_CONFIDENCE = {
    VolState.QUIET: 0.8,
    VolState.NORMAL: 0.85,
    VolState.HOT: 0.85,
    VolState.EXTREME: 0.9,
    VolState.UNKNOWN: 0.2,
}


def _finite(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def classify_vol_state(atr_ratio: Optional[float],
                       params: VolatilityParams = VolatilityParams()) -> tuple[VolState, float]:
    """Map an ATR ratio to a regime and its confidence."""
    if not _finite(atr_ratio):
        state = VolState.UNKNOWN
    elif atr_ratio < params.quiet_below:
        state = VolState.QUIET
    elif atr_ratio < params.normal_below:
        state = VolState.NORMAL
    elif atr_ratio < params.hot_below:
        state = VolState.HOT
    else:
        state = VolState.EXTREME
    return state, VOL_STATE_CONFIDENCE[state]


@dataclass(frozen=True)
class Baseline:
    """Current value relative to its cached history."""
    current: Optional[float]
    source: Optional[str]
    mean: Optional[float]
    percentile: Optional[float]
    ratio: Optional[float]
    samples: int


def compute_baseline(live: Optional[float], history: Sequence[Any],
                     window: int = 50) -> Baseline:
    """
    Compare ``live`` against the cached ``history`` of the same metric.

    A null live value falls back to the last finite cached value. The ratio
    uses the mean of the last ``window`` cached values; the percentile is the
    fraction of all cached values at or below the current value.
    """
    values = [v for v in history if _finite(v)]

    current, source = (live, "live") if _finite(live) else (None, None)
    if current is None and values:
        current, source = values[-1], "cache"

    recent = values[-window:] if window > 0 else values
    mean = sum(recent) / len(recent) if recent else None

    percentile = None
    if current is not None and values:
        percentile = sum(1 for v in values if v <= current) / len(values)

    ratio = None
    if current is not None and mean is not None and mean > 0:
        ratio = current / mean

    return Baseline(
        current=current,
        source=source,
        mean=mean,
        percentile=percentile,
        ratio=ratio,
        samples=len(values),
    )


def compute_live_metrics(hourly: Sequence[Candle],
                         params: VolatilityParams = VolatilityParams()) -> tuple[Optional[float], Optional[float]]:
    """ATR and BBW on hourly candles; either may be None."""
    atr = calculate_atr(hourly, params.atr_period)
    bbw = calculate_bbw([c.close for c in hourly], params.bbw_period, params.bbw_k)
    return atr, bbw


def build_volatility_summary(
    hourly: Sequence[Candle],
    tf_1h_series: Sequence[dict[str, Any]],
    params: VolatilityParams = VolatilityParams(),
) -> dict[str, Any]:
    """
    Build the ``now`` / ``baseline`` / ``relative`` volatility sections.

    Args:
        hourly: Aggregated hourly candles, ascending
        tf_1h_series: Cached ``{t, atr14, bbw20}`` records, ascending
        params: Periods, baseline window and regime thresholds

    Returns:
        Summary dict; ``relative.vol_state`` is UNKNOWN when no ATR ratio
        can be formed
    """
    live_atr, live_bbw = compute_live_metrics(hourly, params)
    atr = compute_baseline(live_atr, [r.get("atr14") for r in tf_1h_series],
                           params.baseline_window)
    bbw = compute_baseline(live_bbw, [r.get("bbw20") for r in tf_1h_series],
                           params.baseline_window)
    vol_state, confidence = classify_vol_state(atr.ratio, params)

    return {
        "now": {
            "atr_1h": atr.current,
            "bbw_1h": bbw.current,
            "atr_source": atr.source,
            "bbw_source": bbw.source,
        },
        "baseline": {
            "atr_mean_1h": atr.mean,
            "atr_pctl_1h": atr.percentile,
            "bbw_mean_1h": bbw.mean,
            "bbw_pctl_1h": bbw.percentile,
            "window": params.baseline_window,
            "samples_1h": len(tf_1h_series),
        },
        "relative": {
            "atr_ratio": atr.ratio,
            "bbw_ratio": bbw.ratio,
            "vol_state": vol_state.value,
            "confidence": confidence,
        },
    }
