"""Candle aggregation and wick structure analysis"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from ..config.defaults import HOUR_MS
from ..data.models import Candle
from ..utils.time import floor_to

MIN_RANGE = 1e-9


@dataclass
class CandleStructure:
    """Candle structure analysis results"""
    range_value: float
    body: float
    upper_wick: float
    lower_wick: float
    upper_pct: float
    is_bull: bool
    is_bear: bool


def analyze_candle_structure(candle: Candle) -> CandleStructure:
    """
    Analyze candle structure components

    The range is floored at a tiny epsilon so zero-range candles produce
    finite ratios instead of dividing by zero.
    """
    range_value = max(MIN_RANGE, candle.high - candle.low)
    body = abs(candle.close - candle.open)
    upper_wick = candle.high - max(candle.open, candle.close)
    lower_wick = min(candle.open, candle.close) - candle.low

    return CandleStructure(
        range_value=range_value,
        body=body,
        upper_wick=upper_wick,
        lower_wick=lower_wick,
        upper_pct=upper_wick / range_value,
        is_bull=candle.close > candle.open,
        is_bear=candle.close < candle.open,
    )


def is_upper_wick_dominant(candle: Candle, min_ratio: float = 0.45,
                           body_multiple: float = 1.2) -> bool:
    """Upper wick is at least ``min_ratio`` of the range and ``body_multiple`` times the body."""
    structure = analyze_candle_structure(candle)
    return (structure.upper_pct >= min_ratio and
            structure.upper_wick >= structure.body * body_multiple)


def aggregate_candles(group: Sequence[Candle], t: Optional[int] = None) -> Optional[Candle]:
    """
    Reduce consecutive candles into one

    open = first.open, close = last.close, high = max, low = min,
    volume = sum. The result is stamped with ``t`` or the first candle's time.
    """
    if not group:
        return None
    return Candle(
        t=group[0].t if t is None else t,
        open=group[0].open,
        high=max(c.high for c in group),
        low=min(c.low for c in group),
        close=group[-1].close,
        volume=sum(c.volume for c in group),
    )


def synthesize_15m(candles_5m: Sequence[Candle]) -> Optional[Candle]:
    """Build a 15m candle from the latest three 5m candles, None with fewer than three."""
    if len(candles_5m) < 3:
        return None
    return aggregate_candles(list(candles_5m)[-3:])


def aggregate_hourly(candles: Sequence[Candle]) -> list[Candle]:
    """Group candles by the hour their open time falls in, ascending."""
    groups: dict[int, list[Candle]] = {}
    for candle in sorted(candles, key=lambda c: c.t):
        groups.setdefault(floor_to(candle.t, HOUR_MS), []).append(candle)

    return [aggregate_candles(groups[hour], t=hour) for hour in sorted(groups)]
