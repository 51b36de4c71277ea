"""
Metrics calculation module.

Volatility (ATR14, BBW20, baseline ratios), candle structure and
funding/open interest signals. Every function here is pure.
"""

from .atr import calculate_atr, calculate_true_range
from .bollinger import calculate_bbw
from .candle_structure import aggregate_candles, aggregate_hourly, analyze_candle_structure

__all__ = [
    "aggregate_candles",
    "aggregate_hourly",
    "analyze_candle_structure",
    "calculate_atr",
    "calculate_bbw",
    "calculate_true_range",
]
