"""ATR (Average True Range) with Wilder smoothing"""

from collections.abc import Sequence
from typing import Optional

from ..data.models import Candle


def calculate_true_range(current: Candle, previous: Optional[Candle] = None) -> float:
    """
    Calculate True Range for a single candle

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close))

    Args:
        current: Current candle
        previous: Previous candle (None for first candle)

    Returns:
        True Range value
    """
    if previous is None:
        return current.high - current.low

    range_hl = current.high - current.low
    range_hc = abs(current.high - previous.close)
    range_lc = abs(current.low - previous.close)

    return max(range_hl, range_hc, range_lc)


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> Optional[float]:
    """
    Calculate ATR using Wilder smoothing

    True ranges start at the second candle, so ``period + 1`` candles are
    needed. The seed is the mean of the first ``period`` true ranges; each
    later value is ``(prev * (period - 1) + tr) / period``.

    Args:
        candles: Candles in chronological order
        period: ATR period (default 14)

    Returns:
        ATR value or None if insufficient data
    """
    if period <= 0 or len(candles) < period + 1:
        return None

    true_ranges = [
        calculate_true_range(candles[i], candles[i - 1])
        for i in range(1, len(candles))
    ]

    atr = sum(true_ranges[:period]) / period
    for tr in true_ranges[period:]:
        atr = (atr * (period - 1) + tr) / period

    return atr
