"""Bollinger Band Width"""

import math
from collections.abc import Sequence
from typing import Optional


def calculate_bbw(closes: Sequence[float], period: int = 20, k: float = 2.0) -> Optional[float]:
    """
    Calculate Bollinger Band Width over the last ``period`` closes

    width = (upper - lower) / middle = 2 * k * sigma / mean, with the
    population standard deviation.

    Returns:
        Width, or None with fewer than ``period`` closes or a zero mean
    """
    if period <= 0 or len(closes) < period:
        return None

    window = list(closes)[-period:]
    mean = sum(window) / period
    if mean == 0:
        return None

    variance = sum((c - mean) ** 2 for c in window) / period
    return (2 * k * math.sqrt(variance)) / mean
