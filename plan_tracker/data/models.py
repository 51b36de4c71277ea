"""
Canonical data models for sampled market data.

Immutable records produced by the exchange client and the cache readers.
All timestamps are epoch milliseconds (UTC).
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class Candle:
    """OHLCV candle; ``t`` is the bar open time."""
    t: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "t": self.t,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class Point:
    """Generic scalar sample (funding rate, open interest, ATR, BBW)."""
    t: int
    v: Optional[float]


@dataclass(frozen=True)
class FundingSnapshot:
    """One premium index reading."""
    t: int
    mark_price: Optional[float]
    index_price: Optional[float]
    last_funding_rate: Optional[float]
    next_funding_time: Optional[int]

    def to_record(self) -> dict[str, Any]:
        """Cache record shape for the funding series."""
        return {
            "t": self.t,
            "lastFundingRate": self.last_funding_rate,
            "markPrice": self.mark_price,
            "indexPrice": self.index_price,
            "nextFundingTime": self.next_funding_time,
        }


OI_NOT_SUPPORTED = "NOT_SUPPORTED"


@dataclass(frozen=True)
class OpenInterestSnapshot:
    """
    One open interest reading.

    ``ok=False`` with ``reason=NOT_SUPPORTED`` is a normal outcome for
    symbols the exchange does not publish open interest for.
    """
    ok: bool
    open_interest: Optional[float] = None
    time: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def not_supported(cls) -> "OpenInterestSnapshot":
        return cls(ok=False, reason=OI_NOT_SUPPORTED)

    @property
    def supported(self) -> bool:
        return self.reason != OI_NOT_SUPPORTED


@dataclass(frozen=True)
class VolatilityRecord:
    """Hourly ATR14/BBW20 sample; either metric may be null."""
    t: int
    atr14: Optional[float]
    bbw20: Optional[float]

    def to_record(self) -> dict[str, Any]:
        return {"t": self.t, "atr14": self.atr14, "bbw20": self.bbw20}


@dataclass(frozen=True)
class DerivativesBundle:
    """
    Funding and open interest series at 5m and 15m for one symbol.

    ``sources`` maps each series name to the normalizer strategy that
    produced it, or to a note such as ``backfill_from_5m``.
    """
    funding5: list[Point] = field(default_factory=list)
    funding15: list[Point] = field(default_factory=list)
    oi5: list[Point] = field(default_factory=list)
    oi15: list[Point] = field(default_factory=list)
    updated_at: Optional[int] = None
    sources: dict[str, str] = field(default_factory=dict)
    funding_last_sample_time: Optional[int] = None
    oi_last_sample_time: Optional[int] = None
    oi_fallback: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.funding5 or self.funding15 or self.oi5 or self.oi15)
