"""
Volatility history.

Each tick fetches recent 5m candles into ``raw_5m``, re-aggregates them to
hourly candles in ``agg_1h`` and upserts the hourly ATR14/BBW20 into
``tf_1h`` at the current hour bucket. Everything lives in
``volatility_baseline_cache.json``::

    {version, updated_at, symbols: {SYM: {raw_5m, agg_1h, tf_1h}}}

The read side returns the cached candles the state machine evaluates and
the volatility summary with a snapshot status.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from ..config.defaults import HOUR_MS, CacheParams, VolatilityParams
from ..data.models import Candle, VolatilityRecord
from ..data.normalizer import candles_from_records
from ..data.series import SeriesCache, round_down_to_bucket, trim_to_max
from ..errors import DataQualityError, MissingDataError
from ..metrics.candle_structure import aggregate_hourly
from ..metrics.derivatives import SeriesStatus
from ..metrics.volatility import build_volatility_summary, compute_live_metrics
from ..persistence.atomic import read_json_object, write_json_atomic
from ..utils.time import age_seconds, now_ms, to_ms

logger = structlog.get_logger(__name__)


def vol_symbol_entry(doc: dict[str, Any], symbol: str) -> dict[str, Any]:
    """Per-symbol entry of the volatility cache, created on first use."""
    entry = doc.setdefault("symbols", {}).setdefault(symbol, {})
    entry.setdefault("raw_5m", {"last_sample_time": None, "series": []})
    entry.setdefault("agg_1h", {"last_agg_time": None, "series": []})
    entry.setdefault("tf_1h", {"last_sample_time": None, "series": []})
    return entry


def _series_of(section: Any) -> list:
    if isinstance(section, dict) and isinstance(section.get("series"), list):
        return section["series"]
    return []


@dataclass(frozen=True)
class VolatilitySnapshot:
    """What one evaluation reads from the volatility cache."""
    status: str
    reason: Optional[str]
    candles_5m: tuple[Candle, ...] = ()
    candles_1h: tuple[Candle, ...] = ()
    summary: dict[str, Any] = field(default_factory=dict)
    raw_last_sample_time: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "reason": self.reason,
            "now": self.summary.get("now"),
            "baseline": self.summary.get("baseline"),
            "relative": self.summary.get("relative"),
        }


class VolatilityHistory:
    """
    Sampler and reader for ``volatility_baseline_cache.json``.

    Args:
        cache_path: Cache document
        client: Exchange client providing ``fetch_klines``
        cache_params: Raw/aggregate/baseline series limits
        vol_params: Indicator periods, baseline window and staleness
        kline_limit: 5m candles fetched per tick
        clock: Epoch-ms clock
    """

    def __init__(self, cache_path: Path, client: Any = None,
                 cache_params: CacheParams = CacheParams(),
                 vol_params: VolatilityParams = VolatilityParams(),
                 kline_limit: int = 120,
                 clock: Callable[[], int] = now_ms):
        self.cache_path = Path(cache_path)
        self.client = client
        self.cache_params = cache_params
        self.vol_params = vol_params
        self.kline_limit = kline_limit
        self._clock = clock

    def load(self) -> dict[str, Any]:
        try:
            return read_json_object(self.cache_path)
        except MissingDataError:
            return {"version": self.cache_params.cache_version, "updated_at": None, "symbols": {}}
        except DataQualityError as e:
            logger.warning("Volatility cache unreadable, starting empty",
                           path=str(self.cache_path), error=str(e))
            return {"version": self.cache_params.cache_version, "updated_at": None, "symbols": {}}

    def sample(self, symbol: str) -> dict[str, Any]:
        """
        Fetch 5m candles and refresh ``raw_5m``, ``agg_1h`` and ``tf_1h``.

        Raises:
            UpstreamError: If the kline request fails; the cache is untouched
            PersistenceError: If the cache cannot be written
        """
        fetched = self.client.fetch_klines(symbol, "5m", self.kline_limit)
        now = self._clock()

        doc = self.load()
        entry = vol_symbol_entry(doc, symbol)

        raw = SeriesCache.from_records(self.cache_params.raw_5m, _series_of(entry["raw_5m"]))
        for candle in fetched:
            raw.apply(candle.to_dict(), now)
        if not fetched:
            raw.touch(now)
        entry["raw_5m"] = {"last_sample_time": now, "series": raw.series}

        hourly = aggregate_hourly(candles_from_records(raw.series))
        hourly = trim_to_max(hourly, self.cache_params.agg_1h_cap)
        entry["agg_1h"] = {"last_agg_time": now, "series": [c.to_dict() for c in hourly]}

        atr, bbw = compute_live_metrics(hourly, self.vol_params)
        tf = SeriesCache.from_records(self.cache_params.tf_1h, _series_of(entry["tf_1h"]))
        bucket = round_down_to_bucket(now, HOUR_MS)
        if atr is None and bbw is None:
            # nothing computable this hour; an earlier reading for the bucket stays
            tf.touch(now)
        else:
            prior = next((r for r in tf.series if r.get("t") == bucket), {})
            record = VolatilityRecord(
                t=bucket,
                atr14=atr if atr is not None else prior.get("atr14"),
                bbw20=bbw if bbw is not None else prior.get("bbw20"),
            )
            tf.apply(record.to_record(), now)
        entry["tf_1h"] = {"last_sample_time": now, "series": tf.series}

        doc["version"] = self.cache_params.cache_version
        doc["updated_at"] = now
        write_json_atomic(self.cache_path, doc)

        summary = {
            "symbol": symbol,
            "fetched": len(fetched),
            "raw_5m": len(raw.series),
            "agg_1h": len(hourly),
            "tf_1h": len(tf.series),
            "atr14": atr,
            "bbw20": bbw,
            "dropped": raw.dropped + tf.dropped,
        }
        logger.info("Volatility sampled", **summary)
        return summary

    def snapshot(self, symbol: str, now: Optional[int] = None) -> VolatilitySnapshot:
        """
        Cached candles plus the volatility summary for ``symbol``.

        Status: NO_DATA without a cache entry, INSUFFICIENT_POINTS when no
        ATR is available live or cached, STALE when the raw 5m sample is
        older than the stale threshold, else OK.
        """
        now = self._clock() if now is None else now
        try:
            doc = read_json_object(self.cache_path)
        except DataQualityError as e:
            return VolatilitySnapshot(status=SeriesStatus.NO_DATA.value, reason=str(e))

        symbols = doc.get("symbols")
        entry = symbols.get(symbol) if isinstance(symbols, dict) else None
        if not isinstance(entry, dict):
            return VolatilitySnapshot(status=SeriesStatus.NO_DATA.value,
                                      reason=f"symbol_missing:{symbol}")

        candles_5m = tuple(candles_from_records(_series_of(entry.get("raw_5m"))))
        candles_1h = tuple(candles_from_records(_series_of(entry.get("agg_1h"))))
        tf_series = [r for r in _series_of(entry.get("tf_1h")) if isinstance(r, dict)]
        summary = build_volatility_summary(candles_1h, tf_series, self.vol_params)

        raw_section = entry.get("raw_5m")
        raw_last = to_ms(raw_section.get("last_sample_time")) if isinstance(raw_section, dict) else None
        age = age_seconds(raw_last, now)

        if summary["now"]["atr_1h"] is None:
            status, reason = SeriesStatus.INSUFFICIENT_POINTS, "atr_unavailable"
        elif age is None or age > self.vol_params.stale_seconds:
            status, reason = SeriesStatus.STALE, f"raw_5m_age_sec:{age}"
        else:
            status, reason = SeriesStatus.OK, None

        return VolatilitySnapshot(
            status=status.value,
            reason=reason,
            candles_5m=candles_5m,
            candles_1h=candles_1h,
            summary=summary,
            raw_last_sample_time=raw_last,
        )
