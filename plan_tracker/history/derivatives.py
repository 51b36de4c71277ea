"""
Funding and open interest history.

The write side samples one premium index and one open interest reading per
tick into four bucketed series per symbol and rewrites
``derivatives_history_cache.json`` atomically. The read side rebuilds a
``DerivativesBundle`` from that document, tolerating older cache shapes,
backfilling thin 15m series from 5m and consulting the optional OI fallback
cache when the primary has no open interest.
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from ..config.defaults import CacheParams
from ..data.models import DerivativesBundle, Point
from ..data.normalizer import extract_series, locate_symbol_entry
from ..data.series import SeriesCache
from ..errors import DataQualityError, MissingDataError
from ..persistence.atomic import read_json_object, write_json_atomic
from ..utils.time import now_ms, to_ms

logger = structlog.get_logger(__name__)

FUNDING_SOURCE = "local-cache (sampled from premiumIndex)"
OI_SOURCE = "local-cache (sampled from openInterest)"


def empty_cache_document(version: int = 1) -> dict[str, Any]:
    return {"version": version, "updated_at": None, "symbols": {}}


def _metric_entry(source: str) -> dict[str, Any]:
    return {
        "source": source,
        "last_sample_time": None,
        "series_5m_6h": [],
        "series_15m_24h": [],
    }


def symbol_entry(doc: dict[str, Any], symbol: str) -> dict[str, Any]:
    """Per-symbol entry of a cache document, created on first use."""
    symbols = doc.setdefault("symbols", {})
    entry = symbols.setdefault(symbol, {})
    entry.setdefault("funding", _metric_entry(FUNDING_SOURCE))
    entry.setdefault("openInterest", _metric_entry(OI_SOURCE))
    return entry


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _last(values: Sequence[float]) -> float:
    return values[-1]


def backfill_15m(points_5m: Sequence[Point], points_15m: Sequence[Point],
                 reduce: Callable[[Sequence[float]], float]) -> tuple[list[Point], bool]:
    """
    Replace a thin native 15m series with complete groups of three 5m points.

    Groups start at the oldest 5m point; an incomplete trailing group is
    dropped. Each group takes the time of its first point.

    Returns:
        (points, backfilled)
    """
    # rule: backfill when native 15m has fewer points than complete 5m triples,
    # so an empty 15m series is always rebuilt once three 5m points exist
    groups = len(points_5m) // 3
    if len(points_15m) >= groups:
        return list(points_15m), False

    out = []
    for i in range(0, groups * 3, 3):
        group = points_5m[i:i + 3]
        out.append(Point(t=group[0].t, v=reduce([p.v for p in group])))
    return out, True


def resolve_updated_at(doc: Any, oi_fallback_doc: Any,
                       series: Sequence[Sequence[Point]]) -> tuple[Optional[int], str]:
    """
    Cache freshness stamp and where it came from.

    Order: the primary file's ``updated_at``, the OI fallback file's
    ``updated_at``, then the newest point across all series.
    """
    for candidate, source in ((doc, "file"), (oi_fallback_doc, "oi_fallback_file")):
        if isinstance(candidate, dict):
            t = to_ms(candidate.get("updated_at"))
            if t is not None:
                return t, source
    newest = max((p.t for points in series for p in points), default=None)
    if newest is not None:
        return newest, "newest_point"
    return None, "none"


def build_bundle(doc: Optional[dict[str, Any]], symbol: str,
                 oi_fallback_doc: Optional[dict[str, Any]] = None) -> DerivativesBundle:
    """
    Rebuild the four derivative series for ``symbol``.

    ``sources`` names the strategy behind every series so a consumer can
    tell which cache shape or fallback it came from.
    """
    entry, locator = locate_symbol_entry(doc, symbol)
    sources: dict[str, str] = {"locator": locator or "none"}

    funding5 = extract_series(entry, "funding", "5m")
    funding15 = extract_series(entry, "funding", "15m")
    oi5 = extract_series(entry, "oi", "5m")
    oi15 = extract_series(entry, "oi", "15m")

    oi_fallback: dict[str, Any] = {"used": False, "reason": None}
    if not oi5.points and not oi15.points:
        if oi_fallback_doc is None:
            oi_fallback["reason"] = "oi_fallback_missing"
        else:
            fb_entry, fb_locator = locate_symbol_entry(oi_fallback_doc, symbol)
            fb5 = extract_series(fb_entry, "oi", "5m")
            fb15 = extract_series(fb_entry, "oi", "15m")
            if fb5.points or fb15.points:
                oi5, oi15 = fb5, fb15
                oi_fallback = {"used": True, "reason": None, "locator": fb_locator}
            else:
                oi_fallback["reason"] = "oi_fallback_empty"

    f15_points, f15_backfilled = backfill_15m(funding5.points, funding15.points, _mean)
    o15_points, o15_backfilled = backfill_15m(oi5.points, oi15.points, _last)

    prefix = "oi_fallback:" if oi_fallback["used"] else ""
    sources.update({
        "funding5": funding5.strategy or funding5.reason,
        "funding15": "backfill_from_5m" if f15_backfilled else (funding15.strategy or funding15.reason),
        "oi5": prefix + (oi5.strategy or oi5.reason),
        "oi15": prefix + ("backfill_from_5m" if o15_backfilled else (oi15.strategy or oi15.reason)),
    })

    updated_at, sources["updated_at"] = resolve_updated_at(
        doc, oi_fallback_doc, (funding5.points, f15_points, oi5.points, o15_points))

    return DerivativesBundle(
        funding5=list(funding5.points),
        funding15=f15_points,
        oi5=list(oi5.points),
        oi15=o15_points,
        updated_at=updated_at,
        sources=sources,
        funding_last_sample_time=funding5.last_sample_time or funding15.last_sample_time,
        oi_last_sample_time=oi5.last_sample_time or oi15.last_sample_time,
        oi_fallback=oi_fallback,
    )


class DerivativesHistory:
    """
    Sampler and reader for ``derivatives_history_cache.json``.

    Args:
        cache_path: Primary cache document
        client: Exchange client providing ``fetch_funding`` and
            ``fetch_open_interest``
        params: Bucket, retention and cap per series
        oi_fallback_path: Optional secondary OI cache, read only
        clock: Epoch-ms clock
    """

    def __init__(self, cache_path: Path, client: Any = None,
                 params: CacheParams = CacheParams(),
                 oi_fallback_path: Optional[Path] = None,
                 clock: Callable[[], int] = now_ms):
        self.cache_path = Path(cache_path)
        self.client = client
        self.params = params
        self.oi_fallback_path = Path(oi_fallback_path) if oi_fallback_path else None
        self._clock = clock

    def load(self) -> dict[str, Any]:
        """Current cache document; a missing or corrupt file starts empty."""
        try:
            return read_json_object(self.cache_path)
        except MissingDataError:
            return empty_cache_document(self.params.cache_version)
        except DataQualityError as e:
            logger.warning("Derivatives cache unreadable, starting empty",
                           path=str(self.cache_path), error=str(e))
            return empty_cache_document(self.params.cache_version)

    def _series(self, metric: dict[str, Any]) -> tuple[SeriesCache, SeriesCache]:
        last = to_ms(metric.get("last_sample_time"))
        return (
            SeriesCache.from_records(self.params.deriv_5m, metric.get("series_5m_6h"), last),
            SeriesCache.from_records(self.params.deriv_15m, metric.get("series_15m_24h"), last),
        )

    @staticmethod
    def _store(metric: dict[str, Any], s5: SeriesCache, s15: SeriesCache) -> None:
        metric["series_5m_6h"] = s5.series
        metric["series_15m_24h"] = s15.series
        metric["last_sample_time"] = s5.last_sample_time

    def sample(self, symbol: str) -> dict[str, Any]:
        """
        Take one funding + OI reading and persist the updated series.

        Raises:
            UpstreamError: If either exchange call fails; the cache is untouched
            PersistenceError: If the cache cannot be written
        """
        funding = self.client.fetch_funding(symbol)
        oi = self.client.fetch_open_interest(symbol)
        now = self._clock()

        doc = self.load()
        entry = symbol_entry(doc, symbol)

        f5, f15 = self._series(entry["funding"])
        record = funding.to_record()
        record["t"] = now
        f5.apply(record, now)
        f15.apply(record, now)
        self._store(entry["funding"], f5, f15)

        o5, o15 = self._series(entry["openInterest"])
        oi_recorded = False
        if oi.ok and oi.open_interest is not None:
            oi_t = oi.time if oi.time and oi.time > 0 else now
            oi_record = {"t": oi_t, "openInterest": oi.open_interest}
            o5.apply(oi_record, now)
            o15.apply(oi_record, now)
            oi_recorded = True
        else:
            o5.touch(now)
            o15.touch(now)
        self._store(entry["openInterest"], o5, o15)

        doc["version"] = self.params.cache_version
        doc["updated_at"] = now
        write_json_atomic(self.cache_path, doc)

        summary = {
            "symbol": symbol,
            "funding_points_5m": len(f5.series),
            "funding_points_15m": len(f15.series),
            "oi_points_5m": len(o5.series),
            "oi_points_15m": len(o15.series),
            "oi_recorded": oi_recorded,
            "oi_reason": oi.reason,
            "dropped": f5.dropped + f15.dropped + o5.dropped + o15.dropped,
        }
        logger.info("Derivatives sampled", **summary)
        return summary

    def _read_optional(self, path: Optional[Path]) -> tuple[Optional[dict[str, Any]], Optional[str]]:
        if path is None:
            return None, "not_configured"
        try:
            return read_json_object(path), None
        except DataQualityError as e:
            return None, str(e)

    def bundle(self, symbol: str) -> tuple[DerivativesBundle, dict[str, Any]]:
        """Bundle plus read diagnostics for the primary and fallback files."""
        doc, primary_reason = self._read_optional(self.cache_path)
        fallback_doc, fallback_reason = self._read_optional(self.oi_fallback_path)

        bundle = build_bundle(doc, symbol, fallback_doc)
        oi_fallback = dict(bundle.oi_fallback)
        if fallback_reason and bundle.oi_fallback.get("reason"):
            oi_fallback["detail"] = fallback_reason

        debug = {
            "deriv_primary": {"file": self.cache_path.name, "reason": primary_reason},
            "oi_fallback": oi_fallback,
        }
        return bundle, debug
