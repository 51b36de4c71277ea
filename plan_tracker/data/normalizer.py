"""
Shape normalizers for exchange payloads and cache documents.

Upstream rows and older cache files come in several shapes. Each shape is
described by a named strategy; strategies are tried in priority order and
the name of the one that matched travels with the result so a reader can
tell which shape a series was recovered from.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from ..utils.time import to_ms
from .models import Candle, Point

logger = structlog.get_logger(__name__)


def to_float(value: Any) -> Optional[float]:
    """Parse a finite float from a number or numeric string, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class PathStrategy:
    """Locates a nested value by following a key path."""
    name: str
    path: tuple[str, ...]

    def extract(self, container: Any) -> Any:
        node = container
        for key in self.path:
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        return node


@dataclass(frozen=True)
class SeriesExtraction:
    """Result of pulling one point series out of a cache document."""
    points: list[Point]
    strategy: Optional[str] = None
    value_key: Optional[str] = None
    last_sample_time: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def found(cls, points: list[Point], strategy: str, value_key: Optional[str],
              last_sample_time: Optional[int]) -> "SeriesExtraction":
        return cls(points=points, strategy=strategy, value_key=value_key,
                   last_sample_time=last_sample_time)

    @classmethod
    def missing(cls, reason: str) -> "SeriesExtraction":
        return cls(points=[], reason=reason)


METRIC_CONTAINERS: dict[str, tuple[str, ...]] = {
    "funding": ("funding", "fundingRate"),
    "oi": ("openInterest", "open_interest", "oi"),
}

SERIES_SHAPES: dict[str, tuple[PathStrategy, ...]] = {
    "5m": (
        PathStrategy("series_5m_6h", ("series_5m_6h",)),
        PathStrategy("series5m", ("series5m",)),
        PathStrategy("5m.series", ("5m", "series")),
        PathStrategy("m5.series", ("m5", "series")),
    ),
    "15m": (
        PathStrategy("series_15m_24h", ("series_15m_24h",)),
        PathStrategy("series15m", ("series15m",)),
        PathStrategy("15m.series", ("15m", "series")),
        PathStrategy("m15.series", ("m15", "series")),
    ),
}

VALUE_KEYS: dict[str, tuple[str, ...]] = {
    "funding": ("lastFundingRate", "fundingRate", "rate", "v", "value"),
    "oi": ("openInterest", "open_interest", "oi", "value", "v"),
}

TIME_KEYS = ("t", "time", "ts", "timestamp")


def _record_time(record: dict[str, Any]) -> Optional[int]:
    for key in TIME_KEYS:
        if key in record:
            t = to_ms(record[key])
            if t is not None:
                return t
    return None


def _parse_points(records: list[Any], value_keys: tuple[str, ...]) -> tuple[list[Point], Optional[str]]:
    by_time: dict[int, Point] = {}
    used_key = None
    for record in records:
        if not isinstance(record, dict):
            continue
        t = _record_time(record)
        if t is None:
            continue
        for key in value_keys:
            v = to_float(record.get(key))
            if v is not None:
                by_time[t] = Point(t=t, v=v)
                used_key = used_key or key
                break
    return [by_time[t] for t in sorted(by_time)], used_key


def extract_series(symbol_entry: Any, metric: str, resolution: str) -> SeriesExtraction:
    """
    Extract a point series for ``metric`` ("funding" or "oi") at ``resolution``.

    Containers, shapes and value keys are each tried in priority order; the
    first container/shape pair holding a non-empty list wins.
    """
    if not isinstance(symbol_entry, dict):
        return SeriesExtraction.missing("symbol_entry_missing")

    for container_key in METRIC_CONTAINERS[metric]:
        container = symbol_entry.get(container_key)
        if not isinstance(container, dict):
            continue
        for shape in SERIES_SHAPES[resolution]:
            records = shape.extract(container)
            if not isinstance(records, list) or not records:
                continue
            points, value_key = _parse_points(records, VALUE_KEYS[metric])
            if not points:
                continue
            return SeriesExtraction.found(
                points=points,
                strategy=f"{container_key}.{shape.name}",
                value_key=value_key,
                last_sample_time=to_ms(container.get("last_sample_time")),
            )

    return SeriesExtraction.missing("series_empty")


def _symbol_variants(symbol: str) -> list[str]:
    upper = symbol.upper()
    compact = upper.replace("-", "").replace("_", "").replace("/", "")
    variants = [symbol, upper, compact]
    if compact.endswith("USDT") and "-" not in upper:
        variants.append(f"{compact[:-4]}-USDT")
    return list(dict.fromkeys(variants))


SymbolLocator = Callable[[dict[str, Any], str], Optional[dict[str, Any]]]


def _under_symbols(doc: dict[str, Any], symbol: str) -> Optional[dict[str, Any]]:
    symbols = doc.get("symbols")
    if not isinstance(symbols, dict):
        return None
    for variant in _symbol_variants(symbol):
        if isinstance(symbols.get(variant), dict):
            return symbols[variant]
    return None


def _top_level(doc: dict[str, Any], symbol: str) -> Optional[dict[str, Any]]:
    for variant in _symbol_variants(symbol):
        if isinstance(doc.get(variant), dict):
            return doc[variant]
    return None


def _flat_document(doc: dict[str, Any], symbol: str) -> Optional[dict[str, Any]]:
    keys = set(METRIC_CONTAINERS["funding"]) | set(METRIC_CONTAINERS["oi"])
    return doc if keys & set(doc) else None


SYMBOL_LOCATORS: tuple[tuple[str, SymbolLocator], ...] = (
    ("symbols.<symbol>", _under_symbols),
    ("<symbol>", _top_level),
    ("flat", _flat_document),
)


def locate_symbol_entry(doc: Any, symbol: str) -> tuple[Optional[dict[str, Any]], Optional[str]]:
    """Find the per-symbol entry in a cache document and name the locator used."""
    if not isinstance(doc, dict):
        return None, None
    for name, locator in SYMBOL_LOCATORS:
        entry = locator(doc, symbol)
        if entry is not None:
            return entry, name
    return None, None


def _candle_from_array(row: Any) -> Optional[Candle]:
    if not isinstance(row, (list, tuple)) or len(row) < 5:
        return None
    t = to_ms(row[0])
    values = [to_float(x) for x in row[1:5]]
    if t is None or any(v is None for v in values):
        return None
    volume = to_float(row[5]) if len(row) > 5 else None
    return Candle(t=t, open=values[0], high=values[1], low=values[2], close=values[3],
                  volume=volume or 0.0)


def _first(row: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in row:
            return row[key]
    return None


def _candle_from_object(row: Any) -> Optional[Candle]:
    if not isinstance(row, dict):
        return None
    t = to_ms(_first(row, ("time", "t", "openTime", "ts", "timestamp")))
    o = to_float(_first(row, ("open", "o")))
    h = to_float(_first(row, ("high", "h")))
    lo = to_float(_first(row, ("low", "l")))
    c = to_float(_first(row, ("close", "c")))
    if t is None or None in (o, h, lo, c):
        return None
    volume = to_float(_first(row, ("volume", "v", "vol")))
    return Candle(t=t, open=o, high=h, low=lo, close=c, volume=volume or 0.0)


KLINE_ROW_STRATEGIES: tuple[tuple[str, Callable[[Any], Optional[Candle]]], ...] = (
    ("array_row", _candle_from_array),
    ("object_row", _candle_from_object),
)


def normalize_klines(rows: Any) -> tuple[list[Candle], Optional[str]]:
    """
    Normalize kline rows into ascending, de-duplicated candles.

    The strategy is chosen from the first row that any strategy accepts and
    then applied to every row; rows it rejects are skipped.
    """
    if not isinstance(rows, list) or not rows:
        return [], None

    chosen = None
    for row in rows:
        for name, parse in KLINE_ROW_STRATEGIES:
            if parse(row) is not None:
                chosen = (name, parse)
                break
        if chosen:
            break

    if chosen is None:
        logger.warning("No kline row strategy matched", row_count=len(rows))
        return [], None

    name, parse = chosen
    by_time: dict[int, Candle] = {}
    for row in rows:
        candle = parse(row)
        if candle is not None:
            by_time[candle.t] = candle

    return [by_time[t] for t in sorted(by_time)], name


def candles_from_records(records: Any) -> list[Candle]:
    """Rebuild candles from cached ``{t, open, high, low, close, volume}`` records."""
    candles, _ = normalize_klines(records if isinstance(records, list) else [])
    return candles
