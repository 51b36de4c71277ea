"""
Funding and open interest signals.

Deltas, least-squares slopes, short-horizon trend direction, series health
metadata and the crowding/trapped-side heuristics. All functions are pure
and operate on ``Point`` lists already extracted from the caches.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..config.defaults import SignalParams
from ..data.models import DerivativesBundle, Point
from ..utils.time import age_seconds


class Crowding(str, Enum):
    """Positioning read from 15m OI and funding slopes."""
    CROWDED_LONG = "CROWDED_LONG"
    CROWDED_SHORT = "CROWDED_SHORT"
    LONG_UNWIND = "LONG_UNWIND"
    SHORT_UNWIND = "SHORT_UNWIND"
    NEUTRAL = "NEUTRAL"


class SeriesStatus(str, Enum):
    OK = "OK"
    NO_DATA = "NO_DATA"
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
    STALE = "STALE"
    ERROR = "ERROR"


class Freshness(str, Enum):
    FRESH = "FRESH"
    STALE = "STALE"
    OLD = "OLD"
    UNKNOWN = "UNKNOWN"


def linear_slope(values: Sequence[float]) -> Optional[float]:
    """
    Ordinary least-squares slope of value against sequential index.

    Returns:
        Slope per point, or None with fewer than 3 values or a zero denominator
    """
    n = len(values)
    if n < 3:
        return None

    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for x, y in enumerate(values):
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_xx += x * x

    denom = n * sum_xx - sum_x * sum_x
    if denom == 0:
        return None
    return (n * sum_xy - sum_x * sum_y) / denom


def pct_change(last: Optional[float], prev: Optional[float]) -> Optional[float]:
    """Relative change from ``prev`` to ``last``; None when prev is missing or zero."""
    if last is None or prev is None or prev == 0:
        return None
    return (last - prev) / abs(prev)


def series_signals(points: Sequence[Point], window: int) -> dict[str, Optional[float]]:
    """last / prev / delta / pct / slope for one series."""
    last = points[-1].v if points else None
    prev = points[-2].v if len(points) >= 2 else None
    tail = [p.v for p in points[-window:]] if window > 0 else [p.v for p in points]

    return {
        "last": last,
        "prev": prev,
        "delta": last - prev if last is not None and prev is not None else None,
        "pct": pct_change(last, prev),
        "slope": linear_slope(tail),
    }


def classify_crowding(oi_slope: Optional[float], funding_slope: Optional[float]) -> Crowding:
    """Combine the signs of the 15m OI and funding slopes."""
    oi_up = oi_slope is not None and oi_slope > 0
    oi_down = oi_slope is not None and oi_slope < 0
    funding_up = funding_slope is not None and funding_slope > 0
    funding_down = funding_slope is not None and funding_slope < 0

    if oi_up and funding_up:
        return Crowding.CROWDED_LONG
    if oi_up and funding_down:
        return Crowding.CROWDED_SHORT
    if oi_down and funding_up:
        return Crowding.LONG_UNWIND
    if oi_down and funding_down:
        return Crowding.SHORT_UNWIND
    return Crowding.NEUTRAL


def build_signals(bundle: DerivativesBundle,
                  params: SignalParams = SignalParams()) -> dict[str, Any]:
    """Per-series signals for funding and OI at both resolutions plus crowding."""
    funding = {
        "5m": series_signals(bundle.funding5, params.slope_window_5m),
        "15m": series_signals(bundle.funding15, params.slope_window_15m),
    }
    open_interest = {
        "5m": series_signals(bundle.oi5, params.slope_window_5m),
        "15m": series_signals(bundle.oi15, params.slope_window_15m),
    }
    crowding = classify_crowding(open_interest["15m"]["slope"], funding["15m"]["slope"])

    return {
        "funding": funding,
        "openInterest": open_interest,
        "combined": {
            "crowding": crowding.value,
            "risk_note": ("If price stalls while OI builds, watch for a squeeze at liquidity zones"
                          if (open_interest["15m"]["slope"] or 0) > 0 else None),
        },
    }


def trend(points: Sequence[Point], lookback: int, flat_pct: float = 0.05) -> dict[str, Any]:
    """
    Direction over the last ``lookback`` points.

    ``pct`` is in percent; moves within +/- ``flat_pct`` are FLAT. A near-zero
    starting value is treated as 1 to keep the percentage finite.
    """
    if not points:
        return {"dir": "UNKNOWN", "pct": 0.0, "now": None, "prev": None}

    tail = list(points[-lookback:])
    if len(tail) < 2:
        return {"dir": "UNKNOWN", "pct": 0.0, "now": tail[-1].v, "prev": None}

    first, last = tail[0].v, tail[-1].v
    base = 1.0 if abs(first) < 1e-9 else first
    pct = (last - first) / base * 100

    if pct > flat_pct:
        direction = "UP"
    elif pct < -flat_pct:
        direction = "DOWN"
    else:
        direction = "FLAT"
    return {"dir": direction, "pct": pct, "now": last, "prev": first}


def series_integrity(points: Sequence[Point]) -> dict[str, Any]:
    """Count, span, largest gap and whether the stored order is ascending."""
    if not points:
        return {"count": 0, "span_sec": 0, "max_gap_sec": None, "monotonic": True}

    monotonic = all(points[i].t >= points[i - 1].t for i in range(1, len(points)))
    ordered = sorted(p.t for p in points)
    max_gap = max((b - a for a, b in zip(ordered, ordered[1:])), default=0)

    return {
        "count": len(points),
        "span_sec": (ordered[-1] - ordered[0]) / 1000,
        "max_gap_sec": max_gap / 1000,
        "monotonic": monotonic,
    }


def freshness(updated_at_ms: Optional[int], now_ms: int,
              params: SignalParams = SignalParams()) -> dict[str, Any]:
    """Tag a timestamp FRESH / STALE / OLD by age, UNKNOWN without one."""
    age = age_seconds(updated_at_ms, now_ms) if updated_at_ms else None
    if age is None:
        tag = Freshness.UNKNOWN
    elif age <= params.fresh_seconds:
        tag = Freshness.FRESH
    elif age <= params.stale_seconds:
        tag = Freshness.STALE
    else:
        tag = Freshness.OLD
    return {"tag": tag.value, "age_sec": age}


def series_meta(
    series5: Sequence[Point],
    series15: Sequence[Point],
    fresh: dict[str, Any],
    source: Optional[dict[str, Any]] = None,
    params: SignalParams = SignalParams(),
) -> dict[str, Any]:
    """
    Health of one metric across both resolutions.

    Status ladder: NO_DATA, then ERROR (non-monotonic storage), then
    INSUFFICIENT_POINTS (combined 5m + 15m count below ``min_points``), then
    STALE when freshness is STALE or OLD.
    """
    s5 = series_integrity(series5)
    s15 = series_integrity(series15)
    total = s5["count"] + s15["count"]

    status, reason = SeriesStatus.OK, None
    if total == 0:
        status, reason = SeriesStatus.NO_DATA, "series_empty"
    elif not (s5["monotonic"] and s15["monotonic"]):
        status, reason = SeriesStatus.ERROR, "timestamp_not_monotonic"
    elif total < params.min_points:
        status, reason = SeriesStatus.INSUFFICIENT_POINTS, f"insufficient_points:<{params.min_points}"
    elif fresh.get("tag") in (Freshness.STALE.value, Freshness.OLD.value):
        status, reason = SeriesStatus.STALE, f"stale:{fresh['tag']}"

    if series5:
        now = series5[-1].v
    elif series15:
        now = series15[-1].v
    else:
        now = None

    return {
        "status": status.value,
        "has_data": total > 0,
        "reason": reason,
        "now": now,
        "trend_5m": trend(series5, params.trend_lookback_5m, params.trend_flat_pct),
        "trend_15m": trend(series15, params.trend_lookback_15m, params.trend_flat_pct),
        "integrity": {"s5": s5, "s15": s15},
        "freshness": fresh,
        "source": source or {},
    }


def nearest_value_at(points: Sequence[Point], t_ms: int,
                     tolerance_ms: int = 10 * 60 * 1000) -> Optional[float]:
    """Value of the point closest to ``t_ms``, None if nothing lies within tolerance."""
    best = None
    for p in points:
        dt = abs(p.t - t_ms)
        if best is None or dt < best[0]:
            best = (dt, p.v)
    if best is None or best[0] > tolerance_ms:
        return None
    return best[1]


@dataclass(frozen=True)
class SweepContext:
    """Price-side facts the trapped-side heuristic needs."""
    sweep_seen: bool
    rejection_confirmed: bool
    close_5m: Optional[float]
    zone_high: Optional[float]
    sweep_t: Optional[int] = None


def infer_crowd_and_trap(sweep: SweepContext, oi_meta: dict[str, Any],
                         funding_meta: dict[str, Any], oi_at_sweep: Optional[float]) -> dict[str, Any]:
    """
    Which side is crowded and whether it looks trapped after a failed sweep.

    Crowd side follows the funding sign. A side is trapped only when the
    sweep was seen, the 15m rejection confirmed, the 5m close is back below
    the zone high, OI has risen (5m or 15m trend UP) and funding favours it.
    """
    funding_now = funding_meta.get("now")
    oi_now = oi_meta.get("now")

    crowd = "UNKNOWN"
    if funding_now is not None and funding_now > 0:
        crowd = "LONGS"
    elif funding_now is not None and funding_now < 0:
        crowd = "SHORTS"

    oi_added = (oi_meta["trend_5m"]["dir"] == "UP" or oi_meta["trend_15m"]["dir"] == "UP")
    price_failed = (sweep.close_5m is not None and sweep.zone_high is not None
                    and sweep.close_5m < sweep.zone_high)

    trapped = "NONE"
    if sweep.sweep_seen and sweep.rejection_confirmed and price_failed and oi_added:
        if funding_now is not None and funding_now > 0:
            trapped = "LONGS_TRAPPED"
        elif funding_now is not None and funding_now < 0:
            trapped = "SHORTS_TRAPPED"

    oi_vs_sweep_pct = None
    if oi_now is not None and oi_at_sweep is not None:
        base = 1.0 if abs(oi_at_sweep) < 1e-9 else oi_at_sweep
        oi_vs_sweep_pct = (oi_now - oi_at_sweep) / base * 100

    note_bits = []
    if funding_now is not None:
        note_bits.append(f"Funding(now)={funding_now:.6f}")
    note_bits.append(f"OI 5m={oi_meta['trend_5m']['dir']} ({oi_meta['trend_5m']['pct']:.2f}%)")
    note_bits.append(f"Funding 5m={funding_meta['trend_5m']['dir']} ({funding_meta['trend_5m']['pct']:.2f}%)")
    if oi_vs_sweep_pct is not None:
        note_bits.append(f"OI vs sweep={oi_vs_sweep_pct:.2f}%")

    return {
        "crowd": crowd,
        "trapped": trapped,
        "oi_at_sweep": oi_at_sweep,
        "oi_vs_sweep_pct": oi_vs_sweep_pct,
        "explain": _crowd_text(crowd, trapped),
        "note": " | ".join(note_bits),
    }


def _crowd_text(crowd: str, trapped: str) -> str:
    crowd_text = {
        "LONGS": "Longs are crowded",
        "SHORTS": "Shorts are crowded",
    }.get(crowd, "Crowded side unclear")

    if trapped == "LONGS_TRAPPED":
        return f"{crowd_text}; longs likely trapped above (OI added, positive funding, swept then rejected)"
    if trapped == "SHORTS_TRAPPED":
        return f"{crowd_text}; shorts likely trapped (OI added against negative funding)"
    return f"{crowd_text}; no clear trapped side"
