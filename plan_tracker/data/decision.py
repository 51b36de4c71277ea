"""
Decision document parsing.

The decision document is written by an external analyst process
(``latest_decision.json``). It is the one input the plan cannot be derived
without: a missing or unparsable document raises ``DecisionDocumentError``.
Individual optional fields that are missing are reported, not raised.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..errors import DecisionDocumentError
from .normalizer import to_float


@dataclass(frozen=True)
class TrendLevels:
    """Trend-up pipeline levels; ``missing`` names every absent input."""
    zone_low: Optional[float] = None
    zone_high: Optional[float] = None
    confirm_line: Optional[float] = None
    invalidation: Optional[float] = None
    tp1: Optional[float] = None
    missing: tuple[str, ...] = ()


@dataclass(frozen=True)
class Decision:
    """Normalized view of the fields the tracker consumes."""
    raw: dict[str, Any]
    mode_text: str
    market_mode: Optional[str]
    market_regime: Optional[str]
    confidence: Optional[float]
    risk_warning: list[str] = field(default_factory=list)
    grid_upper: Optional[float] = None
    grid_lower: Optional[float] = None
    sweep_zone: Optional[tuple[float, float]] = None
    sweep_zone_source: Optional[str] = None
    trend: TrendLevels = TrendLevels()
    smc: dict[str, Any] = field(default_factory=dict)


@dataclass
class DecisionNormalizationResult:
    """Result of decision normalization."""
    decision: Optional[Decision] = None
    success: bool = True
    error_msg: Optional[str] = None

    @classmethod
    def succeeded(cls, decision: Decision):
        """Create successful result with a normalized decision."""
        return cls(decision=decision, success=True)

    @classmethod
    def error(cls, error_msg: str):
        """Create error result."""
        return cls(success=False, error_msg=error_msg)


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _pair(value: Any) -> Optional[tuple[float, float]]:
    """Accept ``[low, high]`` or ``{low, high}``; returns an ordered pair."""
    if isinstance(value, dict):
        low, high = to_float(value.get("low")), to_float(value.get("high"))
    elif isinstance(value, (list, tuple)) and len(value) >= 2:
        low, high = to_float(value[0]), to_float(value[1])
    else:
        return None
    if low is None or high is None:
        return None
    return (min(low, high), max(low, high))


def _first_target(targets: Any) -> Optional[float]:
    if isinstance(targets, dict):
        return to_float(targets.get("t1"))
    if isinstance(targets, list) and targets:
        return to_float(targets[0])
    return None


def _trend_levels(levels: dict[str, Any], params: dict[str, Any]) -> TrendLevels:
    trend = _dict(levels.get("trend"))
    zone = _pair(trend.get("pullback_zone"))
    zone_low, zone_high = zone if zone else (None, None)

    confirm_line = to_float(trend.get("confirm_line"))
    if confirm_line is None:
        confirm_line = to_float(params.get("trend_entry"))
    if confirm_line is None:
        confirm_line = zone_high

    invalidation = to_float(trend.get("invalidation"))
    if invalidation is None:
        invalidation = to_float(params.get("trend_sl"))

    tp1 = _first_target(trend.get("targets"))
    if tp1 is None:
        tp1 = to_float(params.get("trend_tp"))

    missing = []
    if zone is None:
        missing.append("levels.trend.pullback_zone")
    if confirm_line is None:
        missing.append("confirm_line")
    if invalidation is None:
        missing.append("invalidation")
    if tp1 is None:
        missing.append("tp1")

    return TrendLevels(
        zone_low=zone_low,
        zone_high=zone_high,
        confirm_line=confirm_line,
        invalidation=invalidation,
        tp1=tp1,
        missing=tuple(missing),
    )


class DecisionNormalizer:
    """
    Converts a raw decision document into a ``Decision``.

    Args:
        sweep_band_pct: Width of the derived sweep zone below ``grid_upper``
            when the document does not name a sweep zone explicitly
    """

    def __init__(self, sweep_band_pct: float = 0.0035):
        self.sweep_band_pct = sweep_band_pct

    def normalize(self, raw: Any) -> DecisionNormalizationResult:
        if not isinstance(raw, dict):
            return DecisionNormalizationResult.error(
                f"Decision document must be a JSON object, got {type(raw).__name__}"
            )

        params = _dict(raw.get("parameters_for_grid_or_trend"))
        levels = _dict(raw.get("levels"))
        smc = _dict(levels.get("smc"))

        market_mode = raw.get("market_mode")
        mode_text = str(market_mode if market_mode is not None else raw.get("mode") or "")

        risk_warning = raw.get("risk_warning") or []
        if isinstance(risk_warning, str):
            risk_warning = [risk_warning]
        elif not isinstance(risk_warning, list):
            risk_warning = []

        grid_upper = to_float(params.get("grid_upper"))
        grid_lower = to_float(params.get("grid_lower"))

        sweep_zone, source = None, None
        for name, candidate in (
            ("parameters_for_grid_or_trend.sweep_zone_up", params.get("sweep_zone_up")),
            ("levels.smc.sweep_zone_up", smc.get("sweep_zone_up")),
        ):
            sweep_zone = _pair(candidate)
            if sweep_zone:
                source = name
                break
        if sweep_zone is None and grid_upper is not None:
            sweep_zone = (grid_upper * (1 - self.sweep_band_pct), grid_upper)
            source = "grid_upper_band"

        decision = Decision(
            raw=raw,
            mode_text=mode_text,
            market_mode=str(market_mode) if market_mode is not None else None,
            market_regime=raw.get("market_regime") or raw.get("regime"),
            confidence=to_float(raw.get("confidence")),
            risk_warning=[str(w) for w in risk_warning],
            grid_upper=grid_upper,
            grid_lower=grid_lower,
            sweep_zone=sweep_zone,
            sweep_zone_source=source,
            trend=_trend_levels(levels, params),
            smc=smc,
        )
        return DecisionNormalizationResult.succeeded(decision)


def load_decision(path: Path, sweep_band_pct: float = 0.0035) -> Decision:
    """
    Read and normalize the decision document.

    Raises:
        DecisionDocumentError: If the file is absent, unparsable or not an object
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise DecisionDocumentError(f"{Path(path).name}:not_found", path=str(path)) from e
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecisionDocumentError(f"{Path(path).name}:read_or_parse_error:{e}",
                                    path=str(path)) from e

    result = DecisionNormalizer(sweep_band_pct).normalize(raw)
    if not result.success:
        raise DecisionDocumentError(result.error_msg, path=str(path))
    return result.decision
