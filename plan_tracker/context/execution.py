"""Grid execution tuning from volatility regime and session."""

import math
from typing import Any, Optional

from ..metrics.volatility import VolState
from .session import SessionContext

SQUEEZE_BELOW = 0.75
EXPANSION_ABOVE = 1.25

# vol_state -> (spacing multiplier, density, risk mode, cooldown seconds, note)
BASE_TUNING = {
    VolState.QUIET: (0.8, "HIGH", "NORMAL", 0, "QUIET: tighten spacing, denser grid (watch fees)"),
    VolState.NORMAL: (1.0, "MED", "NORMAL", 0, "NORMAL: standard spacing/density"),
    VolState.HOT: (1.3, "LOW", "DEFENSIVE", 60, "HOT: widen spacing, reduce density, add cooldown"),
    VolState.EXTREME: (1.7, "LOW", "DEFENSIVE", 120,
                       "EXTREME: very wide spacing, minimal density, strong defensive"),
    VolState.UNKNOWN: (1.2, "LOW", "DEFENSIVE", 60, "UNKNOWN vol: fallback conservative"),
}


def _finite(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def build_execution_tuning(
    vol_state: Any,
    atr_ratio: Optional[float],
    bbw_ratio: Optional[float],
    session: SessionContext,
) -> dict[str, Any]:
    """
    Derive grid spacing, density, risk mode and cooldown.

    Args:
        vol_state: VolState or its string value; unrecognized values are UNKNOWN
        atr_ratio: Current ATR over its baseline mean
        bbw_ratio: Current BBW over its baseline mean
        session: Session in force

    Returns:
        Tuning dict with notes explaining each adjustment
    """
    try:
        state = VolState(vol_state)
    except ValueError:
        state = VolState.UNKNOWN

    spacing, density, risk_mode, cooldown, note = BASE_TUNING[state]
    notes = [note]

    if state is VolState.EXTREME and session.is_active:
        notes.append("EXTREME + active session: consider WAIT/NO_TRADE unless strong confirmation")

    if _finite(bbw_ratio) and bbw_ratio < SQUEEZE_BELOW:
        notes.append("BBW squeeze: expect expansion; avoid over-dense grid pre-breakout")
        if state is VolState.QUIET:
            risk_mode = "DEFENSIVE"
            density = "MED"
            spacing = max(spacing, 0.9)

    if _finite(bbw_ratio) and bbw_ratio > EXPANSION_ABOVE:
        notes.append("BBW expansion: keep spacing wider")
        if state in (VolState.HOT, VolState.EXTREME):
            spacing = max(spacing, 1.4)

    return {
        "grid_spacing_multiplier": spacing,
        "grid_density": density,
        "risk_mode": risk_mode,
        "cooldown_seconds": cooldown,
        "notes": notes,
        "session": session.current.value,
        "is_overlap": session.is_overlap,
        "inputs": {
            "vol_state": state.value,
            "atr_ratio": atr_ratio if _finite(atr_ratio) else None,
            "bbw_ratio": bbw_ratio if _finite(bbw_ratio) else None,
        },
    }
