"""Trading session classification by UTC hour."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Session(str, Enum):
    ASIA = "ASIA"
    LONDON = "LONDON"
    OVERLAP = "OVERLAP"
    NY = "NY"
    DEAD_ZONE = "DEAD_ZONE"
    UNKNOWN = "UNKNOWN"


ACTIVE_SESSIONS = frozenset({Session.LONDON, Session.OVERLAP, Session.NY})


@dataclass(frozen=True)
class SessionContext:
    """Session in force at a given instant and its fixed risk overlay."""
    current: Session
    is_overlap: bool
    utc_hour: Optional[int]
    label: str
    confidence_bias: str
    risk_overlay: dict[str, str] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.current in ACTIVE_SESSIONS

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current.value,
            "is_overlap": self.is_overlap,
            "utc_hour": self.utc_hour,
            "label": self.label,
            "confidence_bias": self.confidence_bias,
            "risk_overlay": dict(self.risk_overlay),
        }


def _overlay(volatility: str, false_breakout: str, sweep: str) -> dict[str, str]:
    return {
        "volatility_expectation": volatility,
        "false_breakout_risk": false_breakout,
        "liquidity_sweep_probability": sweep,
    }


# (start_hour, end_hour, session, label, confidence_bias, overlay); end is exclusive
SESSION_WINDOWS = (
    (0, 7, Session.ASIA, "Asia Range / Accumulation", "LOW", _overlay("LOW", "HIGH", "LOW")),
    (7, 12, Session.LONDON, "London Expansion", "MEDIUM", _overlay("INCREASING", "MEDIUM", "HIGH")),
    (12, 13, Session.OVERLAP, "London-NY Overlap (Kill Zone)", "HIGH", _overlay("HIGH", "LOW", "VERY_HIGH")),
    (13, 20, Session.NY, "NY Directional Move", "HIGH", _overlay("HIGH", "LOW", "HIGH")),
    (20, 24, Session.DEAD_ZONE, "Low Participation", "LOW", _overlay("LOW", "HIGH", "LOW")),
)

UNKNOWN_SESSION = SessionContext(
    current=Session.UNKNOWN,
    is_overlap=False,
    utc_hour=None,
    label="Unknown Session",
    confidence_bias="LOW",
    risk_overlay=_overlay("UNKNOWN", "UNKNOWN", "UNKNOWN"),
)


def derive_session_context(ts_ms: Any) -> SessionContext:
    """
    Classify an epoch-ms instant into its trading session.

    Args:
        ts_ms: Epoch milliseconds; anything non-numeric yields UNKNOWN

    Returns:
        SessionContext for the UTC hour of ``ts_ms``
    """
    if not isinstance(ts_ms, (int, float)) or isinstance(ts_ms, bool):
        return UNKNOWN_SESSION
    try:
        hour = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).hour
    except (OverflowError, OSError, ValueError):
        return UNKNOWN_SESSION

    for start, end, session, label, bias, overlay in SESSION_WINDOWS:
        if start <= hour < end:
            return SessionContext(
                current=session,
                is_overlap=session is Session.OVERLAP,
                utc_hour=hour,
                label=label,
                confidence_bias=bias,
                risk_overlay=dict(overlay),
            )
    return UNKNOWN_SESSION
