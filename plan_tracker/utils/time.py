"""
Epoch-millisecond time helpers shared by the caches and the state machine.
"""

import math
import time
from datetime import datetime, timezone
from typing import Any, Optional

SECONDS_THRESHOLD = 1_000_000_000_000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_ms(value: Any) -> Optional[int]:
    """
    Coerce a timestamp (ms, seconds, numeric string or ISO8601) to epoch ms.

    Args:
        value: Raw timestamp value

    Returns:
        Epoch milliseconds, or None if the value is not a finite timestamp
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return int(parsed.timestamp() * 1000)

    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None

    if 0 < value < SECONDS_THRESHOLD:
        value = value * 1000
    return int(value)


def floor_to(t_ms: int, bucket_ms: int) -> int:
    """Round a timestamp down to the start of its bucket."""
    return (int(t_ms) // bucket_ms) * bucket_ms


def iso_from_ms(t_ms: Optional[int]) -> Optional[str]:
    """Format epoch ms as an ISO8601 UTC string."""
    if t_ms is None:
        return None
    return datetime.fromtimestamp(t_ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def age_seconds(t_ms: Optional[int], now: int) -> Optional[int]:
    """Seconds elapsed since ``t_ms`` (clamped at zero), None if unknown."""
    if t_ms is None:
        return None
    return max(0, (now - t_ms) // 1000)
