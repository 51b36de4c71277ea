"""
Bucketed rolling series primitive.

A series is a list of record dicts, each carrying an epoch-ms ``t`` key plus
one or more nullable numeric fields. After any sequence of ``upsert``,
``prune`` and ``trim_to_max`` calls the list is strictly ascending by ``t``,
holds at most one record per bucket and never exceeds its cap.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from ..config.defaults import SeriesLimits
from ..utils.time import floor_to

logger = structlog.get_logger(__name__)


def round_down_to_bucket(t_ms: int, bucket_ms: int) -> int:
    """Round ``t_ms`` down to the nearest ``bucket_ms`` boundary."""
    return floor_to(t_ms, bucket_ms)


def _is_finite_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def is_valid_record(record: dict[str, Any]) -> bool:
    """A record is valid when ``t`` is finite and every other field is finite or None."""
    if not isinstance(record, dict) or not _is_finite_number(record.get("t")):
        return False
    return all(v is None or _is_finite_number(v)
               for k, v in record.items() if k != "t")


def upsert(series: list[dict[str, Any]], record: dict[str, Any], bucket_ms: int) -> bool:
    """
    Insert or replace a record in its bucket, keeping the series sorted.

    Args:
        series: Series to mutate in place
        record: Record with ``t`` and nullable numeric fields
        bucket_ms: Bucket width in milliseconds

    Returns:
        False if the record was discarded as non-finite, True otherwise
    """
    if not is_valid_record(record):
        return False

    bucketed = dict(record)
    bucketed["t"] = round_down_to_bucket(record["t"], bucket_ms)

    for i, existing in enumerate(series):
        if existing.get("t") == bucketed["t"]:
            series[i] = bucketed
            break
    else:
        series.append(bucketed)

    series.sort(key=lambda r: r["t"])
    return True


def prune(series: list[dict[str, Any]], cutoff: int) -> list[dict[str, Any]]:
    """Drop every record with ``t < cutoff``."""
    return [r for r in series if _is_finite_number(r.get("t")) and r["t"] >= cutoff]


def trim_to_max(series: list[dict[str, Any]], cap: int) -> list[dict[str, Any]]:
    """Keep only the most recent ``cap`` records; a no-op when already within cap."""
    if cap <= 0:
        return []
    if len(series) <= cap:
        return series
    return series[-cap:]


@dataclass
class SeriesCache:
    """One rolling series with its retention window and cap."""

    limits: SeriesLimits
    series: list[dict[str, Any]] = field(default_factory=list)
    last_sample_time: Optional[int] = None
    dropped: int = 0

    def apply(self, record: dict[str, Any], now_ms: int) -> bool:
        """Prune to retention, upsert, trim to cap and stamp the sample time."""
        cutoff = now_ms - self.limits.retention_ms
        self.series = prune(self.series, cutoff)
        accepted = upsert(self.series, record, self.limits.bucket_ms)
        if not accepted:
            self.dropped += 1
            logger.warning("Discarded non-finite sample", record=record)
        # a late point older than the window must not survive the upsert
        self.series = trim_to_max(prune(self.series, cutoff), self.limits.cap)
        self.last_sample_time = now_ms
        return accepted

    def touch(self, now_ms: int) -> None:
        """Stamp a sample attempt that produced no value, still enforcing retention."""
        self.series = trim_to_max(
            prune(self.series, now_ms - self.limits.retention_ms), self.limits.cap
        )
        self.last_sample_time = now_ms

    @classmethod
    def from_records(
        cls,
        limits: SeriesLimits,
        records: Any,
        last_sample_time: Optional[int] = None,
    ) -> "SeriesCache":
        """Rebuild from a persisted list, discarding records that fail validation."""
        cache = cls(limits=limits, last_sample_time=last_sample_time)
        for record in records if isinstance(records, list) else []:
            if isinstance(record, dict) and is_valid_record(record):
                upsert(cache.series, record, limits.bucket_ms)
            else:
                cache.dropped += 1
        cache.series = trim_to_max(cache.series, limits.cap)
        return cache
