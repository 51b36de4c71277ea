"""Sampled history caches for derivatives and volatility."""

from .derivatives import DerivativesHistory, backfill_15m, build_bundle
from .volatility import VolatilityHistory, VolatilitySnapshot

__all__ = [
    "DerivativesHistory",
    "backfill_15m",
    "build_bundle",
    "VolatilityHistory",
    "VolatilitySnapshot",
]
