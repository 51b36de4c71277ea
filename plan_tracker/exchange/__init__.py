"""Exchange market data access."""

from .client import ExchangeClient

__all__ = ["ExchangeClient"]
