"""
Plan Tracker - Trading Plan Status Engine

Tracks a trading plan for a single perpetual-futures symbol. Samples funding,
open interest and candles from the exchange into bounded rolling caches,
derives volatility and positioning signals, and drives the grid/trend plan
state machine whose transitions are persisted to an append-only journal.
"""

__version__ = "0.1.0"
__author__ = "Plan Tracker Team"
