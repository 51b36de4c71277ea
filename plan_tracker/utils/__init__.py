"""
Utility functions module.

Time Semantics:
- All cached timestamps are integer epoch milliseconds (UTC)
- Values below 1e12 are treated as epoch seconds and promoted
- Wall-clock time is injected (``now_ms``) so pure code stays testable
"""
