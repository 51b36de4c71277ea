"""
System failure error classifications.

Raised when a filesystem or network operation itself fails, as opposed to
succeeding with unusable data.
"""

from typing import Any, Optional

from .recovery import RecoverableError


class SystemFailureError(Exception):
    """Base class for system-level failures."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class PersistenceError(SystemFailureError):
    """State snapshot, journal or cache file could not be written."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 target: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.target = target


class UpstreamError(RecoverableError):
    """Exchange request failed (timeout, transport error or non-zero code)."""

    def __init__(self, message: str, endpoint: Optional[str] = None,
                 code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.endpoint = endpoint
        self.code = code
