"""
Recovery strategy classifications for error handling.

These categories tell the caller what to do next: retry on the next tick,
abort the evaluation, or continue with reduced output.
"""

from typing import Optional


class RecoverableError(Exception):
    """Errors that clear up on their own, typically on the next tick."""

    def __init__(self, message: str, retry_count: int = 0,
                 max_retries: int = 1, **kwargs):
        super().__init__(message)
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.recoverable = True


class UnrecoverableError(Exception):
    """Errors that abort the current operation and need intervention."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message)
        self.recoverable = False


class GracefulDegradationError(Exception):
    """Errors that allow continued operation with reduced functionality."""

    def __init__(self, message: str, degraded_functionality: Optional[str] = None,
                 fallback_strategy: Optional[str] = None, **kwargs):
        super().__init__(message)
        self.degraded_functionality = degraded_functionality
        self.fallback_strategy = fallback_strategy
        self.allows_degradation = True


class DecisionDocumentError(UnrecoverableError):
    """The decision document is absent or unparsable; no plan can be derived."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path


class PipelineTimeoutError(GracefulDegradationError):
    """A full sampling pass exceeded its time budget."""

    def __init__(self, message: str, timeout_seconds: Optional[float] = None, **kwargs):
        super().__init__(message, degraded_functionality="sampling",
                         fallback_strategy="serve cached series", **kwargs)
        self.timeout_seconds = timeout_seconds
