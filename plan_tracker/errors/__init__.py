"""
Error classification for the plan tracker.

Errors are grouped by how the caller is expected to react: data quality
problems degrade a single output section, system failures abort the
operation that raised them, and the recovery categories tell the scheduler
and the orchestrator whether to retry, give up, or carry on degraded.
"""

from .data_quality import (
    DataQualityError,
    MissingDataError,
    MalformedDataError,
)
from .system_failures import (
    SystemFailureError,
    PersistenceError,
    UpstreamError,
)
from .recovery import (
    RecoverableError,
    UnrecoverableError,
    GracefulDegradationError,
    DecisionDocumentError,
    PipelineTimeoutError,
)

__all__ = [
    # Data Quality Errors
    "DataQualityError",
    "MissingDataError",
    "MalformedDataError",
    # System Failures
    "SystemFailureError",
    "PersistenceError",
    "UpstreamError",
    # Recovery Categories
    "RecoverableError",
    "UnrecoverableError",
    "GracefulDegradationError",
    "DecisionDocumentError",
    "PipelineTimeoutError",
]
