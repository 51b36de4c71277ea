"""
Centralized logging configuration for the plan tracker.

Every component logs through structlog on top of the standard library
logging module. Samplers, the state machine and the orchestrator each get a
logger bound with their subsystem so that journal-worthy records can be
filtered out of the regular log stream.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON lines; otherwise console format
        include_timestamp: Include an ISO timestamp in each record
        include_caller: Include filename and line number
        extra_processors: Additional structlog processors to include
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(
        level=log_level,
        stream=sys.stderr,
        format="%(message)s"
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a structlog logger instance (name is typically __name__)."""
    return structlog.get_logger(name)


def get_state_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger for plan state machine decisions.

    Records emitted through it carry ``subsystem="state_machine"`` and
    ``audit_trail=True``.
    """
    return get_logger(name).bind(
        subsystem="state_machine",
        audit_trail=True
    )


def get_scheduler_logger(name: str, job: str) -> FilteringBoundLogger:
    """Get a logger bound to a background sampling job."""
    return get_logger(name).bind(
        subsystem="scheduler",
        job=job
    )


def log_step_decision(
    logger: FilteringBoundLogger,
    step_id: str,
    status: str,
    symbol: str,
    detail: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a single pipeline step result with standardized format.

    Args:
        logger: Structlog logger instance
        step_id: Step identifier (e.g. SWEEP_5M)
        status: Step status value (WAITING, PASS, WARN, FAIL, DONE)
        symbol: Symbol being evaluated
        detail: Human readable detail
        context: Additional context data
    """
    bound_logger = logger.bind(
        step_id=step_id,
        step_status=status,
        symbol=symbol,
        detail=detail,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    if status in ("FAIL", "WARN"):
        bound_logger.info("Step not passing")
    else:
        bound_logger.debug("Step evaluated")


def log_state_transition(
    logger: FilteringBoundLogger,
    symbol: str,
    from_state: Optional[str],
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a plan state or mode lock transition with standardized format.

    Args:
        logger: Structlog logger instance
        symbol: Symbol whose plan transitioned
        from_state: Previous state (None on first evaluation)
        to_state: New state
        trigger: What triggered the transition (STATE_CHANGE, MODE_SWITCH)
        context: Additional context data
    """
    bound_logger = logger.bind(
        symbol=symbol,
        from_state=from_state,
        to_state=to_state,
        trigger=trigger,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("State transition")
