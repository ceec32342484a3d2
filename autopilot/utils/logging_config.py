"""
Logging configuration using structlog for structured logging.

All autopilot modules log through ``structlog.get_logger(__name__)`` with
snake_case event names. This module configures the processor pipeline once
per process and provides ``execution_scope`` so every log line emitted while
a workflow runs carries its execution id.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the autopilot.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines (default) or human-readable console
            output for local debugging
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def execution_scope(execution_id: str, workflow: str) -> Iterator[None]:
    """Bind execution identifiers to every log line emitted inside the block.

    Example:
        >>> with execution_scope("exec-1", "review-pipeline"):
        ...     log.info("step_started", step="lint")  # includes execution_id
    """
    with structlog.contextvars.bound_contextvars(execution_id=execution_id, workflow=workflow):
        yield


def get_logger(name: str | None = None) -> Any:
    """Get a logger instance.

    Args:
        name: Optional logger name (typically __name__ from calling module)

    Returns:
        A structlog logger instance
    """
    return structlog.get_logger(name)
