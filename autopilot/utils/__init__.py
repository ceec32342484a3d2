"""Shared utilities."""

from autopilot.utils.logging_config import configure_logging, execution_scope, get_logger

__all__ = ["configure_logging", "execution_scope", "get_logger"]
