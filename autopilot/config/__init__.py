"""Configuration system for the workflow autopilot.

This package provides type-safe configuration management using Pydantic.

Key Components:
    - AutopilotSettings: Main configuration container with YAML loading support
    - ConfidenceSettings: Confidence factor weights
    - AutomationSettings: Default automation level and task-type defaults
    - ResourceSettings: Memory, CPU and concurrency limits
    - CacheSettings: Execution result cache TTL and capacity
    - OptimizerSettings: Enabled workflow rewrite rules
    - EngineSettings: Step timeout, scheduling estimate and queue size

Example:
    >>> from autopilot.config import AutopilotSettings
    >>> settings = AutopilotSettings.from_yaml("autopilot.yaml")
    >>> settings.resources.max_memory_mb
    512.0
"""

from autopilot.config.settings import (
    AutomationSettings,
    AutopilotSettings,
    CacheSettings,
    ConfidenceSettings,
    EngineSettings,
    OptimizerSettings,
    ResourceSettings,
)

__all__ = [
    "AutomationSettings",
    "AutopilotSettings",
    "CacheSettings",
    "ConfidenceSettings",
    "EngineSettings",
    "OptimizerSettings",
    "ResourceSettings",
]
