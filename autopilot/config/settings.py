"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for every tunable part of the
autopilot: confidence weights, automation defaults, resource limits, the
execution cache, the workflow optimizer and the sequential engine.
"""

from __future__ import annotations

import math
import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from autopilot.enums import AutomationLevel, TaskType
from autopilot.exceptions import ConfigurationError

OptimizationRuleName = Literal["combine_similar_steps", "reorder_steps", "remove_redundant_steps"]


class ConfidenceSettings(BaseModel):
    """Weights for the confidence score factors.

    Weights are fixed for the lifetime of a calculator so the scoring
    function stays deterministic.
    """

    complexity_weight: float = Field(default=0.30, ge=0.0, le=1.0, description="Task complexity factor")
    history_weight: float = Field(default=0.25, ge=0.0, le=1.0, description="Historical success rate factor")
    quality_weight: float = Field(default=0.20, ge=0.0, le=1.0, description="Code quality factor")
    experience_weight: float = Field(default=0.15, ge=0.0, le=1.0, description="User experience factor")
    health_weight: float = Field(default=0.10, ge=0.0, le=1.0, description="System health factor")
    neutral_score: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Score used when a data source is unavailable"
    )

    @model_validator(mode="after")
    def validate_weights(self) -> ConfidenceSettings:
        """Weights must add up to exactly one."""
        total = (
            self.complexity_weight
            + self.history_weight
            + self.quality_weight
            + self.experience_weight
            + self.health_weight
        )
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Confidence weights must sum to 1.0, got {total:.4f}")
        return self


class AutomationSettings(BaseModel):
    """Automation level resolution defaults."""

    default_level: AutomationLevel = Field(
        default=AutomationLevel.SEMI_AUTO, description="Level used when nothing else matches"
    )
    task_type_defaults: dict[TaskType, AutomationLevel] = Field(
        default_factory=lambda: {
            TaskType.DEPLOYMENT: AutomationLevel.MANUAL,
            TaskType.SECURITY: AutomationLevel.ASSISTED,
            TaskType.ANALYSIS: AutomationLevel.FULL_AUTO,
            TaskType.DOCUMENTATION: AutomationLevel.FULL_AUTO,
        },
        description="Static per-task-type levels, consulted after explicit preferences",
    )


class ResourceSettings(BaseModel):
    """Resource limits and default per-execution requirements."""

    max_memory_mb: float = Field(default=512, gt=0, description="Total memory budget across executions")
    max_cpu_percent: float = Field(default=80, gt=0, le=100, description="Total CPU share budget")
    max_concurrent_executions: int = Field(default=5, ge=1, description="Maximum active allocations")
    default_memory_mb: float = Field(default=64, gt=0, description="Memory reserved when not requested")
    default_cpu_percent: float = Field(default=10, gt=0, description="CPU share reserved when not requested")
    allocation_timeout_seconds: float = Field(default=300, gt=0, description="Timeout recorded on allocations")
    history_limit: int = Field(default=100, ge=0, description="Released allocations kept for statistics")


class CacheSettings(BaseModel):
    """Execution result cache configuration."""

    enabled: bool = Field(default=True, description="Whether results are cached at all")
    ttl_seconds: float = Field(default=3600, gt=0, description="Entry lifetime")
    max_entries: int = Field(default=1000, ge=1, description="Capacity before LRU eviction")


class OptimizerSettings(BaseModel):
    """Workflow optimizer configuration."""

    enabled: bool = Field(default=True, description="Whether workflows are rewritten before execution")
    rules: list[OptimizationRuleName] = Field(
        default_factory=lambda: ["combine_similar_steps", "reorder_steps", "remove_redundant_steps"],
        description="Rewrite rules applied, in this order",
    )
    max_cache_entries: int = Field(default=1000, ge=1, description="Memoized optimizations kept")

    @field_validator("rules")
    @classmethod
    def validate_unique_rules(cls, rules: list[str]) -> list[str]:
        if len(set(rules)) != len(rules):
            raise ValueError("Optimization rules must not repeat")
        return rules


class EngineSettings(BaseModel):
    """Sequential execution engine configuration."""

    step_timeout_seconds: float = Field(default=300, gt=0, description="Hard timeout per step")
    seconds_per_step: float = Field(default=30, gt=0, description="Scheduler duration estimate per step")
    queue_max_size: int = Field(default=100, ge=1, description="Callers allowed to wait for the engine")
    history_limit: int = Field(default=100, ge=1, description="Finished executions kept for status queries")


class AutopilotSettings(BaseSettings):
    """Main autopilot settings.

    This class combines all configuration sections and provides methods
    for loading from YAML files with environment variable interpolation.
    Every section has defaults, so ``AutopilotSettings()`` is a usable
    configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTOPILOT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    confidence: ConfidenceSettings = Field(default_factory=ConfidenceSettings)
    automation: AutomationSettings = Field(default_factory=AutomationSettings)
    resources: ResourceSettings = Field(default_factory=ResourceSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    optimizer: OptimizerSettings = Field(default_factory=OptimizerSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> AutopilotSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            AutopilotSettings instance

        Raises:
            ConfigurationError: If config file is invalid or contains invalid values
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left untouched.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        lines = []
        for line in content.splitlines(keepends=True):
            if line.lstrip().startswith("#"):
                lines.append(line)
            else:
                lines.append(pattern.sub(replace_var, line))
        return "".join(lines)
