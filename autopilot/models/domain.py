"""
Domain models for the workflow autopilot.

This module contains the data classes representing tasks, workflow
definitions and the records produced while executing them. Everything here
is immutable once built: the optimizer produces new ``WorkflowDefinition``
instances, and results are frozen before they are handed to callers or
written to the execution cache.

Example:
    Building a two-step workflow::

        workflow = WorkflowDefinition(
            name="review-pipeline",
            version="1",
            steps=[
                StepSpec(type="analysis", name="lint"),
                StepSpec(type="testing", name="unit-tests", parameters={"suite": "fast"}),
            ],
        )
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from autopilot.enums import AutomationLevel, ExecutionStrategy, StepErrorType, TaskType

if TYPE_CHECKING:
    from autopilot.engine.context import WorkflowContext


@dataclass(frozen=True)
class TaskMetadata:
    """Size indicators used only for confidence scoring.

    Any field may be unknown; the complexity factor falls back to a neutral
    score when nothing is known.
    """

    file_count: int | None = None
    line_count: int | None = None
    dependency_count: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.file_count is None and self.line_count is None and self.dependency_count is None


@dataclass(frozen=True)
class Task:
    """The unit of work an automation decision is made for.

    Created by an external caller and read-only to the core.
    """

    id: str
    """Caller-assigned task identifier."""

    type: TaskType
    """Kind of work; drives the task-type default automation level."""

    project_id: str | None = None
    """Project the task belongs to, used for project preference lookup."""

    user_id: str | None = None
    """Owner of the task, used for user preference and experience lookups."""

    metadata: TaskMetadata = field(default_factory=TaskMetadata)
    """File, line and dependency counts for the complexity factor."""


@dataclass(frozen=True)
class StepSpec:
    """Declarative description of one workflow step.

    ``type`` is an open string: built-in kinds use ``StepKind`` values, and
    plugin steps use their own type names (for example ``git_commit``).
    """

    type: str
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        """Identity used for redundancy detection."""
        return (self.type, self.name)

    @property
    def is_combined(self) -> bool:
        return bool(self.metadata.get("combined", False))


@dataclass(frozen=True)
class StepResult:
    """Outcome of running (or refusing to run) one step."""

    step_name: str
    success: bool
    output: Any = None
    error: str | None = None
    error_type: StepErrorType | None = None
    duration: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, step_name: str, output: Any = None, **metadata: Any) -> StepResult:
        return cls(step_name=step_name, success=True, output=output, metadata=metadata)

    @classmethod
    def failure(
        cls,
        step_name: str,
        error: str,
        error_type: StepErrorType = StepErrorType.STEP_FAILED,
        **metadata: Any,
    ) -> StepResult:
        return cls(step_name=step_name, success=False, error=error, error_type=error_type, metadata=metadata)

    def with_duration(self, duration: float) -> StepResult:
        return replace(self, duration=duration)


@dataclass(frozen=True)
class ValidationResult:
    """Result of a step's precondition check."""

    is_valid: bool
    errors: tuple[str, ...] = ()

    @classmethod
    def valid(cls) -> ValidationResult:
        return cls(is_valid=True)

    @classmethod
    def invalid(cls, *errors: str) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    @property
    def message(self) -> str:
        return "; ".join(self.errors) if self.errors else "validation failed"


RollbackStrategy = Callable[[int, Sequence[StepResult], "WorkflowContext"], Awaitable[None]]
"""Async callable invoked with (failed step index, partial results, context)."""


@dataclass(frozen=True)
class WorkflowDefinition:
    """An ordered, immutable sequence of steps identified by (name, version).

    Equality compares identity and the step list only; the rollback strategy
    and free-form metadata do not take part.
    """

    name: str
    version: str
    steps: tuple[StepSpec, ...] = ()
    rollback: RollbackStrategy | None = field(default=None, compare=False)
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.steps, tuple):
            object.__setattr__(self, "steps", tuple(self.steps))

    @property
    def identity(self) -> tuple[str, str]:
        return (self.name, self.version)

    def with_steps(self, steps: Sequence[StepSpec], **metadata: Any) -> WorkflowDefinition:
        """Return a copy with a different step list and merged metadata."""
        return replace(self, steps=tuple(steps), metadata={**self.metadata, **metadata})


@dataclass(frozen=True)
class ExecutionOptions:
    """Caller-supplied options for one ``execute_workflow`` call.

    Attributes:
        priority: "low", "normal" or "high"; feeds the scheduler's priority
        critical: Marks the execution critical (+10 priority)
        urgent: Marks the execution urgent (+3 priority)
        dependencies: Execution ids that must complete first (advisory)
        step_timeout: Hard per-step timeout in seconds; None uses the
            engine's configured default
        strategy: Force a strategy instead of the engine's choice
        memory_mb: Memory reservation; None uses the configured default
        cpu_percent: CPU share reservation; None uses the configured default
    """

    priority: Literal["low", "normal", "high"] = "normal"
    critical: bool = False
    urgent: bool = False
    dependencies: tuple[str, ...] = ()
    step_timeout: float | None = None
    strategy: ExecutionStrategy | None = None
    memory_mb: float | None = None
    cpu_percent: float | None = None


@dataclass(frozen=True)
class ScheduledExecution:
    """Advisory scheduling metadata for one execution."""

    execution_id: str
    priority: int
    estimated_duration: float
    dependencies: tuple[str, ...] = ()
    scheduled_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class ResourceAllocation:
    """Capacity reserved for one execution until it is released."""

    execution_id: str
    memory_mb: float
    cpu_percent: float
    timeout: float
    allocated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class HistoryEntry:
    """One record in an execution's step trace."""

    index: int
    step_name: str
    success: bool
    duration: float
    timestamp: datetime
    error: str | None = None


@dataclass(frozen=True)
class ExecutionResult:
    """Immutable outcome of one ``execute_workflow`` call.

    ``success`` is False for business failures (a step failing validation,
    raising, timing out, or the execution being cancelled). ``rollback_error``
    carries a rollback strategy's own failure without replacing ``error``.
    """

    execution_id: str
    workflow_name: str
    workflow_version: str
    success: bool
    results: tuple[StepResult, ...] = ()
    duration: float = 0.0
    history: tuple[HistoryEntry, ...] = ()
    strategy: ExecutionStrategy = ExecutionStrategy.OPTIMIZED
    automation_level: AutomationLevel | None = None
    requires_confirmation: bool = False
    requires_human_review: bool = False
    error: str | None = None
    rollback_error: str | None = None
    cached: bool = False
    cancelled: bool = False
    completed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def step_count(self) -> int:
        return len(self.results)

    @property
    def failed_step(self) -> StepResult | None:
        """The step that stopped the execution, if any."""
        for result in self.results:
            if not result.success:
                return result
        return None
