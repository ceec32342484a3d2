"""Domain models for tasks, workflows and execution records."""

from autopilot.models.domain import (
    ExecutionOptions,
    ExecutionResult,
    HistoryEntry,
    ResourceAllocation,
    RollbackStrategy,
    ScheduledExecution,
    StepResult,
    StepSpec,
    Task,
    TaskMetadata,
    ValidationResult,
    WorkflowDefinition,
)

__all__ = [
    "ExecutionOptions",
    "ExecutionResult",
    "HistoryEntry",
    "ResourceAllocation",
    "RollbackStrategy",
    "ScheduledExecution",
    "StepResult",
    "StepSpec",
    "Task",
    "TaskMetadata",
    "ValidationResult",
    "WorkflowDefinition",
]
