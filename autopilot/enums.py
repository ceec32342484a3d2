"""Enumerations for automation levels, task types, step kinds and execution states."""

from enum import Enum


class AutomationLevel(str, Enum):
    """Degree of autonomy granted to automated execution of a task.

    Thresholds and behavioral traits for each level live in
    ``autopilot.automation.policy``.
    """

    MANUAL = "manual"
    ASSISTED = "assisted"
    SEMI_AUTO = "semi_auto"
    FULL_AUTO = "full_auto"
    ADAPTIVE = "adaptive"

    def __str__(self) -> str:
        return self.value


class TaskType(str, Enum):
    """Kinds of work a task can represent."""

    REFACTOR = "refactor"
    ANALYSIS = "analysis"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    DEPLOYMENT = "deployment"
    SECURITY = "security"
    OPTIMIZATION = "optimization"
    GENERIC = "generic"

    def __str__(self) -> str:
        return self.value


class StepKind(str, Enum):
    """Built-in step kinds.

    The set is closed. Plugins may register executors for other step types
    under their own type strings; these are the ones the core knows about.
    """

    ANALYSIS = "analysis"
    REFACTORING = "refactoring"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    VALIDATION = "validation"
    DEPLOYMENT = "deployment"
    SECURITY = "security"
    OPTIMIZATION = "optimization"

    def __str__(self) -> str:
        return self.value


class ExecutionStatus(str, Enum):
    """Lifecycle states of one workflow execution.

    The happy path follows the order the engine works in:
    CREATED -> OPTIMIZING -> RESOURCED -> SCHEDULED -> EXECUTING -> SUCCEEDED

    SUCCEEDED and FAILED are terminal. Resource release happens after the
    terminal state is reached and is tracked separately.
    """

    CREATED = "created"
    SCHEDULED = "scheduled"
    RESOURCED = "resourced"
    OPTIMIZING = "optimizing"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED)


class ExecutionStrategy(str, Enum):
    """How the sequential engine prepares a workflow before running it.

    - basic: run the step list exactly as submitted
    - optimized: run the optimizer's rewrite of the step list
    """

    BASIC = "basic_sequential"
    OPTIMIZED = "optimized_sequential"

    def __str__(self) -> str:
        return self.value


class StepErrorType(str, Enum):
    """Why a step was reported as failed."""

    VALIDATION = "validation"
    TIMEOUT = "timeout"
    EXCEPTION = "exception"
    STEP_FAILED = "step_failed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value
