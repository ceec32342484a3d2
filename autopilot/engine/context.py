"""Execution context for workflow steps.

``WorkflowContext`` is the mutable key/value store that carries data between
the steps of one execution. ``ExecutionContext`` wraps one attempt to run a
workflow and lives only for the duration of an ``execute_workflow`` call.
"""

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from autopilot.enums import ExecutionStrategy
from autopilot.models.domain import ExecutionOptions, Task, WorkflowDefinition


class ContextKey:
    """Well-known context keys written by the engine."""

    EXECUTION_ID = "execution_id"
    EXECUTION_STRATEGY = "execution_strategy"
    AUTOMATION_LEVEL = "automation_level"
    CURRENT_STEP = "current_step"
    CURRENT_STEP_INDEX = "current_step_index"
    STEP_PARAMETERS = "step_parameters"
    CANCELLED = "cancelled"

    # Caller-supplied flag, part of the cache key.
    SKIP_OPTIMIZATION = "skip_optimization"

    ENGINE_KEYS = frozenset(
        {
            EXECUTION_ID,
            EXECUTION_STRATEGY,
            AUTOMATION_LEVEL,
            CURRENT_STEP,
            CURRENT_STEP_INDEX,
            STEP_PARAMETERS,
            CANCELLED,
        }
    )

    _STEP_RESULT = re.compile(r"^step_\d+_result$")

    @staticmethod
    def step_result(index: int) -> str:
        """Key under which the result of step ``index`` is stored."""
        return f"step_{index}_result"

    @classmethod
    def is_engine_key(cls, key: str) -> bool:
        return key in cls.ENGINE_KEYS or bool(cls._STEP_RESULT.match(key))


@dataclass(frozen=True)
class WorkflowState:
    """Named state of a context. Replaced, never mutated, on each transition."""

    name: str
    attributes: Mapping[str, Any] = field(default_factory=dict)


class WorkflowContext:
    """Key/value store scoped to one execution.

    Owned exclusively by one execution and never shared between concurrent
    executions.

    Example:
        >>> context = WorkflowContext({"project_id": "p-1"})
        >>> context.set(ContextKey.step_result(0), result)
        >>> context.get(ContextKey.step_result(0)).success
        True
    """

    def __init__(self, data: Mapping[str, Any] | None = None, state: WorkflowState | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})
        self._state = state or WorkflowState("initialized")
        self.created_at = datetime.now(UTC)
        self.updated_at = self.created_at

    @property
    def state(self) -> WorkflowState:
        return self._state

    def transition(self, name: str, **attributes: Any) -> WorkflowState:
        """Replace the current state with a new one."""
        self._state = WorkflowState(name, dict(attributes))
        self._touch()
        return self._state

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._touch()

    def update(self, values: Mapping[str, Any]) -> None:
        self._data.update(values)
        self._touch()

    def delete(self, key: str) -> bool:
        if key in self._data:
            del self._data[key]
            self._touch()
            return True
        return False

    def has(self, key: str) -> bool:
        return key in self._data

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def as_dict(self) -> dict[str, Any]:
        """Shallow copy of every value, including engine-written keys."""
        return dict(self._data)

    def snapshot(self) -> dict[str, Any]:
        """Shallow copy of caller-supplied values only.

        Engine-written keys (execution id, step results, ...) are excluded,
        so the snapshot of a reused context identifies the same input.
        """
        return {k: v for k, v in self._data.items() if not ContextKey.is_engine_key(k)}

    def _touch(self) -> None:
        self.updated_at = datetime.now(UTC)


@dataclass
class ExecutionContext:
    """One attempt to run a workflow.

    Attributes:
        execution_id: Unique id generated for this call
        workflow: The workflow being run (optimized once optimization ran)
        strategy: Strategy chosen for the run
        options: Caller-supplied execution options
        task: The task being automated, when supplied
        started_at: When the call started
    """

    execution_id: str
    workflow: WorkflowDefinition
    strategy: ExecutionStrategy
    options: ExecutionOptions = field(default_factory=ExecutionOptions)
    task: Task | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def with_workflow(self, workflow: WorkflowDefinition) -> "ExecutionContext":
        return replace(self, workflow=workflow)
