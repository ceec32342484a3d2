"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any

import pytest

from autopilot.config.settings import AutopilotSettings
from autopilot.engine.context import ContextKey, WorkflowContext
from autopilot.engine.steps import StepRegistry
from autopilot.enums import StepKind, TaskType
from autopilot.models.domain import StepResult, StepSpec, Task, TaskMetadata, ValidationResult, WorkflowDefinition


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "needs_real_timing: test sleeps or measures wall-clock time")


class RecordingStep:
    """Fake step that records calls and can be told to fail."""

    def __init__(
        self,
        name: str,
        delay: float = 0.0,
        fail: bool = False,
        invalid: bool = False,
        raises: Exception | None = None,
        output: Any = None,
    ) -> None:
        self.name = name
        self.delay = delay
        self.fail = fail
        self.invalid = invalid
        self.raises = raises
        self.output = output if output is not None else f"{name}-done"
        self.executed = 0
        self.validated = 0
        self.seen_parameters: list[dict[str, Any]] = []

    async def validate(self, context: WorkflowContext) -> ValidationResult:
        self.validated += 1
        if self.invalid:
            return ValidationResult.invalid(f"{self.name} is not ready")
        return ValidationResult.valid()

    async def execute(self, context: WorkflowContext) -> StepResult:
        self.executed += 1
        self.seen_parameters.append(dict(context.get(ContextKey.STEP_PARAMETERS, {})))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if self.fail:
            return StepResult.failure(self.name, f"{self.name} failed")
        return StepResult.ok(self.name, self.output)


@pytest.fixture
def make_step() -> type[RecordingStep]:
    """Factory for fake steps."""
    return RecordingStep


@pytest.fixture
def settings() -> AutopilotSettings:
    """Default settings."""
    return AutopilotSettings()


@pytest.fixture
def registry() -> StepRegistry:
    """Registry with a succeeding step for every built-in kind."""
    registry = StepRegistry()
    for kind in StepKind:
        registry.register_kind(kind, RecordingStep(kind.value))
    return registry


@pytest.fixture
def sample_task() -> Task:
    """Sample refactor task with known size."""
    return Task(
        id="task-1",
        type=TaskType.REFACTOR,
        project_id="proj-1",
        user_id="user-1",
        metadata=TaskMetadata(file_count=5, line_count=500, dependency_count=2),
    )


@pytest.fixture
def sample_workflow() -> WorkflowDefinition:
    """Two-step analysis then testing workflow."""
    return WorkflowDefinition(
        name="review-pipeline",
        version="1",
        steps=[
            StepSpec(type="analysis", name="lint"),
            StepSpec(type="testing", name="unit-tests", parameters={"suite": "fast"}),
        ],
    )
