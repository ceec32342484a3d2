"""
Step interface and registry.

A step is any object with two async methods::

    async def execute(context) -> StepResult
    async def validate(context) -> ValidationResult

Before calling either, the engine writes the step's name and parameters into
the context under ``ContextKey.CURRENT_STEP`` and
``ContextKey.STEP_PARAMETERS``.

The registry is an explicitly constructed value owned by the composition
root and injected into the engine. It resolves a ``StepSpec`` by name first,
then by type, so a plugin can override one named step without replacing the
executor for the whole type.

Example:
    >>> registry = StepRegistry()
    >>> registry.register_kind(StepKind.ANALYSIS, FunctionStep(run_analysis))
    >>> registry.register("git_commit", GitCommitStep())
    >>> step = registry.resolve(StepSpec(type="analysis", name="lint"))
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

import structlog

from autopilot.engine.context import ContextKey, WorkflowContext
from autopilot.enums import StepKind
from autopilot.exceptions import StepResolutionError
from autopilot.models.domain import StepResult, StepSpec, ValidationResult

log = structlog.get_logger(__name__)


@runtime_checkable
class Step(Protocol):
    """Executable unit of a workflow."""

    async def execute(self, context: WorkflowContext) -> StepResult: ...

    async def validate(self, context: WorkflowContext) -> ValidationResult: ...


class FunctionStep:
    """Adapt plain async callables to the ``Step`` interface.

    ``run`` receives the context and may return a ``StepResult`` or any other
    value, which is wrapped as a successful result. ``check`` returns a
    ``ValidationResult`` or a bool; without it every call is valid.
    """

    def __init__(
        self,
        run: Callable[[WorkflowContext], Awaitable[Any]],
        check: Callable[[WorkflowContext], Awaitable[ValidationResult | bool]] | None = None,
        name: str | None = None,
    ) -> None:
        self._run = run
        self._check = check
        self.name = name or getattr(run, "__name__", "function_step")

    async def execute(self, context: WorkflowContext) -> StepResult:
        output = await self._run(context)
        if isinstance(output, StepResult):
            return output
        step_name = context.get(ContextKey.CURRENT_STEP, self.name)
        return StepResult.ok(step_name, output)

    async def validate(self, context: WorkflowContext) -> ValidationResult:
        if self._check is None:
            return ValidationResult.valid()

        outcome = await self._check(context)
        if isinstance(outcome, ValidationResult):
            return outcome
        return ValidationResult.valid() if outcome else ValidationResult.invalid(f"{self.name} precondition failed")


class StepRegistry:
    """Lookup from step identifier to executable step."""

    def __init__(self) -> None:
        self._steps: dict[str, Step] = {}

    def register(self, identifier: str, step: Step, replace: bool = False) -> None:
        """Register ``step`` under a step name or type.

        Raises:
            ValueError: If the identifier is taken and ``replace`` is False
        """
        if not isinstance(step, Step):
            raise TypeError(f"{type(step).__name__} does not implement execute/validate")
        if identifier in self._steps and not replace:
            raise ValueError(f"Step already registered: {identifier}")

        self._steps[identifier] = step
        log.debug("step_registered", identifier=identifier, step=type(step).__name__)

    def register_kind(self, kind: StepKind, step: Step, replace: bool = False) -> None:
        """Register the executor for a built-in step kind."""
        self.register(kind.value, step, replace=replace)

    def unregister(self, identifier: str) -> bool:
        return self._steps.pop(identifier, None) is not None

    def get(self, identifier: str) -> Step | None:
        return self._steps.get(identifier)

    def resolve(self, spec: StepSpec, workflow_name: str | None = None) -> Step:
        """Find the step for ``spec`` by name, then by type.

        Raises:
            StepResolutionError: If neither is registered
        """
        step = self._steps.get(spec.name) or self._steps.get(spec.type)
        if step is None:
            raise StepResolutionError(spec.name, spec.type, workflow_name=workflow_name)
        return step

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._steps

    def __len__(self) -> int:
        return len(self._steps)

    @property
    def identifiers(self) -> list[str]:
        return sorted(self._steps)
