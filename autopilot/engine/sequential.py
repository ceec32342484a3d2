"""
Sequential workflow execution engine.

The SequentialExecutionEngine is the orchestrator that ties the autopilot
together. For each ``execute_workflow`` call it:

1. Generates an execution id and waits its turn (one execution in flight per
   engine; waiting callers are tracked in the ExecutionQueue)
2. Resolves the automation level for the task, if one was given
3. Returns a cached result immediately on a cache hit, stamped with this
   call's automation level and policy flags
4. Asks the WorkflowOptimizer for an optimized copy of the workflow
5. Allocates resources, failing fast with ``ResourceExhaustedError``
6. Records advisory scheduling metadata
7. Runs the steps strictly in order: validate, execute under a hard
   timeout, record history, write ``step_{i}_result`` into the context,
   stop at the first failure
8. Invokes the workflow's rollback strategy on failure
9. Caches successful results
10. Releases resources and records metrics on every exit path

Error Handling:
    Business failures (a step failing validation, raising, timing out, or the
    execution being cancelled) are reported as ``ExecutionResult.success ==
    False`` and never raised. Malformed workflows
    (``WorkflowDefinitionError``, ``StepResolutionError``) and capacity errors
    (``ResourceExhaustedError``, ``QueueFullError``) propagate to the caller.

Example:
    >>> engine = build_engine(AutopilotSettings(), registry)
    >>> result = await engine.execute_workflow(workflow, {"project_id": "p-1"})
    >>> result.success, result.step_count
    (True, 2)
"""

import asyncio
import time
import uuid
from collections import OrderedDict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

import structlog

from autopilot.automation import policy
from autopilot.automation.manager import AutomationManager
from autopilot.config.settings import EngineSettings
from autopilot.engine.cache import ExecutionCache
from autopilot.engine.context import ContextKey, ExecutionContext, WorkflowContext
from autopilot.engine.optimizer import WorkflowOptimizer
from autopilot.engine.queue import ExecutionQueue, QueuedExecution
from autopilot.engine.resources import ResourceManager, ResourceRequirements
from autopilot.engine.scheduler import ExecutionScheduler
from autopilot.engine.steps import Step, StepRegistry
from autopilot.enums import AutomationLevel, ExecutionStatus, ExecutionStrategy, StepErrorType
from autopilot.exceptions import (
    ConfigurationError,
    ExecutionTimeoutError,
    QueueFullError,
    ResourceExhaustedError,
    RollbackError,
    WorkflowDefinitionError,
)
from autopilot.models.domain import (
    ExecutionOptions,
    ExecutionResult,
    HistoryEntry,
    StepResult,
    StepSpec,
    Task,
    WorkflowDefinition,
)
from autopilot.monitoring.metrics import ExecutionMetrics, ExecutionRecord, MetricsCollector
from autopilot.utils.logging_config import execution_scope

log = structlog.get_logger(__name__)

CACHE_NAME = "execution"


@dataclass
class _ExecutionStatusRecord:
    execution_id: str
    workflow_name: str
    strategy: ExecutionStrategy | None
    status: ExecutionStatus
    started_at: datetime
    finished_at: datetime | None = None
    released: bool = False
    cancel_requested: bool = False

    def as_dict(self) -> dict[str, Any]:
        end = self.finished_at or datetime.now(UTC)
        return {
            "execution_id": self.execution_id,
            "status": self.status,
            "workflow_name": self.workflow_name,
            "strategy": self.strategy,
            "start_time": self.started_at,
            "duration": (end - self.started_at).total_seconds(),
            "released": self.released,
            "cancel_requested": self.cancel_requested,
        }


def _policy_flags(level: AutomationLevel | None) -> tuple[bool, bool]:
    """(requires_confirmation, requires_human_review) for ``level``; no level needs neither."""
    if level is None:
        return False, False
    return policy.requires_confirmation(level), policy.requires_human_review(level)


@dataclass
class _StepLoopOutcome:
    results: list[StepResult]
    history: list[HistoryEntry]
    failed_index: int | None
    cancelled: bool


class SequentialExecutionEngine:
    """Run workflows one step at a time, one execution at a time.

    Attributes:
        registry: Step registry used to resolve ``StepSpec`` entries
        resource_manager: Shared capacity accounting
        scheduler: Advisory priority and duration metadata
        optimizer: Workflow rewriting
        cache: Result cache consulted before anything else
        automation_manager: Automation level resolution, when configured
        settings: Step timeout, queue size and status history limits
    """

    def __init__(
        self,
        registry: StepRegistry,
        resource_manager: ResourceManager,
        scheduler: ExecutionScheduler,
        optimizer: WorkflowOptimizer,
        cache: ExecutionCache,
        automation_manager: AutomationManager | None = None,
        settings: EngineSettings | None = None,
        metrics: ExecutionMetrics | None = None,
    ) -> None:
        self.registry = registry
        self.resource_manager = resource_manager
        self.scheduler = scheduler
        self.optimizer = optimizer
        self.cache = cache
        self.automation_manager = automation_manager
        self.settings = settings or EngineSettings()
        self.metrics = metrics or ExecutionMetrics(history_limit=self.settings.history_limit)

        self._queue = ExecutionQueue(max_size=self.settings.queue_max_size)
        self._lock = asyncio.Lock()
        self._statuses: OrderedDict[str, _ExecutionStatusRecord] = OrderedDict()
        self._active = 0

    async def determine_automation_level(
        self, task: Task, context: Mapping[str, Any] | None = None
    ) -> AutomationLevel:
        """Resolve the automation level for ``task``.

        Raises:
            ConfigurationError: If the engine was built without an AutomationManager
        """
        if self.automation_manager is None:
            raise ConfigurationError("Engine has no automation manager configured")
        return await self.automation_manager.determine_level(task, context)

    async def execute_workflow(
        self,
        workflow: WorkflowDefinition,
        context: WorkflowContext | Mapping[str, Any] | None = None,
        options: ExecutionOptions | None = None,
        task: Task | None = None,
    ) -> ExecutionResult:
        """Execute ``workflow`` and return its result.

        Args:
            workflow: Workflow to run
            context: Caller-supplied data; a plain mapping is wrapped in a
                new WorkflowContext
            options: Priority, timeout, resource and strategy options
            task: Task being automated; enables automation level resolution

        Returns:
            ExecutionResult, with ``success=False`` for business failures

        Raises:
            WorkflowDefinitionError: If the workflow is missing or has no steps
            StepResolutionError: If a step has no registered executor
            ResourceExhaustedError: If capacity is not available
            QueueFullError: If too many callers are already waiting
        """
        execution_id = uuid.uuid4().hex
        try:
            self._validate_definition(workflow)
            if not isinstance(context, WorkflowContext):
                context = WorkflowContext(context)
            options = options or ExecutionOptions()
            context.set(ContextKey.EXECUTION_ID, execution_id)

            if not self._queue.enqueue(QueuedExecution(execution_id, workflow.name)):
                raise QueueFullError(
                    f"Execution queue is full ({self._queue.max_size} waiting)", max_size=self._queue.max_size
                )
        except Exception as e:
            self._record_rejection(execution_id, workflow, e)
            raise

        record = _ExecutionStatusRecord(
            execution_id=execution_id,
            workflow_name=workflow.name,
            strategy=None,
            status=ExecutionStatus.CREATED,
            started_at=datetime.now(UTC),
        )
        self._remember_status(record)
        MetricsCollector.update_queued_executions(len(self._queue))

        try:
            async with self._lock:
                self._queue.discard(execution_id)
                MetricsCollector.update_queued_executions(len(self._queue))
                with execution_scope(execution_id, workflow.name):
                    return await self._execute(record, workflow, context, options, task)
        finally:
            if self._queue.discard(execution_id):
                MetricsCollector.update_queued_executions(len(self._queue))
            if not record.status.is_terminal:
                self._set_status(record, ExecutionStatus.FAILED)

    def _record_rejection(self, execution_id: str, workflow: WorkflowDefinition | None, error: Exception) -> None:
        workflow_name = workflow.name if workflow is not None else "unknown"
        log.warning(
            "execution_rejected",
            execution_id=execution_id,
            workflow=workflow_name,
            error=str(error),
            error_type=type(error).__name__,
        )
        self.metrics.record(
            ExecutionRecord(
                execution_id=execution_id,
                workflow=workflow_name,
                success=False,
                duration=0.0,
                step_count=0,
            )
        )

    def _validate_definition(self, workflow: WorkflowDefinition | None) -> None:
        if workflow is None:
            raise WorkflowDefinitionError("No workflow given")
        if not workflow.steps:
            raise WorkflowDefinitionError("Workflow has no steps", workflow_name=workflow.name)
        for index, spec in enumerate(workflow.steps):
            if not spec.type or not spec.name:
                raise WorkflowDefinitionError(f"Step {index} needs both a type and a name", workflow_name=workflow.name)

    async def _execute(
        self,
        record: _ExecutionStatusRecord,
        workflow: WorkflowDefinition,
        context: WorkflowContext,
        options: ExecutionOptions,
        task: Task | None,
    ) -> ExecutionResult:
        started = time.perf_counter()
        snapshot = context.snapshot()
        result: ExecutionResult | None = None
        executed = workflow

        try:
            level = None
            if task is not None and self.automation_manager is not None:
                level = await self.automation_manager.determine_level(task, snapshot)
                context.set(ContextKey.AUTOMATION_LEVEL, level)
                MetricsCollector.record_automation_decision(str(level))
            requires_confirmation, requires_human_review = _policy_flags(level)

            cached = await self.cache.get(workflow, snapshot)
            if cached is not None:
                MetricsCollector.record_cache_hit(CACHE_NAME)
                result = replace(
                    cached,
                    execution_id=record.execution_id,
                    cached=True,
                    automation_level=level,
                    requires_confirmation=requires_confirmation,
                    requires_human_review=requires_human_review,
                    duration=time.perf_counter() - started,
                    completed_at=datetime.now(UTC),
                )
                record.strategy = cached.strategy
                record.released = True
                self._set_status(record, ExecutionStatus.SUCCEEDED)
                log.info("execution_cache_hit", cached_execution_id=cached.execution_id)
                return result
            MetricsCollector.record_cache_miss(CACHE_NAME)

            strategy = self._choose_strategy(workflow, options)
            record.strategy = strategy
            context.set(ContextKey.EXECUTION_STRATEGY, strategy)

            if strategy is ExecutionStrategy.OPTIMIZED:
                self._set_status(record, ExecutionStatus.OPTIMIZING)
                executed = self.optimizer.optimize(workflow, snapshot)

            steps = [self.registry.resolve(spec, workflow.name) for spec in executed.steps]

            try:
                await self.resource_manager.allocate_resources(
                    record.execution_id, ResourceRequirements(options.memory_mb, options.cpu_percent)
                )
            except ResourceExhaustedError as e:
                MetricsCollector.record_resource_rejection(e.resource or "unknown")
                raise
            self._set_status(record, ExecutionStatus.RESOURCED)

            try:
                execution_context = ExecutionContext(
                    execution_id=record.execution_id,
                    workflow=executed,
                    strategy=strategy,
                    options=options,
                    task=task,
                )
                self.scheduler.schedule(execution_context)
                self._set_status(record, ExecutionStatus.SCHEDULED)

                self._active += 1
                MetricsCollector.update_active_executions(self._active)
                self._set_status(record, ExecutionStatus.EXECUTING)
                log.info("execution_started", strategy=str(strategy), steps=len(executed.steps))

                try:
                    outcome = await self._run_steps(record, executed, steps, context, options)
                finally:
                    self._active -= 1
                    MetricsCollector.update_active_executions(self._active)

                result = await self._build_result(
                    record, execution_context, outcome, context, level, time.perf_counter() - started
                )
            finally:
                await self._release(record)

            if result.success:
                await self.cache.put(workflow, snapshot, result)
                self.scheduler.mark_completed(record.execution_id)
                self._set_status(record, ExecutionStatus.SUCCEEDED)
            else:
                self.scheduler.mark_failed(record.execution_id)
                self._set_status(record, ExecutionStatus.FAILED)

            log.info(
                "execution_finished",
                success=result.success,
                duration=result.duration,
                steps=result.step_count,
                cancelled=result.cancelled,
            )
            return result
        except Exception as e:
            log.error("execution_aborted", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            duration = time.perf_counter() - started
            self.metrics.record(
                ExecutionRecord(
                    execution_id=record.execution_id,
                    workflow=workflow.name,
                    success=bool(result and result.success),
                    duration=duration,
                    step_count=result.step_count if result else 0,
                    cached=bool(result and result.cached),
                )
            )
            if result is not None and not result.cached:
                self.optimizer.record_execution(executed, result.success, duration)

    def _choose_strategy(self, workflow: WorkflowDefinition, options: ExecutionOptions) -> ExecutionStrategy:
        if options.strategy is not None:
            return options.strategy
        if self.optimizer.settings.enabled and len(workflow.steps) > 1:
            return ExecutionStrategy.OPTIMIZED
        return ExecutionStrategy.BASIC

    async def _run_steps(
        self,
        record: _ExecutionStatusRecord,
        workflow: WorkflowDefinition,
        steps: Sequence[Step],
        context: WorkflowContext,
        options: ExecutionOptions,
    ) -> _StepLoopOutcome:
        timeout = options.step_timeout if options.step_timeout is not None else self.settings.step_timeout_seconds
        outcome = _StepLoopOutcome(results=[], history=[], failed_index=None, cancelled=False)

        for index, (spec, step) in enumerate(zip(workflow.steps, steps, strict=True)):
            if record.cancel_requested or context.get(ContextKey.CANCELLED):
                outcome.cancelled = True
                log.info("execution_cancelled", before_step=index)
                break

            context.update(
                {
                    ContextKey.CURRENT_STEP: spec.name,
                    ContextKey.CURRENT_STEP_INDEX: index,
                    ContextKey.STEP_PARAMETERS: dict(spec.parameters),
                }
            )
            context.transition("executing", step=spec.name, index=index)

            step_result = await self._run_step(spec, step, context, timeout)

            outcome.results.append(step_result)
            outcome.history.append(
                HistoryEntry(
                    index=index,
                    step_name=spec.name,
                    success=step_result.success,
                    duration=step_result.duration,
                    timestamp=datetime.now(UTC),
                    error=step_result.error,
                )
            )
            context.set(ContextKey.step_result(index), step_result)
            MetricsCollector.record_step_execution(
                spec.type,
                step_result.success,
                step_result.duration,
                str(step_result.error_type) if step_result.error_type else None,
            )

            if not step_result.success:
                outcome.failed_index = index
                log.warning(
                    "step_failed",
                    step=spec.name,
                    index=index,
                    error=step_result.error,
                    error_type=str(step_result.error_type),
                )
                break

            log.debug("step_succeeded", step=spec.name, index=index, duration=step_result.duration)

        context.transition("finished", failed_index=outcome.failed_index, cancelled=outcome.cancelled)
        return outcome

    async def _run_step(self, spec: StepSpec, step: Step, context: WorkflowContext, timeout: float) -> StepResult:
        async def attempt() -> StepResult:
            validation = await step.validate(context)
            if not validation.is_valid:
                return StepResult.failure(spec.name, validation.message, StepErrorType.VALIDATION)

            outcome = await step.execute(context)
            if not isinstance(outcome, StepResult):
                return StepResult.failure(
                    spec.name,
                    f"Step returned {type(outcome).__name__} instead of StepResult",
                    StepErrorType.EXCEPTION,
                )
            return outcome

        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(attempt(), timeout=timeout)
        except TimeoutError:
            error = ExecutionTimeoutError(f"Step {spec.name} timed out", step_name=spec.name, timeout_seconds=timeout)
            result = StepResult.failure(spec.name, error.message, StepErrorType.TIMEOUT)
        except Exception as e:
            log.error("step_raised", step=spec.name, error=str(e), exc_info=True)
            result = StepResult.failure(spec.name, f"{type(e).__name__}: {e}", StepErrorType.EXCEPTION)

        return result.with_duration(time.perf_counter() - started)

    async def _build_result(
        self,
        record: _ExecutionStatusRecord,
        execution: ExecutionContext,
        outcome: _StepLoopOutcome,
        context: WorkflowContext,
        level: AutomationLevel | None,
        duration: float,
    ) -> ExecutionResult:
        workflow = execution.workflow
        error = None
        rollback_error = None
        requires_confirmation, requires_human_review = _policy_flags(level)

        if outcome.failed_index is not None:
            error = outcome.results[outcome.failed_index].error
            if workflow.rollback is not None:
                rollback_error = await self._rollback(workflow, outcome, context)
        elif outcome.cancelled:
            error = "Execution cancelled"

        return ExecutionResult(
            execution_id=record.execution_id,
            workflow_name=workflow.name,
            workflow_version=workflow.version,
            success=outcome.failed_index is None and not outcome.cancelled,
            results=tuple(outcome.results),
            duration=duration,
            history=tuple(outcome.history),
            strategy=execution.strategy,
            automation_level=level,
            requires_confirmation=requires_confirmation,
            requires_human_review=requires_human_review,
            error=error,
            rollback_error=rollback_error,
            cancelled=outcome.cancelled,
        )

    async def _rollback(
        self, workflow: WorkflowDefinition, outcome: _StepLoopOutcome, context: WorkflowContext
    ) -> str | None:
        failed_index = outcome.failed_index
        log.info("rollback_started", failed_index=failed_index)
        try:
            await workflow.rollback(failed_index, tuple(outcome.results), context)
        except Exception as e:
            error = RollbackError(f"Rollback failed: {e}", failed_step_index=failed_index)
            log.error("rollback_failed", failed_index=failed_index, error=str(e))
            MetricsCollector.record_rollback(False)
            return error.message

        MetricsCollector.record_rollback(True)
        log.info("rollback_completed", failed_index=failed_index)
        return None

    async def _release(self, record: _ExecutionStatusRecord) -> None:
        await self.resource_manager.release_resources(record.execution_id)
        record.released = True

    def cancel_execution(self, execution_id: str) -> bool:
        """Ask a pending or running execution to stop before its next step.

        Returns False if the execution is unknown or already finished.
        """
        record = self._statuses.get(execution_id)
        if record is None or record.status.is_terminal:
            return False
        record.cancel_requested = True
        log.info("execution_cancel_requested", execution_id=execution_id)
        return True

    def get_execution_status(self, execution_id: str) -> dict[str, Any] | None:
        record = self._statuses.get(execution_id)
        return record.as_dict() if record else None

    async def get_system_metrics(self) -> dict[str, Any]:
        return {
            "active_executions": self._active,
            "queue_length": len(self._queue),
            "resource_utilization": await self.resource_manager.get_resource_utilization(),
            "executions": self.metrics.snapshot(),
            "cache": await self.cache.get_stats(),
            "optimizer": self.optimizer.get_statistics(),
            "scheduler": self.scheduler.get_statistics(),
        }

    def _set_status(self, record: _ExecutionStatusRecord, status: ExecutionStatus) -> None:
        record.status = status
        if status.is_terminal:
            record.finished_at = datetime.now(UTC)
        log.debug("execution_status_changed", execution_id=record.execution_id, status=str(status))

    def _remember_status(self, record: _ExecutionStatusRecord) -> None:
        self._statuses[record.execution_id] = record
        finished = [eid for eid, r in self._statuses.items() if r.status.is_terminal]
        excess = len(finished) - self.settings.history_limit
        for eid in finished[: max(0, excess)]:
            del self._statuses[eid]
