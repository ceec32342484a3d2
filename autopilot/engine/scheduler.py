"""
Advisory scheduling for workflow executions.

The scheduler computes a priority and a duration estimate for each
execution. Nothing in the engine waits on either value: the estimate is
informational and independent of the per-step timeout, and dependencies
are recorded but never enforced.

The estimate is the average duration of past runs of the same workflow
when a duration source knows one, and ``seconds_per_step`` per step
otherwise.

Priority:
    base 1, +10 critical, +5 high priority, +3 urgent, -2 low priority,
    never below 1.
"""

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import structlog

from autopilot.engine.context import ExecutionContext
from autopilot.models.domain import ScheduledExecution, WorkflowDefinition

log = structlog.get_logger(__name__)

BASE_PRIORITY = 1
CRITICAL_BONUS = 10
HIGH_PRIORITY_BONUS = 5
URGENT_BONUS = 3
LOW_PRIORITY_PENALTY = 2


def calculate_priority(context: ExecutionContext) -> int:
    options = context.options
    priority = BASE_PRIORITY

    if options.critical:
        priority += CRITICAL_BONUS
    if options.priority == "high":
        priority += HIGH_PRIORITY_BONUS
    elif options.priority == "low":
        priority -= LOW_PRIORITY_PENALTY
    if options.urgent:
        priority += URGENT_BONUS

    return max(BASE_PRIORITY, priority)


class ExecutionScheduler:
    """Compute and track scheduling metadata per execution."""

    def __init__(
        self,
        seconds_per_step: float = 30.0,
        duration_source: Callable[[WorkflowDefinition], float | None] | None = None,
        history_limit: int = 100,
    ) -> None:
        """Initialize scheduler.

        Args:
            seconds_per_step: Per-step estimate used without history
            duration_source: Returns the observed average duration of a
                workflow, or None when it has never run
            history_limit: Finished execution ids kept for dependency checks
        """
        self.seconds_per_step = seconds_per_step
        self.duration_source = duration_source
        self.history_limit = history_limit
        self._scheduled: dict[str, ScheduledExecution] = {}
        # execution id -> succeeded, oldest first
        self._outcomes: OrderedDict[str, bool] = OrderedDict()
        self._completed_total = 0
        self._failed_total = 0

    def schedule(self, context: ExecutionContext) -> ScheduledExecution:
        """Record scheduling metadata for ``context``."""
        scheduled = ScheduledExecution(
            execution_id=context.execution_id,
            priority=calculate_priority(context),
            estimated_duration=self.estimate_workflow(context.workflow),
            dependencies=tuple(context.options.dependencies),
        )
        self._scheduled[context.execution_id] = scheduled

        unmet = [dep for dep in scheduled.dependencies if not self.is_completed(dep)]
        if unmet:
            log.debug("execution_dependencies_pending", execution_id=context.execution_id, pending=unmet)

        log.info(
            "execution_scheduled",
            execution_id=scheduled.execution_id,
            priority=scheduled.priority,
            estimated_duration=scheduled.estimated_duration,
        )
        return scheduled

    def estimate_duration(self, step_count: int) -> float:
        return self.seconds_per_step * step_count

    def estimate_workflow(self, workflow: WorkflowDefinition) -> float:
        """Observed average duration of ``workflow``, else the per-step estimate."""
        if self.duration_source is not None:
            observed = self.duration_source(workflow)
            if observed is not None and observed > 0:
                return observed
        return self.estimate_duration(len(workflow.steps))

    def reschedule(self, execution_id: str, priority: int) -> ScheduledExecution | None:
        scheduled = self._scheduled.get(execution_id)
        if scheduled is None:
            return None
        scheduled = replace(scheduled, priority=max(BASE_PRIORITY, priority))
        self._scheduled[execution_id] = scheduled
        return scheduled

    def get_scheduled_execution(self, execution_id: str) -> ScheduledExecution | None:
        return self._scheduled.get(execution_id)

    def mark_completed(self, execution_id: str) -> None:
        self._finish(execution_id, True)

    def mark_failed(self, execution_id: str) -> None:
        self._finish(execution_id, False)

    def _finish(self, execution_id: str, succeeded: bool) -> None:
        self._scheduled.pop(execution_id, None)

        previous = self._outcomes.pop(execution_id, None)
        if previous is True:
            self._completed_total -= 1
        elif previous is False:
            self._failed_total -= 1

        if succeeded:
            self._completed_total += 1
        else:
            self._failed_total += 1

        self._outcomes[execution_id] = succeeded
        while len(self._outcomes) > self.history_limit:
            self._outcomes.popitem(last=False)

    def is_completed(self, execution_id: str) -> bool:
        """Whether ``execution_id`` is among the recently completed executions."""
        return self._outcomes.get(execution_id, False)

    @property
    def tracked_outcomes(self) -> int:
        return len(self._outcomes)

    def remove(self, execution_id: str) -> bool:
        return self._scheduled.pop(execution_id, None) is not None

    def pending(self) -> list[ScheduledExecution]:
        """Scheduled executions, highest priority first, oldest first on ties."""
        return sorted(self._scheduled.values(), key=lambda s: (-s.priority, s.scheduled_at))

    def get_statistics(self) -> dict[str, Any]:
        scheduled = list(self._scheduled.values())
        return {
            "scheduled": len(scheduled),
            "completed": self._completed_total,
            "failed": self._failed_total,
            "average_priority": (sum(s.priority for s in scheduled) / len(scheduled)) if scheduled else 0.0,
        }
