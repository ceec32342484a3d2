"""
Pure workflow rewriting.

The optimizer turns a ``WorkflowDefinition`` into an equivalent, usually
shorter one. It never touches the input: every rule returns a new
definition. Rules run in the configured order and a rule that raises is
logged and skipped, leaving the workflow as the previous rule produced it.

Built-in rules:
    combine_similar_steps: Every step type that occurs more than once is
        merged into one ``combined_{type}`` step placed where the first
        member was. Parameters merge shallowly, later steps win.
    reorder_steps: Stable sort by execution phase (setup first, cleanup
        last, unknown types at the end).
    remove_redundant_steps: Keep only the first step for each
        (type, name) pair.

Applying the optimizer to its own output returns the output unchanged.

Example:
    >>> optimizer = WorkflowOptimizer(settings.optimizer)
    >>> optimized = optimizer.optimize(workflow)
    >>> optimizer.optimize(optimized) == optimized
    True
"""

import hashlib
import json
from collections import OrderedDict, deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from autopilot.config.settings import OptimizerSettings
from autopilot.engine.context import ContextKey
from autopilot.exceptions import WorkflowDefinitionError
from autopilot.models.domain import StepSpec, WorkflowDefinition

log = structlog.get_logger(__name__)

OptimizationRule = Callable[[WorkflowDefinition], WorkflowDefinition]

PHASE_ORDER: Mapping[str, int] = {
    "setup": 1,
    "validation": 2,
    "analysis": 3,
    "processing": 4,
    "testing": 5,
    "deployment": 6,
    "cleanup": 7,
}
UNKNOWN_PHASE = 999
# Recent step counts kept per workflow
STEP_COUNT_WINDOW = 50


def step_fingerprint(steps: tuple[StepSpec, ...]) -> str:
    """Stable digest of a step list, used to detect reused workflow identities."""
    payload = [[s.type, s.name, s.parameters, s.metadata] for s in steps]
    encoded = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.md5(encoded.encode(), usedforsecurity=False).hexdigest()


def combine_similar_steps(workflow: WorkflowDefinition) -> WorkflowDefinition:
    if len(workflow.steps) <= 1:
        return workflow

    groups: dict[str, list[StepSpec]] = {}
    for step in workflow.steps:
        groups.setdefault(step.type, []).append(step)

    if all(len(members) == 1 for members in groups.values()):
        return workflow

    # dict preserves first-seen order, so each group sits where its first member was.
    steps = [members[0] if len(members) == 1 else _merge(step_type, members) for step_type, members in groups.items()]
    return workflow.with_steps(steps)


def _merge(step_type: str, members: list[StepSpec]) -> StepSpec:
    parameters: dict[str, Any] = {}
    for member in members:
        parameters.update(member.parameters)

    original = sum(m.metadata.get("original_steps", 1) for m in members)
    return StepSpec(
        type=step_type,
        name=f"combined_{step_type}",
        parameters=parameters,
        metadata={"combined": True, "original_steps": original},
    )


def reorder_steps(workflow: WorkflowDefinition) -> WorkflowDefinition:
    if len(workflow.steps) <= 1:
        return workflow

    steps = sorted(workflow.steps, key=lambda s: PHASE_ORDER.get(s.type, UNKNOWN_PHASE))
    if tuple(steps) == workflow.steps:
        return workflow
    return workflow.with_steps(steps)


def remove_redundant_steps(workflow: WorkflowDefinition) -> WorkflowDefinition:
    seen: set[tuple[str, str]] = set()
    steps = []
    for step in workflow.steps:
        if step.key in seen:
            continue
        seen.add(step.key)
        steps.append(step)

    if len(steps) == len(workflow.steps):
        return workflow
    return workflow.with_steps(steps)


BUILTIN_RULES: Mapping[str, OptimizationRule] = {
    "combine_similar_steps": combine_similar_steps,
    "reorder_steps": reorder_steps,
    "remove_redundant_steps": remove_redundant_steps,
}


@dataclass
class _MemoEntry:
    input_fingerprint: str
    output_fingerprint: str
    optimized: WorkflowDefinition


@dataclass
class WorkflowHistory:
    """Outcomes recorded for one workflow identity."""

    executions: int = 0
    successes: int = 0
    total_duration: float = 0.0
    step_counts: deque[int] = field(default_factory=lambda: deque(maxlen=STEP_COUNT_WINDOW))

    @property
    def success_rate(self) -> float:
        return self.successes / self.executions if self.executions else 0.0

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.executions if self.executions else 0.0


class WorkflowOptimizer:
    """Apply rewrite rules and memoize the result per workflow identity."""

    def __init__(self, settings: OptimizerSettings | None = None) -> None:
        self.settings = settings or OptimizerSettings()
        self._rules: OrderedDict[str, OptimizationRule] = OrderedDict(
            (name, BUILTIN_RULES[name]) for name in self.settings.rules
        )
        self._memo: OrderedDict[tuple[str, str], _MemoEntry] = OrderedDict()
        self._history: dict[tuple[str, str], WorkflowHistory] = {}
        self._stats = {
            "optimizations": 0,
            "memo_hits": 0,
            "rule_failures": 0,
            "steps_removed": 0,
        }
        self._rule_applications: dict[str, int] = {}

    @property
    def rule_names(self) -> list[str]:
        return list(self._rules)

    def add_rule(self, name: str, rule: OptimizationRule) -> None:
        """Append a custom rule; it runs after the configured ones."""
        if name in self._rules:
            raise ValueError(f"Optimization rule already registered: {name}")
        self._rules[name] = rule
        self._memo.clear()

    def optimize(
        self, workflow: WorkflowDefinition, context: Mapping[str, Any] | None = None
    ) -> WorkflowDefinition:
        """Return the optimized form of ``workflow``.

        Raises:
            WorkflowDefinitionError: If the workflow has no steps
        """
        if not workflow.steps:
            raise WorkflowDefinitionError("Workflow has no steps", workflow_name=workflow.name)

        if not self.settings.enabled or (context is not None and context.get(ContextKey.SKIP_OPTIMIZATION)):
            return workflow

        fingerprint = step_fingerprint(workflow.steps)
        entry = self._memo.get(workflow.identity)
        if entry is not None:
            if fingerprint == entry.input_fingerprint:
                self._memo.move_to_end(workflow.identity)
                self._stats["memo_hits"] += 1
                log.debug("optimization_memo_hit", workflow=workflow.name, version=workflow.version)
                return entry.optimized
            if fingerprint == entry.output_fingerprint:
                # Already optimized.
                return workflow
            log.warning(
                "workflow_identity_reused",
                workflow=workflow.name,
                version=workflow.version,
                detail="steps differ from the memoized definition",
            )
            del self._memo[workflow.identity]

        optimized, applied = self._apply_rules(workflow)
        if optimized.steps == workflow.steps:
            optimized = workflow
        else:
            optimized = optimized.with_steps(optimized.steps, optimized=True, applied_rules=applied)

        self._remember(workflow.identity, _MemoEntry(fingerprint, step_fingerprint(optimized.steps), optimized))
        self._stats["optimizations"] += 1
        self._stats["steps_removed"] += len(workflow.steps) - len(optimized.steps)

        log.info(
            "workflow_optimized",
            workflow=workflow.name,
            version=workflow.version,
            applied_rules=applied,
            original_steps=len(workflow.steps),
            optimized_steps=len(optimized.steps),
        )
        return optimized

    def _apply_rules(self, workflow: WorkflowDefinition) -> tuple[WorkflowDefinition, list[str]]:
        current = workflow
        applied: list[str] = []
        for name, rule in self._rules.items():
            try:
                rewritten = rule(current)
            except Exception as e:
                self._stats["rule_failures"] += 1
                log.warning("optimization_rule_failed", rule=name, workflow=workflow.name, error=str(e))
                continue

            if not rewritten.steps:
                log.warning("optimization_rule_emptied_workflow", rule=name, workflow=workflow.name)
                continue

            if rewritten.steps != current.steps:
                applied.append(name)
                self._rule_applications[name] = self._rule_applications.get(name, 0) + 1
            current = rewritten
        return current, applied

    def _remember(self, identity: tuple[str, str], entry: _MemoEntry) -> None:
        self._memo[identity] = entry
        self._memo.move_to_end(identity)
        while len(self._memo) > self.settings.max_cache_entries:
            self._memo.popitem(last=False)

    def record_execution(self, workflow: WorkflowDefinition, success: bool, duration: float) -> None:
        """Feed an execution outcome into per-workflow statistics."""
        history = self._history.setdefault(workflow.identity, WorkflowHistory())
        history.executions += 1
        history.successes += int(success)
        history.total_duration += duration
        history.step_counts.append(len(workflow.steps))

    def estimated_duration(self, workflow: WorkflowDefinition) -> float | None:
        """Average observed duration of ``workflow``, or None if it never ran."""
        history = self._history.get(workflow.identity)
        if history is None or not history.executions:
            return None
        return history.average_duration

    def get_workflow_history(self, name: str, version: str) -> WorkflowHistory | None:
        return self._history.get((name, version))

    def clear_cache(self) -> None:
        self._memo.clear()

    def get_statistics(self) -> dict[str, Any]:
        return {
            **self._stats,
            "memoized_workflows": len(self._memo),
            "rule_applications": dict(self._rule_applications),
            "tracked_workflows": len(self._history),
            "success_rates": {f"{name}@{version}": h.success_rate for (name, version), h in self._history.items()},
        }
