"""Tests for autopilot/engine/optimizer.py."""

import pytest

from autopilot.config.settings import OptimizerSettings
from autopilot.engine.optimizer import (
    STEP_COUNT_WINDOW,
    WorkflowOptimizer,
    combine_similar_steps,
    remove_redundant_steps,
    reorder_steps,
)
from autopilot.exceptions import WorkflowDefinitionError
from autopilot.models.domain import StepSpec, WorkflowDefinition


def workflow(*steps: StepSpec, name: str = "wf", version: str = "1") -> WorkflowDefinition:
    return WorkflowDefinition(name=name, version=version, steps=steps)


GIT_WORKFLOW = workflow(
    StepSpec("git_commit", "git_commit"),
    StepSpec("git_push", "git_push"),
    StepSpec("git_commit", "git_commit"),
)

MIXED_WORKFLOW = workflow(
    StepSpec("deployment", "ship"),
    StepSpec("analysis", "lint", {"strict": False}),
    StepSpec("testing", "unit"),
    StepSpec("analysis", "types", {"strict": True, "target": "py311"}),
    StepSpec("setup", "venv"),
    StepSpec("custom", "notify"),
)


class TestRules:
    """Tests for the individual rewrite rules."""

    def test_remove_redundant_scenario(self):
        optimized = WorkflowOptimizer(OptimizerSettings(rules=["remove_redundant_steps"])).optimize(GIT_WORKFLOW)

        assert [s.name for s in optimized.steps] == ["git_commit", "git_push"]

    def test_remove_redundant_keeps_same_type_different_name(self):
        wf = workflow(StepSpec("analysis", "a"), StepSpec("analysis", "b"), StepSpec("analysis", "a"))

        assert [s.name for s in remove_redundant_steps(wf).steps] == ["a", "b"]

    def test_combine_merges_parameters_later_wins(self):
        combined = combine_similar_steps(MIXED_WORKFLOW)
        analysis = [s for s in combined.steps if s.type == "analysis"]

        assert len(analysis) == 1
        assert analysis[0].name == "combined_analysis"
        assert analysis[0].parameters == {"strict": True, "target": "py311"}
        assert analysis[0].metadata == {"combined": True, "original_steps": 2}
        assert analysis[0].is_combined

    def test_combine_places_group_at_first_member(self):
        combined = combine_similar_steps(MIXED_WORKFLOW)

        assert [s.name for s in combined.steps] == ["ship", "combined_analysis", "unit", "venv", "notify"]

    def test_combine_single_steps_untouched(self):
        wf = workflow(StepSpec("analysis", "a"), StepSpec("testing", "b"))

        assert combine_similar_steps(wf) is wf

    def test_reorder_by_phase_unknown_last(self):
        reordered = reorder_steps(MIXED_WORKFLOW)

        assert [s.name for s in reordered.steps] == ["venv", "lint", "types", "unit", "ship", "notify"]

    def test_reorder_is_stable(self):
        wf = workflow(StepSpec("x", "first"), StepSpec("y", "second"), StepSpec("setup", "s"))

        assert [s.name for s in reorder_steps(wf).steps] == ["s", "first", "second"]


class TestWorkflowOptimizer:
    """Tests for rule application, memoization and statistics."""

    def test_idempotent(self):
        optimizer = WorkflowOptimizer()

        once = optimizer.optimize(MIXED_WORKFLOW)
        twice = optimizer.optimize(once)

        assert twice == once
        assert twice.steps == once.steps

    def test_idempotent_with_fresh_optimizer(self):
        once = WorkflowOptimizer().optimize(GIT_WORKFLOW)

        assert WorkflowOptimizer().optimize(once).steps == once.steps

    def test_does_not_mutate_input(self):
        before = MIXED_WORKFLOW.steps

        WorkflowOptimizer().optimize(MIXED_WORKFLOW)

        assert MIXED_WORKFLOW.steps == before

    def test_memoized_per_identity(self):
        optimizer = WorkflowOptimizer()

        first = optimizer.optimize(MIXED_WORKFLOW)
        second = optimizer.optimize(MIXED_WORKFLOW)

        assert second is first
        assert optimizer.get_statistics()["memo_hits"] == 1

    def test_reused_identity_with_new_steps_is_reoptimized(self):
        optimizer = WorkflowOptimizer()
        optimizer.optimize(MIXED_WORKFLOW)

        changed = workflow(StepSpec("testing", "t"), StepSpec("setup", "s"))
        optimized = optimizer.optimize(changed)

        assert [s.name for s in optimized.steps] == ["s", "t"]

    def test_failing_rule_is_skipped(self):
        optimizer = WorkflowOptimizer(OptimizerSettings(rules=["remove_redundant_steps"]))

        def broken(wf):
            raise RuntimeError("rule bug")

        optimizer.add_rule("broken", broken)
        optimized = optimizer.optimize(GIT_WORKFLOW)

        assert len(optimized.steps) == 2
        assert optimizer.get_statistics()["rule_failures"] == 1

    def test_rule_that_empties_workflow_is_ignored(self):
        optimizer = WorkflowOptimizer(OptimizerSettings(rules=[]))
        optimizer.add_rule("drop_all", lambda wf: wf.with_steps([]))

        assert optimizer.optimize(GIT_WORKFLOW).steps == GIT_WORKFLOW.steps

    def test_unchanged_workflow_returned_as_is(self):
        wf = workflow(StepSpec("setup", "s"), StepSpec("testing", "t"))

        assert WorkflowOptimizer().optimize(wf) is wf

    def test_disabled_optimizer_passthrough(self):
        optimizer = WorkflowOptimizer(OptimizerSettings(enabled=False))

        assert optimizer.optimize(GIT_WORKFLOW) is GIT_WORKFLOW

    def test_skip_optimization_context_flag(self):
        assert WorkflowOptimizer().optimize(GIT_WORKFLOW, {"skip_optimization": True}) is GIT_WORKFLOW

    def test_empty_workflow_raises(self):
        with pytest.raises(WorkflowDefinitionError):
            WorkflowOptimizer().optimize(workflow())

    def test_optimized_metadata(self):
        optimized = WorkflowOptimizer().optimize(GIT_WORKFLOW)

        assert optimized.metadata["optimized"] is True
        assert "combine_similar_steps" in optimized.metadata["applied_rules"]

    def test_duplicate_rule_name_rejected(self):
        with pytest.raises(ValueError):
            WorkflowOptimizer().add_rule("reorder_steps", lambda wf: wf)

    def test_record_execution_statistics(self):
        optimizer = WorkflowOptimizer()
        optimizer.record_execution(GIT_WORKFLOW, True, 1.0)
        optimizer.record_execution(GIT_WORKFLOW, False, 3.0)

        history = optimizer.get_workflow_history("wf", "1")

        assert history.success_rate == 0.5
        assert history.average_duration == 2.0
        assert optimizer.get_statistics()["success_rates"] == {"wf@1": 0.5}

    def test_step_count_history_is_bounded(self):
        optimizer = WorkflowOptimizer()
        for _ in range(STEP_COUNT_WINDOW + 10):
            optimizer.record_execution(GIT_WORKFLOW, True, 1.0)

        history = optimizer.get_workflow_history("wf", "1")

        assert history.executions == STEP_COUNT_WINDOW + 10
        assert len(history.step_counts) == STEP_COUNT_WINDOW

    def test_estimated_duration(self):
        optimizer = WorkflowOptimizer()
        assert optimizer.estimated_duration(GIT_WORKFLOW) is None

        optimizer.record_execution(GIT_WORKFLOW, True, 2.0)
        optimizer.record_execution(GIT_WORKFLOW, True, 4.0)

        assert optimizer.estimated_duration(GIT_WORKFLOW) == 3.0

    def test_clear_cache(self):
        optimizer = WorkflowOptimizer()
        optimizer.optimize(MIXED_WORKFLOW)

        optimizer.clear_cache()

        assert optimizer.get_statistics()["memoized_workflows"] == 0

    def test_memo_bounded(self):
        optimizer = WorkflowOptimizer(OptimizerSettings(max_cache_entries=2))
        for version in ("1", "2", "3"):
            optimizer.optimize(workflow(*GIT_WORKFLOW.steps, version=version))

        assert optimizer.get_statistics()["memoized_workflows"] == 2
