"""Tests for autopilot/bootstrap.py."""

import pytest

from autopilot.bootstrap import build_engine
from autopilot.config.settings import AutopilotSettings
from autopilot.engine.resources import ResourceManager
from autopilot.enums import AutomationLevel, TaskType
from autopilot.models.domain import Task


class TestBuildEngine:
    """Tests for the composition root."""

    def test_components_follow_settings(self, registry):
        settings = AutopilotSettings(
            engine={"seconds_per_step": 5, "queue_max_size": 3},
            optimizer={"rules": ["reorder_steps"]},
            cache={"enabled": False},
        )

        engine = build_engine(settings, registry)

        assert engine.optimizer.rule_names == ["reorder_steps"]
        assert engine.scheduler.seconds_per_step == 5
        assert engine.settings.queue_max_size == 3
        assert engine.automation_manager is not None

    def test_shared_resource_manager(self, settings, registry):
        shared = ResourceManager(settings.resources)

        first = build_engine(settings, registry, resource_manager=shared)
        second = build_engine(settings, registry, resource_manager=shared)

        assert first.resource_manager is second.resource_manager

    @pytest.mark.asyncio
    async def test_end_to_end(self, settings, registry, sample_workflow, sample_task):
        engine = build_engine(settings, registry)

        result = await engine.execute_workflow(sample_workflow, {"project_id": "proj-1"}, task=sample_task)

        assert result.success
        assert isinstance(result.automation_level, AutomationLevel)
        assert engine.resource_manager.active_count == 0

    @pytest.mark.asyncio
    async def test_task_type_default_applies(self, settings, registry):
        engine = build_engine(settings, registry)
        deployment = Task(
            id="task-2", type=TaskType.DEPLOYMENT, project_id="proj-1", user_id="user-1"
        )

        assert await engine.determine_automation_level(deployment) == AutomationLevel.MANUAL

    @pytest.mark.asyncio
    async def test_scheduler_estimates_from_history(self, settings, registry, sample_workflow):
        engine = build_engine(settings, registry)
        assert engine.scheduler.estimate_workflow(sample_workflow) == 60

        await engine.execute_workflow(sample_workflow, {"project_id": "proj-1"})

        history = engine.optimizer.get_workflow_history(sample_workflow.name, sample_workflow.version)
        assert engine.scheduler.estimate_workflow(sample_workflow) == history.average_duration
        assert engine.scheduler.history_limit == settings.engine.history_limit
