"""Composition root: build a wired engine from settings."""

from collections.abc import Sequence

import structlog

from autopilot import __version__
from autopilot.automation.confidence import ConfidenceCalculator
from autopilot.automation.manager import AutomationManager
from autopilot.automation.rules import AutomationRule, RuleEngine
from autopilot.automation.sources import ConfidenceSources, InMemoryPreferenceStore, PreferenceStore
from autopilot.config.settings import AutopilotSettings
from autopilot.engine.cache import ExecutionCache
from autopilot.engine.optimizer import WorkflowOptimizer
from autopilot.engine.resources import ResourceManager
from autopilot.engine.scheduler import ExecutionScheduler
from autopilot.engine.sequential import SequentialExecutionEngine
from autopilot.engine.steps import StepRegistry
from autopilot.monitoring.metrics import ExecutionMetrics, MetricsCollector

log = structlog.get_logger(__name__)


def build_engine(
    settings: AutopilotSettings,
    registry: StepRegistry,
    preference_store: PreferenceStore | None = None,
    sources: ConfidenceSources | None = None,
    rules: Sequence[AutomationRule] | None = None,
    resource_manager: ResourceManager | None = None,
) -> SequentialExecutionEngine:
    """Construct every component from ``settings`` and wire them together.

    Args:
        settings: Loaded autopilot settings
        registry: Step registry owned by the caller
        preference_store: Store for explicit preferences; in-memory if omitted
        sources: Confidence data sources; each missing one scores neutral
        rules: Automation rules; the shipped defaults if omitted
        resource_manager: Share one manager between several engines so
            they account against the same limits

    Returns:
        A ready SequentialExecutionEngine
    """
    calculator = ConfidenceCalculator(settings.confidence, sources)
    manager = AutomationManager(
        settings.automation,
        preference_store if preference_store is not None else InMemoryPreferenceStore(),
        calculator,
        RuleEngine(rules),
    )

    optimizer = WorkflowOptimizer(settings.optimizer)
    scheduler = ExecutionScheduler(
        seconds_per_step=settings.engine.seconds_per_step,
        duration_source=optimizer.estimated_duration,
        history_limit=settings.engine.history_limit,
    )

    engine = SequentialExecutionEngine(
        registry=registry,
        resource_manager=resource_manager or ResourceManager(settings.resources),
        scheduler=scheduler,
        optimizer=optimizer,
        cache=ExecutionCache(settings.cache),
        automation_manager=manager,
        settings=settings.engine,
        metrics=ExecutionMetrics(history_limit=settings.engine.history_limit),
    )

    MetricsCollector.set_system_info(version=__version__, steps=len(registry))
    log.info(
        "engine_built",
        registered_steps=registry.identifiers,
        optimizer_rules=engine.optimizer.rule_names,
        cache_enabled=settings.cache.enabled,
    )
    return engine
