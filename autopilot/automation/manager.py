"""
Automation level resolution.

The AutomationManager decides how much autonomy to grant a task. Resolution
walks a fixed precedence chain and the first step that produces a level
wins:

    1. Explicit per-user preference
    2. Explicit per-project preference
    3. Static task-type default table
    4. Confidence score at or above the full-auto threshold -> FULL_AUTO
    5. Rule engine (first matching rule)
    6. Global configured default

A missing preference is a normal case and falls through to the next step.
Confidence is only computed when steps 1-3 did not decide, so the data
sources behind it are not consulted for tasks with explicit preferences.

Example:
    >>> manager = AutomationManager(settings.automation, store, calculator)
    >>> await manager.determine_level(task)
    <AutomationLevel.SEMI_AUTO: 'semi_auto'>
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from autopilot.automation import policy
from autopilot.automation.confidence import ConfidenceCalculator
from autopilot.automation.rules import RuleEngine, RuleInput
from autopilot.automation.sources import PreferenceStore
from autopilot.config.settings import AutomationSettings
from autopilot.enums import AutomationLevel
from autopilot.exceptions import PreferencePersistenceError, WorkflowDefinitionError
from autopilot.models.domain import Task

log = structlog.get_logger(__name__)


class DecisionSource(str, Enum):
    """Which step of the precedence chain produced a level."""

    USER_PREFERENCE = "user_preference"
    PROJECT_SETTING = "project_setting"
    TASK_TYPE_DEFAULT = "task_type_default"
    CONFIDENCE = "confidence"
    RULE = "rule"
    GLOBAL_DEFAULT = "global_default"


@dataclass(frozen=True)
class AutomationDecision:
    level: AutomationLevel
    source: DecisionSource
    confidence: float | None = None


class AutomationManager:
    """Resolve the effective automation level for a task.

    Attributes:
        settings: Default level and task-type default table.
        store: External preference store (synchronous).
        calculator: Confidence calculator used when no preference applies.
        rules: Rule engine consulted below the full-auto threshold.
    """

    def __init__(
        self,
        settings: AutomationSettings,
        store: PreferenceStore,
        calculator: ConfidenceCalculator,
        rules: RuleEngine | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.calculator = calculator
        self.rules = rules or RuleEngine()
        self._user_cache: dict[str, AutomationLevel] = {}
        self._project_cache: dict[str, AutomationLevel] = {}

    async def determine_level(self, task: Task, context: Mapping[str, Any] | None = None) -> AutomationLevel:
        """Return the automation level for ``task``."""
        decision = await self.decide(task, context)
        return decision.level

    async def decide(self, task: Task, context: Mapping[str, Any] | None = None) -> AutomationDecision:
        """Walk the precedence chain and report which step decided.

        Raises:
            WorkflowDefinitionError: If a stored preference is not a known level
        """
        decision = self._decide_from_preferences(task)
        if decision is None:
            decision = await self._decide_from_confidence(task, context or {})

        log.info(
            "automation_level_determined",
            task_id=task.id,
            task_type=str(task.type),
            level=str(decision.level),
            source=decision.source.value,
            confidence=decision.confidence,
        )
        return decision

    def _decide_from_preferences(self, task: Task) -> AutomationDecision | None:
        if task.user_id is not None:
            level = self.get_user_preference(task.user_id)
            if level is not None:
                return AutomationDecision(level, DecisionSource.USER_PREFERENCE)

        if task.project_id is not None:
            level = self.get_project_setting(task.project_id)
            if level is not None:
                return AutomationDecision(level, DecisionSource.PROJECT_SETTING)

        level = self.settings.task_type_defaults.get(task.type)
        if level is not None:
            return AutomationDecision(level, DecisionSource.TASK_TYPE_DEFAULT)

        return None

    async def _decide_from_confidence(self, task: Task, context: Mapping[str, Any]) -> AutomationDecision:
        confidence = await self.calculator.calculate(task, context)

        if confidence >= policy.threshold(AutomationLevel.FULL_AUTO):
            return AutomationDecision(AutomationLevel.FULL_AUTO, DecisionSource.CONFIDENCE, confidence)

        level = self.rules.evaluate(RuleInput(task=task, context=context, confidence=confidence))
        if level is not None:
            return AutomationDecision(level, DecisionSource.RULE, confidence)

        return AutomationDecision(self.settings.default_level, DecisionSource.GLOBAL_DEFAULT, confidence)

    def get_user_preference(self, user_id: str) -> AutomationLevel | None:
        """Cached lookup of a user's explicit preference."""
        if user_id in self._user_cache:
            return self._user_cache[user_id]

        level = self._lookup("user", user_id, self.store.get_user_preference)
        if level is not None:
            self._user_cache[user_id] = level
        return level

    def get_project_setting(self, project_id: str) -> AutomationLevel | None:
        """Cached lookup of a project's explicit setting."""
        if project_id in self._project_cache:
            return self._project_cache[project_id]

        level = self._lookup("project", project_id, self.store.get_project_setting)
        if level is not None:
            self._project_cache[project_id] = level
        return level

    def set_user_preference(self, user_id: str, level: AutomationLevel | str) -> AutomationLevel:
        """Record and persist a user's preference.

        Raises:
            WorkflowDefinitionError: If ``level`` is not a known level
            PreferencePersistenceError: If the store fails to persist
        """
        resolved = policy.policy_for(level).level
        self._persist("user", user_id, resolved, self._user_cache, self.store.set_user_preference)
        return resolved

    def set_project_setting(self, project_id: str, level: AutomationLevel | str) -> AutomationLevel:
        """Record and persist a project's setting.

        Raises:
            WorkflowDefinitionError: If ``level`` is not a known level
            PreferencePersistenceError: If the store fails to persist
        """
        resolved = policy.policy_for(level).level
        self._persist("project", project_id, resolved, self._project_cache, self.store.set_project_setting)
        return resolved

    def clear_cache(self) -> None:
        self._user_cache.clear()
        self._project_cache.clear()

    def _lookup(self, scope: str, subject_id: str, getter: Any) -> AutomationLevel | None:
        try:
            value = getter(subject_id)
        except Exception as e:
            # Treated as no preference.
            log.warning("preference_lookup_failed", scope=scope, subject_id=subject_id, error=str(e))
            return None

        if value is None:
            return None

        try:
            return AutomationLevel(value)
        except ValueError as e:
            raise WorkflowDefinitionError(
                f"Stored {scope} preference for {subject_id!r} is not an automation level: {value!r}"
            ) from e

    def _persist(
        self,
        scope: str,
        subject_id: str,
        level: AutomationLevel,
        cache: dict[str, AutomationLevel],
        setter: Any,
    ) -> None:
        previous = cache.get(subject_id)
        cache[subject_id] = level

        try:
            setter(subject_id, level)
        except Exception as e:
            if previous is None:
                cache.pop(subject_id, None)
            else:
                cache[subject_id] = previous
            log.error("preference_persist_failed", scope=scope, subject_id=subject_id, error=str(e))
            raise PreferencePersistenceError(
                f"Failed to persist automation preference: {e}", scope=scope, subject_id=subject_id
            ) from e

        log.info("preference_updated", scope=scope, subject_id=subject_id, level=str(level))
