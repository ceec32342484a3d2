"""
Minimal rule engine for automation level selection.

Rules are an ordered list of (name, predicate, level) entries evaluated top
down; the first predicate that returns True decides the level. There is no
rule language and no persistence format: rules are plain Python callables
supplied by the composition root.

Example:
    >>> engine = RuleEngine([
    ...     AutomationRule("huge_change", lambda r: (r.task.metadata.file_count or 0) > 100,
    ...                    AutomationLevel.MANUAL),
    ... ])
    >>> engine.evaluate(RuleInput(task=task, context={}, confidence=0.72))
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from autopilot.automation import policy
from autopilot.enums import AutomationLevel
from autopilot.models.domain import Task

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RuleInput:
    """Everything a rule predicate may inspect."""

    task: Task
    context: Mapping[str, Any] = field(default_factory=dict)
    confidence: float = 0.5


@dataclass(frozen=True)
class AutomationRule:
    name: str
    predicate: Callable[[RuleInput], bool]
    level: AutomationLevel


def default_rules() -> list[AutomationRule]:
    """Rules shipped with the autopilot.

    Confidence below the assisted threshold keeps a human in control;
    confidence below the semi-auto threshold gets assistance only.
    """
    return [
        AutomationRule(
            name="below_assisted_threshold",
            predicate=lambda r: r.confidence < policy.threshold(AutomationLevel.ASSISTED),
            level=AutomationLevel.MANUAL,
        ),
        AutomationRule(
            name="below_semi_auto_threshold",
            predicate=lambda r: r.confidence < policy.threshold(AutomationLevel.SEMI_AUTO),
            level=AutomationLevel.ASSISTED,
        ),
    ]


class RuleEngine:
    """Evaluate rules in order; first match wins."""

    def __init__(self, rules: Sequence[AutomationRule] | None = None) -> None:
        self._rules: list[AutomationRule] = list(rules) if rules is not None else default_rules()

    @property
    def rules(self) -> tuple[AutomationRule, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: AutomationRule, position: int | None = None) -> None:
        """Append a rule, or insert it at ``position`` to give it precedence."""
        if position is None:
            self._rules.append(rule)
        else:
            self._rules.insert(position, rule)

    def evaluate(self, rule_input: RuleInput) -> AutomationLevel | None:
        """Return the level of the first matching rule, or None.

        A predicate that raises is logged and treated as not matching.
        """
        for rule in self._rules:
            try:
                matched = rule.predicate(rule_input)
            except Exception as e:
                log.warning("automation_rule_failed", rule=rule.name, error=str(e))
                continue

            if matched:
                log.debug("automation_rule_matched", rule=rule.name, level=str(rule.level))
                return rule.level

        return None
