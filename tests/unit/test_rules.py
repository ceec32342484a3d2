"""Tests for autopilot/automation/rules.py."""

from autopilot.automation.rules import AutomationRule, RuleEngine, RuleInput, default_rules
from autopilot.enums import AutomationLevel, TaskType
from autopilot.models.domain import Task

TASK = Task(id="t", type=TaskType.GENERIC)


def test_default_rules_low_confidence_is_manual():
    engine = RuleEngine()

    assert engine.evaluate(RuleInput(TASK, {}, 0.59)) == AutomationLevel.MANUAL


def test_default_rules_mid_confidence_is_assisted():
    engine = RuleEngine()

    assert engine.evaluate(RuleInput(TASK, {}, 0.6)) == AutomationLevel.ASSISTED
    assert engine.evaluate(RuleInput(TASK, {}, 0.69)) == AutomationLevel.ASSISTED


def test_no_match_returns_none():
    assert RuleEngine().evaluate(RuleInput(TASK, {}, 0.75)) is None


def test_first_match_wins():
    engine = RuleEngine(
        [
            AutomationRule("always_manual", lambda r: True, AutomationLevel.MANUAL),
            AutomationRule("always_full", lambda r: True, AutomationLevel.FULL_AUTO),
        ]
    )

    assert engine.evaluate(RuleInput(TASK)) == AutomationLevel.MANUAL


def test_raising_predicate_is_skipped():
    def explode(rule_input):
        raise KeyError("missing")

    engine = RuleEngine(
        [
            AutomationRule("broken", explode, AutomationLevel.MANUAL),
            AutomationRule("fallback", lambda r: True, AutomationLevel.ADAPTIVE),
        ]
    )

    assert engine.evaluate(RuleInput(TASK)) == AutomationLevel.ADAPTIVE


def test_add_rule_with_position_takes_precedence():
    engine = RuleEngine()
    engine.add_rule(AutomationRule("security", lambda r: r.task.type == TaskType.GENERIC, AutomationLevel.ADAPTIVE), 0)

    assert engine.rules[0].name == "security"
    assert engine.evaluate(RuleInput(TASK, {}, 0.1)) == AutomationLevel.ADAPTIVE


def test_default_rules_returns_fresh_list():
    first = default_rules()
    first.clear()

    assert len(default_rules()) == 2
