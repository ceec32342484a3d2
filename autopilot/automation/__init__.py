"""Automation level decisions.

Key Components:
    - policy: Level -> threshold and confirmation/review flags
    - ConfidenceCalculator: Weighted [0, 1] confidence score
    - RuleEngine: Ordered predicate -> level rules
    - AutomationManager: Precedence chain resolving a task's level
    - sources: Protocols for the preference store and confidence data sources
"""

from autopilot.automation.confidence import ConfidenceBreakdown, ConfidenceCalculator
from autopilot.automation.manager import AutomationDecision, AutomationManager, DecisionSource
from autopilot.automation.policy import LevelPolicy, policy_for
from autopilot.automation.rules import AutomationRule, RuleEngine, RuleInput, default_rules
from autopilot.automation.sources import ConfidenceSources, InMemoryPreferenceStore, PreferenceStore

__all__ = [
    "AutomationDecision",
    "AutomationManager",
    "AutomationRule",
    "ConfidenceBreakdown",
    "ConfidenceCalculator",
    "ConfidenceSources",
    "DecisionSource",
    "InMemoryPreferenceStore",
    "LevelPolicy",
    "PreferenceStore",
    "RuleEngine",
    "RuleInput",
    "default_rules",
    "policy_for",
]
