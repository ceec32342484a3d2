"""
Automation policy table.

Maps each ``AutomationLevel`` to its confidence threshold and behavioral
flags. The table is built once at import time and never mutated; every
function here is pure.

Example:
    >>> policy_for(AutomationLevel.FULL_AUTO).requires_confirmation
    False
    >>> threshold(AutomationLevel.SEMI_AUTO)
    0.7
"""

from dataclasses import dataclass
from types import MappingProxyType

from autopilot.enums import AutomationLevel
from autopilot.exceptions import WorkflowDefinitionError


@dataclass(frozen=True)
class LevelPolicy:
    """Behavioral traits for one automation level."""

    level: AutomationLevel
    threshold: float
    """Minimum confidence at which the level is appropriate."""

    requires_confirmation: bool
    """A human must confirm before step results are committed."""

    requires_human_review: bool
    """A human must review the outcome after the fact."""


_POLICIES = MappingProxyType(
    {
        AutomationLevel.MANUAL: LevelPolicy(AutomationLevel.MANUAL, 0.0, True, True),
        AutomationLevel.ASSISTED: LevelPolicy(AutomationLevel.ASSISTED, 0.6, True, True),
        AutomationLevel.SEMI_AUTO: LevelPolicy(AutomationLevel.SEMI_AUTO, 0.7, True, False),
        AutomationLevel.FULL_AUTO: LevelPolicy(AutomationLevel.FULL_AUTO, 0.8, False, False),
        AutomationLevel.ADAPTIVE: LevelPolicy(AutomationLevel.ADAPTIVE, 0.75, False, True),
    }
)


def policy_for(level: AutomationLevel | str) -> LevelPolicy:
    """Look up the policy for a level.

    Raises:
        WorkflowDefinitionError: If ``level`` is not a known automation level
    """
    try:
        return _POLICIES[AutomationLevel(level)]
    except ValueError as e:
        raise WorkflowDefinitionError(f"Unknown automation level: {level!r}") from e


def threshold(level: AutomationLevel | str) -> float:
    return policy_for(level).threshold


def requires_confirmation(level: AutomationLevel | str) -> bool:
    return policy_for(level).requires_confirmation


def requires_human_review(level: AutomationLevel | str) -> bool:
    return policy_for(level).requires_human_review


def all_policies() -> tuple[LevelPolicy, ...]:
    """All policies in ascending threshold order."""
    return tuple(sorted(_POLICIES.values(), key=lambda p: p.threshold))
