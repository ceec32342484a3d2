"""
Interfaces for the external collaborators consulted by automation decisions.

The core never owns storage or analysis services. It only needs:

- a synchronous preference store for per-user and per-project automation
  levels, and
- optional async data sources feeding the confidence calculation.

Any data source may be absent. The calculator treats absence, a ``None``
answer, and a raised exception the same way: the factor falls back to the
neutral score.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from autopilot.enums import AutomationLevel, TaskType


@runtime_checkable
class PreferenceStore(Protocol):
    """Synchronous key lookup for explicit automation preferences.

    Getters return None when no preference exists. Setters raise on
    persistence failure.
    """

    def get_user_preference(self, user_id: str) -> AutomationLevel | None: ...

    def get_project_setting(self, project_id: str) -> AutomationLevel | None: ...

    def set_user_preference(self, user_id: str, level: AutomationLevel) -> None: ...

    def set_project_setting(self, project_id: str, level: AutomationLevel) -> None: ...


class TaskRepository(Protocol):
    """Historical outcomes per task type."""

    async def get_success_rate(self, task_type: TaskType) -> float | None:
        """Fraction of past executions of this type that succeeded, in [0, 1]."""
        ...


class AnalysisService(Protocol):
    """Code quality metrics for a project."""

    async def get_quality_score(self, project_id: str) -> float | None:
        """Quality in [0, 1], or on a 0-100 scale."""
        ...


class UserRepository(Protocol):
    """Experience information about the task's owner."""

    async def get_experience_level(self, user_id: str) -> str | float | None:
        """A named level (beginner, intermediate, expert) or a number in [0, 1]."""
        ...


class HealthService(Protocol):
    """Current system load."""

    async def get_system_load(self) -> float | None:
        """Load in [0, 1], where 1 means saturated."""
        ...


@dataclass
class ConfidenceSources:
    """Bundle of optional data sources for the confidence calculator."""

    task_repository: TaskRepository | None = None
    analysis_service: AnalysisService | None = None
    user_repository: UserRepository | None = None
    health_service: HealthService | None = None


class InMemoryPreferenceStore:
    """Dictionary-backed preference store.

    Used by the composition root when no external store is configured and by
    tests. Persistence never fails.
    """

    def __init__(
        self,
        users: dict[str, AutomationLevel] | None = None,
        projects: dict[str, AutomationLevel] | None = None,
    ) -> None:
        self._users: dict[str, AutomationLevel] = dict(users or {})
        self._projects: dict[str, AutomationLevel] = dict(projects or {})

    def get_user_preference(self, user_id: str) -> AutomationLevel | None:
        return self._users.get(user_id)

    def get_project_setting(self, project_id: str) -> AutomationLevel | None:
        return self._projects.get(project_id)

    def set_user_preference(self, user_id: str, level: AutomationLevel) -> None:
        self._users[user_id] = level

    def set_project_setting(self, project_id: str, level: AutomationLevel) -> None:
        self._projects[project_id] = level
