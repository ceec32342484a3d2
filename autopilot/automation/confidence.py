"""
Confidence scoring for automation decisions.

The confidence score is a normalized [0, 1] estimate of how likely an
automated execution is to succeed. It is the weighted sum of five factors:

    =====================  ======  ======================================
    Factor                 Weight  Source
    =====================  ======  ======================================
    Task complexity        0.30    Task metadata (files, lines, deps)
    Historical success     0.25    TaskRepository.get_success_rate
    Code quality           0.20    AnalysisService.get_quality_score
    User experience        0.15    UserRepository.get_experience_level
    System health          0.10    HealthService.get_system_load
    =====================  ======  ======================================

Each factor is normalized independently. A factor whose source is missing,
answers None or a non-finite number, or raises resolves to the neutral
score (0.5 by default), so ``calculate`` always returns a number.

Example:
    >>> calculator = ConfidenceCalculator(ConfidenceSettings(), ConfidenceSources())
    >>> await calculator.calculate(task)
    0.5
"""

import asyncio
import math
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from autopilot.automation.sources import ConfidenceSources
from autopilot.config.settings import ConfidenceSettings
from autopilot.models.domain import Task, TaskMetadata

log = structlog.get_logger(__name__)

TOTAL_PRECISION = 9


@dataclass(frozen=True)
class ConfidenceBreakdown:
    """Per-factor scores and the weighted total."""

    complexity: float
    history: float
    quality: float
    experience: float
    health: float
    total: float

    def as_dict(self) -> dict[str, float]:
        return {
            "complexity": self.complexity,
            "history": self.history,
            "quality": self.quality,
            "experience": self.experience,
            "health": self.health,
            "total": self.total,
        }


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class ConfidenceCalculator:
    """Compute confidence scores from pluggable data sources.

    Weights are taken from configuration at construction and cannot be
    changed per request.
    """

    # Sizes at which each complexity indicator saturates
    FILE_COUNT_CEILING = 50
    LINE_COUNT_CEILING = 5000
    DEPENDENCY_COUNT_CEILING = 20

    COMPLEXITY_SHARES = {"files": 0.4, "lines": 0.4, "dependencies": 0.2}

    EXPERIENCE_LEVELS = {
        "beginner": 0.3,
        "junior": 0.3,
        "intermediate": 0.6,
        "senior": 0.9,
        "expert": 0.9,
    }

    def __init__(self, settings: ConfidenceSettings, sources: ConfidenceSources | None = None) -> None:
        self.settings = settings
        self.sources = sources or ConfidenceSources()

    async def calculate(self, task: Task, context: Mapping[str, Any] | None = None) -> float:
        """Return the confidence score for ``task`` in [0, 1]."""
        breakdown = await self.calculate_breakdown(task, context)
        return breakdown.total

    async def calculate_breakdown(
        self, task: Task, context: Mapping[str, Any] | None = None
    ) -> ConfidenceBreakdown:
        """Score every factor and combine them with the configured weights."""
        complexity = self._score_complexity(task.metadata)
        history, quality, experience, health = await asyncio.gather(
            self._score_history(task),
            self._score_quality(task),
            self._score_experience(task),
            self._score_health(),
        )

        s = self.settings
        weighted = (
            complexity * s.complexity_weight
            + history * s.history_weight
            + quality * s.quality_weight
            + experience * s.experience_weight
            + health * s.health_weight
        )
        # Rounded so a total sitting on a threshold compares as that threshold.
        total = _clamp(round(weighted, TOTAL_PRECISION))

        breakdown = ConfidenceBreakdown(
            complexity=complexity,
            history=history,
            quality=quality,
            experience=experience,
            health=health,
            total=total,
        )
        log.debug(
            "confidence_calculated",
            task_id=task.id,
            **breakdown.as_dict(),
        )
        return breakdown

    def _score_complexity(self, metadata: TaskMetadata) -> float:
        """Higher complexity yields lower confidence.

        Only known indicators take part; their shares are renormalized so a
        task with a single known indicator is still scored on a full scale.
        """
        if metadata.is_empty:
            return self.settings.neutral_score

        indicators = {
            "files": (metadata.file_count, self.FILE_COUNT_CEILING),
            "lines": (metadata.line_count, self.LINE_COUNT_CEILING),
            "dependencies": (metadata.dependency_count, self.DEPENDENCY_COUNT_CEILING),
        }

        weighted = 0.0
        share_total = 0.0
        for name, (value, ceiling) in indicators.items():
            if value is None:
                continue
            share = self.COMPLEXITY_SHARES[name]
            weighted += share * min(max(value, 0) / ceiling, 1.0)
            share_total += share

        complexity = weighted / share_total
        return _clamp(1.0 - complexity)

    async def _score_history(self, task: Task) -> float:
        repository = self.sources.task_repository
        if repository is None:
            return self.settings.neutral_score
        return await self._safe_score("history", lambda: repository.get_success_rate(task.type))

    async def _score_quality(self, task: Task) -> float:
        service = self.sources.analysis_service
        if service is None or task.project_id is None:
            return self.settings.neutral_score

        project_id = task.project_id
        return await self._safe_score(
            "quality",
            lambda: service.get_quality_score(project_id),
            normalize=lambda v: v / 100.0 if v > 1.0 else v,
        )

    async def _score_experience(self, task: Task) -> float:
        repository = self.sources.user_repository
        if repository is None or task.user_id is None:
            return self.settings.neutral_score

        user_id = task.user_id
        return await self._safe_score(
            "experience",
            lambda: repository.get_experience_level(user_id),
            normalize=self._normalize_experience,
        )

    async def _score_health(self) -> float:
        service = self.sources.health_service
        if service is None:
            return self.settings.neutral_score
        return await self._safe_score(
            "health",
            service.get_system_load,
            normalize=lambda load: 1.0 - _clamp(load),
        )

    def _normalize_experience(self, value: Any) -> float:
        if isinstance(value, str):
            return self.EXPERIENCE_LEVELS.get(value.strip().lower(), self.settings.neutral_score)
        return float(value)

    async def _safe_score(
        self,
        factor: str,
        fetch: Callable[[], Awaitable[Any]],
        normalize: Callable[[Any], float] | None = None,
    ) -> float:
        """Fetch and normalize one factor, falling back to the neutral score."""
        try:
            value = await fetch()
            if value is None:
                log.debug("confidence_source_empty", factor=factor)
                return self.settings.neutral_score
            if isinstance(value, float) and not math.isfinite(value):
                log.warning("confidence_source_not_finite", factor=factor, value=str(value))
                return self.settings.neutral_score
            score = normalize(value) if normalize else float(value)
        except Exception as e:
            log.warning("confidence_source_failed", factor=factor, error=str(e))
            return self.settings.neutral_score

        if not math.isfinite(score):
            log.warning("confidence_source_not_finite", factor=factor, value=str(value))
            return self.settings.neutral_score

        return _clamp(score)
