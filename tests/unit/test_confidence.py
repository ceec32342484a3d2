"""
Tests for the confidence calculator.
"""

import pytest

from autopilot.automation.confidence import ConfidenceCalculator
from autopilot.automation.rules import RuleEngine, RuleInput
from autopilot.automation.sources import ConfidenceSources
from autopilot.config.settings import ConfidenceSettings
from autopilot.enums import AutomationLevel, TaskType
from autopilot.models.domain import Task, TaskMetadata


class FixedSource:
    """Data source returning a fixed value for every method."""

    def __init__(self, value=None, error: Exception | None = None):
        self.value = value
        self.error = error
        self.calls = 0

    async def _answer(self, *args):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.value

    get_success_rate = _answer
    get_quality_score = _answer
    get_experience_level = _answer
    get_system_load = _answer


def bare_task(**kwargs) -> Task:
    return Task(id="t", type=TaskType.REFACTOR, **kwargs)


@pytest.mark.asyncio
async def test_all_sources_absent_is_neutral():
    """Every factor falls back to 0.5, so the total is 0.5."""
    calculator = ConfidenceCalculator(ConfidenceSettings())

    score = await calculator.calculate(bare_task())

    assert score == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_all_sources_failing_stays_in_bounds():
    """Sources that raise never break the calculation."""
    failing = FixedSource(error=RuntimeError("service down"))
    sources = ConfidenceSources(failing, failing, failing, failing)
    calculator = ConfidenceCalculator(ConfidenceSettings(), sources)

    score = await calculator.calculate(bare_task(project_id="p", user_id="u"))

    assert 0.0 <= score <= 1.0
    assert score == pytest.approx(0.5)
    assert failing.calls == 4


@pytest.mark.asyncio
async def test_small_task_scores_high_complexity_factor():
    calculator = ConfidenceCalculator(ConfidenceSettings())
    task = bare_task(metadata=TaskMetadata(file_count=5, line_count=500, dependency_count=2))

    breakdown = await calculator.calculate_breakdown(task)

    assert breakdown.complexity == pytest.approx(0.9)
    assert breakdown.total == pytest.approx(0.9 * 0.3 + 0.5 * 0.7)


@pytest.mark.asyncio
async def test_huge_task_saturates_complexity():
    calculator = ConfidenceCalculator(ConfidenceSettings())
    task = bare_task(metadata=TaskMetadata(file_count=500, line_count=100_000, dependency_count=90))

    breakdown = await calculator.calculate_breakdown(task)

    assert breakdown.complexity == 0.0


@pytest.mark.asyncio
async def test_partial_metadata_is_renormalized():
    """A single known indicator is scored on the full scale."""
    calculator = ConfidenceCalculator(ConfidenceSettings())

    breakdown = await calculator.calculate_breakdown(bare_task(metadata=TaskMetadata(file_count=25)))

    assert breakdown.complexity == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_perfect_sources_give_full_confidence():
    sources = ConfidenceSources(
        task_repository=FixedSource(1.0),
        analysis_service=FixedSource(100),
        user_repository=FixedSource("expert"),
        health_service=FixedSource(0.0),
    )
    calculator = ConfidenceCalculator(ConfidenceSettings(), sources)
    task = bare_task(project_id="p", user_id="u", metadata=TaskMetadata(file_count=0, line_count=0))

    breakdown = await calculator.calculate_breakdown(task)

    assert breakdown.quality == 1.0
    assert breakdown.experience == pytest.approx(0.9)
    assert breakdown.health == 1.0
    assert 0.95 < breakdown.total <= 1.0


@pytest.mark.asyncio
async def test_out_of_range_values_are_clamped():
    sources = ConfidenceSources(task_repository=FixedSource(7.5), health_service=FixedSource(-3))
    calculator = ConfidenceCalculator(ConfidenceSettings(), sources)

    breakdown = await calculator.calculate_breakdown(bare_task())

    assert breakdown.history == 1.0
    assert breakdown.health == 1.0


@pytest.mark.asyncio
async def test_unknown_experience_name_is_neutral():
    sources = ConfidenceSources(user_repository=FixedSource("wizard"))
    calculator = ConfidenceCalculator(ConfidenceSettings(), sources)

    breakdown = await calculator.calculate_breakdown(bare_task(user_id="u"))

    assert breakdown.experience == 0.5


@pytest.mark.asyncio
async def test_sources_skipped_without_ids():
    """Quality and experience need project and user ids."""
    quality = FixedSource(0.9)
    experience = FixedSource("senior")
    calculator = ConfidenceCalculator(
        ConfidenceSettings(), ConfidenceSources(analysis_service=quality, user_repository=experience)
    )

    await calculator.calculate(bare_task())

    assert quality.calls == 0
    assert experience.calls == 0


@pytest.mark.asyncio
async def test_custom_weights():
    settings = ConfidenceSettings(
        complexity_weight=1.0, history_weight=0.0, quality_weight=0.0, experience_weight=0.0, health_weight=0.0
    )
    calculator = ConfidenceCalculator(settings)

    score = await calculator.calculate(bare_task(metadata=TaskMetadata(file_count=50)))

    assert score == 0.0


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_value", [float("nan"), float("inf"), float("-inf")])
async def test_non_finite_answers_are_neutral(bad_value):
    """NaN or infinite answers must not push a factor to either bound."""
    source = FixedSource(bad_value)
    sources = ConfidenceSources(source, source, source, source)
    calculator = ConfidenceCalculator(ConfidenceSettings(), sources)

    breakdown = await calculator.calculate_breakdown(bare_task(project_id="p", user_id="u"))

    assert breakdown.history == 0.5
    assert breakdown.quality == 0.5
    assert breakdown.experience == 0.5
    assert breakdown.health == 0.5
    assert breakdown.total == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_total_on_threshold_compares_as_threshold():
    """Every factor at 0.6 totals exactly 0.6 and clears the assisted rule."""
    sources = ConfidenceSources(
        task_repository=FixedSource(0.6),
        analysis_service=FixedSource(0.6),
        user_repository=FixedSource(0.6),
        health_service=FixedSource(0.4),
    )
    calculator = ConfidenceCalculator(ConfidenceSettings(), sources)
    task = bare_task(project_id="p", user_id="u", metadata=TaskMetadata(file_count=20))

    breakdown = await calculator.calculate_breakdown(task)

    assert breakdown.complexity == pytest.approx(0.6)
    assert breakdown.health == pytest.approx(0.6)
    assert breakdown.total == 0.6
    level = RuleEngine().evaluate(RuleInput(task=task, confidence=breakdown.total))
    assert level == AutomationLevel.ASSISTED
