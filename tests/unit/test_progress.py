"""Unit tests for Progress Calculator (wellness_badges/gamification/progress.py)"""
import pytest
from unittest.mock import AsyncMock

from wellness_badges.exceptions import QueryError
from wellness_badges.gamification.metric_resolver import MetricResolver
from wellness_badges.gamification.progress import ProgressCalculator, progress_percentage


@pytest.mark.parametrize("current, target, expected", [
    (0, 10, 0),
    (5, 10, 50),
    (10, 10, 100),
    (15, 10, 100),
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (0, 0, 100),
])
def test_progress_percentage(current, target, expected):
    assert progress_percentage(current, target) == expected


@pytest.mark.asyncio
async def test_partial_progress(seeded_store, clock, now, test_user_id, make_definition):
    """Five of ten tasks done"""
    for _ in range(5):
        seeded_store.add_task(test_user_id, now)
    definition = make_definition("ten_tasks", {"type": "count", "metric": "tasks_completed", "threshold": 10})

    calculator = ProgressCalculator(MetricResolver(seeded_store, clock))
    [progress] = await calculator.progress(test_user_id, [definition], set())

    assert progress.badge_id == "ten_tasks"
    assert progress.current_value == 5
    assert progress.target_value == 10
    assert progress.percentage == 50
    assert progress.is_complete is False


@pytest.mark.asyncio
async def test_unlocked_badge_is_complete(seeded_store, clock, test_user_id, make_definition):
    definition = make_definition("ten_tasks", {"type": "count", "metric": "tasks_completed", "threshold": 10})

    calculator = ProgressCalculator(MetricResolver(seeded_store, clock))
    [progress] = await calculator.progress(test_user_id, [definition], {"ten_tasks"})

    assert progress.current_value == 10
    assert progress.percentage == 100
    assert progress.is_complete is True


@pytest.mark.asyncio
async def test_met_but_not_unlocked_is_not_complete(seeded_store, clock, now, test_user_id, make_definition):
    for _ in range(12):
        seeded_store.add_task(test_user_id, now)
    definition = make_definition("ten_tasks", {"type": "count", "metric": "tasks_completed", "threshold": 10})

    calculator = ProgressCalculator(MetricResolver(seeded_store, clock))
    [progress] = await calculator.progress(test_user_id, [definition], set())

    assert progress.current_value == 12
    assert progress.percentage == 100
    assert progress.is_complete is False


@pytest.mark.asyncio
async def test_percentage_criteria_reports_zero(seeded_store, clock, test_user_id, make_definition):
    definition = make_definition("reserved", {"type": "percentage", "threshold": 80})

    calculator = ProgressCalculator(MetricResolver(seeded_store, clock))
    [progress] = await calculator.progress(test_user_id, [definition], set())

    assert (progress.current_value, progress.target_value, progress.percentage) == (0, 80, 0)


@pytest.mark.asyncio
async def test_resolve_failure_counts_as_zero(seeded_store, clock, test_user_id, make_definition):
    resolver = MetricResolver(seeded_store, clock)
    resolver.resolve = AsyncMock(side_effect=QueryError("Database query failed"))
    definitions = [
        make_definition("ten_tasks", {"type": "count", "metric": "tasks_completed", "threshold": 10}),
        make_definition("zero", {"type": "count", "metric": "tasks_completed", "threshold": 0}),
    ]

    results = await ProgressCalculator(resolver).progress(test_user_id, definitions, set())

    assert [p.current_value for p in results] == [0, 0]
    assert [p.percentage for p in results] == [0, 100]


@pytest.mark.asyncio
async def test_streak_progress_uses_count_resolution(seeded_store, clock, test_user_id, make_definition):
    """Streak metrics aren't countable, so progress shows 0 until unlocked"""
    definition = make_definition("week_streak", {"type": "streak", "metric": "daily_activity", "threshold": 7})

    calculator = ProgressCalculator(MetricResolver(seeded_store, clock))
    [progress] = await calculator.progress(test_user_id, [definition], set())

    assert progress.current_value == 0
    assert progress.target_value == 7


@pytest.mark.asyncio
async def test_requirements_progress_starts_at_zero(seeded_store, clock, test_user_id, make_definition):
    """No top-level threshold: progress comes from the requirements, not a zero target"""
    definition = make_definition("combo", {
        "type": "custom",
        "metric": "combo",
        "requirements": [{"metric": "tasks_completed", "threshold": 5}],
    })

    calculator = ProgressCalculator(MetricResolver(seeded_store, clock))
    [progress] = await calculator.progress(test_user_id, [definition], set())

    assert (progress.current_value, progress.target_value, progress.percentage) == (0, 5, 0)
    assert progress.is_complete is False


@pytest.mark.asyncio
async def test_requirements_progress_reports_furthest_requirement(seeded_store, clock, now, test_user_id, make_definition):
    for _ in range(5):
        seeded_store.add_task(test_user_id, now)
    for _ in range(3):
        seeded_store.add_health_log(test_user_id, now)
    definition = make_definition("balanced", {
        "type": "custom",
        "requirements": [
            {"metric": "health_logs", "threshold": 4},
            {"metric": "tasks_completed", "threshold": 10},
        ],
    })

    calculator = ProgressCalculator(MetricResolver(seeded_store, clock))
    [progress] = await calculator.progress(test_user_id, [definition], set())

    assert (progress.current_value, progress.target_value, progress.percentage) == (5, 10, 50)


@pytest.mark.asyncio
async def test_unlocked_requirements_badge_uses_largest_threshold(seeded_store, clock, test_user_id, make_definition):
    definition = make_definition("time_master", {
        "type": "custom",
        "requirements": [
            {"metric": "tasks_completed", "threshold": 500},
            {"metric": "daily_streak", "threshold": 30},
        ],
    })

    calculator = ProgressCalculator(MetricResolver(seeded_store, clock))
    [progress] = await calculator.progress(test_user_id, [definition], {"time_master"})

    assert (progress.current_value, progress.target_value, progress.percentage) == (500, 500, 100)
    assert progress.is_complete is True
