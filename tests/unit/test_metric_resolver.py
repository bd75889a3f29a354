"""Unit tests for Metric Resolver (wellness_badges/gamification/metric_resolver.py)"""
import pytest
from unittest.mock import AsyncMock
from datetime import timedelta

from wellness_badges.db.store import ActivitySource
from wellness_badges.exceptions import CriteriaError
from wellness_badges.gamification.metric_resolver import MetricResolver
from wellness_badges.models.badge import Conditions, Metric
from wellness_badges.utils.datetime_helpers import MS_PER_DAY


@pytest.mark.asyncio
async def test_counts_completed_tasks_only(seeded_store, clock, now, test_user_id):
    for _ in range(3):
        seeded_store.add_task(test_user_id, now - timedelta(hours=1))
    seeded_store.add_task(test_user_id, now, status="todo")
    seeded_store.add_task("someone-else", now)

    resolver = MetricResolver(seeded_store, clock)
    assert await resolver.resolve(test_user_id, Metric.TASKS_COMPLETED) == 3


@pytest.mark.asyncio
async def test_timeframe_limits_window(seeded_store, clock, now, test_user_id):
    seeded_store.add_task(test_user_id, now - timedelta(days=1))
    seeded_store.add_task(test_user_id, now - timedelta(days=3))
    seeded_store.add_task(test_user_id, now - timedelta(days=10))

    resolver = MetricResolver(seeded_store, clock)
    assert await resolver.resolve(test_user_id, "tasks_completed", timeframe=7) == 2
    assert await resolver.resolve(test_user_id, "tasks_completed") == 3


@pytest.mark.asyncio
async def test_health_logs_with_filter(seeded_store, clock, now, test_user_id):
    seeded_store.add_health_log(test_user_id, now, log_type="exercise")
    seeded_store.add_health_log(test_user_id, now, log_type="exercise")
    seeded_store.add_health_log(test_user_id, now, log_type="hydration")

    resolver = MetricResolver(seeded_store, clock)
    exercise = Conditions(filters={"type": "exercise"})

    assert await resolver.resolve(test_user_id, Metric.HEALTH_LOGS, conditions=exercise) == 2


@pytest.mark.asyncio
async def test_hour_bounds_are_not_filters(seeded_store, clock, now, test_user_id):
    seeded_store.add_task(test_user_id, now)

    resolver = MetricResolver(seeded_store, clock)
    assert await resolver.resolve(test_user_id, "tasks_completed", conditions=Conditions(before_hour=9)) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("metric", ["steps_walked", "daily_activity", None])
async def test_unknown_metric_resolves_to_zero(store, clock, metric):
    store.count_activity = AsyncMock()

    resolver = MetricResolver(store, clock)
    assert await resolver.resolve("user-123", metric) == 0
    store.count_activity.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_filter_column_rejected(seeded_store, clock, test_user_id):
    resolver = MetricResolver(seeded_store, clock)

    with pytest.raises(CriteriaError):
        await resolver.resolve(test_user_id, "tasks_completed", conditions=Conditions(filters={"color": "red"}))


@pytest.mark.asyncio
async def test_store_call_arguments(clock):
    store = AsyncMock()
    store.count_activity = AsyncMock(return_value=4)

    resolver = MetricResolver(store, clock)
    result = await resolver.resolve("user-123", "health_logs", 7, Conditions(filters={"type": "sleep"}))

    assert result == 4
    store.count_activity.assert_awaited_once_with(
        "user-123", ActivitySource.HEALTH_LOGS, {"type": "sleep"}, clock.now_ms() - 7 * MS_PER_DAY
    )


@pytest.mark.asyncio
async def test_negative_store_count_clamped(clock):
    store = AsyncMock()
    store.count_activity = AsyncMock(return_value=-2)

    assert await MetricResolver(store, clock).resolve("user-123", "tasks_completed") == 0
