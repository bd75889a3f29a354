"""
Integration tests for the badge flow

Runs the real engine, evaluator, streaks and unlock path end to end against
the in-memory store. No database needed.
"""
import asyncio
import pytest
from datetime import timedelta

from wellness_badges.gamification.mock_store import InMemoryBadgeStore
from wellness_badges.services.badge_service import BadgeService
from wellness_badges.utils.datetime_helpers import Clock


CATALOG = [
    ("first_task", {"type": "count", "metric": "tasks_completed", "threshold": 1}, 10),
    ("ten_tasks", {"type": "count", "metric": "tasks_completed", "threshold": 10}, 50),
    ("one_week", {"type": "time_based", "metric": "days_since_registration", "threshold": 7}, 20),
    ("three_day_streak", {"type": "streak", "metric": "daily_activity", "threshold": 3}, 30),
    ("hydration_habit", {
        "type": "streak", "metric": "health_logs", "threshold": 2,
        "conditions": {"type": "hydration"},
    }, 25),
]


@pytest.fixture
def catalog_store(store, make_definition):
    for key, criteria, points in CATALOG:
        store.add_definition(make_definition(key, criteria, points=points))
    return store


@pytest.fixture
def service(catalog_store, notifier, clock):
    return BadgeService(catalog_store, notifier, clock)


@pytest.mark.asyncio
async def test_first_task_unlocks_once(service, catalog_store, notifier, now, test_user_id):
    """One completed task unlocks first_task; a second pass finds nothing new"""
    catalog_store.add_user(test_user_id, created_at=now - timedelta(days=1))
    catalog_store.add_task(test_user_id, now)

    first_pass = await service.check_and_unlock(test_user_id)
    second_pass = await service.check_and_unlock(test_user_id)

    assert [b.badge_id for b in first_pass] == ["first_task"]
    assert second_pass == []
    assert notifier.notify.await_count == 1


@pytest.mark.asyncio
async def test_registration_age_unlocks(service, catalog_store, now, test_user_id):
    catalog_store.add_user(test_user_id, created_at=now - timedelta(days=8))

    new_badges = await service.check_and_unlock(test_user_id)

    assert [b.badge_id for b in new_badges] == ["one_week"]


@pytest.mark.asyncio
async def test_progress_halfway(service, catalog_store, now, test_user_id):
    catalog_store.add_user(test_user_id, created_at=now - timedelta(days=1))
    for _ in range(5):
        catalog_store.add_task(test_user_id, now - timedelta(hours=3))

    progress = {p.badge_id: p for p in await service.get_progress(test_user_id)}

    ten_tasks = progress["ten_tasks"]
    assert (ten_tasks.current_value, ten_tasks.target_value, ten_tasks.percentage) == (5, 10, 50)
    assert ten_tasks.is_complete is False


@pytest.mark.asyncio
async def test_streaks_unlock(service, catalog_store, now, test_user_id):
    catalog_store.add_user(test_user_id, created_at=now - timedelta(days=1))
    catalog_store.add_task(test_user_id, now - timedelta(days=2), status="todo")
    catalog_store.add_health_log(test_user_id, now - timedelta(days=2), log_type="exercise")
    catalog_store.add_health_log(test_user_id, now - timedelta(days=1), log_type="hydration")
    catalog_store.add_health_log(test_user_id, now, log_type="hydration")

    new_badges = await service.check_and_unlock(test_user_id)

    assert {b.badge_id for b in new_badges} == {"three_day_streak", "hydration_habit"}


@pytest.mark.asyncio
async def test_points_credited_per_unlock(service, catalog_store, now, test_user_id):
    catalog_store.add_user(test_user_id, created_at=now - timedelta(days=8))
    catalog_store.add_task(test_user_id, now)

    await service.check_and_unlock(test_user_id)
    await service.check_and_unlock(test_user_id)

    account = await catalog_store.get_user_account(test_user_id)
    assert account.badge_points == 10 + 20


@pytest.mark.asyncio
async def test_concurrent_passes_unlock_once(catalog_store, notifier, clock, now, test_user_id):
    """Two triggers at once: each badge is stored, credited and announced once"""
    catalog_store.add_user(test_user_id, created_at=now - timedelta(days=8))
    catalog_store.add_task(test_user_id, now)
    service_a = BadgeService(catalog_store, notifier, clock)
    service_b = BadgeService(catalog_store, notifier, clock)

    results = await asyncio.gather(
        service_a.check_and_unlock(test_user_id),
        service_b.check_and_unlock(test_user_id),
    )

    unlocked = sorted(b.badge_id for result in results for b in result)
    assert unlocked == ["first_task", "one_week"]
    assert notifier.notify.await_count == 2
    assert (await catalog_store.get_user_account(test_user_id)).badge_points == 30


@pytest.mark.asyncio
async def test_users_are_isolated(service, catalog_store, now):
    catalog_store.add_user("alice", created_at=now)
    catalog_store.add_user("bob", created_at=now)
    catalog_store.add_task("alice", now)

    assert [b.badge_id for b in await service.check_and_unlock("bob")] == []
    assert [b.badge_id for b in await service.check_and_unlock("alice")] == ["first_task"]


@pytest.mark.asyncio
async def test_day_boundary_in_reference_zone(notifier, now, make_definition, test_user_id):
    """A late-evening log in Los Angeles still belongs to the previous local day"""
    store = InMemoryBadgeStore()
    store.add_user(test_user_id, created_at=now - timedelta(days=1))
    store.add_definition(make_definition(
        "two_day_streak", {"type": "streak", "metric": "health_logs", "threshold": 2}
    ))
    # 2024-05-15 05:00 UTC and 2024-05-14 08:00 UTC are both May 14 in Los Angeles
    store.add_health_log(test_user_id, now - timedelta(hours=7))
    store.add_health_log(test_user_id, now - timedelta(days=1, hours=4))

    utc_service = BadgeService(store, notifier, Clock.fixed(now, "UTC"))
    la_service = BadgeService(store, notifier, Clock.fixed(now, "America/Los_Angeles"))

    assert await la_service.check_and_unlock(test_user_id) == []
    assert [b.badge_id for b in await utc_service.check_and_unlock(test_user_id)] == ["two_day_streak"]


@pytest.mark.asyncio
async def test_unlock_then_share(service, catalog_store, now, test_user_id):
    catalog_store.add_user(test_user_id, created_at=now)
    catalog_store.add_task(test_user_id, now)
    await service.check_and_unlock(test_user_id)

    content = await service.share_badge(test_user_id, "first_task", "instagram", custom_message="Day one!")

    assert content.message == "Day one! #WellnessJourney #Achievement #Productivity"
    [badge] = await service.list_user_badges(test_user_id)
    assert badge.share_count == 1
