"""Global test fixtures and utilities for wellness-badges tests"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from contextlib import asynccontextmanager
from datetime import datetime, timezone, timedelta

from wellness_badges.gamification.mock_store import InMemoryBadgeStore
from wellness_badges.models.badge import AchievementDefinition, parse_criteria
from wellness_badges.utils.datetime_helpers import Clock


# Wednesday noon UTC; every test that needs "now" uses this instant
NOW = datetime(2024, 5, 15, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Clock & Store Fixtures
# ============================================================================

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Clock fixed at NOW in UTC"""
    return Clock.fixed(NOW, "UTC")


@pytest.fixture
def store():
    """Empty in-memory badge store"""
    return InMemoryBadgeStore()


@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


@pytest.fixture
def seeded_store(store, test_user_id):
    """Store with one user registered ten days before NOW"""
    store.add_user(test_user_id, created_at=NOW - timedelta(days=10))
    return store


@pytest.fixture
def notifier():
    """Notifier that records calls"""
    notifier = MagicMock()
    notifier.notify = AsyncMock()
    return notifier


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_db_cursor():
    """Mock database cursor with standard query results"""
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.execute = AsyncMock()
    return cursor


@pytest.fixture
def mock_db_connection(mock_db_cursor):
    """Mock connection whose cursor() is an async context manager"""
    conn = MagicMock()
    conn.commit = AsyncMock()

    @asynccontextmanager
    async def cursor():
        yield mock_db_cursor

    conn.cursor = cursor
    return conn


@pytest.fixture
def mock_database(mock_db_connection):
    """Mock Database whose connection() yields mock_db_connection"""
    database = MagicMock()

    @asynccontextmanager
    async def connection():
        yield mock_db_connection

    database.connection = connection
    return database


# ============================================================================
# Catalog helpers
# ============================================================================

def make_definition(key: str, criteria: dict, points: int = 10, **overrides) -> AchievementDefinition:
    """Build an AchievementDefinition from raw criteria JSON"""
    fields = {
        "id": f"def-{key}",
        "achievement_key": key,
        "category": "productivity",
        "title": key.replace("_", " ").title(),
        "criteria": parse_criteria(criteria),
        "points_awarded": points,
    }
    fields.update(overrides)
    return AchievementDefinition(**fields)


@pytest.fixture(name="make_definition")
def make_definition_fixture():
    return make_definition
