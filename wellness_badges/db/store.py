"""
Persistence contract for the badge engine

The engine never talks SQL directly; it goes through a BadgeStore. Two
implementations ship: PostgresBadgeStore (wellness_badges.db.badge_store) and
InMemoryBadgeStore (wellness_badges.gamification.mock_store).
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional, Protocol

from wellness_badges.models.badge import (
    AchievementDefinition,
    BadgeShare,
    UserAccount,
    UserBadge,
)


@dataclass(frozen=True)
class ActivityTable:
    """Where one kind of activity lives and how it is filtered"""
    table: str
    time_column: str
    base_filters: tuple[tuple[str, Any], ...] = ()
    filterable_columns: frozenset[str] = frozenset()


class ActivitySource(Enum):
    """Activity tables the resolver can count over"""
    COMPLETED_TASKS = ActivityTable(
        table="tasks",
        time_column="updated_at",
        base_filters=(("status", "done"),),
        filterable_columns=frozenset({"priority", "context_type", "energy_level_required"}),
    )
    HEALTH_LOGS = ActivityTable(
        table="health_logs",
        time_column="recorded_at",
        filterable_columns=frozenset({"type", "source", "device_type"}),
    )


class BadgeStore(Protocol):
    """Everything the engine reads and writes"""

    async def count_activity(
        self,
        user_id: str,
        source: ActivitySource,
        filters: dict[str, Any],
        since_ms: Optional[int] = None,
    ) -> int:
        """Rows of `source` for the user matching filters, newer than since_ms"""
        ...

    async def count_tasks_by_hour(
        self,
        user_id: str,
        tz_name: str,
        before_hour: Optional[int] = None,
        after_hour: Optional[int] = None,
    ) -> int:
        """Completed tasks whose completion hour (in tz_name) is < before_hour / > after_hour"""
        ...

    async def get_activity_days(
        self,
        user_id: str,
        sources: tuple[ActivitySource, ...],
        since_ms: int,
        tz_name: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[date]:
        """Distinct calendar days (in tz_name) with activity, newest first"""
        ...

    async def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        ...

    async def get_active_definitions(self, locale: str = "en") -> list[AchievementDefinition]:
        """Active catalog ordered by ascending points"""
        ...

    async def get_definition(self, achievement_key: str, locale: str = "en") -> Optional[AchievementDefinition]:
        ...

    async def get_unlocked_badge_ids(self, user_id: str) -> set[str]:
        ...

    async def get_user_badges(self, user_id: str) -> list[UserBadge]:
        """Unlocked badges, newest first"""
        ...

    async def get_user_badge(self, user_id: str, badge_id: str) -> Optional[UserBadge]:
        ...

    async def insert_user_badge_if_absent(self, badge: UserBadge, points: int) -> bool:
        """
        Insert the unlock unless (user_id, badge_id) already exists.

        When the row is new, points are credited to the user in the same
        step. Returns True if inserted, False if it already existed.
        """
        ...

    async def record_share(self, share: BadgeShare) -> None:
        ...

    async def increment_share_count(self, user_badge_id: str) -> None:
        ...
