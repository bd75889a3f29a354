"""
In-Memory Badge Store

Implements the same BadgeStore contract as PostgresBadgeStore, keeping
everything in process. Used by the test-suite and for local runs without a
database; nothing here is persisted.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from wellness_badges.db.store import ActivitySource
from wellness_badges.exceptions import CriteriaError
from wellness_badges.models.badge import (
    AchievementDefinition,
    BadgeShare,
    UserAccount,
    UserBadge,
)
from wellness_badges.utils.datetime_helpers import from_epoch_ms, to_epoch_ms

logger = logging.getLogger(__name__)


class InMemoryBadgeStore:
    """In-memory BadgeStore (not persisted)"""

    def __init__(self):
        self._rows: dict[str, list[dict[str, Any]]] = {"tasks": [], "health_logs": []}
        self._users: dict[str, UserAccount] = {}
        self._definitions: dict[str, AchievementDefinition] = {}
        self._user_badges: dict[tuple[str, str], UserBadge] = {}
        self._shares: list[BadgeShare] = []
        self._lock = asyncio.Lock()

    # ==========================================
    # Seeding helpers
    # ==========================================

    def add_user(self, user_id: str, created_at: datetime, badge_points: int = 0) -> None:
        self._users[user_id] = UserAccount(user_id=user_id, created_at=created_at, badge_points=badge_points)

    def add_task(self, user_id: str, completed_at: datetime, status: str = "done", **columns: Any) -> None:
        self._rows["tasks"].append(
            {"user_id": user_id, "status": status, "updated_at": to_epoch_ms(completed_at), **columns}
        )

    def add_health_log(self, user_id: str, recorded_at: datetime, log_type: str = "exercise", **columns: Any) -> None:
        self._rows["health_logs"].append(
            {"user_id": user_id, "type": log_type, "recorded_at": to_epoch_ms(recorded_at), **columns}
        )

    def add_definition(self, definition: AchievementDefinition) -> None:
        self._definitions[definition.achievement_key] = definition

    @property
    def shares(self) -> list[BadgeShare]:
        return list(self._shares)

    # ==========================================
    # Activity
    # ==========================================

    def _matching_rows(
        self,
        user_id: str,
        source: ActivitySource,
        filters: dict[str, Any],
        since_ms: Optional[int],
    ) -> list[dict[str, Any]]:
        activity = source.value
        unknown = set(filters) - activity.filterable_columns
        if unknown:
            raise CriteriaError(
                f"Cannot filter {activity.table} on {sorted(unknown)}",
                context={"table": activity.table, "columns": sorted(unknown)}
            )

        wanted = {**dict(activity.base_filters), **filters}
        return [
            row for row in self._rows[activity.table]
            if row["user_id"] == user_id
            and all(row.get(column) == value for column, value in wanted.items())
            and (since_ms is None or row[activity.time_column] > since_ms)
        ]

    async def count_activity(
        self,
        user_id: str,
        source: ActivitySource,
        filters: dict[str, Any],
        since_ms: Optional[int] = None,
    ) -> int:
        return len(self._matching_rows(user_id, source, filters, since_ms))

    async def count_tasks_by_hour(
        self,
        user_id: str,
        tz_name: str,
        before_hour: Optional[int] = None,
        after_hour: Optional[int] = None,
    ) -> int:
        tz = ZoneInfo(tz_name)
        count = 0
        for row in self._matching_rows(user_id, ActivitySource.COMPLETED_TASKS, {}, None):
            hour = from_epoch_ms(row["updated_at"], tz).hour
            if before_hour is not None and not hour < before_hour:
                continue
            if after_hour is not None and not hour > after_hour:
                continue
            count += 1
        return count

    async def get_activity_days(
        self,
        user_id: str,
        sources: tuple[ActivitySource, ...],
        since_ms: int,
        tz_name: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[date]:
        tz = ZoneInfo(tz_name)
        days: set[date] = set()
        for source in sources:
            source_filters = (filters or {}) if len(sources) == 1 else {}
            for row in self._matching_rows(user_id, source, source_filters, since_ms):
                days.add(from_epoch_ms(row[source.value.time_column], tz).date())
        return sorted(days, reverse=True)

    # ==========================================
    # Users & catalog
    # ==========================================

    async def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        return self._users.get(user_id)

    async def get_active_definitions(self, locale: str = "en") -> list[AchievementDefinition]:
        active = [d for d in self._definitions.values() if d.is_active]
        return sorted(active, key=lambda d: d.points_awarded)

    async def get_definition(self, achievement_key: str, locale: str = "en") -> Optional[AchievementDefinition]:
        return self._definitions.get(achievement_key)

    # ==========================================
    # User badges
    # ==========================================

    async def get_unlocked_badge_ids(self, user_id: str) -> set[str]:
        return {badge_id for (uid, badge_id) in self._user_badges if uid == user_id}

    async def get_user_badges(self, user_id: str) -> list[UserBadge]:
        badges = [b for (uid, _), b in self._user_badges.items() if uid == user_id]
        return sorted(badges, key=lambda b: b.unlocked_at, reverse=True)

    async def get_user_badge(self, user_id: str, badge_id: str) -> Optional[UserBadge]:
        return self._user_badges.get((user_id, badge_id))

    async def insert_user_badge_if_absent(self, badge: UserBadge, points: int) -> bool:
        async with self._lock:
            key = (badge.user_id, badge.badge_id)
            if key in self._user_badges:
                logger.debug(f"Badge {badge.badge_id} already stored for user {badge.user_id}")
                return False

            self._user_badges[key] = badge
            account = self._users.get(badge.user_id)
            if account:
                self._users[badge.user_id] = account.model_copy(
                    update={"badge_points": account.badge_points + points}
                )
            return True

    # ==========================================
    # Sharing
    # ==========================================

    async def record_share(self, share: BadgeShare) -> None:
        self._shares.append(share)

    async def increment_share_count(self, user_badge_id: str) -> None:
        for key, badge in self._user_badges.items():
            if badge.id == user_badge_id:
                self._user_badges[key] = badge.model_copy(update={"share_count": badge.share_count + 1})
                return
