"""Badge database queries"""
import json
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncGenerator, Optional

import psycopg
from psycopg import sql
from pydantic import ValidationError as PydanticValidationError

from wellness_badges.db.connection import Database, db as default_db
from wellness_badges.db.store import ActivitySource
from wellness_badges.exceptions import CriteriaError, wrap_external_exception
from wellness_badges.models.badge import (
    AchievementDefinition,
    BadgeShare,
    UserAccount,
    UserBadge,
)
from wellness_badges.utils.datetime_helpers import from_epoch_ms, to_epoch_ms

logger = logging.getLogger(__name__)


def _activity_where(
    source: ActivitySource,
    user_id: str,
    filters: dict[str, Any],
    since_ms: Optional[int],
) -> tuple[sql.Composed, list[Any]]:
    """WHERE clause for one activity table; filter columns must be allow-listed"""
    activity = source.value
    unknown = set(filters) - activity.filterable_columns
    if unknown:
        raise CriteriaError(
            f"Cannot filter {activity.table} on {sorted(unknown)}",
            context={"table": activity.table, "columns": sorted(unknown)}
        )

    clauses = [sql.SQL("user_id = %s")]
    params: list[Any] = [user_id]

    for column, value in list(activity.base_filters) + list(filters.items()):
        clauses.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
        params.append(value)

    if since_ms is not None:
        clauses.append(sql.SQL("{} > %s").format(sql.Identifier(activity.time_column)))
        params.append(since_ms)

    return sql.SQL(" AND ").join(clauses), params


class PostgresBadgeStore:
    """
    BadgeStore backed by PostgreSQL.

    Timestamps are BIGINT epoch milliseconds. user_badges carries
    UNIQUE (user_id, badge_id), which is what makes unlocking idempotent.
    """

    def __init__(self, database: Database = default_db):
        self.db = database

    @asynccontextmanager
    async def _cursor(
        self,
        operation: str,
        user_id: Optional[str] = None,
        context: Optional[dict] = None,
    ) -> AsyncGenerator[tuple[psycopg.AsyncConnection, psycopg.AsyncCursor], None]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    yield conn, cur
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation, user_id=user_id, context=context) from e

    # ==========================================
    # Activity
    # ==========================================

    async def count_activity(
        self,
        user_id: str,
        source: ActivitySource,
        filters: dict[str, Any],
        since_ms: Optional[int] = None,
    ) -> int:
        where, params = _activity_where(source, user_id, filters, since_ms)
        query = sql.SQL("SELECT COUNT(*) AS count FROM {} WHERE {}").format(
            sql.Identifier(source.value.table), where
        )

        async with self._cursor("count_activity", user_id, {"table": source.value.table}) as (_, cur):
            await cur.execute(query, params)
            row = await cur.fetchone()
            return row["count"] if row else 0

    async def count_tasks_by_hour(
        self,
        user_id: str,
        tz_name: str,
        before_hour: Optional[int] = None,
        after_hour: Optional[int] = None,
    ) -> int:
        hour_expr = "EXTRACT(HOUR FROM to_timestamp(updated_at / 1000.0) AT TIME ZONE %s)"
        clauses = ["user_id = %s", "status = 'done'"]
        params: list[Any] = [user_id]

        if before_hour is not None:
            clauses.append(f"{hour_expr} < %s")
            params.extend([tz_name, before_hour])
        if after_hour is not None:
            clauses.append(f"{hour_expr} > %s")
            params.extend([tz_name, after_hour])

        query = f"SELECT COUNT(*) AS count FROM tasks WHERE {' AND '.join(clauses)}"

        async with self._cursor("count_tasks_by_hour", user_id) as (_, cur):
            await cur.execute(query, params)
            row = await cur.fetchone()
            return row["count"] if row else 0

    async def get_activity_days(
        self,
        user_id: str,
        sources: tuple[ActivitySource, ...],
        since_ms: int,
        tz_name: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[date]:
        """
        Distinct calendar days with activity, newest first

        Filters are applied to single-source queries only; for a union of
        sources there is no common column set to filter on.
        """
        selects = []
        params: list[Any] = []
        for source in sources:
            where, where_params = _activity_where(
                source, user_id, (filters or {}) if len(sources) == 1 else {}, since_ms
            )
            selects.append(
                sql.SQL("SELECT {} AS ts FROM {} WHERE {}").format(
                    sql.Identifier(source.value.time_column),
                    sql.Identifier(source.value.table),
                    where,
                )
            )
            params.extend(where_params)

        query = sql.SQL(
            """
            SELECT DISTINCT (to_timestamp(ts / 1000.0) AT TIME ZONE %s)::date AS day
            FROM ({}) activities
            ORDER BY day DESC
            """
        ).format(sql.SQL(" UNION ALL ").join(selects))

        async with self._cursor("get_activity_days", user_id) as (_, cur):
            await cur.execute(query, [tz_name] + params)
            rows = await cur.fetchall()
            return [row["day"] for row in rows]

    # ==========================================
    # Users
    # ==========================================

    async def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        async with self._cursor("get_user_account", user_id) as (_, cur):
            await cur.execute(
                """
                SELECT id, created_at, badge_points
                FROM users
                WHERE id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            if not row:
                return None
            return UserAccount(
                user_id=str(row["id"]),
                created_at=from_epoch_ms(row["created_at"]),
                badge_points=row["badge_points"] or 0,
            )

    # ==========================================
    # Catalog
    # ==========================================

    async def get_active_definitions(self, locale: str = "en") -> list[AchievementDefinition]:
        async with self._cursor("get_active_definitions", context={"locale": locale}) as (_, cur):
            await cur.execute(
                """
                SELECT *
                FROM achievement_definitions
                WHERE is_active = true
                ORDER BY points_awarded ASC
                """
            )
            rows = await cur.fetchall()

        definitions = []
        for row in rows:
            try:
                definitions.append(AchievementDefinition.from_row(row, locale))
            except PydanticValidationError as e:
                # One malformed catalog entry must not hide the rest
                logger.warning(
                    f"Skipping malformed achievement definition {row.get('achievement_key')}: {e}"
                )
        return definitions

    async def get_definition(self, achievement_key: str, locale: str = "en") -> Optional[AchievementDefinition]:
        async with self._cursor("get_definition", context={"achievement_key": achievement_key}) as (_, cur):
            await cur.execute(
                """
                SELECT *
                FROM achievement_definitions
                WHERE achievement_key = %s
                """,
                (achievement_key,)
            )
            row = await cur.fetchone()

        if not row:
            return None
        try:
            return AchievementDefinition.from_row(row, locale)
        except PydanticValidationError as e:
            logger.warning(f"Achievement definition {achievement_key} is malformed: {e}")
            return None

    # ==========================================
    # User badges
    # ==========================================

    async def get_unlocked_badge_ids(self, user_id: str) -> set[str]:
        async with self._cursor("get_unlocked_badge_ids", user_id) as (_, cur):
            await cur.execute(
                "SELECT badge_id FROM user_badges WHERE user_id = %s",
                (user_id,)
            )
            rows = await cur.fetchall()
            return {row["badge_id"] for row in rows}

    async def get_user_badges(self, user_id: str) -> list[UserBadge]:
        async with self._cursor("get_user_badges", user_id) as (_, cur):
            await cur.execute(
                """
                SELECT id, user_id, badge_id, unlocked_at, tier, progress_percentage, metadata, share_count
                FROM user_badges
                WHERE user_id = %s
                ORDER BY unlocked_at DESC
                """,
                (user_id,)
            )
            rows = await cur.fetchall()
            return [UserBadge.from_row(row) for row in rows]

    async def get_user_badge(self, user_id: str, badge_id: str) -> Optional[UserBadge]:
        async with self._cursor("get_user_badge", user_id) as (_, cur):
            await cur.execute(
                """
                SELECT id, user_id, badge_id, unlocked_at, tier, progress_percentage, metadata, share_count
                FROM user_badges
                WHERE user_id = %s AND badge_id = %s
                """,
                (user_id, badge_id)
            )
            row = await cur.fetchone()
            return UserBadge.from_row(row) if row else None

    async def insert_user_badge_if_absent(self, badge: UserBadge, points: int) -> bool:
        async with self._cursor("insert_user_badge_if_absent", badge.user_id, {"badge_id": badge.badge_id}) as (conn, cur):
            await cur.execute(
                """
                INSERT INTO user_badges (id, user_id, badge_id, unlocked_at, tier, progress_percentage, metadata)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id, badge_id) DO NOTHING
                RETURNING id
                """,
                (
                    badge.id,
                    badge.user_id,
                    badge.badge_id,
                    to_epoch_ms(badge.unlocked_at),
                    badge.tier,
                    badge.progress_percentage,
                    json.dumps(badge.metadata) if badge.metadata else None,
                )
            )
            inserted = await cur.fetchone()

            if inserted:
                await cur.execute(
                    """
                    UPDATE users
                    SET badge_points = COALESCE(badge_points, 0) + %s,
                        total_badges = COALESCE(total_badges, 0) + 1
                    WHERE id = %s
                    """,
                    (points, badge.user_id)
                )

            await conn.commit()
            return inserted is not None  # True if inserted, False if already existed

    # ==========================================
    # Sharing
    # ==========================================

    async def record_share(self, share: BadgeShare) -> None:
        async with self._cursor("record_share", share.user_id) as (conn, cur):
            await cur.execute(
                """
                INSERT INTO badge_shares (id, badge_id, user_id, platform, share_url, custom_message, shared_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    share.id,
                    share.user_badge_id,
                    share.user_id,
                    share.platform.value,
                    share.share_url,
                    share.custom_message,
                    to_epoch_ms(share.shared_at),
                )
            )
            await conn.commit()

    async def increment_share_count(self, user_badge_id: str) -> None:
        async with self._cursor("increment_share_count", context={"user_badge_id": user_badge_id}) as (conn, cur):
            await cur.execute(
                "UPDATE user_badges SET share_count = share_count + 1 WHERE id = %s",
                (user_badge_id,)
            )
            await conn.commit()
