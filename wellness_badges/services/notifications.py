"""
Badge Notification Dispatch

The engine only requests notifications; delivery (push, email) belongs to
the host application. QueueNotifier drops a request into the
notification_queue table for the delivery workers to pick up.
"""

import json
import logging
from typing import Any, Dict, Protocol
from uuid import uuid4

import psycopg

from wellness_badges.db.connection import Database, db as default_db
from wellness_badges.exceptions import NotificationError
from wellness_badges.utils.datetime_helpers import now_utc, to_epoch_ms

logger = logging.getLogger(__name__)

BADGE_UNLOCKED = "badge_unlocked"


class Notifier(Protocol):
    """Fire-and-forget notification request"""

    async def notify(self, kind: str, user_id: str, badge_id: str, title: str, points: int) -> None:
        ...


def build_badge_notification(badge_id: str, title: str, points: int) -> Dict[str, Any]:
    """
    Push payload for an unlocked badge

    Example:
        >>> build_badge_notification("first_task", "Getting Started", 10)["message"]
        'Congratulations! You earned "Getting Started" (+10 points)'
    """
    return {
        "title": "🏆 Achievement Unlocked!",
        "message": f'Congratulations! You earned "{title}" (+{points} points)',
        "data": {"badgeId": badge_id, "type": "achievement", "points": points},
        "url": "/achievements",
        "category": "achievement",
        "priority": "high",
    }


class QueueNotifier:
    """Notifier that enqueues requests in the notification_queue table"""

    def __init__(self, database: Database = default_db):
        self.db = database

    async def notify(self, kind: str, user_id: str, badge_id: str, title: str, points: int) -> None:
        """
        Queue a notification

        Raises:
            NotificationError: the queue insert failed
        """
        payload = build_badge_notification(badge_id, title, points)
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        INSERT INTO notification_queue (id, user_id, kind, payload, created_at)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        (str(uuid4()), user_id, kind, json.dumps(payload), to_epoch_ms(now_utc()))
                    )
                    await conn.commit()
        except psycopg.Error as e:
            raise NotificationError(
                f"Failed to queue {kind} notification",
                user_id=user_id,
                operation="notify",
                context={"badge_id": badge_id},
                cause=e
            ) from e

        logger.debug(f"Queued {kind} notification for user {user_id}: {badge_id}")
