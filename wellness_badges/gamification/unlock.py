"""
Unlock Coordinator

Records an unlock exactly once and asks for a notification. The store's
insert-if-absent decides who wins when two checks race for the same badge;
the loser gets None back and neither credits points nor notifies.
"""

import logging
from typing import Optional
from uuid import uuid4

from wellness_badges.db.store import BadgeStore
from wellness_badges.exceptions import WellnessBadgesError
from wellness_badges.models.badge import AchievementDefinition, UserBadge
from wellness_badges.observability.metrics import record_notification_failure, record_unlock
from wellness_badges.services.notifications import BADGE_UNLOCKED, Notifier
from wellness_badges.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)


class UnlockCoordinator:
    """Persists unlocks and requests notifications"""

    def __init__(self, store: BadgeStore, notifier: Notifier, clock: Clock):
        self.store = store
        self.notifier = notifier
        self.clock = clock

    async def try_unlock(
        self,
        user_id: str,
        definition: AchievementDefinition,
        metadata: Optional[dict] = None,
    ) -> Optional[UserBadge]:
        """
        Unlock an achievement for a user

        Args:
            user_id: User ID
            definition: Achievement being unlocked
            metadata: Optional extra data stored with the unlock

        Returns:
            The new UserBadge, or None if the user already had it

        Raises:
            DatabaseError: the unlock could not be stored
        """
        badge = UserBadge(
            id=str(uuid4()),
            user_id=user_id,
            badge_id=definition.achievement_key,
            unlocked_at=self.clock.now(),
            tier=definition.rarity.value,
            progress_percentage=100,
            metadata=metadata,
        )

        inserted = await self.store.insert_user_badge_if_absent(badge, definition.points_awarded)
        if not inserted:
            logger.info(f"User {user_id} already has badge {definition.achievement_key}, skipping")
            return None

        record_unlock(definition.rarity.value)
        logger.info(
            f"User {user_id} unlocked badge: {definition.achievement_key} "
            f"({definition.title}) +{definition.points_awarded} points"
        )

        try:
            await self.notifier.notify(
                kind=BADGE_UNLOCKED,
                user_id=user_id,
                badge_id=definition.achievement_key,
                title=definition.title,
                points=definition.points_awarded,
            )
        except WellnessBadgesError as e:
            # Already logged by the exception; the stored unlock stands
            record_notification_failure()
            logger.warning(f"Badge notification for {definition.achievement_key} not sent: {e.message}")
        except Exception as e:
            record_notification_failure()
            logger.error(f"Failed to send badge notification for {definition.achievement_key}: {e}", exc_info=True)

        return badge
