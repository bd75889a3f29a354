"""
BadgeService - Badge Business Logic

Entry points the host application calls after user actions: running a badge
pass, reporting progress, listing unlocked badges and sharing them.
"""

import logging
from typing import Optional
from urllib.parse import quote
from uuid import uuid4

from wellness_badges import config
from wellness_badges.db.store import BadgeStore
from wellness_badges.exceptions import BadgeNotFoundError, ValidationError
from wellness_badges.gamification.achievement_engine import AchievementEngine
from wellness_badges.models.badge import (
    AchievementDefinition,
    BadgeProgress,
    BadgeShare,
    SharePlatform,
    ShareContent,
    UserBadge,
)
from wellness_badges.services.notifications import Notifier
from wellness_badges.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)


def build_share_message(
    platform: SharePlatform,
    title: str,
    custom_message: Optional[str] = None
) -> str:
    """
    Platform-specific share text

    Args:
        platform: Target platform
        title: Badge title
        custom_message: Replaces the default sentence when given

    Returns:
        Message to post
    """
    base = custom_message or f'I just earned the "{title}" badge in my wellness journey! 🎉'

    if platform == SharePlatform.INSTAGRAM:
        return f"{base} #WellnessJourney #Achievement #Productivity"
    if platform == SharePlatform.TWITTER:
        return f"{base} #WellnessApp #Achievement"
    if platform == SharePlatform.LINKEDIN:
        return f"Proud to share: {base}"
    if platform == SharePlatform.EMAIL:
        return f"Hi! I wanted to share my latest achievement: {base}"
    return base


def badge_image_url(definition: AchievementDefinition) -> str:
    """Placeholder badge image in the badge's colors"""
    primary = definition.color_primary.lstrip("#")
    secondary = definition.color_secondary.lstrip("#")
    return f"{config.BADGE_IMAGE_BASE_URL}/{primary}/{secondary}.png?text={quote(definition.title)}"


class BadgeService:
    """
    Service for badge features.

    Responsibilities:
    - Running badge passes after user actions
    - Progress reporting for locked badges
    - Listing unlocked badges
    - Sharing badges to social platforms
    """

    def __init__(
        self,
        store: BadgeStore,
        notifier: Notifier,
        clock: Optional[Clock] = None,
        locale: str = config.BADGE_DEFAULT_LOCALE,
        engine: Optional[AchievementEngine] = None,
    ):
        """
        Initialize BadgeService.

        Args:
            store: Persistence for activity, catalog and unlocks
            notifier: Where unlock notifications are requested
            clock: Source of "now" and the reference time zone
            locale: Language for badge titles
            engine: Pre-built engine (defaults to one on the same store)
        """
        self.store = store
        self.clock = clock or Clock.system(config.BADGE_REFERENCE_TIMEZONE)
        self.locale = locale
        self.engine = engine or AchievementEngine(store, notifier, self.clock, locale=locale)
        logger.debug("BadgeService initialized")

    async def check_and_unlock(self, user_id: str) -> list[UserBadge]:
        """Unlock newly earned badges; never raises"""
        return await self.engine.check_and_unlock(user_id)

    async def get_progress(self, user_id: str) -> list[BadgeProgress]:
        """Progress on every active badge"""
        return await self.engine.get_progress(user_id)

    async def list_user_badges(self, user_id: str) -> list[UserBadge]:
        """Unlocked badges, newest first"""
        return await self.store.get_user_badges(user_id)

    async def share_badge(
        self,
        user_id: str,
        badge_id: str,
        platform: str,
        custom_message: Optional[str] = None
    ) -> ShareContent:
        """
        Share an unlocked badge.

        Args:
            user_id: User ID
            badge_id: Achievement key of the badge
            platform: instagram, whatsapp, twitter, facebook, linkedin or email
            custom_message: Optional text replacing the default message

        Returns:
            ShareContent with share URL, image URL and message

        Raises:
            ValidationError: unknown platform
            BadgeNotFoundError: badge not unlocked, or definition missing
        """
        try:
            share_platform = SharePlatform(platform)
        except ValueError:
            raise ValidationError(
                f"Unsupported share platform '{platform}'",
                field="platform",
                value=platform,
                user_id=user_id
            )

        user_badge = await self.store.get_user_badge(user_id, badge_id)
        if not user_badge:
            raise BadgeNotFoundError(
                "Badge not found or not unlocked",
                badge_id=badge_id,
                user_id=user_id,
                operation="share_badge"
            )

        definition = await self.store.get_definition(badge_id, self.locale)
        if not definition:
            raise BadgeNotFoundError(
                "Badge definition not found",
                badge_id=badge_id,
                user_id=user_id,
                operation="share_badge"
            )

        share_id = f"share_{uuid4().hex[:12]}"
        share_url = f"{config.BADGE_SHARE_BASE_URL}/{share_id}"

        await self.store.record_share(BadgeShare(
            id=share_id,
            user_badge_id=user_badge.id,
            user_id=user_id,
            platform=share_platform,
            share_url=share_url,
            custom_message=custom_message or "",
            shared_at=self.clock.now(),
        ))
        await self.store.increment_share_count(user_badge.id)

        logger.info(f"User {user_id} shared badge {badge_id} to {share_platform.value}")

        return ShareContent(
            share_url=share_url,
            image_url=badge_image_url(definition),
            message=build_share_message(share_platform, definition.title, custom_message),
        )


async def trigger_badge_check(service: BadgeService, user_id: str) -> None:
    """
    Run a badge pass after a user action.

    Never raises: badge checking must not break the action that triggered it.
    """
    try:
        new_badges = await service.check_and_unlock(user_id)
        if new_badges:
            logger.info(
                f"User {user_id} unlocked {len(new_badges)} new badge(s): "
                f"{[b.badge_id for b in new_badges]}"
            )
    except Exception as e:
        logger.error(f"Badge check trigger failed for user {user_id}: {e}", exc_info=True)
