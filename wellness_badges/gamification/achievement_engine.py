"""
Achievement Engine

Runs a full badge pass for a user:
1. Load the badges the user already has
2. Load the active catalog, cheapest achievements first
3. Evaluate every achievement not yet unlocked
4. Unlock the ones that qualify

A pass is a side effect of some user action (completing a task, logging a
workout). Nothing in here is allowed to break that action: a bad rule is
skipped, a failed pass returns no new badges, and the next action retries.
"""

import logging
import time
from typing import Optional

from wellness_badges import config
from wellness_badges.db.store import BadgeStore
from wellness_badges.gamification.criteria_evaluator import CriteriaEvaluator
from wellness_badges.gamification.metric_resolver import MetricResolver
from wellness_badges.gamification.progress import ProgressCalculator
from wellness_badges.gamification.streak_calculator import StreakCalculator
from wellness_badges.gamification.unlock import UnlockCoordinator
from wellness_badges.models.badge import BadgeProgress, UserBadge
from wellness_badges.observability.metrics import badge_check_duration_seconds
from wellness_badges.services.notifications import Notifier
from wellness_badges.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)


class AchievementEngine:
    """Evaluates the badge catalog for users and unlocks what they've earned"""

    def __init__(
        self,
        store: BadgeStore,
        notifier: Notifier,
        clock: Optional[Clock] = None,
        locale: str = config.BADGE_DEFAULT_LOCALE,
        lookback_days: int = config.BADGE_STREAK_LOOKBACK_DAYS,
        rule_timeout: Optional[float] = config.BADGE_RULE_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.clock = clock or Clock.system(config.BADGE_REFERENCE_TIMEZONE)
        self.locale = locale

        self.resolver = MetricResolver(store, self.clock)
        self.streaks = StreakCalculator(store, self.clock, lookback_days)
        self.evaluator = CriteriaEvaluator(
            store, self.clock, self.resolver, self.streaks, rule_timeout=rule_timeout
        )
        self.progress_calculator = ProgressCalculator(self.resolver)
        self.unlocker = UnlockCoordinator(store, notifier, self.clock)

    async def check_and_unlock(self, user_id: str) -> list[UserBadge]:
        """
        Unlock every achievement the user newly qualifies for

        Args:
            user_id: User ID

        Returns:
            Newly unlocked badges only; empty if nothing new or the pass failed
        """
        started = time.perf_counter()
        try:
            return await self._run_pass(user_id)
        except Exception as e:
            logger.error(f"Badge checking failed for user {user_id}: {e}", exc_info=True)
            return []
        finally:
            badge_check_duration_seconds.observe(time.perf_counter() - started)

    async def _run_pass(self, user_id: str) -> list[UserBadge]:
        unlocked_ids = await self.store.get_unlocked_badge_ids(user_id)
        definitions = await self.store.get_active_definitions(self.locale)

        newly_unlocked = []
        for definition in definitions:
            key = definition.achievement_key
            if key in unlocked_ids:
                continue

            evaluation = await self.evaluator.evaluate(user_id, definition.criteria)
            if not evaluation.ok:
                logger.warning(
                    f"Skipping badge {key} for user {user_id}: "
                    f"{evaluation.error.value} ({evaluation.detail})"
                )
                continue
            if not evaluation.qualifies:
                continue

            try:
                badge = await self.unlocker.try_unlock(user_id, definition)
            except Exception as e:
                logger.error(f"Failed to store badge {key} for user {user_id}: {e}", exc_info=True)
                continue

            if badge:
                unlocked_ids.add(key)
                newly_unlocked.append(badge)

        if newly_unlocked:
            logger.info(
                f"User {user_id} unlocked {len(newly_unlocked)} new badge(s): "
                f"{[b.badge_id for b in newly_unlocked]}"
            )
        return newly_unlocked

    async def get_progress(self, user_id: str) -> list[BadgeProgress]:
        """
        Progress on every active achievement (read-only)

        Raises:
            DatabaseError: catalog or unlocked set could not be loaded
        """
        definitions = await self.store.get_active_definitions(self.locale)
        unlocked_ids = await self.store.get_unlocked_badge_ids(user_id)
        return await self.progress_calculator.progress(user_id, definitions, unlocked_ids)
