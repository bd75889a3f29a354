"""
Progress Calculator

Estimates how close a user is to each achievement. Progress always uses the
count-style metric resolution, even for streak and custom rules, so it is an
approximation for display and never a qualification check.

Custom rules built from requirements report the requirement furthest from
its threshold.
"""

import logging
import math
from typing import Iterable, Optional, Union

from wellness_badges.gamification.metric_resolver import MetricResolver
from wellness_badges.models.badge import (
    AchievementDefinition,
    BadgeProgress,
    Conditions,
    CustomCriteria,
    Metric,
    PercentageCriteria,
)

logger = logging.getLogger(__name__)


def progress_percentage(current: int, target: int) -> int:
    """
    Percentage of target reached, rounded and clamped to [0, 100]

    Halves round up. A zero target is trivially met.
    """
    if target <= 0:
        return 100
    return max(0, min(100, math.floor(current / target * 100 + 0.5)))


def _has_requirements(definition: AchievementDefinition) -> bool:
    criteria = definition.criteria
    return isinstance(criteria, CustomCriteria) and bool(criteria.requirements)


def progress_target(definition: AchievementDefinition) -> int:
    """Target shown for a definition; the largest requirement for requirement-based rules"""
    if _has_requirements(definition):
        return max(requirement.threshold for requirement in definition.criteria.requirements)
    return definition.threshold


class ProgressCalculator:
    """Builds BadgeProgress entries for a catalog"""

    def __init__(self, resolver: MetricResolver):
        self.resolver = resolver

    async def progress(
        self,
        user_id: str,
        definitions: Iterable[AchievementDefinition],
        unlocked_ids: set[str],
    ) -> list[BadgeProgress]:
        """
        Progress for every definition

        Args:
            user_id: User ID
            definitions: Catalog entries to report on
            unlocked_ids: Achievement keys the user already has

        Returns:
            One BadgeProgress per definition, in catalog order
        """
        results = []
        for definition in definitions:
            results.append(await self._progress_for(user_id, definition, unlocked_ids))
        return results

    async def _progress_for(
        self,
        user_id: str,
        definition: AchievementDefinition,
        unlocked_ids: set[str],
    ) -> BadgeProgress:
        if definition.achievement_key in unlocked_ids:
            target = progress_target(definition)
            return BadgeProgress(
                badge_id=definition.achievement_key,
                current_value=target,
                target_value=target,
                percentage=100,
                is_complete=True,
            )

        criteria = definition.criteria
        if isinstance(criteria, PercentageCriteria):
            return BadgeProgress(
                badge_id=definition.achievement_key,
                current_value=0,
                target_value=definition.threshold,
                percentage=0,
            )

        if _has_requirements(definition):
            return await self._requirements_progress(user_id, definition)

        target = definition.threshold
        current = await self._resolve_or_zero(
            user_id, definition, criteria.metric, criteria.timeframe, criteria.conditions
        )
        return BadgeProgress(
            badge_id=definition.achievement_key,
            current_value=current,
            target_value=target,
            percentage=progress_percentage(current, target),
        )

    async def _requirements_progress(self, user_id: str, definition: AchievementDefinition) -> BadgeProgress:
        criteria = definition.criteria
        legs = []
        for requirement in criteria.requirements:
            current = await self._resolve_or_zero(
                user_id, definition, requirement.metric, criteria.timeframe, criteria.conditions
            )
            legs.append((progress_percentage(current, requirement.threshold), current, requirement.threshold))

        # Ties keep catalog order
        percentage, current, target = min(legs, key=lambda leg: leg[0])
        return BadgeProgress(
            badge_id=definition.achievement_key,
            current_value=current,
            target_value=target,
            percentage=percentage,
        )

    async def _resolve_or_zero(
        self,
        user_id: str,
        definition: AchievementDefinition,
        metric: Union[Metric, str, None],
        timeframe: Optional[int],
        conditions: Optional[Conditions],
    ) -> int:
        try:
            return await self.resolver.resolve(user_id, metric, timeframe, conditions)
        except Exception as e:
            logger.warning(
                f"Could not resolve progress for {definition.achievement_key} (user {user_id}): {e}"
            )
            return 0
