"""
Streak Calculator

A streak is the run of consecutive calendar days with qualifying activity
that ends today or yesterday. Yesterday counts so that a user who hasn't
been active yet today keeps their streak until the day is over.

Streak sources:
- daily_task_completion: days with a completed task
- health_logs: days with a health log (optionally filtered, e.g. hydration)
- daily_activity: days with either
"""

from typing import Iterable, Optional
from datetime import date, timedelta
import logging

from wellness_badges.db.store import ActivitySource, BadgeStore
from wellness_badges.models.badge import Conditions, Metric, as_metric
from wellness_badges.utils.datetime_helpers import Clock, days_cutoff_ms

logger = logging.getLogger(__name__)

STREAK_SOURCES = {
    Metric.DAILY_TASK_COMPLETION: (ActivitySource.COMPLETED_TASKS,),
    Metric.HEALTH_LOGS: (ActivitySource.HEALTH_LOGS,),
    Metric.DAILY_ACTIVITY: (ActivitySource.COMPLETED_TASKS, ActivitySource.HEALTH_LOGS),
}

DEFAULT_LOOKBACK_DAYS = 30


def streak_length(activity_dates: Iterable[date], today: date) -> int:
    """
    Length of the current streak

    Args:
        activity_dates: Calendar days with activity (any order, duplicates ignored)
        today: Today's date in the reference time zone

    Returns:
        Consecutive days ending today or yesterday, 0 if neither is present

    Example:
        >>> d = date(2024, 5, 10)
        >>> streak_length([d, d - timedelta(1), d - timedelta(2), d - timedelta(4)], d)
        3
    """
    days = sorted(set(activity_dates), reverse=True)
    if not days:
        return 0

    yesterday = today - timedelta(days=1)
    if today not in days and yesterday not in days:
        return 0

    # Days after today (clock skew) can't extend a streak that ends today
    days = [d for d in days if d <= today]

    streak = 1
    for previous, current in zip(days, days[1:]):
        if (previous - current).days == 1:
            streak += 1
        else:
            break

    return streak


class StreakCalculator:
    """Loads activity days from a BadgeStore and measures the current streak"""

    def __init__(self, store: BadgeStore, clock: Clock, lookback_days: int = DEFAULT_LOOKBACK_DAYS):
        self.store = store
        self.clock = clock
        self.lookback_days = lookback_days

    def supports(self, metric) -> bool:
        return as_metric(metric) in STREAK_SOURCES

    async def current_streak(
        self,
        user_id: str,
        metric: Metric,
        conditions: Optional[Conditions] = None,
    ) -> int:
        """
        Current streak for a streak metric

        Raises:
            KeyError: metric has no streak source (check supports() first)
        """
        metric = as_metric(metric)
        sources = STREAK_SOURCES[metric]
        since_ms = days_cutoff_ms(self.clock.now_ms(), self.lookback_days)
        filters = dict(conditions.filters) if conditions else None

        days = await self.store.get_activity_days(
            user_id, sources, since_ms, self.clock.tz_name, filters
        )
        streak = streak_length(days, self.clock.today())

        logger.debug(f"User {user_id} {metric.value} streak: {streak} days")
        return streak
