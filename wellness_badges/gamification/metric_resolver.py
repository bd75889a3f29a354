"""
Metric Resolver

Turns a (metric, timeframe, conditions) descriptor into a single count over
the user's activity history.

Supported metrics:
- tasks_completed: completed tasks
- health_logs: health log entries

Anything else resolves to 0 so a catalog can ship rules for metrics the
engine doesn't know yet without breaking evaluation.
"""

from typing import Optional, Union
import logging

from wellness_badges.db.store import ActivitySource, BadgeStore
from wellness_badges.models.badge import Conditions, Metric, as_metric
from wellness_badges.utils.datetime_helpers import Clock, days_cutoff_ms

logger = logging.getLogger(__name__)

COUNTABLE_METRICS = {
    Metric.TASKS_COMPLETED: ActivitySource.COMPLETED_TASKS,
    Metric.HEALTH_LOGS: ActivitySource.HEALTH_LOGS,
}


class MetricResolver:
    """Resolves countable metrics against a BadgeStore"""

    def __init__(self, store: BadgeStore, clock: Clock):
        self.store = store
        self.clock = clock

    async def resolve(
        self,
        user_id: str,
        metric: Union[Metric, str, None],
        timeframe: Optional[int] = None,
        conditions: Optional[Conditions] = None,
    ) -> int:
        """
        Resolve a metric to a non-negative count

        Args:
            user_id: User ID
            metric: Metric name
            timeframe: Optional window in days, counted back from now
            conditions: Optional equality filters (hour bounds are ignored here)

        Returns:
            Count of matching activity rows, 0 for unknown metrics

        Raises:
            CriteriaError: a filter names a column the activity table doesn't expose
            DatabaseError: the store failed
        """
        source = COUNTABLE_METRICS.get(as_metric(metric))
        if source is None:
            logger.debug(f"Metric {metric!r} is not countable, resolving to 0")
            return 0

        since_ms = days_cutoff_ms(self.clock.now_ms(), timeframe) if timeframe else None
        filters = dict(conditions.filters) if conditions else {}

        count = await self.store.count_activity(user_id, source, filters, since_ms)
        return max(0, int(count))
