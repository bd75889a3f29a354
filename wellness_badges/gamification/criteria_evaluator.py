"""
Criteria Evaluator

Decides whether a user satisfies one achievement criteria. Every criteria
variant has its own branch:

- count: resolved metric >= threshold
- streak: current streak for the metric >= threshold
- time_based: days since registration >= threshold
- percentage: never qualifies (reserved)
- custom: early/late task predicates, badge points, or an AND over requirements

Evaluation never raises. Failures come back as an Evaluation with an error
kind, and the caller decides what to do with them.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from wellness_badges.db.store import BadgeStore
from wellness_badges.exceptions import CriteriaError, DatabaseError
from wellness_badges.gamification.metric_resolver import MetricResolver
from wellness_badges.gamification.streak_calculator import StreakCalculator
from wellness_badges.models.badge import (
    CountCriteria,
    Criteria,
    CustomCriteria,
    Metric,
    PercentageCriteria,
    StreakCriteria,
    TimeBasedCriteria,
    as_metric,
)
from wellness_badges.observability.metrics import record_evaluation
from wellness_badges.utils.datetime_helpers import Clock, MS_PER_DAY, to_epoch_ms

logger = logging.getLogger(__name__)


class EvaluationErrorKind(str, Enum):
    """Why an evaluation couldn't reach a decision"""
    MALFORMED = "malformed"
    STORE = "store"
    TIMEOUT = "timeout"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class Evaluation:
    """Outcome of evaluating one criteria; an error always means not qualifying"""
    qualifies: bool
    error: Optional[EvaluationErrorKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, kind: EvaluationErrorKind, detail: str) -> "Evaluation":
        return cls(qualifies=False, error=kind, detail=detail)

    @property
    def result_label(self) -> str:
        if self.error:
            return self.error.value
        return "qualified" if self.qualifies else "not_qualified"


class CriteriaEvaluator:
    """Evaluates criteria for a user against a BadgeStore"""

    def __init__(
        self,
        store: BadgeStore,
        clock: Clock,
        resolver: Optional[MetricResolver] = None,
        streaks: Optional[StreakCalculator] = None,
        rule_timeout: Optional[float] = None,
    ):
        self.store = store
        self.clock = clock
        self.resolver = resolver or MetricResolver(store, clock)
        self.streaks = streaks or StreakCalculator(store, clock)
        self.rule_timeout = rule_timeout

    async def evaluate(self, user_id: str, criteria: Criteria) -> Evaluation:
        """
        Evaluate one criteria for a user

        Args:
            user_id: User ID
            criteria: Parsed criteria

        Returns:
            Evaluation with qualifies set, or an error kind when no decision
            could be reached (malformed criteria, store failure, timeout)
        """
        criteria_type = getattr(criteria, "type", "unknown")
        try:
            if self.rule_timeout:
                qualifies = await asyncio.wait_for(
                    self._dispatch(user_id, criteria), timeout=self.rule_timeout
                )
            else:
                qualifies = await self._dispatch(user_id, criteria)
            evaluation = Evaluation(qualifies=qualifies)

        except CriteriaError as e:
            evaluation = Evaluation.failed(EvaluationErrorKind.MALFORMED, e.message)
        except DatabaseError as e:
            evaluation = Evaluation.failed(EvaluationErrorKind.STORE, e.message)
        except asyncio.TimeoutError:
            logger.warning(
                f"Criteria evaluation for user {user_id} timed out after {self.rule_timeout}s ({criteria_type})"
            )
            evaluation = Evaluation.failed(EvaluationErrorKind.TIMEOUT, f"timed out after {self.rule_timeout}s")
        except Exception as e:
            logger.error(f"Unexpected error evaluating {criteria_type} criteria for user {user_id}: {e}", exc_info=True)
            evaluation = Evaluation.failed(EvaluationErrorKind.UNEXPECTED, str(e))

        record_evaluation(criteria_type, evaluation.result_label)
        return evaluation

    async def qualifies(self, user_id: str, criteria: Criteria) -> bool:
        """True if the user satisfies the criteria; any failure counts as False"""
        return (await self.evaluate(user_id, criteria)).qualifies

    # ==========================================
    # Dispatch
    # ==========================================

    async def _dispatch(self, user_id: str, criteria: Criteria) -> bool:
        if isinstance(criteria, CountCriteria):
            return await self._check_count(user_id, criteria)
        if isinstance(criteria, StreakCriteria):
            return await self._check_streak(user_id, criteria)
        if isinstance(criteria, TimeBasedCriteria):
            return await self._check_time_based(user_id, criteria)
        if isinstance(criteria, PercentageCriteria):
            # Reserved: percentage rules have no data source yet
            return False
        if isinstance(criteria, CustomCriteria):
            return await self._check_custom(user_id, criteria)

        raise CriteriaError(f"Unsupported criteria type: {type(criteria).__name__}")

    async def _check_count(self, user_id: str, criteria: CountCriteria) -> bool:
        value = await self.resolver.resolve(
            user_id, criteria.metric, criteria.timeframe, criteria.conditions
        )
        return value >= criteria.threshold

    async def _check_streak(self, user_id: str, criteria: StreakCriteria) -> bool:
        if not self.streaks.supports(criteria.metric):
            logger.debug(f"No streak source for metric {criteria.metric!r}")
            return False

        streak = await self.streaks.current_streak(user_id, criteria.metric, criteria.conditions)
        return streak >= criteria.threshold

    async def _check_time_based(self, user_id: str, criteria: TimeBasedCriteria) -> bool:
        if as_metric(criteria.metric) != Metric.DAYS_SINCE_REGISTRATION:
            return False

        account = await self.store.get_user_account(user_id)
        if account is None:
            return False

        elapsed_days = (self.clock.now_ms() - to_epoch_ms(account.created_at)) / MS_PER_DAY
        return elapsed_days >= criteria.threshold

    async def _check_custom(self, user_id: str, criteria: CustomCriteria) -> bool:
        metric = as_metric(criteria.metric)
        conditions = criteria.conditions

        if metric == Metric.EARLY_TASKS and conditions and conditions.before_hour is not None:
            count = await self.store.count_tasks_by_hour(
                user_id, self.clock.tz_name, before_hour=conditions.before_hour
            )
            return count >= criteria.threshold

        if metric == Metric.LATE_TASKS and conditions and conditions.after_hour is not None:
            count = await self.store.count_tasks_by_hour(
                user_id, self.clock.tz_name, after_hour=conditions.after_hour
            )
            return count >= criteria.threshold

        if metric == Metric.BADGE_POINTS:
            account = await self.store.get_user_account(user_id)
            points = account.badge_points if account else 0
            return points >= criteria.threshold

        if criteria.requirements:
            for requirement in criteria.requirements:
                value = await self.resolver.resolve(
                    user_id, requirement.metric, criteria.timeframe, conditions
                )
                if value < requirement.threshold:
                    return False
            return True

        return False
