"""
Badge evaluation engine

- Metric Resolver: counts over activity history
- Streak Calculator: consecutive active days with a one-day grace
- Criteria Evaluator: one decision per achievement rule
- Progress Calculator: percentage toward locked badges
- Unlock Coordinator: idempotent unlock + notification request
- Achievement Engine: the full pass
"""

from wellness_badges.gamification.achievement_engine import AchievementEngine
from wellness_badges.gamification.criteria_evaluator import CriteriaEvaluator, Evaluation, EvaluationErrorKind
from wellness_badges.gamification.metric_resolver import MetricResolver
from wellness_badges.gamification.progress import ProgressCalculator, progress_percentage
from wellness_badges.gamification.streak_calculator import StreakCalculator, streak_length
from wellness_badges.gamification.unlock import UnlockCoordinator

__all__ = [
    "AchievementEngine",
    "CriteriaEvaluator",
    "Evaluation",
    "EvaluationErrorKind",
    "MetricResolver",
    "ProgressCalculator",
    "progress_percentage",
    "StreakCalculator",
    "streak_length",
    "UnlockCoordinator",
]
