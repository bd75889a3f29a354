"""
Prometheus metrics definitions for wellness-badges.

- Evaluation metrics: per-rule outcomes, including fail-soft errors
- Unlock metrics: badges unlocked and notification failures
- Pass metrics: duration of a full check-and-unlock pass

Exposing them (e.g. a /metrics endpoint) is up to the host application.
"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# =============================================================================
# Evaluation Metrics
# =============================================================================

badge_evaluations_total = Counter(
    "badge_evaluations_total",
    "Achievement criteria evaluations",
    ["criteria_type", "result"],  # result: qualified/not_qualified/malformed/store/timeout/unexpected
)

# =============================================================================
# Unlock Metrics
# =============================================================================

badge_unlocks_total = Counter(
    "badge_unlocks_total",
    "Badges unlocked",
    ["rarity"],
)

badge_notification_failures_total = Counter(
    "badge_notification_failures_total",
    "Badge unlock notifications that failed to queue",
)

# =============================================================================
# Pass Metrics
# =============================================================================

badge_check_duration_seconds = Histogram(
    "badge_check_duration_seconds",
    "Time spent in one check-and-unlock pass",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


def record_evaluation(criteria_type: str, result: str) -> None:
    """Count one criteria evaluation outcome"""
    badge_evaluations_total.labels(criteria_type=criteria_type, result=result).inc()


def record_unlock(rarity: str) -> None:
    badge_unlocks_total.labels(rarity=rarity).inc()


def record_notification_failure() -> None:
    badge_notification_failures_total.inc()
