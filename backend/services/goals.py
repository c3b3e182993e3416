"""
Goal tracking: compare an aggregated actual value against a user target.

Two views of the same comparison:
- evaluate() gives a continuous progress percentage for goal cards
- classify_health() buckets it into good/warn/bad tiers for client KPIs
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from services.metrics import AggregatedTotals, MetricKey, metric_value

# Cost-type metrics: staying at or under the target is the goal
LOWER_IS_BETTER = {MetricKey.SPEND, MetricKey.CPC, MetricKey.CPM, MetricKey.CPA}

# Health tier thresholds (relative to target)
WARN_ABOVE_TARGET = 1.3   # lower-is-better: up to 30% over target is a warning
WARN_BELOW_TARGET = 0.7   # higher-is-better: down to 70% of target is a warning


class HealthTier(str, Enum):
    GOOD = "good"
    WARN = "warn"
    BAD = "bad"
    UNAVAILABLE = "unavailable"


@dataclass
class GoalProgress:
    """Result of evaluating one goal against its totals."""
    metric: str
    target: float
    actual: Optional[float]
    progress_pct: float
    status: str  # "ok" | "no-data"
    remaining: Optional[float]
    lower_is_better: bool

    def to_dict(self) -> dict:
        return {
            "metric": self.metric,
            "target": self.target,
            "actual": self.actual,
            "progress_pct": self.progress_pct,
            "status": self.status,
            "remaining": self.remaining,
            "lower_is_better": self.lower_is_better,
        }


def is_lower_better(metric: Union[MetricKey, str]) -> bool:
    """Whether a lower actual value is better for this metric."""
    return MetricKey(metric) in LOWER_IS_BETTER


def goal_key(platform: Optional[str], entity_id: str) -> str:
    """Composite key for an entity goal, e.g. "meta:23851234"."""
    if not platform:
        return str(entity_id)
    return f"{platform.lower()}:{entity_id}"


def _clamp_pct(pct: float) -> float:
    if not math.isfinite(pct):
        return 0.0
    return max(0.0, min(100.0, pct))


def progress_pct(actual: Optional[float], target: float, lower_is_better: bool) -> float:
    """
    Percentage of the way to the target, clamped to [0, 100].

    Lower-is-better: at or under target is 100%, above it is target/actual.
    Higher-is-better: actual/target, and 0% when the target is not positive.
    """
    if actual is None or not math.isfinite(actual):
        return 0.0
    if target is None or not math.isfinite(target):
        return 0.0

    if lower_is_better:
        if actual <= target:
            return 100.0
        # actual > target here, so actual > 0 whenever target >= 0
        if target <= 0:
            return 0.0
        return _clamp_pct(target / actual * 100)

    if target <= 0:
        return 0.0
    return _clamp_pct(actual / target * 100)


def evaluate(
    metric: Union[MetricKey, str],
    target: float,
    totals: Optional[AggregatedTotals],
) -> GoalProgress:
    """
    Evaluate a goal (metric + target) against aggregated totals.

    Returns:
        GoalProgress with status "no-data" when the metric is undefined
        (e.g. CTR with zero impressions) or no totals were loaded.
    """
    metric = MetricKey(metric)
    lower = metric in LOWER_IS_BETTER
    actual = metric_value(totals, metric) if totals is not None else None

    if actual is None:
        return GoalProgress(
            metric=metric.value,
            target=target,
            actual=None,
            progress_pct=0.0,
            status="no-data",
            remaining=None,
            lower_is_better=lower,
        )

    remaining = None if lower else max(0.0, target - actual)

    return GoalProgress(
        metric=metric.value,
        target=target,
        actual=actual,
        progress_pct=progress_pct(actual, target, lower),
        status="ok",
        remaining=remaining,
        lower_is_better=lower,
    )


def evaluate_goal(goal: dict, totals: Optional[AggregatedTotals]) -> GoalProgress:
    """Evaluate a stored goal dict ({"metric", "target", ...})."""
    return evaluate(goal["metric"], float(goal.get("target") or 0), totals)


def classify_health(
    actual: Optional[float],
    target: Optional[float],
    lower_is_better: bool,
) -> HealthTier:
    """Bucket actual vs target into good / warn / bad (or unavailable)."""
    if actual is None or target is None:
        return HealthTier.UNAVAILABLE
    if not math.isfinite(actual) or not math.isfinite(target):
        return HealthTier.UNAVAILABLE

    if lower_is_better:
        if actual <= target:
            return HealthTier.GOOD
        if actual <= target * WARN_ABOVE_TARGET:
            return HealthTier.WARN
        return HealthTier.BAD

    if actual >= target:
        return HealthTier.GOOD
    if actual >= target * WARN_BELOW_TARGET:
        return HealthTier.WARN
    return HealthTier.BAD
