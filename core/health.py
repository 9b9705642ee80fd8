"""
Health Evaluator - balance-threshold classification.

Pure functions: no I/O, no clock, deterministic for the same inputs.

    B <  T        -> below_threshold        (urgency high, top-up will trigger)
    T <= B < 2T   -> approaching_threshold  (urgency medium)
    B >= 2T       -> healthy                (urgency low)
"""

from dataclasses import dataclass, asdict
from enum import Enum

from .constitution import TOPUP_LAWS, to_supra


class HealthStatus(str, Enum):
    BELOW_THRESHOLD = "below_threshold"
    APPROACHING_THRESHOLD = "approaching_threshold"
    HEALTHY = "healthy"


class Urgency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_RECOMMENDATIONS = {
    HealthStatus.BELOW_THRESHOLD: "Balance is below threshold. Top-up will trigger automatically.",
    HealthStatus.APPROACHING_THRESHOLD: "Balance is approaching the threshold. Keep the funding account stocked.",
    HealthStatus.HEALTHY: "Balance is healthy. No action needed.",
}


@dataclass(frozen=True)
class HealthMetrics:
    distance_from_threshold: int      # micro units, negative when below
    percentage_of_threshold: float
    balance_ratio: float


@dataclass(frozen=True)
class HealthReport:
    status: HealthStatus
    urgency: Urgency
    recommendation: str
    will_trigger: bool
    metrics: HealthMetrics

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["urgency"] = self.urgency.value
        data["metrics"]["distance_from_threshold_supra"] = to_supra(self.metrics.distance_from_threshold)
        return data


def evaluate(record, current_balance: int) -> HealthReport:
    """Classify one strategy's target balance against its threshold."""
    threshold = record.threshold_amount

    if current_balance < threshold:
        status, urgency = HealthStatus.BELOW_THRESHOLD, Urgency.HIGH
    elif current_balance < threshold * TOPUP_LAWS.APPROACHING_MULTIPLIER:
        status, urgency = HealthStatus.APPROACHING_THRESHOLD, Urgency.MEDIUM
    else:
        status, urgency = HealthStatus.HEALTHY, Urgency.LOW

    ratio = current_balance / threshold
    return HealthReport(
        status=status,
        urgency=urgency,
        recommendation=_RECOMMENDATIONS[status],
        will_trigger=current_balance < threshold,
        metrics=HealthMetrics(
            distance_from_threshold=current_balance - threshold,
            percentage_of_threshold=ratio * 100,
            balance_ratio=ratio,
        ),
    )


def summarize(reports: list[HealthReport]) -> dict:
    """Roll several reports up into an overall health verdict."""
    total = len(reports)
    below = sum(1 for r in reports if r.status == HealthStatus.BELOW_THRESHOLD)
    approaching = sum(1 for r in reports if r.status == HealthStatus.APPROACHING_THRESHOLD)
    healthy = total - below - approaching

    if below == 0:
        overall = "excellent"
    elif below < total / 2:
        overall = "good"
    else:
        overall = "attention_needed"

    return {
        "total_strategies": total,
        "healthy_strategies": healthy,
        "approaching_strategies": approaching,
        "strategies_needing_topup": below,
        "overall_health": overall,
    }
