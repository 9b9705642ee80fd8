"""
Analytics - dashboard payloads built from the strategy store.
"""

import time
from datetime import datetime, timezone

from .constitution import TOPUP_LAWS, to_supra
from .strategy_store import StrategyStore


def average_success_rate(store: StrategyStore) -> float:
    """Mean success rate across active strategies (1.0 when there are none)."""
    active = store.list_active()
    if not active:
        return 1.0
    return sum(s.success_rate for s in active) / len(active)


def estimate_monthly_cost() -> float:
    return TOPUP_LAWS.ESTIMATED_MONTHLY_COST_SUPRA


def generate_analytics(store: StrategyStore, timeframe: str = "24h") -> dict:
    strategies = store.list_all()
    active = store.list_active()

    return {
        "success": True,
        "analytics": {
            "overview": {
                "total_strategies": len(strategies),
                "active_strategies": len(active),
                "total_executions": sum(s.execution_count for s in strategies),
                "average_success_rate": average_success_rate(store),
                "total_value_transferred": to_supra(sum(s.total_transferred for s in strategies)),
                "simulated_strategies": sum(1 for s in active if s.remote_task_id is None),
            },
            "performance": {
                "healthy_strategies": sum(1 for s in active if s.success_rate > 0.95),
                "warning_strategies": sum(1 for s in active if 0.8 < s.success_rate <= 0.95),
                "critical_strategies": sum(1 for s in active if s.success_rate <= 0.8),
            },
            "costs": {
                "estimated_monthly_cost": estimate_monthly_cost(),
            },
            "timeframe": timeframe,
        },
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "recommendations": [
            "Monitor your strategies regularly",
            "Keep at least 1000 SUPRA in the funding account for automation fees",
        ],
    }


class PerformanceMetrics:
    """Process-level counters (conversations, creations, uptime)."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self.start_time: float = clock()
        self.total_conversations: int = 0

    def snapshot(self, store: StrategyStore) -> dict:
        return {
            "total_conversations": self.total_conversations,
            "total_strategies_created": store.created_count,
            "total_executions": sum(s.execution_count for s in store.list_all()),
            "active_strategies": len(store.list_active()),
            "average_success_rate": average_success_rate(store),
            "uptime_minutes": (self._clock() - self.start_time) / 60,
        }
