"""
Strategy Store - In-Memory Registry of Auto Top-Up Strategies

Single source of truth for which automations exist and their last-known health.

Rules:
- One record per id; ids are never reused
- is_active only goes True -> False (cancellation is terminal)
- target_address, id and created_at are immutable once the record exists
- Records are never deleted: cancelled strategies stay queryable for history
- No persistence: the store dies with the process
"""

import time
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

from .constitution import TOPUP_LAWS, ExecutionMode, to_supra

logger = logging.getLogger("autofi.store")


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class ExecutionRecord:
    timestamp: float
    gas_used: int
    success: bool


@dataclass
class StrategyRecord:
    id: str
    name: str
    target_address: str
    mode: ExecutionMode
    task_id: int
    tx_hash: str = ""
    description: str = ""
    type: str = "auto_topup"
    is_active: bool = True
    created_at: float = field(default_factory=time.time)
    cancelled_at: Optional[float] = None
    last_checked: Optional[float] = None

    # Execution statistics (only moved by StrategyStore.record_execution)
    execution_count: int = 0
    success_rate: float = 1.0
    total_transferred: int = 0           # micro units
    last_execution: Optional[ExecutionRecord] = None

    _IMMUTABLE = ("id", "target_address", "created_at")

    def __setattr__(self, name, value):
        if name in self._IMMUTABLE and name in self.__dict__:
            raise AttributeError(f"StrategyRecord.{name} is immutable")
        super().__setattr__(name, value)

    @property
    def threshold_amount(self) -> int:
        return TOPUP_LAWS.THRESHOLD_MICRO

    @property
    def topup_amount(self) -> int:
        return TOPUP_LAWS.TOPUP_MICRO

    @property
    def remote_task_id(self) -> Optional[int]:
        """Registry task id; None when the strategy only exists locally."""
        if self.mode == ExecutionMode.REAL_DEPLOYMENT:
            return self.task_id
        return None

    def to_dict(self) -> dict:
        """JSON-safe view (handed to the language model and the API)."""
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "parameters": {
                "target": self.target_address,
                "threshold_supra": to_supra(self.threshold_amount),
                "topup_supra": to_supra(self.topup_amount),
            },
            "mode": self.mode.value,
            "task_id": self.task_id,
            "remote_task_id": self.remote_task_id,
            "tx_hash": self.tx_hash,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "cancelled_at": _iso(self.cancelled_at),
            "last_checked": _iso(self.last_checked),
            "execution_count": self.execution_count,
            "success_rate": self.success_rate,
            "total_transferred_supra": to_supra(self.total_transferred),
            "last_execution": asdict(self.last_execution) if self.last_execution else None,
        }


class StrategyStore:
    """
    Owned, injectable registry. Construct one per process (or per test).

    Usage:
        store = StrategyStore()
        store.put(record)
        store.list_active()
    """

    def __init__(self):
        self._records: dict[str, StrategyRecord] = {}   # insertion-ordered
        self._issued_ids: set[str] = set()
        self.created_count: int = 0

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._records

    def new_id(self) -> str:
        """Allocate a fresh id: topup_<epoch-ms>, suffixed if the ms is taken."""
        base = f"topup_{int(time.time() * 1000)}"
        candidate = base
        suffix = 1
        while candidate in self._issued_ids:
            candidate = f"{base}_{suffix}"
            suffix += 1
        self._issued_ids.add(candidate)
        return candidate

    def put(self, record: StrategyRecord) -> None:
        if record.id in self._records:
            raise ValueError(f"Strategy {record.id} already exists")
        self._records[record.id] = record
        self._issued_ids.add(record.id)
        self.created_count += 1
        logger.info(f"Strategy stored: {record.id} ({record.name}) mode={record.mode.value}")

    def get(self, strategy_id: str) -> Optional[StrategyRecord]:
        return self._records.get(strategy_id)

    def list_active(self) -> list[StrategyRecord]:
        return [r for r in self._records.values() if r.is_active]

    def list_all(self) -> list[StrategyRecord]:
        return list(self._records.values())

    def set_active(self, strategy_id: str, active: bool) -> bool:
        """Flip is_active. Returns False for unknown ids; reactivation is refused."""
        record = self._records.get(strategy_id)
        if record is None:
            return False
        if active and not record.is_active:
            raise ValueError(f"Strategy {strategy_id} was cancelled and cannot be reactivated")
        if not active and record.is_active:
            record.is_active = False
            record.cancelled_at = time.time()
        return True

    def touch(self, strategy_id: str, when: Optional[float] = None) -> None:
        """Refresh last_checked (monitor pass or explicit status check)."""
        record = self._records.get(strategy_id)
        if record is not None:
            record.last_checked = when if when is not None else time.time()

    def record_execution(
        self,
        strategy_id: str,
        success: bool,
        amount_micro: int = 0,
        gas_used: int = 0,
        when: Optional[float] = None,
    ) -> bool:
        """
        Execution-observation hook: fold one observed top-up into the stats.

        success_rate is the running fraction of successful executions.
        """
        record = self._records.get(strategy_id)
        if record is None:
            return False

        successes = round(record.success_rate * record.execution_count)
        record.execution_count += 1
        if success:
            successes += 1
            record.total_transferred += amount_micro
        record.success_rate = successes / record.execution_count
        record.last_execution = ExecutionRecord(
            timestamp=when if when is not None else time.time(),
            gas_used=gas_used,
            success=success,
        )
        return True
