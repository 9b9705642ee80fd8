"""
Monitor Loop - periodic balance checks for active strategies.

Two states: Idle (sleeping until the next tick) and Checking (walking the
active set). Each tick visits every active strategy sequentially:

    balance (oracle) -> health (evaluator) -> lowBalanceAlert if B < 2T
    -> refresh last_checked

A failure on one strategy emits strategyError and the pass moves on to the
next one. start()/stop() give a deterministic shutdown handle.
"""

import time
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .constitution import TOPUP_LAWS, to_supra
from .events import EventBus, EventType
from .health import evaluate, HealthStatus
from .strategy_store import StrategyStore

logger = logging.getLogger("autofi.monitor")


@dataclass
class MonitorPassResult:
    started_at: float
    checked: list[str] = field(default_factory=list)
    alerts: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class MonitorLoop:
    """
    Usage:
        monitor = MonitorLoop(store, oracle, events, interval_seconds=600)
        monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        store: StrategyStore,
        oracle,
        events: EventBus,
        interval_seconds: float = TOPUP_LAWS.MONITOR_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._oracle = oracle
        self._events = events
        self.interval_seconds = interval_seconds
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self._checking: bool = False
        self.pass_count: int = 0
        self.last_pass: Optional[MonitorPassResult] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_checking(self) -> bool:
        return self._checking

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Background monitoring active ({self.interval_seconds:g}s intervals)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Background monitoring stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if self._checking:
                logger.warning("Monitor: previous pass still running - skipping this tick")
                continue
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Monitor pass failed: {e}")

    async def run_once(self) -> MonitorPassResult:
        """One Checking pass over the active set."""
        self._checking = True
        result = MonitorPassResult(started_at=self._clock())
        try:
            for record in self._store.list_active():
                try:
                    reading = await self._oracle.get_balance(record.target_address)
                    report = evaluate(record, reading.amount)

                    if report.status != HealthStatus.HEALTHY:
                        logger.warning(
                            f"{record.name}: balance getting low ({to_supra(reading.amount):.2f} SUPRA)"
                        )
                        self._events.emit(
                            EventType.LOW_BALANCE_ALERT,
                            strategy=record,
                            balance=reading.amount,
                            health=report,
                        )
                        result.alerts.append(record.id)

                    self._store.touch(record.id, self._clock())
                    result.checked.append(record.id)
                except Exception as e:
                    logger.error(f"Error checking strategy {record.id}: {e}")
                    self._events.emit(EventType.STRATEGY_ERROR, strategy_id=record.id, error=e)
                    result.errors[record.id] = str(e)
        finally:
            self._checking = False

        self.pass_count += 1
        self.last_pass = result
        logger.debug(
            f"Monitor pass #{self.pass_count}: checked={len(result.checked)} "
            f"alerts={len(result.alerts)} errors={len(result.errors)}"
        )
        return result
