"""
Background monitor: alerting, per-strategy isolation, start/stop.
"""

import asyncio

import pytest

from core.balance_oracle import BalanceReading
from core.constitution import ExecutionMode, TOPUP_LAWS
from core.events import EventType
from core.health import HealthStatus
from core.monitor import MonitorLoop
from core.strategy_store import StrategyRecord

from conftest import OTHER_TARGET, TARGET

T = TOPUP_LAWS.THRESHOLD_MICRO


def _add(store, strategy_id, target):
    store.put(StrategyRecord(id=strategy_id, name=strategy_id, target_address=target,
                             mode=ExecutionMode.SIMULATION, task_id=1))


class ScriptedOracle:
    def __init__(self, balances, broken=()):
        self.balances = balances
        self.broken = set(broken)
        self.calls = []

    async def get_balance(self, address):
        self.calls.append(address)
        if address in self.broken:
            raise RuntimeError("oracle exploded")
        return BalanceReading(address=address, amount=self.balances[address])


@pytest.mark.asyncio
async def test_alerts_only_for_unhealthy_strategies(store, events):
    _add(store, "low", TARGET)
    _add(store, "fine", OTHER_TARGET)
    oracle = ScriptedOracle({TARGET: T + 1, OTHER_TARGET: 5 * T})
    monitor = MonitorLoop(store, oracle, events, clock=lambda: 500.0)

    result = await monitor.run_once()

    assert result.checked == ["low", "fine"]
    assert result.alerts == ["low"]
    alerts = events.recent(EventType.LOW_BALANCE_ALERT)
    assert len(alerts) == 1
    assert alerts[0].payload["strategy"].id == "low"
    assert alerts[0].payload["balance"] == T + 1
    assert alerts[0].payload["health"].status == HealthStatus.APPROACHING_THRESHOLD
    assert store.get("low").last_checked == 500.0
    assert store.get("fine").last_checked == 500.0


@pytest.mark.asyncio
async def test_one_failing_strategy_does_not_stop_the_pass(store, events):
    _add(store, "broken", TARGET)
    _add(store, "fine", OTHER_TARGET)
    oracle = ScriptedOracle({OTHER_TARGET: 5 * T}, broken=[TARGET])
    monitor = MonitorLoop(store, oracle, events)

    result = await monitor.run_once()

    assert oracle.calls == [TARGET, OTHER_TARGET]
    assert result.errors == {"broken": "oracle exploded"}
    assert result.checked == ["fine"]
    errors = events.recent(EventType.STRATEGY_ERROR)
    assert [e.payload["strategy_id"] for e in errors] == ["broken"]
    assert store.get("broken").last_checked is None
    assert monitor.is_checking is False


@pytest.mark.asyncio
async def test_middle_failure_still_checks_first_and_third(store, events):
    third = "0x" + "33" * 32
    _add(store, "first", TARGET)
    _add(store, "middle", OTHER_TARGET)
    _add(store, "third", third)
    oracle = ScriptedOracle({TARGET: 5 * T, third: 5 * T}, broken=[OTHER_TARGET])
    monitor = MonitorLoop(store, oracle, events, clock=lambda: 900.0)

    result = await monitor.run_once()

    assert oracle.calls == [TARGET, OTHER_TARGET, third]
    assert result.checked == ["first", "third"]
    assert result.errors == {"middle": "oracle exploded"}
    assert [e.payload["strategy_id"] for e in events.recent(EventType.STRATEGY_ERROR)] == ["middle"]
    assert store.get("first").last_checked == 900.0
    assert store.get("third").last_checked == 900.0
    assert store.get("middle").last_checked is None


@pytest.mark.asyncio
async def test_cancelled_strategies_are_skipped(store, events):
    _add(store, "gone", TARGET)
    store.set_active("gone", False)
    oracle = ScriptedOracle({})
    result = await MonitorLoop(store, oracle, events).run_once()
    assert oracle.calls == []
    assert result.checked == []


@pytest.mark.asyncio
async def test_unreachable_rpc_uses_placeholder_balance_and_alerts(offline_chain, store, events, make_monitor):
    _add(store, "offline", TARGET)
    monitor = make_monitor(offline_chain)

    result = await monitor.run_once()

    # placeholder balances stay below 100 SUPRA, far under the threshold
    assert result.alerts == ["offline"]
    assert result.errors == {}


@pytest.mark.asyncio
async def test_start_and_stop(chain, store, events, make_monitor):
    _add(store, "w", TARGET)
    chain.balances[TARGET] = 5 * T
    monitor = make_monitor(chain)

    monitor.start()
    assert monitor.is_running
    for _ in range(50):
        if monitor.pass_count:
            break
        await asyncio.sleep(0.01)
    await monitor.stop()

    assert monitor.pass_count >= 1
    assert monitor.is_running is False
    assert monitor.last_pass.checked == ["w"]
