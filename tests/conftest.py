from __future__ import annotations

import sys
import random
import asyncio
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from core.agent import AutoFiAgent
from core.balance_oracle import BalanceOracle
from core.errors import NetworkError
from core.events import EventBus
from core.execution import ExecutionGateway
from core.intent_router import IntentRouter
from core.monitor import MonitorLoop
from core.strategy_store import StrategyStore

TARGET = "0x" + "11" * 32
OTHER_TARGET = "0x" + "22" * 32
SENDER = "0x" + "ab" * 32
REGISTER_HASH = "0x" + "c" * 56 + "0000002a"
CANCEL_HASH = "0x" + "d" * 64


class FakeChain:
    """In-memory stand-in for SupraClient."""

    def __init__(self, offline: bool = False):
        self.address = SENDER
        self.offline = offline
        self.balances: dict[str, int] = {SENDER: 100_000_000_000}
        self.failing: set[str] = set()
        self.fee_estimate: Optional[int] = None
        self.fee_error: Optional[Exception] = None
        self.register_result = {"hash": REGISTER_HASH}
        self.register_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None
        self.registered = []
        self.cancelled = []

    def _check(self, address: str = "") -> None:
        if self.offline or address in self.failing:
            raise NetworkError("connection refused")

    async def get_account_info(self, address):
        self._check()
        return {"sequence_number": "7"}

    async def get_sequence_number(self, address):
        self._check()
        return 7

    async def get_coin_balance(self, address, coin_type=None):
        self._check(address)
        return self.balances.get(address, 0)

    async def estimate_automation_fee(self, gas_units=50_000):
        self._check()
        if self.fee_error:
            raise self.fee_error
        return self.fee_estimate

    async def register_automation(self, request):
        self._check()
        await asyncio.sleep(0)   # yield like a real submission
        self.registered.append(request)
        if self.register_error:
            raise self.register_error
        return self.register_result

    async def cancel_automation(self, task_id):
        self._check()
        await asyncio.sleep(0)
        self.cancelled.append(task_id)
        if self.cancel_error:
            raise self.cancel_error
        return {"hash": CANCEL_HASH}

    def get_status(self):
        return {"rpc_url": "fake", "address": self.address[:10] + "...", "tx_count": len(self.registered), "last_error": ""}

    async def close(self):
        pass


def text_completion(text: str):
    message = SimpleNamespace(content=text, tool_calls=None)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=8),
    )


def tool_completion(name: str, arguments: str, call_id: str = "call_1"):
    call = SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))
    message = SimpleNamespace(content=None, tool_calls=[call])
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(prompt_tokens=20, completion_tokens=10),
    )


class FakeCompletions:
    """Scripted chat.completions: pops one response (or raises one exception) per call."""

    def __init__(self, script=None):
        self.script = list(script or [])
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        # snapshot the transcript; the agent keeps appending to the same list
        kwargs["messages"] = [dict(m) for m in kwargs["messages"]]
        self.requests.append(kwargs)
        if not self.script:
            return text_completion("ok")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeOpenAI:
    def __init__(self, script=None):
        self.chat = SimpleNamespace(completions=FakeCompletions(script))

    @property
    def requests(self):
        return self.chat.completions.requests


async def no_sleep(seconds):
    return None


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def offline_chain():
    return FakeChain(offline=True)


@pytest.fixture
def store():
    return StrategyStore()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def make_gateway(store, events):
    def _make(chain):
        return ExecutionGateway(
            chain, store, events, "0x" + "ef" * 32,
            confirm_delay_seconds=0, rng=random.Random(7),
        )
    return _make


@pytest.fixture
def make_agent(store, events, make_gateway):
    def _make(chain, script=None, rng_value: float = 0.0):
        client = FakeOpenAI(script)
        router = IntentRouter(client, sleep=no_sleep)
        oracle = BalanceOracle(chain, rng=random.Random(3))
        rng = SimpleNamespace(random=lambda: rng_value)
        agent = AutoFiAgent(router, make_gateway(chain), store, oracle, events, rng=rng)
        return agent, client
    return _make


@pytest.fixture
def make_monitor(store, events):
    def _make(chain):
        return MonitorLoop(store, BalanceOracle(chain, rng=random.Random(3)), events, interval_seconds=0.01)
    return _make
