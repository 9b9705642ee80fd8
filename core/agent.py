"""
AutoFi Agent - conversation orchestration.

One user message = one strictly sequential dispatch:

    user text -> IntentRouter (text | one tool call)
              -> parse into Intent -> dispatch (create / cancel / list / check / analytics)
              -> tool result appended to the transcript
              -> IntentRouter final reply -> user text

Every failure is turned into text for the user; chat() never raises.
"""

import json
import time
import asyncio
import random
import logging
from typing import Callable, Optional

from .analytics import PerformanceMetrics, average_success_rate, generate_analytics
from .balance_oracle import BalanceOracle
from .constitution import SYSTEM_PROMPT
from .errors import UnknownOperation
from .events import EventBus, EventType
from .execution import ExecutionGateway
from .health import evaluate, summarize
from .intent_router import IntentRouter
from .intents import (
    AnalyticsIntent,
    CancelIntent,
    CheckIntent,
    CreateIntent,
    Intent,
    ListIntent,
    parse_tool_call,
)
from .strategy_store import StrategyStore

logger = logging.getLogger("autofi.agent")

_FRIENDLY_ERRORS = {
    "INSUFFICIENT_BALANCE": "Your account balance is too low. Please add more SUPRA to continue.",
    "NETWORK_ERROR": "Network connection issue. Please check your internet and try again.",
    "INVALID_ADDRESS": "The wallet address format is invalid. Please check and try again.",
    "OPENAI_ERROR": "AI service temporarily unavailable. Please try again in a moment.",
    "AUTOMATION_REGISTRY_FULL": "Automation registry is at capacity. Please try again later.",
}


class AutoFiAgent:
    """
    Usage:
        agent = AutoFiAgent(router, gateway, store, oracle, events)
        reply = await agent.chat("Create auto top-up for my wallet 0x...")
    """

    TRANSCRIPT_LIMIT = 40   # messages kept after the system prompt

    def __init__(
        self,
        router: IntentRouter,
        gateway: ExecutionGateway,
        store: StrategyStore,
        oracle: BalanceOracle,
        events: EventBus,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.router = router
        self.gateway = gateway
        self.store = store
        self.oracle = oracle
        self.events = events
        self._rng = rng or random.Random()
        self._clock = clock
        self.metrics = PerformanceMetrics(clock)
        self.transcript: list[dict] = [{"role": "system", "content": SYSTEM_PROMPT}]
        self._lock = asyncio.Lock()   # one dispatch at a time on the shared transcript

    # ============================================================
    # CONVERSATION
    # ============================================================

    async def chat(self, user_message: str) -> str:
        async with self._lock:
            return await self._chat(user_message)

    async def _chat(self, user_message: str) -> str:
        self.metrics.total_conversations += 1
        self.events.emit(EventType.CONVERSATION_STARTED, message=user_message)
        self._append({"role": "user", "content": user_message})

        try:
            reply = await self.router.complete(self.transcript)

            if reply.tool_call is None:
                text = self.enhance_response(reply.text)
                self._append({"role": "assistant", "content": text})
                self.events.emit(EventType.CONVERSATION_COMPLETED, response=text)
                return text

            call = reply.tool_call
            self._append(call.to_message())
            try:
                result = await self.handle_tool_call(call.name, call.arguments)
            except UnknownOperation as e:
                self._append(self._tool_message(call.id, {"success": False, "error": str(e)}))
                apology = "Sorry, I can't do that. I can create, cancel, list or check auto top-up strategies, or show analytics."
                self._append({"role": "assistant", "content": apology})
                self.events.emit(EventType.CONVERSATION_COMPLETED, response=apology)
                return apology

            self._append(self._tool_message(call.id, result))
            final = await self.router.complete(self.transcript, with_tools=False)
            text = self.enhance_response(final.text)
            self._append({"role": "assistant", "content": text})
            self.events.emit(EventType.CONVERSATION_COMPLETED, response=text)
            return text

        except Exception as e:
            logger.error(f"Chat error: {e}")
            self.events.emit(EventType.CONVERSATION_ERROR, error=e)
            return self.friendly_error_response(e)

    def _append(self, message: dict) -> None:
        self.transcript.append(message)
        overflow = len(self.transcript) - 1 - self.TRANSCRIPT_LIMIT
        if overflow > 0:
            # keep the system prompt; never start the window on an orphaned tool result
            del self.transcript[1:1 + overflow]
            while len(self.transcript) > 1 and self.transcript[1]["role"] == "tool":
                del self.transcript[1]

    @staticmethod
    def _tool_message(call_id: str, result: dict) -> dict:
        return {"role": "tool", "tool_call_id": call_id, "content": json.dumps(result, default=str)}

    async def handle_tool_call(self, name: str, arguments) -> dict:
        self.events.emit(EventType.FUNCTION_CALLED, function_name=name, args=arguments)
        try:
            intent = parse_tool_call(name, arguments)
            return await self.dispatch(intent)
        except Exception as e:
            self.events.emit(EventType.FUNCTION_ERROR, function_name=name, error=e)
            raise

    async def dispatch(self, intent: Intent) -> dict:
        if isinstance(intent, CreateIntent):
            return await self.gateway.create(intent.strategy_name, intent.target_address)
        if isinstance(intent, CancelIntent):
            return await self.gateway.cancel(intent.strategy_id)
        if isinstance(intent, ListIntent):
            return self.list_active_strategies()
        if isinstance(intent, CheckIntent):
            return await self.check_strategy_status(intent.strategy_id)
        if isinstance(intent, AnalyticsIntent):
            return self.generate_analytics(intent.timeframe)
        raise UnknownOperation(type(intent).__name__)

    # ============================================================
    # OPERATIONS
    # ============================================================

    def list_active_strategies(self) -> dict:
        strategies = [
            {
                "id": s.id,
                "name": s.name,
                "type": s.type,
                "description": s.description,
                "mode": s.mode.value,
                "created_at": s.to_dict()["created_at"],
                "parameters": {"target": s.target_address},
                "execution_count": s.execution_count,
                "success_rate": s.success_rate,
            }
            for s in self.store.list_active()
        ]
        return {"success": True, "strategies": strategies, "count": len(strategies)}

    async def check_strategy_status(self, strategy_id: Optional[str] = None) -> dict:
        if strategy_id:
            record = self.store.get(strategy_id)
            if record is None:
                return {"success": False, "message": "Strategy not found"}
            status, _ = await self._status_entry(record)
            return {"success": True, "strategy": status}

        entries, reports = [], []
        for record in self.store.list_active():
            status, report = await self._status_entry(record)
            entries.append(status)
            reports.append(report)
        return {"success": True, "strategies": entries, "summary": summarize(reports)}

    async def _status_entry(self, record):
        reading = await self.oracle.get_balance(record.target_address)
        report = evaluate(record, reading.amount)
        self.store.touch(record.id, self._clock())
        entry = record.to_dict()
        entry.update(
            current_balance=str(reading.amount),
            balance_in_supra=reading.supra,
            balance_is_placeholder=reading.is_synthetic,
            health_status=report.to_dict(),
        )
        return entry, report

    def generate_analytics(self, timeframe: str = "24h") -> dict:
        return generate_analytics(self.store, timeframe)

    def get_performance_metrics(self) -> dict:
        return self.metrics.snapshot(self.store)

    # ============================================================
    # RESPONSE SHAPING
    # ============================================================

    def enhance_response(self, response: str) -> str:
        enhanced = response or ""
        active = self.store.list_active()

        if active and self._rng.random() > 0.8:
            executions = sum(s.execution_count for s in active)
            enhanced += f"\n\nQuick Status: {len(active)} active strategies, {executions} total executions"

        avg = average_success_rate(self.store)
        if active and avg < 0.9:
            enhanced += (
                f"\n\nPerformance Alert: Success rate at {avg * 100:.1f}%. "
                "Consider running a health check."
            )
        return enhanced

    @staticmethod
    def friendly_error_response(error: Exception) -> str:
        message = str(error)
        code = getattr(error, "code", "")
        for key, text in _FRIENDLY_ERRORS.items():
            if code == key or key in message or key.lower() in message:
                return text
        return (
            f"I encountered an issue: \"{message}\". "
            "Please try again or contact support if this persists."
        )
