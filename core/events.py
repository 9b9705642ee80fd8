"""
Event Bus - Lifecycle Notifications

The core emits events without knowing who listens. The CLI subscribes to
show notifications; tests subscribe to assert on them.

Handlers run synchronously, in registration order. A failing handler is
logged and skipped: observers can never break a core operation.
"""

import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger("autofi.events")


class EventType(Enum):
    STRATEGY_CREATED = "strategyCreated"
    STRATEGY_CREATION_FAILED = "strategyCreationFailed"
    STRATEGY_CANCELLED = "strategyCancelled"
    LOW_BALANCE_ALERT = "lowBalanceAlert"
    STRATEGY_ERROR = "strategyError"
    FUNCTION_CALLED = "functionCalled"
    FUNCTION_ERROR = "functionError"
    CONVERSATION_STARTED = "conversationStarted"
    CONVERSATION_COMPLETED = "conversationCompleted"
    CONVERSATION_ERROR = "conversationError"


@dataclass
class Event:
    event_type: EventType
    payload: dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Handler = Callable[[Event], None]


class EventBus:
    """Synchronous observer registry keyed by EventType."""

    def __init__(self, history_size: int = 50):
        self._handlers: dict[EventType, list[Handler]] = {}
        self._history: list[Event] = []
        self._history_size = history_size

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> bool:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def emit(self, event_type: EventType, **payload) -> Event:
        event = Event(event_type=event_type, payload=payload)
        self._history.append(event)
        if len(self._history) > self._history_size:
            self._history = self._history[-self._history_size:]

        for handler in list(self._handlers.get(event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Event handler for {event_type.value} failed: {e}")
        return event

    def recent(self, event_type: Optional[EventType] = None, limit: int = 10) -> list[Event]:
        events = self._history
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events[-limit:]
