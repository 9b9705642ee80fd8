from core.events import EventBus, EventType


def test_subscribers_receive_payload():
    bus = EventBus()
    seen = []
    bus.subscribe(EventType.STRATEGY_CREATED, seen.append)

    event = bus.emit(EventType.STRATEGY_CREATED, strategy="s1", mode="SIMULATION")

    assert seen == [event]
    assert event.payload == {"strategy": "s1", "mode": "SIMULATION"}


def test_handlers_only_get_their_event_type():
    bus = EventBus()
    seen = []
    bus.subscribe(EventType.LOW_BALANCE_ALERT, seen.append)
    bus.emit(EventType.STRATEGY_CREATED)
    assert seen == []


def test_failing_handler_does_not_break_emit_or_other_handlers():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("listener bug")

    bus.subscribe(EventType.STRATEGY_ERROR, broken)
    bus.subscribe(EventType.STRATEGY_ERROR, seen.append)

    bus.emit(EventType.STRATEGY_ERROR, strategy_id="topup_1")

    assert len(seen) == 1


def test_unsubscribe():
    bus = EventBus()
    seen = []
    bus.subscribe(EventType.FUNCTION_CALLED, seen.append)
    assert bus.unsubscribe(EventType.FUNCTION_CALLED, seen.append) is True
    assert bus.unsubscribe(EventType.FUNCTION_CALLED, seen.append) is False
    bus.emit(EventType.FUNCTION_CALLED)
    assert seen == []


def test_history_is_bounded_and_filterable():
    bus = EventBus(history_size=3)
    for _ in range(4):
        bus.emit(EventType.CONVERSATION_STARTED)
    bus.emit(EventType.CONVERSATION_ERROR, error="x")

    assert len(bus.recent(limit=10)) == 3
    assert [e.event_type for e in bus.recent(EventType.CONVERSATION_ERROR)] == [EventType.CONVERSATION_ERROR]
