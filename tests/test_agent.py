"""
Conversation flow: user text -> tool call -> dispatch -> final reply.
"""

import json
import asyncio

import pytest

from core.errors import InsufficientBalance, IntentRouterError, NetworkError
from core.events import EventType
from core.agent import AutoFiAgent

from conftest import OTHER_TARGET, TARGET, text_completion, tool_completion


def _create_call(name="Trading Wallet", target=TARGET):
    return tool_completion(
        "create_auto_topup_strategy",
        json.dumps({"strategyName": name, "targetAddress": target}),
    )


def _tool_result(client, request_index=1):
    """Decoded tool message the agent sent back to the model."""
    tool_msg = client.requests[request_index]["messages"][-1]
    assert tool_msg["role"] == "tool"
    return json.loads(tool_msg["content"])


@pytest.mark.asyncio
async def test_plain_text_reply(chain, make_agent, events):
    agent, client = make_agent(chain, [text_completion("Hi! I manage auto top-ups.")])

    reply = await agent.chat("hello")

    assert reply == "Hi! I manage auto top-ups."
    assert agent.transcript[0]["role"] == "system"
    assert agent.transcript[-1] == {"role": "assistant", "content": reply}
    assert agent.metrics.total_conversations == 1
    kinds = [e.event_type for e in events.recent()]
    assert kinds == [EventType.CONVERSATION_STARTED, EventType.CONVERSATION_COMPLETED]


@pytest.mark.asyncio
async def test_end_to_end_create_with_unreachable_rpc(offline_chain, store, make_agent):
    agent, client = make_agent(offline_chain, [_create_call(), text_completion("Your strategy is live (simulated).")])

    reply = await agent.chat(f"Create auto top-up for my wallet {TARGET}")

    assert reply.startswith("Your strategy is live")
    active = store.list_active()
    assert len(active) == 1
    assert active[0].name == "Trading Wallet"
    assert active[0].mode.value == "SIMULATION"

    result = _tool_result(client)
    assert result["success"] is True
    assert result["mode"] == "SIMULATION"
    assert result["strategy_id"] == active[0].id
    assert "tools" not in client.requests[1]

    roles = [m["role"] for m in agent.transcript]
    assert roles == ["system", "user", "assistant", "tool", "assistant"]
    assert agent.transcript[3]["tool_call_id"] == "call_1"


@pytest.mark.asyncio
async def test_invalid_address_result_is_handed_to_the_model(chain, store, make_agent):
    agent, client = make_agent(chain, [_create_call(target="0x1234"), text_completion("That address looks wrong.")])

    reply = await agent.chat("create for 0x1234")

    assert reply == "That address looks wrong."
    assert len(store) == 0
    assert _tool_result(client)["error_code"] == "INVALID_ADDRESS"


@pytest.mark.asyncio
async def test_unknown_tool_gets_apology_and_conversation_continues(chain, make_agent, events):
    agent, client = make_agent(chain, [
        tool_completion("drain_wallet", "{}"),
        text_completion("Still here."),
    ])

    apology = await agent.chat("drain it")
    assert apology.startswith("Sorry, I can't do that")
    assert len(client.requests) == 1
    assert len(events.recent(EventType.FUNCTION_ERROR)) == 1
    # the tool call still gets an answer so the transcript stays valid
    assert agent.transcript[-2]["role"] == "tool"

    assert await agent.chat("ok then") == "Still here."


@pytest.mark.asyncio
async def test_router_failure_returns_friendly_text(chain, make_agent, events, monkeypatch):
    agent, _ = make_agent(chain)

    async def broken(*args, **kwargs):
        raise IntentRouterError("openai_error: 401 bad key")

    monkeypatch.setattr(agent.router, "complete", broken)

    reply = await agent.chat("hello")

    assert reply == "AI service temporarily unavailable. Please try again in a moment."
    assert len(events.recent(EventType.CONVERSATION_ERROR)) == 1


@pytest.mark.asyncio
async def test_list_and_cancel_through_chat(chain, store, make_agent):
    agent, client = make_agent(chain)
    created = await agent.gateway.create("Wallet", TARGET)
    sid = created["strategy_id"]

    client.chat.completions.script = [
        tool_completion("list_active_strategies", "{}"),
        text_completion("You have one strategy."),
        tool_completion("cancel_automation_strategy", json.dumps({"strategyId": sid}), call_id="call_2"),
        text_completion("Cancelled."),
    ]

    await agent.chat("list my strategies")
    listed = _tool_result(client, 1)
    assert listed["count"] == 1
    assert listed["strategies"][0]["parameters"] == {"target": TARGET}

    await agent.chat(f"cancel {sid}")
    assert _tool_result(client, 3)["message"] == "Successfully cancelled: Wallet"
    assert store.list_active() == []


@pytest.mark.asyncio
async def test_check_status_refreshes_last_checked(chain, store, make_agent):
    agent, _ = make_agent(chain)
    created = await agent.gateway.create("Wallet", TARGET)
    chain.balances[TARGET] = 700_000_000

    single = await agent.check_strategy_status(created["strategy_id"])
    assert single["success"] is True
    assert single["strategy"]["health_status"]["status"] == "approaching_threshold"
    assert single["strategy"]["balance_in_supra"] == pytest.approx(700.0)
    assert single["strategy"]["balance_is_placeholder"] is False
    assert store.get(created["strategy_id"]).last_checked is not None

    overall = await agent.check_strategy_status()
    assert overall["summary"]["approaching_strategies"] == 1
    assert overall["summary"]["overall_health"] == "excellent"

    assert await agent.check_strategy_status("topup_nope") == {"success": False, "message": "Strategy not found"}


@pytest.mark.asyncio
async def test_analytics_and_metrics(chain, store, make_agent):
    agent, _ = make_agent(chain)
    created = await agent.gateway.create("Wallet", TARGET)
    store.record_execution(created["strategy_id"], True, amount_micro=50_000_000)

    analytics = agent.generate_analytics("7d")
    assert analytics["analytics"]["timeframe"] == "7d"
    assert analytics["analytics"]["overview"]["total_executions"] == 1
    assert analytics["analytics"]["overview"]["total_value_transferred"] == pytest.approx(50.0)
    assert analytics["analytics"]["costs"]["estimated_monthly_cost"] == 2.5

    metrics = agent.get_performance_metrics()
    assert metrics["total_strategies_created"] == 1
    assert metrics["active_strategies"] == 1
    assert metrics["total_executions"] == 1


@pytest.mark.asyncio
async def test_enhance_response(chain, store, make_agent):
    quiet, _ = make_agent(chain, rng_value=0.1)
    assert quiet.enhance_response("Hello") == "Hello"

    created = await quiet.gateway.create("Wallet", TARGET)
    chatty, _ = make_agent(chain, rng_value=0.95)
    assert "Quick Status: 1 active strategies" in chatty.enhance_response("Hello")

    store.record_execution(created["strategy_id"], False)
    assert "Performance Alert: Success rate at 0.0%" in quiet.enhance_response("Hello")


@pytest.mark.parametrize(
    "error, expected",
    [
        (InsufficientBalance(1, 0), "Your account balance is too low"),
        (NetworkError("boom"), "Network connection issue"),
        (IntentRouterError("openai_error"), "AI service temporarily unavailable"),
        (RuntimeError("AUTOMATION_REGISTRY_FULL"), "Automation registry is at capacity"),
        (RuntimeError("something odd"), 'I encountered an issue: "something odd"'),
    ],
)
def test_friendly_error_response(error, expected):
    assert AutoFiAgent.friendly_error_response(error).startswith(expected)


@pytest.mark.asyncio
async def test_transcript_is_bounded(chain, make_agent):
    agent, _ = make_agent(chain)
    for i in range(AutoFiAgent.TRANSCRIPT_LIMIT):
        await agent.chat(f"message {i}")
    assert len(agent.transcript) == AutoFiAgent.TRANSCRIPT_LIMIT + 1
    assert agent.transcript[0]["role"] == "system"


@pytest.mark.asyncio
async def test_concurrent_chats_keep_tool_results_next_to_their_calls(chain, make_agent):
    script = [
        tool_completion("create_auto_topup_strategy",
                        json.dumps({"strategyName": "A", "targetAddress": TARGET}), call_id="call_A"),
        text_completion("Created A."),
        tool_completion("create_auto_topup_strategy",
                        json.dumps({"strategyName": "B", "targetAddress": OTHER_TARGET}), call_id="call_B"),
        text_completion("Created B."),
    ]
    agent, _ = make_agent(chain, script)

    replies = await asyncio.gather(agent.chat("make A"), agent.chat("make B"))

    assert replies == ["Created A.", "Created B."]
    messages = agent.transcript[1:]
    assert [m["role"] for m in messages] == ["user", "assistant", "tool", "assistant"] * 2
    for i, message in enumerate(messages):
        if message.get("tool_calls"):
            follow = messages[i + 1]
            assert follow["role"] == "tool"
            assert follow["tool_call_id"] == message["tool_calls"][0]["id"]
