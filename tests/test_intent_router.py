"""
Language model boundary: request shape, retries, error mapping.
"""

import httpx
import pytest
from openai import APIConnectionError, APIStatusError

from core.errors import IntentRouterError
from core.intent_router import IntentRouter, ToolCall

from conftest import FakeOpenAI, text_completion, tool_completion

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(code: int) -> APIStatusError:
    return APIStatusError(f"status {code}", response=httpx.Response(code, request=_REQUEST), body=None)


class RecordingSleep:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


@pytest.mark.asyncio
async def test_tool_call_reply():
    client = FakeOpenAI([tool_completion("list_active_strategies", "{}", call_id="call_9")])
    reply = await IntentRouter(client).complete([{"role": "user", "content": "list"}])

    assert reply.tool_call == ToolCall(id="call_9", name="list_active_strategies", arguments="{}")
    assert reply.tokens_in == 20

    request = client.requests[0]
    assert request["model"] == "gpt-4"
    assert request["tool_choice"] == "auto"
    assert len(request["tools"]) == 5
    assert request["max_tokens"] == 1000


@pytest.mark.asyncio
async def test_final_reply_is_sent_without_tools():
    client = FakeOpenAI([text_completion("Done!")])
    reply = await IntentRouter(client).complete([], with_tools=False)

    assert reply.text == "Done!"
    assert reply.tool_call is None
    assert "tools" not in client.requests[0]
    assert client.requests[0]["max_tokens"] == 800


@pytest.mark.asyncio
async def test_transient_errors_are_retried_with_backoff():
    sleep = RecordingSleep()
    client = FakeOpenAI([_status_error(503), _status_error(529), text_completion("third time lucky")])
    router = IntentRouter(client, sleep=sleep)

    reply = await router.complete([])

    assert reply.text == "third time lucky"
    assert sleep.waits == [1, 2]
    assert router.call_count == 3


@pytest.mark.asyncio
async def test_retries_are_bounded():
    sleep = RecordingSleep()
    client = FakeOpenAI([_status_error(502)] * 4)
    with pytest.raises(IntentRouterError):
        await IntentRouter(client, sleep=sleep).complete([])
    assert len(client.requests) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    client = FakeOpenAI([_status_error(401)])
    with pytest.raises(IntentRouterError) as exc:
        await IntentRouter(client).complete([])
    assert "openai_error" in str(exc.value)
    assert exc.value.code == "OPENAI_ERROR"
    assert len(client.requests) == 1


@pytest.mark.asyncio
async def test_connection_error_maps_to_router_error():
    client = FakeOpenAI([APIConnectionError(request=_REQUEST)])
    with pytest.raises(IntentRouterError):
        await IntentRouter(client).complete([])


@pytest.mark.asyncio
async def test_only_first_of_several_tool_calls_is_used():
    response = tool_completion("list_active_strategies", "{}", call_id="a")
    second = tool_completion("show_analytics", "{}", call_id="b").choices[0].message.tool_calls[0]
    response.choices[0].message.tool_calls.append(second)

    reply = await IntentRouter(FakeOpenAI([response])).complete([])
    assert reply.tool_call.id == "a"


def test_tool_call_transcript_entry():
    message = ToolCall(id="c1", name="show_analytics", arguments='{"timeframe": "7d"}').to_message()
    assert message["role"] == "assistant"
    assert message["tool_calls"][0]["function"]["name"] == "show_analytics"


@pytest.mark.asyncio
async def test_verify_never_raises():
    assert await IntentRouter(FakeOpenAI([_status_error(500)])).verify() is False
    assert await IntentRouter(FakeOpenAI()).verify() is True
