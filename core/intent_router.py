"""
Intent Router - language model boundary.

Sends the running transcript plus the fixed tool set to an OpenAI-compatible
chat completions endpoint. The reply is either plain text or exactly one tool
call; the agent parses the call into an Intent and dispatches it.

Transient 5xx responses are retried twice (1s, 2s). Anything else becomes
IntentRouterError and the agent answers with an apology.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from openai import AsyncOpenAI, APIError
from openai import APIStatusError as OpenAIAPIStatusError

from .errors import IntentRouterError
from .intents import TOOL_DEFINITIONS

logger = logging.getLogger("autofi.intent_router")

_TRANSIENT_STATUS = (500, 502, 503, 529)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str

    def to_message(self) -> dict:
        """Assistant transcript entry announcing this call."""
        return {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": self.id,
                "type": "function",
                "function": {"name": self.name, "arguments": self.arguments},
            }],
        }


@dataclass
class RouterReply:
    text: str = ""
    tool_call: Optional[ToolCall] = None
    tokens_in: int = 0
    tokens_out: int = 0


class IntentRouter:
    """
    Usage:
        router = IntentRouter(AsyncOpenAI(api_key=...), model="gpt-4")
        reply = await router.complete(messages)
        if reply.tool_call: ...
    """

    MAX_RETRIES = 2

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        final_max_tokens: int = 800,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.final_max_tokens = final_max_tokens
        self._sleep = sleep
        self.call_count: int = 0

    async def complete(self, messages: list[dict], with_tools: bool = True) -> RouterReply:
        """
        with_tools=True  -> intent extraction (model may call one tool)
        with_tools=False -> final natural-language wrap of a tool result
        """
        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if with_tools:
            kwargs.update(
                tools=TOOL_DEFINITIONS,
                tool_choice="auto",
                max_tokens=self.max_tokens,
                presence_penalty=0.1,
                frequency_penalty=0.1,
            )
        else:
            kwargs["max_tokens"] = self.final_max_tokens

        for attempt in range(self.MAX_RETRIES + 1):
            try:
                self.call_count += 1
                response = await self._client.chat.completions.create(**kwargs)
                return self._to_reply(response)
            except OpenAIAPIStatusError as e:
                if e.status_code in _TRANSIENT_STATUS and attempt < self.MAX_RETRIES:
                    wait = 2 ** attempt  # 1s, 2s
                    logger.warning(
                        f"LLM returned {e.status_code} (attempt {attempt + 1}/{self.MAX_RETRIES + 1}), "
                        f"retrying in {wait}s"
                    )
                    await self._sleep(wait)
                    continue
                raise IntentRouterError(f"openai_error: {e.status_code} {e.message}") from e
            except APIError as e:
                raise IntentRouterError(f"openai_error: {e}") from e

        raise IntentRouterError("openai_error: retries exhausted")

    @staticmethod
    def _to_reply(response) -> RouterReply:
        if not response.choices:
            raise IntentRouterError("openai_error: empty completion")
        message = response.choices[0].message
        usage = getattr(response, "usage", None)
        reply = RouterReply(
            text=message.content or "",
            tokens_in=usage.prompt_tokens if usage else 0,
            tokens_out=usage.completion_tokens if usage else 0,
        )
        tool_calls = getattr(message, "tool_calls", None) or []
        if tool_calls:
            if len(tool_calls) > 1:
                logger.warning(f"Model requested {len(tool_calls)} tool calls; only the first is executed")
            call = tool_calls[0]
            reply.tool_call = ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
        return reply

    async def verify(self) -> bool:
        """Startup ping. Failure is logged, never fatal."""
        try:
            await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "test"}],
                max_tokens=5,
            )
            logger.info("OpenAI connection verified")
            return True
        except Exception as e:
            logger.warning(f"OpenAI connection issue, but proceeding: {e}")
            return False
