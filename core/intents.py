"""
Intents - the closed set of operations the language model may invoke.

The model's tool call (name + JSON argument string) is parsed into exactly one
of CreateIntent / CancelIntent / ListIntent / CheckIntent / AnalyticsIntent
before any core logic runs. Anything else raises UnknownOperation.
"""

import json
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constitution import ANALYTICS_TIMEFRAMES
from .errors import UnknownOperation


class Operation(str, Enum):
    CREATE = "create_auto_topup_strategy"
    CANCEL = "cancel_automation_strategy"
    LIST = "list_active_strategies"
    CHECK = "check_strategy_status"
    ANALYTICS = "show_analytics"


class CreateIntent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    operation: Literal[Operation.CREATE] = Operation.CREATE
    strategy_name: str = Field(..., alias="strategyName", min_length=1)
    target_address: str = Field(..., alias="targetAddress")


class CancelIntent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    operation: Literal[Operation.CANCEL] = Operation.CANCEL
    strategy_id: str = Field(..., alias="strategyId", min_length=1)


class ListIntent(BaseModel):
    operation: Literal[Operation.LIST] = Operation.LIST


class CheckIntent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    operation: Literal[Operation.CHECK] = Operation.CHECK
    strategy_id: Optional[str] = Field(None, alias="strategyId")


class AnalyticsIntent(BaseModel):
    operation: Literal[Operation.ANALYTICS] = Operation.ANALYTICS
    timeframe: Literal["1h", "24h", "7d", "30d"] = "24h"


Intent = Union[CreateIntent, CancelIntent, ListIntent, CheckIntent, AnalyticsIntent]

_INTENT_MODELS = {
    Operation.CREATE: CreateIntent,
    Operation.CANCEL: CancelIntent,
    Operation.LIST: ListIntent,
    Operation.CHECK: CheckIntent,
    Operation.ANALYTICS: AnalyticsIntent,
}


def parse_tool_call(name: str, arguments: Union[str, dict, None]) -> Intent:
    """Validate a raw tool call into an Intent. Raises UnknownOperation."""
    try:
        operation = Operation(name)
    except ValueError:
        raise UnknownOperation(name)

    if arguments is None or arguments == "":
        args = {}
    elif isinstance(arguments, dict):
        args = dict(arguments)
    else:
        try:
            args = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise UnknownOperation(name, f"arguments are not valid JSON: {e}")
    if not isinstance(args, dict):
        raise UnknownOperation(name, "arguments must be a JSON object")

    # operation is fixed by the tool name, never by the model's arguments
    args.pop("operation", None)
    if operation == Operation.ANALYTICS and args.get("timeframe") is None:
        args.pop("timeframe", None)

    try:
        return _INTENT_MODELS[operation].model_validate(args)
    except ValidationError as e:
        raise UnknownOperation(name, f"invalid arguments: {e.errors()[0].get('msg', e)}")


# ============================================================
# TOOL SCHEMA (sent to the language model)
# ============================================================

TOOL_DEFINITIONS: list[dict] = [
    {
        "type": "function",
        "function": {
            "name": Operation.CREATE.value,
            "description": "Create an automated top-up strategy with validation and cost estimation",
            "parameters": {
                "type": "object",
                "properties": {
                    "strategyName": {
                        "type": "string",
                        "description": "Human readable name for the strategy (e.g., 'Trading Wallet Auto-Fund')",
                    },
                    "targetAddress": {
                        "type": "string",
                        "description": "32-byte hex address to monitor and top-up (must start with 0x)",
                    },
                },
                "required": ["strategyName", "targetAddress"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": Operation.CANCEL.value,
            "description": "Cancel an existing automation strategy",
            "parameters": {
                "type": "object",
                "properties": {
                    "strategyId": {"type": "string", "description": "ID of the strategy to cancel"},
                },
                "required": ["strategyId"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": Operation.LIST.value,
            "description": "List all active automation strategies with performance metrics",
            "parameters": {"type": "object", "properties": {}},
        },
    },
    {
        "type": "function",
        "function": {
            "name": Operation.CHECK.value,
            "description": "Check detailed status and balance health of strategies",
            "parameters": {
                "type": "object",
                "properties": {
                    "strategyId": {"type": "string", "description": "Optional specific strategy ID to check"},
                },
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": Operation.ANALYTICS.value,
            "description": "Show analytics dashboard with insights",
            "parameters": {
                "type": "object",
                "properties": {
                    "timeframe": {
                        "type": "string",
                        "enum": list(ANALYTICS_TIMEFRAMES),
                        "description": "Analytics timeframe",
                    },
                },
            },
        },
    },
]
