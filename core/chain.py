"""
Supra Client - On-Chain Transaction Layer

Bridges AutoFi decisions (Python) and Supra L1 execution.

Design:
- Plain REST against the Supra RPC node (/rpc/v1/...) over one shared aiohttp session
- Ed25519 signing with `cryptography`; the node encodes the raw transaction
  into its canonical signing message, we only sign bytes
- Every failure is raised as NetworkError (transport) or RpcError (node said no);
  callers decide whether that is fatal (it never is for create/cancel/balance)
- Account address = sha3-256(public_key || 0x00), the Move single-key scheme

Designed for: Supra automation registry (auto top-up tasks)
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .constitution import (
    TOPUP_LAWS,
    SUPRA_COIN_TYPE,
    ESTIMATE_FEE_FUNCTION,
    CANCEL_TASK_FUNCTION,
    DEFAULT_RPC_URL,
    EXPLORER_TX_URL,
)
from .errors import NetworkError, RpcError

logger = logging.getLogger("autofi.chain")

_SINGLE_KEY_SCHEME = b"\x00"


def _strip_0x(value: str) -> str:
    return value[2:] if value.lower().startswith("0x") else value


@dataclass
class AutomationRequest:
    """Everything the registry needs to schedule one automated entry function."""
    sender: str
    sequence_number: int
    module_address: str
    module_name: str
    function_name: str
    args: list
    max_gas_amount: int
    gas_price_cap: int
    automation_fee_cap: int
    expiration_timestamp_secs: int
    type_args: tuple = ()

    def to_payload(self) -> dict:
        return {
            "type": "automation_registration_payload",
            "function": f"0x{_strip_0x(self.module_address)}::{self.module_name}::{self.function_name}",
            "type_arguments": list(self.type_args),
            "arguments": list(self.args),
            "max_gas_amount": str(self.max_gas_amount),
            "gas_price_cap": str(self.gas_price_cap),
            "automation_fee_cap_for_epoch": str(self.automation_fee_cap),
            "expiration_timestamp_secs": str(self.expiration_timestamp_secs),
            "aux_data": [],
        }


class SupraClient:
    """
    Async Supra RPC client bound to one signing account.

    Usage:
        client = SupraClient(rpc_url, private_key_hex)
        seq = await client.get_sequence_number(client.address)
        balance = await client.get_coin_balance(target)
        await client.close()
    """

    def __init__(self, rpc_url: str = DEFAULT_RPC_URL, private_key_hex: str = "",
                 chain_id: int = 6, timeout_seconds: float = 30.0):
        self.rpc_url = rpc_url.rstrip("/")
        self.chain_id = chain_id
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

        self._signing_key: Optional[Ed25519PrivateKey] = None
        self._public_key_hex: str = ""
        self.address: str = ""
        if private_key_hex:
            self._load_key(private_key_hex)

        self._tx_count: int = 0
        self._last_error: str = ""

    def _load_key(self, private_key_hex: str) -> None:
        seed = bytes.fromhex(_strip_0x(private_key_hex))
        self._signing_key = Ed25519PrivateKey.from_private_bytes(seed)
        public = self._signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._public_key_hex = "0x" + public.hex()
        self.address = "0x" + hashlib.sha3_256(public + _SINGLE_KEY_SCHEME).hexdigest()

    # ============================================================
    # TRANSPORT
    # ============================================================

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = f"{self.rpc_url}{path}"
        session = await self._get_session()
        try:
            async with session.request(method, url, json=payload) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    self._last_error = f"{resp.status} {path}"
                    raise RpcError(f"RPC {method} {path} returned {resp.status}: {body[:200]}", resp.status)
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    body = await resp.text()
                    self._last_error = f"unparseable body from {path}"
                    raise RpcError(f"RPC {method} {path} returned a non-JSON body: {body[:200]}", resp.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._last_error = f"{type(e).__name__}: {e}"
            raise NetworkError(f"network error calling {path}: {type(e).__name__}: {e}") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    # ============================================================
    # READS
    # ============================================================

    async def get_account_info(self, address: str) -> dict:
        data = await self._request("GET", f"/rpc/v1/accounts/{address}")
        if not isinstance(data, dict):
            raise RpcError(f"unexpected account payload for {address}: {data!r}")
        return data

    async def get_sequence_number(self, address: str) -> int:
        info = await self.get_account_info(address)
        try:
            return int(info["sequence_number"])
        except (KeyError, TypeError, ValueError) as e:
            raise RpcError(f"account {address} has no sequence_number") from e

    async def view(self, function: str, type_arguments: list, arguments: list) -> list:
        data = await self._request("POST", "/rpc/v1/view", {
            "function": function,
            "type_arguments": type_arguments,
            "arguments": arguments,
        })
        result = data.get("result") if isinstance(data, dict) else data
        if not isinstance(result, list):
            raise RpcError(f"view {function} returned no result list")
        return result

    async def get_coin_balance(self, address: str, coin_type: str = SUPRA_COIN_TYPE) -> int:
        """Balance in micro units."""
        result = await self.view("0x1::coin::balance", [coin_type], [address])
        try:
            return int(result[0])
        except (IndexError, TypeError, ValueError) as e:
            raise RpcError(f"unparseable balance for {address}: {result!r}") from e

    async def estimate_automation_fee(self, gas_units: int = TOPUP_LAWS.FEE_ESTIMATE_GAS_UNITS) -> Optional[int]:
        """Quoted fee for one epoch, or None if the registry returns nothing usable."""
        result = await self.view(ESTIMATE_FEE_FUNCTION, [], [str(gas_units)])
        if not result or result[0] in (None, ""):
            return None
        return int(result[0])

    # ============================================================
    # WRITES
    # ============================================================

    async def _sign_and_submit(self, raw_tx: dict) -> Any:
        if self._signing_key is None:
            raise RpcError("no signing key configured")

        encoded = await self._request("POST", "/rpc/v1/transactions/encode", raw_tx)
        message_hex = encoded.get("message") if isinstance(encoded, dict) else encoded
        if not isinstance(message_hex, str):
            raise RpcError(f"encode returned no signing message: {encoded!r}")

        signature = self._signing_key.sign(bytes.fromhex(_strip_0x(message_hex)))
        submission = dict(raw_tx)
        submission["signature"] = {
            "type": "ed25519_signature",
            "public_key": self._public_key_hex,
            "signature": "0x" + signature.hex(),
        }
        result = await self._request("POST", "/rpc/v1/transactions/submit", submission)
        self._tx_count += 1
        return result

    def _raw_tx(self, sequence_number: int, payload: dict, max_gas: int, gas_price: int,
                expiry: int) -> dict:
        return {
            "sender": self.address,
            "sequence_number": str(sequence_number),
            "payload": payload,
            "max_gas_amount": str(max_gas),
            "gas_unit_price": str(gas_price),
            "expiration_timestamp_secs": str(expiry),
            "chain_id": self.chain_id,
        }

    async def register_automation(self, request: AutomationRequest) -> Any:
        """Submit an automation registration. Returns the raw submission result."""
        logger.info(
            f"Registering automation {request.module_name}::{request.function_name} "
            f"seq={request.sequence_number} fee_cap={request.automation_fee_cap}"
        )
        raw_tx = self._raw_tx(
            request.sequence_number,
            request.to_payload(),
            request.max_gas_amount,
            request.gas_price_cap,
            request.expiration_timestamp_secs,
        )
        return await self._sign_and_submit(raw_tx)

    async def cancel_automation(self, task_id: int) -> Any:
        """Submit cancel_task(task_id) for a registered automation."""
        sequence_number = await self.get_sequence_number(self.address)
        payload = {
            "type": "entry_function_payload",
            "function": CANCEL_TASK_FUNCTION,
            "type_arguments": [],
            "arguments": [str(task_id)],
        }
        raw_tx = self._raw_tx(
            sequence_number,
            payload,
            TOPUP_LAWS.MAX_GAS_AMOUNT,
            TOPUP_LAWS.GAS_PRICE_CAP,
            int(time.time()) + 300,
        )
        return await self._sign_and_submit(raw_tx)

    # ============================================================
    # STATUS
    # ============================================================

    @staticmethod
    def get_explorer_url(tx_hash: str) -> str:
        return EXPLORER_TX_URL.format(tx_hash=tx_hash)

    def get_status(self) -> dict:
        return {
            "rpc_url": self.rpc_url,
            "address": self.address[:10] + "..." if self.address else "",
            "tx_count": self._tx_count,
            "last_error": self._last_error,
        }
