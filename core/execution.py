"""
Execution Gateway - Strategy Registration & Cancellation

Turns a validated create/cancel request into on-chain automation calls,
with a two-tier fallback policy:

  Tier 1 (REAL_DEPLOYMENT): register the automation task on Supra
  Tier 2 (SIMULATION):      any failure in tier 1 -> local-only record

A create call with a well-formed address ALWAYS yields exactly one active
StrategyRecord. Only address validation can stop it, and that happens before
any side effect. Cancellation always deactivates the local record; whether the
on-chain task was torn down is reported through mode + note.

No automatic retry: one failed attempt falls straight through to simulation.
"""

import re
import time
import random
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .constitution import (
    TOPUP_LAWS,
    ExecutionMode,
    AUTOMATION_MODULE,
    AUTOMATION_FUNCTION,
    SUPRA_COIN_TYPE,
    to_supra,
)
from .chain import AutomationRequest, SupraClient
from .errors import InvalidAddress, InsufficientBalance, RpcError
from .events import EventBus, EventType
from .strategy_store import StrategyRecord, StrategyStore

logger = logging.getLogger("autofi.execution")

ADDRESS_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")

_TX_HASH_FIELDS = ("hash", "txHash", "transaction_hash", "tx_hash")


def is_valid_address(address) -> bool:
    """True iff address is '0x' followed by exactly 64 hex characters."""
    return isinstance(address, str) and ADDRESS_PATTERN.fullmatch(address) is not None


def extract_tx_hash(result: Any) -> str:
    """Pull the transaction hash out of a submission result, whatever it is called."""
    if isinstance(result, dict):
        for key in _TX_HASH_FIELDS:
            value = result.get(key)
            if value:
                return str(value)
    if isinstance(result, str) and result.startswith("0x"):
        return result
    raise RpcError(f"No valid transaction hash found in result: {result!r}")


def task_id_from_hash(tx_hash: str) -> int:
    """Deterministic task id: the last 8 hex characters of the hash."""
    return int(tx_hash[-8:], 16)


@dataclass
class DeploymentResult:
    tx_hash: str
    task_id: int
    fee_cap: int


class ExecutionGateway:
    """
    Usage:
        gateway = ExecutionGateway(chain, store, events, contract_address)
        result = await gateway.create("Trading Wallet", "0x" + "11" * 32)
        await gateway.cancel(result["strategy_id"])
    """

    def __init__(
        self,
        chain: SupraClient,
        store: StrategyStore,
        events: EventBus,
        contract_address: str,
        confirm_delay_seconds: float = TOPUP_LAWS.CONFIRM_DELAY_SECONDS,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._chain = chain
        self._store = store
        self._events = events
        self._contract_address = contract_address
        self._confirm_delay = confirm_delay_seconds
        self._rng = rng or random.Random()
        self._clock = clock

    # ============================================================
    # CREATE
    # ============================================================

    async def create(self, name: str, target_address: str) -> dict:
        logger.info(f"Creating auto top-up strategy '{name}' for {target_address}")

        if not is_valid_address(target_address):
            error = InvalidAddress(target_address)
            logger.warning(str(error))
            self._events.emit(
                EventType.STRATEGY_CREATION_FAILED,
                error=error,
                params={"strategy_name": name, "target_address": target_address},
            )
            return {
                "success": False,
                "error": str(error),
                "error_code": error.code,
                "message": f"Failed to create strategy: {error}",
                "suggestions": self.generate_error_suggestions(error),
            }

        await self._precheck_target(target_address)

        strategy_id = self._store.new_id()
        note = None
        deploy_error = None
        try:
            deployment = await self.deploy_real(target_address)
            mode = ExecutionMode.REAL_DEPLOYMENT
            tx_hash, task_id = deployment.tx_hash, deployment.task_id
            description = (
                f"Smart auto top-up for {target_address} - maintains "
                f"{to_supra(TOPUP_LAWS.THRESHOLD_MICRO):.0f}+ SUPRA balance"
            )
        except Exception as e:
            logger.warning(f"Real deployment failed, using simulation: {e}")
            mode = ExecutionMode.SIMULATION
            tx_hash = "0x" + format(self._rng.getrandbits(256), "064x")
            task_id = self._rng.randrange(TOPUP_LAWS.SIMULATED_TASK_ID_MAX)
            description = f"Simulated auto top-up for {target_address}"
            note = f"Real deployment failed: {e}"
            deploy_error = e

        record = StrategyRecord(
            id=strategy_id,
            name=name,
            target_address=target_address,
            mode=mode,
            task_id=task_id,
            tx_hash=tx_hash,
            description=description,
            created_at=self._clock(),
        )
        self._store.put(record)
        self._events.emit(EventType.STRATEGY_CREATED, strategy=record, mode=mode.value)

        result = {
            "success": True,
            "strategy_id": strategy_id,
            "tx_hash": tx_hash,
            "task_id": task_id,
            "mode": mode.value,
            "strategy": record.to_dict(),
        }
        if mode == ExecutionMode.REAL_DEPLOYMENT:
            result["message"] = f"Strategy \"{name}\" deployed successfully!"
            result["estimated_monthly_cost"] = TOPUP_LAWS.ESTIMATED_MONTHLY_COST_SUPRA
            result["explorer_url"] = SupraClient.get_explorer_url(tx_hash)
        else:
            result["message"] = "Strategy created in simulation mode"
            result["note"] = note
            result["troubleshooting"] = self.generate_troubleshooting_tips(deploy_error)
        return result

    async def _precheck_target(self, target_address: str) -> None:
        """Warn (never fail) when the target is not registered for SupraCoin."""
        try:
            await self._chain.get_coin_balance(target_address, SUPRA_COIN_TYPE)
        except Exception as e:
            logger.warning(f"Target address may not be registered for SupraCoin: {e}")

    async def deploy_real(self, target_address: str) -> DeploymentResult:
        """
        Register the auto top-up task on-chain. Raises on any failure;
        create() turns that into a simulation record.
        """
        sender = self._chain.address
        sequence_number = await self._chain.get_sequence_number(sender)
        fee_cap = await self._estimate_fee_cap()
        await self._validate_sender_balance(sender, fee_cap)

        expiry = int(self._clock()) + TOPUP_LAWS.TASK_EXPIRY_SECONDS
        request = AutomationRequest(
            sender=sender,
            sequence_number=sequence_number,
            module_address=self._contract_address,
            module_name=AUTOMATION_MODULE,
            function_name=AUTOMATION_FUNCTION,
            args=[target_address],
            max_gas_amount=TOPUP_LAWS.MAX_GAS_AMOUNT,
            gas_price_cap=TOPUP_LAWS.GAS_PRICE_CAP,
            automation_fee_cap=fee_cap,
            expiration_timestamp_secs=expiry,
        )
        result = await self._chain.register_automation(request)
        tx_hash = extract_tx_hash(result)
        logger.info(f"Automation registered: {tx_hash}")

        await self._confirm_submission(tx_hash)
        return DeploymentResult(tx_hash=tx_hash, task_id=task_id_from_hash(tx_hash), fee_cap=fee_cap)

    async def _estimate_fee_cap(self) -> int:
        try:
            estimate = await self._chain.estimate_automation_fee(TOPUP_LAWS.FEE_ESTIMATE_GAS_UNITS)
        except Exception as e:
            logger.warning(f"Fee estimation failed, using default fee cap: {e}")
            return TOPUP_LAWS.DEFAULT_FEE_CAP_MICRO
        if not estimate:
            return TOPUP_LAWS.DEFAULT_FEE_CAP_MICRO
        fee_cap = estimate * TOPUP_LAWS.FEE_SAFETY_MULTIPLIER
        logger.info(f"Estimated fee with buffer: {to_supra(fee_cap)} SUPRA")
        return fee_cap

    async def _validate_sender_balance(self, sender: str, fee_cap: int) -> None:
        balance = await self._chain.get_coin_balance(sender, SUPRA_COIN_TYPE)
        required = fee_cap + TOPUP_LAWS.SENDER_BUFFER_MICRO
        if balance < required:
            raise InsufficientBalance(required, balance)

    async def _confirm_submission(self, tx_hash: str) -> None:
        """Give the network a moment, then re-read the sender account (best effort)."""
        if self._confirm_delay > 0:
            await asyncio.sleep(self._confirm_delay)
        try:
            await self._chain.get_account_info(self._chain.address)
            logger.info(f"Account readable after submission - {SupraClient.get_explorer_url(tx_hash)}")
        except Exception as e:
            logger.info(f"Transaction submitted; account re-read failed: {e}")

    # ============================================================
    # CANCEL
    # ============================================================

    async def cancel(self, strategy_id: str) -> dict:
        record = self._store.get(strategy_id)
        if record is None:
            return {"success": False, "message": "Strategy not found"}
        if not record.is_active:
            return {
                "success": False,
                "message": "Strategy already inactive",
                "strategy_id": strategy_id,
            }

        # deactivate before the chain call so a concurrent cancel sees it inactive
        self._store.set_active(strategy_id, False)

        mode = ExecutionMode.SIMULATION
        note = None
        tx_hash = None
        if record.remote_task_id is None:
            note = "Strategy was never registered on-chain; deactivated locally."
        else:
            try:
                result = await self._chain.cancel_automation(record.remote_task_id)
                tx_hash = extract_tx_hash(result)
                mode = ExecutionMode.REAL_DEPLOYMENT
            except Exception as e:
                logger.warning(f"On-chain cancellation failed for {strategy_id}: {e}")
                note = f"On-chain cancellation failed: {e}. The automation may still run on-chain."

        self._events.emit(EventType.STRATEGY_CANCELLED, strategy=record, mode=mode.value)

        result = {
            "success": True,
            "strategy_id": strategy_id,
            "mode": mode.value,
            "message": f"Successfully cancelled: {record.name}",
        }
        if tx_hash:
            result["tx_hash"] = tx_hash
        if note:
            result["note"] = note
        return result

    # ============================================================
    # USER-FACING HINTS
    # ============================================================

    @staticmethod
    def generate_error_suggestions(error: Exception) -> list[str]:
        message = str(error).lower()
        suggestions = []
        if "balance" in message:
            suggestions.append("Fund your account with more SUPRA")
            suggestions.append("Check that you have enough for both fees and the buffer amount")
        if "network" in message or "connection" in message:
            suggestions.append("Check your internet connection")
            suggestions.append("Try again in a few moments")
        if "address" in message:
            suggestions.append("Verify the wallet address is correct")
            suggestions.append("Ensure the address starts with 0x and has 64 hex characters")
        return suggestions

    @staticmethod
    def generate_troubleshooting_tips(error: Exception) -> list[str]:
        tips = [
            "Check your .env file configuration",
            "Ensure sufficient SUPRA balance (minimum 1000 SUPRA recommended)",
            "Verify network connectivity to the Supra RPC",
            "Try again - network issues are often temporary",
        ]
        if isinstance(error, InsufficientBalance):
            tips.insert(0, f"Top up the sender account: {error}")
        return tips
