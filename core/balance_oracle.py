"""
Balance Oracle - target account balance lookups.

RPC failures never reach the caller: a synthetic placeholder balance is
returned instead and flagged with is_synthetic=True.
"""

import random
import logging
from dataclasses import dataclass
from typing import Optional

from .constitution import TOPUP_LAWS, SUPRA_COIN_TYPE, to_supra
from .errors import NetworkError

logger = logging.getLogger("autofi.balance")


@dataclass
class BalanceReading:
    address: str
    amount: int                  # micro units
    is_synthetic: bool = False
    error: str = ""

    @property
    def supra(self) -> float:
        return to_supra(self.amount)


class BalanceOracle:
    """Reads SupraCoin balances through the chain client."""

    def __init__(self, chain, coin_type: str = SUPRA_COIN_TYPE, rng: Optional[random.Random] = None):
        self._chain = chain
        self._coin_type = coin_type
        self._rng = rng or random.Random()

    async def fetch(self, address: str) -> int:
        """Raw lookup. Raises NetworkError/RpcError."""
        return await self._chain.get_coin_balance(address, self._coin_type)

    async def get_balance(self, address: str) -> BalanceReading:
        try:
            amount = await self.fetch(address)
            return BalanceReading(address=address, amount=amount)
        except NetworkError as e:
            synthetic = self._rng.randrange(TOPUP_LAWS.SYNTHETIC_BALANCE_MAX_MICRO)
            logger.warning(
                f"Balance check failed for {address[:12]}...: {e} "
                f"(using placeholder {to_supra(synthetic):.2f} SUPRA)"
            )
            return BalanceReading(address=address, amount=synthetic, is_synthetic=True, error=str(e))
