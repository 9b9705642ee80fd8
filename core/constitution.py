"""
AutoFi Constitution - Fixed Automation Parameters

Every auto top-up strategy shares the same parameters. Users only choose a
name and a target address; thresholds, gas settings and fee policy are
hardcoded here and cannot be changed per strategy.

All SUPRA amounts are in micro units (1 SUPRA = 1_000_000 micro).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Final, Tuple


MICRO_PER_SUPRA: Final[int] = 1_000_000


def to_supra(amount_micro: int) -> float:
    """Convert micro units to whole SUPRA for display."""
    return amount_micro / MICRO_PER_SUPRA


class ExecutionMode(str, Enum):
    REAL_DEPLOYMENT = "REAL_DEPLOYMENT"   # Registered with the on-chain automation registry
    SIMULATION = "SIMULATION"             # Local-only record, chain call failed


# ============================================================
# AUTO TOP-UP PARAMETERS - identical for every strategy
# ============================================================

@dataclass(frozen=True)
class TopupLaws:
    """Frozen dataclass = truly immutable at runtime."""

    # --- STRATEGY ---
    THRESHOLD_MICRO: Final[int] = 600_000_000          # 600 SUPRA: top-up triggers below this
    TOPUP_MICRO: Final[int] = 50_000_000               # 50 SUPRA transferred per top-up
    APPROACHING_MULTIPLIER: Final[int] = 2             # < 2x threshold = approaching / low balance alert

    # --- AUTOMATION REGISTRATION ---
    MAX_GAS_AMOUNT: Final[int] = 5_000                 # Gas budget per automated execution
    GAS_PRICE_CAP: Final[int] = 200                    # Max gas unit price
    DEFAULT_FEE_CAP_MICRO: Final[int] = 50_000_000_000 # Used when fee estimation fails
    FEE_ESTIMATE_GAS_UNITS: Final[int] = 50_000        # Argument to estimate_automation_fee
    FEE_SAFETY_MULTIPLIER: Final[int] = 3              # Quoted estimate x3
    SENDER_BUFFER_MICRO: Final[int] = 100_000_000      # Sender must hold fee cap + 100 SUPRA
    TASK_EXPIRY_SECONDS: Final[int] = 24 * 60 * 60     # Registration expires 24h after submission
    CONFIRM_DELAY_SECONDS: Final[float] = 10.0         # Pause after submission before re-reading account

    # --- MONITORING ---
    MONITOR_INTERVAL_SECONDS: Final[int] = 600         # Background balance check every 10 min
    LOW_SENDER_BALANCE_WARN_SUPRA: Final[float] = 1000.0

    # --- SIMULATION ---
    SIMULATED_TASK_ID_MAX: Final[int] = 10_000
    SYNTHETIC_BALANCE_MAX_MICRO: Final[int] = 100_000_000   # Placeholder balance when RPC fails

    # --- COSTS ---
    ESTIMATED_MONTHLY_COST_SUPRA: Final[float] = 2.5


TOPUP_LAWS = TopupLaws()


# ============================================================
# ON-CHAIN IDENTIFIERS
# ============================================================

SUPRA_COIN_TYPE: Final[str] = "0x1::supra_coin::SupraCoin"
AUTOMATION_MODULE: Final[str] = "autofinal"
AUTOMATION_FUNCTION: Final[str] = "auto_topup_with_state"
ESTIMATE_FEE_FUNCTION: Final[str] = "0x1::automation_registry::estimate_automation_fee"
CANCEL_TASK_FUNCTION: Final[str] = "0x1::automation_registry::cancel_task"

DEFAULT_CONTRACT_ADDRESS: Final[str] = (
    "0x1c5acf62be507c27a7788a661b546224d806246765ff2695efece60194c6df05"
)
DEFAULT_RPC_URL: Final[str] = "https://rpc-testnet.supra.com"
EXPLORER_TX_URL: Final[str] = "https://testnet.suprascan.io/tx/{tx_hash}"

ANALYTICS_TIMEFRAMES: Final[Tuple[str, ...]] = ("1h", "24h", "7d", "30d")


# ============================================================
# AGENT IDENTITY
# ============================================================

SYSTEM_PROMPT: Final[str] = (
    "You are SUPRA - an intelligent DeFi automation assistant.\n\n"
    "Your expertise:\n"
    "- Create and manage auto top-up strategies (600 SUPRA threshold, 50 SUPRA top-up)\n"
    "- Provide real-time status insights and analytics\n"
    "- Offer optimization suggestions and cost projections\n"
    "- Explain DeFi concepts in simple terms\n\n"
    "Auto top-up details:\n"
    "- Fixed parameters: 600 SUPRA threshold, 50 SUPRA top-up amount\n"
    "- Users only provide: strategy name and target address\n"
    "- You handle all technical complexity automatically\n\n"
    "Communication style:\n"
    "- Friendly and professional, data-driven and precise with numbers\n"
    "- Always tell the user when a strategy runs in SIMULATION mode\n"
    "- Provide actionable next steps\n"
    "- Always prioritize user security and funds safety"
)
