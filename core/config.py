"""
Operator configuration, read once from the environment (.env via python-dotenv).

Settings.from_env() raises ConfigurationError for missing variables,
leftover template placeholders and malformed private keys.
"""

import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from .constitution import TOPUP_LAWS, DEFAULT_CONTRACT_ADDRESS, DEFAULT_RPC_URL
from .errors import ConfigurationError

REQUIRED_VARS = ("OPENAI_API_KEY", "SUPRA_PRIVATE_KEY", "SUPRA_CONTRACT_ADDRESS")

# .env.example values that must be replaced before the agent can start
PLACEHOLDERS = {
    "OPENAI_API_KEY": "your_openai_api_key",
    "SUPRA_PRIVATE_KEY": "your_supra_private_key",
    "SUPRA_CONTRACT_ADDRESS": "your_deployed_contract_address",
}

_PRIVATE_KEY_PATTERN = re.compile(r"[0-9a-fA-F]{64}")


@dataclass(frozen=True)
class Settings:
    openai_api_key: str
    supra_private_key: str
    supra_contract_address: str = DEFAULT_CONTRACT_ADDRESS
    openai_model: str = "gpt-4"
    openai_base_url: Optional[str] = None
    supra_rpc_url: str = DEFAULT_RPC_URL
    supra_chain_id: int = 6
    monitor_interval_seconds: float = TOPUP_LAWS.MONITOR_INTERVAL_SECONDS
    confirm_delay_seconds: float = TOPUP_LAWS.CONFIRM_DELAY_SECONDS
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env

        missing = tuple(name for name in REQUIRED_VARS if not env.get(name, "").strip())
        if missing:
            raise ConfigurationError(
                f"Missing environment variables: {', '.join(missing)}", missing=missing
            )

        placeholders = tuple(
            name for name, value in PLACEHOLDERS.items()
            if env[name].strip() in (value, f"{value}_here")
        )
        if placeholders:
            raise ConfigurationError(
                f"Found placeholder values: {', '.join(placeholders)}", missing=placeholders
            )

        private_key = env["SUPRA_PRIVATE_KEY"].strip()
        bare = private_key[2:] if private_key.lower().startswith("0x") else private_key
        if not _PRIVATE_KEY_PATTERN.fullmatch(bare):
            raise ConfigurationError("Invalid private key format. Must be 64 hex characters.")

        try:
            return cls(
                openai_api_key=env["OPENAI_API_KEY"].strip(),
                supra_private_key=bare,
                supra_contract_address=env["SUPRA_CONTRACT_ADDRESS"].strip(),
                openai_model=env.get("OPENAI_MODEL", "gpt-4"),
                openai_base_url=env.get("OPENAI_BASE_URL") or None,
                supra_rpc_url=env.get("SUPRA_RPC_URL") or DEFAULT_RPC_URL,
                supra_chain_id=int(env.get("SUPRA_CHAIN_ID", "6")),
                monitor_interval_seconds=float(
                    env.get("MONITOR_INTERVAL_SECONDS", TOPUP_LAWS.MONITOR_INTERVAL_SECONDS)
                ),
                confirm_delay_seconds=float(
                    env.get("CONFIRM_DELAY_SECONDS", TOPUP_LAWS.CONFIRM_DELAY_SECONDS)
                ),
                log_level=env.get("LOG_LEVEL", "INFO").upper(),
                host=env.get("HOST", "0.0.0.0"),
                port=int(env.get("PORT", "8000")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Malformed numeric setting: {e}") from e
