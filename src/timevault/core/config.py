"""
Time-Locked Vault Configuration

Supports testnet and mainnet with separate defaults. Every value can be
overridden through ``TIMEVAULT_*`` environment variables.

SECURITY NOTICE:
- The vault never handles private keys; remote writes go out from a
  node-managed account named by TIMEVAULT_SENDER
- Mainnet deployments must name the contract and RPC endpoint explicitly
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


SECONDS_PER_DAY = 86400
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY
BPS_DENOMINATOR = 10_000

DEFAULT_DATA_DIR = Path(os.getenv("TIMEVAULT_DATA_DIR", os.path.expanduser("~/.timevault"))).expanduser()
DEFAULT_RPC_URL = "http://localhost:8547"

# Get network type from environment variable
NETWORK = os.getenv("TIMEVAULT_NETWORK", "testnet")  # Default to testnet for safety


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class VaultConfig:
    """Ledger policy and client settings."""

    network: NetworkType = NetworkType.TESTNET

    # Ledger policy
    early_exit_penalty_bps: int = 1500  # 15% for leaving a live lock early
    emergency_mode_penalty_bps: int = 0
    min_lock_period: int = 0
    max_lock_period: int = SECONDS_PER_YEAR
    bonus_reference_period: int = SECONDS_PER_DAY

    # Local backend
    state_path: Optional[Path] = None

    # Web3 backend
    rpc_url: str = DEFAULT_RPC_URL
    contract_address: str = ""
    sender: str = ""
    receipt_timeout: float = 120.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for name in ("early_exit_penalty_bps", "emergency_mode_penalty_bps"):
            value = getattr(self, name)
            if not 0 <= value <= BPS_DENOMINATOR:
                raise ConfigurationError(f"{name} must be within 0..{BPS_DENOMINATOR}, got {value}")
        if self.emergency_mode_penalty_bps > self.early_exit_penalty_bps:
            raise ConfigurationError(
                "emergency_mode_penalty_bps cannot exceed early_exit_penalty_bps"
            )
        if self.min_lock_period < 0:
            raise ConfigurationError("min_lock_period cannot be negative")
        if self.max_lock_period < self.min_lock_period:
            raise ConfigurationError("max_lock_period must be >= min_lock_period")
        if self.bonus_reference_period <= 0:
            raise ConfigurationError("bonus_reference_period must be positive")
        if self.receipt_timeout <= 0:
            raise ConfigurationError("receipt_timeout must be positive")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "VaultConfig":
        """Build a config from ``TIMEVAULT_*`` variables (``os.environ`` by default)."""
        env = os.environ if env is None else env
        network_name = env.get("TIMEVAULT_NETWORK", NETWORK).strip().lower() or "testnet"
        try:
            network = NetworkType(network_name)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown TIMEVAULT_NETWORK {network_name!r}") from exc

        state_path = env.get("TIMEVAULT_STATE_PATH", "").strip()
        config = cls(
            network=network,
            early_exit_penalty_bps=_env_int(env, "TIMEVAULT_EARLY_EXIT_PENALTY_BPS", 1500),
            emergency_mode_penalty_bps=_env_int(env, "TIMEVAULT_EMERGENCY_PENALTY_BPS", 0),
            min_lock_period=_env_int(env, "TIMEVAULT_MIN_LOCK_PERIOD", 0),
            max_lock_period=_env_int(env, "TIMEVAULT_MAX_LOCK_PERIOD", SECONDS_PER_YEAR),
            bonus_reference_period=_env_int(env, "TIMEVAULT_BONUS_REFERENCE_PERIOD", SECONDS_PER_DAY),
            state_path=Path(state_path).expanduser() if state_path else None,
            rpc_url=env.get("TIMEVAULT_RPC_URL", "").strip() or DEFAULT_RPC_URL,
            contract_address=env.get("TIMEVAULT_CONTRACT_ADDRESS", "").strip(),
            sender=env.get("TIMEVAULT_SENDER", "").strip(),
            receipt_timeout=_env_float(env, "TIMEVAULT_RECEIPT_TIMEOUT", 120.0),
            log_level=env.get("TIMEVAULT_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_file=env.get("TIMEVAULT_LOG_FILE", "").strip() or None,
        )

        if network is NetworkType.MAINNET and config.contract_address and not env.get("TIMEVAULT_RPC_URL"):
            raise ConfigurationError(
                "CRITICAL: TIMEVAULT_RPC_URL is required when targeting a mainnet contract."
            )
        logger.debug(
            "Loaded vault config for %s",
            network.value,
            extra={"event": "config.loaded", "network": network.value},
        )
        return config

    def default_state_path(self) -> Path:
        return self.state_path or DEFAULT_DATA_DIR / f"vault_{self.network.value}.json"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["network"] = self.network.value
        data["state_path"] = str(self.state_path) if self.state_path else None
        return data


__all__ = [
    "BPS_DENOMINATOR",
    "ConfigurationError",
    "NETWORK",
    "NetworkType",
    "SECONDS_PER_DAY",
    "SECONDS_PER_YEAR",
    "VaultConfig",
]
