"""
TimeVault contracts.

- TimeLockedVault: Time-locked, reward-accruing deposit ledger
"""

from .time_locked_vault import (
    REWARD_RATE_SCALE,
    Deposit,
    TimeLockedVault,
    VaultEvent,
    VaultState,
    WithdrawalResult,
)

__all__ = [
    "REWARD_RATE_SCALE",
    "Deposit",
    "TimeLockedVault",
    "VaultEvent",
    "VaultState",
    "WithdrawalResult",
]
