"""
Time-Locked Vault client.

Thin transaction wrapper around a vault backend: each write submits one
transaction, logs ``"<Op> tx: <hash>"`` and returns the hash; reads return
plain Python values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from ..core.vault_exceptions import InvalidParameter, TransactionFailed
from .backends import VaultBackend
from .transactions import TransactionReceipt
from .units import parse_ether

logger = logging.getLogger("timevault.client")


@dataclass(frozen=True)
class DepositInfo:
    """Snapshot of one account's deposit as reported by the vault."""

    amount: int
    deposit_time: int
    lock_period: int
    last_claim_time: int

    @property
    def unlock_time(self) -> int:
        return self.deposit_time + self.lock_period

    @property
    def active(self) -> bool:
        return self.amount > 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "amount": self.amount,
            "deposit_time": self.deposit_time,
            "lock_period": self.lock_period,
            "last_claim_time": self.last_claim_time,
            "unlock_time": self.unlock_time,
        }


class TimeLockedVaultClient:
    """
    Client for a time-locked vault.

    Args:
        backend: Where calls are executed (local ledger or deployed contract)
        account: Address every write is sent from
    """

    def __init__(self, backend: VaultBackend, account: str):
        if not account:
            raise InvalidParameter("Client account cannot be empty")
        self.backend = backend
        self.account = account

    @property
    def contract_address(self) -> str:
        return self.backend.address

    # ==================== Writes ====================

    def initialize(self, base_reward_rate: int, time_bonus_multiplier: int) -> str:
        return self._send("Initialize", "initialize", (base_reward_rate, time_bonus_multiplier))

    def deposit(self, amount_eth: str, lock_period: int) -> str:
        """Lock ``amount_eth`` (decimal ether string) for ``lock_period`` seconds."""
        value = parse_ether(amount_eth)
        return self._send("Deposit", "deposit", (lock_period,), value=value)

    def withdraw(self) -> str:
        return self._send("Withdraw", "withdraw")

    def emergency_withdraw(self) -> str:
        return self._send("Emergency withdraw", "emergencyWithdraw")

    def claim_rewards(self) -> str:
        return self._send("Claim rewards", "claimRewards")

    def update_reward_rate(self, new_rate: int) -> str:
        return self._send("Update reward rate", "updateRewardRate", (new_rate,))

    def activate_emergency_mode(self) -> str:
        return self._send("Activate emergency mode", "activateEmergencyMode")

    def fund_vault(self, amount_eth: str) -> str:
        value = parse_ether(amount_eth)
        return self._send("Fund vault", "fundVault", value=value)

    def withdraw_vault(self) -> str:
        return self._send("Withdraw vault", "withdrawVault")

    def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> TransactionReceipt:
        """
        Wait for a transaction to be mined.

        Raises:
            TransactionFailed: The transaction was mined but reverted
            ReceiptTimeout: No receipt within ``timeout`` seconds
        """
        receipt = self.backend.get_receipt(tx_hash, timeout=timeout)
        if not receipt.succeeded:
            details: Dict[str, Any] = {"block_number": receipt.block_number}
            if receipt.error:
                details["error"] = receipt.error
            raise TransactionFailed(
                f"Transaction {tx_hash} ({receipt.function_name or 'unknown'}) reverted",
                tx_hash=tx_hash,
                details=details,
            )
        return receipt

    # ==================== Reads ====================

    def calculate_pending_rewards(self, account: Optional[str] = None) -> int:
        return int(self.backend.call("calculatePendingRewards", account or self.account))

    def get_deposit_info(self, account: Optional[str] = None) -> DepositInfo:
        amount, deposit_time, lock_period, last_claim_time = self.backend.call(
            "getDepositInfo", account or self.account
        )
        return DepositInfo(
            amount=int(amount),
            deposit_time=int(deposit_time),
            lock_period=int(lock_period),
            last_claim_time=int(last_claim_time),
        )

    def get_total_locked(self) -> int:
        return int(self.backend.call("getTotalLocked"))

    def get_emergency_mode(self) -> bool:
        return bool(self.backend.call("getEmergencyMode"))

    def get_owner(self) -> str:
        return str(self.backend.call("getOwner"))

    def _send(self, label: str, function_name: str, args: Sequence[Any] = (), value: int = 0) -> str:
        tx_hash = self.backend.transact(self.account, function_name, args, value=value)
        logger.info(
            "%s tx: %s",
            label,
            tx_hash,
            extra={"event": "client.tx", "function": function_name, "tx_hash": tx_hash},
        )
        return tx_hash
