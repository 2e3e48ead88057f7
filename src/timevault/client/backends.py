"""
Vault backends.

A backend executes vault calls for the client:
- LocalVaultBackend runs them against an in-process ``TimeLockedVault``,
  optionally persisted to a JSON state file between calls
- Web3VaultBackend sends them to a deployed contract through web3.py,
  using the embedded minimal ABI below (no compiled JSON needed)
"""

from __future__ import annotations

import logging
import threading
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Callable, ContextManager, Dict, Optional, Sequence, Tuple, Union

from eth_utils import to_checksum_address, to_hex
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted
from web3.logs import DISCARD

from ..core.clock import SystemClock, TimeProvider
from ..core.config import VaultConfig
from ..core.contracts.time_locked_vault import TimeLockedVault, TransferHook
from ..core.state_store import VaultStateStore
from ..core.vault_exceptions import InvalidParameter, ReceiptTimeout, TransactionFailed
from .transactions import STATUS_FAILED, STATUS_SUCCESS, TransactionReceipt, make_tx_hash

logger = logging.getLogger("timevault.client.backends")

# Receipts kept in the local state file
MAX_STORED_RECEIPTS = 1000


# ============================================================
# MINIMAL ABI - only the functions and events the client uses
# ============================================================

VAULT_ABI = [
    {
        "inputs": [
            {"name": "baseRewardRate", "type": "uint256"},
            {"name": "timeBonusMultiplier", "type": "uint256"},
        ],
        "name": "initialize",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "lockPeriod", "type": "uint256"}],
        "name": "deposit",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {"inputs": [], "name": "withdraw", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [], "name": "emergencyWithdraw", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [], "name": "claimRewards", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {
        "inputs": [{"name": "newRate", "type": "uint256"}],
        "name": "updateRewardRate",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "activateEmergencyMode",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {"inputs": [], "name": "fundVault", "outputs": [], "stateMutability": "payable", "type": "function"},
    {"inputs": [], "name": "withdrawVault", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {
        "inputs": [{"name": "user", "type": "address"}],
        "name": "calculatePendingRewards",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "user", "type": "address"}],
        "name": "getDepositInfo",
        "outputs": [
            {"name": "amount", "type": "uint256"},
            {"name": "depositTime", "type": "uint256"},
            {"name": "lockPeriod", "type": "uint256"},
            {"name": "lastClaimTime", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getTotalLocked",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getEmergencyMode",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getOwner",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "user", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
            {"indexed": False, "name": "unlockTime", "type": "uint256"},
        ],
        "name": "Deposited",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "user", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
            {"indexed": False, "name": "rewards", "type": "uint256"},
        ],
        "name": "Withdrawn",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "user", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
        ],
        "name": "RewardsClaimed",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "user", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
            {"indexed": False, "name": "penalty", "type": "uint256"},
        ],
        "name": "EmergencyWithdraw",
        "type": "event",
    },
    {"anonymous": False, "inputs": [], "name": "EmergencyModeActivated", "type": "event"},
]

VAULT_EVENT_NAMES = tuple(entry["name"] for entry in VAULT_ABI if entry["type"] == "event")


class VaultBackend:
    """Interface shared by the local and web3 backends."""

    address: str = ""

    def transact(self, sender: str, function_name: str, args: Sequence[Any] = (), value: int = 0) -> str:
        """Submit a state-changing call and return its transaction hash."""
        raise NotImplementedError

    def get_receipt(self, tx_hash: str, timeout: float = 120.0) -> TransactionReceipt:
        raise NotImplementedError

    def call(self, function_name: str, *args: Any) -> Any:
        """Run a read-only call."""
        raise NotImplementedError


class LocalVaultBackend(VaultBackend):
    """
    Executes vault calls in-process.

    Rejections surface synchronously as the ledger's typed errors and leave no
    receipt behind. Each successful write mines one block.
    Several backends (or processes) may share one state file; each call
    reloads, runs and saves while holding the file lock.
    """

    def __init__(
        self,
        state_path: Optional[Union[str, Path]] = None,
        clock: Optional[TimeProvider] = None,
        config: Optional[VaultConfig] = None,
        transfer_hook: Optional[TransferHook] = None,
    ) -> None:
        self.config = config or VaultConfig()
        self.clock = clock or SystemClock()
        self.store = VaultStateStore(state_path) if state_path else None
        self._lock = threading.RLock()
        self._block_number = 0
        self._nonces: Dict[str, int] = {}
        self._receipts: Dict[str, TransactionReceipt] = {}

        self.vault = TimeLockedVault(
            config=self.config,
            time_provider=self.clock,
            transfer_hook=transfer_hook,
        )
        self._reload()

        self._writers: Dict[str, Tuple[Callable[..., Any], bool]] = {
            "initialize": (self.vault.initialize, False),
            "deposit": (self.vault.deposit, True),
            "withdraw": (self.vault.withdraw, False),
            "emergencyWithdraw": (self.vault.emergency_withdraw, False),
            "claimRewards": (self.vault.claim_rewards, False),
            "updateRewardRate": (self.vault.update_reward_rate, False),
            "activateEmergencyMode": (self.vault.activate_emergency_mode, False),
            "fundVault": (self.vault.fund_vault, True),
            "withdrawVault": (self.vault.withdraw_vault, False),
        }
        self._readers: Dict[str, Callable[..., Any]] = {
            "calculatePendingRewards": self.vault.calculate_pending_rewards,
            "getDepositInfo": self.vault.get_deposit_info,
            "getTotalLocked": self.vault.get_total_locked,
            "getEmergencyMode": self.vault.get_emergency_mode,
            "getOwner": self.vault.get_owner,
            "getClaimableRewards": self.vault.get_claimable_rewards,
            "getUnlockTime": self.vault.get_unlock_time,
            "getBalance": self.vault.get_balance,
            "getOwnerBalance": self.vault.get_owner_balance,
        }

    @property
    def address(self) -> str:  # type: ignore[override]
        return self.vault.address

    @property
    def block_number(self) -> int:
        return self._block_number

    def transact(self, sender: str, function_name: str, args: Sequence[Any] = (), value: int = 0) -> str:
        if function_name not in self._writers:
            raise InvalidParameter(f"Unknown vault function: {function_name}")
        method, payable = self._writers[function_name]
        if value and not payable:
            raise InvalidParameter(f"{function_name} does not accept value")

        with self._lock, self._exclusive():
            self._reload()
            count_before = self.vault.state.event_count
            call_args = (value, *args) if payable else tuple(args)
            # deposit(lockPeriod) is payable: the ledger takes (caller, amount, lock_period)
            method(sender, *call_args)

            sender_key = sender.lower()
            nonce = self._nonces.get(sender_key, 0)
            self._nonces[sender_key] = nonce + 1
            self._block_number += 1
            tx_hash = make_tx_hash(self.address, sender_key, nonce, function_name)
            emitted = self.vault.state.event_count - count_before
            new_events = self.vault.state.events[-emitted:] if emitted else []
            receipt = TransactionReceipt(
                tx_hash=tx_hash,
                status=STATUS_SUCCESS,
                block_number=self._block_number,
                function_name=function_name,
                sender=sender_key,
                timestamp=self.clock(),
                events=[e.to_dict() for e in new_events],
            )
            self._receipts[tx_hash] = receipt
            self._persist()

        logger.debug(
            "Executed %s for %s in block %s",
            function_name,
            sender_key,
            receipt.block_number,
            extra={"event": "backend.local.tx", "function": function_name, "tx_hash": tx_hash},
        )
        return tx_hash

    def get_receipt(self, tx_hash: str, timeout: float = 120.0) -> TransactionReceipt:
        with self._lock, self._exclusive():
            self._reload()
            receipt = self._receipts.get(tx_hash)
        if receipt is None:
            raise ReceiptTimeout(f"No receipt for transaction {tx_hash}", tx_hash=tx_hash)
        return receipt

    def call(self, function_name: str, *args: Any) -> Any:
        if function_name not in self._readers:
            raise InvalidParameter(f"Unknown vault view: {function_name}")
        with self._lock, self._exclusive():
            self._reload()
            return self._readers[function_name](*args)

    def _exclusive(self) -> ContextManager[None]:
        return self.store.locked() if self.store is not None else nullcontext()

    def _reload(self) -> None:
        if self.store is None:
            return
        state, metadata = self.store.load()
        if state is None:
            return
        self.vault.state = state
        self._block_number = int(metadata.get("block_number", 0))
        self._nonces = {k: int(v) for k, v in metadata.get("nonces", {}).items()}
        self._receipts = {
            r["tx_hash"]: TransactionReceipt.from_dict(r) for r in metadata.get("receipts", [])
        }

    def _persist(self) -> None:
        if self.store is None:
            return
        receipts = list(self._receipts.values())[-MAX_STORED_RECEIPTS:]
        self.store.save(
            self.vault.state,
            {
                "block_number": self._block_number,
                "nonces": self._nonces,
                "receipts": [r.to_dict() for r in receipts],
            },
        )


class Web3VaultBackend(VaultBackend):
    """Talks to a deployed vault contract over JSON-RPC."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        sender: Optional[str] = None,
        w3: Optional[Web3] = None,
    ) -> None:
        if not contract_address:
            raise InvalidParameter("A contract address is required for the web3 backend")
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))
        self._address = to_checksum_address(contract_address)
        self.sender = to_checksum_address(sender) if sender else None
        self.contract = self.w3.eth.contract(address=self._address, abi=VAULT_ABI)
        self._submitted: Dict[str, str] = {}

    @property
    def address(self) -> str:  # type: ignore[override]
        return self._address

    def transact(self, sender: str, function_name: str, args: Sequence[Any] = (), value: int = 0) -> str:
        from_address = to_checksum_address(sender or self.sender or "")
        function = getattr(self.contract.functions, function_name)(*args)
        tx_params: Dict[str, Any] = {"from": from_address}
        if value:
            tx_params["value"] = value
        try:
            tx_hash = function.transact(tx_params)
        except ContractLogicError as exc:
            raise TransactionFailed(
                f"{function_name} reverted: {exc}",
                details={"function": function_name, "sender": from_address},
            ) from exc
        tx_hex = to_hex(tx_hash)
        self._submitted[tx_hex] = function_name
        return tx_hex

    def get_receipt(self, tx_hash: str, timeout: float = 120.0) -> TransactionReceipt:
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as exc:
            raise ReceiptTimeout(
                f"Transaction {tx_hash} not mined within {timeout}s", tx_hash=tx_hash
            ) from exc

        events = []
        for name in VAULT_EVENT_NAMES:
            for log in getattr(self.contract.events, name)().process_receipt(receipt, errors=DISCARD):
                events.append({"event_type": log.event, "data": dict(log.args)})

        function_name = self._submitted.get(tx_hash, "")
        status = STATUS_SUCCESS if receipt.status == 1 else STATUS_FAILED
        error = None
        if status == STATUS_FAILED:
            error = TransactionFailed(
                f"{function_name or 'Transaction'} reverted in block {receipt.blockNumber}",
                tx_hash=tx_hash,
                details={"block_number": receipt.blockNumber, "gas_used": receipt.gasUsed},
            ).to_dict()

        return TransactionReceipt(
            tx_hash=tx_hash,
            status=status,
            block_number=receipt.blockNumber,
            function_name=function_name,
            sender=receipt.get("from", ""),
            gas_used=receipt.gasUsed,
            events=events,
            error=error,
        )

    def call(self, function_name: str, *args: Any) -> Any:
        call_args = [to_checksum_address(a) if Web3.is_address(a) else a for a in args]
        result = getattr(self.contract.functions, function_name)(*call_args).call()
        return tuple(result) if isinstance(result, list) else result
