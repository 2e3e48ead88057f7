"""
Time-Locked Savings Vault.

Users lock value for a chosen period and accrue rewards while it stays
locked. The vault keeps:
- One deposit record per account (principal, lock window, reward checkpoint)
- A ledger-wide principal total that always equals the sum of live deposits
- A discretionary owner balance (funding plus early-exit penalties) that
  pays rewards and owner withdrawals, never user principal
- A one-way emergency mode that replaces normal exits with emergency exits

Rewards:
    base  = amount * base_reward_rate * elapsed // REWARD_RATE_SCALE
    bonus = 10_000 + time_bonus_multiplier * lock_period // bonus_reference_period
    reward = base * bonus // 10_000

The rate enters through a ledger-wide reward index, so a rate change is a
single checkpoint and already-accrued rewards keep the old rate.

Concurrency:
- Operations on one account serialize on that account's lock
- Aggregates are read and committed under a short ledger lock that is never
  held while funds are being delivered
- Payouts are reserved before delivery and committed together with the
  account record, so readers only ever see whole operations
"""

from __future__ import annotations

import copy
import hashlib
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..clock import SystemClock, TimeProvider
from ..config import BPS_DENOMINATOR, VaultConfig
from ..vault_exceptions import (
    AlreadyInitialized,
    EmergencyModeActive,
    InsufficientUnlockedFunds,
    InvalidParameter,
    NoDeposit,
    StillLocked,
    TransferFailed,
    Unauthorized,
    VaultError,
    VaultNotInitialized,
)
from ..vault_metrics import record_operation, record_value_moved, update_vault_gauges

logger = logging.getLogger("timevault.contracts.vault")

# Reward rate is expressed per deposited unit per second, scaled by 1e18
REWARD_RATE_SCALE = 10**18
UINT256_MAX = 2**256 - 1
ZERO_ADDRESS = "0x" + "0" * 40
# Most recent events kept on the ledger; older ones are dropped
MAX_EVENT_HISTORY = 1000

TransferHook = Callable[[str, int], None]


@dataclass
class Deposit:
    """One account's locked position."""

    amount: int = 0
    deposit_time: int = 0
    lock_period: int = 0
    last_claim_time: int = 0
    # Settled but not yet paid rewards (from merges)
    accumulated_rewards: int = 0
    # Ledger reward index at last settlement
    reward_index: int = 0

    @property
    def unlock_time(self) -> int:
        return self.deposit_time + self.lock_period

    def is_active(self) -> bool:
        return self.amount > 0

    def info(self) -> Tuple[int, int, int, int]:
        return (self.amount, self.deposit_time, self.lock_period, self.last_claim_time)

    def to_dict(self) -> Dict[str, int]:
        return {
            "amount": self.amount,
            "deposit_time": self.deposit_time,
            "lock_period": self.lock_period,
            "last_claim_time": self.last_claim_time,
            "accumulated_rewards": self.accumulated_rewards,
            "reward_index": self.reward_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deposit":
        return cls(
            amount=int(data.get("amount", 0)),
            deposit_time=int(data.get("deposit_time", 0)),
            lock_period=int(data.get("lock_period", 0)),
            last_claim_time=int(data.get("last_claim_time", 0)),
            accumulated_rewards=int(data.get("accumulated_rewards", 0)),
            reward_index=int(data.get("reward_index", 0)),
        )


@dataclass
class VaultEvent:
    """Represents a vault event (Deposited, Withdrawn, ...)."""

    event_type: str
    account: str
    amount: int = 0
    timestamp: int = 0
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "account": self.account,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultEvent":
        return cls(
            event_type=data["event_type"],
            account=data.get("account", ""),
            amount=int(data.get("amount", 0)),
            timestamp=int(data.get("timestamp", 0)),
            data=dict(data.get("data", {})),
        )


@dataclass
class VaultState:
    """
    The ledger store: per-account deposits plus a small set of global fields.

    Handed to ``TimeLockedVault`` by reference; the vault is the only writer.
    """

    address: str = ""
    owner: str = ""
    initialized: bool = False
    base_reward_rate: int = 0
    time_bonus_multiplier: int = 0
    total_locked: int = 0
    emergency_mode: bool = False
    owner_balance: int = 0

    # Reward index checkpoint: index value and the time it was taken
    reward_index: int = 0
    reward_index_updated_at: int = 0

    deposits: Dict[str, Deposit] = field(default_factory=dict)
    events: List[VaultEvent] = field(default_factory=list)
    # Events ever emitted, including ones trimmed from the history
    event_count: int = 0

    def __post_init__(self) -> None:
        if not self.address:
            addr_hash = hashlib.sha3_256(f"timevault:{uuid.uuid4()}".encode()).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"

    @property
    def balance(self) -> int:
        """Everything the vault holds: locked principal plus discretionary funds."""
        return self.total_locked + self.owner_balance

    def copy(self) -> "VaultState":
        return copy.deepcopy(self)

    def verify_invariants(self) -> List[str]:
        """Return a description of every violated ledger invariant (empty if sound)."""
        problems: List[str] = []
        live_sum = sum(d.amount for d in self.deposits.values() if d.amount > 0)
        if live_sum != self.total_locked:
            problems.append(f"total_locked {self.total_locked} != sum of deposits {live_sum}")
        if self.owner_balance < 0:
            problems.append(f"owner_balance is negative ({self.owner_balance})")
        if self.balance < self.total_locked:
            problems.append("balance fell below total_locked")
        for account, record in self.deposits.items():
            if record.amount <= 0:
                problems.append(f"{account}: empty deposit record kept")
            if record.lock_period < 0:
                problems.append(f"{account}: negative lock period")
            if record.last_claim_time < record.deposit_time:
                problems.append(f"{account}: last_claim_time precedes deposit_time")
            if record.accumulated_rewards < 0:
                problems.append(f"{account}: negative accumulated rewards")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "owner": self.owner,
            "initialized": self.initialized,
            "base_reward_rate": self.base_reward_rate,
            "time_bonus_multiplier": self.time_bonus_multiplier,
            "total_locked": self.total_locked,
            "emergency_mode": self.emergency_mode,
            "owner_balance": self.owner_balance,
            "reward_index": self.reward_index,
            "reward_index_updated_at": self.reward_index_updated_at,
            "deposits": {k: v.to_dict() for k, v in self.deposits.items()},
            "events": [e.to_dict() for e in self.events],
            "event_count": self.event_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultState":
        return cls(
            address=data.get("address", ""),
            owner=data.get("owner", ""),
            initialized=bool(data.get("initialized", False)),
            base_reward_rate=int(data.get("base_reward_rate", 0)),
            time_bonus_multiplier=int(data.get("time_bonus_multiplier", 0)),
            total_locked=int(data.get("total_locked", 0)),
            emergency_mode=bool(data.get("emergency_mode", False)),
            owner_balance=int(data.get("owner_balance", 0)),
            reward_index=int(data.get("reward_index", 0)),
            reward_index_updated_at=int(data.get("reward_index_updated_at", 0)),
            deposits={k: Deposit.from_dict(v) for k, v in data.get("deposits", {}).items()},
            events=[VaultEvent.from_dict(e) for e in data.get("events", [])],
            event_count=int(data.get("event_count", len(data.get("events", [])))),
        )


@dataclass(frozen=True)
class WithdrawalResult:
    """What an exit paid out and what it kept back."""

    account: str
    principal: int
    rewards: int = 0
    penalty: int = 0
    rewards_shortfall: int = 0

    @property
    def payout(self) -> int:
        return self.principal - self.penalty + self.rewards


class TimeLockedVault:
    """
    Time-locked, reward-accruing deposit ledger.

    Every state-changing method takes the caller address first (msg.sender);
    ``deposit`` and ``fund_vault`` also take the value sent with the call.
    Rejections raise a ``VaultError`` subclass before anything is mutated.
    """

    def __init__(
        self,
        state: Optional[VaultState] = None,
        config: Optional[VaultConfig] = None,
        time_provider: Optional[TimeProvider] = None,
        transfer_hook: Optional[TransferHook] = None,
    ) -> None:
        self.state = state if state is not None else VaultState()
        self.config = config or VaultConfig()
        self._time_provider = time_provider or SystemClock()
        self._transfer_hook = transfer_hook

        self._state_lock = threading.RLock()
        self._account_locks: Dict[str, threading.Lock] = {}
        self._account_locks_guard = threading.Lock()
        # Owner funds promised to in-flight payouts, not yet committed
        self._reserved = 0

    @property
    def address(self) -> str:
        return self.state.address

    # ==================== Owner Setup ====================

    def initialize(self, caller: str, base_reward_rate: int, time_bonus_multiplier: int) -> None:
        """
        One-time setup. The caller becomes the owner.

        Args:
            caller: Address calling initialize (becomes owner)
            base_reward_rate: Reward per deposited unit per second, scaled by 1e18
            time_bonus_multiplier: Bonus basis points per bonus reference period of lock

        Raises:
            AlreadyInitialized: If the vault already has an owner or deposits
            InvalidParameter: If either rate is negative
        """
        owner = self._normalize(caller)
        with self._instrumented("initialize", owner):
            self._validate_uint(base_reward_rate, "base_reward_rate")
            self._validate_uint(time_bonus_multiplier, "time_bonus_multiplier")
            with self._state_lock:
                if self.state.initialized or self.state.deposits:
                    raise AlreadyInitialized(
                        "Vault is already initialized",
                        details={"owner": self.state.owner},
                    )
                now = self._now()
                self.state.owner = owner
                self.state.base_reward_rate = base_reward_rate
                self.state.time_bonus_multiplier = time_bonus_multiplier
                self.state.emergency_mode = False
                self.state.reward_index = 0
                self.state.reward_index_updated_at = now
                self.state.initialized = True
                self._emit(
                    "Initialized",
                    owner,
                    0,
                    now,
                    base_reward_rate=base_reward_rate,
                    time_bonus_multiplier=time_bonus_multiplier,
                )
                self._refresh_gauges()

        logger.info(
            "Vault %s initialized by %s (rate=%s, bonus=%s)",
            self.address,
            owner,
            base_reward_rate,
            time_bonus_multiplier,
            extra={"event": "vault.initialized", "vault": self.address, "owner": owner},
        )

    # ==================== Deposits ====================

    def deposit(self, caller: str, amount: int, lock_period: int) -> Deposit:
        """
        Lock ``amount`` for ``lock_period`` seconds.

        A second deposit by the same account merges into the first: rewards
        earned so far are settled into the account's accumulated rewards, the
        principal grows, and the lock is extended to the later of the old
        unlock time and ``now + lock_period``. The first deposit time is
        kept, so the lock period only ever grows.

        Returns:
            A copy of the account's deposit record after the merge

        Raises:
            EmergencyModeActive: Once emergency mode is on
            VaultNotInitialized: Before initialize()
            InvalidParameter: Non-positive amount or lock period out of bounds
        """
        account = self._normalize(caller)
        with self._instrumented("deposit", account), self._account_lock(account):
            with self._state_lock:
                self._require_not_emergency(account, "deposit")
                self._require_initialized("deposit")
                self._validate_positive(amount, "amount")
                self._validate_lock_period(lock_period)

                now = self._now()
                index = self._current_reward_index(now)
                existing = self.state.deposits.get(account)

                if existing is not None and existing.is_active():
                    settled = existing.accumulated_rewards + self._pending_rewards(existing, now)
                    unlock_time = max(existing.unlock_time, now + lock_period)
                    # deposit_time stays put so lock_period (and the bonus) never shrinks
                    record = Deposit(
                        amount=existing.amount + amount,
                        deposit_time=existing.deposit_time,
                        lock_period=unlock_time - existing.deposit_time,
                        last_claim_time=now,
                        accumulated_rewards=settled,
                        reward_index=index,
                    )
                    merged = True
                else:
                    record = Deposit(
                        amount=amount,
                        deposit_time=now,
                        lock_period=lock_period,
                        last_claim_time=now,
                        accumulated_rewards=0,
                        reward_index=index,
                    )
                    merged = False

                self.state.deposits[account] = record
                self.state.total_locked += amount
                self._emit(
                    "Deposited",
                    account,
                    amount,
                    now,
                    unlock_time=record.unlock_time,
                    merged=merged,
                )
                self._refresh_gauges()
                result = copy.copy(record)

        record_value_moved("deposit", amount)
        logger.info(
            "Deposit of %s by %s locked until %s%s",
            amount,
            account,
            result.unlock_time,
            " (merged)" if merged else "",
            extra={
                "event": "vault.deposit",
                "account": account,
                "amount": amount,
                "unlock_time": result.unlock_time,
                "merged": merged,
            },
        )
        return result

    # ==================== Exits ====================

    def withdraw(self, caller: str) -> WithdrawalResult:
        """
        Withdraw principal plus all settled rewards once the lock has expired.

        Rewards are paid from the owner balance; if it cannot cover them the
        principal still goes out and the uncovered part is reported as
        ``rewards_shortfall``.

        Raises:
            EmergencyModeActive: Once emergency mode is on (use emergency_withdraw)
            NoDeposit: The account holds no principal
            StillLocked: Before the unlock time
            TransferFailed: Delivery failed; nothing changed
        """
        account = self._normalize(caller)
        with self._instrumented("withdraw", account), self._account_lock(account):
            with self._state_lock:
                self._require_not_emergency(account, "withdraw")
                record = self._require_deposit(account)
                now = self._now()
                if now < record.unlock_time:
                    raise StillLocked(
                        f"Funds for {account} are locked for another {record.unlock_time - now} seconds",
                        unlock_time=record.unlock_time,
                        details={"account": account, "now": now},
                    )
                earned = record.accumulated_rewards + self._pending_rewards(record, now)
                paid = min(earned, self._available_owner_funds())
                self._reserved += paid

            result = WithdrawalResult(
                account=account,
                principal=record.amount,
                rewards=paid,
                rewards_shortfall=earned - paid,
            )
            self._deliver(account, result.payout, paid)

            with self._state_lock:
                self._reserved -= paid
                del self.state.deposits[account]
                self.state.total_locked -= record.amount
                self.state.owner_balance -= paid
                self._emit(
                    "Withdrawn",
                    account,
                    record.amount,
                    now,
                    rewards=paid,
                    rewards_shortfall=result.rewards_shortfall,
                )
                self._refresh_gauges()

        record_value_moved("withdrawal", record.amount)
        record_value_moved("reward", paid)
        if result.rewards_shortfall:
            logger.warning(
                "Withdrawal by %s left %s rewards unpaid (owner balance exhausted)",
                account,
                result.rewards_shortfall,
                extra={"event": "vault.reward_shortfall", "account": account, "shortfall": result.rewards_shortfall},
            )
        logger.info(
            "Withdrawal by %s: principal %s, rewards %s",
            account,
            record.amount,
            paid,
            extra={"event": "vault.withdraw", "account": account, "amount": record.amount, "rewards": paid},
        )
        return result

    def emergency_withdraw(self, caller: str) -> WithdrawalResult:
        """
        Exit immediately regardless of the lock.

        Pending and accumulated rewards are forfeited and a penalty is kept by
        the vault (credited to the owner balance): the early-exit penalty in
        normal mode, the emergency-mode penalty once emergency mode is on.

        Raises:
            NoDeposit: The account holds no principal
            TransferFailed: Delivery failed; nothing changed
        """
        account = self._normalize(caller)
        with self._instrumented("emergency_withdraw", account), self._account_lock(account):
            with self._state_lock:
                record = self._require_deposit(account)
                now = self._now()
                emergency = self.state.emergency_mode
                penalty_bps = (
                    self.config.emergency_mode_penalty_bps
                    if emergency
                    else self.config.early_exit_penalty_bps
                )
                penalty = record.amount * penalty_bps // BPS_DENOMINATOR
                forfeited = record.accumulated_rewards + self._pending_rewards(record, now)

            result = WithdrawalResult(account=account, principal=record.amount, penalty=penalty)
            self._deliver(account, result.payout, 0)

            with self._state_lock:
                del self.state.deposits[account]
                self.state.total_locked -= record.amount
                self.state.owner_balance += penalty
                self._emit(
                    "EmergencyWithdraw",
                    account,
                    result.payout,
                    now,
                    penalty=penalty,
                    forfeited_rewards=forfeited,
                    emergency_mode=emergency,
                )
                self._refresh_gauges()

        record_value_moved("emergency_withdrawal", result.payout)
        record_value_moved("penalty", penalty)
        logger.warning(
            "Emergency withdrawal by %s: paid %s, penalty %s, forfeited rewards %s",
            account,
            result.payout,
            penalty,
            forfeited,
            extra={
                "event": "vault.emergency_withdraw",
                "account": account,
                "amount": result.payout,
                "penalty": penalty,
                "emergency_mode": emergency,
            },
        )
        return result

    # ==================== Rewards ====================

    def claim_rewards(self, caller: str) -> int:
        """
        Pay out all settled and pending rewards without touching principal.

        Returns:
            The amount paid (0 when nothing has accrued; no state changes then)

        Raises:
            EmergencyModeActive: Claims are closed once emergency mode is on
            NoDeposit: The account holds no principal
            InsufficientUnlockedFunds: The owner balance cannot cover the rewards
            TransferFailed: Delivery failed; nothing changed
        """
        account = self._normalize(caller)
        with self._instrumented("claim_rewards", account), self._account_lock(account):
            with self._state_lock:
                self._require_not_emergency(account, "claim_rewards")
                record = self._require_deposit(account)
                now = self._now()
                rewards = record.accumulated_rewards + self._pending_rewards(record, now)
                if rewards == 0:
                    logger.debug("Nothing to claim for %s", account)
                    return 0
                available = self._available_owner_funds()
                if rewards > available:
                    raise InsufficientUnlockedFunds(
                        f"Reward pool cannot cover {rewards} for {account}",
                        requested=rewards,
                        available=available,
                        recoverable=True,
                    )
                index = self._current_reward_index(now)
                self._reserved += rewards

            self._deliver(account, rewards, rewards)

            with self._state_lock:
                self._reserved -= rewards
                record.accumulated_rewards = 0
                record.reward_index = index
                record.last_claim_time = now
                self.state.owner_balance -= rewards
                self._emit("RewardsClaimed", account, rewards, now)
                self._refresh_gauges()

        record_value_moved("reward", rewards)
        logger.info(
            "Rewards claimed by %s: %s",
            account,
            rewards,
            extra={"event": "vault.claim", "account": account, "amount": rewards},
        )
        return rewards

    def update_reward_rate(self, caller: str, new_rate: int) -> None:
        """
        Change the base reward rate from now on (owner only).

        Rewards accrued under the old rate are kept: the reward index is
        checkpointed at the old rate before the new one takes effect.
        """
        account = self._normalize(caller)
        with self._instrumented("update_reward_rate", account):
            with self._state_lock:
                self._require_owner(account)
                self._validate_uint(new_rate, "new_rate")
                now = self._now()
                old_rate = self.state.base_reward_rate
                self.state.reward_index = self._current_reward_index(now)
                self.state.reward_index_updated_at = now
                self.state.base_reward_rate = new_rate
                self._emit("RewardRateUpdated", account, 0, now, old_rate=old_rate, new_rate=new_rate)

        logger.info(
            "Reward rate changed from %s to %s",
            old_rate,
            new_rate,
            extra={"event": "vault.rate_updated", "old_rate": old_rate, "new_rate": new_rate},
        )

    # ==================== Emergency ====================

    def activate_emergency_mode(self, caller: str) -> bool:
        """
        Switch the vault into emergency mode (owner only, one way).

        Returns:
            True if this call changed the mode, False if it was already on
        """
        account = self._normalize(caller)
        with self._instrumented("activate_emergency_mode", account):
            with self._state_lock:
                self._require_owner(account)
                if self.state.emergency_mode:
                    logger.info("Emergency mode requested but already active.")
                    return False
                now = self._now()
                self.state.emergency_mode = True
                self._emit("EmergencyModeActivated", account, 0, now)
                self._refresh_gauges()

        logger.warning(
            "Emergency mode activated by %s",
            account,
            extra={"event": "vault.emergency_mode", "vault": self.address, "caller": account},
        )
        return True

    # ==================== Owner Funds ====================

    def fund_vault(self, caller: str, amount: int) -> None:
        """Top up the reward pool. Anyone may fund; deposits are unaffected."""
        account = self._normalize(caller)
        with self._instrumented("fund_vault", account):
            self._validate_positive(amount, "amount")
            with self._state_lock:
                now = self._now()
                self.state.owner_balance += amount
                self._emit("VaultFunded", account, amount, now)
                self._refresh_gauges()

        record_value_moved("funding", amount)
        logger.info(
            "Vault funded with %s by %s",
            amount,
            account,
            extra={"event": "vault.funded", "account": account, "amount": amount},
        )

    def withdraw_vault(self, caller: str, amount: Optional[int] = None) -> int:
        """
        Move discretionary funds to the owner.

        Only ``balance - total_locked`` can ever leave this way; locked user
        principal is out of reach.

        Args:
            caller: Must be the owner
            amount: How much to take; None takes everything available

        Returns:
            The amount withdrawn

        Raises:
            Unauthorized: Caller is not the owner
            InsufficientUnlockedFunds: ``amount`` would dip into user principal
        """
        account = self._normalize(caller)
        with self._instrumented("withdraw_vault", account), self._account_lock(account):
            with self._state_lock:
                self._require_owner(account)
                available = self._available_owner_funds()
                if amount is None:
                    amount = available
                else:
                    self._validate_uint(amount, "amount")
                    if amount > available:
                        raise InsufficientUnlockedFunds(
                            f"Owner withdrawal of {amount} exceeds unlocked funds {available}",
                            requested=amount,
                            available=available,
                            details={"total_locked": self.state.total_locked},
                        )
                if amount == 0:
                    logger.info("Owner withdrawal requested but no unlocked funds are available.")
                    return 0
                now = self._now()
                self._reserved += amount

            self._deliver(account, amount, amount)

            with self._state_lock:
                self._reserved -= amount
                self.state.owner_balance -= amount
                self._emit("VaultWithdrawn", account, amount, now)
                self._refresh_gauges()

        record_value_moved("owner_withdrawal", amount)
        logger.info(
            "Owner withdrew %s from vault %s",
            amount,
            self.address,
            extra={"event": "vault.owner_withdraw", "amount": amount},
        )
        return amount

    # ==================== View Functions ====================

    def calculate_pending_rewards(self, account: str) -> int:
        """Rewards accrued since the account's last settlement (0 without principal)."""
        with self._state_lock:
            record = self.state.deposits.get(self._account_key(account))
            if record is None:
                return 0
            return self._pending_rewards(record, self._now())

    def get_claimable_rewards(self, account: str) -> int:
        """Settled plus pending rewards, i.e. what claim_rewards would pay now."""
        with self._state_lock:
            record = self.state.deposits.get(self._account_key(account))
            if record is None:
                return 0
            return record.accumulated_rewards + self._pending_rewards(record, self._now())

    def get_deposit_info(self, account: str) -> Tuple[int, int, int, int]:
        """(amount, deposit_time, lock_period, last_claim_time); zeros if unknown."""
        with self._state_lock:
            record = self.state.deposits.get(self._account_key(account))
            return record.info() if record is not None else (0, 0, 0, 0)

    def get_unlock_time(self, account: str) -> int:
        with self._state_lock:
            record = self.state.deposits.get(self._account_key(account))
            return record.unlock_time if record is not None else 0

    def get_total_locked(self) -> int:
        with self._state_lock:
            return self.state.total_locked

    def get_emergency_mode(self) -> bool:
        with self._state_lock:
            return self.state.emergency_mode

    def get_owner(self) -> str:
        with self._state_lock:
            return self.state.owner

    def get_owner_balance(self) -> int:
        with self._state_lock:
            return self.state.owner_balance

    def get_balance(self) -> int:
        with self._state_lock:
            return self.state.balance

    def get_events(self, event_type: Optional[str] = None) -> List[VaultEvent]:
        with self._state_lock:
            return [
                copy.copy(e)
                for e in self.state.events
                if event_type is None or e.event_type == event_type
            ]

    def snapshot(self) -> VaultState:
        """A consistent deep copy of the ledger, safe to persist or inspect."""
        with self._state_lock:
            return self.state.copy()

    # ==================== Reward Math ====================

    def _current_reward_index(self, now: int) -> int:
        elapsed = max(0, now - self.state.reward_index_updated_at)
        return self.state.reward_index + self.state.base_reward_rate * elapsed

    def _bonus_bps(self, lock_period: int) -> int:
        return BPS_DENOMINATOR + (
            self.state.time_bonus_multiplier * lock_period // self.config.bonus_reference_period
        )

    def _pending_rewards(self, record: Deposit, now: int) -> int:
        if record.amount <= 0:
            return 0
        index_delta = max(0, self._current_reward_index(now) - record.reward_index)
        base_reward = record.amount * index_delta // REWARD_RATE_SCALE
        return base_reward * self._bonus_bps(record.lock_period) // BPS_DENOMINATOR

    def _available_owner_funds(self) -> int:
        return max(0, self.state.balance - self.state.total_locked - self._reserved)

    # ==================== Helpers ====================

    def _now(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    def _normalize(self, address: str) -> str:
        """Normalize address to lowercase."""
        if not isinstance(address, str) or not address.strip():
            raise InvalidParameter("Caller address cannot be empty")
        normalized = address.strip().lower()
        if normalized == ZERO_ADDRESS:
            raise InvalidParameter("Caller cannot be the zero address")
        return normalized

    @staticmethod
    def _account_key(address: Any) -> str:
        """Lookup key for reads; any address (zero included) is accepted."""
        return address.strip().lower() if isinstance(address, str) else ""

    @staticmethod
    def _validate_uint(value: Any, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidParameter(f"{name} must be an integer", details={name: repr(value)})
        if value < 0:
            raise InvalidParameter(f"{name} cannot be negative", details={name: value})
        if value > UINT256_MAX:
            raise InvalidParameter(f"{name} exceeds uint256", details={name: value})

    def _validate_positive(self, value: Any, name: str) -> None:
        self._validate_uint(value, name)
        if value == 0:
            raise InvalidParameter(f"{name} must be greater than zero", details={name: value})

    def _validate_lock_period(self, lock_period: Any) -> None:
        self._validate_uint(lock_period, "lock_period")
        if not self.config.min_lock_period <= lock_period <= self.config.max_lock_period:
            raise InvalidParameter(
                f"Lock period {lock_period} outside "
                f"[{self.config.min_lock_period}, {self.config.max_lock_period}]",
                details={"lock_period": lock_period},
            )

    def _require_initialized(self, operation: str) -> None:
        if not self.state.initialized:
            raise VaultNotInitialized(f"Vault must be initialized before {operation}")

    def _require_owner(self, caller: str) -> None:
        if not self.state.initialized or caller != self.state.owner:
            raise Unauthorized(f"Caller {caller} is not the vault owner", details={"caller": caller})

    def _require_not_emergency(self, caller: str, operation: str) -> None:
        if self.state.emergency_mode:
            raise EmergencyModeActive(
                f"{operation} is disabled while emergency mode is active",
                details={"caller": caller, "operation": operation},
            )

    def _require_deposit(self, account: str) -> Deposit:
        record = self.state.deposits.get(account)
        if record is None or not record.is_active():
            raise NoDeposit(f"No deposit found for {account}", details={"account": account})
        return record

    def _deliver(self, recipient: str, amount: int, reserved: int) -> None:
        """Hand funds to the recipient; on failure release the reservation."""
        if amount <= 0 or self._transfer_hook is None:
            return
        try:
            self._transfer_hook(recipient, amount)
        except Exception as exc:
            with self._state_lock:
                self._reserved -= reserved
            raise TransferFailed(
                f"Transfer of {amount} to {recipient} failed: {exc}",
                details={"recipient": recipient, "amount": amount},
            ) from exc

    def _emit(self, event_type: str, account: str, amount: int, timestamp: int, **data: Any) -> None:
        events = self.state.events
        events.append(
            VaultEvent(event_type=event_type, account=account, amount=amount, timestamp=timestamp, data=data)
        )
        self.state.event_count += 1
        if len(events) > MAX_EVENT_HISTORY:
            del events[: len(events) - MAX_EVENT_HISTORY]

    def _refresh_gauges(self) -> None:
        update_vault_gauges(
            self.address,
            self.state.total_locked,
            self.state.owner_balance,
            self.state.emergency_mode,
        )

    @contextmanager
    def _account_lock(self, account: str) -> Iterator[None]:
        with self._account_locks_guard:
            lock = self._account_locks.setdefault(account, threading.Lock())
        with lock:
            yield

    @contextmanager
    def _instrumented(self, operation: str, caller: str) -> Iterator[None]:
        try:
            yield
        except VaultError as exc:
            record_operation(operation, type(exc).__name__)
            logger.warning(
                "Vault %s rejected for %s: %s",
                operation,
                caller,
                exc.message,
                extra={"event": f"vault.{operation}.rejected", "caller": caller, "error": type(exc).__name__},
            )
            raise
        else:
            record_operation(operation, "ok")
