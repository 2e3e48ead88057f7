"""
Time-locked vault exception hierarchy.

Every ledger rejection is raised before any state is touched, so callers can
surface the error and (optionally) retry the same deterministic check later.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class VaultError(Exception):
    """Base exception for all vault ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether repeating the call later may succeed
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": dict(self.details),
            "recoverable": self.recoverable,
        }


# ==================== Access Errors ====================


class Unauthorized(VaultError):
    """Raised when a non-owner calls an owner-only operation."""
    pass


class AlreadyInitialized(VaultError):
    """Raised when initialize() is called on an initialized vault."""
    pass


class VaultNotInitialized(VaultError):
    """Raised when an operation needs rate parameters that were never set."""
    pass


# ==================== Input Errors ====================


class InvalidParameter(VaultError):
    """Raised for negative or out-of-range numeric input."""
    pass


class DepositAlreadyActive(VaultError):
    """Raised by ledgers that reject a second deposit while one is locked.

    The in-process ledger merges repeated deposits instead, so it never
    raises this; remote deployments using the reject policy surface it.
    """
    pass


# ==================== Account State Errors ====================


class NoDeposit(VaultError):
    """Raised when an operation needs principal and the account has none."""
    pass


class StillLocked(VaultError):
    """Raised when withdraw() is called before the unlock time."""

    def __init__(
        self,
        message: str,
        unlock_time: int = 0,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.unlock_time = unlock_time
        self.details.setdefault("unlock_time", unlock_time)


# ==================== Ledger State Errors ====================


class EmergencyModeActive(VaultError):
    """Raised when an operation is disallowed once emergency mode is set."""
    pass


class InsufficientUnlockedFunds(VaultError):
    """Raised when a payout would have to consume locked user principal."""

    def __init__(
        self,
        message: str,
        requested: int = 0,
        available: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.requested = requested
        self.available = available
        self.details.setdefault("requested", requested)
        self.details.setdefault("available", available)


class TransferFailed(VaultError):
    """Raised when delivering funds to the recipient fails; no state changed."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


# ==================== Client Errors ====================


class TransactionFailed(VaultError):
    """Raised when a submitted transaction is confirmed with a failed status."""

    def __init__(self, message: str, tx_hash: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash
        self.details.setdefault("tx_hash", tx_hash)


class ReceiptTimeout(VaultError):
    """Raised when no receipt arrives for a submitted transaction in time."""

    def __init__(self, message: str, tx_hash: str = "", **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash
        self.details.setdefault("tx_hash", tx_hash)
