"""
Transaction receipts shared by every vault backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_utils import keccak, to_hex

STATUS_SUCCESS = 1
STATUS_FAILED = 0


@dataclass
class TransactionReceipt:
    """Outcome of one submitted vault transaction."""

    tx_hash: str
    status: int
    block_number: int
    function_name: str
    sender: str = ""
    gas_used: int = 0
    timestamp: int = 0
    events: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status,
            "block_number": self.block_number,
            "function_name": self.function_name,
            "sender": self.sender,
            "gas_used": self.gas_used,
            "timestamp": self.timestamp,
            "events": [dict(e) for e in self.events],
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionReceipt":
        return cls(
            tx_hash=data["tx_hash"],
            status=int(data["status"]),
            block_number=int(data["block_number"]),
            function_name=data.get("function_name", ""),
            sender=data.get("sender", ""),
            gas_used=int(data.get("gas_used", 0)),
            timestamp=int(data.get("timestamp", 0)),
            events=list(data.get("events", [])),
            error=data.get("error"),
        )


def make_tx_hash(vault_address: str, sender: str, nonce: int, function_name: str) -> str:
    """Deterministic 32-byte transaction hash for locally executed calls."""
    payload = f"{vault_address}:{sender}:{nonce}:{function_name}"
    return to_hex(keccak(text=payload))
