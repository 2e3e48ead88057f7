"""
TimeVault client.

- TimeLockedVaultClient: Transaction-style wrapper over a vault backend
- LocalVaultBackend / Web3VaultBackend: In-process ledger or deployed contract
"""

from .backends import VAULT_ABI, LocalVaultBackend, VaultBackend, Web3VaultBackend
from .transactions import TransactionReceipt
from .units import format_ether, parse_ether
from .vault_client import DepositInfo, TimeLockedVaultClient

__all__ = [
    "VAULT_ABI",
    "DepositInfo",
    "LocalVaultBackend",
    "TimeLockedVaultClient",
    "TransactionReceipt",
    "VaultBackend",
    "Web3VaultBackend",
    "format_ether",
    "parse_ether",
]
