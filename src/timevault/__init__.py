"""
TimeVault - Time-Locked Savings Vault

A deposit ledger where users lock value for a chosen period and earn
rewards that grow with the lock length, plus a client for driving it.

Main Components:
- Ledger: Deposits, timed withdrawals, reward accrual and emergency exits
- Client: Transaction-style wrapper over a local ledger or a deployed contract
- CLI: Operator and demo commands

For design notes, see: DESIGN.md
"""

__version__ = "0.1.0"
__author__ = "TimeVault Development Team"

__all__ = []
