"""
TimeVault Core Module

Core functionality for the vault ledger including:
- The time-locked vault contract and its state
- Exceptions, configuration and time sources
- Logging, metrics and persistence
"""

__all__ = []
