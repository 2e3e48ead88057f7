"""
Vault ledger instrumentation.

Provides Prometheus metrics that track ledger operations and the
aggregate balances the ledger guards, with helper functions that are
safe to call from the commit path.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

vault_operations_counter = Counter(
    "timevault_operations_total",
    "Vault ledger operations by outcome",
    ["operation", "outcome"],
)

vault_value_moved_counter = Counter(
    "timevault_value_moved_wei_total",
    "Value moved through the vault, by flow",
    ["flow"],
)

total_locked_gauge = Gauge(
    "timevault_total_locked_wei", "Principal currently locked in the vault", ["vault"]
)

owner_balance_gauge = Gauge(
    "timevault_owner_balance_wei", "Discretionary (non-principal) vault balance", ["vault"]
)

emergency_mode_gauge = Gauge(
    "timevault_emergency_mode", "1 once emergency mode has been activated", ["vault"]
)


def record_operation(operation: str, outcome: str) -> None:
    """Count one ledger operation; outcome is 'ok' or the error class name."""
    vault_operations_counter.labels(operation=operation, outcome=outcome).inc()


def record_value_moved(flow: str, amount: int) -> None:
    """Count value flowing in or out (deposit, withdrawal, reward, penalty, funding)."""
    if amount <= 0:
        return
    vault_value_moved_counter.labels(flow=flow).inc(amount)


def update_vault_gauges(vault_id: str, total_locked: int, owner_balance: int, emergency_mode: bool) -> None:
    """Refresh the aggregate gauges from a committed ledger snapshot."""
    total_locked_gauge.labels(vault=vault_id).set(total_locked)
    owner_balance_gauge.labels(vault=vault_id).set(owner_balance)
    emergency_mode_gauge.labels(vault=vault_id).set(1 if emergency_mode else 0)
