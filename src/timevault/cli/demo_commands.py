"""
TimeVault CLI Commands - Guided Demos

Walk a fresh in-process vault through its lifecycle. A manual clock stands
in for waiting, so ``--wait 10`` finishes instantly.
"""

from __future__ import annotations

from typing import Callable

import click
from rich import box
from rich.panel import Panel
from rich.table import Table

from ..client.backends import LocalVaultBackend
from ..client.units import format_ether
from ..client.vault_client import TimeLockedVaultClient
from ..core.clock import ManualClock
from ..core.config import ConfigurationError
from ..core.vault_exceptions import VaultError
from .common import _cli_fail, console, format_timestamp

DEMO_ACCOUNT = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
DEMO_RATE = 100
DEMO_MULTIPLIER = 150


def _step(number: int, title: str) -> None:
    console.print(f"\n[bold]Step {number}:[/] {title}")


def _attempt(label: str, action: Callable[[], str], client: TimeLockedVaultClient) -> bool:
    """Send one transaction, report it, and keep going if the vault rejects it."""
    try:
        tx_hash = action()
        console.print(f"{label} tx: [cyan]{tx_hash}[/]")
        client.wait_for_receipt(tx_hash)
        return True
    except VaultError as exc:
        console.print(f"[red]{label} failed:[/] {exc.message}")
        return False


def _deposit_table(client: TimeLockedVaultClient, account: str) -> Table:
    deposit_info = client.get_deposit_info(account)
    table = Table(show_header=False, box=box.ROUNDED)
    table.add_row("[bold cyan]Amount deposited", f"{format_ether(deposit_info.amount)} ETH")
    table.add_row("[bold cyan]Deposit time", format_timestamp(deposit_info.deposit_time))
    table.add_row("[bold cyan]Lock period", f"{deposit_info.lock_period} seconds")
    table.add_row("[bold cyan]Total locked in vault", f"{format_ether(client.get_total_locked())} ETH")
    return table


def _demo_vault(ctx: click.Context, account: str, fund: str):
    clock = ManualClock()
    backend = LocalVaultBackend(clock=clock, config=ctx.obj["config"])
    client = TimeLockedVaultClient(backend, account)
    client.wait_for_receipt(client.initialize(DEMO_RATE, DEMO_MULTIPLIER))
    client.wait_for_receipt(client.fund_vault(fund))
    return clock, client


@click.command("demo")
@click.option("--account", "demo_account", default=DEMO_ACCOUNT, show_default=True,
              help="Address acting as both owner and depositor")
@click.option("--amount", default="0.01", show_default=True, help="Ether per deposit (sent twice)")
@click.option("--lock-period", default=86400, type=click.IntRange(min=0), show_default=True)
@click.option("--wait", "wait_seconds", default=10, type=click.IntRange(min=0), show_default=True,
              help="Seconds of simulated time before claiming")
@click.option("--fund", default="0.001", show_default=True, help="Ether placed in the reward pool")
@click.pass_context
def demo(ctx: click.Context, demo_account: str, amount: str, lock_period: int, wait_seconds: int, fund: str):
    """
    Full lifecycle: deposit twice, accrue, claim, try to withdraw, then
    switch on emergency mode and exit.
    """
    try:
        clock, client = _demo_vault(ctx, demo_account, fund)
        account = client.account

        console.print(Panel(f"User address: {account}\nVault: {client.contract_address}",
                            title="[bold green]Time-Locked Vault Demo", border_style="green"))

        _step(0, "Checking if the vault emergency mode is active...")
        console.print(f"Emergency mode active: {client.get_emergency_mode()}")

        _step(1, "Checking initial vault state...")
        console.print(f"Total locked: {format_ether(client.get_total_locked())} ETH")
        console.print(f"User deposit: {format_ether(client.get_deposit_info(account).amount)} ETH")

        _step(2, "Making a deposit...")
        console.print(f"Depositing {amount} ETH with {lock_period} second lock period")
        first = _attempt("Deposit", lambda: client.deposit(amount, lock_period), client)
        second = _attempt("Deposit", lambda: client.deposit(amount, lock_period), client)
        if first and second:
            console.print("[green]✅ Deposit successful![/]")

        _step(3, "Checking deposit info...")
        deposit_info = client.get_deposit_info(account)
        console.print(_deposit_table(client, account))

        _step(4, "Calculating rewards...")
        console.print(f"Waiting {wait_seconds} seconds for rewards to accumulate...")
        clock.advance(wait_seconds)
        console.print(f"Pending rewards: {format_ether(client.calculate_pending_rewards(account))} ETH")

        _step(5, "Claiming rewards...")
        if _attempt("Claim", client.claim_rewards, client):
            console.print("[green]✅ Rewards claimed![/]")

        _step(6, "Attempting withdrawal...")
        now = clock()
        if now < deposit_info.unlock_time:
            console.print(f"⏳ Funds still locked for {deposit_info.unlock_time - now} seconds")
            console.print("Use emergency-withdraw to withdraw with penalty if needed")
        elif _attempt("Withdraw", client.withdraw, client):
            console.print("[green]✅ Withdrawal successful![/]")

        _step(7, "Checking if the vault emergency mode is active...")
        console.print(f"Emergency mode active: {client.get_emergency_mode()}")

        _step(8, "Activating the emergency mode...")
        if _attempt("Activate emergency mode", client.activate_emergency_mode, client):
            console.print("[green]✅ Emergency mode activated![/]")

        _step(9, "Checking if the vault emergency mode is active...")
        console.print(f"Emergency mode active: {client.get_emergency_mode()}")

        _step(10, "Attempting emergency withdrawal...")
        if _attempt("Emergency withdraw", client.emergency_withdraw, client):
            console.print("[green]✅ Emergency withdrawal successful![/]")

        console.print(f"\nTotal locked after demo: {format_ether(client.get_total_locked())} ETH")
        console.print("[bold green]=== Demo Complete ===[/]")
    except (VaultError, ConfigurationError, ValueError) as exc:
        _cli_fail(exc)


@click.command("demo-withdraw")
@click.option("--account", "demo_account", default=DEMO_ACCOUNT, show_default=True,
              help="Address acting as both owner and depositor")
@click.option("--amount", default="0.2", show_default=True, help="Ether deposited before the walkthrough")
@click.option("--wait", "wait_seconds", default=10, type=click.IntRange(min=0), show_default=True)
@click.option("--fund", default="0.001", show_default=True, help="Ether placed in the reward pool")
@click.pass_context
def demo_withdraw(ctx: click.Context, demo_account: str, amount: str, wait_seconds: int, fund: str):
    """Show that the owner can sweep the reward pool but never locked principal."""
    try:
        clock, client = _demo_vault(ctx, demo_account, fund)
        account = client.account
        client.wait_for_receipt(client.deposit(amount, 86400))

        console.print(Panel(f"User address: {account}\nVault: {client.contract_address}",
                            title="[bold green]Time-Locked Vault Withdraw Demo", border_style="green"))

        _step(0, "Checking if the vault emergency mode is active...")
        console.print(f"Emergency mode active: {client.get_emergency_mode()}")

        _step(1, "Checking deposit info...")
        console.print(_deposit_table(client, account))

        _step(2, "Calculating rewards...")
        console.print(f"Waiting {wait_seconds} seconds for rewards to accumulate...")
        clock.advance(wait_seconds)
        console.print(f"Pending rewards: {format_ether(client.calculate_pending_rewards(account))} ETH")

        _step(3, "Owner withdrawing vault funds...")
        if _attempt("Withdraw vault", client.withdraw_vault, client):
            console.print("[green]✅ Vault funds withdrawn![/]")
        console.print(f"Total locked still in vault: {format_ether(client.get_total_locked())} ETH")
    except (VaultError, ConfigurationError, ValueError) as exc:
        _cli_fail(exc)


DEMO_COMMANDS = (demo, demo_withdraw)
