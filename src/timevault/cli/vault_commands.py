"""
TimeVault CLI Commands - Vault Operations

Provides one command per vault operation:
- Owner setup (init, update-rate, emergency, withdraw-vault)
- User flows (deposit, withdraw, emergency-withdraw, claim)
- Vault state (status, info, receipt)
"""

from __future__ import annotations

import time

import click
from rich import box
from rich.panel import Panel
from rich.table import Table

from ..client.units import format_ether
from ..core.config import ConfigurationError
from ..core.vault_exceptions import VaultError
from .common import _cli_fail, console, echo_json, format_timestamp, get_reader, submit

CLI_ERRORS = (VaultError, ConfigurationError, click.ClickException, ValueError)


@click.command("init")
@click.option("--rate", "base_reward_rate", default=100, type=click.IntRange(min=0), show_default=True,
              help="Base reward rate (per wei per second, scaled by 1e18)")
@click.option("--multiplier", "time_bonus_multiplier", default=150, type=click.IntRange(min=0),
              show_default=True, help="Bonus basis points per day of lock")
@click.pass_context
def init_vault(ctx: click.Context, base_reward_rate: int, time_bonus_multiplier: int):
    """
    Initialize the vault; the sending account becomes its owner.

    Example:
        timevault --account 0xOwner init --rate 100 --multiplier 150
    """
    try:
        submit(ctx, "Initializing vault", lambda c: c.initialize(base_reward_rate, time_bonus_multiplier))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("deposit")
@click.argument("amount")
@click.option("--lock-period", default=86400, type=click.IntRange(min=0), show_default=True,
              help="Lock period in seconds")
@click.pass_context
def deposit(ctx: click.Context, amount: str, lock_period: int):
    """
    Lock AMOUNT ether for --lock-period seconds.

    Example:
        timevault --account 0xUser deposit 0.01 --lock-period 86400
    """
    try:
        submit(ctx, f"Depositing {amount} ETH", lambda c: c.deposit(amount, lock_period))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("withdraw")
@click.pass_context
def withdraw(ctx: click.Context):
    """Withdraw principal and rewards after the lock expires."""
    try:
        submit(ctx, "Withdrawing", lambda c: c.withdraw())
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("emergency-withdraw")
@click.option("--yes", is_flag=True, help="Skip the penalty confirmation")
@click.pass_context
def emergency_withdraw(ctx: click.Context, yes: bool):
    """Exit immediately, forfeiting rewards (a penalty applies outside emergency mode)."""
    try:
        if not yes and not get_reader(ctx).get_emergency_mode():
            penalty = ctx.obj["config"].early_exit_penalty_bps / 100
            click.confirm(f"Leaving early costs {penalty:g}% of principal. Continue?", abort=True)
        submit(ctx, "Emergency withdrawing", lambda c: c.emergency_withdraw())
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("claim")
@click.pass_context
def claim(ctx: click.Context):
    """Claim accrued rewards without touching principal."""
    try:
        submit(ctx, "Claiming rewards", lambda c: c.claim_rewards())
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("update-rate")
@click.argument("new_rate", type=click.IntRange(min=0))
@click.pass_context
def update_rate(ctx: click.Context, new_rate: int):
    """Change the base reward rate from now on (owner only)."""
    try:
        submit(ctx, "Updating reward rate", lambda c: c.update_reward_rate(new_rate))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("emergency")
@click.pass_context
def activate_emergency(ctx: click.Context):
    """Activate emergency mode (owner only, cannot be undone)."""
    try:
        submit(ctx, "Activating emergency mode", lambda c: c.activate_emergency_mode())
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("fund")
@click.argument("amount")
@click.pass_context
def fund(ctx: click.Context, amount: str):
    """Add AMOUNT ether to the reward pool."""
    try:
        submit(ctx, f"Funding vault with {amount} ETH", lambda c: c.fund_vault(amount))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("withdraw-vault")
@click.pass_context
def withdraw_vault(ctx: click.Context):
    """Withdraw every unlocked (non-principal) fund to the owner."""
    try:
        submit(ctx, "Withdrawing vault funds", lambda c: c.withdraw_vault())
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("status")
@click.pass_context
def status(ctx: click.Context):
    """Show vault-wide state."""
    try:
        client = get_reader(ctx)
        with console.status("[bold cyan]Fetching vault state..."):
            data = {
                "contract_address": client.contract_address,
                "owner": client.get_owner(),
                "total_locked": client.get_total_locked(),
                "emergency_mode": client.get_emergency_mode(),
            }

        if ctx.obj.get("json_output"):
            echo_json(data)
            return

        table = Table(show_header=False, box=box.ROUNDED)
        table.add_row("[bold cyan]Contract", data["contract_address"])
        table.add_row("[bold cyan]Owner", data["owner"] or "[dim]not initialized[/]")
        table.add_row("[bold cyan]Total Locked", f"{format_ether(data['total_locked'])} ETH")
        table.add_row(
            "[bold cyan]Emergency Mode",
            "[red]Active[/]" if data["emergency_mode"] else "[green]Inactive[/]",
        )
        console.print(Panel(table, title="[bold green]Vault Status", border_style="green"))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("info")
@click.argument("account", required=False)
@click.pass_context
def info(ctx: click.Context, account: str | None):
    """Show ACCOUNT's deposit (defaults to --account)."""
    try:
        client = get_reader(ctx)
        target = account or ctx.obj.get("account")
        if not target:
            raise click.UsageError("Pass an ACCOUNT or --account")
        with console.status(f"[bold cyan]Fetching deposit for {target[:20]}..."):
            deposit_info = client.get_deposit_info(target)
            pending = client.calculate_pending_rewards(target)

        if ctx.obj.get("json_output"):
            echo_json({"account": target, **deposit_info.to_dict(), "pending_rewards": pending})
            return

        if not deposit_info.active:
            console.print(f"[yellow]No deposit found for {target}[/]")
            return

        remaining = deposit_info.unlock_time - int(time.time())
        table = Table(show_header=False, box=box.ROUNDED)
        table.add_row("[bold cyan]Amount", f"{format_ether(deposit_info.amount)} ETH")
        table.add_row("[bold cyan]Deposit Time", format_timestamp(deposit_info.deposit_time))
        table.add_row("[bold cyan]Lock Period", f"{deposit_info.lock_period} seconds")
        table.add_row("[bold cyan]Unlock Time", format_timestamp(deposit_info.unlock_time))
        table.add_row("[bold cyan]Last Claim", format_timestamp(deposit_info.last_claim_time))
        table.add_row("[bold cyan]Pending Rewards", f"{format_ether(pending)} ETH")
        table.add_row(
            "[bold cyan]Status",
            f"[yellow]Locked ({remaining}s left)[/]" if remaining > 0 else "[green]Unlocked[/]",
        )
        console.print(Panel(table, title=f"[bold green]Deposit of {target}", border_style="green"))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@click.command("receipt")
@click.argument("tx_hash")
@click.pass_context
def receipt(ctx: click.Context, tx_hash: str):
    """Show the receipt of TX_HASH."""
    try:
        client = get_reader(ctx)
        result = client.wait_for_receipt(tx_hash, timeout=ctx.obj["config"].receipt_timeout)
        if ctx.obj.get("json_output"):
            echo_json(result.to_dict())
            return
        table = Table(show_header=False, box=box.ROUNDED)
        table.add_row("[bold cyan]Transaction", result.tx_hash)
        table.add_row("[bold cyan]Function", result.function_name or "N/A")
        table.add_row("[bold cyan]Block", str(result.block_number))
        table.add_row("[bold cyan]Status", "[green]Success[/]" if result.succeeded else "[red]Failed[/]")
        table.add_row("[bold cyan]Events", ", ".join(e.get("event_type", "?") for e in result.events) or "-")
        console.print(Panel(table, title="[bold green]Receipt", border_style="green"))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


VAULT_COMMANDS = (
    init_vault,
    deposit,
    withdraw,
    emergency_withdraw,
    claim,
    update_rate,
    activate_emergency,
    fund,
    withdraw_vault,
    status,
    info,
    receipt,
)
