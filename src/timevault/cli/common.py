"""
Shared CLI plumbing: console, error handling, client lookup and transaction
submission with rich output.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, NoReturn

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..client.transactions import TransactionReceipt
from ..client.vault_client import TimeLockedVaultClient

logger = logging.getLogger("timevault.cli")
console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> NoReturn:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.debug("CLI error: %s", exc, exc_info=True)
    message = getattr(exc, "message", None) or str(exc)
    console.print(f"[bold red]Error:[/] {message}")
    sys.exit(exit_code)


def get_client(ctx: click.Context) -> TimeLockedVaultClient:
    """Build (once) the client for the account selected on the command line."""
    obj = ctx.obj
    if obj.get("client") is None:
        account = obj.get("account")
        if not account:
            raise click.UsageError("An account is required: pass --account or set TIMEVAULT_ACCOUNT")
        obj["client"] = TimeLockedVaultClient(obj["backend_factory"](), account)
    return obj["client"]


def get_reader(ctx: click.Context) -> TimeLockedVaultClient:
    """A client for read-only commands; the account only matters as a default."""
    obj = ctx.obj
    if obj.get("client") is not None:
        return obj["client"]
    return TimeLockedVaultClient(obj["backend_factory"](), obj.get("account") or "reader")


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def format_timestamp(timestamp: int) -> str:
    if not timestamp:
        return "N/A"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def submit(
    ctx: click.Context,
    label: str,
    send: Callable[[TimeLockedVaultClient], str],
) -> TransactionReceipt:
    """Send one transaction, wait for its receipt and print the outcome."""
    client = get_client(ctx)
    timeout = ctx.obj["config"].receipt_timeout
    with console.status(f"[bold cyan]{label}..."):
        tx_hash = send(client)
        receipt = client.wait_for_receipt(tx_hash, timeout=timeout)

    if ctx.obj.get("json_output"):
        echo_json(receipt.to_dict())
        return receipt

    table = Table(show_header=False, box=box.ROUNDED)
    table.add_row("[bold cyan]Transaction", receipt.tx_hash)
    table.add_row("[bold cyan]Block", str(receipt.block_number))
    table.add_row("[bold cyan]Gas Used", str(receipt.gas_used))
    for event in receipt.events:
        table.add_row(f"[bold cyan]{event.get('event_type', 'Event')}", _describe_event(event))
    console.print(Panel(table, title=f"[bold green]{label} confirmed", border_style="green"))
    return receipt


def _describe_event(event: Dict[str, Any]) -> str:
    parts = []
    if event.get("amount"):
        parts.append(f"amount={event['amount']}")
    for key, value in sorted(event.get("data", {}).items()):
        parts.append(f"{key}={value}")
    return ", ".join(parts) or "-"
