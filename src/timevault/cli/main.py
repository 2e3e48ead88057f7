"""
Main CLI entry point for TimeVault.

Without a contract address the CLI drives a local ledger persisted to a JSON
state file; with one it talks to the deployed contract over JSON-RPC.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from ..client.backends import LocalVaultBackend, VaultBackend, Web3VaultBackend
from ..core.config import ConfigurationError, VaultConfig
from ..core.logging_config import setup_logging
from ..core.vault_exceptions import VaultError
from .common import _cli_fail, console
from .demo_commands import DEMO_COMMANDS
from .vault_commands import VAULT_COMMANDS

logger = logging.getLogger("timevault.cli")


@click.group()
@click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Local ledger state file (defaults to ~/.timevault/vault_<network>.json)",
)
@click.option("--account", envvar="TIMEVAULT_ACCOUNT", help="Address transactions are sent from")
@click.option("--rpc-url", help="JSON-RPC endpoint of the chain hosting the vault contract")
@click.option("--contract", "contract_address", help="Deployed vault contract address")
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option(
    "--log-level",
    envvar="TIMEVAULT_LOG_LEVEL",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
)
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write JSON logs here")
@click.pass_context
def cli(
    ctx: click.Context,
    state_path: Optional[Path],
    account: Optional[str],
    rpc_url: Optional[str],
    contract_address: Optional[str],
    json_output: bool,
    log_level: str,
    log_file: Optional[str],
):
    """
    TimeVault CLI - Time-Locked Savings Vault

    Lock funds for a chosen period, earn rewards that grow with the lock,
    and manage the vault as its owner.
    """
    ctx.ensure_object(dict)
    try:
        base = VaultConfig.from_env()
    except ConfigurationError as exc:
        _cli_fail(exc)

    config_fields = base.to_dict()
    config_fields.update(
        network=base.network,
        state_path=state_path or base.state_path,
        rpc_url=rpc_url or base.rpc_url,
        contract_address=contract_address or base.contract_address,
        log_level=log_level.upper(),
        log_file=log_file or base.log_file,
    )
    try:
        config = VaultConfig(**config_fields)
    except ConfigurationError as exc:
        _cli_fail(exc)

    setup_logging(
        name="timevault",
        log_file=config.log_file,
        level=config.log_level,
        environment=config.network.value,
    )

    def backend_factory() -> VaultBackend:
        if config.contract_address:
            logger.info(
                "CLI using web3 backend",
                extra={"event": "cli.backend", "rpc_url": config.rpc_url, "contract": config.contract_address},
            )
            return Web3VaultBackend(config.rpc_url, config.contract_address, sender=account or config.sender)
        path = config.default_state_path()
        logger.info("CLI using local backend", extra={"event": "cli.backend", "state_path": str(path)})
        return LocalVaultBackend(state_path=path, config=config)

    ctx.obj["config"] = config
    ctx.obj["account"] = account or config.sender or None
    ctx.obj["json_output"] = json_output
    ctx.obj["backend_factory"] = backend_factory
    ctx.obj["client"] = None


for _command in VAULT_COMMANDS + DEMO_COMMANDS:
    cli.add_command(_command)


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)
    except (VaultError, ConfigurationError) as exc:
        _cli_fail(exc)


if __name__ == "__main__":
    main()
