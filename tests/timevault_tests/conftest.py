import sys
from pathlib import Path

import pytest

# Ensure the src directory (for `timevault.*`) is on the Python path before collection runs.
project_root = Path(__file__).resolve().parents[2]
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from timevault.client.backends import LocalVaultBackend  # noqa: E402
from timevault.client.vault_client import TimeLockedVaultClient  # noqa: E402
from timevault.core.clock import ManualClock  # noqa: E402
from timevault.core.config import VaultConfig  # noqa: E402
from timevault.core.contracts.time_locked_vault import TimeLockedVault  # noqa: E402

OWNER = "0xOwner"
ALICE = "0xAlice"
BOB = "0xBob"
ONE_ETHER = 10**18
DAY = 86400


@pytest.fixture(autouse=True)
def clean_timevault_env(monkeypatch):
    """Keep the developer's TIMEVAULT_* settings out of the tests."""
    import os

    for name in list(os.environ):
        if name.startswith("TIMEVAULT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def config():
    return VaultConfig()


@pytest.fixture
def bare_vault(clock, config):
    """A vault that has not been initialized yet."""
    return TimeLockedVault(config=config, time_provider=clock)


@pytest.fixture
def vault(bare_vault):
    """Initialized vault (rate 100, multiplier 150) with 1 ETH in the reward pool."""
    bare_vault.initialize(OWNER, 100, 150)
    bare_vault.fund_vault(OWNER, ONE_ETHER)
    return bare_vault


@pytest.fixture
def backend(clock, config):
    return LocalVaultBackend(clock=clock, config=config)


@pytest.fixture
def owner_client(backend):
    client = TimeLockedVaultClient(backend, OWNER)
    client.wait_for_receipt(client.initialize(100, 150))
    client.wait_for_receipt(client.fund_vault("1"))
    return client


@pytest.fixture
def alice_client(backend, owner_client):
    return TimeLockedVaultClient(backend, ALICE)
