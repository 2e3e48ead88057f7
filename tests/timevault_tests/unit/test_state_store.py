"""Tests for JSON persistence of the vault ledger."""

import json

import pytest

from timevault.core.contracts.time_locked_vault import TimeLockedVault, VaultState
from timevault.core.state_store import StateStoreError, VaultStateStore

OWNER = "0xOwner"
ALICE = "0xAlice"
ONE_ETHER = 10**18


def test_load_missing_file(tmp_path):
    store = VaultStateStore(tmp_path / "missing.json")
    assert store.exists() is False
    assert store.load() == (None, {})


def test_round_trip_realistic_ledger(tmp_path, vault, clock):
    vault.deposit(ALICE, ONE_ETHER, 86400)
    clock.advance(10)
    vault.claim_rewards(ALICE)
    vault.deposit("0xBob", 5 * ONE_ETHER, 3600)

    store = VaultStateStore(tmp_path / "nested" / "vault.json")
    store.save(vault.snapshot(), {"block_number": 7})
    state, metadata = store.load()

    assert metadata == {"block_number": 7}
    assert state.to_dict() == vault.snapshot().to_dict()
    restored = TimeLockedVault(state=state, time_provider=clock)
    assert restored.get_deposit_info(ALICE) == vault.get_deposit_info(ALICE)
    assert restored.get_total_locked() == 6 * ONE_ETHER
    assert not (tmp_path / "nested" / "vault.json.tmp").exists()


def test_corrupt_file_raises(tmp_path):
    path = tmp_path / "vault.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StateStoreError):
        VaultStateStore(path).load()


def test_unknown_version_raises(tmp_path):
    path = tmp_path / "vault.json"
    path.write_text(json.dumps({"version": 99, "vault": {}}), encoding="utf-8")
    with pytest.raises(StateStoreError, match="version"):
        VaultStateStore(path).load()


def test_inconsistent_state_rejected(tmp_path):
    state = VaultState(owner="0xowner", initialized=True, total_locked=5)
    store = VaultStateStore(tmp_path / "vault.json")
    store.save(state)
    with pytest.raises(StateStoreError, match="total_locked"):
        store.load()
