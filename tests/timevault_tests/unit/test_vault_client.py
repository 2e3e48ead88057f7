"""
Tests for the vault client and its backends.

Tests cover:
- Transaction hashes, receipts and logging through the local backend
- Typed rejections surfacing synchronously
- State persistence between backend instances
- The web3 backend against a mocked provider
"""

from __future__ import annotations

import logging
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from eth_utils import event_abi_to_log_topic, keccak
from web3.exceptions import ContractLogicError, TimeExhausted

import timevault.core.contracts.time_locked_vault as ledger_module
from timevault.client.backends import VAULT_ABI, LocalVaultBackend, VaultBackend, Web3VaultBackend
from timevault.client.transactions import TransactionReceipt
from timevault.client.vault_client import DepositInfo, TimeLockedVaultClient
from timevault.core.vault_exceptions import (
    InvalidParameter,
    NoDeposit,
    ReceiptTimeout,
    StillLocked,
    TransactionFailed,
    Unauthorized,
)

OWNER = "0xOwner"
ALICE = "0xAlice"
DAY = 86400
CONTRACT = "0x" + "ab" * 20
SENDER = "0x" + "cd" * 20


class TestLocalClient:
    """Tests for the client over an in-process ledger."""

    def test_deposit_returns_hash_and_receipt(self, alice_client, backend):
        block_before = backend.block_number
        tx_hash = alice_client.deposit("0.01", DAY)

        assert tx_hash.startswith("0x") and len(tx_hash) == 66
        receipt = alice_client.wait_for_receipt(tx_hash)
        assert receipt.status == 1
        assert receipt.function_name == "deposit"
        assert receipt.block_number == block_before + 1
        assert [e["event_type"] for e in receipt.events] == ["Deposited"]
        assert receipt.events[0]["amount"] == 10**16

    def test_each_transaction_gets_a_new_hash(self, alice_client):
        first = alice_client.deposit("0.01", DAY)
        second = alice_client.deposit("0.01", DAY)
        assert first != second
        assert alice_client.get_deposit_info().amount == 2 * 10**16

    def test_writes_log_hash(self, alice_client, caplog):
        with caplog.at_level(logging.INFO, logger="timevault.client"):
            tx_hash = alice_client.deposit("0.01", DAY)
        assert f"Deposit tx: {tx_hash}" in caplog.text

    def test_rejections_raise_typed_errors(self, alice_client, backend):
        block_before = backend.block_number
        with pytest.raises(NoDeposit):
            alice_client.withdraw()
        with pytest.raises(Unauthorized):
            alice_client.activate_emergency_mode()
        with pytest.raises(InvalidParameter):
            alice_client.deposit("-1", DAY)
        assert backend.block_number == block_before

    def test_demo_flow(self, owner_client, alice_client, clock):
        """Deposit, accrue for ten seconds, then exit through emergency mode."""
        alice_client.wait_for_receipt(alice_client.deposit("1", DAY))
        clock.advance(10)

        assert alice_client.calculate_pending_rewards() == 1015
        info = alice_client.get_deposit_info()
        assert isinstance(info, DepositInfo)
        assert info.unlock_time == clock() - 10 + DAY
        assert alice_client.get_total_locked() == 10**18

        with pytest.raises(StillLocked):
            alice_client.withdraw()

        owner_client.wait_for_receipt(owner_client.activate_emergency_mode())
        assert alice_client.get_emergency_mode() is True
        receipt = alice_client.wait_for_receipt(alice_client.emergency_withdraw())

        assert receipt.events[0]["event_type"] == "EmergencyWithdraw"
        assert alice_client.get_deposit_info().amount == 0
        assert alice_client.get_total_locked() == 0

    def test_claim_and_owner_sweep(self, owner_client, alice_client, clock):
        alice_client.deposit("1", DAY)
        clock.advance(10)
        receipt = alice_client.wait_for_receipt(alice_client.claim_rewards())
        assert receipt.events[0]["amount"] == 1015

        sweep = owner_client.wait_for_receipt(owner_client.withdraw_vault())
        assert sweep.events[0]["amount"] == 10**18 - 1015
        assert owner_client.get_total_locked() == 10**18

    def test_reads(self, owner_client, alice_client):
        assert owner_client.get_owner() == OWNER.lower()
        assert alice_client.contract_address == owner_client.contract_address
        assert alice_client.get_deposit_info(OWNER) == DepositInfo(0, 0, 0, 0)

    def test_receipts_keep_events_when_history_is_capped(self, alice_client, monkeypatch):
        monkeypatch.setattr(ledger_module, "MAX_EVENT_HISTORY", 1)
        receipt = alice_client.wait_for_receipt(alice_client.deposit("0.01", DAY))
        assert [e["event_type"] for e in receipt.events] == ["Deposited"]

        receipt = alice_client.wait_for_receipt(alice_client.claim_rewards())
        assert receipt.events == []

    def test_unknown_receipt_times_out(self, alice_client):
        with pytest.raises(ReceiptTimeout):
            alice_client.wait_for_receipt("0x" + "00" * 32, timeout=0.1)

    def test_empty_account_rejected(self, backend):
        with pytest.raises(InvalidParameter):
            TimeLockedVaultClient(backend, "")


def test_failed_receipt_raises():
    class RevertingBackend(VaultBackend):
        address = CONTRACT

        def transact(self, sender, function_name, args=(), value=0):
            return "0xdead"

        def get_receipt(self, tx_hash, timeout=120.0):
            return TransactionReceipt(tx_hash=tx_hash, status=0, block_number=3, function_name="withdraw")

    client = TimeLockedVaultClient(RevertingBackend(), ALICE)
    with pytest.raises(TransactionFailed) as exc_info:
        client.wait_for_receipt(client.withdraw())
    assert exc_info.value.tx_hash == "0xdead"


def test_local_backend_persists_between_instances(tmp_path, clock):
    path = tmp_path / "vault.json"
    first = LocalVaultBackend(state_path=path, clock=clock)
    owner = TimeLockedVaultClient(first, OWNER)
    owner.initialize(100, 150)
    tx_hash = TimeLockedVaultClient(first, ALICE).deposit("2", DAY)

    second = LocalVaultBackend(state_path=path, clock=clock)
    alice = TimeLockedVaultClient(second, ALICE)
    assert second.address == first.address
    assert second.block_number == 2
    assert alice.get_deposit_info().amount == 2 * 10**18
    assert alice.wait_for_receipt(tx_hash).function_name == "deposit"

    # Writes through one instance are visible through the other
    TimeLockedVaultClient(first, ALICE).deposit("1", DAY)
    assert alice.get_total_locked() == 3 * 10**18


def test_backends_sharing_a_state_file_do_not_lose_writes(tmp_path, clock):
    """Each call holds the state file lock from reload to save."""
    path = tmp_path / "vault.json"
    TimeLockedVaultClient(LocalVaultBackend(state_path=path, clock=clock), OWNER).initialize(100, 150)
    backends = [LocalVaultBackend(state_path=path, clock=clock) for _ in range(2)]
    errors = []

    def worker(backend, account):
        try:
            client = TimeLockedVaultClient(backend, account)
            for _ in range(10):
                client.deposit("0.001", DAY)
        except Exception as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [
        threading.Thread(target=worker, args=(backend, f"0xUser{i}")) for i, backend in enumerate(backends)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    reader = LocalVaultBackend(state_path=path, clock=clock)
    assert TimeLockedVaultClient(reader, OWNER).get_total_locked() == 20 * 10**15
    assert reader.block_number == 21


def test_local_backend_rejects_value_on_non_payable(backend):
    with pytest.raises(InvalidParameter):
        backend.transact(OWNER, "withdraw", value=5)
    with pytest.raises(InvalidParameter):
        backend.transact(OWNER, "selfDestruct")


def test_abi_covers_client_calls():
    names = {entry["name"] for entry in VAULT_ABI if entry["type"] == "function"}
    assert {
        "initialize",
        "deposit",
        "withdraw",
        "emergencyWithdraw",
        "claimRewards",
        "updateRewardRate",
        "activateEmergencyMode",
        "fundVault",
        "withdrawVault",
        "calculatePendingRewards",
        "getDepositInfo",
        "getTotalLocked",
        "getEmergencyMode",
        "getOwner",
    } <= names


@pytest.mark.parametrize(
    "name, signature",
    [
        ("Deposited", "Deposited(address,uint256,uint256)"),
        ("Withdrawn", "Withdrawn(address,uint256,uint256)"),
        ("EmergencyWithdraw", "EmergencyWithdraw(address,uint256,uint256)"),
        ("RewardsClaimed", "RewardsClaimed(address,uint256)"),
        ("EmergencyModeActivated", "EmergencyModeActivated()"),
    ],
)
def test_abi_event_topics_match_contract(name, signature):
    """Each embedded event must hash to the topic the deployed contract emits."""
    (entry,) = [e for e in VAULT_ABI if e["type"] == "event" and e["name"] == name]
    assert event_abi_to_log_topic(entry) == keccak(text=signature)


class TestWeb3Backend:
    """Tests for the web3 backend with a mocked provider."""

    @pytest.fixture
    def w3(self):
        return MagicMock()

    @pytest.fixture
    def backend(self, w3):
        return Web3VaultBackend("http://localhost:8547", CONTRACT, sender=SENDER, w3=w3)

    def test_transact_sends_value_from_account(self, backend, w3):
        contract = w3.eth.contract.return_value
        contract.functions.deposit.return_value.transact.return_value = b"\x12" * 32

        client = TimeLockedVaultClient(backend, SENDER)
        tx_hash = client.deposit("0.01", DAY)

        assert tx_hash == "0x" + "12" * 32
        contract.functions.deposit.assert_called_once_with(DAY)
        sent = contract.functions.deposit.return_value.transact.call_args[0][0]
        assert sent["value"] == 10**16
        assert sent["from"].lower() == SENDER

    def test_revert_becomes_transaction_failed(self, backend, w3):
        contract = w3.eth.contract.return_value
        contract.functions.withdraw.return_value.transact.side_effect = ContractLogicError("execution reverted")
        with pytest.raises(TransactionFailed):
            TimeLockedVaultClient(backend, SENDER).withdraw()

    def test_receipt_mapping(self, backend, w3):
        w3.eth.wait_for_transaction_receipt.return_value = SimpleNamespace(
            status=1,
            blockNumber=42,
            gasUsed=51000,
            get=lambda key, default=None: SENDER,
        )
        receipt = TimeLockedVaultClient(backend, SENDER).wait_for_receipt("0xabc", timeout=5)
        assert receipt.block_number == 42
        assert receipt.gas_used == 51000
        w3.eth.wait_for_transaction_receipt.assert_called_once_with("0xabc", timeout=5)

    def test_reverted_receipt(self, backend, w3):
        w3.eth.wait_for_transaction_receipt.return_value = SimpleNamespace(
            status=0, blockNumber=7, gasUsed=30000, get=lambda key, default=None: SENDER
        )
        receipt = backend.get_receipt("0xabc")
        assert receipt.succeeded is False
        assert receipt.error["error"] == "TransactionFailed"
        assert receipt.error["details"]["block_number"] == 7
        assert TransactionReceipt.from_dict(receipt.to_dict()).error == receipt.error

        with pytest.raises(TransactionFailed) as exc_info:
            TimeLockedVaultClient(backend, SENDER).wait_for_receipt("0xabc")
        assert exc_info.value.details["error"] == receipt.error

    def test_successful_receipt_has_no_error(self, backend, w3):
        w3.eth.wait_for_transaction_receipt.return_value = SimpleNamespace(
            status=1, blockNumber=8, gasUsed=30000, get=lambda key, default=None: SENDER
        )
        assert backend.get_receipt("0xabc").error is None

    def test_receipt_timeout(self, backend, w3):
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
        with pytest.raises(ReceiptTimeout):
            TimeLockedVaultClient(backend, SENDER).wait_for_receipt("0xabc", timeout=1)

    def test_reads_use_call(self, backend, w3):
        contract = w3.eth.contract.return_value
        contract.functions.getDepositInfo.return_value.call.return_value = [5, 100, 86400, 100]
        info = TimeLockedVaultClient(backend, SENDER).get_deposit_info()
        assert info == DepositInfo(5, 100, 86400, 100)
        assert info.unlock_time == 86500

    def test_contract_address_is_checksummed(self, backend):
        assert backend.address.lower() == CONTRACT
        assert backend.address != CONTRACT

    def test_requires_contract_address(self, w3):
        with pytest.raises(InvalidParameter):
            Web3VaultBackend("http://localhost:8547", "", w3=w3)
