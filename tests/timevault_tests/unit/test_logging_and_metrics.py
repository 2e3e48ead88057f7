import io
import json
import logging

import pytest
from prometheus_client import REGISTRY

from timevault.core.logging_config import setup_logging
from timevault.core.vault_exceptions import NoDeposit
from timevault.core.vault_metrics import record_value_moved

OWNER = "0xOwner"
ALICE = "0xAlice"


def _sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_setup_logging_emits_json():
    stream = io.StringIO()
    logger = setup_logging(name="timevault.test_json", level="INFO", stream=stream)
    logger.info("Vault ready", extra={"event": "vault.ready"})

    record = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert record["message"] == "Vault ready"
    assert record["event"] == "vault.ready"
    assert record["service"] == "timevault"
    assert record["level"] == "info"


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        setup_logging(name="timevault.test_bad", level="LOUD")


def test_rejections_are_logged_and_counted(vault, caplog):
    before = _sample("timevault_operations_total", {"operation": "withdraw", "outcome": "NoDeposit"})
    with caplog.at_level(logging.WARNING, logger="timevault"):
        with pytest.raises(NoDeposit):
            vault.withdraw(ALICE)

    assert _sample("timevault_operations_total", {"operation": "withdraw", "outcome": "NoDeposit"}) == before + 1
    assert any(getattr(r, "event", "") == "vault.withdraw.rejected" for r in caplog.records)


def test_gauges_follow_the_ledger(vault):
    vault.deposit(ALICE, 1234, 60)
    assert _sample("timevault_total_locked_wei", {"vault": vault.address}) == 1234
    vault.activate_emergency_mode(OWNER)
    assert _sample("timevault_emergency_mode", {"vault": vault.address}) == 1


def test_value_moved_ignores_empty_flows():
    before = _sample("timevault_value_moved_wei_total", {"flow": "penalty"})
    record_value_moved("penalty", 0)
    assert _sample("timevault_value_moved_wei_total", {"flow": "penalty"}) == before
