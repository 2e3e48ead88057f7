"""Tests for environment-driven vault configuration."""

from pathlib import Path

import pytest

from timevault.core.config import (
    DEFAULT_RPC_URL,
    SECONDS_PER_YEAR,
    ConfigurationError,
    NetworkType,
    VaultConfig,
)


def test_defaults():
    config = VaultConfig()
    assert config.network is NetworkType.TESTNET
    assert config.early_exit_penalty_bps == 1500
    assert config.emergency_mode_penalty_bps == 0
    assert config.min_lock_period == 0
    assert config.max_lock_period == SECONDS_PER_YEAR
    assert config.rpc_url == DEFAULT_RPC_URL


def test_from_env_reads_overrides(tmp_path):
    env = {
        "TIMEVAULT_NETWORK": "testnet",
        "TIMEVAULT_EARLY_EXIT_PENALTY_BPS": "1000",
        "TIMEVAULT_EMERGENCY_PENALTY_BPS": "100",
        "TIMEVAULT_MIN_LOCK_PERIOD": "86400",
        "TIMEVAULT_MAX_LOCK_PERIOD": "172800",
        "TIMEVAULT_STATE_PATH": str(tmp_path / "vault.json"),
        "TIMEVAULT_RECEIPT_TIMEOUT": "30",
        "TIMEVAULT_LOG_LEVEL": "debug",
    }
    config = VaultConfig.from_env(env)
    assert config.early_exit_penalty_bps == 1000
    assert config.emergency_mode_penalty_bps == 100
    assert config.min_lock_period == 86400
    assert config.max_lock_period == 172800
    assert config.default_state_path() == tmp_path / "vault.json"
    assert config.receipt_timeout == 30.0
    assert config.log_level == "DEBUG"


def test_default_state_path_uses_network():
    config = VaultConfig.from_env({})
    assert config.default_state_path().name == "vault_testnet.json"


@pytest.mark.parametrize(
    "env",
    [
        {"TIMEVAULT_NETWORK": "moonnet"},
        {"TIMEVAULT_EARLY_EXIT_PENALTY_BPS": "lots"},
        {"TIMEVAULT_EARLY_EXIT_PENALTY_BPS": "10001"},
        {"TIMEVAULT_MIN_LOCK_PERIOD": "100", "TIMEVAULT_MAX_LOCK_PERIOD": "10"},
        {"TIMEVAULT_BONUS_REFERENCE_PERIOD": "0"},
        {"TIMEVAULT_RECEIPT_TIMEOUT": "-1"},
    ],
)
def test_invalid_values_rejected(env):
    with pytest.raises(ConfigurationError):
        VaultConfig.from_env(env)


def test_emergency_penalty_cannot_exceed_early_penalty():
    with pytest.raises(ConfigurationError):
        VaultConfig(early_exit_penalty_bps=100, emergency_mode_penalty_bps=200)


def test_mainnet_contract_requires_explicit_rpc():
    with pytest.raises(ConfigurationError, match="RPC_URL"):
        VaultConfig.from_env({"TIMEVAULT_NETWORK": "mainnet", "TIMEVAULT_CONTRACT_ADDRESS": "0x" + "ab" * 20})

    config = VaultConfig.from_env(
        {
            "TIMEVAULT_NETWORK": "mainnet",
            "TIMEVAULT_CONTRACT_ADDRESS": "0x" + "ab" * 20,
            "TIMEVAULT_RPC_URL": "https://rpc.example.org",
        }
    )
    assert config.network is NetworkType.MAINNET


def test_to_dict_is_json_friendly(tmp_path):
    config = VaultConfig(state_path=Path(tmp_path / "s.json"))
    data = config.to_dict()
    assert data["network"] == "testnet"
    assert data["state_path"] == str(tmp_path / "s.json")
