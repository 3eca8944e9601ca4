"""Configuration loading: defaults, JSON file and environment overrides."""

import json
import logging

import pytest

from lotto_sync.utils.common import same_account, shorten_eth_address
from lotto_sync.utils.config import get_config_value, load_config
from lotto_sync.utils.logger import get_logger


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("LOTTO_CONFIG", raising=False)
    for key in ("BLOCKCHAIN_RPC_URL", "WALLET_MODE", "SERVER_PORT", "LOTTERY_ENTRY_VALUE_ETH"):
        monkeypatch.delenv(key, raising=False)


def test_defaults_when_file_missing(tmp_path):
    config = load_config(str(tmp_path / "missing.conf"))

    assert config["blockchain"]["chain_id"] == 11155111
    assert config["lottery"]["entry_value_eth"] == "0.0011"
    assert config["lottery"]["winner_history"] == 5
    assert config["status"]["entry_clear_sec"] == 3.0
    assert config["status"]["winner_clear_sec"] == 5.0


def test_file_values_merge_over_defaults(tmp_path):
    path = tmp_path / "lotto.conf"
    path.write_text(json.dumps({"blockchain": {"contract_address": "0xabc", "chain_id": 1}}))

    config = load_config(str(path))

    assert config["blockchain"]["contract_address"] == "0xabc"
    assert config["blockchain"]["chain_id"] == 1
    assert config["blockchain"]["entry_event"] == "PlayerEntered"


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "lotto.conf"
    path.write_text(json.dumps({"server": {"port": 7000}}))
    monkeypatch.setenv("LOTTO_CONFIG", str(path))
    monkeypatch.setenv("SERVER_PORT", "9000")
    monkeypatch.setenv("WALLET_MODE", "rpc")

    config = load_config()

    assert config["server"]["port"] == "9000"
    assert config["wallet"]["mode"] == "rpc"


def test_invalid_json_falls_back_to_defaults(tmp_path):
    path = tmp_path / "broken.conf"
    path.write_text("{not json")

    config = load_config(str(path))

    assert config["server"]["port"] == 6080


def test_get_config_value():
    config = {"blockchain": {"rpc_url": "http://node", "abi_path": None}}

    assert get_config_value(config, "blockchain.rpc_url") == "http://node"
    assert get_config_value(config, "blockchain.abi_path", "default.abi") == "default.abi"
    assert get_config_value(config, "server.port", 6080) == 6080


def test_address_helpers():
    assert same_account("0xAbC", "0xabc")
    assert not same_account(None, "0xabc")
    assert shorten_eth_address("0x1234567890abcdef1234") == "0x1234...1234"
    assert shorten_eth_address("0x1234") == "0x1234"
    assert shorten_eth_address("") == ""


def test_get_config_value_stops_at_non_mapping():
    config = {"server": {"port": 6080}, "wallet": "local"}

    assert get_config_value(config, "server.port.number", "n/a") == "n/a"
    assert get_config_value(config, "wallet.mode", "local") == "local"


def test_get_logger_returns_named_logger_with_root_handler():
    logger = get_logger("lotto_sync.tests")

    assert logger.name == "lotto_sync.tests"
    assert logging.getLogger().handlers
