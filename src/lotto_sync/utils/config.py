"""
Configuration Management
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from lotto_sync.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent.parent.parent.parent / "config" / "lotto.conf"

DEFAULTS: Dict[str, Any] = {
    "blockchain": {
        "rpc_url": "http://127.0.0.1:8545",
        "rpc_timeout": 10.0,
        "chain_id": 11155111,
        "contract_address": None,
        "abi_path": None,
        "tx_timeout": 180,
        "poll_interval": 2.0,
        "entry_event": "PlayerEntered",
        "winner_event": "WinnerPicked",
    },
    "wallet": {
        "mode": "local",
        "private_key": None,
    },
    "lottery": {
        "entry_value_eth": "0.0011",
        "min_entry_fee_eth": "0.001",
        "winner_history": 5,
    },
    "status": {
        "entry_clear_sec": 3.0,
        "winner_clear_sec": 5.0,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 6080,
    },
}

# environment prefix -> config section
ENV_SECTIONS = {
    "BLOCKCHAIN_": "blockchain",
    "WALLET_": "wallet",
    "LOTTERY_": "lottery",
    "STATUS_": "status",
    "SERVER_": "server",
}


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from defaults, the config file and environment variables"""
    config = copy.deepcopy(DEFAULTS)

    path = Path(config_file or os.getenv("LOTTO_CONFIG") or DEFAULT_CONFIG_FILE)
    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
            _merge(config, file_config)
            logger.info("Loaded configuration from %s", path)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error loading config file %s: %s", path, e)
    else:
        logger.warning("Config file %s not found. Using defaults and environment variables.", path)

    config = _apply_env_overrides(config)

    logger.debug("Configuration after applying environment overrides: %s", json.dumps(_redacted(config), indent=2))

    return config


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(base.get(section), dict):
            base[section].update(values)
        else:
            base[section] = values


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        for prefix, section in ENV_SECTIONS.items():
            if key.startswith(prefix):
                config.setdefault(section, {})[key[len(prefix):].lower()] = value
                break

    return config


def _redacted(config: Dict[str, Any]) -> Dict[str, Any]:
    safe = copy.deepcopy(config)
    wallet = safe.get("wallet", {})
    for secret in ("private_key", "private_keys"):
        if wallet.get(secret):
            wallet[secret] = "***"
    return safe


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """Look up "section.key" in a loaded config; unset or null values give `default`."""
    node: Any = config
    for part in key_path.split('.'):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return default if node is None else node
