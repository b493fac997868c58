"""
Configuration Management
"""

import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from web3 import Web3

from raffle.lottery.models import RaffleSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent.parent.parent / "config" / "raffle.conf"

DEVELOPMENT_CHAINS = ("hardhat", "localhost")

# Per-network deployment parameters, keyed by chain id.
NETWORK_CONFIG: Dict[int, Dict[str, Any]] = {
    31337: {
        "name": "hardhat",
        "entrance_fee": "0.01",
        "gas_lane": "0xd89b2bf150e3b9e13446986e571fb9cab24b13cea0a43ea20a6049a85cc807cc",
        "subscription_id": 0,
        "callback_gas_limit": 500000,
        "interval": 30,
    },
    11155111: {
        "name": "sepolia",
        "vrf_coordinator": "0x8103B0A8A00be2DDC778e6e7eaa21791Cd364625",
        "entrance_fee": "0.01",
        "gas_lane": "0x474e34a077df58807dbe9c96d3c009b23b3c6d0cce433e59bbf5b34f823bc56c",
        "subscription_id": 0,
        "callback_gas_limit": 500000,
        "interval": 30,
    },
}

_ENV_SECTIONS = {
    "RAFFLE_": "raffle",
    "BLOCKCHAIN_": "blockchain",
    "KEEPER_": "keeper",
    "ORACLE_": "oracle",
    "SERVER_": "server",
    "EVENT_MANAGER_": "event_manager",
}


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from files and environment variables"""
    config: Dict[str, Any] = {}

    path = Path(config_file or os.getenv("RAFFLE_CONFIG_FILE") or DEFAULT_CONFIG_FILE)
    if path.exists():
        try:
            with open(path, 'r') as f:
                config.update(json.load(f))
            logger.info(f"Loaded configuration from {path}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config file {path}: {e}")
    else:
        logger.warning(f"Config file {path} not found. Will only use environment variables.")

    config = _apply_env_overrides(config)
    logger.debug(f"Configuration after applying environment overrides: {json.dumps(config, indent=2)}")
    return config


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        if key == "RAFFLE_CONFIG_FILE":
            continue
        for prefix, section in _ENV_SECTIONS.items():
            if key.startswith(prefix):
                config.setdefault(section, {})[key[len(prefix):].lower()] = value
                break

    return config


def save_config(config: Dict[str, Any], config_file: Optional[str] = None):
    """Save configuration to file"""
    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(config, f, indent=2)
    logger.info(f"Configuration saved to {path}")


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    value = config
    try:
        for key in key_path.split('.'):
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def get_chain_id(config: Dict[str, Any]) -> int:
    return int(get_config_value(config, "blockchain.chain_id", 31337))


def is_development_chain(config: Dict[str, Any]) -> bool:
    network = NETWORK_CONFIG.get(get_chain_id(config), {})
    name = get_config_value(config, "blockchain.network", network.get("name", ""))
    return name in DEVELOPMENT_CHAINS


def resolve_raffle_settings(config: Dict[str, Any]) -> RaffleSettings:
    """Build the immutable raffle construction parameters.

    Values come from the network table entry for ``blockchain.chain_id`` and
    are overridden by the ``raffle`` section of the configuration.
    """
    chain_id = get_chain_id(config)
    merged: Dict[str, Any] = dict(NETWORK_CONFIG.get(chain_id, {}))
    merged.update(config.get("raffle", {}))

    missing = [k for k in ("entrance_fee", "interval", "gas_lane", "callback_gas_limit") if k not in merged]
    if missing:
        raise ValueError(f"No raffle settings for chain {chain_id}: missing {', '.join(missing)}")

    return RaffleSettings(
        entrance_fee=Web3.to_wei(Decimal(str(merged["entrance_fee"])), "ether"),
        interval=int(merged["interval"]),
        gas_lane=str(merged["gas_lane"]),
        subscription_id=int(merged.get("subscription_id", 0)),
        callback_gas_limit=int(merged["callback_gas_limit"]),
        vrf_coordinator=merged.get("vrf_coordinator"),
    )
