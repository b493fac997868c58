import json

import pytest

from raffle.utils.config import (
    get_chain_id,
    get_config_value,
    is_development_chain,
    load_config,
    resolve_raffle_settings,
    save_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("RAFFLE_CONFIG_FILE", raising=False)
    for key in ("RAFFLE_INTERVAL", "KEEPER_CHECK_INTERVAL", "BLOCKCHAIN_CHAIN_ID"):
        monkeypatch.delenv(key, raising=False)


def test_load_config_from_file(tmp_path):
    path = tmp_path / "raffle.conf"
    path.write_text(json.dumps({"keeper": {"check_interval": 7}}))
    config = load_config(str(path))
    assert config["keeper"]["check_interval"] == 7


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "raffle.conf"
    path.write_text(json.dumps({"keeper": {"check_interval": 7}}))
    monkeypatch.setenv("KEEPER_CHECK_INTERVAL", "2")
    monkeypatch.setenv("RAFFLE_INTERVAL", "60")

    config = load_config(str(path))
    assert config["keeper"]["check_interval"] == "2"
    assert config["raffle"]["interval"] == "60"


def test_config_file_from_env(tmp_path, monkeypatch):
    path = tmp_path / "other.conf"
    path.write_text(json.dumps({"server": {"port": 9000}}))
    monkeypatch.setenv("RAFFLE_CONFIG_FILE", str(path))
    config = load_config()
    assert config["server"]["port"] == 9000
    assert "config_file" not in config.get("raffle", {})


def test_missing_or_broken_file_falls_back_to_env(tmp_path, monkeypatch):
    monkeypatch.setenv("BLOCKCHAIN_CHAIN_ID", "11155111")
    assert get_chain_id(load_config(str(tmp_path / "missing.conf"))) == 11155111

    broken = tmp_path / "broken.conf"
    broken.write_text("{not json")
    assert get_chain_id(load_config(str(broken))) == 11155111


def test_save_config_round_trip(tmp_path):
    path = tmp_path / "nested" / "raffle.conf"
    save_config({"server": {"port": 1}}, str(path))
    assert json.loads(path.read_text()) == {"server": {"port": 1}}


def test_get_config_value():
    config = {"blockchain": {"rpc_url": "http://x"}}
    assert get_config_value(config, "blockchain.rpc_url") == "http://x"
    assert get_config_value(config, "blockchain.missing", 5) == 5
    assert get_config_value(config, "blockchain.rpc_url.deeper", "d") == "d"


def test_development_chain_detection():
    assert is_development_chain({})
    assert is_development_chain({"blockchain": {"chain_id": 31337}})
    assert not is_development_chain({"blockchain": {"chain_id": 11155111}})
    assert is_development_chain({"blockchain": {"chain_id": 1337, "network": "localhost"}})


def test_resolve_settings_for_local_chain():
    settings = resolve_raffle_settings({})
    assert settings.entrance_fee == 10**16
    assert settings.interval == 30
    assert settings.callback_gas_limit == 500000
    assert settings.vrf_coordinator is None


def test_resolve_settings_applies_overrides():
    settings = resolve_raffle_settings({"raffle": {"entrance_fee": "0.5", "interval": "120"}})
    assert settings.entrance_fee == 5 * 10**17
    assert settings.interval == 120


def test_resolve_settings_for_sepolia():
    settings = resolve_raffle_settings({"blockchain": {"chain_id": "11155111"}})
    assert settings.vrf_coordinator == "0x8103B0A8A00be2DDC778e6e7eaa21791Cd364625"


def test_unknown_chain_requires_explicit_settings():
    with pytest.raises(ValueError, match="missing"):
        resolve_raffle_settings({"blockchain": {"chain_id": 5}})
