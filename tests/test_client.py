import asyncio
import json
from types import SimpleNamespace

import pytest
from eth_account import Account
from web3 import Web3

from raffle.blockchain.client import ABI_PATH, BlockchainClient
from raffle.lottery.exceptions import ContractRevert
from raffle.lottery.models import RaffleState
from raffle.utils.common import ZERO_ADDRESS

PLAYERS = ["0x" + "1" * 40, "0x" + "2" * 40]
KEEPER_KEY = "0x" + "11" * 32
RAFFLE_ADDRESS = Web3.to_checksum_address("0x" + "ab" * 20)
REQUESTED_TOPIC = Web3.keccak(text="RequestedRaffleWinner(uint256)")


class _Call:
    def __init__(self, value):
        self._value = value

    def call(self):
        return self._value


class FakeFunctions:
    """Stands in for ``contract.functions``; values may be callables taking the call args."""

    def __init__(self, values):
        self._values = values

    def __getattr__(self, name):
        value = self._values[name]
        return lambda *args: _Call(value(*args) if callable(value) else value)


@pytest.fixture
def client():
    client = BlockchainClient({"blockchain": {"chain_id": 11155111, "contract_address": "0x" + "a" * 40}})
    client._contract = SimpleNamespace(
        functions=FakeFunctions(
            {
                "getEntranceFee": 10**16,
                "getInterval": 30,
                "getRaffleState": 1,
                "getNumberOfPlayers": len(PLAYERS),
                "getPlayer": lambda i: PLAYERS[i],
                "getRecentWinner": ZERO_ADDRESS,
                "getLatestTimeStamp": 1_700_000_000,
                "checkUpkeep": (False, b""),
            }
        )
    )
    return client


def test_views(client):
    assert asyncio.run(client.get_raffle_state()) == RaffleState.CALCULATING
    assert asyncio.run(client.get_player(1)) == PLAYERS[1]
    assert asyncio.run(client.get_recent_winner()) is None
    assert asyncio.run(client.check_upkeep()) is False


def test_summary(client):
    summary = asyncio.run(client.get_raffle_summary())
    assert summary == {
        "entranceFee": 10**16,
        "interval": 30,
        "state": 1,
        "stateLabel": "CALCULATING",
        "numberOfPlayers": 2,
        "recentWinner": None,
        "latestTimestamp": 1_700_000_000,
        "upkeepNeeded": False,
    }


def test_requires_contract():
    client = BlockchainClient({})
    with pytest.raises(RuntimeError):
        asyncio.run(client.get_interval())


def test_transactions_need_a_keeper_account(client):
    with pytest.raises(ValueError, match="Keeper account"):
        asyncio.run(client.enter_raffle(10**16))


def test_keeper_account_and_gas_settings():
    client = BlockchainClient({"blockchain": {"keeper_private_key": KEEPER_KEY, "gas_price": "2"}})
    assert client.account is not None
    assert client._gas_price_override == 2 * 10**9
    assert client.get_client_status()["keeper"] == client.account.address


def _raffle_contract():
    with ABI_PATH.open("r", encoding="utf-8") as handle:
        abi = json.load(handle)
    return Web3().eth.contract(address=RAFFLE_ADDRESS, abi=abi)


def _log(topics, log_index=0):
    return {
        "address": RAFFLE_ADDRESS,
        "topics": topics,
        "data": b"",
        "logIndex": log_index,
        "transactionIndex": 0,
        "transactionHash": b"\x01" * 32,
        "blockHash": b"\x02" * 32,
        "blockNumber": 42,
    }


def _receipt(status=1, logs=()):
    return {
        "status": status,
        "blockNumber": 42,
        "transactionHash": b"\x01" * 32,
        "gasUsed": 80_000,
        "logs": list(logs),
    }


class FakeEth:
    """Node side of the RPC: records raw transactions and hands back a prepared receipt."""

    def __init__(self, receipt=None):
        self.gas_price = 3 * 10**9
        self.sent = []
        self._receipt = receipt

    def get_transaction_count(self, address):
        return 7

    def send_raw_transaction(self, raw):
        self.sent.append(bytes(raw))
        return Web3.keccak(raw)

    def wait_for_transaction_receipt(self, tx_hash, timeout):
        return self._receipt


class PerformUpkeepCall:
    """Contract function stub that encodes calldata with the real ABI."""

    built = {}

    def __init__(self, *args):
        self.args = list(args)

    def estimate_gas(self, tx):
        return 100_000

    def build_transaction(self, tx):
        PerformUpkeepCall.built = dict(tx)
        data = _raffle_contract().encode_abi("performUpkeep", args=self.args)
        return {**tx, "to": RAFFLE_ADDRESS, "data": data}


@pytest.fixture
def keeper_client():
    client = BlockchainClient(
        {"blockchain": {"chain_id": 11155111, "keeper_private_key": KEEPER_KEY, "gas_multiplier": 1.5}}
    )
    client._contract = SimpleNamespace(
        functions=SimpleNamespace(performUpkeep=PerformUpkeepCall),
        events=_raffle_contract().events,
    )
    return client


def test_send_transaction_signs_with_the_keeper_key(keeper_client):
    eth = FakeEth()
    keeper_client._w3 = SimpleNamespace(eth=eth)

    tx_hash = asyncio.run(keeper_client._send_transaction("performUpkeep", b""))

    (raw,) = eth.sent
    assert tx_hash == Web3.to_hex(Web3.keccak(raw))
    assert Account.recover_transaction(raw) == keeper_client.account.address
    built = PerformUpkeepCall.built
    assert built["gas"] == 150_000
    assert built["gasPrice"] == 3 * 10**9
    assert built["nonce"] == 7
    assert built["chainId"] == 11155111


def test_wait_for_transaction_parses_request_id(keeper_client):
    receipt = _receipt(logs=[_log([REQUESTED_TOPIC, (9).to_bytes(32, "big")])])
    keeper_client._w3 = SimpleNamespace(eth=FakeEth(receipt))

    result = asyncio.run(keeper_client.wait_for_transaction("0x01"))

    assert result["status"] == 1
    assert result["blockNumber"] == 42
    assert result["transactionHash"] == "0x" + "01" * 32
    assert result["requestId"] == 9


def test_wait_for_transaction_without_request_log(keeper_client):
    enter_topic = Web3.keccak(text="RaffleEnter(address)")
    player_topic = b"\x00" * 12 + bytes.fromhex("22" * 20)
    keeper_client._w3 = SimpleNamespace(eth=FakeEth(_receipt(logs=[_log([enter_topic, player_topic])])))

    result = asyncio.run(keeper_client.wait_for_transaction("0x01"))
    assert "requestId" not in result


def test_perform_upkeep_reports_request_id(keeper_client):
    receipt = _receipt(logs=[_log([REQUESTED_TOPIC, (5).to_bytes(32, "big")])])
    eth = FakeEth(receipt)
    keeper_client._w3 = SimpleNamespace(eth=eth)

    result = asyncio.run(keeper_client.perform_upkeep())

    assert result["request_id"] == 5
    assert result["tx_hash"] == Web3.to_hex(Web3.keccak(eth.sent[0]))


def test_perform_upkeep_revert(keeper_client):
    keeper_client._w3 = SimpleNamespace(eth=FakeEth(_receipt(status=0)))
    with pytest.raises(ContractRevert):
        asyncio.run(keeper_client.perform_upkeep())
