from decimal import Decimal

import pytest
from web3 import Web3

from raffle.blockchain.deploy import deploy_local
from raffle.lottery.models import RaffleSettings
from raffle.utils.config import NETWORK_CONFIG

HARDHAT = NETWORK_CONFIG[31337]


@pytest.fixture
def settings():
    return RaffleSettings(
        entrance_fee=Web3.to_wei(Decimal(HARDHAT["entrance_fee"]), "ether"),
        interval=HARDHAT["interval"],
        gas_lane=HARDHAT["gas_lane"],
        subscription_id=HARDHAT["subscription_id"],
        callback_gas_limit=HARDHAT["callback_gas_limit"],
    )


@pytest.fixture
def deployment(settings):
    return deploy_local(settings)


@pytest.fixture
def chain(deployment):
    return deployment.chain


@pytest.fixture
def raffle(deployment):
    return deployment.raffle


@pytest.fixture
def coordinator(deployment):
    return deployment.coordinator


@pytest.fixture
def deployer(deployment):
    return deployment.deployer


@pytest.fixture
def entrance_fee(raffle):
    return raffle.get_entrance_fee()


@pytest.fixture
def accounts(chain):
    """Five funded accounts besides the deployer."""
    return [chain.create_account(Web3.to_wei(100, "ether")) for _ in range(5)]


def pass_interval(chain, raffle, extra=1):
    chain.increase_time(raffle.get_interval() + extra)
    chain.mine()


@pytest.fixture
def closed_round(raffle, chain, deployer, entrance_fee):
    """One entrant, interval elapsed, upkeep performed. Returns the request id."""
    raffle.enter_raffle(deployer, value=entrance_fee)
    pass_interval(chain, raffle)
    receipt = raffle.perform_upkeep()
    return receipt.events[1].args["requestId"]
