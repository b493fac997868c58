"""
Local deployment of the raffle and its randomness coordinator mock.

Mirrors the two deployment steps used on development chains: deploy the
coordinator mock, then create and fund a subscription, deploy the raffle
against it and register the raffle as a consumer.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from web3 import Web3

from raffle.blockchain.chain import LocalChain
from raffle.lottery.coordinator import BASE_FEE, GAS_PRICE_LINK, VRFCoordinatorV2Mock
from raffle.lottery.models import RaffleSettings
from raffle.lottery.raffle import Raffle
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

VRF_SUB_FUND_AMOUNT = Web3.to_wei(Decimal("30"), "ether")
DEPLOYER_BALANCE = Web3.to_wei(Decimal("10000"), "ether")


@dataclass
class LocalDeployment:
    chain: LocalChain
    deployer: str
    coordinator: VRFCoordinatorV2Mock
    raffle: Raffle
    subscription_id: int


def deploy_mocks(chain: LocalChain, deployer: str) -> VRFCoordinatorV2Mock:
    logger.info("Local network detected! Deploying mocks...")
    coordinator = chain.deploy(VRFCoordinatorV2Mock, deployer, BASE_FEE, GAS_PRICE_LINK)
    logger.info("Mocks deployed at %s", coordinator.address)
    return coordinator


def deploy_raffle(
    chain: LocalChain,
    deployer: str,
    coordinator: VRFCoordinatorV2Mock,
    settings: RaffleSettings,
    fund_amount: int = VRF_SUB_FUND_AMOUNT,
) -> LocalDeployment:
    receipt = coordinator.create_subscription(deployer)
    subscription_id = receipt.events[0].args["subId"]
    coordinator.fund_subscription(deployer, subscription_id, fund_amount)

    settings = replace(settings, subscription_id=subscription_id, vrf_coordinator=coordinator.address)
    raffle = chain.deploy(Raffle, deployer, coordinator.address, settings)

    coordinator.add_consumer(deployer, subscription_id, raffle.address)
    logger.info("Consumer %s added to subscription %d", raffle.address, subscription_id)

    return LocalDeployment(
        chain=chain,
        deployer=deployer,
        coordinator=coordinator,
        raffle=raffle,
        subscription_id=subscription_id,
    )


def deploy_local(
    settings: RaffleSettings,
    chain: Optional[LocalChain] = None,
    deployer: Optional[str] = None,
) -> LocalDeployment:
    """Deploy mocks and raffle on a (new) local chain."""
    chain = chain or LocalChain()
    if deployer is None:
        deployer = chain.create_account(DEPLOYER_BALANCE)

    coordinator = deploy_mocks(chain, deployer)
    deployment = deploy_raffle(chain, deployer, coordinator, settings)
    logger.info("Raffle deployed at %s", deployment.raffle.address)
    return deployment
