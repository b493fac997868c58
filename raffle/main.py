#!/usr/bin/env python3
"""
Raffle keeper application.

On a development chain it deploys the coordinator mock and the raffle into an
in-process chain, runs the oracle stand-in and the upkeep keeper, and serves
the read-only API. On any other chain it binds to the deployed raffle through
web3 and only runs the keeper and the API.
"""

import argparse
import asyncio
import signal
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from web3 import Web3

from raffle.blockchain.chain import LocalChain
from raffle.blockchain.client import BlockchainClient
from raffle.blockchain.deploy import LocalDeployment, deploy_local
from raffle.lottery.event_manager import EventManager, MemoryStore
from raffle.lottery.operator import LocalRaffleGateway, RandomnessFulfiller, UpkeepOperator
from raffle.utils.config import get_chain_id, is_development_chain, load_config, resolve_raffle_settings
from raffle.utils.logger import configure_logging, get_logger
from raffle.web_server import RaffleWebServer

logger = get_logger(__name__)


class RaffleApp:
    """Wires chain, keeper, oracle stand-in and web server together."""

    def __init__(self, config: Dict[str, Any], demo_players: int = 0):
        self.config = config
        self.demo_players = demo_players
        self.store = MemoryStore()
        self.deployment: Optional[LocalDeployment] = None
        self.blockchain_client: Optional[BlockchainClient] = None
        self.event_manager: Optional[EventManager] = None
        self.fulfiller: Optional[RandomnessFulfiller] = None
        self.operator: Optional[UpkeepOperator] = None
        self.web_server = None
        self.running = True

    def _display_config_summary(self) -> None:
        blockchain_config = self.config.get("blockchain", {})
        logger.info("=" * 60)
        logger.info("Chain ID: %s", blockchain_config.get("chain_id", 31337))
        logger.info("RPC URL: %s", blockchain_config.get("rpc_url", "in-process"))
        logger.info("Keeper check interval: %ss", self.config.get("keeper", {}).get("check_interval", 5))
        logger.info("=" * 60)

    async def initialize(self) -> None:
        self._display_config_summary()

        if is_development_chain(self.config):
            settings = resolve_raffle_settings(self.config)
            # Dev chain time starts at wall time so the interval elapses in real seconds.
            chain = LocalChain(chain_id=get_chain_id(self.config), genesis_timestamp=int(time.time()))
            self.deployment = deploy_local(settings, chain=chain)

            self.event_manager = EventManager(chain, self.deployment.raffle.address, self.store, self.config)
            self.event_manager.attach()
            self.fulfiller = RandomnessFulfiller(self.deployment.coordinator, self.config)

            keeper = chain.create_account(Web3.to_wei(1, "ether"))
            target = LocalRaffleGateway(self.deployment.raffle, keeper, follow_wall_clock=True)
            self._enter_demo_players()
        else:
            self.blockchain_client = BlockchainClient(self.config)
            await self.blockchain_client.initialize()
            target = self.blockchain_client

        self.operator = UpkeepOperator(target, self.config)
        self.web_server = RaffleWebServer(self.config, target, self.store, self.operator)

    def _enter_demo_players(self) -> None:
        if not self.deployment or self.demo_players <= 0:
            return
        raffle = self.deployment.raffle
        fee = raffle.get_entrance_fee()
        for _ in range(self.demo_players):
            player = raffle.chain.create_account(fee * 10)
            raffle.enter_raffle(player, value=fee)
        logger.info("Entered %d demo players", self.demo_players)

    async def start(self) -> None:
        try:
            await self.initialize()
            if self.fulfiller:
                await self.fulfiller.start()
            await self.operator.start()

            server_cfg = self.config.get("server", {})
            host = server_cfg.get("host", "0.0.0.0")
            port = int(server_cfg.get("port", 6080))
            server_task = asyncio.create_task(self.web_server.start(host=host, port=port))

            while self.running and not server_task.done():
                await asyncio.sleep(1)

            logger.info("Shutdown signal received, stopping application...")
        finally:
            await self.stop()

    async def stop(self) -> None:
        self.running = False
        if self.operator:
            await self.operator.stop()
        if self.fulfiller:
            await self.fulfiller.stop()
        if self.web_server:
            await self.web_server.stop()
        if self.event_manager:
            self.event_manager.detach()
        if self.blockchain_client:
            await self.blockchain_client.close()
        logger.info("Raffle keeper stopped")

    def handle_signal(self, signum, frame) -> None:
        logger.info("Received signal %s, initiating graceful shutdown...", signum)
        self.running = False


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the raffle keeper")
    parser.add_argument("--config", help="Path to a JSON config file")
    parser.add_argument("--demo-players", type=int, default=0, help="Enter N funded players on a development chain")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--log-file", help="Override LOG_FILE")
    return parser.parse_args(argv)


async def run(argv=None) -> None:
    args = parse_args(argv)
    if args.log_level or args.log_file:
        configure_logging(args.log_level, args.log_file)
    app = RaffleApp(load_config(args.config), demo_players=args.demo_players)

    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    await app.start()


def main(argv=None) -> None:
    load_dotenv(Path.cwd() / ".env")
    try:
        asyncio.run(run(argv))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Raffle keeper failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
