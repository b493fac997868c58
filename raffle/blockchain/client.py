"""Blockchain client for a Raffle contract deployed on a real chain."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_account import Account
from web3 import Web3
from web3.contract import Contract
from web3.logs import DISCARD

from raffle.lottery.exceptions import ContractRevert
from raffle.lottery.models import RaffleState
from raffle.utils.common import is_zero_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

ABI_PATH = Path(__file__).parent / "abi" / "Raffle.abi"


class BlockchainClient:
    """Async-friendly wrapper around web3.py for raffle operations.

    Offers the same ``check_upkeep`` / ``perform_upkeep`` coroutines as the
    local gateway so the keeper can drive either.
    """

    def __init__(self, config: Dict[str, Any]):
        self._config = config

        blockchain_cfg = config.get("blockchain", {})
        self.rpc_url: str = blockchain_cfg.get("rpc_url", "http://127.0.0.1:8545")
        self.rpc_timeout: float = float(blockchain_cfg.get("rpc_timeout", 10.0))
        self.chain_id: int = int(blockchain_cfg.get("chain_id", 31337))
        self.contract_address: Optional[str] = blockchain_cfg.get("contract_address")

        self._w3: Optional[Web3] = None
        self._contract: Optional[Contract] = None
        self.contract_abi: Optional[List[Dict[str, Any]]] = None

        private_key = blockchain_cfg.get("keeper_private_key")
        self.account = Account.from_key(private_key) if private_key else None
        if self.account:
            logger.info("Keeper account loaded: %s", self.account.address)

        self._gas_price_override: Optional[int] = None
        gas_price_setting = blockchain_cfg.get("gas_price")
        if gas_price_setting:
            self._gas_price_override = Web3.to_wei(Decimal(str(gas_price_setting)), "gwei")

        self._gas_multiplier = float(blockchain_cfg.get("gas_multiplier", 1.15))
        self._tx_timeout = int(config.get("keeper", {}).get("tx_timeout_seconds", 180))

    async def initialize(self) -> None:
        """Establish the RPC connection and load the contract."""
        self._w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.rpc_timeout}))
        if not self._w3.is_connected():  # pragma: no cover - depends on live RPC
            raise ConnectionError(f"Failed to connect to RPC at {self.rpc_url}")
        logger.info("Connected to RPC %s (chain id %s)", self.rpc_url, self.chain_id)

        actual_chain_id = self._w3.eth.chain_id
        if actual_chain_id != self.chain_id:
            logger.warning("Chain ID mismatch: expected %s, got %s", self.chain_id, actual_chain_id)

        await self._load_contract()

    async def close(self) -> None:
        self._contract = None
        self._w3 = None

    async def _load_contract(self) -> None:
        if not self.contract_address:
            raise ValueError("blockchain.contract_address is not configured")

        with ABI_PATH.open("r", encoding="utf-8") as handle:
            self.contract_abi = json.load(handle)

        w3 = self._ensure_web3()
        address = Web3.to_checksum_address(self.contract_address)
        code = await asyncio.to_thread(w3.eth.get_code, address)
        if len(code) == 0:
            raise ValueError(f"No contract deployed at {address}")

        self._contract = w3.eth.contract(address=address, abi=self.contract_abi)
        logger.info("Raffle contract bound at %s with %d bytes of code", address, len(code))

    def _ensure_contract(self) -> Contract:
        if not self._contract:
            raise RuntimeError("Contract not initialised")
        return self._contract

    def _ensure_web3(self) -> Web3:
        if not self._w3:
            raise RuntimeError("Web3 provider not initialised")
        return self._w3

    async def _call_view(self, function_name: str, *args) -> Any:
        contract = self._ensure_contract()

        def _call():
            return getattr(contract.functions, function_name)(*args).call()

        return await asyncio.to_thread(_call)

    async def _send_transaction(self, function_name: str, *args, value: int = 0) -> str:
        if not self.account:
            raise ValueError("Keeper account not configured")

        contract = self._ensure_contract()
        w3 = self._ensure_web3()

        def _send() -> str:
            tx_function = getattr(contract.functions, function_name)(*args)
            gas_estimate = tx_function.estimate_gas({"from": self.account.address, "value": value})
            txn = tx_function.build_transaction(
                {
                    "from": self.account.address,
                    "value": value,
                    "gas": int(gas_estimate * self._gas_multiplier),
                    "gasPrice": self._gas_price_override or w3.eth.gas_price,
                    "nonce": w3.eth.get_transaction_count(self.account.address),
                    "chainId": self.chain_id,
                }
            )
            signed = self.account.sign_transaction(txn)
            return Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))

        tx_hash = await asyncio.to_thread(_send)
        logger.info("Sent transaction %s for %s", tx_hash, function_name)
        return tx_hash

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------
    async def get_entrance_fee(self) -> int:
        return int(await self._call_view("getEntranceFee"))

    async def get_interval(self) -> int:
        return int(await self._call_view("getInterval"))

    async def get_raffle_state(self) -> RaffleState:
        return RaffleState(int(await self._call_view("getRaffleState")))

    async def get_player(self, index: int) -> str:
        return await self._call_view("getPlayer", index)

    async def get_number_of_players(self) -> int:
        return int(await self._call_view("getNumberOfPlayers"))

    async def get_recent_winner(self) -> Optional[str]:
        winner = await self._call_view("getRecentWinner")
        return None if is_zero_address(winner) else winner

    async def get_latest_timestamp(self) -> int:
        return int(await self._call_view("getLatestTimeStamp"))

    async def get_raffle_summary(self) -> Dict[str, Any]:
        state = await self.get_raffle_state()
        return {
            "entranceFee": await self.get_entrance_fee(),
            "interval": await self.get_interval(),
            "state": int(state),
            "stateLabel": state.name,
            "numberOfPlayers": await self.get_number_of_players(),
            "recentWinner": await self.get_recent_winner(),
            "latestTimestamp": await self.get_latest_timestamp(),
            "upkeepNeeded": await self.check_upkeep(),
        }

    # ------------------------------------------------------------------
    # Keeper interface
    # ------------------------------------------------------------------
    async def check_upkeep(self) -> bool:
        upkeep_needed, _ = await self._call_view("checkUpkeep", b"")
        return bool(upkeep_needed)

    async def perform_upkeep(self) -> Dict[str, Any]:
        tx_hash = await self._send_transaction("performUpkeep", b"")
        receipt = await self.wait_for_transaction(tx_hash, timeout=self._tx_timeout)
        if receipt["status"] != 1:
            raise ContractRevert(f"performUpkeep reverted in {tx_hash}")
        return {"tx_hash": tx_hash, "request_id": receipt.get("requestId")}

    async def enter_raffle(self, value: int) -> str:
        return await self._send_transaction("enterRaffle", value=value)

    async def wait_for_transaction(self, tx_hash: str, timeout: int = 180) -> Dict[str, Any]:
        w3 = self._ensure_web3()
        contract = self._ensure_contract()

        def _wait():
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
            result = {
                "status": int(receipt["status"]),
                "blockNumber": int(receipt["blockNumber"]),
                "transactionHash": Web3.to_hex(receipt["transactionHash"]),
                "gasUsed": int(receipt["gasUsed"]),
            }
            requested = contract.events.RequestedRaffleWinner().process_receipt(receipt, errors=DISCARD)
            if requested:
                result["requestId"] = int(requested[0]["args"]["requestId"])
            return result

        return await asyncio.to_thread(_wait)

    async def health_check(self) -> Dict[str, Any]:
        try:
            w3 = self._ensure_web3()
            latest_block = await asyncio.to_thread(lambda: int(w3.eth.block_number))
            return {"status": "healthy", "latestBlock": latest_block}
        except Exception as exc:  # pragma: no cover - health failures are diagnostic
            logger.exception("Blockchain health check failed")
            return {"status": "error", "detail": str(exc)}

    def get_client_status(self) -> Dict[str, Any]:
        return {
            "rpcUrl": self.rpc_url,
            "chainId": self.chain_id,
            "contract": self.contract_address,
            "keeper": self.account.address if self.account else None,
        }
