"""
Upkeep keeper and local randomness fulfiller.

UpkeepOperator periodically asks the raffle whether upkeep is needed and
performs it when it is. RandomnessFulfiller plays the oracle node on a local
chain: it picks up randomness requests from coordinator events and answers
them after a configurable delay. Pending requests never time out; if nobody
fulfills a request the raffle stays CALCULATING.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from raffle.blockchain.chain import BlockchainEvent
from raffle.lottery.coordinator import VRFCoordinatorV2Mock
from raffle.lottery.exceptions import ContractRevert, UpkeepNotNeeded
from raffle.lottery.models import KeeperStatus
from raffle.lottery.raffle import Raffle
from raffle.utils.common import is_zero_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class UpkeepTarget(Protocol):
    async def check_upkeep(self) -> bool: ...

    async def perform_upkeep(self) -> Dict[str, Any]: ...


class LocalRaffleGateway:
    """Async adapter exposing a local Raffle to the keeper."""

    def __init__(self, raffle: Raffle, sender: str, follow_wall_clock: bool = False) -> None:
        self.raffle = raffle
        self.sender = sender
        self.follow_wall_clock = follow_wall_clock

    def _sync_clock(self) -> None:
        if self.follow_wall_clock:
            self.raffle.chain.sync_to(int(time.time()))

    async def check_upkeep(self) -> bool:
        self._sync_clock()
        needed, _ = self.raffle.check_upkeep()
        return needed

    async def perform_upkeep(self) -> Dict[str, Any]:
        receipt = self.raffle.perform_upkeep(self.sender)
        return {"tx_hash": receipt.transaction_hash, "request_id": receipt.return_value}

    async def get_player(self, index: int) -> str:
        return self.raffle.get_player(index)

    async def get_number_of_players(self) -> int:
        return self.raffle.get_number_of_players()

    async def get_raffle_summary(self) -> Dict[str, Any]:
        raffle = self.raffle
        state = raffle.get_raffle_state()
        winner = raffle.get_recent_winner()
        needed, _ = raffle.check_upkeep()
        return {
            "entranceFee": raffle.get_entrance_fee(),
            "interval": raffle.get_interval(),
            "state": int(state),
            "stateLabel": state.name,
            "numberOfPlayers": raffle.get_number_of_players(),
            "recentWinner": None if is_zero_address(winner) else winner,
            "latestTimestamp": raffle.get_latest_timestamp(),
            "pendingRequestId": raffle.get_pending_request_id(),
            "balance": raffle.balance,
            "upkeepNeeded": needed,
        }

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "latestBlock": self.raffle.chain.block_number}

    def get_client_status(self) -> Dict[str, Any]:
        return {
            "chainId": self.raffle.chain.chain_id,
            "contract": self.raffle.address,
            "keeper": self.sender,
        }


class UpkeepOperator:
    """Keeper loop calling check_upkeep / perform_upkeep on a target."""

    def __init__(self, target: UpkeepTarget, config: Dict[str, Any]) -> None:
        self._target = target
        keeper_cfg = config.get("keeper", {})
        self._check_interval = float(keeper_cfg.get("check_interval", 5))
        self._alert_after = int(keeper_cfg.get("alert_after_failures", 3))
        self.status = KeeperStatus()
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self.status.is_running:
            logger.warning("Upkeep operator already running")
            return
        self.status.is_running = True
        self._task = asyncio.create_task(self._loop(), name="raffle-upkeep")
        logger.info("Upkeep operator started (every %.1fs)", self._check_interval)

    async def stop(self) -> None:
        if not self.status.is_running:
            return
        self.status.is_running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Upkeep operator stopped")

    async def _loop(self) -> None:
        while self.status.is_running:
            await self.run_once()
            await asyncio.sleep(self._check_interval)

    async def run_once(self) -> Optional[Dict[str, Any]]:
        """Check once and perform upkeep if due. Returns the perform result, if any."""
        self.status.record_check()
        try:
            if not await self._target.check_upkeep():
                return None
            result = await self._target.perform_upkeep()
        except UpkeepNotNeeded as exc:
            # Someone else closed the round between check and perform.
            logger.info("Upkeep no longer needed: %s", exc)
            return None
        except Exception as exc:
            self._record_failure(exc)
            return None

        self.status.record_upkeep(result.get("request_id"))
        logger.info("Upkeep performed: tx=%s request=%s", result.get("tx_hash"), result.get("request_id"))
        return result

    def _record_failure(self, exc: Exception) -> None:
        self.status.record_failure(str(exc))
        logger.error("Upkeep attempt failed: %s", exc)
        if self.status.consecutive_failures >= self._alert_after:
            logger.error("Upkeep failed %d times in a row", self.status.consecutive_failures)

    def get_status(self) -> Dict[str, Any]:
        s = self.status
        return {
            "status": "running" if s.is_running else "stopped",
            "checks": s.checks,
            "upkeeps_performed": s.upkeeps_performed,
            "last_check": s.last_check.isoformat() if s.last_check else None,
            "last_upkeep": s.last_upkeep.isoformat() if s.last_upkeep else None,
            "last_request_id": s.last_request_id,
            "consecutive_failures": s.consecutive_failures,
            "last_error": s.last_error,
        }


@dataclass
class _QueuedRequest:
    request_id: int
    consumer: str
    due_at: float


class RandomnessFulfiller:
    """Answers coordinator requests on a local chain, like an oracle node would."""

    def __init__(self, coordinator: VRFCoordinatorV2Mock, config: Dict[str, Any]) -> None:
        self.coordinator = coordinator
        oracle_cfg = config.get("oracle", {})
        self._delay = float(oracle_cfg.get("fulfillment_delay", 2))
        self._poll_interval = float(oracle_cfg.get("poll_interval", 1))
        self._queue: List[_QueuedRequest] = []
        self._attached = False
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.fulfilled = 0
        self.failed = 0

    def attach(self) -> None:
        if not self._attached:
            self.coordinator.chain.subscribe("RandomWordsRequested", self._on_request)
            self._attached = True

    def _on_request(self, evt: BlockchainEvent) -> None:
        if evt.address != self.coordinator.address:
            return
        self._queue.append(
            _QueuedRequest(
                request_id=int(evt.args["requestId"]),
                consumer=evt.args["sender"],
                due_at=time.monotonic() + self._delay,
            )
        )
        logger.info("Queued randomness request %s", evt.args["requestId"])

    @property
    def pending(self) -> List[int]:
        return [q.request_id for q in self._queue]

    def run_once(self, now: Optional[float] = None) -> int:
        """Fulfill every queued request that is due. Returns how many succeeded."""
        now = time.monotonic() if now is None else now
        due = [q for q in self._queue if q.due_at <= now]
        self._queue = [q for q in self._queue if q.due_at > now]

        done = 0
        for item in due:
            try:
                self.coordinator.fulfill_random_words(item.request_id, item.consumer)
            except ContractRevert as exc:
                # No retry: the request stays pending on the coordinator.
                self.failed += 1
                logger.error("Fulfillment of request %d failed: %s", item.request_id, exc)
                continue
            except Exception:
                self.failed += 1
                logger.exception("Unexpected error fulfilling request %d", item.request_id)
                continue
            done += 1
            self.fulfilled += 1
        return done

    async def start(self) -> None:
        self.attach()
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="raffle-fulfiller")
        logger.info("Randomness fulfiller started (delay %.1fs)", self._delay)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while self._running:
            self.run_once()
            await asyncio.sleep(self._poll_interval)
