"""In-memory state manager for the raffle keeper."""

from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Any, Dict, List, Optional

from raffle.blockchain.chain import BlockchainEvent, LocalChain
from raffle.lottery.models import LiveFeedItem, RoundSnapshot
from raffle.utils.common import shorten_eth_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

LIVE_FEED_EVENTS = ("RaffleEnter", "RequestedRaffleWinner", "WinnerPicked")


class MemoryStore:
    """Volatile storage for raffle history and live feed."""

    def __init__(self, *, feed_capacity: int = 100, history_capacity: int = 20) -> None:
        self._lock = Lock()
        self._feed_capacity = feed_capacity
        self._history_capacity = history_capacity
        self._live_feed: deque[LiveFeedItem] = deque(maxlen=feed_capacity)
        self._history: deque[RoundSnapshot] = deque(maxlen=history_capacity)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------
    def add_live_feed(self, *, event_type: str, message: str, details: Dict[str, int | str] | None = None) -> LiveFeedItem:
        safe_details = dict(details or {})
        item = LiveFeedItem(
            event_type=event_type,
            message=message,
            details=safe_details,
            event_time=int(safe_details.get("timestamp", 0)),
        )
        with self._lock:
            self._live_feed.append(item)
        logger.debug("[MemoryStore] appended live feed item %s: %s", event_type, message)
        return item

    def add_history_snapshot(self, snapshot: RoundSnapshot) -> None:
        with self._lock:
            self._history.append(snapshot)
        logger.info("[MemoryStore] Added history snapshot for round %d", snapshot.round_number)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def get_round_history(self, limit: Optional[int] = None) -> List[RoundSnapshot]:
        with self._lock:
            items = list(self._history)
        if limit is not None:
            return items[-limit:]
        return items

    def get_live_feed(self, limit: Optional[int] = None) -> List[LiveFeedItem]:
        with self._lock:
            items = list(self._live_feed)
        if limit is not None:
            return items[-limit:]
        return items

    # ------------------------------------------------------------------
    # Runtime resizing helpers
    # ------------------------------------------------------------------
    def set_feed_capacity(self, capacity: int) -> None:
        with self._lock:
            if capacity == self._feed_capacity:
                return
            self._live_feed = deque(list(self._live_feed)[-capacity:], maxlen=capacity)
            self._feed_capacity = capacity

    def set_history_capacity(self, capacity: int) -> None:
        with self._lock:
            if capacity == self._history_capacity:
                return
            self._history = deque(list(self._history)[-capacity:], maxlen=capacity)
            self._history_capacity = capacity

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    @staticmethod
    def serialize_snapshot(snapshot: RoundSnapshot) -> dict:
        return {
            "roundNumber": snapshot.round_number,
            "requestId": snapshot.request_id,
            "winner": snapshot.winner,
            "prizeWei": snapshot.prize,
            "playerCount": snapshot.player_count,
            "finishedAt": snapshot.finished_at,
            "transactionHash": snapshot.transaction_hash,
        }


class EventManager:
    """Translates committed chain events into live feed entries and round history.

    Player counts for history snapshots are tracked from ``RaffleEnter`` events
    of the current round, so the manager must be attached before the first
    entrance to report exact counts.
    """

    def __init__(self, chain: LocalChain, raffle_address: str, store: MemoryStore, config: Optional[Dict[str, Any]] = None) -> None:
        self.chain = chain
        self.raffle_address = raffle_address
        self.store = store
        self.config = config or {}

        em_cfg = self.config.get("event_manager", {})
        self.store.set_feed_capacity(int(em_cfg.get("live_feed_max_entries", 1000)))
        self.store.set_history_capacity(int(em_cfg.get("round_history_max", 100)))

        self._round_players = 0
        self._rounds_seen = 0
        self._attached = False

    def attach(self) -> None:
        if self._attached:
            return
        for name in LIVE_FEED_EVENTS:
            self.chain.subscribe(name, self.handle_event)
        self._attached = True
        logger.info("EventManager attached to raffle %s", self.raffle_address)

    def detach(self) -> None:
        if not self._attached:
            return
        for name in LIVE_FEED_EVENTS:
            self.chain.unsubscribe(name, self.handle_event)
        self._attached = False

    def handle_event(self, evt: BlockchainEvent) -> None:
        if evt.address != self.raffle_address:
            return

        details: Dict[str, Any] = dict(evt.args)
        details["timestamp"] = evt.timestamp
        details["blockNumber"] = evt.block_number
        self.store.add_live_feed(
            event_type=evt.name,
            message=self._generate_event_message(evt.name, evt.args),
            details=details,
        )

        if evt.name == "RaffleEnter":
            self._round_players += 1
        elif evt.name == "WinnerPicked":
            self._rounds_seen += 1
            self.store.add_history_snapshot(
                RoundSnapshot(
                    round_number=self._rounds_seen,
                    request_id=int(evt.args.get("requestId", 0)),
                    winner=evt.args["winner"],
                    prize=int(evt.args.get("prize", 0)),
                    player_count=self._round_players,
                    finished_at=evt.timestamp,
                    transaction_hash=evt.transaction_hash,
                )
            )
            self._round_players = 0

    def _generate_event_message(self, event_type: str, args: Dict[str, Any]) -> str:
        if event_type == "RaffleEnter":
            value = args.get("value")
            amount = f" with {int(value) / 1e18:.4f} ETH" if value is not None else ""
            return f"{shorten_eth_address(args.get('player', ''))} entered the raffle{amount}"
        if event_type == "RequestedRaffleWinner":
            return f"Round closed, randomness request {args.get('requestId')} pending"
        if event_type == "WinnerPicked":
            return f"Winner picked: {shorten_eth_address(args.get('winner', ''))}"
        return event_type
