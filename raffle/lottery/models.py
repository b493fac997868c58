"""Core data models for the raffle keeper."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Dict, Optional


class RaffleState(IntEnum):
    """Raffle lifecycle states, numbered as the contract reports them."""

    OPEN = 0
    CALCULATING = 1


@dataclass(frozen=True)
class RaffleSettings:
    """Immutable construction parameters of a raffle instance."""

    entrance_fee: int
    interval: int
    gas_lane: str
    subscription_id: int
    callback_gas_limit: int
    vrf_coordinator: Optional[str] = None


@dataclass
class RandomnessRequest:
    """A request held by the coordinator until it is fulfilled."""

    request_id: int
    sub_id: int
    callback_gas_limit: int
    num_words: int
    consumer: str
    pre_seed: int


@dataclass
class Subscription:
    """Coordinator-side subscription funding randomness requests."""

    sub_id: int
    owner: str
    balance: int = 0
    consumers: tuple = ()


@dataclass
class RoundSnapshot:
    """Historical record of a finalized round."""

    round_number: int
    request_id: int
    winner: str
    prize: int
    player_count: int
    finished_at: int
    transaction_hash: str = ""


@dataclass
class LiveFeedItem:
    """Entry pushed to the activity feed."""

    event_type: str
    message: str
    details: Dict[str, int | str]
    event_time: int

    def get_item_id(self) -> str:
        return f"{self.event_time}-{self.event_type}-{self.details.get('requestId', 0)}"


@dataclass
class KeeperStatus:
    """Operational metrics for the upkeep loop."""

    is_running: bool = False
    checks: int = 0
    upkeeps_performed: int = 0
    last_check: Optional[datetime] = None
    last_upkeep: Optional[datetime] = None
    last_request_id: Optional[int] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None

    def record_check(self) -> None:
        self.checks += 1
        self.last_check = datetime.utcnow()

    def record_upkeep(self, request_id: Optional[int]) -> None:
        self.upkeeps_performed += 1
        self.last_upkeep = datetime.utcnow()
        self.last_request_id = request_id
        self.consecutive_failures = 0
        self.last_error = None

    def record_failure(self, error: str) -> None:
        self.consecutive_failures += 1
        self.last_error = error
