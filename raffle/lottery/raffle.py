"""
Raffle contract.

Players enter by paying at least the entrance fee while the raffle is OPEN.
Once the interval has elapsed and the pool is non-empty, a keeper performs
upkeep: the raffle moves to CALCULATING and asks the coordinator for a random
word. The coordinator later calls back with the word for that request; the
raffle picks ``players[word % len(players)]``, pays it the whole pool, resets
and reopens. CALCULATING is the only lock: while a request is pending no one
can enter and no second request can be issued.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from raffle.blockchain.chain import Contract, LocalChain, TransactionReceipt
from raffle.lottery.exceptions import (
    NotEnoughFunds,
    OnlyCoordinatorCanFulfill,
    PayoutFailed,
    RaffleNotOpen,
    TransferRejected,
    UnknownOrStaleRequest,
    UpkeepNotNeeded,
)
from raffle.lottery.models import RaffleSettings, RaffleState
from raffle.lottery.upkeep import UpkeepCheck, check_upkeep_conditions
from raffle.utils.common import ZERO_ADDRESS, shorten_eth_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

REQUEST_CONFIRMATIONS = 3
NUM_WORDS = 1


class Raffle(Contract):
    """Lottery state machine cycling OPEN -> CALCULATING -> OPEN."""

    _state_fields = (
        "_state",
        "_players",
        "_last_timestamp",
        "_pending_request_id",
        "_recent_winner",
        "_rounds_completed",
    )

    def __init__(self, chain: LocalChain, deployer: str, vrf_coordinator: str, settings: RaffleSettings):
        super().__init__(chain, deployer)
        self._vrf_coordinator = vrf_coordinator
        self._settings = settings

        self._state = RaffleState.OPEN
        self._players: List[str] = []
        self._last_timestamp = chain.timestamp
        self._pending_request_id: Optional[int] = None
        self._recent_winner = ZERO_ADDRESS
        self._rounds_completed = 0

        logger.info(
            "Raffle created: fee=%d wei, interval=%ds, subscription=%d",
            settings.entrance_fee,
            settings.interval,
            settings.subscription_id,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def enter_raffle(self, sender: str, value: int = 0) -> TransactionReceipt:
        return self.chain.transact(sender, self._enter_raffle, sender, value)

    def perform_upkeep(self, sender: Optional[str] = None, perform_data: bytes = b"") -> TransactionReceipt:
        """Close the round and request randomness.

        The receipt carries the coordinator's ``RandomWordsRequested`` event
        first and ``RequestedRaffleWinner`` second; ``return_value`` is the
        request id.
        """
        return self.chain.transact(sender or self.deployer, self._perform_upkeep)

    def raw_fulfill_random_words(self, sender: str, request_id: int, random_words: Sequence[int]) -> TransactionReceipt:
        return self.chain.transact(sender, self._raw_fulfill_random_words, sender, request_id, list(random_words))

    def _enter_raffle(self, sender: str, value: int) -> None:
        if value < self._settings.entrance_fee:
            raise NotEnoughFunds(value, self._settings.entrance_fee)
        if self._state != RaffleState.OPEN:
            raise RaffleNotOpen()

        self.chain.ledger.transfer(sender, self.address, value)
        self._players.append(sender)
        self._emit("RaffleEnter", player=sender, value=value)
        logger.info("Player %s entered with %d wei (%d players)", shorten_eth_address(sender), value, len(self._players))

    def _perform_upkeep(self) -> int:
        check = self._check_upkeep()
        if not check.needed:
            raise UpkeepNotNeeded(self.balance, len(self._players), int(self._state))

        self._state = RaffleState.CALCULATING
        coordinator = self.chain.get_contract(self._vrf_coordinator)
        request_id = coordinator._request_random_words(
            self.address,
            self._settings.gas_lane,
            self._settings.subscription_id,
            REQUEST_CONFIRMATIONS,
            self._settings.callback_gas_limit,
            NUM_WORDS,
        )
        self._pending_request_id = request_id
        self._emit("RequestedRaffleWinner", requestId=request_id)
        logger.info("Round closed with %d players, randomness request %d pending", len(self._players), request_id)
        return request_id

    def _raw_fulfill_random_words(self, sender: str, request_id: int, random_words: List[int]) -> str:
        if sender != self._vrf_coordinator:
            raise OnlyCoordinatorCanFulfill(sender, self._vrf_coordinator)
        return self._fulfill_random_words(request_id, random_words)

    def _fulfill_random_words(self, request_id: int, random_words: List[int]) -> str:
        if self._state != RaffleState.CALCULATING or self._pending_request_id != request_id:
            raise UnknownOrStaleRequest(request_id, self._pending_request_id)

        winner = self._players[random_words[0] % len(self._players)]
        prize = self.balance

        self._recent_winner = winner
        self._players = []
        self._state = RaffleState.OPEN
        self._last_timestamp = self.chain.timestamp
        self._pending_request_id = None
        self._rounds_completed += 1

        self._pay_winner(winner, prize)
        self._emit("WinnerPicked", winner=winner, requestId=request_id, prize=prize)
        logger.info("Winner %s picked for request %d, paid %d wei", shorten_eth_address(winner), request_id, prize)
        return winner

    def _pay_winner(self, winner: str, amount: int) -> None:
        try:
            self.chain.ledger.transfer(self.address, winner, amount)
        except TransferRejected as exc:
            raise PayoutFailed(winner, amount) from exc

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def check_upkeep(self, check_data: bytes = b"") -> Tuple[bool, bytes]:
        return self._check_upkeep().needed, b""

    def _check_upkeep(self) -> UpkeepCheck:
        return check_upkeep_conditions(
            self._state,
            len(self._players),
            self.balance,
            self.chain.timestamp,
            self._last_timestamp,
            self._settings.interval,
        )

    def explain_upkeep(self) -> UpkeepCheck:
        return self._check_upkeep()

    def get_entrance_fee(self) -> int:
        return self._settings.entrance_fee

    def get_interval(self) -> int:
        return self._settings.interval

    def get_raffle_state(self) -> RaffleState:
        return self._state

    def get_player(self, index: int) -> str:
        if not 0 <= index < len(self._players):
            raise IndexError(f"No player at index {index}")
        return self._players[index]

    def get_players(self) -> List[str]:
        return list(self._players)

    def get_number_of_players(self) -> int:
        return len(self._players)

    def get_recent_winner(self) -> str:
        return self._recent_winner

    def get_latest_timestamp(self) -> int:
        return self._last_timestamp

    def get_pending_request_id(self) -> Optional[int]:
        return self._pending_request_id

    def get_rounds_completed(self) -> int:
        return self._rounds_completed

    def get_balance(self) -> int:
        return self.balance

    def get_num_words(self) -> int:
        return NUM_WORDS

    def get_request_confirmations(self) -> int:
        return REQUEST_CONFIRMATIONS

    def get_vrf_coordinator(self) -> str:
        return self._vrf_coordinator

    def get_subscription_id(self) -> int:
        return self._settings.subscription_id
