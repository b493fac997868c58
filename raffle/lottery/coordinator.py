"""
Randomness coordinator mock.

Local stand-in for the VRF coordinator: manages funded subscriptions and
their consumers, hands out request ids, and later delivers random words back
to the requesting consumer. Each request can be fulfilled exactly once.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from web3 import Web3

from raffle.blockchain.chain import Contract, LocalChain, TransactionReceipt
from raffle.lottery.exceptions import (
    InsufficientSubscriptionBalance,
    InvalidConsumer,
    InvalidRandomWords,
    InvalidSubscription,
    MustBeSubOwner,
    NonexistentRequest,
)
from raffle.lottery.models import RandomnessRequest, Subscription
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

# Premium charged per request: 0.25 LINK
BASE_FEE = Web3.to_wei(Decimal("0.25"), "ether")
# LINK per gas, derived from the chain's gas price
GAS_PRICE_LINK = 10**9
MAX_NUM_WORDS = 500


def derive_random_words(request_id: int, num_words: int) -> List[int]:
    """Deterministic words: keccak256(abi.encodePacked(requestId, i))."""
    return [
        int.from_bytes(Web3.solidity_keccak(["uint256", "uint256"], [request_id, i]), "big")
        for i in range(num_words)
    ]


class VRFCoordinatorV2Mock(Contract):
    """Subscription-based randomness coordinator for development chains."""

    _state_fields = ("_subscriptions", "_requests", "_current_sub_id", "_next_request_id", "_next_pre_seed")

    def __init__(self, chain: LocalChain, deployer: str, base_fee: int = BASE_FEE, gas_price_link: int = GAS_PRICE_LINK):
        super().__init__(chain, deployer)
        self.base_fee = base_fee
        self.gas_price_link = gas_price_link
        self._subscriptions: Dict[int, Subscription] = {}
        self._requests: Dict[int, RandomnessRequest] = {}
        self._current_sub_id = 0
        self._next_request_id = 1
        self._next_pre_seed = 100

    # ------------------------------------------------------------------
    # Subscription management
    # ------------------------------------------------------------------
    def create_subscription(self, sender: str) -> TransactionReceipt:
        return self.chain.transact(sender, self._create_subscription, sender)

    def fund_subscription(self, sender: str, sub_id: int, amount: int) -> TransactionReceipt:
        return self.chain.transact(sender, self._fund_subscription, sub_id, amount)

    def add_consumer(self, sender: str, sub_id: int, consumer: str) -> TransactionReceipt:
        return self.chain.transact(sender, self._add_consumer, sender, sub_id, consumer)

    def remove_consumer(self, sender: str, sub_id: int, consumer: str) -> TransactionReceipt:
        return self.chain.transact(sender, self._remove_consumer, sender, sub_id, consumer)

    def get_subscription(self, sub_id: int) -> Subscription:
        sub = self._subscriptions.get(sub_id)
        if sub is None:
            raise InvalidSubscription(sub_id)
        return sub

    def consumer_is_added(self, sub_id: int, consumer: str) -> bool:
        return consumer in self.get_subscription(sub_id).consumers

    def _create_subscription(self, owner: str) -> int:
        self._current_sub_id += 1
        sub_id = self._current_sub_id
        self._subscriptions[sub_id] = Subscription(sub_id=sub_id, owner=owner)
        self._emit("SubscriptionCreated", subId=sub_id, owner=owner)
        return sub_id

    def _fund_subscription(self, sub_id: int, amount: int) -> None:
        sub = self.get_subscription(sub_id)
        old_balance = sub.balance
        sub.balance += amount
        self._emit("SubscriptionFunded", subId=sub_id, oldBalance=old_balance, newBalance=sub.balance)

    def _add_consumer(self, sender: str, sub_id: int, consumer: str) -> None:
        sub = self._only_sub_owner(sender, sub_id)
        if consumer in sub.consumers:
            return
        sub.consumers = sub.consumers + (consumer,)
        self._emit("ConsumerAdded", subId=sub_id, consumer=consumer)

    def _remove_consumer(self, sender: str, sub_id: int, consumer: str) -> None:
        sub = self._only_sub_owner(sender, sub_id)
        if consumer not in sub.consumers:
            raise InvalidConsumer(sub_id, consumer)
        sub.consumers = tuple(c for c in sub.consumers if c != consumer)
        self._emit("ConsumerRemoved", subId=sub_id, consumer=consumer)

    def _only_sub_owner(self, sender: str, sub_id: int) -> Subscription:
        sub = self.get_subscription(sub_id)
        if sub.owner != sender:
            raise MustBeSubOwner(sub.owner)
        return sub

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def request_random_words(
        self,
        sender: str,
        key_hash: str,
        sub_id: int,
        minimum_request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
    ) -> TransactionReceipt:
        return self.chain.transact(
            sender,
            self._request_random_words,
            sender,
            key_hash,
            sub_id,
            minimum_request_confirmations,
            callback_gas_limit,
            num_words,
        )

    def get_request(self, request_id: int) -> Optional[RandomnessRequest]:
        return self._requests.get(request_id)

    def pending_request_ids(self) -> List[int]:
        return sorted(self._requests)

    def _request_random_words(
        self,
        sender: str,
        key_hash: str,
        sub_id: int,
        minimum_request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
    ) -> int:
        sub = self.get_subscription(sub_id)
        if sender not in sub.consumers:
            raise InvalidConsumer(sub_id, sender)
        if not 1 <= num_words <= MAX_NUM_WORDS:
            raise InvalidRandomWords(MAX_NUM_WORDS, num_words)

        request_id = self._next_request_id
        pre_seed = self._next_pre_seed
        self._next_request_id += 1
        self._next_pre_seed += 1
        self._requests[request_id] = RandomnessRequest(
            request_id=request_id,
            sub_id=sub_id,
            callback_gas_limit=callback_gas_limit,
            num_words=num_words,
            consumer=sender,
            pre_seed=pre_seed,
        )
        self._emit(
            "RandomWordsRequested",
            keyHash=key_hash,
            requestId=request_id,
            preSeed=pre_seed,
            subId=sub_id,
            minimumRequestConfirmations=minimum_request_confirmations,
            callbackGasLimit=callback_gas_limit,
            numWords=num_words,
            sender=sender,
        )
        logger.info("Randomness request %d issued for %s", request_id, sender)
        return request_id

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------
    def fulfill_random_words(self, request_id: int, consumer: str, sender: Optional[str] = None) -> TransactionReceipt:
        """Deliver derived random words for ``request_id`` to ``consumer``."""
        return self.chain.transact(sender or self.deployer, self._fulfill, request_id, consumer, None)

    def fulfill_random_words_with_override(
        self,
        request_id: int,
        consumer: str,
        words: Sequence[int],
        sender: Optional[str] = None,
    ) -> TransactionReceipt:
        """Deliver caller-chosen random words; used to make winner selection predictable."""
        return self.chain.transact(sender or self.deployer, self._fulfill, request_id, consumer, list(words))

    def _fulfill(self, request_id: int, consumer_address: str, words: Optional[List[int]]) -> int:
        request = self._requests.get(request_id)
        if request is None:
            raise NonexistentRequest(request_id)
        if consumer_address != request.consumer:
            raise InvalidConsumer(request.sub_id, consumer_address)

        if words is None:
            words = derive_random_words(request_id, request.num_words)
        elif len(words) != request.num_words:
            raise InvalidRandomWords(request.num_words, len(words))

        # A reverting consumer reverts the whole fulfillment; the request stays pending.
        try:
            consumer = self.chain.get_contract(consumer_address)
        except LookupError:
            consumer = None
        if consumer is not None:
            consumer._raw_fulfill_random_words(self.address, request_id, words)
        else:
            logger.warning("No contract at %s; request %d consumed without callback", consumer_address, request_id)
        success = consumer is not None

        payment = self.base_fee + request.callback_gas_limit * self.gas_price_link
        sub = self.get_subscription(request.sub_id)
        if sub.balance < payment:
            raise InsufficientSubscriptionBalance(sub.sub_id, sub.balance, payment)
        sub.balance -= payment

        del self._requests[request_id]
        self._emit("RandomWordsFulfilled", requestId=request_id, outputSeed=request_id, payment=payment, success=success)
        logger.info("Randomness request %d fulfilled, charged %d to subscription %d", request_id, payment, sub.sub_id)
        return payment
