"""
Contract revert errors.

Every state-mutating call on the local chain that fails raises one of these;
the ``reason`` attribute holds the on-chain error name or revert string.
"""

from typing import Optional


class ContractRevert(Exception):
    """Base class for all reverted contract calls."""

    reason = "reverted"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.reason)


# ============ Ledger ============

class InsufficientBalance(ContractRevert):
    """Sender cannot cover the value of the call."""
    reason = "insufficient balance"

    def __init__(self, address: str, balance: int, required: int):
        self.address = address
        self.balance = balance
        self.required = required
        super().__init__(f"{address} has {balance} wei, needs {required}")


class TransferRejected(ContractRevert):
    """Recipient refused incoming value."""
    reason = "transfer rejected"

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"{address} rejected the transfer")


# ============ Raffle ============

class NotEnoughFunds(ContractRevert):
    reason = "Raffle__NotEnoughETHEntered"

    def __init__(self, value: int, entrance_fee: int):
        self.value = value
        self.entrance_fee = entrance_fee
        super().__init__(f"{self.reason}: sent {value}, fee is {entrance_fee}")


class RaffleNotOpen(ContractRevert):
    reason = "Raffle__RaffleNotOpen"


class UpkeepNotNeeded(ContractRevert):
    reason = "Raffle__UpkeepNotNeeded"

    def __init__(self, current_balance: int, num_players: int, raffle_state: int):
        self.current_balance = current_balance
        self.num_players = num_players
        self.raffle_state = raffle_state
        super().__init__(
            f"{self.reason}(balance={current_balance}, players={num_players}, state={raffle_state})"
        )


class UnknownOrStaleRequest(ContractRevert):
    reason = "Raffle__UnknownOrStaleRequest"

    def __init__(self, request_id: int, pending_request_id=None):
        self.request_id = request_id
        self.pending_request_id = pending_request_id
        super().__init__(f"{self.reason}: got {request_id}, pending {pending_request_id}")


class PayoutFailed(ContractRevert):
    reason = "Raffle__TransferFailed"

    def __init__(self, winner: str, amount: int):
        self.winner = winner
        self.amount = amount
        super().__init__(f"{self.reason}: could not send {amount} wei to {winner}")


class OnlyCoordinatorCanFulfill(ContractRevert):
    reason = "OnlyCoordinatorCanFulfill"

    def __init__(self, have: str, want: str):
        self.have = have
        self.want = want
        super().__init__(f"{self.reason}: caller {have}, coordinator {want}")


# ============ Randomness coordinator ============

class NonexistentRequest(ContractRevert):
    reason = "nonexistent request"

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"{self.reason}: {request_id}")


class InvalidSubscription(ContractRevert):
    reason = "InvalidSubscription"

    def __init__(self, sub_id: int):
        self.sub_id = sub_id
        super().__init__(f"{self.reason}: {sub_id}")


class InvalidConsumer(ContractRevert):
    reason = "InvalidConsumer"

    def __init__(self, sub_id: int, consumer: str):
        self.sub_id = sub_id
        self.consumer = consumer
        super().__init__(f"{self.reason}: {consumer} is not a consumer of {sub_id}")


class InsufficientSubscriptionBalance(ContractRevert):
    reason = "InsufficientBalance"

    def __init__(self, sub_id: int, balance: int, payment: int):
        self.sub_id = sub_id
        self.balance = balance
        self.payment = payment
        super().__init__(f"{self.reason}: subscription {sub_id} has {balance}, needs {payment}")


class MustBeSubOwner(ContractRevert):
    reason = "MustBeSubOwner"

    def __init__(self, owner: str):
        self.owner = owner
        super().__init__(f"{self.reason}: owner is {owner}")


class InvalidRandomWords(ContractRevert):
    reason = "InvalidRandomWords"

    def __init__(self, expected: int, got: int):
        self.expected = expected
        self.got = got
        super().__init__(f"{self.reason}: expected {expected}, got {got}")
