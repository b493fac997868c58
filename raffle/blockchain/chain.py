"""In-process development chain for the raffle contracts.

Holds balances, block time and the event log, and runs every state-mutating
contract call as an all-or-nothing transaction: if the call raises, every
contract, every balance and the pending events are restored to their values
before the call and the exception propagates to the caller.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_account import Account
from web3 import Web3

from raffle.lottery.exceptions import InsufficientBalance, TransferRejected
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class BlockchainEvent:
    """Lightweight representation of an on-chain event."""

    name: str
    args: Dict[str, Any]
    block_number: int
    transaction_hash: str
    timestamp: int
    address: str = ""


@dataclass
class TransactionReceipt:
    """Result of a committed transaction."""

    transaction_hash: str
    block_number: int
    timestamp: int
    sender: str
    events: List[BlockchainEvent] = field(default_factory=list)
    status: int = 1
    return_value: Any = None

    def get_event(self, name: str) -> Optional[BlockchainEvent]:
        for event in self.events:
            if event.name == name:
                return event
        return None


class Ledger:
    """Native-currency balances by address."""

    def __init__(self) -> None:
        self._balances: Dict[str, int] = defaultdict(int)
        self._rejecting: set = set()

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def set_balance(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Balance cannot be negative")
        self._balances[address] = amount

    def reject_incoming(self, address: str, reject: bool = True) -> None:
        """Make ``address`` refuse value, like a contract without a payable fallback."""
        if reject:
            self._rejecting.add(address)
        else:
            self._rejecting.discard(address)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Transfer amount cannot be negative")
        if recipient in self._rejecting:
            raise TransferRejected(recipient)
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalance(sender, balance, amount)
        self._balances[sender] = balance - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

    def snapshot(self) -> Tuple[Dict[str, int], set]:
        return dict(self._balances), set(self._rejecting)

    def restore(self, snapshot: Tuple[Dict[str, int], set]) -> None:
        balances, rejecting = snapshot
        self._balances = defaultdict(int, balances)
        self._rejecting = set(rejecting)


class Contract:
    """Base class for contracts living on a LocalChain.

    Subclasses list their mutable attributes in ``_state_fields`` so the chain
    can roll them back when a transaction reverts.
    """

    _state_fields: Tuple[str, ...] = ()

    def __init__(self, chain: "LocalChain", deployer: str) -> None:
        self.chain = chain
        self.deployer = deployer
        self.address = chain.generate_address()
        chain.register(self)

    @property
    def balance(self) -> int:
        return self.chain.ledger.balance_of(self.address)

    def _emit(self, name: str, **args: Any) -> None:
        self.chain.record_event(self.address, name, args)

    def _snapshot(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._state_fields}

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)


class LocalChain:
    """Single-threaded development chain with controllable block time.

    Every transaction mines its own block. A block's timestamp is one second
    after the previous block unless time was moved forward with
    ``increase_time`` or ``set_next_block_timestamp``.
    """

    def __init__(self, chain_id: int = 31337, genesis_timestamp: int = 1_700_000_000) -> None:
        self.chain_id = chain_id
        self.ledger = Ledger()
        self.block_number = 0
        self.timestamp = genesis_timestamp
        self._pending_time = genesis_timestamp
        self._contracts: List[Contract] = []
        self._receipts: List[TransactionReceipt] = []
        self._pending_events: Optional[List[BlockchainEvent]] = None
        self._pending_tx_hash = ""
        self._nonces: Dict[str, int] = defaultdict(int)
        self._listeners: Dict[str, List[Callable[[BlockchainEvent], None]]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def generate_address(self) -> str:
        return Account.create().address

    def create_account(self, balance: int = 0) -> str:
        address = self.generate_address()
        self.ledger.set_balance(address, balance)
        return address

    def get_balance(self, address: str) -> int:
        return self.ledger.balance_of(address)

    def register(self, contract: Contract) -> None:
        self._contracts.append(contract)

    def get_contract(self, address: str) -> Contract:
        for contract in self._contracts:
            if contract.address == address:
                return contract
        raise LookupError(f"No contract deployed at {address}")

    # ------------------------------------------------------------------
    # Time and blocks
    # ------------------------------------------------------------------
    def increase_time(self, seconds: int) -> None:
        if seconds < 0:
            raise ValueError("Cannot move time backwards")
        self._pending_time += seconds

    def set_next_block_timestamp(self, timestamp: int) -> None:
        if timestamp <= self.timestamp:
            raise ValueError(f"Timestamp {timestamp} is not after the latest block {self.timestamp}")
        self._pending_time = timestamp

    def mine(self) -> int:
        """Mine an empty block and return its timestamp."""
        self._advance_block()
        return self.timestamp

    def sync_to(self, timestamp: int) -> None:
        """Mine a block at ``timestamp`` if it lies after the latest block."""
        if timestamp > self.timestamp:
            self.set_next_block_timestamp(timestamp)
            self.mine()

    def _advance_block(self) -> None:
        self.block_number += 1
        self.timestamp = max(self.timestamp + 1, self._pending_time)
        self._pending_time = self.timestamp

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    @property
    def in_transaction(self) -> bool:
        return self._pending_events is not None

    def transact(self, sender: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> TransactionReceipt:
        """Run ``fn`` atomically in a new block and return its receipt."""
        if self.in_transaction:
            raise RuntimeError("Nested transaction; call the internal method instead")

        saved_block = (self.block_number, self.timestamp, self._pending_time)
        saved_ledger = self.ledger.snapshot()
        saved_contracts = [(c, c._snapshot()) for c in self._contracts]
        contract_count = len(self._contracts)

        nonce = self._nonces[sender]
        self._advance_block()
        self._pending_tx_hash = Web3.to_hex(
            Web3.keccak(text=f"{self.chain_id}:{sender}:{nonce}:{self.block_number}")
        )
        self._pending_events = []
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            self.block_number, self.timestamp, self._pending_time = saved_block
            self.ledger.restore(saved_ledger)
            del self._contracts[contract_count:]
            for contract, snapshot in saved_contracts:
                contract._restore(snapshot)
            logger.warning("Transaction from %s reverted: %s", sender, exc)
            raise
        finally:
            events = self._pending_events
            self._pending_events = None

        self._nonces[sender] = nonce + 1
        receipt = TransactionReceipt(
            transaction_hash=self._pending_tx_hash,
            block_number=self.block_number,
            timestamp=self.timestamp,
            sender=sender,
            events=events,
            return_value=result,
        )
        self._receipts.append(receipt)
        self._notify(receipt.events)
        return receipt

    def deploy(self, factory: Callable[..., Contract], deployer: str, *args: Any, **kwargs: Any) -> Contract:
        receipt = self.transact(deployer, factory, self, deployer, *args, **kwargs)
        contract = receipt.return_value
        logger.info("Deployed %s at %s (block %d)", type(contract).__name__, contract.address, receipt.block_number)
        return contract

    def record_event(self, address: str, name: str, args: Dict[str, Any]) -> None:
        if self._pending_events is None:
            raise RuntimeError(f"Event {name} emitted outside a transaction")
        self._pending_events.append(
            BlockchainEvent(
                name=name,
                args=dict(args),
                block_number=self.block_number,
                transaction_hash=self._pending_tx_hash,
                timestamp=self.timestamp,
                address=address,
            )
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def subscribe(self, event_name: str, callback: Callable[[BlockchainEvent], None]) -> None:
        """Register ``callback`` for committed events named ``event_name`` ("*" for all)."""
        self._listeners[event_name].append(callback)

    def unsubscribe(self, event_name: str, callback: Callable[[BlockchainEvent], None]) -> None:
        if callback in self._listeners.get(event_name, []):
            self._listeners[event_name].remove(callback)

    def get_events(self, from_block: int = 0, name: Optional[str] = None) -> List[BlockchainEvent]:
        return [
            event
            for receipt in self._receipts
            if receipt.block_number >= from_block
            for event in receipt.events
            if name is None or event.name == name
        ]

    def _notify(self, events: List[BlockchainEvent]) -> None:
        for event in events:
            for callback in list(self._listeners.get(event.name, [])) + list(self._listeners.get("*", [])):
                try:
                    callback(event)
                except Exception as exc:
                    logger.error("Listener for %s failed: %s", event.name, exc)
