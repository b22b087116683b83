"""
Immutable Ratings - Execution Environment

An in-process ledger environment hosting the registry, the token ledgers,
the swap router and the rating ledger. It provides what those components
need from a chain:

- Accounts and native currency balances
- Deterministic contract addresses and a contract registry
- An append-only event log
- Whole-call atomicity: every mutating call runs inside ``Chain.atomic()``;
  writes are journaled and undone in reverse if the call raises
- Caller identity (``sender``) and attached native value (``value``)
- A re-entrancy guard for entry points that call out to other contracts

Usage:
    chain = Chain()
    alice = chain.create_account("alice", balance=10**18)
    token = chain.deploy(MockERC20, "Mock USD Coin", "mUSDC", 6, deployer=alice)
    token.mint(alice, 1_000_000, sender=alice)

Every mutating contract method takes a keyword-only ``sender``. Payable
methods also accept ``value``, which is moved from the sender to the
contract inside the same atomic scope before the method body runs.
"""

import functools
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from addresses import address_from_hash, keccak256, normalize_address
from monitoring import get_logger, metrics
from ratings_exceptions import (
    ContractNotFound,
    InsufficientNativeBalance,
    NonPayableFunction,
    ReentrancyGuardReentrantCall,
)

logger = get_logger(__name__)

# Local development chain id (matches the hardhat default)
DEFAULT_CHAIN_ID = 31337

# Marks a key or attribute that did not exist before a journaled write
_MISSING = object()


@dataclass(frozen=True)
class Event:
    """An event emitted by a contract."""
    name: str
    address: str
    args: dict[str, Any]
    index: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, hex-encoding any raw bytes arguments."""
        return {
            "name": self.name,
            "address": self.address,
            "index": self.index,
            "args": {
                key: ("0x" + value.hex()) if isinstance(value, bytes) else value
                for key, value in self.args.items()
            },
        }


class JournaledDict(dict):
    """
    Dict whose writes are recorded in the owning chain's undo journal.

    Writes made outside an atomic scope are not journaled. Values stored in
    the dict are replaced, never mutated in place.
    """

    def __init__(self, chain: "Chain", *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._chain = chain

    def __setitem__(self, key, value):
        self._chain.record_undo(self._undo_item, key, self.get(key, _MISSING))
        super().__setitem__(key, value)

    def __delitem__(self, key):
        self._chain.record_undo(self._undo_item, key, self[key])
        super().__delitem__(key)

    def __ior__(self, other):
        self.update(other)
        return self

    def setdefault(self, key, default=None):
        if key not in self:
            self[key] = default
        return self[key]

    def pop(self, key, *default):
        if key in self:
            value = self[key]
            del self[key]
            return value
        if default:
            return default[0]
        raise KeyError(key)

    def popitem(self):
        if not self:
            raise KeyError("popitem(): dictionary is empty")
        key = next(reversed(self))
        return key, self.pop(key)

    def update(self, *args, **kwargs):
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def clear(self):
        for key in list(self):
            del self[key]

    def _undo_item(self, key, old) -> None:
        if old is _MISSING:
            dict.pop(self, key, None)
        else:
            dict.__setitem__(self, key, old)


class Chain:
    """
    Single-writer ledger environment with nested atomic transactions.

    All mutations go through ``atomic()``, which holds a re-entrant lock so
    concurrent callers (e.g. HTTP worker threads) are serialized.
    """

    def __init__(self, chain_id: int = DEFAULT_CHAIN_ID):
        self.chain_id = chain_id
        self.events: list[Event] = []

        self._lock = threading.RLock()
        self._depth = 0
        self._journal: list[tuple[Any, tuple]] = []

        self._native: dict[str, int] = JournaledDict(self)
        self._nonces: dict[str, int] = JournaledDict(self)
        self._contracts: dict[str, "Contract"] = JournaledDict(self)
        self._labels: dict[str, str] = {}

    # ==================== ACCOUNTS ====================

    def create_account(self, label: str, balance: int = 0) -> str:
        """
        Create (or look up) a deterministic externally owned account.

        Args:
            label: Human-readable name; the same label always yields the same address
            balance: Initial native balance to assign

        Returns:
            Checksummed account address
        """
        address = address_from_hash(keccak256(f"account:{label}".encode("utf-8")))
        self._labels[address] = label
        if balance:
            self.set_balance(address, balance)
        return address

    def label_of(self, address: str) -> str | None:
        """Get the label an account was created with, if any."""
        return self._labels.get(normalize_address(address))

    def native_balance_of(self, account) -> int:
        """Get the native currency balance of an account or contract."""
        return self._native.get(normalize_address(account), 0)

    def set_balance(self, account, amount: int) -> None:
        """Overwrite the native balance of an account (development helper)."""
        if amount < 0:
            raise ValueError("Balance must be non-negative")
        with self._lock:
            self._native[normalize_address(account)] = amount

    def transfer_native(self, sender, recipient, amount: int) -> None:
        """
        Move native currency between accounts.

        Raises:
            InsufficientNativeBalance: If the sender cannot cover the amount
        """
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative")
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)

        with self._lock:
            balance = self._native.get(sender, 0)
            if balance < amount:
                raise InsufficientNativeBalance(sender, balance, amount)
            self._native[sender] = balance - amount
            self._native[recipient] = self._native.get(recipient, 0) + amount

    # ==================== CONTRACTS ====================

    def next_contract_address(self, deployer) -> str:
        """
        Allocate the address for the deployer's next contract.

        The address is the low 20 bytes of keccak256(deployer || nonce), with
        the nonce as a 32-byte big-endian integer.
        """
        deployer = normalize_address(deployer)
        nonce = self._nonces.get(deployer, 0)
        self._nonces[deployer] = nonce + 1
        return address_from_hash(keccak256(bytes.fromhex(deployer[2:]) + nonce.to_bytes(32, "big")))

    def register(self, contract: "Contract", deployer) -> str:
        """Assign an address to a new contract and register it."""
        with self._lock:
            address = self.next_contract_address(deployer)
            self._contracts[address] = contract
            return address

    def deploy(self, contract_cls: type, *args, deployer, **kwargs):
        """
        Deploy a contract atomically.

        If the constructor raises, the registration and any state it
        touched are rolled back.
        """
        with self.atomic():
            contract = contract_cls(self, deployer, *args, **kwargs)
        logger.info(
            "Deployed %s at %s", contract_cls.__name__, contract.address,
            extra={"deployer": normalize_address(deployer)},
        )
        return contract

    def contract_at(self, address) -> "Contract":
        """
        Resolve a contract by address.

        Raises:
            ContractNotFound: If no contract is registered at the address
        """
        address = normalize_address(address)
        contract = self._contracts.get(address)
        if contract is None:
            raise ContractNotFound(address)
        return contract

    def is_contract(self, address) -> bool:
        """Check whether a contract is registered at an address."""
        return normalize_address(address) in self._contracts

    # ==================== EVENTS ====================

    def emit(self, address: str, name: str, args: dict[str, Any]) -> Event:
        """Append an event to the log."""
        event = Event(name=name, address=address, args=dict(args), index=len(self.events))
        self.events.append(event)
        return event

    def get_events(self, name: str | None = None, address=None) -> list[Event]:
        """Filter the event log by event name and/or emitting contract."""
        emitter = normalize_address(address) if address is not None else None
        return [
            event for event in self.events
            if (name is None or event.name == name)
            and (emitter is None or event.address == emitter)
        ]

    # ==================== TRANSACTIONS ====================

    @property
    def depth(self) -> int:
        """Current nesting depth of atomic scopes (0 when idle)."""
        return self._depth

    @property
    def journal_size(self) -> int:
        """Number of undo entries held for the open atomic scopes."""
        return len(self._journal)

    def record_undo(self, undo, *args) -> None:
        """
        Journal an undo step for a write about to happen.

        ``undo(*args)`` is called if an enclosing atomic scope fails. Outside
        any scope nothing is recorded.
        """
        if self._depth:
            self._journal.append((undo, args))

    @contextmanager
    def atomic(self):
        """
        Run a block as an all-or-nothing unit.

        Each nesting level marks the journal on entry, so a failed inner call
        is undone even when an outer caller handles the exception. Undo work
        is proportional to what the block wrote. The outermost level holds
        the chain lock for its whole duration and drops the journal on exit.
        """
        with self._lock:
            journal_mark = len(self._journal)
            events_mark = len(self.events)
            self._depth += 1
            try:
                yield self
            except BaseException as exc:
                self._rollback(journal_mark, events_mark)
                if self._depth == 1:
                    metrics.increment("transactions_reverted_total", labels={"error": type(exc).__name__})
                    logger.info("Transaction reverted: %s", type(exc).__name__)
                raise
            else:
                if self._depth == 1:
                    metrics.increment("transactions_total")
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._journal.clear()

    def _rollback(self, journal_mark: int, events_mark: int) -> None:
        while len(self._journal) > journal_mark:
            undo, args = self._journal.pop()
            undo(*args)
        del self.events[events_mark:]


class Contract:
    """
    Base class for contracts hosted on a Chain.

    Subclasses list the attributes that make up their mutable state in
    ``STATE_FIELDS``. Assigning a state field is journaled for rollback, and
    a plain dict assigned to one becomes a ``JournaledDict``. Other
    containers must be updated by reassignment, never in place. References
    to other contracts must be stored as addresses, never in state fields.
    """

    STATE_FIELDS: tuple[str, ...] = ()

    def __init__(self, chain: Chain, deployer):
        self.chain = chain
        self.deployer = normalize_address(deployer)
        self._entered = False
        self.address = chain.register(self, self.deployer)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.STATE_FIELDS:
            if type(value) is dict:
                value = JournaledDict(self.chain, value)
            self.chain.record_undo(self._undo_attr, name, getattr(self, name, _MISSING))
        super().__setattr__(name, value)

    def _undo_attr(self, name: str, old: Any) -> None:
        if old is _MISSING:
            object.__delattr__(self, name)
        else:
            object.__setattr__(self, name, old)

    def emit(self, name: str, **args) -> Event:
        """Emit an event from this contract."""
        return self.chain.emit(self.address, name, args)

    def contract(self, address) -> "Contract":
        """Resolve another contract on the same chain."""
        return self.chain.contract_at(address)

    @property
    def native_balance(self) -> int:
        return self.chain.native_balance_of(self.address)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(address={self.address!r})"


def transaction(func=None, *, payable: bool = False):
    """
    Decorator for mutating contract methods.

    The wrapped method must accept a keyword-only ``sender``; payable methods
    must also accept ``value``. The call runs inside ``Chain.atomic()`` and,
    for payable methods, the attached value is transferred from the sender to
    the contract before the body runs.

    Usage:
        @transaction
        def set_receiver(self, receiver, *, sender): ...

        @transaction(payable=True)
        def create_up_rating(self, origin, amount, data=b"", *, sender, value=0): ...
    """
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, *args, sender, value: int = 0, **kwargs):
            sender = normalize_address(sender)
            if value < 0:
                raise ValueError("Attached value must be non-negative")
            if value and not payable:
                raise NonPayableFunction(fn.__name__, value)

            with self.chain.atomic():
                if value:
                    self.chain.transfer_native(sender, self.address, value)
                if payable:
                    return fn(self, *args, sender=sender, value=value, **kwargs)
                return fn(self, *args, sender=sender, **kwargs)

        wrapper.payable = payable
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


def non_reentrant(fn):
    """Reject nested calls into any guarded method of the same contract."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise ReentrancyGuardReentrantCall(self.address, fn.__name__)
        self._entered = True
        try:
            return fn(self, *args, **kwargs)
        finally:
            self._entered = False
    return wrapper
