"""
Ledger collaborator.

The account database sits outside the protocol core. The core only reads
identities (``lookup_identity``) and hands verified transfers to
``is_sufficient_balance`` / ``apply_transfer``. InMemoryLedger is the
reference implementation used by the HTTP apps, the CLI demo and tests.

WARNING: InMemoryLedger is not persistent and not suitable for production.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .signing import ED25519


class LedgerError(Exception):
    """Business-level ledger failure (unknown account, insufficient funds)."""


class LedgerUnavailable(Exception):
    """The ledger could not be reached. Lookups may be retried."""


@dataclass
class Identity:
    """A registered user and the public key currently bound to them."""
    id: int
    username: str
    public_key: str
    key_type: str = ED25519
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_login: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "public_key": self.public_key,
            "key_type": self.key_type,
            "created_at": self.created_at.isoformat().replace("+00:00", "Z"),
            "last_login": self.last_login.isoformat().replace("+00:00", "Z") if self.last_login else None,
        }


@dataclass
class Transaction:
    """Record of a completed transfer."""
    id: int
    sender: str
    receiver: str
    amount: int
    timestamp: datetime
    status: str = "completed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.receiver,
            "amount": self.amount,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "status": self.status,
        }


class Ledger(ABC):
    """Interface consumed by the resolver, login service and business handlers."""

    @abstractmethod
    def lookup_identity(self, username: str) -> Optional[Identity]:
        """Return the identity, or None if the username is unknown."""
        pass

    @abstractmethod
    def is_sufficient_balance(self, username: str, amount: int) -> bool:
        pass

    @abstractmethod
    def apply_transfer(self, sender: str, receiver: str, amount: int) -> Transaction:
        pass

    def record_login(self, username: str) -> None:
        """Update last_login. Optional for read-only ledgers."""
        pass


class InMemoryLedger(Ledger):
    """
    Thread-safe in-memory ledger.

    Key rotation notifies registered listeners so caches keyed by username
    (the public-key resolver) can drop stale entries immediately.
    """

    def __init__(self, currency: str = "VND"):
        self.currency = currency
        self._identities: Dict[str, Identity] = {}
        self._balances: Dict[str, int] = {}
        self._transactions: List[Transaction] = []
        self._rotation_listeners: List[Callable[[str], Any]] = []
        self._lock = threading.RLock()

    def register_identity(
        self,
        username: str,
        public_key: str,
        key_type: str = ED25519,
        initial_balance: int = 0,
    ) -> Identity:
        with self._lock:
            if username in self._identities:
                raise LedgerError(f"Username already exists: {username}")
            identity = Identity(
                id=len(self._identities) + 1,
                username=username,
                public_key=public_key,
                key_type=key_type,
            )
            self._identities[username] = identity
            self._balances[username] = initial_balance
            return identity

    def lookup_identity(self, username: str) -> Optional[Identity]:
        with self._lock:
            return self._identities.get(username)

    def rotate_key(self, username: str, public_key: str, key_type: Optional[str] = None) -> Identity:
        """Replace an identity's registered key and fire rotation listeners."""
        with self._lock:
            identity = self._identities.get(username)
            if identity is None:
                raise LedgerError(f"Unknown user: {username}")
            identity.public_key = public_key
            if key_type:
                identity.key_type = key_type
            listeners = list(self._rotation_listeners)
        for listener in listeners:
            listener(username)
        return identity

    def add_rotation_listener(self, listener: Callable[[str], Any]) -> None:
        with self._lock:
            self._rotation_listeners.append(listener)

    def record_login(self, username: str) -> None:
        with self._lock:
            identity = self._identities.get(username)
            if identity is not None:
                identity.last_login = datetime.now(timezone.utc)

    def balance(self, username: str) -> int:
        with self._lock:
            if username not in self._balances:
                raise LedgerError(f"Account not found: {username}")
            return self._balances[username]

    def is_sufficient_balance(self, username: str, amount: int) -> bool:
        with self._lock:
            return self._balances.get(username, 0) >= amount

    def apply_transfer(self, sender: str, receiver: str, amount: int) -> Transaction:
        if amount <= 0:
            raise LedgerError("Transfer amount must be positive")
        with self._lock:
            if sender not in self._balances:
                raise LedgerError("Sender account not found")
            if receiver not in self._balances:
                raise LedgerError("Receiver not found")
            if sender == receiver:
                raise LedgerError("Cannot transfer to self")
            if self._balances[sender] < amount:
                raise LedgerError("Insufficient balance")
            self._balances[sender] -= amount
            self._balances[receiver] += amount
            tx = Transaction(
                id=len(self._transactions) + 1,
                sender=sender,
                receiver=receiver,
                amount=amount,
                timestamp=datetime.now(timezone.utc),
            )
            self._transactions.append(tx)
            return tx

    def history(self, username: str) -> List[Transaction]:
        with self._lock:
            return [t for t in self._transactions if username in (t.sender, t.receiver)]
