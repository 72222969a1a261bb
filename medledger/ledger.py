"""Execution environment shared by the contracts: clock, addresses, authorisation and events."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True, order=True)
class Address:
    """Opaque identifier of an account or contract."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Event:
    """An event published by a contract: a tuple of topics and a data payload."""

    topics: tuple
    data: Any


class AuthError(PermissionError):
    """Raised when an address has not authorised the current call."""

    def __init__(self, address: Address) -> None:
        super().__init__(f"authorization required for {address}")
        self.address = address


class Env:
    """Ledger state visible to contracts: the current timestamp, signers and emitted events."""

    def __init__(self, timestamp: int = 0) -> None:
        if timestamp < 0:
            raise ValueError("timestamp must not be negative")
        self.timestamp = timestamp
        self._events: list[Event] = []
        self._authorized: set[Address] = set()
        self._all_authorized = False
        self._ids = itertools.count(1)

    @property
    def events(self) -> list[Event]:
        """All events published so far, oldest first."""
        return list(self._events)

    def generate_address(self) -> Address:
        """Return a fresh address never handed out before by this environment."""
        return Address(f"addr{next(self._ids):08d}")

    def require_auth(self, address: Address) -> None:
        """Raise AuthError unless the address has authorised the call."""
        if self._all_authorized or address in self._authorized:
            return
        raise AuthError(address)

    def mock_all_auths(self) -> None:
        """Treat every address as having authorised every call."""
        self._all_authorized = True

    def authorize(self, address: Address) -> None:
        """Record that the address has signed for subsequent calls."""
        self._authorized.add(address)

    def publish(self, topics: Iterable[Any], data: Any) -> Event:
        """Record an event and return it."""
        event = Event(tuple(topics), data)
        self._events.append(event)
        return event

    def advance(self, seconds: int) -> int:
        """Move the ledger clock forward and return the new timestamp."""
        if seconds < 0:
            raise ValueError("cannot move the ledger clock backwards")
        self.timestamp += seconds
        return self.timestamp