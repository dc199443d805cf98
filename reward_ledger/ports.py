"""
Ports to the systems the ledger consults but does not own.

- EventOracle: the event registry (existence, creator, participant list).
- ValueTransferPort: moves fungible value in and out of ledger custody.

Both come with in-memory adapters used by the API process and the tests.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Iterable, Optional

from .config import get_settings
from .models import ZERO_ADDRESS, is_zero_address


class EventOracle(ABC):
    @abstractmethod
    def event_exists(self, event_id: int) -> bool:
        ...

    @abstractmethod
    def get_creator(self, event_id: int) -> str:
        """Return the creator address, or the zero address for unknown events."""

    @abstractmethod
    def get_participants(self, event_id: int) -> list[str]:
        ...


class ValueTransferPort(ABC):
    """Synchronous all-or-nothing transfers. False means nothing moved."""

    @abstractmethod
    def pull_from(self, asset: str, holder: str, amount: int) -> bool:
        ...

    @abstractmethod
    def push_to(self, asset: str, recipient: str, amount: int) -> bool:
        ...


class InMemoryEventRegistry(EventOracle):
    def __init__(self):
        self.events: dict[int, dict] = {}

    def register_event(self, event_id: int, creator: str, participants: Iterable[str] = ()) -> None:
        if is_zero_address(creator):
            raise ValueError("creator must be a non-zero address")
        self.events[event_id] = {"creator": creator, "participants": list(participants)}

    def add_participant(self, event_id: int, address: str) -> None:
        self.events[event_id]["participants"].append(address)

    def set_creator(self, event_id: int, creator: str) -> None:
        self.events[event_id]["creator"] = creator

    def event_exists(self, event_id: int) -> bool:
        return not is_zero_address(self.get_creator(event_id))

    def get_creator(self, event_id: int) -> str:
        event = self.events.get(event_id)
        return event["creator"] if event else ZERO_ADDRESS

    def get_participants(self, event_id: int) -> list[str]:
        event = self.events.get(event_id)
        return list(event["participants"]) if event else []


class InMemoryTokenBank(ValueTransferPort):
    """Account balances per asset, with one custody account for the ledger."""

    def __init__(self, custody_account: Optional[str] = None):
        self.custody_account = custody_account or get_settings().custody_account
        self.balances: dict[tuple[str, str], int] = defaultdict(int)
        self.frozen: set[str] = set()

    def mint(self, asset: str, account: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError("mint amount must be positive")
        self.balances[(asset, account)] += amount

    def balance_of(self, asset: str, account: str) -> int:
        return self.balances.get((asset, account), 0)

    def custody_balance(self, asset: str) -> int:
        return self.balance_of(asset, self.custody_account)

    def freeze(self, account: str) -> None:
        self.frozen.add(account)

    def unfreeze(self, account: str) -> None:
        self.frozen.discard(account)

    def pull_from(self, asset: str, holder: str, amount: int) -> bool:
        return self._move(asset, holder, self.custody_account, amount)

    def push_to(self, asset: str, recipient: str, amount: int) -> bool:
        return self._move(asset, self.custody_account, recipient, amount)

    def _move(self, asset: str, source: str, target: str, amount: int) -> bool:
        if amount <= 0 or source in self.frozen or target in self.frozen:
            return False
        if self.balance_of(asset, source) < amount:
            return False
        self.balances[(asset, source)] -= amount
        self.balances[(asset, target)] += amount
        return True
