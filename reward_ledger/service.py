import functools
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, Union
from uuid import uuid4

from .config import Settings, get_settings
from .logging import get_logger
from .models import (
    MAX_AMOUNT,
    VALID_ASSET_KINDS,
    Allocation,
    AssetKind,
    LedgerEvent,
    LedgerEventType,
    PoolResponse,
    RewardPool,
    is_zero_address,
)
from .ports import EventOracle, InMemoryEventRegistry, InMemoryTokenBank, ValueTransferPort

log = get_logger(__name__)


class LedgerServiceError(Exception):
    pass


class NotFoundError(LedgerServiceError):
    pass


class UnauthorizedError(LedgerServiceError):
    pass


class InvalidArgumentError(LedgerServiceError):
    pass


class PoolAlreadyExistsError(InvalidArgumentError):
    pass


class NothingToClaimError(InvalidArgumentError):
    pass


class InsufficientFundsError(LedgerServiceError):
    pass


class AlreadyClaimedError(LedgerServiceError):
    pass


class NotAParticipantError(LedgerServiceError):
    pass


class TransferFailedError(LedgerServiceError):
    pass


class TimeoutNotReachedError(LedgerServiceError):
    pass


class PoolCancelledError(LedgerServiceError):
    pass


def _key(address: str) -> str:
    return address.lower()


def _same_address(a: str, b: str) -> bool:
    return not is_zero_address(a) and not is_zero_address(b) and _key(a) == _key(b)


def _audited(operation: str):
    """Log rejected operations before the error reaches the caller."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except LedgerServiceError as e:
                log.warning("operation_rejected", operation=operation,
                            error=type(e).__name__, detail=str(e))
                raise
        return wrapper
    return decorator


class InMemoryStorage:
    def __init__(self):
        self.pools: dict[int, dict] = {}
        # event_id -> participant key -> allocation record
        self.allocations: dict[int, dict[str, dict]] = {}
        self.ledger_events: list[dict] = []


class LedgerService:
    """
    Reward pools per event: funding, allocation, claims and reclamation.

    Every mutating call holds the event's lock across validation, the external
    transfer and the state write. State is only written after the transfer
    port reports success, so a failed call leaves the ledger untouched.
    """

    def __init__(
        self,
        oracle: Optional[EventOracle] = None,
        transfers: Optional[ValueTransferPort] = None,
        storage: Optional[InMemoryStorage] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        self.oracle = oracle or InMemoryEventRegistry()
        self.transfers = transfers or InMemoryTokenBank(self.settings.custody_account)
        self.storage = storage or InMemoryStorage()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        # Entries disappear once no call holds the lock.
        self._locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    # -- pool lifecycle ---------------------------------------------------

    @_audited("create_pool")
    def create_pool(
        self,
        event_id: int,
        asset_kind: Union[AssetKind, str],
        asset_address: str,
        amount: int,
        funder: str,
    ) -> PoolResponse:
        if is_zero_address(funder):
            raise InvalidArgumentError("Funder must be a non-zero address")
        creator = self._require_event(event_id)
        if not _same_address(funder, creator):
            raise UnauthorizedError(f"Only the creator of event {event_id} can create its pool")
        if is_zero_address(asset_address):
            raise InvalidArgumentError("Asset address must be non-zero")
        self._require_amount(amount)
        kind = self._require_asset_kind(asset_kind)

        with self._pool_lock(event_id):
            if event_id in self.storage.pools:
                raise PoolAlreadyExistsError(f"Pool for event {event_id} already exists")

            self._pull(asset_address, funder, amount)

            pool_data = {
                "event_id": event_id,
                "controller": funder,
                "asset_address": asset_address,
                "asset_kind": kind,
                "pool_amount": amount,
                "claimed_amount": 0,
                "outstanding_amount": 0,
                "deposited_amount": amount,
                "reclaimed_amount": 0,
                "created_at": self.clock(),
                "cancelled": False,
            }
            self.storage.pools[event_id] = pool_data
            self.storage.allocations[event_id] = {}
            event = self._emit(
                LedgerEventType.POOL_CREATED, event_id, funder, amount,
                metadata={"asset_address": asset_address, "asset_kind": kind.value},
            )

        return PoolResponse(
            pool=RewardPool(**pool_data),
            ledger_event=event,
            message="Pool created successfully"
        )

    @_audited("top_up")
    def top_up(self, controller: str, event_id: int, amount: int) -> PoolResponse:
        if is_zero_address(controller):
            raise InvalidArgumentError("Controller must be a non-zero address")
        self._require_event(event_id)
        self._require_amount(amount)

        with self._pool_lock(event_id):
            pool_data = self._get_pool_data(event_id)
            self._require_controller(pool_data, controller)
            if pool_data["cancelled"]:
                raise PoolCancelledError(f"Pool for event {event_id} was cancelled")
            if pool_data["deposited_amount"] + amount > MAX_AMOUNT:
                raise InvalidArgumentError("Top-up would overflow the pool")

            self._pull(pool_data["asset_address"], controller, amount)

            pool_data["pool_amount"] += amount
            pool_data["deposited_amount"] += amount
            event = self._emit(LedgerEventType.POOL_TOPPED_UP, event_id, controller, amount)

        return PoolResponse(
            pool=RewardPool(**pool_data),
            ledger_event=event,
            message="Pool topped up successfully"
        )

    # -- allocation -------------------------------------------------------

    @_audited("allocate")
    def allocate(self, caller: str, event_id: int, recipient: str, amount: int) -> LedgerEvent:
        return self._allocate_one(caller, event_id, recipient, amount, LedgerEventType.SINGLE_DISTRIBUTED)

    @_audited("allocate_bonus")
    def allocate_bonus(self, caller: str, event_id: int, recipient: str, bonus: int) -> LedgerEvent:
        return self._allocate_one(caller, event_id, recipient, bonus, LedgerEventType.BONUS_DISTRIBUTED)

    @_audited("allocate_batch")
    def allocate_batch(
        self,
        caller: str,
        event_id: int,
        recipients: Sequence[str],
        amounts: Sequence[int],
    ) -> LedgerEvent:
        recipients, amounts = list(recipients), list(amounts)
        self._require_event(event_id)

        with self._pool_lock(event_id):
            pool_data = self._get_pool_data(event_id)
            self._authorize_allocator(pool_data, caller)
            self._require_allocatable(pool_data)

            if not recipients or len(recipients) != len(amounts):
                raise InvalidArgumentError("Recipients and amounts must be non-empty and of equal length")
            for recipient, amount in zip(recipients, amounts):
                self._require_recipient(recipient)
                self._require_amount(amount)
            total = sum(amounts)
            if total > pool_data["pool_amount"]:
                raise InsufficientFundsError(
                    f"Batch of {total} exceeds remaining pool of {pool_data['pool_amount']}"
                )

            for recipient, amount in zip(recipients, amounts):
                self._credit(pool_data, recipient, amount)
            return self._emit(
                LedgerEventType.BATCH_DISTRIBUTED, event_id, caller, total,
                metadata={"recipients": recipients, "amounts": amounts},
            )

    def _allocate_one(
        self,
        caller: str,
        event_id: int,
        recipient: str,
        amount: int,
        event_type: LedgerEventType,
    ) -> LedgerEvent:
        self._require_event(event_id)

        with self._pool_lock(event_id):
            pool_data = self._get_pool_data(event_id)
            self._authorize_allocator(pool_data, caller)
            self._require_allocatable(pool_data)
            self._require_recipient(recipient)
            self._require_amount(amount)
            if amount > pool_data["pool_amount"]:
                raise InsufficientFundsError(
                    f"Allocation of {amount} exceeds remaining pool of {pool_data['pool_amount']}"
                )

            self._credit(pool_data, recipient, amount)
            return self._emit(event_type, event_id, recipient, amount, metadata={"allocated_by": caller})

    def _credit(self, pool_data: dict, recipient: str, amount: int) -> None:
        allocations = self.storage.allocations.setdefault(pool_data["event_id"], {})
        allocation = allocations.setdefault(_key(recipient), {
            "event_id": pool_data["event_id"],
            "participant": recipient,
            "allocated_amount": 0,
            "claimed": False,
        })
        allocation["allocated_amount"] += amount
        pool_data["pool_amount"] -= amount
        pool_data["outstanding_amount"] += amount

    # -- claiming ---------------------------------------------------------

    @_audited("claim")
    def claim(self, event_id: int, participant: str) -> LedgerEvent:
        if is_zero_address(participant):
            raise InvalidArgumentError("Participant must be a non-zero address")
        self._require_event(event_id)

        with self._pool_lock(event_id):
            pool_data = self._get_pool_data(event_id)
            participants = self.oracle.get_participants(event_id)
            if not any(_same_address(participant, p) for p in participants):
                raise NotAParticipantError(f"{participant} is not a participant of event {event_id}")

            allocation = self.storage.allocations.get(event_id, {}).get(_key(participant))
            if allocation and allocation["claimed"]:
                raise AlreadyClaimedError(f"{participant} already claimed for event {event_id}")
            amount = allocation["allocated_amount"] if allocation else 0
            if amount <= 0:
                raise NothingToClaimError(f"No reward allocated to {participant} for event {event_id}")
            if is_zero_address(pool_data["asset_address"]):
                raise NotFoundError(f"Pool for event {event_id} has no asset")

            self._push(pool_data["asset_address"], participant, amount)

            allocation["allocated_amount"] = 0
            allocation["claimed"] = True
            pool_data["claimed_amount"] += amount
            pool_data["outstanding_amount"] -= amount
            return self._emit(LedgerEventType.CLAIMED, event_id, participant, amount)

    # -- reclamation ------------------------------------------------------

    @_audited("reclaim")
    def reclaim(self, event_id: int, controller: str) -> PoolResponse:
        """
        Return everything still in custody to the controller once the timeout
        has passed. Unclaimed allocations expire. A pool nobody claimed from is
        marked cancelled and can't be reclaimed or funded again.
        """
        if is_zero_address(controller):
            raise InvalidArgumentError("Controller must be a non-zero address")
        self._require_event(event_id)

        with self._pool_lock(event_id):
            pool_data = self._get_pool_data(event_id)
            self._require_controller(pool_data, controller)

            unlocks_at = pool_data["created_at"] + self.settings.reclaim_timeout
            if self.clock() < unlocks_at:
                raise TimeoutNotReachedError(
                    f"Pool for event {event_id} can be reclaimed from {unlocks_at.isoformat()}"
                )
            if pool_data["cancelled"]:
                raise PoolCancelledError(f"Pool for event {event_id} was already cancelled")

            remainder = pool_data["pool_amount"] + pool_data["outstanding_amount"]
            if remainder == 0:
                raise InsufficientFundsError(f"Nothing left to reclaim for event {event_id}")
            cancelled = pool_data["claimed_amount"] == 0

            self._push(pool_data["asset_address"], controller, remainder)

            pool_data["pool_amount"] = 0
            pool_data["outstanding_amount"] = 0
            pool_data["reclaimed_amount"] += remainder
            pool_data["cancelled"] = cancelled
            expired = self._expire_allocations(event_id)
            event = self._emit(
                LedgerEventType.POOL_WITHDRAWN, event_id, controller, remainder,
                cancelled=cancelled, metadata={"expired_allocations": expired},
            )

        return PoolResponse(
            pool=RewardPool(**pool_data),
            ledger_event=event,
            message="Pool cancelled and refunded" if cancelled else "Unclaimed rewards reclaimed"
        )

    def _expire_allocations(self, event_id: int) -> int:
        expired = 0
        for allocation in self.storage.allocations.get(event_id, {}).values():
            if allocation["allocated_amount"] > 0:
                allocation["allocated_amount"] = 0
                expired += 1
        return expired

    # -- queries ----------------------------------------------------------

    def get_allocation(self, event_id: int, participant: str) -> int:
        allocation = self.storage.allocations.get(event_id, {}).get(_key(participant))
        return allocation["allocated_amount"] if allocation else 0

    def get_allocation_batch(self, event_id: int, participants: Sequence[str]) -> list[int]:
        return [self.get_allocation(event_id, p) for p in participants]

    def get_allocation_record(self, event_id: int, participant: str) -> Allocation:
        allocation = self.storage.allocations.get(event_id, {}).get(_key(participant))
        if allocation:
            return Allocation(**allocation)
        return Allocation(event_id=event_id, participant=participant)

    def get_pool(self, event_id: int) -> RewardPool:
        return RewardPool(**self._get_pool_data(event_id))

    def get_ledger_events(self, event_id: Optional[int] = None) -> list[LedgerEvent]:
        return [
            LedgerEvent(**e) for e in self.storage.ledger_events
            if event_id is None or e["event_id"] == event_id
        ]

    # -- helpers ----------------------------------------------------------

    @contextmanager
    def _pool_lock(self, event_id: int):
        with self._locks_guard:
            lock = self._locks.get(event_id)
            if lock is None:
                lock = self._locks[event_id] = threading.Lock()
        with lock:
            yield

    def _require_event(self, event_id: int) -> str:
        creator = self.oracle.get_creator(event_id)
        if is_zero_address(creator) or not self.oracle.event_exists(event_id):
            raise NotFoundError(f"Event {event_id} not found")
        return creator

    def _get_pool_data(self, event_id: int) -> dict:
        pool_data = self.storage.pools.get(event_id)
        if not pool_data:
            raise NotFoundError(f"No reward pool for event {event_id}")
        return pool_data

    def _require_controller(self, pool_data: dict, caller: str) -> None:
        if not _same_address(caller, pool_data["controller"]):
            raise UnauthorizedError(f"{caller} does not control the pool for event {pool_data['event_id']}")

    def _authorize_allocator(self, pool_data: dict, caller: str) -> None:
        if is_zero_address(caller):
            raise InvalidArgumentError("Caller must be a non-zero address")
        self._require_controller(pool_data, caller)
        if self.settings.live_creator_check:
            creator = self.oracle.get_creator(pool_data["event_id"])
            if not _same_address(caller, creator):
                raise UnauthorizedError(f"{caller} is no longer the creator of event {pool_data['event_id']}")

    def _require_allocatable(self, pool_data: dict) -> None:
        if pool_data["asset_kind"] not in VALID_ASSET_KINDS:
            raise InvalidArgumentError(f"Pool asset kind {pool_data['asset_kind']} cannot be allocated")
        if pool_data["cancelled"]:
            raise PoolCancelledError(f"Pool for event {pool_data['event_id']} was cancelled")

    def _require_recipient(self, recipient: str) -> None:
        if is_zero_address(recipient):
            raise InvalidArgumentError("Recipient must be a non-zero address")

    def _require_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or not 0 < amount <= MAX_AMOUNT:
            raise InvalidArgumentError(f"Amount must be a positive integer, got {amount!r}")

    def _require_asset_kind(self, asset_kind: Union[AssetKind, str]) -> AssetKind:
        try:
            kind = AssetKind(asset_kind)
        except ValueError:
            raise InvalidArgumentError(f"Unknown asset kind {asset_kind!r}")
        if kind not in VALID_ASSET_KINDS:
            raise InvalidArgumentError(f"{kind.value} rewards are not supported")
        return kind

    def _pull(self, asset: str, holder: str, amount: int) -> None:
        if not self.transfers.pull_from(asset, holder, amount):
            raise TransferFailedError(f"Could not pull {amount} of {asset} from {holder}")

    def _push(self, asset: str, recipient: str, amount: int) -> None:
        if not self.transfers.push_to(asset, recipient, amount):
            raise TransferFailedError(f"Could not send {amount} of {asset} to {recipient}")

    def _emit(
        self,
        event_type: LedgerEventType,
        event_id: int,
        account: str,
        amount: int,
        cancelled: Optional[bool] = None,
        metadata: Optional[dict] = None,
    ) -> LedgerEvent:
        event_data = {
            "id": uuid4(),
            "type": event_type,
            "event_id": event_id,
            "account": account,
            "amount": amount,
            "cancelled": cancelled,
            "metadata": metadata or {},
            "created_at": self.clock(),
        }
        self.storage.ledger_events.append(event_data)
        log.info(event_type.value.lower(), event_id=event_id, account=account,
                 amount=amount, cancelled=cancelled)
        return LedgerEvent(**event_data)
