"""
Event Reward Ledger

This module provides:
- Reward pools funded by an event's creator
- Single, batch and bonus allocation to participants
- One-time participant claims paid out through a transfer port
- Reclamation of unclaimed value after a timeout
- An audit trail of every ledger event
"""

from .models import (
    AssetKind,
    LedgerEventType,
    RewardPool,
    Allocation,
    LedgerEvent,
    ZERO_ADDRESS,
)
from .ports import (
    EventOracle,
    ValueTransferPort,
    InMemoryEventRegistry,
    InMemoryTokenBank,
)
from .service import (
    LedgerService,
    LedgerServiceError,
    NotFoundError,
    UnauthorizedError,
    InvalidArgumentError,
    PoolAlreadyExistsError,
    NothingToClaimError,
    InsufficientFundsError,
    AlreadyClaimedError,
    NotAParticipantError,
    TransferFailedError,
    TimeoutNotReachedError,
    PoolCancelledError,
)

__all__ = [
    "AssetKind",
    "LedgerEventType",
    "RewardPool",
    "Allocation",
    "LedgerEvent",
    "ZERO_ADDRESS",
    "EventOracle",
    "ValueTransferPort",
    "InMemoryEventRegistry",
    "InMemoryTokenBank",
    "LedgerService",
    "LedgerServiceError",
    "NotFoundError",
    "UnauthorizedError",
    "InvalidArgumentError",
    "PoolAlreadyExistsError",
    "NothingToClaimError",
    "InsufficientFundsError",
    "AlreadyClaimedError",
    "NotAParticipantError",
    "TransferFailedError",
    "TimeoutNotReachedError",
    "PoolCancelledError",
]
