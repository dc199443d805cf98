from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, computed_field


ZERO_ADDRESS = "0x" + "0" * 40
MAX_AMOUNT = 2**256 - 1


def is_zero_address(address: Optional[str]) -> bool:
    return not address or address.lower() == ZERO_ADDRESS


class AssetKind(str, Enum):
    USDC = "USDC"
    WLD = "WLD"
    NFT = "NFT"


VALID_ASSET_KINDS = frozenset({AssetKind.USDC, AssetKind.WLD})


class LedgerEventType(str, Enum):
    POOL_CREATED = "POOL_CREATED"
    POOL_TOPPED_UP = "POOL_TOPPED_UP"
    POOL_WITHDRAWN = "POOL_WITHDRAWN"
    SINGLE_DISTRIBUTED = "SINGLE_DISTRIBUTED"
    BATCH_DISTRIBUTED = "BATCH_DISTRIBUTED"
    BONUS_DISTRIBUTED = "BONUS_DISTRIBUTED"
    CLAIMED = "CLAIMED"


class RewardPool(BaseModel):
    event_id: int
    controller: str
    asset_address: str
    asset_kind: AssetKind
    pool_amount: int = 0
    claimed_amount: int = 0
    outstanding_amount: int = 0
    deposited_amount: int = 0
    reclaimed_amount: int = 0
    created_at: datetime
    cancelled: bool = False

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def remainder(self) -> int:
        """Value still held in custody for this pool."""
        return self.pool_amount + self.outstanding_amount

    def is_balanced(self) -> bool:
        paid_out = self.claimed_amount + self.reclaimed_amount
        return self.deposited_amount == self.remainder + paid_out


class Allocation(BaseModel):
    event_id: int
    participant: str
    allocated_amount: int = 0
    claimed: bool = False

    model_config = ConfigDict(from_attributes=True)


class LedgerEvent(BaseModel):
    id: UUID
    type: LedgerEventType
    event_id: int
    account: str
    amount: int
    cancelled: Optional[bool] = None
    metadata: dict = Field(default_factory=dict)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreatePoolRequest(BaseModel):
    event_id: int = Field(..., ge=0)
    asset_kind: AssetKind
    asset_address: str
    amount: int = Field(..., gt=0)
    funder: str = Field(..., description="Event creator funding the pool")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "event_id": 42,
            "asset_kind": "USDC",
            "asset_address": "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",
            "amount": 1000,
            "funder": "0x1111111111111111111111111111111111111111"
        }
    })


class TopUpRequest(BaseModel):
    controller: str
    amount: int = Field(..., gt=0)


class AllocateRequest(BaseModel):
    caller: str
    recipient: str
    amount: int = Field(..., gt=0)


class AllocateBatchRequest(BaseModel):
    caller: str
    recipients: list[str]
    amounts: list[int]


class BonusRequest(BaseModel):
    caller: str
    recipient: str
    bonus: int = Field(..., gt=0)


class ClaimRequest(BaseModel):
    participant: str


class ReclaimRequest(BaseModel):
    controller: str


class AllocationQuery(BaseModel):
    participants: list[str]


class PoolResponse(BaseModel):
    pool: RewardPool
    ledger_event: Optional[LedgerEvent] = None
    message: str
