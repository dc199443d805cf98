from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .logging import setup_logging
from .models import (
    CreatePoolRequest, TopUpRequest, AllocateRequest, AllocateBatchRequest,
    BonusRequest, ClaimRequest, ReclaimRequest, AllocationQuery,
    PoolResponse, RewardPool, Allocation, LedgerEvent,
)
from .service import (
    LedgerService, LedgerServiceError, NotFoundError, UnauthorizedError,
    PoolAlreadyExistsError, AlreadyClaimedError, NotAParticipantError,
    TransferFailedError, PoolCancelledError,
)

setup_logging()

app = FastAPI(
    title="Event Reward Ledger API",
    description="Reward pools for events: funding, allocation, claims and reclamation",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService()

# Most specific first; anything else is a plain 400.
ERROR_STATUS = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (NotAParticipantError, status.HTTP_403_FORBIDDEN),
    (PoolAlreadyExistsError, status.HTTP_409_CONFLICT),
    (AlreadyClaimedError, status.HTTP_409_CONFLICT),
    (PoolCancelledError, status.HTTP_409_CONFLICT),
    (TransferFailedError, status.HTTP_502_BAD_GATEWAY),
]


def _http_error(e: LedgerServiceError) -> HTTPException:
    for error_type, code in ERROR_STATUS:
        if isinstance(e, error_type):
            return HTTPException(status_code=code, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": ledger_service.settings.service_name}


@app.post("/pools", response_model=PoolResponse, status_code=status.HTTP_201_CREATED, tags=["Pools"])
def create_pool(request: CreatePoolRequest) -> PoolResponse:
    try:
        return ledger_service.create_pool(
            request.event_id, request.asset_kind, request.asset_address, request.amount, request.funder
        )
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/pools/{event_id}", response_model=RewardPool, tags=["Pools"])
def get_pool(event_id: int) -> RewardPool:
    try:
        return ledger_service.get_pool(event_id)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/pools/{event_id}/top-up", response_model=PoolResponse, tags=["Pools"])
def top_up(event_id: int, request: TopUpRequest) -> PoolResponse:
    try:
        return ledger_service.top_up(request.controller, event_id, request.amount)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/pools/{event_id}/reclaim", response_model=PoolResponse, tags=["Pools"])
def reclaim(event_id: int, request: ReclaimRequest) -> PoolResponse:
    try:
        return ledger_service.reclaim(event_id, request.controller)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/pools/{event_id}/allocations", response_model=LedgerEvent, tags=["Allocations"])
def allocate(event_id: int, request: AllocateRequest) -> LedgerEvent:
    try:
        return ledger_service.allocate(request.caller, event_id, request.recipient, request.amount)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/pools/{event_id}/allocations/batch", response_model=LedgerEvent, tags=["Allocations"])
def allocate_batch(event_id: int, request: AllocateBatchRequest) -> LedgerEvent:
    try:
        return ledger_service.allocate_batch(request.caller, event_id, request.recipients, request.amounts)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.post("/pools/{event_id}/bonuses", response_model=LedgerEvent, tags=["Allocations"])
def allocate_bonus(event_id: int, request: BonusRequest) -> LedgerEvent:
    try:
        return ledger_service.allocate_bonus(request.caller, event_id, request.recipient, request.bonus)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/pools/{event_id}/allocations/{participant}", response_model=Allocation, tags=["Allocations"])
def get_allocation(event_id: int, participant: str) -> Allocation:
    return ledger_service.get_allocation_record(event_id, participant)


@app.post("/pools/{event_id}/allocations/query", response_model=list[int], tags=["Allocations"])
def get_allocation_batch(event_id: int, query: AllocationQuery) -> list[int]:
    return ledger_service.get_allocation_batch(event_id, query.participants)


@app.post("/pools/{event_id}/claims", response_model=LedgerEvent, tags=["Claims"])
def claim(event_id: int, request: ClaimRequest) -> LedgerEvent:
    try:
        return ledger_service.claim(event_id, request.participant)
    except LedgerServiceError as e:
        raise _http_error(e)


@app.get("/pools/{event_id}/events", response_model=list[LedgerEvent], tags=["Audit"])
def get_ledger_events(event_id: int) -> list[LedgerEvent]:
    return ledger_service.get_ledger_events(event_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
