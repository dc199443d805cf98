import copy
from datetime import datetime, timedelta, timezone

import pytest

from reward_ledger.config import Settings
from reward_ledger.models import AssetKind
from reward_ledger.ports import InMemoryEventRegistry, InMemoryTokenBank
from reward_ledger.service import LedgerService


# Test constants
EVENT_ID = 1
CREATOR = "0x1111111111111111111111111111111111111111"
ALICE = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
BOB = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
CAROL = "0xcccccccccccccccccccccccccccccccccccccccc"
OUTSIDER = "0xdddddddddddddddddddddddddddddddddddddddd"
USDC = "0x5555555555555555555555555555555555555555"
CREATOR_FUNDS = 10_000
POOL_SIZE = 1000


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def snapshot(service: LedgerService) -> tuple:
    """Everything a failed call must leave untouched."""
    return (
        copy.deepcopy(service.storage.pools),
        copy.deepcopy(service.storage.allocations),
        len(service.storage.ledger_events),
        dict(service.transfers.balances),
    )


def assert_conserved(service: LedgerService, event_id: int = EVENT_ID) -> None:
    pool = service.get_pool(event_id)
    assert pool.is_balanced()
    assert pool.deposited_amount == (
        pool.pool_amount + pool.outstanding_amount + pool.claimed_amount + pool.reclaimed_amount
    )
    assert service.transfers.custody_balance(pool.asset_address) == pool.remainder


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def registry():
    registry = InMemoryEventRegistry()
    registry.register_event(EVENT_ID, CREATOR, [ALICE, BOB])
    return registry


@pytest.fixture
def bank():
    bank = InMemoryTokenBank(custody_account="custody")
    bank.mint(USDC, CREATOR, CREATOR_FUNDS)
    return bank


@pytest.fixture
def settings():
    return Settings(reclaim_timeout_days=30, live_creator_check=True, custody_account="custody")


@pytest.fixture
def service(registry, bank, settings, clock):
    return LedgerService(oracle=registry, transfers=bank, settings=settings, clock=clock)


@pytest.fixture
def funded(service):
    """Service with a USDC pool of POOL_SIZE for EVENT_ID."""
    service.create_pool(EVENT_ID, AssetKind.USDC, USDC, POOL_SIZE, CREATOR)
    return service
