"""
Unit Tests for allocation

Tests cover:
1. Single allocation and accumulation
2. Remainder bounds
3. Authorization (stored controller and live creator)
4. Batch allocation, all-or-nothing
5. Bonus allocation
6. Allocation queries
"""

import pytest

from reward_ledger.config import Settings
from reward_ledger.models import AssetKind, LedgerEventType, ZERO_ADDRESS
from reward_ledger.service import (
    InsufficientFundsError,
    InvalidArgumentError,
    LedgerService,
    NotFoundError,
    UnauthorizedError,
)

from conftest import (
    ALICE, BOB, CAROL, CREATOR, EVENT_ID, OUTSIDER, POOL_SIZE, USDC,
    assert_conserved, snapshot,
)


class TestAllocate:
    """Tests for single-recipient allocation."""

    def test_allocate_moves_value_from_pool(self, funded):
        """Test allocation decrements the pool and credits the recipient."""
        event = funded.allocate(CREATOR, EVENT_ID, ALICE, 400)

        assert event.type == LedgerEventType.SINGLE_DISTRIBUTED
        assert event.account == ALICE
        assert funded.get_allocation(EVENT_ID, ALICE) == 400

        pool = funded.get_pool(EVENT_ID)
        assert pool.pool_amount == POOL_SIZE - 400
        assert pool.outstanding_amount == 400
        assert_conserved(funded)

    def test_repeated_allocation_accumulates(self, funded):
        funded.allocate(CREATOR, EVENT_ID, ALICE, 100)
        funded.allocate(CREATOR, EVENT_ID, ALICE, 150)

        assert funded.get_allocation(EVENT_ID, ALICE) == 250

    def test_allocation_before_participation(self, funded):
        """Test an address outside the participant list can still be allocated."""
        funded.allocate(CREATOR, EVENT_ID, CAROL, 10)

        assert funded.get_allocation(EVENT_ID, CAROL) == 10

    def test_cannot_exceed_remainder(self, funded):
        """Test allocating more than what's left fails without side effects."""
        funded.allocate(CREATOR, EVENT_ID, ALICE, 700)
        before = snapshot(funded)

        with pytest.raises(InsufficientFundsError):
            funded.allocate(CREATOR, EVENT_ID, BOB, 301)

        assert snapshot(funded) == before

    def test_can_allocate_exact_remainder(self, funded):
        funded.allocate(CREATOR, EVENT_ID, ALICE, POOL_SIZE)

        assert funded.get_pool(EVENT_ID).pool_amount == 0

    def test_rejects_zero_recipient_and_amount(self, funded):
        with pytest.raises(InvalidArgumentError):
            funded.allocate(CREATOR, EVENT_ID, ZERO_ADDRESS, 10)
        with pytest.raises(InvalidArgumentError):
            funded.allocate(CREATOR, EVENT_ID, ALICE, 0)

    @pytest.mark.parametrize("amount", [True, 1.5, "10"])
    def test_rejects_non_integer_amount(self, funded, amount):
        """Test bools, floats and strings are not accepted as amounts."""
        before = snapshot(funded)

        with pytest.raises(InvalidArgumentError):
            funded.allocate(CREATOR, EVENT_ID, ALICE, amount)

        assert snapshot(funded) == before

    def test_allocate_without_pool_fails(self, service):
        with pytest.raises(NotFoundError):
            service.allocate(CREATOR, EVENT_ID, ALICE, 10)

    def test_non_creator_cannot_allocate(self, funded):
        before = snapshot(funded)

        with pytest.raises(UnauthorizedError):
            funded.allocate(OUTSIDER, EVENT_ID, ALICE, 10)

        assert snapshot(funded) == before

    def test_creator_change_revokes_allocation_rights(self, funded, registry):
        """Test allocation is re-checked against the registry's current creator."""
        registry.set_creator(EVENT_ID, OUTSIDER)

        with pytest.raises(UnauthorizedError):
            funded.allocate(CREATOR, EVENT_ID, ALICE, 10)
        # The new creator never controlled the pool either
        with pytest.raises(UnauthorizedError):
            funded.allocate(OUTSIDER, EVENT_ID, ALICE, 10)

    def test_stored_controller_only_when_live_check_disabled(self, registry, bank, clock):
        settings = Settings(live_creator_check=False, custody_account="custody")
        service = LedgerService(oracle=registry, transfers=bank, settings=settings, clock=clock)
        service.create_pool(EVENT_ID, AssetKind.USDC, USDC, POOL_SIZE, CREATOR)
        registry.set_creator(EVENT_ID, OUTSIDER)

        service.allocate(CREATOR, EVENT_ID, ALICE, 10)

        assert service.get_allocation(EVENT_ID, ALICE) == 10


class TestAllocateBatch:
    """Tests for batch allocation."""

    def test_batch_allocation(self, funded):
        """Test every pair is credited and one batch event is emitted."""
        event = funded.allocate_batch(CREATOR, EVENT_ID, [ALICE, BOB, ALICE], [100, 200, 50])

        assert event.type == LedgerEventType.BATCH_DISTRIBUTED
        assert event.amount == 350
        assert event.metadata["recipients"] == [ALICE, BOB, ALICE]
        assert funded.get_allocation_batch(EVENT_ID, [ALICE, BOB]) == [150, 200]
        assert funded.get_pool(EVENT_ID).pool_amount == POOL_SIZE - 350
        assert_conserved(funded)

    def test_mismatched_lengths_fail(self, funded):
        """Test length mismatch leaves allocations at their prior values."""
        funded.allocate(CREATOR, EVENT_ID, ALICE, 5)
        before = snapshot(funded)

        with pytest.raises(InvalidArgumentError):
            funded.allocate_batch(CREATOR, EVENT_ID, [ALICE, BOB], [100])

        assert snapshot(funded) == before
        assert funded.get_allocation_batch(EVENT_ID, [ALICE, BOB]) == [5, 0]

    def test_empty_batch_fails(self, funded):
        with pytest.raises(InvalidArgumentError):
            funded.allocate_batch(CREATOR, EVENT_ID, [], [])

    @pytest.mark.parametrize("recipients, amounts", [
        ([ALICE, ZERO_ADDRESS, BOB], [10, 10, 10]),
        ([ALICE, BOB, CAROL], [10, 0, 10]),
    ])
    def test_invalid_element_aborts_whole_batch(self, funded, recipients, amounts):
        """Test a bad pair in the middle applies none of the batch."""
        before = snapshot(funded)

        with pytest.raises(InvalidArgumentError):
            funded.allocate_batch(CREATOR, EVENT_ID, recipients, amounts)

        assert snapshot(funded) == before
        assert funded.get_allocation(EVENT_ID, ALICE) == 0

    def test_batch_over_remainder_fails(self, funded):
        before = snapshot(funded)

        with pytest.raises(InsufficientFundsError):
            funded.allocate_batch(CREATOR, EVENT_ID, [ALICE, BOB], [600, 401])

        assert snapshot(funded) == before

    def test_batch_by_non_creator_fails(self, funded):
        with pytest.raises(UnauthorizedError):
            funded.allocate_batch(OUTSIDER, EVENT_ID, [ALICE], [10])


class TestAllocateBonus:
    """Tests for bonus allocation."""

    def test_bonus_uses_same_mechanics(self, funded):
        """Test a bonus credits like an allocation but is tagged as a bonus."""
        funded.allocate(CREATOR, EVENT_ID, ALICE, 100)
        event = funded.allocate_bonus(CREATOR, EVENT_ID, ALICE, 25)

        assert event.type == LedgerEventType.BONUS_DISTRIBUTED
        assert funded.get_allocation(EVENT_ID, ALICE) == 125
        assert funded.get_pool(EVENT_ID).pool_amount == POOL_SIZE - 125

    def test_bonus_over_remainder_fails(self, funded):
        with pytest.raises(InsufficientFundsError):
            funded.allocate_bonus(CREATOR, EVENT_ID, ALICE, POOL_SIZE + 1)

    def test_bonus_by_non_creator_fails(self, funded):
        with pytest.raises(UnauthorizedError):
            funded.allocate_bonus(ALICE, EVENT_ID, ALICE, 25)


class TestAllocationQueries:
    """Tests for allocation lookups."""

    def test_unknown_participant_is_zero(self, funded):
        assert funded.get_allocation(EVENT_ID, OUTSIDER) == 0
        assert funded.get_allocation(404, OUTSIDER) == 0

    def test_batch_query_keeps_order(self, funded):
        funded.allocate_batch(CREATOR, EVENT_ID, [ALICE, BOB], [1, 2])

        assert funded.get_allocation_batch(EVENT_ID, [BOB, OUTSIDER, ALICE]) == [2, 0, 1]

    def test_lookup_ignores_address_case(self, funded):
        funded.allocate(CREATOR, EVENT_ID, ALICE, 7)

        assert funded.get_allocation(EVENT_ID, ALICE.upper().replace("0X", "0x")) == 7


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
