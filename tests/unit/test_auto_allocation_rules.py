from decimal import Decimal

from savings_tracker.domain.models import ALLOCATION_EPSILON
from savings_tracker.domain.services.auto_allocation import AllocationSnapshot, AutoAllocationAdjuster


def _snapshot(pct, goal_id=1):
    return AllocationSnapshot(
        allocation_id=goal_id,
        asset_id=1,
        goal_id=goal_id,
        percentage=Decimal(pct),
        target_amount=Decimal("0"),
    )


def test_sole_full_allocation_qualifies():
    assert AutoAllocationAdjuster.qualifies([_snapshot("1")])
    assert AutoAllocationAdjuster.qualifies([_snapshot(Decimal("1") - ALLOCATION_EPSILON)])


def test_partial_or_split_allocations_do_not_qualify():
    assert not AutoAllocationAdjuster.qualifies([])
    assert not AutoAllocationAdjuster.qualifies([_snapshot("0.9")])
    assert not AutoAllocationAdjuster.qualifies([_snapshot("0.6", 1), _snapshot("0.4", 2)])
