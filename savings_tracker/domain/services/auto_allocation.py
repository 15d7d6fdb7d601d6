"""
AUTO-ALLOCATION ADJUSTER
Keep a sole 100% allocation's target equal to the asset balance

Fires only when the asset had exactly one allocation before the deposit and
that allocation covered the whole asset. Split assets are never touched.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from savings_tracker.domain.models import ALLOCATION_EPSILON, AutoAllocationResult
from savings_tracker.infrastructure.db.models import AllocationModel
from savings_tracker.infrastructure.db.repositories.allocation_repository import AllocationRepository
from savings_tracker.utils.time import utc_now_naive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationSnapshot:
    """Allocation state captured before a deposit"""
    allocation_id: int
    asset_id: int
    goal_id: int
    percentage: Decimal
    target_amount: Decimal


class AutoAllocationAdjuster:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.allocation_repository = AllocationRepository(session)

    async def snapshot(self, asset_id: int) -> List[AllocationSnapshot]:
        return [
            AllocationSnapshot(
                allocation_id=a.id,
                asset_id=a.asset_id,
                goal_id=a.goal_id,
                percentage=Decimal(str(a.percentage)),
                target_amount=Decimal(str(a.target_amount or 0)),
            )
            for a in await self.allocation_repository.list_for_asset(asset_id)
        ]

    @staticmethod
    def qualifies(snapshot: List[AllocationSnapshot]) -> bool:
        return len(snapshot) == 1 and snapshot[0].percentage >= Decimal("1") - ALLOCATION_EPSILON

    async def adjust(
        self,
        snapshot: List[AllocationSnapshot],
        pre_balance: Decimal,
        deposit: Decimal,
        occurred_at: datetime
    ) -> Optional[AutoAllocationResult]:
        """
        Apply the balance-tracking target after a deposit

        Args:
            snapshot: Allocations as they were before the deposit
            pre_balance: Asset balance before the deposit
            deposit: Deposit amount (asset currency)
            occurred_at: Transaction time, used for the history entry

        Returns:
            AutoAllocationResult when the target moved, else None
        """
        if not self.qualifies(snapshot):
            return None

        sole = snapshot[0]
        new_target = max(Decimal("0"), Decimal(str(pre_balance)) + Decimal(str(deposit)))
        if abs(new_target - sole.target_amount) <= ALLOCATION_EPSILON:
            return None

        allocation = await self.session.get(AllocationModel, sole.allocation_id)
        if allocation is None:
            logger.warning(f"Allocation {sole.allocation_id} vanished before auto-adjustment")
            return None

        allocation.target_amount = new_target
        allocation.updated_at = utc_now_naive()
        self.allocation_repository.add_history(sole.asset_id, sole.goal_id, new_target, occurred_at)
        await self.session.flush()

        logger.info(
            f"Allocation {sole.allocation_id} target {sole.target_amount} → {new_target} "
            f"(asset {sole.asset_id}, goal {sole.goal_id})"
        )
        return AutoAllocationResult(
            allocation_id=sole.allocation_id,
            goal_id=sole.goal_id,
            previous_target=sole.target_amount,
            new_target=new_target,
        )
