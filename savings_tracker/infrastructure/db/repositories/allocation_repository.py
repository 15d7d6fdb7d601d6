"""
Allocation Repository
Data access for asset → goal weights and their history
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from savings_tracker.infrastructure.db.models import AllocationModel, AllocationHistoryModel
from savings_tracker.utils.time import month_label


class AllocationRepository:
    """Repository for Allocation data access"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_asset(self, asset_id: int) -> List[AllocationModel]:
        """All allocations of an asset, largest weight first"""
        result = await self.session.execute(
            select(AllocationModel)
            .where(AllocationModel.asset_id == asset_id)
            .order_by(AllocationModel.percentage.desc(), AllocationModel.id)
        )
        return list(result.scalars().all())

    async def list_for_goal(self, goal_id: int) -> List[AllocationModel]:
        result = await self.session.execute(
            select(AllocationModel)
            .where(AllocationModel.goal_id == goal_id)
            .order_by(AllocationModel.id)
        )
        return list(result.scalars().all())

    def add(self, allocation: AllocationModel) -> None:
        self.session.add(allocation)

    async def delete(self, allocation: AllocationModel) -> None:
        await self.session.delete(allocation)

    def add_history(
        self,
        asset_id: int,
        goal_id: int,
        target_amount: Decimal,
        recorded_at: datetime
    ) -> AllocationHistoryModel:
        history = AllocationHistoryModel(
            asset_id=asset_id,
            goal_id=goal_id,
            target_amount=target_amount,
            month_label=month_label(recorded_at),
            recorded_at=recorded_at
        )
        self.session.add(history)
        return history

    async def list_history(self, asset_id: int, goal_id: Optional[int] = None) -> List[AllocationHistoryModel]:
        query = select(AllocationHistoryModel).where(AllocationHistoryModel.asset_id == asset_id)
        if goal_id is not None:
            query = query.where(AllocationHistoryModel.goal_id == goal_id)
        result = await self.session.execute(
            query.order_by(AllocationHistoryModel.recorded_at, AllocationHistoryModel.id)
        )
        return list(result.scalars().all())
