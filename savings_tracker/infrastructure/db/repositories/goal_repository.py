"""
Goal Repository
CRUD operations for savings goals
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from savings_tracker.infrastructure.db.models import GoalModel


class GoalRepository:
    """Repository for Goal data access"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def create(
        self,
        name: str,
        currency: str,
        target_amount: Decimal,
        deadline: date
    ) -> GoalModel:
        """
        Create new goal

        Args:
            name: Display name
            currency: Goal currency code (e.g. "USD")
            target_amount: Amount to save, in goal currency
            deadline: Date the target should be reached by

        Returns:
            Created GoalModel (flushed, id assigned)
        """
        if not name:
            raise ValueError("Goal name cannot be empty")
        if target_amount <= Decimal("0"):
            raise ValueError("Goal target amount must be positive")

        model = GoalModel(
            name=name,
            currency=currency.upper(),
            target_amount=target_amount,
            deadline=deadline
        )

        self.session.add(model)
        await self.session.flush()

        return model

    async def get(self, goal_id: int) -> Optional[GoalModel]:
        return await self.session.get(GoalModel, goal_id)

    async def get_many(self, goal_ids: Iterable[int]) -> List[GoalModel]:
        ids = list(goal_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(GoalModel).where(GoalModel.id.in_(ids)).order_by(GoalModel.id)
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[GoalModel]:
        result = await self.session.execute(select(GoalModel).order_by(GoalModel.id))
        return list(result.scalars().all())

    async def delete(self, goal: GoalModel) -> None:
        """Delete a goal; allocations and plans go with it (DB cascade)"""
        await self.session.delete(goal)
        await self.session.flush()
