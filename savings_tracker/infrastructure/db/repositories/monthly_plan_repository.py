"""
Monthly Plan Repository
Data access for per (goal, month) plans
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from decimal import Decimal
from typing import Iterable, List, Optional

from savings_tracker.infrastructure.db.models import MonthlyPlanModel


class MonthlyPlanRepository:
    """Repository for MonthlyPlan data access"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_goal_month(self, goal_id: int, month_label: str) -> Optional[MonthlyPlanModel]:
        result = await self.session.execute(
            select(MonthlyPlanModel).where(
                MonthlyPlanModel.goal_id == goal_id,
                MonthlyPlanModel.month_label == month_label
            )
        )
        return result.scalar_one_or_none()

    async def list_for_goals_month(self, goal_ids: Iterable[int], month_label: str) -> List[MonthlyPlanModel]:
        ids = list(goal_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(MonthlyPlanModel).where(
                MonthlyPlanModel.goal_id.in_(ids),
                MonthlyPlanModel.month_label == month_label
            )
        )
        return list(result.scalars().all())

    async def list_for_month(self, month_label: str) -> List[MonthlyPlanModel]:
        """Plans of a month with their contributions loaded"""
        result = await self.session.execute(
            select(MonthlyPlanModel)
            .options(selectinload(MonthlyPlanModel.contributions))
            .where(MonthlyPlanModel.month_label == month_label)
            .order_by(MonthlyPlanModel.goal_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def total_contributed_for_goal(self, goal_id: int, before_month: Optional[str] = None) -> Decimal:
        """
        Sum of plan totals for a goal

        Args:
            goal_id: Goal to sum
            before_month: Only count months strictly before this label

        Returns:
            Total in goal currency
        """
        query = select(func.coalesce(func.sum(MonthlyPlanModel.total_contributed), 0)).where(
            MonthlyPlanModel.goal_id == goal_id
        )
        if before_month is not None:
            query = query.where(MonthlyPlanModel.month_label < before_month)
        result = await self.session.execute(query)
        value = result.scalar_one()
        return Decimal(str(value)) if value is not None else Decimal("0")

    def add(self, plan: MonthlyPlanModel) -> None:
        self.session.add(plan)
