"""
Monthly Planning Service
Month-level entry point over the plan registry
"""

from typing import Dict, Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession

from savings_tracker.domain.services.monthly_plan_registry import MonthlyPlanRegistry
from savings_tracker.infrastructure.db.models import GoalModel, MonthlyPlanModel
from savings_tracker.infrastructure.db.repositories.monthly_plan_repository import MonthlyPlanRepository
from savings_tracker.utils.time import current_month_label, parse_month_label


class MonthlyPlanningService:
    def __init__(self, session: AsyncSession, registry: MonthlyPlanRegistry = None):
        self.session = session
        self.registry = registry or MonthlyPlanRegistry(session)
        self.plan_repository = MonthlyPlanRepository(session)

    async def get_or_create_plans_for_current_month(self, goals: Iterable[GoalModel]) -> Dict[int, MonthlyPlanModel]:
        return await self.get_or_create_plans_for_month(goals, current_month_label())

    async def get_or_create_plans_for_month(
        self,
        goals: Iterable[GoalModel],
        month_label: str
    ) -> Dict[int, MonthlyPlanModel]:
        return await self.registry.get_or_create_many(goals, month_label)

    async def plans_for_month(self, month_label: str) -> List[MonthlyPlanModel]:
        parse_month_label(month_label)
        return await self.plan_repository.list_for_month(month_label)
