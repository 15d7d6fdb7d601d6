"""
MONTHLY PLAN REGISTRY
Idempotent (goal, month) → MonthlyPlan

Lookup first; insert inside a SAVEPOINT guarded by uq_monthly_plan_goal_month.
A concurrent writer that wins the insert is re-read, never duplicated.
"""

import asyncio
import logging
from typing import Dict, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from savings_tracker.domain.services.plan_target_calculator import PlanTargetCalculator
from savings_tracker.infrastructure.db.models import GoalModel, MonthlyPlanModel
from savings_tracker.infrastructure.db.repositories.monthly_plan_repository import MonthlyPlanRepository
from savings_tracker.utils.time import parse_month_label

logger = logging.getLogger(__name__)


class MonthlyPlanRegistry:
    """Get-or-create for monthly plans; calls on one registry are serialized"""

    def __init__(self, session: AsyncSession, calculator: PlanTargetCalculator = None):
        self.session = session
        self.plan_repository = MonthlyPlanRepository(session)
        self.calculator = calculator or PlanTargetCalculator(self.plan_repository)
        self._lock = asyncio.Lock()

    async def get_or_create(self, goal: GoalModel, month_label: str) -> MonthlyPlanModel:
        parse_month_label(month_label)
        async with self._lock:
            return await self._get_or_create(goal, month_label)

    async def get_or_create_many(self, goals: Iterable[GoalModel], month_label: str) -> Dict[int, MonthlyPlanModel]:
        """
        Resolve plans for several goals in one batch

        Returns:
            {goal_id: MonthlyPlanModel}
        """
        parse_month_label(month_label)
        unique_goals: Dict[int, GoalModel] = {}
        for goal in goals:
            unique_goals.setdefault(goal.id, goal)

        async with self._lock:
            existing = await self.plan_repository.list_for_goals_month(unique_goals.keys(), month_label)
            plans = {plan.goal_id: plan for plan in existing}
            for goal_id, goal in unique_goals.items():
                if goal_id not in plans:
                    plans[goal_id] = await self._get_or_create(goal, month_label)
            return plans

    async def _get_or_create(self, goal: GoalModel, month_label: str) -> MonthlyPlanModel:
        plan = await self.plan_repository.get_for_goal_month(goal.id, month_label)
        if plan is not None:
            return plan

        target = await self.calculator.calculate(goal, month_label)
        plan = MonthlyPlanModel(
            goal_id=goal.id,
            month_label=month_label,
            required_monthly=target.required_monthly,
            remaining_amount=target.remaining_amount,
            months_remaining=target.months_remaining,
            currency=target.currency,
            status=target.status,
            total_contributed=0,
        )

        try:
            async with self.session.begin_nested():
                self.plan_repository.add(plan)
        except IntegrityError:
            logger.info(f"Monthly plan {goal.id}/{month_label} created concurrently, re-reading")
            winner = await self.plan_repository.get_for_goal_month(goal.id, month_label)
            if winner is None:
                raise
            return winner

        logger.debug(f"Created monthly plan {plan.id} for goal {goal.id} ({month_label})")
        return plan
