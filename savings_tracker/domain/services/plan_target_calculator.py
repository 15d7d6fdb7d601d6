"""
PLAN TARGET CALCULATOR
Derive a goal's monthly target baseline

RULES:
- remaining = max(0, goal target - contributed in months before the plan month)
- months remaining = max(1, months from plan month to deadline month)
- required monthly = remaining / months remaining
- Status from configurable thresholds (goal currency units)
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from savings_tracker.config import settings
from savings_tracker.domain.models import PlanTarget, RequirementStatus
from savings_tracker.infrastructure.db.models import GoalModel
from savings_tracker.infrastructure.db.repositories.monthly_plan_repository import MonthlyPlanRepository
from savings_tracker.utils.time import months_between, parse_month_label

AMOUNT_QUANTUM = Decimal("0.0000000001")


class PlanTargetCalculator:
    """
    Plan Target Calculator
    Seeds new monthly plans; existing plans are never recalculated here
    """

    def __init__(
        self,
        plan_repository: MonthlyPlanRepository,
        attention_threshold: Optional[Decimal] = None,
        critical_threshold: Optional[Decimal] = None
    ):
        self.plan_repository = plan_repository
        self.attention_threshold = Decimal(str(
            settings.PLAN_ATTENTION_THRESHOLD if attention_threshold is None else attention_threshold
        ))
        self.critical_threshold = Decimal(str(
            settings.PLAN_CRITICAL_THRESHOLD if critical_threshold is None else critical_threshold
        ))

    async def calculate(self, goal: GoalModel, month_label: str) -> PlanTarget:
        """
        Baseline for (goal, month)

        Args:
            goal: Goal the plan belongs to
            month_label: "YYYY-MM" accounting month

        Returns:
            PlanTarget
        """
        contributed = await self.plan_repository.total_contributed_for_goal(goal.id, before_month=month_label)
        return self.evaluate(
            goal_id=goal.id,
            currency=goal.currency,
            target_amount=Decimal(str(goal.target_amount)),
            contributed=contributed,
            deadline=goal.deadline,
            month_label=month_label,
        )

    def evaluate(
        self,
        goal_id: int,
        currency: str,
        target_amount: Decimal,
        contributed: Decimal,
        deadline: date,
        month_label: str
    ) -> PlanTarget:
        remaining = max(Decimal("0"), target_amount - contributed)
        months_remaining = max(1, months_between(parse_month_label(month_label), deadline))
        required = (remaining / Decimal(months_remaining)).quantize(AMOUNT_QUANTUM)

        return PlanTarget(
            goal_id=goal_id,
            month_label=month_label,
            currency=currency,
            required_monthly=required,
            remaining_amount=remaining,
            months_remaining=months_remaining,
            status=self.status_for(remaining, required, months_remaining),
        )

    def status_for(self, remaining: Decimal, required: Decimal, months_remaining: int) -> RequirementStatus:
        if remaining <= Decimal("0"):
            return RequirementStatus.COMPLETED
        if required > self.critical_threshold:
            return RequirementStatus.CRITICAL
        if required > self.attention_threshold or months_remaining <= 1:
            return RequirementStatus.ATTENTION
        return RequirementStatus.ON_TRACK
