"""
EXECUTION RECORD TRACKER
Idempotent month → MonthlyExecutionRecord, and the record's lifecycle

LIFECYCLE:
- New records start EXECUTING; a DRAFT record is reopened by the next deposit
- EXECUTING → CLOSED (mark_complete)
- CLOSED → EXECUTING (undo_completion) and EXECUTING → DRAFT (undo_start_tracking)
  are only allowed until `undo_until`, set on every start or completion;
  undoing a completion restores the start window
- Tracked goal ids only grow

PROGRESS:
- Contribution totals are summed per goal from the record's contributions
- A tracked goal is fulfilled when its total reaches the plan's required monthly
- Progress = contributed / planned × 100 over the tracked plans (0 when nothing is planned)
"""

import asyncio
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from savings_tracker.config import settings
from savings_tracker.domain.models import ExecutionStatus
from savings_tracker.infrastructure.db.models import MonthlyExecutionRecordModel, MonthlyPlanModel
from savings_tracker.infrastructure.db.repositories.contribution_repository import ContributionRepository
from savings_tracker.infrastructure.db.repositories.execution_record_repository import ExecutionRecordRepository
from savings_tracker.infrastructure.db.repositories.monthly_plan_repository import MonthlyPlanRepository
from savings_tracker.utils.time import parse_month_label, utc_now_naive

logger = logging.getLogger(__name__)


class ExecutionRecordTracker:
    """Get-or-create, lifecycle transitions and progress for monthly execution records"""

    def __init__(self, session: AsyncSession, undo_grace: Optional[timedelta] = None):
        self.session = session
        self.repository = ExecutionRecordRepository(session)
        self.plan_repository = MonthlyPlanRepository(session)
        self.contribution_repository = ContributionRepository(session)
        self.undo_grace = undo_grace if undo_grace is not None else timedelta(
            hours=settings.EXECUTION_UNDO_GRACE_HOURS
        )
        self._lock = asyncio.Lock()

    async def get(self, month_label: str) -> Optional[MonthlyExecutionRecordModel]:
        return await self.repository.get_for_month(month_label)

    async def get_or_create(
        self,
        month_label: str,
        plans: Iterable[MonthlyPlanModel] = ()
    ) -> MonthlyExecutionRecordModel:
        """
        Record for a month, tracking the goals of the given plans

        Args:
            month_label: "YYYY-MM"
            plans: Plans the record must cover

        Returns:
            MonthlyExecutionRecordModel (flushed, id assigned)
        """
        parse_month_label(month_label)
        goal_ids = [plan.goal_id for plan in plans]

        async with self._lock:
            record = await self.repository.get_for_month(month_label)
            if record is None:
                record = await self._create(month_label, goal_ids)
            elif record.status == ExecutionStatus.DRAFT:
                self._start(record, utc_now_naive())
                logger.info(f"Execution record {record.id} ({month_label}) reopened")
            self._track(record, goal_ids)
            await self.session.flush()
            return record

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def mark_complete(
        self,
        month_label: str,
        now: Optional[datetime] = None
    ) -> MonthlyExecutionRecordModel:
        """
        Close an executing month

        Raises:
            ValueError: no record for the month, or the record is not executing
        """
        now = now or utc_now_naive()
        async with self._lock:
            record = await self._require(month_label)
            if record.status != ExecutionStatus.EXECUTING:
                raise ValueError(f"Execution record {month_label} is {record.status.value}, not executing")

            record.status = ExecutionStatus.CLOSED
            record.completed_at = now
            record.undo_until = now + self.undo_grace
            await self.session.flush()

        logger.info(f"Execution record {record.id} ({month_label}) closed")
        return record

    async def undo_completion(
        self,
        month_label: str,
        now: Optional[datetime] = None
    ) -> MonthlyExecutionRecordModel:
        """
        Reopen a closed month within the grace period

        Raises:
            ValueError: no record, record not closed, or grace period over
        """
        now = now or utc_now_naive()
        async with self._lock:
            record = await self._require(month_label)
            if record.status != ExecutionStatus.CLOSED:
                raise ValueError(f"Execution record {month_label} is {record.status.value}, not closed")
            self._check_undo_window(record, now)

            record.status = ExecutionStatus.EXECUTING
            record.completed_at = None
            record.undo_until = record.started_at + self.undo_grace if record.started_at else None
            await self.session.flush()

        logger.info(f"Execution record {record.id} ({month_label}) completion undone")
        return record

    async def undo_start_tracking(
        self,
        month_label: str,
        now: Optional[datetime] = None
    ) -> MonthlyExecutionRecordModel:
        """
        Return an executing month to draft within the grace period

        Raises:
            ValueError: no record, record not executing, or grace period over
        """
        now = now or utc_now_naive()
        async with self._lock:
            record = await self._require(month_label)
            if record.status != ExecutionStatus.EXECUTING:
                raise ValueError(f"Execution record {month_label} is {record.status.value}, not executing")
            self._check_undo_window(record, now)

            record.status = ExecutionStatus.DRAFT
            record.started_at = None
            record.undo_until = None
            await self.session.flush()

        logger.info(f"Execution record {record.id} ({month_label}) back to draft")
        return record

    # ------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------

    async def contribution_totals(self, record: MonthlyExecutionRecordModel) -> Dict[int, Decimal]:
        """Sum of contribution amounts per goal, in goal currency"""
        totals: Dict[int, Decimal] = {}
        for contribution in await self.contribution_repository.list_for_execution_record(record.id):
            goal_id = contribution.monthly_plan.goal_id
            totals[goal_id] = totals.get(goal_id, Decimal("0")) + Decimal(str(contribution.amount))
        return totals

    async def fulfillment_status(self, record: MonthlyExecutionRecordModel) -> Dict[int, bool]:
        """Tracked goal → required monthly reached; goals without a plan are left out"""
        totals = await self.contribution_totals(record)
        plans = await self._tracked_plans(record)
        return {
            goal_id: totals.get(goal_id, Decimal("0")) >= Decimal(str(plan.required_monthly))
            for goal_id, plan in plans.items()
        }

    async def calculate_progress(self, record: MonthlyExecutionRecordModel) -> Decimal:
        """Percent of the tracked plans' required monthly already contributed"""
        totals = await self.contribution_totals(record)
        plans = await self._tracked_plans(record)

        planned = sum((Decimal(str(plan.required_monthly)) for plan in plans.values()), Decimal("0"))
        if planned <= Decimal("0"):
            return Decimal("0")
        contributed = sum((totals.get(goal_id, Decimal("0")) for goal_id in plans), Decimal("0"))
        return contributed / planned * Decimal("100")

    # ------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------

    async def _create(self, month_label: str, goal_ids: list) -> MonthlyExecutionRecordModel:
        now = utc_now_naive()
        record = MonthlyExecutionRecordModel(
            month_label=month_label,
            tracked_goal_ids=list(dict.fromkeys(goal_ids)),
            created_at=now,
        )
        self._start(record, now)
        try:
            async with self.session.begin_nested():
                self.repository.add(record)
        except IntegrityError:
            logger.info(f"Execution record {month_label} created concurrently, re-reading")
            winner = await self.repository.get_for_month(month_label)
            if winner is None:
                raise
            return winner

        logger.info(f"Started execution record {record.id} for {month_label}")
        return record

    async def _require(self, month_label: str) -> MonthlyExecutionRecordModel:
        parse_month_label(month_label)
        record = await self.repository.get_for_month(month_label)
        if record is None:
            raise ValueError(f"No execution record for {month_label}")
        return record

    async def _tracked_plans(self, record: MonthlyExecutionRecordModel) -> Dict[int, MonthlyPlanModel]:
        plans = await self.plan_repository.list_for_goals_month(record.tracked_goal_ids or [], record.month_label)
        return {plan.goal_id: plan for plan in plans}

    def _start(self, record: MonthlyExecutionRecordModel, now: datetime) -> None:
        record.status = ExecutionStatus.EXECUTING
        record.started_at = now
        record.undo_until = now + self.undo_grace

    @staticmethod
    def _check_undo_window(record: MonthlyExecutionRecordModel, now: datetime) -> None:
        if record.undo_until is None or now > record.undo_until:
            raise ValueError(f"Undo period for execution record {record.month_label} has expired")

    @staticmethod
    def _track(record: MonthlyExecutionRecordModel, goal_ids: list) -> None:
        tracked = list(record.tracked_goal_ids or [])
        missing = [goal_id for goal_id in dict.fromkeys(goal_ids) if goal_id not in tracked]
        if missing:
            # JSON column: assign a new list so the change is detected
            record.tracked_goal_ids = tracked + missing
