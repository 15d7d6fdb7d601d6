"""
Monthly Plan API Routes

Month Selection Rules:
- If `month` (YYYY-MM) is provided → that month is used
- If `month` is omitted → current UTC month
"""

from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from datetime import datetime
from typing import Dict, List, Optional

from savings_tracker.infrastructure.db.database import get_db
from savings_tracker.infrastructure.db.repositories.goal_repository import GoalRepository
from savings_tracker.domain.services.execution_record_tracker import ExecutionRecordTracker
from savings_tracker.domain.services.monthly_planning_service import MonthlyPlanningService
from savings_tracker.utils.time import current_month_label, parse_month_label

router = APIRouter()


class PlanContributionResponse(BaseModel):
    id: int
    amount: float
    asset_amount: float
    asset_currency: str
    exchange_rate: float
    transaction_id: Optional[int] = None
    occurred_at: datetime


class PlanResponse(BaseModel):
    id: int
    goal_id: int
    month: str
    currency: str
    required_monthly: float
    remaining_amount: float
    months_remaining: int
    status: str
    total_contributed: float
    contributions: List[PlanContributionResponse] = []


class MonthPlansResponse(BaseModel):
    month: str
    execution_status: Optional[str] = None
    tracked_goal_ids: List[int] = []
    plans: List[PlanResponse] = []


class ExecutionResponse(BaseModel):
    month: str
    status: str
    tracked_goal_ids: List[int] = []
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    undo_until: Optional[datetime] = None
    contribution_totals: Dict[int, float] = {}
    fulfillment: Dict[int, bool] = {}
    progress_percent: float = 0.0


def resolve_month(month: Optional[str]) -> str:
    if not month:
        return current_month_label()
    try:
        parse_month_label(month)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid month format. Use YYYY-MM")
    return month


def _plan_response(plan) -> PlanResponse:
    return PlanResponse(
        id=plan.id,
        goal_id=plan.goal_id,
        month=plan.month_label,
        currency=plan.currency,
        required_monthly=float(plan.required_monthly),
        remaining_amount=float(plan.remaining_amount),
        months_remaining=plan.months_remaining,
        status=plan.status.value,
        total_contributed=float(plan.total_contributed or 0),
        contributions=[
            PlanContributionResponse(
                id=c.id,
                amount=float(c.amount),
                asset_amount=float(c.asset_amount),
                asset_currency=c.asset_currency,
                exchange_rate=float(c.exchange_rate),
                transaction_id=c.transaction_id,
                occurred_at=c.occurred_at,
            )
            for c in plan.contributions
        ],
    )


@router.get("", response_model=MonthPlansResponse)
async def get_month_plans(
    month: Optional[str] = Query(None, description="Month in YYYY-MM format (default: current month)"),
    db: AsyncSession = Depends(get_db),
):
    label = resolve_month(month)
    plans = await MonthlyPlanningService(db).plans_for_month(label)
    record = await ExecutionRecordTracker(db).get(label)
    return MonthPlansResponse(
        month=label,
        execution_status=record.status.value if record else None,
        tracked_goal_ids=list(record.tracked_goal_ids or []) if record else [],
        plans=[_plan_response(plan) for plan in plans],
    )


@router.post("", response_model=MonthPlansResponse)
async def create_month_plans(
    month: Optional[str] = Query(None, description="Month in YYYY-MM format (default: current month)"),
    db: AsyncSession = Depends(get_db),
):
    """Seed plans for every goal for the month (idempotent)"""
    label = resolve_month(month)
    goals = await GoalRepository(db).list_all()
    service = MonthlyPlanningService(db)
    await service.get_or_create_plans_for_month(goals, label)
    await db.commit()
    plans = await service.plans_for_month(label)
    record = await ExecutionRecordTracker(db).get(label)
    return MonthPlansResponse(
        month=label,
        execution_status=record.status.value if record else None,
        tracked_goal_ids=list(record.tracked_goal_ids or []) if record else [],
        plans=[_plan_response(plan) for plan in plans],
    )


# -------------------------------------------------------------------
# Execution tracking
# -------------------------------------------------------------------

async def _execution_response(tracker: ExecutionRecordTracker, record) -> ExecutionResponse:
    totals = await tracker.contribution_totals(record)
    return ExecutionResponse(
        month=record.month_label,
        status=record.status.value,
        tracked_goal_ids=list(record.tracked_goal_ids or []),
        started_at=record.started_at,
        completed_at=record.completed_at,
        undo_until=record.undo_until,
        contribution_totals={goal_id: float(total) for goal_id, total in totals.items()},
        fulfillment=await tracker.fulfillment_status(record),
        progress_percent=float(await tracker.calculate_progress(record)),
    )


async def _record_or_404(tracker: ExecutionRecordTracker, label: str):
    record = await tracker.get(label)
    if not record:
        raise HTTPException(status_code=404, detail=f"No execution record for {label}")
    return record


@router.get("/execution", response_model=ExecutionResponse)
async def get_execution(
    month: Optional[str] = Query(None, description="Month in YYYY-MM format (default: current month)"),
    db: AsyncSession = Depends(get_db),
):
    label = resolve_month(month)
    tracker = ExecutionRecordTracker(db)
    record = await _record_or_404(tracker, label)
    return await _execution_response(tracker, record)


@router.post("/execution/{action}", response_model=ExecutionResponse)
async def change_execution(
    action: str,
    month: Optional[str] = Query(None, description="Month in YYYY-MM format (default: current month)"),
    db: AsyncSession = Depends(get_db),
):
    """Lifecycle transition: complete / undo-complete / undo-start"""
    label = resolve_month(month)
    tracker = ExecutionRecordTracker(db)
    transitions = {
        "complete": tracker.mark_complete,
        "undo-complete": tracker.undo_completion,
        "undo-start": tracker.undo_start_tracking,
    }
    if action not in transitions:
        raise HTTPException(status_code=404, detail=f"Unknown execution action: {action}")

    await _record_or_404(tracker, label)
    try:
        record = await transitions[action](label)
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    await db.commit()
    return await _execution_response(tracker, record)
