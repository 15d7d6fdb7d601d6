"""
Goal API Routes
Create, inspect and delete savings goals
"""

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import List

from savings_tracker.infrastructure.db.database import get_db
from savings_tracker.infrastructure.db.repositories.goal_repository import GoalRepository
from savings_tracker.infrastructure.db.repositories.allocation_repository import AllocationRepository
from savings_tracker.events import GOAL_UPDATED, EventBus
from savings_tracker.domain.models import RefreshSignal
from savings_tracker.api.dependencies import get_event_bus

router = APIRouter()


class CreateGoalRequest(BaseModel):
    """Request to create a goal"""
    name: str = Field(..., min_length=1, max_length=200)
    currency: str = Field(..., min_length=1, max_length=16, description="Goal currency code, e.g. USD")
    target_amount: Decimal = Field(..., gt=0)
    deadline: date


class GoalResponse(BaseModel):
    id: int
    name: str
    currency: str
    target_amount: float
    deadline: date
    allocated_asset_ids: List[int] = []


def _to_response(goal, asset_ids: List[int] = None) -> GoalResponse:
    return GoalResponse(
        id=goal.id,
        name=goal.name,
        currency=goal.currency,
        target_amount=float(goal.target_amount),
        deadline=goal.deadline,
        allocated_asset_ids=asset_ids or [],
    )


@router.post("", response_model=GoalResponse, status_code=201)
async def create_goal(request: CreateGoalRequest, db: AsyncSession = Depends(get_db)):
    repo = GoalRepository(db)
    try:
        goal = await repo.create(
            name=request.name,
            currency=request.currency,
            target_amount=request.target_amount,
            deadline=request.deadline,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    await db.commit()
    return _to_response(goal)


@router.get("", response_model=List[GoalResponse])
async def list_goals(db: AsyncSession = Depends(get_db)):
    goals = await GoalRepository(db).list_all()
    return [_to_response(goal) for goal in goals]


@router.get("/{goal_id}", response_model=GoalResponse)
async def get_goal(goal_id: int, db: AsyncSession = Depends(get_db)):
    goal = await GoalRepository(db).get(goal_id)
    if not goal:
        raise HTTPException(status_code=404, detail=f"Goal {goal_id} not found")
    allocations = await AllocationRepository(db).list_for_goal(goal_id)
    return _to_response(goal, [a.asset_id for a in allocations])


@router.delete("/{goal_id}", status_code=204)
async def delete_goal(
    goal_id: int,
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
):
    repo = GoalRepository(db)
    goal = await repo.get(goal_id)
    if not goal:
        raise HTTPException(status_code=404, detail=f"Goal {goal_id} not found")
    await repo.delete(goal)
    await db.commit()
    await event_bus.publish(GOAL_UPDATED, RefreshSignal(goal_id=goal_id, removed=True))
