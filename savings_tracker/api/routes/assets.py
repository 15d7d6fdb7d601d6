"""
Asset API Routes
Holdings, their balance and their allocation sets

Allocation percentages are fractions in [0, 1]; an asset's set may not
sum above 100%.
"""

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Dict, List, Optional

from savings_tracker.infrastructure.db.database import get_db
from savings_tracker.infrastructure.db.repositories.asset_repository import AssetRepository
from savings_tracker.infrastructure.db.repositories.transaction_repository import TransactionRepository
from savings_tracker.domain.models import InvalidAllocation, PersistenceError, RefreshSignal
from savings_tracker.domain.services.allocation_table import AllocationTable
from savings_tracker.events import ASSET_UPDATED, EventBus
from savings_tracker.api.dependencies import get_event_bus

router = APIRouter()

# -------------------------------------------------------------------
# Request / Response models
# -------------------------------------------------------------------

class CreateAssetRequest(BaseModel):
    currency: str = Field(..., min_length=1, max_length=16, description="Asset currency code, e.g. BTC")
    name: Optional[str] = Field(None, max_length=200)


class AllocationResponse(BaseModel):
    goal_id: int
    percentage: float
    target_amount: float


class AssetResponse(BaseModel):
    id: int
    currency: str
    name: Optional[str] = None
    balance: float
    allocations: List[AllocationResponse] = []
    allocated_percentage: float


class SetAllocationsRequest(BaseModel):
    """Full replacement set: {goal_id: fraction}"""
    allocations: Dict[int, Decimal] = Field(default_factory=dict)


class DistributeRequest(BaseModel):
    goal_ids: List[int] = Field(default_factory=list)


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

async def _asset_or_404(db: AsyncSession, asset_id: int):
    asset = await AssetRepository(db).get(asset_id)
    if not asset:
        raise HTTPException(status_code=404, detail=f"Asset {asset_id} not found")
    return asset


async def _asset_response(db: AsyncSession, asset) -> AssetResponse:
    balance = await TransactionRepository(db).get_balance(asset.id)
    allocations = await AllocationTable(db).allocations_for(asset.id)
    return AssetResponse(
        id=asset.id,
        currency=asset.currency,
        name=asset.name,
        balance=float(balance),
        allocations=[
            AllocationResponse(
                goal_id=a.goal_id,
                percentage=float(a.percentage),
                target_amount=float(a.target_amount or 0),
            )
            for a in allocations
        ],
        allocated_percentage=float(sum((Decimal(str(a.percentage)) for a in allocations), Decimal("0"))),
    )


def _allocation_error(exc: Exception) -> HTTPException:
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


# -------------------------------------------------------------------
# Assets
# -------------------------------------------------------------------

@router.post("", response_model=AssetResponse, status_code=201)
async def create_asset(request: CreateAssetRequest, db: AsyncSession = Depends(get_db)):
    try:
        asset = await AssetRepository(db).create(currency=request.currency, name=request.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    await db.commit()
    return await _asset_response(db, asset)


@router.get("/{asset_id}", response_model=AssetResponse)
async def get_asset(asset_id: int, db: AsyncSession = Depends(get_db)):
    asset = await _asset_or_404(db, asset_id)
    return await _asset_response(db, asset)


@router.delete("/{asset_id}", status_code=204)
async def delete_asset(
    asset_id: int,
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
):
    asset = await _asset_or_404(db, asset_id)
    await AssetRepository(db).delete(asset)
    await db.commit()
    await event_bus.publish(ASSET_UPDATED, RefreshSignal(asset_id=asset_id, removed=True))


# -------------------------------------------------------------------
# Allocations
# -------------------------------------------------------------------

@router.put("/{asset_id}/allocations", response_model=AssetResponse)
async def set_allocations(
    asset_id: int,
    request: SetAllocationsRequest,
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
):
    asset = await _asset_or_404(db, asset_id)
    try:
        await AllocationTable(db, event_bus).set_allocations(asset_id, request.allocations)
    except (InvalidAllocation, ValueError, PersistenceError) as e:
        raise _allocation_error(e)
    return await _asset_response(db, asset)


@router.post("/{asset_id}/allocations/distribute", response_model=AssetResponse)
async def distribute_allocations(
    asset_id: int,
    request: DistributeRequest,
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
):
    asset = await _asset_or_404(db, asset_id)
    try:
        await AllocationTable(db, event_bus).distribute_evenly(asset_id, request.goal_ids)
    except (InvalidAllocation, ValueError, PersistenceError) as e:
        raise _allocation_error(e)
    return await _asset_response(db, asset)


@router.post("/{asset_id}/allocations/normalize", response_model=AssetResponse)
async def normalize_allocations(
    asset_id: int,
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
):
    asset = await _asset_or_404(db, asset_id)
    try:
        await AllocationTable(db, event_bus).normalize_allocations(asset_id)
    except (InvalidAllocation, ValueError, PersistenceError) as e:
        raise _allocation_error(e)
    return await _asset_response(db, asset)


@router.delete("/{asset_id}/allocations", response_model=AssetResponse)
async def clear_allocations(
    asset_id: int,
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
):
    asset = await _asset_or_404(db, asset_id)
    try:
        await AllocationTable(db, event_bus).clear_allocations(asset_id)
    except PersistenceError as e:
        raise _allocation_error(e)
    return await _asset_response(db, asset)
