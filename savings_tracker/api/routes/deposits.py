"""
Deposit API Routes
Record a deposit on an asset and fan it out to goals
"""

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from savings_tracker.infrastructure.db.database import get_db
from savings_tracker.infrastructure.db.repositories.asset_repository import AssetRepository
from savings_tracker.infrastructure.db.repositories.transaction_repository import TransactionRepository
from savings_tracker.domain.models import PersistenceError
from savings_tracker.domain.services.reconciliation_service import DepositReconciliationService
from savings_tracker.events import EventBus
from savings_tracker.api.dependencies import get_event_bus, get_rate_gateway

router = APIRouter()


class DepositRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Amount in asset currency")
    occurred_at: Optional[datetime] = Field(None, description="Deposit time (default: now, UTC)")
    comment: Optional[str] = Field(None, max_length=1000)


class ContributionResponse(BaseModel):
    contribution_id: int
    goal_id: int
    monthly_plan_id: int
    amount: float
    asset_amount: float
    currency: str
    exchange_rate: float


class DepositResponse(BaseModel):
    transaction_id: int
    asset_id: int
    amount: float
    month: Optional[str] = None
    already_reconciled: bool = False
    contributions: List[ContributionResponse] = []
    distributed_amount: float = 0.0
    skipped_goal_ids: List[int] = []
    auto_allocation_target: Optional[float] = None


class TransactionResponse(BaseModel):
    id: int
    amount: float
    occurred_at: datetime
    comment: Optional[str] = None


def _fan_out_response(transaction_id: int, asset_id: int, amount, fan_out, auto_allocation=None) -> DepositResponse:
    return DepositResponse(
        transaction_id=transaction_id,
        asset_id=asset_id,
        amount=float(amount),
        month=fan_out.month_label,
        already_reconciled=fan_out.already_reconciled,
        contributions=[
            ContributionResponse(
                contribution_id=line.contribution_id,
                goal_id=line.goal_id,
                monthly_plan_id=line.monthly_plan_id,
                amount=float(line.amount),
                asset_amount=float(line.asset_amount),
                currency=line.currency_code,
                exchange_rate=float(line.exchange_rate),
            )
            for line in fan_out.contributions
        ],
        distributed_amount=float(fan_out.total_asset_amount),
        skipped_goal_ids=list(fan_out.skipped_goal_ids),
        auto_allocation_target=float(auto_allocation.new_target) if auto_allocation else None,
    )


@router.post("/assets/{asset_id}/deposits", response_model=DepositResponse, status_code=201)
async def record_deposit(
    asset_id: int,
    request: DepositRequest,
    db: AsyncSession = Depends(get_db),
    rate_gateway=Depends(get_rate_gateway),
    event_bus: EventBus = Depends(get_event_bus),
):
    if not await AssetRepository(db).get(asset_id):
        raise HTTPException(status_code=404, detail=f"Asset {asset_id} not found")

    service = DepositReconciliationService(db, rate_gateway, event_bus)
    try:
        receipt = await service.record_deposit(
            asset_id=asset_id,
            amount=request.amount,
            occurred_at=request.occurred_at,
            comment=request.comment,
        )
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _fan_out_response(
        receipt.transaction_id, receipt.asset_id, receipt.amount, receipt.fan_out, receipt.auto_allocation
    )


@router.get("/assets/{asset_id}/deposits", response_model=List[TransactionResponse])
async def list_deposits(asset_id: int, db: AsyncSession = Depends(get_db)):
    if not await AssetRepository(db).get(asset_id):
        raise HTTPException(status_code=404, detail=f"Asset {asset_id} not found")
    transactions = await TransactionRepository(db).list_for_asset(asset_id)
    return [
        TransactionResponse(id=t.id, amount=float(t.amount), occurred_at=t.occurred_at, comment=t.comment)
        for t in transactions
    ]


@router.post("/transactions/{transaction_id}/reconcile", response_model=DepositResponse)
async def reconcile_transaction(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    rate_gateway=Depends(get_rate_gateway),
    event_bus: EventBus = Depends(get_event_bus),
):
    transaction = await TransactionRepository(db).get(transaction_id)
    if not transaction:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")

    service = DepositReconciliationService(db, rate_gateway, event_bus)
    try:
        fan_out = await service.reconcile_transaction(transaction_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _fan_out_response(transaction.id, transaction.asset_id, transaction.amount, fan_out)
