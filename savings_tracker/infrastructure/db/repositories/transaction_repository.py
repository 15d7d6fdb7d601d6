"""
Transaction Repository
Insert-only access to asset deposits
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from savings_tracker.infrastructure.db.models import TransactionModel


class TransactionRepository:
    """Repository for Transaction data access"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        asset_id: int,
        amount: Decimal,
        occurred_at: datetime,
        comment: Optional[str] = None
    ) -> TransactionModel:
        """
        Record a deposit

        Args:
            asset_id: Owning asset
            amount: Deposit amount in asset currency (> 0)
            occurred_at: Naive UTC timestamp of the deposit
            comment: Optional free text

        Returns:
            Created TransactionModel (flushed, id assigned)
        """
        model = TransactionModel(
            asset_id=asset_id,
            amount=amount,
            occurred_at=occurred_at,
            comment=comment
        )

        self.session.add(model)
        await self.session.flush()

        return model

    async def get(self, transaction_id: int) -> Optional[TransactionModel]:
        return await self.session.get(TransactionModel, transaction_id)

    async def list_for_asset(self, asset_id: int) -> List[TransactionModel]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(TransactionModel.asset_id == asset_id)
            .order_by(TransactionModel.occurred_at, TransactionModel.id)
        )
        return list(result.scalars().all())

    async def get_balance(self, asset_id: int) -> Decimal:
        """
        Running balance of an asset (sum of its deposits)

        Returns:
            Balance in asset currency, 0 when the asset has no transactions
        """
        result = await self.session.execute(
            select(func.coalesce(func.sum(TransactionModel.amount), 0))
            .where(TransactionModel.asset_id == asset_id)
        )
        value = result.scalar_one()
        return Decimal(str(value)) if value is not None else Decimal("0")
