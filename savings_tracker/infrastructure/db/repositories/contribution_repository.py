"""
Contribution Repository
Insert-only access to fan-out results
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from typing import List

from savings_tracker.infrastructure.db.models import ContributionModel


class ContributionRepository:
    """Repository for Contribution data access"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, contribution: ContributionModel) -> None:
        self.session.add(contribution)

    async def list_for_transaction(self, transaction_id: int) -> List[ContributionModel]:
        result = await self.session.execute(
            select(ContributionModel)
            .where(ContributionModel.transaction_id == transaction_id)
            .order_by(ContributionModel.id)
        )
        return list(result.scalars().all())

    async def list_for_execution_record(self, execution_record_id: int) -> List[ContributionModel]:
        result = await self.session.execute(
            select(ContributionModel)
            .options(selectinload(ContributionModel.monthly_plan))
            .where(ContributionModel.execution_record_id == execution_record_id)
            .order_by(ContributionModel.occurred_at, ContributionModel.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
