"""
Monthly Execution Record Repository
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from savings_tracker.infrastructure.db.models import MonthlyExecutionRecordModel


class ExecutionRecordRepository:
    """Repository for MonthlyExecutionRecord data access"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_month(self, month_label: str) -> Optional[MonthlyExecutionRecordModel]:
        result = await self.session.execute(
            select(MonthlyExecutionRecordModel).where(
                MonthlyExecutionRecordModel.month_label == month_label
            )
        )
        return result.scalar_one_or_none()

    def add(self, record: MonthlyExecutionRecordModel) -> None:
        self.session.add(record)
