"""
Asset Repository
CRUD operations for holdings
"""

from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from savings_tracker.infrastructure.db.models import AssetModel


class AssetRepository:
    """Repository for Asset data access"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, currency: str, name: Optional[str] = None) -> AssetModel:
        if not currency:
            raise ValueError("Asset currency cannot be empty")

        model = AssetModel(currency=currency.upper(), name=name)
        self.session.add(model)
        await self.session.flush()
        return model

    async def get(self, asset_id: int) -> Optional[AssetModel]:
        return await self.session.get(AssetModel, asset_id)

    async def delete(self, asset: AssetModel) -> None:
        """Delete an asset; transactions and allocations go with it (DB cascade)"""
        await self.session.delete(asset)
        await self.session.flush()
