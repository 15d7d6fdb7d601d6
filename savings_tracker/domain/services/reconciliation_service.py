"""
SERVICE - DEPOSIT RECONCILIATION

• Records a deposit and fans it out in one unit of work
• Auto-adjusts a sole 100% allocation
• Single commit, rollback on any storage failure
• Refresh signals only after a successful commit
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from savings_tracker.domain.models import DepositReceipt, FanOutResult, PersistenceError, RefreshSignal
from savings_tracker.domain.services.auto_allocation import AutoAllocationAdjuster
from savings_tracker.domain.services.contribution_engine import ContributionFanOutEngine
from savings_tracker.events import ASSET_UPDATED, GOAL_UPDATED, EventBus
from savings_tracker.infrastructure.db.repositories.asset_repository import AssetRepository
from savings_tracker.infrastructure.db.repositories.transaction_repository import TransactionRepository
from savings_tracker.infrastructure.exchange_rates.types import ExchangeRateGateway
from savings_tracker.utils.time import to_utc_naive, utc_now_naive

logger = logging.getLogger(__name__)


class DepositReconciliationService:
    def __init__(
        self,
        session: AsyncSession,
        rate_gateway: ExchangeRateGateway,
        event_bus: Optional[EventBus] = None,
        engine: Optional[ContributionFanOutEngine] = None
    ):
        self.session = session
        self.event_bus = event_bus
        self.engine = engine or ContributionFanOutEngine(session, rate_gateway)
        self.adjuster = AutoAllocationAdjuster(session)
        self.asset_repository = AssetRepository(session)
        self.transaction_repository = TransactionRepository(session)

    async def record_deposit(
        self,
        asset_id: int,
        amount: Decimal,
        occurred_at: Optional[datetime] = None,
        comment: Optional[str] = None
    ) -> DepositReceipt:
        """
        Record and reconcile one deposit

        Args:
            asset_id: Asset receiving the deposit
            amount: Deposit in asset currency (> 0)
            occurred_at: Deposit time (default now, stored as naive UTC)
            comment: Copied onto every contribution as notes

        Returns:
            DepositReceipt

        Raises:
            ValueError: non-positive amount or unknown asset
            PersistenceError: storage failed, nothing committed
        """
        amount = Decimal(str(amount))
        if amount <= Decimal("0"):
            raise ValueError("Deposit amount must be positive")

        asset = await self.asset_repository.get(asset_id)
        if asset is None:
            raise ValueError(f"Asset {asset_id} not found")

        occurred_at = to_utc_naive(occurred_at) if occurred_at else utc_now_naive()

        try:
            pre_balance = await self.transaction_repository.get_balance(asset_id)
            snapshot = await self.adjuster.snapshot(asset_id)

            transaction = await self.transaction_repository.create(
                asset_id=asset_id,
                amount=amount,
                occurred_at=occurred_at,
                comment=comment,
            )
            fan_out = await self.engine.fan_out(transaction)
            auto_allocation = await self.adjuster.adjust(snapshot, pre_balance, amount, occurred_at)

            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(f"Deposit on asset {asset_id} rolled back: {exc}")
            raise PersistenceError(f"Could not record deposit on asset {asset_id}") from exc

        receipt = DepositReceipt(
            transaction_id=transaction.id,
            asset_id=asset_id,
            amount=amount,
            fan_out=fan_out,
            auto_allocation=auto_allocation,
        )
        logger.info(
            f"Deposit {transaction.id} on asset {asset_id}: {len(fan_out.contributions)} contribution(s), "
            f"auto-allocation {'applied' if auto_allocation else 'not applied'}"
        )
        await self._announce(asset_id, receipt.affected_goal_ids)
        return receipt

    async def reconcile_transaction(self, transaction_id: int) -> FanOutResult:
        """
        Fan out an already stored transaction (idempotent)

        Raises:
            ValueError: unknown transaction
            PersistenceError: storage failed, nothing committed
        """
        transaction = await self.transaction_repository.get(transaction_id)
        if transaction is None:
            raise ValueError(f"Transaction {transaction_id} not found")

        try:
            result = await self.engine.fan_out(transaction)
            if not result.already_reconciled:
                await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(f"Reconciliation of transaction {transaction_id} rolled back: {exc}")
            raise PersistenceError(f"Could not reconcile transaction {transaction_id}") from exc

        if not result.already_reconciled:
            await self._announce(result.asset_id, result.affected_goal_ids)
        return result

    async def _announce(self, asset_id: int, goal_ids) -> None:
        if not self.event_bus:
            return
        await self.event_bus.publish(ASSET_UPDATED, RefreshSignal(asset_id=asset_id, goal_ids=tuple(goal_ids)))
        for goal_id in goal_ids:
            await self.event_bus.publish(GOAL_UPDATED, RefreshSignal(asset_id=asset_id, goal_id=goal_id))
