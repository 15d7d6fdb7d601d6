"""
CONTRIBUTION FAN-OUT ENGINE
One deposit transaction → per-goal contributions

RULES:
- Only active allocations (weight > epsilon, goal still present) receive a share
- Asset portion = amount × percentage; non-positive portions are skipped
- Cross-currency shares use a rate fetched for this run (never cached here)
- A missing rate skips that allocation only
- At most one contribution per (transaction, plan); a re-run fills only the gaps
- The shares of one transaction never add up to more than its amount
- NO COMMIT: the caller owns the unit of work
"""

import asyncio
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from savings_tracker.domain.models import (
    ALLOCATION_EPSILON,
    ContributionLine,
    ContributionSource,
    FanOutResult,
    RateUnavailable,
)
from savings_tracker.domain.services.allocation_table import AllocationTable
from savings_tracker.domain.services.execution_record_tracker import ExecutionRecordTracker
from savings_tracker.domain.services.monthly_plan_registry import MonthlyPlanRegistry
from savings_tracker.infrastructure.db.models import ContributionModel, TransactionModel
from savings_tracker.infrastructure.db.repositories.asset_repository import AssetRepository
from savings_tracker.infrastructure.db.repositories.contribution_repository import ContributionRepository
from savings_tracker.infrastructure.exchange_rates.types import ExchangeRateGateway
from savings_tracker.utils.time import month_label, utc_now_naive

logger = logging.getLogger(__name__)


class ContributionFanOutEngine:
    """
    Contribution Fan-Out Engine
    Splits a deposit across the asset's allocations for the deposit's month
    """

    def __init__(
        self,
        session: AsyncSession,
        rate_gateway: ExchangeRateGateway,
        registry: Optional[MonthlyPlanRegistry] = None,
        tracker: Optional[ExecutionRecordTracker] = None,
        allocation_table: Optional[AllocationTable] = None
    ):
        self.session = session
        self.rate_gateway = rate_gateway
        self.registry = registry or MonthlyPlanRegistry(session)
        self.tracker = tracker or ExecutionRecordTracker(session)
        self.allocation_table = allocation_table or AllocationTable(session)
        self.asset_repository = AssetRepository(session)
        self.contribution_repository = ContributionRepository(session)

    async def fan_out(self, transaction: TransactionModel) -> FanOutResult:
        """
        Create the contributions a transaction is still missing

        Plans that already hold a contribution for this transaction are left
        alone, so a run after a rate outage only creates the skipped shares.

        Args:
            transaction: Persisted (flushed) deposit

        Returns:
            FanOutResult with created lines and skipped goal ids;
            already_reconciled is set when nothing was left to create
        """
        label = month_label(transaction.occurred_at)

        asset = await self.asset_repository.get(transaction.asset_id)
        if asset is None:
            raise ValueError(f"Asset {transaction.asset_id} not found")

        existing = await self.contribution_repository.list_for_transaction(transaction.id)
        done_plan_ids = {contribution.monthly_plan_id for contribution in existing}

        active = await self.allocation_table.active_allocations(asset.id)
        if not active:
            if existing:
                logger.info(f"Transaction {transaction.id} already reconciled")
            else:
                logger.debug(f"Asset {asset.id} has no active allocations, nothing to fan out")
            return FanOutResult(
                transaction_id=transaction.id,
                asset_id=asset.id,
                month_label=label,
                already_reconciled=bool(existing),
            )

        goals = [goal for _, goal in active]
        plans = await self.registry.get_or_create_many(goals, label)

        pending = [(allocation, goal) for allocation, goal in active if plans[goal.id].id not in done_plan_ids]
        if not pending:
            logger.info(f"Transaction {transaction.id} already reconciled")
            return FanOutResult(
                transaction_id=transaction.id,
                asset_id=asset.id,
                month_label=label,
                already_reconciled=True,
            )

        record = await self.tracker.get_or_create(label, plans.values())

        asset_currency = asset.currency.upper()
        rates = await self._fetch_rates(
            asset_currency,
            {goal.currency.upper() for _, goal in pending if goal.currency.upper() != asset_currency}
        )

        amount = Decimal(str(transaction.amount))
        remaining = amount - sum(
            (Decimal(str(contribution.asset_amount)) for contribution in existing), Decimal("0")
        )
        now = utc_now_naive()
        created: List[tuple] = []
        skipped: List[int] = []

        for allocation, goal in pending:
            portion = amount * Decimal(str(allocation.percentage))
            if portion <= Decimal("0"):
                continue

            if portion > remaining + ALLOCATION_EPSILON:
                logger.warning(
                    f"Transaction {transaction.id}: share {portion} for goal {goal.id} "
                    f"exceeds the undistributed {remaining}, skipping"
                )
                skipped.append(goal.id)
                continue

            goal_currency = goal.currency.upper()
            if goal_currency == asset_currency:
                rate = Decimal("1")
            else:
                rate = rates.get(goal_currency)
                if rate is None:
                    skipped.append(goal.id)
                    continue

            goal_amount = portion * rate
            plan = plans[goal.id]

            contribution = ContributionModel(
                monthly_plan_id=plan.id,
                execution_record_id=record.id,
                transaction_id=transaction.id,
                asset_id=asset.id,
                amount=goal_amount,
                asset_amount=portion,
                currency_code=goal_currency,
                asset_currency=asset_currency,
                exchange_rate=rate,
                source=ContributionSource.MANUAL_DEPOSIT,
                month_label=label,
                notes=transaction.comment,
                is_planned=True,
                occurred_at=transaction.occurred_at,
                created_at=now,
            )
            self.contribution_repository.add(contribution)

            plan.total_contributed = Decimal(str(plan.total_contributed or 0)) + goal_amount
            plan.updated_at = now
            remaining -= portion
            created.append((contribution, goal.id))

        await self.session.flush()

        lines = tuple(
            ContributionLine(
                contribution_id=contribution.id,
                goal_id=goal_id,
                monthly_plan_id=contribution.monthly_plan_id,
                amount=contribution.amount,
                asset_amount=contribution.asset_amount,
                currency_code=contribution.currency_code,
                asset_currency=contribution.asset_currency,
                exchange_rate=contribution.exchange_rate,
            )
            for contribution, goal_id in created
        )

        if skipped:
            logger.warning(f"Transaction {transaction.id}: skipped goals {skipped}")
        logger.info(f"Transaction {transaction.id} fanned out into {len(lines)} contribution(s) for {label}")

        return FanOutResult(
            transaction_id=transaction.id,
            asset_id=asset.id,
            month_label=label,
            execution_record_id=record.id,
            contributions=lines,
            skipped_goal_ids=tuple(skipped),
        )

    async def _fetch_rates(self, asset_currency: str, goal_currencies: Iterable[str]) -> Dict[str, Decimal]:
        """Fetch every needed rate concurrently; failed pairs are left out"""
        currencies = sorted(goal_currencies)
        if not currencies:
            return {}

        results = await asyncio.gather(
            *(self.rate_gateway.fetch_rate(asset_currency, currency) for currency in currencies),
            return_exceptions=True
        )

        rates: Dict[str, Decimal] = {}
        for currency, result in zip(currencies, results):
            if isinstance(result, RateUnavailable):
                logger.error(f"Rate {asset_currency}→{currency} unavailable: {result}")
                continue
            if isinstance(result, Exception):
                logger.error(f"Rate {asset_currency}→{currency} lookup failed: {result!r}")
                continue
            rate = Decimal(str(result))
            if rate <= Decimal("0"):
                logger.error(f"Rate {asset_currency}→{currency} is not positive: {rate}")
                continue
            rates[currency] = rate
        return rates
