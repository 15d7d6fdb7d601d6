"""
ALLOCATION TABLE
Asset → goal weights, the only writer of allocations

INVARIANTS:
- Each percentage finite and in [0, 1]
- Sum of an asset's percentages <= 1 + ALLOCATION_EPSILON
- Percentages <= ALLOCATION_EPSILON are removed, not stored
- A rejected set leaves the stored set untouched
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from savings_tracker.domain.models import (
    ALLOCATION_EPSILON,
    PERCENTAGE_QUANTUM,
    InvalidAllocation,
    PersistenceError,
    RefreshSignal,
)
from savings_tracker.events import ASSET_UPDATED, GOAL_UPDATED, EventBus
from savings_tracker.infrastructure.db.models import AllocationModel, GoalModel
from savings_tracker.infrastructure.db.repositories.allocation_repository import AllocationRepository
from savings_tracker.infrastructure.db.repositories.asset_repository import AssetRepository
from savings_tracker.infrastructure.db.repositories.goal_repository import GoalRepository
from savings_tracker.infrastructure.db.repositories.transaction_repository import TransactionRepository
from savings_tracker.utils.time import utc_now_naive

logger = logging.getLogger(__name__)


class AllocationTable:
    """
    Allocation Table
    Validates, persists and announces an asset's allocation set
    """

    def __init__(self, session: AsyncSession, event_bus: Optional[EventBus] = None):
        self.session = session
        self.event_bus = event_bus
        self.allocation_repository = AllocationRepository(session)
        self.asset_repository = AssetRepository(session)
        self.goal_repository = GoalRepository(session)
        self.transaction_repository = TransactionRepository(session)

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    async def allocations_for(self, asset_id: int) -> List[AllocationModel]:
        return await self.allocation_repository.list_for_asset(asset_id)

    async def active_allocations(self, asset_id: int) -> List[Tuple[AllocationModel, GoalModel]]:
        """
        Allocations with a weight above epsilon whose goal still exists

        Returns:
            [(allocation, goal)], largest weight first
        """
        allocations = [
            allocation for allocation in await self.allocation_repository.list_for_asset(asset_id)
            if Decimal(str(allocation.percentage)) > ALLOCATION_EPSILON
        ]
        if not allocations:
            return []

        goals = {
            goal.id: goal
            for goal in await self.goal_repository.get_many(a.goal_id for a in allocations)
        }
        return [(a, goals[a.goal_id]) for a in allocations if a.goal_id in goals]

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    @staticmethod
    def validate(percentages: Dict[int, Decimal]) -> Decimal:
        """
        Check a proposed set without touching storage

        Returns:
            Sum of the percentages

        Raises:
            InvalidAllocation
        """
        total = Decimal("0")
        for goal_id, pct in percentages.items():
            if not pct.is_finite():
                raise InvalidAllocation(f"Allocation for goal {goal_id} is not a finite number: {pct}")
            if pct < Decimal("0"):
                raise InvalidAllocation(f"Allocation for goal {goal_id} is negative: {pct}")
            if pct > Decimal("1"):
                raise InvalidAllocation(f"Allocation for goal {goal_id} exceeds 100%: {pct}")
            total += pct

        if total > Decimal("1") + ALLOCATION_EPSILON:
            raise InvalidAllocation(f"Allocations sum to {total * 100}%, above 100%", total=total)
        return total

    @staticmethod
    def _to_decimal(goal_id, pct) -> Decimal:
        try:
            value = Decimal(str(pct))
        except InvalidOperation as exc:
            raise InvalidAllocation(f"Allocation for goal {goal_id} is not a number: {pct!r}") from exc
        if not value.is_finite():
            raise InvalidAllocation(f"Allocation for goal {goal_id} is not a finite number: {pct}")
        return value

    async def set_allocations(self, asset_id: int, percentages: Dict[int, Decimal]) -> List[AllocationModel]:
        """
        Replace an asset's allocation set in one commit

        Args:
            asset_id: Asset whose set is replaced
            percentages: {goal_id: fraction in [0, 1]}; missing goals are removed

        Returns:
            Stored allocations after the save

        Raises:
            InvalidAllocation: set rejected, nothing written
            ValueError: unknown asset or goal
            PersistenceError: commit failed, nothing written
        """
        proposed = {
            int(goal_id): self._to_decimal(goal_id, pct).quantize(PERCENTAGE_QUANTUM, rounding=ROUND_DOWN)
            for goal_id, pct in percentages.items()
        }
        self.validate(proposed)

        asset = await self.asset_repository.get(asset_id)
        if asset is None:
            raise ValueError(f"Asset {asset_id} not found")

        kept = {goal_id: pct for goal_id, pct in proposed.items() if pct > ALLOCATION_EPSILON}
        known = {goal.id for goal in await self.goal_repository.get_many(kept.keys())}
        unknown = sorted(set(kept) - known)
        if unknown:
            raise ValueError(f"Unknown goal(s): {unknown}")

        try:
            changed_goal_ids = await self._apply(asset_id, kept)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(f"Saving allocations for asset {asset_id} failed: {exc}")
            raise PersistenceError(f"Could not save allocations for asset {asset_id}") from exc

        logger.info(f"Asset {asset_id} allocations saved: {len(kept)} active, {len(changed_goal_ids)} changed")
        await self._announce(asset_id, changed_goal_ids)
        return await self.allocation_repository.list_for_asset(asset_id)

    async def distribute_evenly(self, asset_id: int, goal_ids: Iterable[int]) -> List[AllocationModel]:
        """Equal split; each share is rounded down so the sum never exceeds 100%"""
        unique_ids = list(dict.fromkeys(int(goal_id) for goal_id in goal_ids))
        if not unique_ids:
            return await self.clear_allocations(asset_id)

        share = (Decimal("1") / Decimal(len(unique_ids))).quantize(PERCENTAGE_QUANTUM, rounding=ROUND_DOWN)
        return await self.set_allocations(asset_id, {goal_id: share for goal_id in unique_ids})

    async def clear_allocations(self, asset_id: int) -> List[AllocationModel]:
        return await self.set_allocations(asset_id, {})

    async def normalize_allocations(self, asset_id: int) -> List[AllocationModel]:
        """Rescale active weights so they sum to 100%"""
        active = [
            allocation for allocation in await self.allocation_repository.list_for_asset(asset_id)
            if Decimal(str(allocation.percentage)) > ALLOCATION_EPSILON
        ]
        total = sum((Decimal(str(a.percentage)) for a in active), Decimal("0"))
        if total <= ALLOCATION_EPSILON:
            return await self.allocation_repository.list_for_asset(asset_id)

        return await self.set_allocations(
            asset_id,
            {a.goal_id: Decimal(str(a.percentage)) / total for a in active}
        )

    async def _apply(self, asset_id: int, kept: Dict[int, Decimal]) -> List[int]:
        """Stage the new set; returns goal ids whose weight or target changed"""
        now = utc_now_naive()
        balance = await self.transaction_repository.get_balance(asset_id)
        existing = {a.goal_id: a for a in await self.allocation_repository.list_for_asset(asset_id)}
        changed: List[int] = []

        for goal_id, allocation in existing.items():
            if goal_id in kept:
                continue
            await self.allocation_repository.delete(allocation)
            self.allocation_repository.add_history(asset_id, goal_id, Decimal("0"), now)
            changed.append(goal_id)

        # Removed goals must be gone before re-adding under the unique constraint
        await self.session.flush()

        for goal_id, pct in kept.items():
            target = pct * balance
            allocation = existing.get(goal_id)
            if allocation is None:
                self.allocation_repository.add(AllocationModel(
                    asset_id=asset_id,
                    goal_id=goal_id,
                    percentage=pct,
                    target_amount=target,
                    created_at=now,
                    updated_at=now,
                ))
                self.allocation_repository.add_history(asset_id, goal_id, target, now)
                changed.append(goal_id)
                continue

            previous_pct = Decimal(str(allocation.percentage))
            previous_target = Decimal(str(allocation.target_amount or 0))
            if previous_pct == pct and abs(previous_target - target) <= ALLOCATION_EPSILON:
                continue

            allocation.percentage = pct
            allocation.target_amount = target
            allocation.updated_at = now
            if abs(previous_target - target) > ALLOCATION_EPSILON:
                self.allocation_repository.add_history(asset_id, goal_id, target, now)
            changed.append(goal_id)

        await self.session.flush()
        return changed

    async def _announce(self, asset_id: int, goal_ids: List[int]) -> None:
        if not self.event_bus:
            return
        await self.event_bus.publish(ASSET_UPDATED, RefreshSignal(asset_id=asset_id, goal_ids=tuple(goal_ids)))
        for goal_id in goal_ids:
            await self.event_bus.publish(GOAL_UPDATED, RefreshSignal(asset_id=asset_id, goal_id=goal_id))
