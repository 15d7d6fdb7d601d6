"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple


# Single tolerance for "active" weights and "fully allocated" checks
ALLOCATION_EPSILON = Decimal("0.0000001")

# Stored precision of allocation percentages
PERCENTAGE_QUANTUM = Decimal("0.0000000001")


class ContributionSource(str, Enum):
    """Origin of a contribution record"""
    MANUAL_DEPOSIT = "manual_deposit"


class ExecutionStatus(str, Enum):
    """Lifecycle of a monthly execution record"""
    DRAFT = "draft"
    EXECUTING = "executing"
    CLOSED = "closed"


class RequirementStatus(str, Enum):
    """How demanding a goal's monthly requirement is"""
    COMPLETED = "completed"
    ON_TRACK = "on_track"
    ATTENTION = "attention"
    CRITICAL = "critical"


@dataclass(frozen=True)
class PlanTarget:
    """Monthly target baseline for one goal - Immutable"""
    goal_id: int
    month_label: str
    currency: str
    required_monthly: Decimal
    remaining_amount: Decimal
    months_remaining: int
    status: RequirementStatus

    def __post_init__(self):
        if self.required_monthly < Decimal("0"):
            raise ValueError("Required monthly amount cannot be negative")
        if self.months_remaining < 1:
            raise ValueError("Months remaining must be at least 1")


@dataclass(frozen=True)
class ContributionLine:
    """One fan-out result line - Immutable"""
    contribution_id: int
    goal_id: int
    monthly_plan_id: int
    amount: Decimal
    asset_amount: Decimal
    currency_code: str
    asset_currency: str
    exchange_rate: Decimal


@dataclass(frozen=True)
class FanOutResult:
    """Outcome of fanning one transaction out into contributions"""
    transaction_id: int
    asset_id: int
    month_label: Optional[str] = None
    execution_record_id: Optional[int] = None
    contributions: Tuple[ContributionLine, ...] = ()
    skipped_goal_ids: Tuple[int, ...] = ()
    already_reconciled: bool = False

    @property
    def affected_goal_ids(self) -> List[int]:
        return [line.goal_id for line in self.contributions]

    @property
    def total_asset_amount(self) -> Decimal:
        return sum((line.asset_amount for line in self.contributions), Decimal("0"))


@dataclass(frozen=True)
class AutoAllocationResult:
    """Target change applied by the auto-allocation adjuster"""
    allocation_id: int
    goal_id: int
    previous_target: Decimal
    new_target: Decimal


@dataclass(frozen=True)
class DepositReceipt:
    """Everything a deposit reconciliation produced"""
    transaction_id: int
    asset_id: int
    amount: Decimal
    fan_out: FanOutResult
    auto_allocation: Optional[AutoAllocationResult] = None

    @property
    def affected_goal_ids(self) -> List[int]:
        goal_ids = list(self.fan_out.affected_goal_ids)
        if self.auto_allocation and self.auto_allocation.goal_id not in goal_ids:
            goal_ids.append(self.auto_allocation.goal_id)
        return goal_ids


@dataclass(frozen=True)
class RefreshSignal:
    """Fire-and-forget notification for UI refresh / reminder scheduling"""
    asset_id: Optional[int] = None
    goal_id: Optional[int] = None
    goal_ids: Tuple[int, ...] = field(default_factory=tuple)
    removed: bool = False
