"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Constants
    ALLOCATION_EPSILON,
    PERCENTAGE_QUANTUM,

    # Enums
    ContributionSource,
    ExecutionStatus,
    RequirementStatus,

    # Entities
    AutoAllocationResult,
    ContributionLine,
    DepositReceipt,
    FanOutResult,
    PlanTarget,
    RefreshSignal,
)
from .exceptions import InvalidAllocation, PersistenceError, RateUnavailable

__all__ = [
    # Constants
    "ALLOCATION_EPSILON",
    "PERCENTAGE_QUANTUM",

    # Enums
    "ContributionSource",
    "ExecutionStatus",
    "RequirementStatus",

    # Entities
    "AutoAllocationResult",
    "ContributionLine",
    "DepositReceipt",
    "FanOutResult",
    "PlanTarget",
    "RefreshSignal",

    # Errors
    "InvalidAllocation",
    "PersistenceError",
    "RateUnavailable",
]
