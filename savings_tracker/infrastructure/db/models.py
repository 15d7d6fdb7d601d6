"""
Database Models (SQLAlchemy ORM)
Contributions and transactions are insert-only - NO UPDATES
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Boolean,
    ForeignKey, Text, Enum as SQLEnum, Index, JSON, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from savings_tracker.infrastructure.db.database import Base
from savings_tracker.domain.models import ContributionSource, ExecutionStatus, RequirementStatus
from savings_tracker.utils.time import utc_now_naive


AMOUNT = Numeric(28, 10)
PERCENTAGE = Numeric(12, 10)


class GoalModel(Base):
    """Savings target"""
    __tablename__ = "goal"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    currency = Column(String(16), nullable=False)
    target_amount = Column(AMOUNT, nullable=False)
    deadline = Column(Date, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    # Relationships
    allocations = relationship(
        "AllocationModel", back_populates="goal",
        cascade="all, delete-orphan", passive_deletes=True
    )
    monthly_plans = relationship(
        "MonthlyPlanModel", back_populates="goal",
        cascade="all, delete-orphan", passive_deletes=True
    )


class AssetModel(Base):
    """Currency-denominated holding"""
    __tablename__ = "asset"

    id = Column(Integer, primary_key=True, autoincrement=True)
    currency = Column(String(16), nullable=False, index=True)
    name = Column(String(200), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    # Relationships
    transactions = relationship(
        "TransactionModel", back_populates="asset",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="TransactionModel.occurred_at"
    )
    allocations = relationship(
        "AllocationModel", back_populates="asset",
        cascade="all, delete-orphan", passive_deletes=True
    )


class AllocationModel(Base):
    """Weighted edge between one asset and one goal"""
    __tablename__ = "allocation"

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_id = Column(Integer, ForeignKey("asset.id", ondelete="CASCADE"), nullable=False)
    goal_id = Column(Integer, ForeignKey("goal.id", ondelete="CASCADE"), nullable=False)

    percentage = Column(PERCENTAGE, nullable=False)
    target_amount = Column(AMOUNT, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive)

    # Relationships
    asset = relationship("AssetModel", back_populates="allocations")
    goal = relationship("GoalModel", back_populates="allocations", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("asset_id", "goal_id", name="uq_allocation_asset_goal"),
        CheckConstraint("percentage >= 0 AND percentage <= 1", name="ck_allocation_percentage"),
    )


class AllocationHistoryModel(Base):
    """Allocation target changes (audit, append-only)"""
    __tablename__ = "allocation_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_id = Column(Integer, ForeignKey("asset.id", ondelete="CASCADE"), nullable=False)
    goal_id = Column(Integer, ForeignKey("goal.id", ondelete="CASCADE"), nullable=False)
    target_amount = Column(AMOUNT, nullable=False)
    month_label = Column(String(7), nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=utc_now_naive)

    __table_args__ = (
        Index("ix_allocation_history_asset_goal", "asset_id", "goal_id", "recorded_at"),
    )


class TransactionModel(Base):
    """Deposit event on an asset - immutable"""
    __tablename__ = "asset_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_id = Column(Integer, ForeignKey("asset.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(AMOUNT, nullable=False)
    occurred_at = Column(DateTime, nullable=False, default=utc_now_naive)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    # Relationships
    asset = relationship("AssetModel", back_populates="transactions")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
    )


class MonthlyPlanModel(Base):
    """Per (goal, month) target and accumulated contributions"""
    __tablename__ = "monthly_plan"

    id = Column(Integer, primary_key=True, autoincrement=True)
    goal_id = Column(Integer, ForeignKey("goal.id", ondelete="CASCADE"), nullable=False)
    month_label = Column(String(7), nullable=False, index=True)

    required_monthly = Column(AMOUNT, nullable=False)
    remaining_amount = Column(AMOUNT, nullable=False)
    months_remaining = Column(Integer, nullable=False)
    currency = Column(String(16), nullable=False)
    status = Column(SQLEnum(RequirementStatus), nullable=False, default=RequirementStatus.ON_TRACK)

    total_contributed = Column(AMOUNT, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive)

    # Relationships
    goal = relationship("GoalModel", back_populates="monthly_plans")
    contributions = relationship(
        "ContributionModel", back_populates="monthly_plan",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="ContributionModel.occurred_at"
    )

    __table_args__ = (
        UniqueConstraint("goal_id", "month_label", name="uq_monthly_plan_goal_month"),
    )


class MonthlyExecutionRecordModel(Base):
    """Per month aggregate of the plans being tracked"""
    __tablename__ = "monthly_execution_record"

    id = Column(Integer, primary_key=True, autoincrement=True)
    month_label = Column(String(7), nullable=False, unique=True, index=True)
    status = Column(SQLEnum(ExecutionStatus), nullable=False, default=ExecutionStatus.DRAFT)
    tracked_goal_ids = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    undo_until = Column(DateTime, nullable=True)


class ContributionModel(Base):
    """Fan-out result for one (transaction, allocation) pair - AUDIT RECORD"""
    __tablename__ = "contribution"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monthly_plan_id = Column(Integer, ForeignKey("monthly_plan.id", ondelete="CASCADE"), nullable=False)
    execution_record_id = Column(
        Integer, ForeignKey("monthly_execution_record.id", ondelete="SET NULL"), nullable=True, index=True
    )
    transaction_id = Column(
        Integer, ForeignKey("asset_transaction.id", ondelete="SET NULL"), nullable=True, index=True
    )
    asset_id = Column(Integer, ForeignKey("asset.id", ondelete="SET NULL"), nullable=True)

    amount = Column(AMOUNT, nullable=False)           # goal currency
    asset_amount = Column(AMOUNT, nullable=False)     # asset currency
    currency_code = Column(String(16), nullable=False)
    asset_currency = Column(String(16), nullable=False)
    exchange_rate = Column(AMOUNT, nullable=False)

    source = Column(SQLEnum(ContributionSource), nullable=False, default=ContributionSource.MANUAL_DEPOSIT)
    month_label = Column(String(7), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    is_planned = Column(Boolean, nullable=False, default=False)

    occurred_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    # Relationships
    monthly_plan = relationship("MonthlyPlanModel", back_populates="contributions")

    __table_args__ = (
        UniqueConstraint("transaction_id", "monthly_plan_id", name="uq_contribution_transaction_plan"),
    )
