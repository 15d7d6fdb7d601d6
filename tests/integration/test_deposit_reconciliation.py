from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from savings_tracker.domain.models import PersistenceError
from savings_tracker.domain.services.allocation_table import AllocationTable
from savings_tracker.domain.services.reconciliation_service import DepositReconciliationService
from savings_tracker.events import ASSET_UPDATED, GOAL_UPDATED
from savings_tracker.infrastructure.db.models import (
    AllocationModel,
    ContributionModel,
    MonthlyExecutionRecordModel,
    MonthlyPlanModel,
    TransactionModel,
)
from savings_tracker.infrastructure.db.repositories.allocation_repository import AllocationRepository
from savings_tracker.infrastructure.db.repositories.contribution_repository import ContributionRepository
from savings_tracker.infrastructure.db.repositories.transaction_repository import TransactionRepository

MARCH = datetime(2025, 3, 10, 12, 0)


async def _count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.integration
async def test_btc_deposit_converts_into_usd_goal(db_session, make_goal, make_asset, rate_gateway):
    goal = await make_goal("Trip", currency="USD", target_amount="1000")
    asset = await make_asset("BTC")
    await AllocationTable(db_session).set_allocations(asset.id, {goal.id: Decimal("1")})

    service = DepositReconciliationService(db_session, rate_gateway)
    receipt = await service.record_deposit(asset.id, Decimal("0.01"), occurred_at=MARCH, comment="dca")

    fan_out = receipt.fan_out
    assert fan_out.month_label == "2025-03"
    assert len(fan_out.contributions) == 1
    line = fan_out.contributions[0]
    assert line.goal_id == goal.id
    assert line.amount == Decimal("500")
    assert line.asset_amount == Decimal("0.01")
    assert line.exchange_rate == Decimal("50000")
    assert line.currency_code == "USD"
    assert line.asset_currency == "BTC"

    plan = await db_session.get(MonthlyPlanModel, line.monthly_plan_id)
    assert Decimal(str(plan.total_contributed)) == Decimal("500")
    assert plan.month_label == "2025-03"

    contribution = (await ContributionRepository(db_session).list_for_transaction(receipt.transaction_id))[0]
    assert contribution.notes == "dca"
    assert contribution.is_planned is True
    assert contribution.occurred_at == MARCH
    assert contribution.execution_record_id == fan_out.execution_record_id

    assert receipt.auto_allocation is not None
    assert receipt.auto_allocation.new_target == Decimal("0.01")
    allocation = await db_session.get(AllocationModel, receipt.auto_allocation.allocation_id)
    assert Decimal(str(allocation.target_amount)) == Decimal("0.01")

    history = await AllocationRepository(db_session).list_history(asset.id, goal.id)
    adjusted = [h for h in history if h.recorded_at == MARCH]
    assert len(adjusted) == 1
    assert adjusted[0].month_label == "2025-03"
    assert Decimal(str(adjusted[0].target_amount)) == Decimal("0.01")


@pytest.mark.integration
async def test_full_allocation_sums_to_deposit(db_session, make_goal, make_asset, rate_gateway):
    asset = await make_asset("USD")
    goals = [await make_goal(f"G{i}") for i in range(3)]
    weights = [Decimal("0.5"), Decimal("0.3"), Decimal("0.2")]
    await AllocationTable(db_session).set_allocations(asset.id, {g.id: w for g, w in zip(goals, weights)})

    receipt = await DepositReconciliationService(db_session, rate_gateway).record_deposit(
        asset.id, Decimal("10"), occurred_at=MARCH
    )

    amounts = {line.goal_id: line.amount for line in receipt.fan_out.contributions}
    assert amounts == {goals[0].id: Decimal("5"), goals[1].id: Decimal("3"), goals[2].id: Decimal("2")}
    assert sum(amounts.values()) == Decimal("10")
    assert rate_gateway.calls == []


@pytest.mark.integration
async def test_rate_failure_skips_only_that_goal(db_session, make_goal, make_asset, rate_gateway):
    usd_goal = await make_goal("Dollar", currency="USD")
    eur_goal = await make_goal("Euro", currency="EUR")
    asset = await make_asset("BTC")
    await AllocationTable(db_session).set_allocations(
        asset.id, {usd_goal.id: Decimal("0.5"), eur_goal.id: Decimal("0.5")}
    )

    receipt = await DepositReconciliationService(db_session, rate_gateway).record_deposit(
        asset.id, Decimal("0.02"), occurred_at=MARCH
    )

    assert [line.goal_id for line in receipt.fan_out.contributions] == [usd_goal.id]
    assert receipt.fan_out.contributions[0].amount == Decimal("500")
    assert receipt.fan_out.skipped_goal_ids == (eur_goal.id,)
    assert sorted(rate_gateway.calls) == [("BTC", "EUR"), ("BTC", "USD")]
    assert await _count(db_session, TransactionModel) == 1
    assert await _count(db_session, MonthlyPlanModel) == 2


@pytest.mark.integration
async def test_split_allocation_targets_are_left_alone(db_session, make_goal, make_asset, rate_gateway):
    asset = await make_asset("USD")
    g1, g2 = await make_goal("A"), await make_goal("B")
    await TransactionRepository(db_session).create(asset.id, Decimal("100"), datetime(2025, 2, 1))
    await db_session.commit()
    await AllocationTable(db_session).set_allocations(asset.id, {g1.id: Decimal("0.6"), g2.id: Decimal("0.4")})

    receipt = await DepositReconciliationService(db_session, rate_gateway).record_deposit(
        asset.id, Decimal("50"), occurred_at=MARCH
    )

    assert receipt.auto_allocation is None
    targets = {
        a.goal_id: Decimal(str(a.target_amount))
        for a in await AllocationRepository(db_session).list_for_asset(asset.id)
    }
    assert targets == {g1.id: Decimal("60"), g2.id: Decimal("40")}


@pytest.mark.integration
async def test_sole_allocation_target_follows_balance(db_session, make_goal, make_asset, rate_gateway):
    asset = await make_asset("USD")
    goal = await make_goal()
    await AllocationTable(db_session).set_allocations(asset.id, {goal.id: Decimal("1")})
    service = DepositReconciliationService(db_session, rate_gateway)

    first = await service.record_deposit(asset.id, Decimal("100"), occurred_at=datetime(2025, 2, 1))
    assert first.auto_allocation.new_target == Decimal("100")

    second = await service.record_deposit(asset.id, Decimal("50"), occurred_at=MARCH)
    assert second.auto_allocation.previous_target == Decimal("100")
    assert second.auto_allocation.new_target == Decimal("150")

    deposit_times = (datetime(2025, 2, 1), MARCH)
    targets = [
        Decimal(str(h.target_amount))
        for h in await AllocationRepository(db_session).list_history(asset.id)
        if h.recorded_at in deposit_times
    ]
    assert targets == [Decimal("100"), Decimal("150")]


@pytest.mark.integration
async def test_asset_without_allocations_only_records_transaction(db_session, make_asset, rate_gateway):
    asset = await make_asset("USD")

    receipt = await DepositReconciliationService(db_session, rate_gateway).record_deposit(
        asset.id, Decimal("25"), occurred_at=MARCH
    )

    assert receipt.fan_out.contributions == ()
    assert receipt.affected_goal_ids == []
    assert await _count(db_session, TransactionModel) == 1
    assert await _count(db_session, MonthlyPlanModel) == 0
    assert await _count(db_session, MonthlyExecutionRecordModel) == 0


@pytest.mark.integration
async def test_reconcile_transaction_is_idempotent(db_session, make_goal, make_asset, rate_gateway):
    asset = await make_asset("USD")
    goal = await make_goal()
    await AllocationTable(db_session).set_allocations(asset.id, {goal.id: Decimal("1")})
    transaction = await TransactionRepository(db_session).create(asset.id, Decimal("40"), MARCH)
    await db_session.commit()

    service = DepositReconciliationService(db_session, rate_gateway)
    first = await service.reconcile_transaction(transaction.id)
    second = await service.reconcile_transaction(transaction.id)

    assert len(first.contributions) == 1
    assert first.already_reconciled is False
    assert second.already_reconciled is True
    assert second.contributions == ()
    assert await _count(db_session, ContributionModel) == 1

    plan = await db_session.get(MonthlyPlanModel, first.contributions[0].monthly_plan_id)
    assert Decimal(str(plan.total_contributed)) == Decimal("40")


@pytest.mark.integration
async def test_deposits_in_one_month_share_plan_and_record(db_session, make_goal, make_asset, rate_gateway):
    asset = await make_asset("USD")
    goal = await make_goal()
    await AllocationTable(db_session).set_allocations(asset.id, {goal.id: Decimal("1")})
    service = DepositReconciliationService(db_session, rate_gateway)

    a = await service.record_deposit(asset.id, Decimal("10"), occurred_at=datetime(2025, 3, 1))
    b = await service.record_deposit(asset.id, Decimal("15"), occurred_at=datetime(2025, 3, 28))

    assert a.fan_out.contributions[0].monthly_plan_id == b.fan_out.contributions[0].monthly_plan_id
    assert a.fan_out.execution_record_id == b.fan_out.execution_record_id
    plan = await db_session.get(MonthlyPlanModel, a.fan_out.contributions[0].monthly_plan_id)
    assert Decimal(str(plan.total_contributed)) == Decimal("25")


@pytest.mark.integration
async def test_invalid_deposits_are_rejected(db_session, make_asset, rate_gateway):
    asset = await make_asset("USD")
    service = DepositReconciliationService(db_session, rate_gateway)

    with pytest.raises(ValueError):
        await service.record_deposit(asset.id, Decimal("0"))
    with pytest.raises(ValueError):
        await service.record_deposit(asset.id, Decimal("-5"))
    with pytest.raises(ValueError):
        await service.record_deposit(12345, Decimal("5"))
    with pytest.raises(ValueError):
        await service.reconcile_transaction(12345)


@pytest.mark.integration
async def test_commit_failure_rolls_back_everything(
    monkeypatch, session_factory, db_session, make_goal, make_asset, rate_gateway
):
    asset = await make_asset("USD")
    goal = await make_goal()
    await AllocationTable(db_session).set_allocations(asset.id, {goal.id: Decimal("1")})

    async def failing_commit():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db_session, "commit", failing_commit)

    with pytest.raises(PersistenceError):
        await DepositReconciliationService(db_session, rate_gateway).record_deposit(
            asset.id, Decimal("10"), occurred_at=MARCH
        )

    async with session_factory() as fresh:
        assert await _count(fresh, TransactionModel) == 0
        assert await _count(fresh, ContributionModel) == 0
        assert await _count(fresh, MonthlyPlanModel) == 0


@pytest.mark.integration
async def test_refresh_signals_follow_commit(db_session, make_goal, make_asset, rate_gateway, event_bus):
    asset = await make_asset("USD")
    g1, g2 = await make_goal("A"), await make_goal("B")
    await AllocationTable(db_session).set_allocations(asset.id, {g1.id: Decimal("0.5"), g2.id: Decimal("0.5")})
    assets_seen, goals_seen = [], []
    event_bus.subscribe(ASSET_UPDATED, lambda s: assets_seen.append((s.asset_id, s.goal_ids)))

    async def on_goal(signal):
        goals_seen.append(signal.goal_id)

    event_bus.subscribe(GOAL_UPDATED, on_goal)

    await DepositReconciliationService(db_session, rate_gateway, event_bus).record_deposit(
        asset.id, Decimal("8"), occurred_at=MARCH
    )

    assert len(assets_seen) == 1
    assert assets_seen[0][0] == asset.id
    assert set(assets_seen[0][1]) == {g1.id, g2.id}
    assert sorted(goals_seen) == sorted([g1.id, g2.id])


@pytest.mark.integration
async def test_reconcile_after_rate_recovery_fills_only_the_gap(db_session, make_goal, make_asset, rate_gateway):
    usd_goal = await make_goal("Dollar", currency="USD")
    eur_goal = await make_goal("Euro", currency="EUR")
    asset = await make_asset("BTC")
    await AllocationTable(db_session).set_allocations(
        asset.id, {usd_goal.id: Decimal("0.5"), eur_goal.id: Decimal("0.5")}
    )
    service = DepositReconciliationService(db_session, rate_gateway)

    receipt = await service.record_deposit(asset.id, Decimal("0.02"), occurred_at=MARCH)
    assert receipt.fan_out.skipped_goal_ids == (eur_goal.id,)

    rate_gateway.rates[("BTC", "EUR")] = Decimal("45000")
    retry = await service.reconcile_transaction(receipt.transaction_id)

    assert retry.already_reconciled is False
    assert [line.goal_id for line in retry.contributions] == [eur_goal.id]
    assert retry.contributions[0].amount == Decimal("450")
    assert retry.skipped_goal_ids == ()

    again = await service.reconcile_transaction(receipt.transaction_id)
    assert again.already_reconciled is True
    assert again.contributions == ()
    assert await _count(db_session, ContributionModel) == 2

    usd_plan = await db_session.get(MonthlyPlanModel, receipt.fan_out.contributions[0].monthly_plan_id)
    eur_plan = await db_session.get(MonthlyPlanModel, retry.contributions[0].monthly_plan_id)
    assert Decimal(str(usd_plan.total_contributed)) == Decimal("500")
    assert Decimal(str(eur_plan.total_contributed)) == Decimal("450")


@pytest.mark.integration
async def test_reconcile_never_distributes_more_than_the_deposit(db_session, make_goal, make_asset, rate_gateway):
    asset = await make_asset("USD")
    g1, g2 = await make_goal("A"), await make_goal("B")
    table = AllocationTable(db_session)
    await table.set_allocations(asset.id, {g1.id: Decimal("1")})
    service = DepositReconciliationService(db_session, rate_gateway)
    receipt = await service.record_deposit(asset.id, Decimal("10"), occurred_at=MARCH)

    await table.set_allocations(asset.id, {g1.id: Decimal("0.5"), g2.id: Decimal("0.5")})
    retry = await service.reconcile_transaction(receipt.transaction_id)

    assert retry.contributions == ()
    assert retry.skipped_goal_ids == (g2.id,)
    contributions = await ContributionRepository(db_session).list_for_transaction(receipt.transaction_id)
    assert len(contributions) == 1
    assert sum(Decimal(str(c.asset_amount)) for c in contributions) == Decimal("10")
