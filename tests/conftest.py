from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Dict, Iterable, Tuple

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from savings_tracker.domain.models import RateUnavailable
from savings_tracker.events import EventBus
from savings_tracker.infrastructure.db.database import Base, create_engine_for, create_session_factory, get_db
from savings_tracker.infrastructure.db import models  # noqa: F401
from savings_tracker.infrastructure.db.repositories.asset_repository import AssetRepository
from savings_tracker.infrastructure.db.repositories.goal_repository import GoalRepository
from savings_tracker.api.routes import health, goals, assets, deposits, plans


class FakeRateGateway:
    """In-memory gateway; pairs listed in `failing` raise, unknown pairs raise"""

    def __init__(self, rates: Dict[Tuple[str, str], Decimal] = None, failing: Iterable[Tuple[str, str]] = ()):
        self.rates = dict(rates or {})
        self.failing = set(failing)
        self.calls = []

    async def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        pair = (from_currency.upper(), to_currency.upper())
        self.calls.append(pair)
        if pair[0] == pair[1]:
            return Decimal("1")
        if pair in self.failing or pair not in self.rates:
            raise RateUnavailable(pair[0], pair[1], "test gateway")
        return self.rates[pair]


@pytest.fixture()
async def db_engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def rate_gateway() -> FakeRateGateway:
    return FakeRateGateway({("BTC", "USD"): Decimal("50000"), ("USD", "EUR"): Decimal("0.9")})


@pytest.fixture()
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def make_goal(db_session):
    async def _make(name="Goal", currency="USD", target_amount="1000", deadline=date(2026, 12, 31)):
        goal = await GoalRepository(db_session).create(
            name=name,
            currency=currency,
            target_amount=Decimal(target_amount),
            deadline=deadline,
        )
        await db_session.commit()
        return goal
    return _make


@pytest.fixture()
def make_asset(db_session):
    async def _make(currency="USD", name=None):
        asset = await AssetRepository(db_session).create(currency=currency, name=name)
        await db_session.commit()
        return asset
    return _make


@pytest.fixture()
async def app(db_session, rate_gateway, event_bus) -> FastAPI:
    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(goals.router, prefix="/api/v1/goals", tags=["Goals"])
    app.include_router(assets.router, prefix="/api/v1/assets", tags=["Assets & Allocations"])
    app.include_router(deposits.router, prefix="/api/v1", tags=["Deposits"])
    app.include_router(plans.router, prefix="/api/v1/plans", tags=["Monthly Plans"])

    async def override_get_db():
        try:
            yield db_session
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.rate_gateway = rate_gateway
    app.state.event_bus = event_bus

    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
