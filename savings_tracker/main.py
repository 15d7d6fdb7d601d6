"""
FastAPI Main Application
Savings tracker: goals, assets, allocations and deposit reconciliation
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from savings_tracker.config import settings
from savings_tracker.core.logging import setup_logging
from savings_tracker.events import EventBus
from savings_tracker.infrastructure.db.database import init_db, close_db
from savings_tracker.infrastructure.exchange_rates.gateway_factory import build_rate_gateway

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Database, exchange rate gateway and event bus
    """
    logger.info("Starting savings tracker (%s)", settings.APP_ENV)

    await init_db()
    logger.info("Database initialized")

    app.state.rate_gateway = build_rate_gateway(settings)
    app.state.event_bus = EventBus()
    logger.info(f"Exchange rate provider: {settings.EXCHANGE_RATE_PROVIDER}")

    yield

    logger.info("Shutting down savings tracker")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI app
app = FastAPI(
    title="Savings Tracker",
    description="Goal allocations and deposit reconciliation",
    version="1.0.0",
    lifespan=lifespan
)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Savings Tracker",
        "version": "1.0.0",
        "docs": "/docs"
    }


# Import and include routers
from savings_tracker.api.routes import health, goals, assets, deposits, plans  # noqa: E402

app.include_router(health.router, tags=["Health"])
app.include_router(goals.router, prefix="/api/v1/goals", tags=["Goals"])
app.include_router(assets.router, prefix="/api/v1/assets", tags=["Assets & Allocations"])
app.include_router(deposits.router, prefix="/api/v1", tags=["Deposits"])
app.include_router(plans.router, prefix="/api/v1/plans", tags=["Monthly Plans"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "savings_tracker.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
