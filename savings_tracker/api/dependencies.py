"""
Shared FastAPI dependencies
Runtime collaborators live on app.state, set up by the lifespan
"""

from fastapi import HTTPException, Request

from savings_tracker.events import EventBus
from savings_tracker.infrastructure.exchange_rates.types import ExchangeRateGateway


def get_rate_gateway(request: Request) -> ExchangeRateGateway:
    gateway = getattr(request.app.state, "rate_gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Exchange rate gateway not initialized")
    return gateway


def get_event_bus(request: Request) -> EventBus:
    bus = getattr(request.app.state, "event_bus", None)
    if bus is None:
        bus = EventBus()
        request.app.state.event_bus = bus
    return bus
