"""
Exchange rate gateway factory - pick the provider from settings.
"""

from __future__ import annotations

import logging

from savings_tracker.config import Settings
from savings_tracker.infrastructure.exchange_rates.coingecko_gateway import CoinGeckoRateGateway
from savings_tracker.infrastructure.exchange_rates.static_gateway import StaticRateGateway
from savings_tracker.infrastructure.exchange_rates.types import ExchangeRateGateway

logger = logging.getLogger(__name__)


def build_rate_gateway(config: Settings) -> ExchangeRateGateway:
    provider = (config.EXCHANGE_RATE_PROVIDER or "").strip().lower()

    if provider == "coingecko":
        return CoinGeckoRateGateway(
            api_base_url=config.COINGECKO_API_URL,
            api_key=config.COINGECKO_API_KEY,
            timeout_seconds=config.EXCHANGE_RATE_TIMEOUT_SECONDS,
            cache_ttl_seconds=config.EXCHANGE_RATE_CACHE_TTL_SECONDS,
        )

    if provider == "static":
        gateway = StaticRateGateway.from_string(config.STATIC_EXCHANGE_RATES)
        logger.info(f"Static exchange rates loaded: {len(gateway.rates)} pair(s)")
        return gateway

    raise ValueError(f"Unsupported exchange rate provider: {config.EXCHANGE_RATE_PROVIDER}")
