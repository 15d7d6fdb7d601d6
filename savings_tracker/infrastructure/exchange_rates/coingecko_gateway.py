"""
CoinGecko exchange rate gateway
Async httpx client for crypto / fiat conversion rates
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple

import httpx

from savings_tracker.domain.models import RateUnavailable

logger = logging.getLogger(__name__)


class CoinGeckoRateGateway:
    """
    CoinGecko /simple/price adapter

    Direct pricing is tried first; fiat/fiat pairs and pairs CoinGecko cannot
    price directly are crossed through USDT. Successful rates are cached for
    cache_ttl_seconds. No retries: a failed lookup raises RateUnavailable.
    """

    CRYPTO_IDS = {
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "USDT": "tether",
        "BNB": "binancecoin",
        "SOL": "solana",
        "USDC": "usd-coin",
        "XRP": "ripple",
        "ADA": "cardano",
        "DOGE": "dogecoin",
        "TRX": "tron",
        "AVAX": "avalanche-2",
        "DOT": "polkadot",
        "MATIC": "matic-network",
        "LINK": "chainlink",
        "SHIB": "shiba-inu",
        "LTC": "litecoin",
        "BCH": "bitcoin-cash",
        "ALGO": "algorand",
        "XLM": "stellar",
        "UNI": "uniswap",
    }

    FIAT_CURRENCIES = {"USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "CNY", "INR", "KRW"}

    CROSS_CURRENCY = "USDT"

    def __init__(
        self,
        api_base_url: str = "https://api.coingecko.com/api/v3",
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        cache_ttl_seconds: int = 300
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.api_key = (api_key or "").strip() or None
        self.timeout_seconds = timeout_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self._cache: Dict[Tuple[str, str], Tuple[float, Decimal]] = {}

    def _cache_get(self, key: Tuple[str, str]) -> Optional[Decimal]:
        cached = self._cache.get(key)
        if not cached:
            return None
        ts, value = cached
        if time.time() - ts > self.cache_ttl_seconds:
            return None
        return value

    def _cache_set(self, key: Tuple[str, str], value: Decimal) -> None:
        self._cache[key] = (time.time(), value)

    async def _request_json(self, url: str, params: Optional[dict] = None) -> Optional[dict]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url, headers=headers, params=params)
                if response.status_code != 200:
                    logger.debug(f"CoinGecko API {response.status_code}: {response.text}")
                    return None
                return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug(f"CoinGecko API request failed: {exc}")
            return None

    def _coin_id(self, symbol: str) -> str:
        return self.CRYPTO_IDS.get(symbol, symbol.lower())

    @staticmethod
    def _to_decimal(value) -> Optional[Decimal]:
        if value is None:
            return None
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            return None
        return result if result > 0 else None

    async def _fetch_direct_rate(self, src: str, dst: str) -> Optional[Decimal]:
        coin_id = self._coin_id(src)
        data = await self._request_json(
            f"{self.api_base_url}/simple/price",
            params={"ids": coin_id, "vs_currencies": dst.lower()},
        )
        if not data:
            return None
        return self._to_decimal((data.get(coin_id) or {}).get(dst.lower()))

    async def _fetch_cross_rate(self, src: str, dst: str) -> Optional[Decimal]:
        # 1 USDT = from_rate SRC and 1 USDT = to_rate DST, so 1 SRC = to_rate / from_rate DST
        via_id = self._coin_id(self.CROSS_CURRENCY)
        data = await self._request_json(
            f"{self.api_base_url}/simple/price",
            params={"ids": via_id, "vs_currencies": f"{src.lower()},{dst.lower()}"},
        )
        if not data:
            return None
        quotes = data.get(via_id) or {}
        from_rate = self._to_decimal(quotes.get(src.lower()))
        to_rate = self._to_decimal(quotes.get(dst.lower()))
        if from_rate is None or to_rate is None:
            return None
        return to_rate / from_rate

    async def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        src = from_currency.upper()
        dst = to_currency.upper()
        if src == dst:
            return Decimal("1")

        cached = self._cache_get((src, dst))
        if cached is not None:
            return cached

        if src in self.FIAT_CURRENCIES and dst in self.FIAT_CURRENCIES:
            rate = await self._fetch_cross_rate(src, dst)
        else:
            rate = await self._fetch_direct_rate(src, dst)
            if rate is None:
                logger.debug(f"Direct rate {src}→{dst} missing, trying {self.CROSS_CURRENCY} cross rate")
                rate = await self._fetch_cross_rate(src, dst)

        if rate is None:
            raise RateUnavailable(src, dst, "CoinGecko returned no usable quote")

        self._cache_set((src, dst), rate)
        return rate
