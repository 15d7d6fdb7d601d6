from decimal import Decimal

import pytest

from savings_tracker.config import Settings
from savings_tracker.domain.models import RateUnavailable
from savings_tracker.infrastructure.exchange_rates.coingecko_gateway import CoinGeckoRateGateway
from savings_tracker.infrastructure.exchange_rates.gateway_factory import build_rate_gateway
from savings_tracker.infrastructure.exchange_rates.static_gateway import StaticRateGateway, parse_rate_table


async def test_coingecko_direct_rate(monkeypatch):
    gateway = CoinGeckoRateGateway(api_key="demo")
    calls = []

    async def fake_request_json(url, params=None):
        calls.append(params)
        return {"bitcoin": {"usd": 50000.5}}

    monkeypatch.setattr(gateway, "_request_json", fake_request_json)

    rate = await gateway.fetch_rate("btc", "usd")
    assert rate == Decimal("50000.5")
    assert calls == [{"ids": "bitcoin", "vs_currencies": "usd"}]


async def test_coingecko_fiat_pair_uses_tether_cross_rate(monkeypatch):
    gateway = CoinGeckoRateGateway()

    async def fake_request_json(url, params=None):
        assert params["ids"] == "tether"
        return {"tether": {"eur": 0.9, "usd": 1.0}}

    monkeypatch.setattr(gateway, "_request_json", fake_request_json)

    rate = await gateway.fetch_rate("EUR", "USD")
    assert rate == Decimal("1.0") / Decimal("0.9")


async def test_coingecko_falls_back_to_cross_rate(monkeypatch):
    gateway = CoinGeckoRateGateway()

    async def fake_request_json(url, params=None):
        if params["ids"] == "bitcoin":
            return {"bitcoin": {}}
        return {"tether": {"btc": 0.00002, "chf": 0.8}}

    monkeypatch.setattr(gateway, "_request_json", fake_request_json)

    rate = await gateway.fetch_rate("BTC", "CHF")
    assert rate == Decimal("0.8") / Decimal("0.00002")


async def test_coingecko_failure_raises_rate_unavailable(monkeypatch):
    gateway = CoinGeckoRateGateway()

    async def fake_request_json(url, params=None):
        return None

    monkeypatch.setattr(gateway, "_request_json", fake_request_json)

    with pytest.raises(RateUnavailable) as exc_info:
        await gateway.fetch_rate("ETH", "EUR")
    assert exc_info.value.from_currency == "ETH"
    assert exc_info.value.to_currency == "EUR"


async def test_coingecko_caches_successful_rates(monkeypatch):
    gateway = CoinGeckoRateGateway(cache_ttl_seconds=60)
    calls = []

    async def fake_request_json(url, params=None):
        calls.append(params)
        return {"ethereum": {"usd": 3000}}

    monkeypatch.setattr(gateway, "_request_json", fake_request_json)

    assert await gateway.fetch_rate("ETH", "USD") == Decimal("3000")
    assert await gateway.fetch_rate("ETH", "USD") == Decimal("3000")
    assert len(calls) == 1


async def test_same_currency_is_identity_without_request(monkeypatch):
    gateway = CoinGeckoRateGateway()

    async def fail(url, params=None):
        raise AssertionError("no request expected")

    monkeypatch.setattr(gateway, "_request_json", fail)
    assert await gateway.fetch_rate("usd", "USD") == Decimal("1")


def test_parse_rate_table_skips_malformed_entries():
    rates = parse_rate_table("BTC:USD=50000, EUR:USD=1.08, broken, X:Y=abc, Z:W=-1")
    assert rates == {("BTC", "USD"): Decimal("50000"), ("EUR", "USD"): Decimal("1.08")}


async def test_static_gateway_direct_and_inverse():
    gateway = StaticRateGateway.from_string("USD:EUR=0.8")
    assert await gateway.fetch_rate("USD", "EUR") == Decimal("0.8")
    assert await gateway.fetch_rate("EUR", "USD") == Decimal("1.25")
    with pytest.raises(RateUnavailable):
        await gateway.fetch_rate("BTC", "USD")


def test_factory_builds_configured_provider():
    coingecko = build_rate_gateway(Settings(EXCHANGE_RATE_PROVIDER="coingecko", COINGECKO_API_KEY="k"))
    assert isinstance(coingecko, CoinGeckoRateGateway)
    assert coingecko.api_key == "k"

    static = build_rate_gateway(Settings(EXCHANGE_RATE_PROVIDER="static", STATIC_EXCHANGE_RATES="BTC:USD=1"))
    assert isinstance(static, StaticRateGateway)

    with pytest.raises(ValueError):
        build_rate_gateway(Settings(EXCHANGE_RATE_PROVIDER="unknown"))
