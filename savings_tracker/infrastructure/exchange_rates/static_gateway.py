"""
Static exchange rate table (offline / development provider).
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple

from savings_tracker.domain.models import RateUnavailable

logger = logging.getLogger(__name__)


def parse_rate_table(raw: str) -> Dict[Tuple[str, str], Decimal]:
    """
    Parse "BTC:USD=50000,EUR:USD=1.08" into {("BTC", "USD"): Decimal("50000"), ...}.
    """
    rates: Dict[Tuple[str, str], Decimal] = {}
    for pair in (raw or "").split(","):
        pair = pair.strip()
        if not pair or "=" not in pair:
            continue
        key, value = pair.split("=", 1)
        if ":" not in key:
            logger.warning("Ignoring malformed rate entry '%s'", pair)
            continue
        from_currency, to_currency = (part.strip().upper() for part in key.split(":", 1))
        try:
            rate = Decimal(value.strip())
        except InvalidOperation:
            logger.warning("Ignoring non-numeric rate entry '%s'", pair)
            continue
        if rate > 0 and from_currency and to_currency:
            rates[(from_currency, to_currency)] = rate
    return rates


class StaticRateGateway:
    """Fixed rates; inverse pairs are derived when only one direction is configured"""

    def __init__(self, rates: Optional[Dict[Tuple[str, str], Decimal]] = None):
        self.rates = {
            (f.upper(), t.upper()): Decimal(str(r)) for (f, t), r in (rates or {}).items()
        }

    @classmethod
    def from_string(cls, raw: str) -> "StaticRateGateway":
        return cls(parse_rate_table(raw))

    async def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        src = from_currency.upper()
        dst = to_currency.upper()
        if src == dst:
            return Decimal("1")

        rate = self.rates.get((src, dst))
        if rate is not None:
            return rate

        inverse = self.rates.get((dst, src))
        if inverse is not None and inverse > 0:
            return Decimal("1") / inverse

        raise RateUnavailable(src, dst, "no static rate configured")
