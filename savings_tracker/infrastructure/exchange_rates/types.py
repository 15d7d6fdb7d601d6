"""
Exchange rate gateway protocol for type hints.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol


class ExchangeRateGateway(Protocol):
    async def fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """
        Multiplicative rate converting one unit of from_currency into to_currency.

        Raises:
            RateUnavailable: the pair cannot be priced right now
        """
        ...
