"""
Domain errors raised by the reconciliation core
"""

from decimal import Decimal


class InvalidAllocation(ValueError):
    """Allocation set rejected before any persistence"""

    def __init__(self, message: str, total: Decimal = None):
        super().__init__(message)
        self.total = total


class RateUnavailable(Exception):
    """Exchange rate could not be obtained for a currency pair"""

    def __init__(self, from_currency: str, to_currency: str, reason: str = ""):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.reason = reason
        message = f"Exchange rate {from_currency} → {to_currency} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PersistenceError(Exception):
    """Underlying store failed; nothing from the unit of work is committed"""
