"""Error taxonomy for the ledger engine.

Exceptions cover conditions the caller must act on (missing rows, invalid
input, insufficient cash). Ledger inconsistencies and upstream data gaps are
returned as value objects so a degraded computation can still complete.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """Base class for ledger engine errors."""


class NotFoundError(LedgerError, LookupError):
    """Portfolio or transaction is missing or not owned by the caller."""


class LedgerValidationError(LedgerError, ValueError):
    """Terminal, user-correctable input or state-transition error."""


@dataclass(frozen=True)
class CashShortfall:
    current_balance: Decimal
    attempted_amount: Decimal
    shortfall: Decimal


class InsufficientCashError(LedgerError):
    """Raised when a manual entry would drive the cash balance negative."""

    code = "INSUFFICIENT_CASH"

    def __init__(self, details: CashShortfall):
        self.details = details
        super().__init__(
            f"Insufficient cash: balance {details.current_balance}, "
            f"attempted {details.attempted_amount}, short by {details.shortfall}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self), **asdict(self.details)}


@dataclass(frozen=True)
class LedgerInconsistency:
    """A sale that exceeded the quantity held at that point of the replay."""

    ticker: str
    date: date
    transaction_id: str | None
    attempted_quantity: Decimal
    available_quantity: Decimal

    @property
    def excess(self) -> Decimal:
        return self.attempted_quantity - self.available_quantity


class LedgerInconsistencyError(LedgerError):
    """Raised by strict replays instead of clamping an oversell."""

    def __init__(self, inconsistency: LedgerInconsistency):
        self.inconsistency = inconsistency
        super().__init__(
            f"Sale of {inconsistency.attempted_quantity} {inconsistency.ticker} on "
            f"{inconsistency.date} exceeds the {inconsistency.available_quantity} held"
        )


@dataclass(frozen=True)
class DataGap:
    """Upstream data missing for a ticker; never fatal."""

    kind: str
    ticker: str
    detail: str = ""


__all__ = [
    "CashShortfall",
    "DataGap",
    "InsufficientCashError",
    "LedgerError",
    "LedgerInconsistency",
    "LedgerInconsistencyError",
    "LedgerValidationError",
    "NotFoundError",
]
