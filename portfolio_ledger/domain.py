"""Typed records shared by the services and the stores."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum


class TransactionType(str, Enum):
    CASH_CREDIT = "CASH_CREDIT"
    CASH_DEBIT = "CASH_DEBIT"
    BUY = "BUY"
    BUY_REBALANCE = "BUY_REBALANCE"
    SELL_REBALANCE = "SELL_REBALANCE"
    SELL_WITHDRAWAL = "SELL_WITHDRAWAL"
    DIVIDEND = "DIVIDEND"
    MONTHLY_CONTRIBUTION = "MONTHLY_CONTRIBUTION"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    EXECUTED = "EXECUTED"
    REJECTED = "REJECTED"


class RebalanceFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def months(self) -> int:
        return {"monthly": 1, "quarterly": 3, "yearly": 12}[self.value]


BUY_TYPES = frozenset({TransactionType.BUY, TransactionType.BUY_REBALANCE})
SELL_TYPES = frozenset({TransactionType.SELL_REBALANCE, TransactionType.SELL_WITHDRAWAL})
TRADE_TYPES = BUY_TYPES | SELL_TYPES
CONTRIBUTION_TYPES = frozenset({TransactionType.CASH_CREDIT, TransactionType.MONTHLY_CONTRIBUTION})
CASH_INFLOW_TYPES = frozenset(
    {
        TransactionType.CASH_CREDIT,
        TransactionType.MONTHLY_CONTRIBUTION,
        TransactionType.DIVIDEND,
        TransactionType.SELL_REBALANCE,
        TransactionType.SELL_WITHDRAWAL,
    }
)
CASH_OUTFLOW_TYPES = frozenset({TransactionType.CASH_DEBIT, TransactionType.BUY, TransactionType.BUY_REBALANCE})
COMMITTED_STATUSES = frozenset({TransactionStatus.CONFIRMED, TransactionStatus.EXECUTED})


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LedgerEntry:
    """One transaction row of a portfolio ledger."""

    portfolio_id: str
    date: date
    type: TransactionType
    amount: Decimal
    ticker: str | None = None
    price: Decimal | None = None
    quantity: Decimal | None = None
    status: TransactionStatus = TransactionStatus.EXECUTED
    is_auto_suggested: bool = False
    notes: str | None = None
    cash_balance_before: Decimal | None = None
    cash_balance_after: Decimal | None = None
    confirmed_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_committed(self) -> bool:
        return self.status in COMMITTED_STATUSES

    @property
    def signed_amount(self) -> Decimal:
        """Cash effect of the entry: positive for inflows, negative for outflows."""

        if self.type in CASH_INFLOW_TYPES:
            return self.amount
        if self.type in CASH_OUTFLOW_TYPES:
            return -self.amount
        return Decimal("0")


@dataclass
class TargetAsset:
    ticker: str
    target_allocation: Decimal
    is_active: bool = True
    added_at: datetime = field(default_factory=utcnow)
    removed_at: datetime | None = None


@dataclass
class PortfolioConfig:
    """Target allocation and contribution plan of a tracked portfolio."""

    owner_id: str
    name: str
    monthly_contribution: Decimal
    rebalance_frequency: RebalanceFrequency = RebalanceFrequency.MONTHLY
    start_date: date | None = None
    description: str | None = None
    tracking_started: bool = False
    is_active: bool = True
    last_transaction_date: date | None = None
    assets: list[TargetAsset] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def active_assets(self) -> list[TargetAsset]:
        return [asset for asset in self.assets if asset.is_active]

    def targets(self) -> dict[str, Decimal]:
        return {asset.ticker: asset.target_allocation for asset in self.active_assets}

    def find_asset(self, ticker: str) -> TargetAsset | None:
        for asset in self.assets:
            if asset.ticker == ticker:
                return asset
        return None


@dataclass(frozen=True)
class DividendEvent:
    ticker: str
    ex_date: date
    payment_date: date
    amount_per_share: Decimal


@dataclass(frozen=True)
class CompanyProfile:
    sector: str | None = None
    industry: str | None = None


def normalize_ticker(ticker: str) -> str:
    normalized = ticker.strip().upper()
    if not normalized:
        raise ValueError("Ticker must not be empty")
    return normalized


__all__ = [
    "BUY_TYPES",
    "CASH_INFLOW_TYPES",
    "CASH_OUTFLOW_TYPES",
    "COMMITTED_STATUSES",
    "CONTRIBUTION_TYPES",
    "CompanyProfile",
    "DividendEvent",
    "LedgerEntry",
    "PortfolioConfig",
    "RebalanceFrequency",
    "SELL_TYPES",
    "TRADE_TYPES",
    "TargetAsset",
    "TransactionStatus",
    "TransactionType",
    "new_id",
    "normalize_ticker",
    "utcnow",
]
