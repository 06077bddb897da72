"""ORM model exports."""

from .market import CompanyProfileRow, DailyQuote, DividendEventRow
from .portfolio import (
    PortfolioConfigAssetRow,
    PortfolioConfigRow,
    PortfolioMetricsRow,
    PortfolioTransactionRow,
    TRANSACTION_STATUSES,
    TRANSACTION_TYPES,
)

__all__ = [
    "CompanyProfileRow",
    "DailyQuote",
    "DividendEventRow",
    "PortfolioConfigAssetRow",
    "PortfolioConfigRow",
    "PortfolioMetricsRow",
    "PortfolioTransactionRow",
    "TRANSACTION_STATUSES",
    "TRANSACTION_TYPES",
]
