"""Persistence contract consumed by the ledger services."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Protocol

from ..domain import LedgerEntry, PortfolioConfig, TransactionStatus, TransactionType

if TYPE_CHECKING:
    from ..services.metrics import PortfolioMetrics


@dataclass(frozen=True)
class TransactionFilter:
    """Row filter; ``None`` fields match everything, date bounds are inclusive."""

    statuses: frozenset[TransactionStatus] | None = None
    types: frozenset[TransactionType] | None = None
    ticker: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    auto_suggested: bool | None = None

    def matches(self, entry: LedgerEntry) -> bool:
        if self.statuses is not None and entry.status not in self.statuses:
            return False
        if self.types is not None and entry.type not in self.types:
            return False
        if self.ticker is not None and entry.ticker != self.ticker:
            return False
        if self.start_date is not None and entry.date < self.start_date:
            return False
        if self.end_date is not None and entry.date > self.end_date:
            return False
        if self.auto_suggested is not None and entry.is_auto_suggested != self.auto_suggested:
            return False
        return True


class LedgerStore(Protocol):
    """Transactional store of portfolios, ledger rows and metrics snapshots.

    Rows are returned ordered by date then creation time. Writes issued inside
    ``atomic()`` commit together or not at all.
    """

    async def get_portfolio(self, portfolio_id: str) -> PortfolioConfig | None:
        ...

    async def list_portfolios(self, owner_id: str) -> list[PortfolioConfig]:
        ...

    async def save_portfolio(self, portfolio: PortfolioConfig) -> PortfolioConfig:
        ...

    async def list_transactions(
        self, portfolio_id: str, filters: TransactionFilter | None = None
    ) -> list[LedgerEntry]:
        ...

    async def get_transaction(self, portfolio_id: str, transaction_id: str) -> LedgerEntry | None:
        ...

    async def add_transaction(self, entry: LedgerEntry) -> LedgerEntry:
        ...

    async def update_transaction(self, entry: LedgerEntry) -> LedgerEntry:
        ...

    async def delete_transaction(self, portfolio_id: str, transaction_id: str) -> None:
        ...

    async def delete_transactions(self, portfolio_id: str, filters: TransactionFilter) -> int:
        ...

    async def get_metrics(self, portfolio_id: str) -> "PortfolioMetrics | None":
        ...

    async def upsert_metrics(self, metrics: "PortfolioMetrics") -> None:
        ...

    async def delete_metrics(self, portfolio_id: str) -> None:
        ...

    def atomic(self) -> AbstractAsyncContextManager[None]:
        ...


__all__ = ["LedgerStore", "TransactionFilter"]
