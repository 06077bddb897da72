"""Dict-backed ledger store for tests and examples."""

from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import TYPE_CHECKING, AsyncIterator

from ..domain import LedgerEntry, PortfolioConfig
from .base import TransactionFilter

if TYPE_CHECKING:
    from ..services.metrics import PortfolioMetrics


class InMemoryLedgerStore:
    """Keeps copies of every record so callers can never mutate stored state."""

    def __init__(self) -> None:
        self._portfolios: dict[str, PortfolioConfig] = {}
        self._transactions: dict[str, LedgerEntry] = {}
        self._metrics: dict[str, "PortfolioMetrics"] = {}
        self._depth = 0

    async def get_portfolio(self, portfolio_id: str) -> PortfolioConfig | None:
        portfolio = self._portfolios.get(portfolio_id)
        return copy.deepcopy(portfolio) if portfolio else None

    async def list_portfolios(self, owner_id: str) -> list[PortfolioConfig]:
        portfolios = [p for p in self._portfolios.values() if p.owner_id == owner_id]
        return [copy.deepcopy(p) for p in sorted(portfolios, key=lambda p: p.created_at)]

    async def save_portfolio(self, portfolio: PortfolioConfig) -> PortfolioConfig:
        self._portfolios[portfolio.id] = copy.deepcopy(portfolio)
        return copy.deepcopy(portfolio)

    async def list_transactions(
        self, portfolio_id: str, filters: TransactionFilter | None = None
    ) -> list[LedgerEntry]:
        rows = [
            replace(entry)
            for entry in self._transactions.values()
            if entry.portfolio_id == portfolio_id and (filters is None or filters.matches(entry))
        ]
        return sorted(rows, key=lambda entry: (entry.date, entry.created_at, entry.id))

    async def get_transaction(self, portfolio_id: str, transaction_id: str) -> LedgerEntry | None:
        entry = self._transactions.get(transaction_id)
        if entry is None or entry.portfolio_id != portfolio_id:
            return None
        return replace(entry)

    async def add_transaction(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.id in self._transactions:
            raise ValueError(f"Transaction {entry.id} already exists")
        self._transactions[entry.id] = replace(entry)
        return replace(entry)

    async def update_transaction(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.id not in self._transactions:
            raise ValueError(f"Transaction {entry.id} does not exist")
        self._transactions[entry.id] = replace(entry)
        return replace(entry)

    async def delete_transaction(self, portfolio_id: str, transaction_id: str) -> None:
        entry = self._transactions.get(transaction_id)
        if entry is not None and entry.portfolio_id == portfolio_id:
            del self._transactions[transaction_id]

    async def delete_transactions(self, portfolio_id: str, filters: TransactionFilter) -> int:
        doomed = [
            entry.id
            for entry in self._transactions.values()
            if entry.portfolio_id == portfolio_id and filters.matches(entry)
        ]
        for transaction_id in doomed:
            del self._transactions[transaction_id]
        return len(doomed)

    async def get_metrics(self, portfolio_id: str) -> "PortfolioMetrics | None":
        metrics = self._metrics.get(portfolio_id)
        return copy.deepcopy(metrics) if metrics else None

    async def upsert_metrics(self, metrics: "PortfolioMetrics") -> None:
        self._metrics[metrics.portfolio_id] = copy.deepcopy(metrics)

    async def delete_metrics(self, portfolio_id: str) -> None:
        self._metrics.pop(portfolio_id, None)

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return
        saved = copy.deepcopy((self._portfolios, self._transactions, self._metrics))
        self._depth = 1
        try:
            yield
        except BaseException:
            self._portfolios, self._transactions, self._metrics = saved
            raise
        finally:
            self._depth = 0


__all__ = ["InMemoryLedgerStore"]
