"""SQLAlchemy implementation of the ledger store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import AsyncIterator

from pydantic import TypeAdapter
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import (
    LedgerEntry,
    PortfolioConfig,
    RebalanceFrequency,
    TargetAsset,
    TransactionStatus,
    TransactionType,
)
from ..models import (
    PortfolioConfigAssetRow,
    PortfolioConfigRow,
    PortfolioMetricsRow,
    PortfolioTransactionRow,
)
from ..services.metrics import PortfolioMetrics
from .base import TransactionFilter

logger = logging.getLogger(__name__)

_metrics_adapter = TypeAdapter(PortfolioMetrics)
_JSON_FIELDS = (
    "holdings",
    "closed_positions",
    "monthly_returns",
    "evolution",
    "sector_allocation",
    "industry_allocation",
    "data_gaps",
    "inconsistencies",
    "drawdown_history",
    "drawdown_periods",
    "benchmark_comparison",
)
_SCALAR_FIELDS = (
    "current_value",
    "cash_balance",
    "total_invested",
    "total_withdrawn",
    "total_dividends",
    "total_return",
    "annualized_return",
    "volatility",
    "sharpe_ratio",
    "max_drawdown",
    "last_calculated_at",
)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; rows are always written in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_entry(row: PortfolioTransactionRow) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        portfolio_id=row.portfolio_id,
        date=row.date,
        type=TransactionType(row.type),
        amount=row.amount,
        ticker=row.ticker,
        price=row.price,
        quantity=row.quantity,
        status=TransactionStatus(row.status),
        is_auto_suggested=row.is_auto_suggested,
        notes=row.notes,
        cash_balance_before=row.cash_balance_before,
        cash_balance_after=row.cash_balance_after,
        confirmed_at=_aware(row.confirmed_at),
        rejected_at=_aware(row.rejected_at),
        rejection_reason=row.rejection_reason,
        created_at=_aware(row.created_at),
    )


def _write_entry(row: PortfolioTransactionRow, entry: LedgerEntry) -> None:
    row.portfolio_id = entry.portfolio_id
    row.date = entry.date
    row.type = entry.type.value
    row.amount = entry.amount
    row.ticker = entry.ticker
    row.price = entry.price
    row.quantity = entry.quantity
    row.status = entry.status.value
    row.is_auto_suggested = entry.is_auto_suggested
    row.notes = entry.notes
    row.cash_balance_before = entry.cash_balance_before
    row.cash_balance_after = entry.cash_balance_after
    row.confirmed_at = entry.confirmed_at
    row.rejected_at = entry.rejected_at
    row.rejection_reason = entry.rejection_reason
    row.created_at = entry.created_at


def _to_portfolio(row: PortfolioConfigRow) -> PortfolioConfig:
    return PortfolioConfig(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        monthly_contribution=row.monthly_contribution,
        rebalance_frequency=RebalanceFrequency(row.rebalance_frequency),
        start_date=row.start_date,
        tracking_started=row.tracking_started,
        is_active=row.is_active,
        last_transaction_date=row.last_transaction_date,
        created_at=_aware(row.created_at),
        assets=[
            TargetAsset(
                ticker=asset.ticker,
                target_allocation=asset.target_allocation,
                is_active=asset.is_active,
                added_at=_aware(asset.added_at),
                removed_at=_aware(asset.removed_at),
            )
            for asset in sorted(row.assets, key=lambda asset: asset.id or 0)
        ],
    )


def _apply_filters(stmt, filters: TransactionFilter | None):
    if filters is None:
        return stmt
    if filters.statuses is not None:
        stmt = stmt.where(PortfolioTransactionRow.status.in_([status.value for status in filters.statuses]))
    if filters.types is not None:
        stmt = stmt.where(PortfolioTransactionRow.type.in_([kind.value for kind in filters.types]))
    if filters.ticker is not None:
        stmt = stmt.where(PortfolioTransactionRow.ticker == filters.ticker)
    if filters.start_date is not None:
        stmt = stmt.where(PortfolioTransactionRow.date >= filters.start_date)
    if filters.end_date is not None:
        stmt = stmt.where(PortfolioTransactionRow.date <= filters.end_date)
    if filters.auto_suggested is not None:
        stmt = stmt.where(PortfolioTransactionRow.is_auto_suggested.is_(filters.auto_suggested))
    return stmt


class SqlLedgerStore:
    """Ledger store backed by an async SQLAlchemy session factory.

    Outside ``atomic()`` every call opens its own short-lived session, so
    independent reads may run concurrently. Inside ``atomic()`` all calls of
    the current task share one session that commits when the block exits.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._current: ContextVar[AsyncSession | None] = ContextVar("ledger_session", default=None)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        current = self._current.get()
        if current is not None:
            yield current
            return
        async with self.session_factory() as session:
            yield session
            await session.commit()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return
        async with self.session_factory() as session:
            token = self._current.set(session)
            try:
                yield
                await session.commit()
            except BaseException:
                await session.rollback()
                raise
            finally:
                self._current.reset(token)

    async def get_portfolio(self, portfolio_id: str) -> PortfolioConfig | None:
        async with self._session() as session:
            row = await session.get(PortfolioConfigRow, portfolio_id)
            return _to_portfolio(row) if row is not None else None

    async def list_portfolios(self, owner_id: str) -> list[PortfolioConfig]:
        async with self._session() as session:
            result = await session.execute(
                select(PortfolioConfigRow)
                .where(PortfolioConfigRow.owner_id == owner_id)
                .order_by(PortfolioConfigRow.created_at)
            )
            return [_to_portfolio(row) for row in result.scalars().all()]

    async def save_portfolio(self, portfolio: PortfolioConfig) -> PortfolioConfig:
        async with self._session() as session:
            row = await session.get(PortfolioConfigRow, portfolio.id)
            if row is None:
                row = PortfolioConfigRow(id=portfolio.id, created_at=portfolio.created_at)
                row.assets = []
                session.add(row)
            row.owner_id = portfolio.owner_id
            row.name = portfolio.name
            row.description = portfolio.description
            row.monthly_contribution = portfolio.monthly_contribution
            row.rebalance_frequency = portfolio.rebalance_frequency.value
            row.start_date = portfolio.start_date
            row.tracking_started = portfolio.tracking_started
            row.is_active = portfolio.is_active
            row.last_transaction_date = portfolio.last_transaction_date
            existing = {asset.ticker: asset for asset in row.assets}
            for asset in portfolio.assets:
                asset_row = existing.get(asset.ticker)
                if asset_row is None:
                    asset_row = PortfolioConfigAssetRow(ticker=asset.ticker, added_at=asset.added_at)
                    row.assets.append(asset_row)
                asset_row.target_allocation = asset.target_allocation
                asset_row.is_active = asset.is_active
                asset_row.removed_at = asset.removed_at
            await session.flush()
            return _to_portfolio(row)

    async def list_transactions(
        self, portfolio_id: str, filters: TransactionFilter | None = None
    ) -> list[LedgerEntry]:
        stmt = select(PortfolioTransactionRow).where(PortfolioTransactionRow.portfolio_id == portfolio_id)
        stmt = _apply_filters(stmt, filters).order_by(
            PortfolioTransactionRow.date, PortfolioTransactionRow.created_at, PortfolioTransactionRow.id
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_entry(row) for row in result.scalars().all()]

    async def get_transaction(self, portfolio_id: str, transaction_id: str) -> LedgerEntry | None:
        async with self._session() as session:
            row = await session.get(PortfolioTransactionRow, transaction_id)
            if row is None or row.portfolio_id != portfolio_id:
                return None
            return _to_entry(row)

    async def add_transaction(self, entry: LedgerEntry) -> LedgerEntry:
        async with self._session() as session:
            row = PortfolioTransactionRow(id=entry.id)
            _write_entry(row, entry)
            session.add(row)
            await session.flush()
            return _to_entry(row)

    async def update_transaction(self, entry: LedgerEntry) -> LedgerEntry:
        async with self._session() as session:
            row = await session.get(PortfolioTransactionRow, entry.id)
            if row is None:
                raise ValueError(f"Transaction {entry.id} does not exist")
            _write_entry(row, entry)
            await session.flush()
            return _to_entry(row)

    async def delete_transaction(self, portfolio_id: str, transaction_id: str) -> None:
        async with self._session() as session:
            await session.execute(
                delete(PortfolioTransactionRow).where(
                    PortfolioTransactionRow.id == transaction_id,
                    PortfolioTransactionRow.portfolio_id == portfolio_id,
                )
            )

    async def delete_transactions(self, portfolio_id: str, filters: TransactionFilter) -> int:
        ids_stmt = _apply_filters(
            select(PortfolioTransactionRow.id).where(PortfolioTransactionRow.portfolio_id == portfolio_id),
            filters,
        )
        async with self._session() as session:
            ids = list((await session.execute(ids_stmt)).scalars().all())
            if ids:
                await session.execute(delete(PortfolioTransactionRow).where(PortfolioTransactionRow.id.in_(ids)))
            return len(ids)

    async def get_metrics(self, portfolio_id: str) -> PortfolioMetrics | None:
        async with self._session() as session:
            result = await session.execute(
                select(PortfolioMetricsRow).where(PortfolioMetricsRow.portfolio_id == portfolio_id)
            )
            row = result.scalars().first()
            if row is None:
                return None
            payload = {"portfolio_id": row.portfolio_id}
            payload.update({name: getattr(row, name) for name in _SCALAR_FIELDS})
            payload.update({name: getattr(row, name) or [] for name in _JSON_FIELDS})
            payload["summary"] = row.summary or {}
            payload["last_calculated_at"] = _aware(row.last_calculated_at)
            return _metrics_adapter.validate_python(payload)

    async def upsert_metrics(self, metrics: PortfolioMetrics) -> None:
        serialized = _metrics_adapter.dump_python(metrics, mode="json")
        async with self._session() as session:
            result = await session.execute(
                select(PortfolioMetricsRow).where(PortfolioMetricsRow.portfolio_id == metrics.portfolio_id)
            )
            row = result.scalars().first()
            if row is None:
                row = PortfolioMetricsRow(portfolio_id=metrics.portfolio_id)
                session.add(row)
            for name in _SCALAR_FIELDS:
                setattr(row, name, getattr(metrics, name))
            for name in _JSON_FIELDS:
                setattr(row, name, serialized[name])
            row.summary = serialized["summary"]
            await session.flush()

    async def delete_metrics(self, portfolio_id: str) -> None:
        async with self._session() as session:
            await session.execute(delete(PortfolioMetricsRow).where(PortfolioMetricsRow.portfolio_id == portfolio_id))


__all__ = ["SqlLedgerStore"]
