"""Portfolio configuration, ledger and metrics snapshot tables."""

from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.base import Base
from ..domain import TransactionStatus, TransactionType, utcnow

TRANSACTION_TYPES = tuple(member.value for member in TransactionType)
TRANSACTION_STATUSES = tuple(member.value for member in TransactionStatus)
REBALANCE_FREQUENCIES = ("monthly", "quarterly", "yearly")

JSONType = JSON().with_variant(JSONB(), "postgresql")


class PortfolioConfigRow(Base):
    __tablename__ = "portfolio_config"
    __table_args__ = (Index("ix_portfolio_config_owner", "owner_id", "is_active"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(128))
    description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    monthly_contribution: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    rebalance_frequency: Mapped[str] = mapped_column(
        Enum(*REBALANCE_FREQUENCIES, name="rebalance_frequency"), default="monthly"
    )
    tracking_started: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_transaction_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    assets: Mapped[list["PortfolioConfigAssetRow"]] = relationship(
        back_populates="portfolio", cascade="all, delete-orphan", lazy="selectin"
    )


class PortfolioConfigAssetRow(Base):
    __tablename__ = "portfolio_config_asset"
    __table_args__ = (UniqueConstraint("portfolio_id", "ticker", name="uq_portfolio_config_asset_ticker"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    portfolio_id: Mapped[str] = mapped_column(ForeignKey("portfolio_config.id", ondelete="CASCADE"))
    ticker: Mapped[str] = mapped_column(String(20))
    target_allocation: Mapped[Decimal] = mapped_column(Numeric(9, 6))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    removed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    portfolio: Mapped[PortfolioConfigRow] = relationship(back_populates="assets")


class PortfolioTransactionRow(Base):
    __tablename__ = "portfolio_transaction"
    __table_args__ = (
        Index("ix_portfolio_transaction_status_date", "portfolio_id", "status", "date"),
        Index("ix_portfolio_transaction_ticker", "portfolio_id", "ticker"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    portfolio_id: Mapped[str] = mapped_column(ForeignKey("portfolio_config.id", ondelete="CASCADE"))
    date: Mapped[dt.date] = mapped_column(Date)
    type: Mapped[str] = mapped_column(Enum(*TRANSACTION_TYPES, name="ledger_transaction_type"))
    ticker: Mapped[str | None] = mapped_column(String(20), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    price: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    cash_balance_before: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    cash_balance_after: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    status: Mapped[str] = mapped_column(Enum(*TRANSACTION_STATUSES, name="ledger_transaction_status"))
    is_auto_suggested: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class PortfolioMetricsRow(Base):
    __tablename__ = "portfolio_metrics"
    __table_args__ = (UniqueConstraint("portfolio_id", name="uq_portfolio_metrics_portfolio"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    portfolio_id: Mapped[str] = mapped_column(ForeignKey("portfolio_config.id", ondelete="CASCADE"))
    current_value: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    cash_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    total_invested: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    total_withdrawn: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    total_dividends: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    total_return: Mapped[float | None] = mapped_column(Float, nullable=True)
    annualized_return: Mapped[float | None] = mapped_column(Float, nullable=True)
    volatility: Mapped[float | None] = mapped_column(Float, nullable=True)
    sharpe_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_drawdown: Mapped[float | None] = mapped_column(Float, nullable=True)
    holdings: Mapped[list] = mapped_column(JSONType, default=list)
    closed_positions: Mapped[list] = mapped_column(JSONType, default=list)
    monthly_returns: Mapped[list] = mapped_column(JSONType, default=list)
    evolution: Mapped[list] = mapped_column(JSONType, default=list)
    sector_allocation: Mapped[list] = mapped_column(JSONType, default=list)
    industry_allocation: Mapped[list] = mapped_column(JSONType, default=list)
    data_gaps: Mapped[list] = mapped_column(JSONType, default=list)
    inconsistencies: Mapped[list] = mapped_column(JSONType, default=list)
    drawdown_history: Mapped[list] = mapped_column(JSONType, default=list)
    drawdown_periods: Mapped[list] = mapped_column(JSONType, default=list)
    benchmark_comparison: Mapped[list] = mapped_column(JSONType, default=list)
    summary: Mapped[dict] = mapped_column(JSONType, default=dict)
    last_calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


__all__ = [
    "PortfolioConfigAssetRow",
    "PortfolioConfigRow",
    "PortfolioMetricsRow",
    "PortfolioTransactionRow",
    "TRANSACTION_STATUSES",
    "TRANSACTION_TYPES",
]
