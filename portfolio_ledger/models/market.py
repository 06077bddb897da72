"""Market data tables read by the database quote fallback."""

from __future__ import annotations

import datetime as dt
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..db.base import Base


class DailyQuote(Base):
    __tablename__ = "daily_quote"
    __table_args__ = (
        UniqueConstraint("ticker", "date", name="uq_daily_quote_ticker_date"),
        Index("ix_daily_quote_ticker_date", "ticker", "date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ticker: Mapped[str] = mapped_column(String(20))
    date: Mapped[dt.date] = mapped_column(Date)
    close: Mapped[Decimal] = mapped_column(Numeric(18, 6))


class CompanyProfileRow(Base):
    __tablename__ = "company_profile"

    ticker: Mapped[str] = mapped_column(String(20), primary_key=True)
    sector: Mapped[str | None] = mapped_column(String(128), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(128), nullable=True)


class DividendEventRow(Base):
    __tablename__ = "dividend_event"
    __table_args__ = (
        UniqueConstraint("ticker", "ex_date", "payment_date", name="uq_dividend_event"),
        Index("ix_dividend_event_ticker", "ticker"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ticker: Mapped[str] = mapped_column(String(20))
    ex_date: Mapped[date] = mapped_column(Date)
    payment_date: Mapped[date] = mapped_column(Date)
    amount_per_share: Mapped[Decimal] = mapped_column(Numeric(18, 8))


__all__ = ["CompanyProfileRow", "DailyQuote", "DividendEventRow"]
