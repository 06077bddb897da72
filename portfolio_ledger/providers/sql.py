"""Market data read from the local quote tables; used as the quote fallback."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import CompanyProfile, DividendEvent
from ..models import CompanyProfileRow, DailyQuote, DividendEventRow


class SqlMarketData:
    """Quotes, company profiles and dividend events stored in the database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _closes(self, tickers: Sequence[str], day: date | None) -> dict[str, Decimal]:
        if not tickers:
            return {}
        latest = select(DailyQuote.ticker, func.max(DailyQuote.date).label("latest_date")).where(
            DailyQuote.ticker.in_(list(tickers))
        )
        if day is not None:
            latest = latest.where(DailyQuote.date <= day)
        latest = latest.group_by(DailyQuote.ticker).subquery()
        stmt = select(DailyQuote.ticker, DailyQuote.close).join(
            latest,
            and_(DailyQuote.ticker == latest.c.ticker, DailyQuote.date == latest.c.latest_date),
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return {ticker: close for ticker, close in result.all() if close is not None and close > 0}

    async def get_latest_prices(self, tickers: Sequence[str]) -> dict[str, Decimal]:
        return await self._closes(tickers, None)

    async def get_prices_as_of(self, tickers: Sequence[str], day: date) -> dict[str, Decimal]:
        return await self._closes(tickers, day)

    async def get_company_sector_industry(self, tickers: Sequence[str]) -> dict[str, CompanyProfile]:
        if not tickers:
            return {}
        async with self.session_factory() as session:
            result = await session.execute(
                select(CompanyProfileRow).where(CompanyProfileRow.ticker.in_(list(tickers)))
            )
            return {
                row.ticker: CompanyProfile(sector=row.sector, industry=row.industry)
                for row in result.scalars().all()
            }

    async def fetch_dividend_events(self, ticker: str) -> list[DividendEvent]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(DividendEventRow)
                .where(DividendEventRow.ticker == ticker)
                .order_by(DividendEventRow.ex_date)
            )
            return [
                DividendEvent(
                    ticker=row.ticker,
                    ex_date=row.ex_date,
                    payment_date=row.payment_date,
                    amount_per_share=row.amount_per_share,
                )
                for row in result.scalars().all()
            ]


__all__ = ["SqlMarketData"]
