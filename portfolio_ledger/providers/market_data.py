"""Market-data contracts and the in-process implementations.

Providers are tolerant of missing data: a ticker without a usable price is
simply absent from the returned mapping and callers treat it as unpriced.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Mapping, MutableMapping, Protocol, Sequence

from ..domain import CompanyProfile, DividendEvent

logger = logging.getLogger(__name__)


class QuoteProvider(Protocol):
    """Latest and point-in-time prices."""

    async def get_latest_prices(self, tickers: Sequence[str]) -> dict[str, Decimal]:
        ...

    async def get_prices_as_of(self, tickers: Sequence[str], day: date) -> dict[str, Decimal]:
        """Latest known price dated on or before ``day``; never a later one."""
        ...


class CompanyProfileProvider(Protocol):
    async def get_company_sector_industry(self, tickers: Sequence[str]) -> dict[str, CompanyProfile]:
        ...


class DividendProvider(Protocol):
    async def fetch_dividend_events(self, ticker: str) -> list[DividendEvent]:
        ...


class InMemoryMarketData:
    """Simple market data source for tests and examples."""

    def __init__(
        self,
        prices: Mapping[str, Mapping[date, Decimal | str | float]] | None = None,
        profiles: Mapping[str, CompanyProfile] | None = None,
        dividends: Mapping[str, Iterable[DividendEvent]] | None = None,
    ):
        self._prices: dict[str, dict[date, Decimal]] = {}
        for ticker, series in (prices or {}).items():
            self._prices[ticker] = {d: Decimal(str(v)) for d, v in sorted(series.items())}
        self._profiles = dict(profiles or {})
        self._dividends = {ticker: list(events) for ticker, events in (dividends or {}).items()}
        self.dividend_calls = 0

    def set_price(self, ticker: str, day: date, price: Decimal | str | float) -> None:
        series = self._prices.setdefault(ticker, {})
        series[day] = Decimal(str(price))
        self._prices[ticker] = dict(sorted(series.items()))

    async def get_latest_prices(self, tickers: Sequence[str]) -> dict[str, Decimal]:
        result: dict[str, Decimal] = {}
        for ticker in tickers:
            series = self._prices.get(ticker)
            if series:
                result[ticker] = series[max(series)]
        return result

    async def get_prices_as_of(self, tickers: Sequence[str], day: date) -> dict[str, Decimal]:
        result: dict[str, Decimal] = {}
        for ticker in tickers:
            eligible = [d for d in self._prices.get(ticker, {}) if d <= day]
            if eligible:
                result[ticker] = self._prices[ticker][max(eligible)]
        return result

    async def get_company_sector_industry(self, tickers: Sequence[str]) -> dict[str, CompanyProfile]:
        return {ticker: self._profiles[ticker] for ticker in tickers if ticker in self._profiles}

    async def fetch_dividend_events(self, ticker: str) -> list[DividendEvent]:
        self.dividend_calls += 1
        return list(self._dividends.get(ticker, []))


class FallbackQuoteProvider:
    """Ask the primary provider, then the fallback for whatever it missed."""

    def __init__(self, primary: QuoteProvider, fallback: QuoteProvider):
        self.primary = primary
        self.fallback = fallback

    async def get_latest_prices(self, tickers: Sequence[str]) -> dict[str, Decimal]:
        prices = await self.primary.get_latest_prices(tickers)
        missing = [ticker for ticker in tickers if ticker not in prices]
        if missing:
            logger.info("Falling back for latest prices of %s", ", ".join(missing))
            prices.update(await self.fallback.get_latest_prices(missing))
        return prices

    async def get_prices_as_of(self, tickers: Sequence[str], day: date) -> dict[str, Decimal]:
        prices = await self.primary.get_prices_as_of(tickers, day)
        missing = [ticker for ticker in tickers if ticker not in prices]
        if missing:
            logger.info("Falling back for %s prices of %s", day.isoformat(), ", ".join(missing))
            prices.update(await self.fallback.get_prices_as_of(missing, day))
        return prices


class CachingDividendProvider:
    """Cache wrapper fetching dividend events on demand, per ticker, with a TTL."""

    def __init__(
        self,
        delegate: DividendProvider,
        ttl_seconds: float = 4 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.delegate = delegate
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: MutableMapping[str, tuple[float, list[DividendEvent]]] = {}

    async def fetch_dividend_events(self, ticker: str) -> list[DividendEvent]:
        now = self._clock()
        cached = self._cache.get(ticker)
        if cached and now - cached[0] < self.ttl_seconds:
            return list(cached[1])
        events = await self.delegate.fetch_dividend_events(ticker)
        self._cache[ticker] = (now, list(events))
        return list(events)

    def invalidate(self, ticker: str | None = None) -> None:
        if ticker is None:
            self._cache.clear()
        else:
            self._cache.pop(ticker, None)


__all__ = [
    "CachingDividendProvider",
    "CompanyProfileProvider",
    "DividendProvider",
    "FallbackQuoteProvider",
    "InMemoryMarketData",
    "QuoteProvider",
]
