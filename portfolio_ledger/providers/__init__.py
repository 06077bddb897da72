"""Market-data collaborators: quotes, company profiles and dividends."""

from .market_data import (
    CachingDividendProvider,
    CompanyProfileProvider,
    DividendProvider,
    FallbackQuoteProvider,
    InMemoryMarketData,
    QuoteProvider,
)

__all__ = [
    "CachingDividendProvider",
    "CompanyProfileProvider",
    "DividendProvider",
    "FallbackQuoteProvider",
    "InMemoryMarketData",
    "QuoteProvider",
]
