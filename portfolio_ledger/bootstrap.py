"""Process start-up: logging, telemetry and the production engine context."""

from __future__ import annotations

import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .config import LedgerSettings, get_settings
from .core.logging import setup_logging
from .core.telemetry import setup_telemetry
from .db.init import init_database
from .db.session import get_engine, get_session_factory
from .providers import CachingDividendProvider, FallbackQuoteProvider
from .providers.http import HttpQuoteProvider
from .providers.sql import SqlMarketData
from .repositories.sql import SqlLedgerStore
from .services import EngineContext

logger = logging.getLogger(__name__)


def build_context(
    settings: LedgerSettings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> EngineContext:
    """Wire the database store and market data into an :class:`EngineContext`.

    Quotes come from the market-data service when one is configured, with the
    local quote tables as fallback; otherwise the tables are used directly.
    """

    settings = settings or get_settings()
    factory = session_factory or get_session_factory()
    local = SqlMarketData(factory)
    if settings.quote_service_url:
        remote = HttpQuoteProvider.from_settings(settings, transport=transport)
        quotes = FallbackQuoteProvider(remote, local)
        profiles = remote
        dividends = remote
    else:
        quotes = profiles = dividends = local
    return EngineContext(
        store=SqlLedgerStore(factory),
        quotes=quotes,
        profiles=profiles,
        dividends=CachingDividendProvider(dividends, ttl_seconds=settings.dividend_cache_ttl_seconds),
        settings=settings,
    )


async def startup(
    settings: LedgerSettings | None = None,
    *,
    engine: AsyncEngine | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    level: int = logging.INFO,
) -> EngineContext:
    """Configure logging and telemetry, make sure the schema exists, build the context."""

    settings = settings or get_settings()
    engine = engine or get_engine()
    setup_logging(level)
    setup_telemetry(settings, engine=engine)
    await init_database(engine)
    logger.info("Starting %s with %s", settings.app_name, settings.dict_for_logging())
    return build_context(settings, session_factory=session_factory)


__all__ = ["build_context", "startup"]
