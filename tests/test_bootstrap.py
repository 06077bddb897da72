"""Settings, start-up and context wiring tests."""

from __future__ import annotations

import logging

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from portfolio_ledger.bootstrap import build_context, startup
from portfolio_ledger.config import LedgerSettings, get_settings
from portfolio_ledger.core.logging import setup_logging
from portfolio_ledger.core.telemetry import setup_telemetry
from portfolio_ledger.providers import CachingDividendProvider, FallbackQuoteProvider
from portfolio_ledger.providers.http import HttpQuoteProvider
from portfolio_ledger.providers.sql import SqlMarketData
from portfolio_ledger.repositories.sql import SqlLedgerStore


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("LEDGER_CASH_TOLERANCE", "0.5")
    monkeypatch.setenv("LEDGER_REBALANCE_ABSOLUTE_THRESHOLD", "0.1")

    settings = LedgerSettings()

    assert settings.cash_tolerance == 0.5
    assert settings.rebalance_absolute_threshold == 0.1
    assert settings.rebalance_relative_threshold == 0.20


def test_logging_view_hides_secrets():
    settings = get_settings(quote_service_token="secret", base_currency="USD")

    view = settings.dict_for_logging()

    assert view["quote_service_token"] == "***"
    assert view["database_url"] == "***"
    assert view["base_currency"] == "USD"


def test_setup_logging_installs_one_handler(restore_root_logging):
    before = len(restore_root_logging.handlers)

    setup_logging(logging.DEBUG)
    setup_logging(logging.WARNING)

    assert len(restore_root_logging.handlers) == before + 1
    assert restore_root_logging.level == logging.WARNING
    assert logging.getLogger("sqlalchemy").level == logging.WARNING


def test_telemetry_is_opt_in():
    assert setup_telemetry(LedgerSettings(telemetry_enabled=False)) is False


def test_context_without_quote_service_uses_local_tables():
    factory = async_sessionmaker(create_async_engine("sqlite+aiosqlite://"))

    ctx = build_context(LedgerSettings(quote_service_url=None), session_factory=factory)

    assert isinstance(ctx.store, SqlLedgerStore)
    assert isinstance(ctx.quotes, SqlMarketData)
    assert isinstance(ctx.dividends, CachingDividendProvider)
    assert isinstance(ctx.dividends.delegate, SqlMarketData)


def test_context_with_quote_service_falls_back_to_local_tables():
    factory = async_sessionmaker(create_async_engine("sqlite+aiosqlite://"))
    settings = LedgerSettings(quote_service_url="http://quotes.local", dividend_cache_ttl_seconds=60)

    ctx = build_context(settings, session_factory=factory)

    assert isinstance(ctx.quotes, FallbackQuoteProvider)
    assert isinstance(ctx.quotes.primary, HttpQuoteProvider)
    assert isinstance(ctx.quotes.fallback, SqlMarketData)
    assert isinstance(ctx.profiles, HttpQuoteProvider)
    assert ctx.dividends.ttl_seconds == 60


@pytest.mark.asyncio
async def test_startup_creates_schema(sqlite_url, restore_root_logging):
    engine = create_async_engine(sqlite_url)
    try:
        ctx = await startup(
            LedgerSettings(),
            engine=engine,
            session_factory=async_sessionmaker(engine, expire_on_commit=False),
            level=logging.WARNING,
        )

        assert await ctx.store.list_portfolios("nobody") == []
        assert await ctx.quotes.get_latest_prices(["AAA"]) == {}
        assert restore_root_logging.level == logging.WARNING
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_coroutine_test_gets_only_its_own_fixtures(sqlite_url):
    # sqlite_url pulls in tmp_path and tmp_path_factory, which must not be passed here
    assert sqlite_url.startswith("sqlite+aiosqlite:///")
    assert sqlite_url.endswith("ledger.db")
