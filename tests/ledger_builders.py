"""Builders shared by the ledger test modules."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from itertools import count

from portfolio_ledger.config import LedgerSettings
from portfolio_ledger.domain import LedgerEntry, TransactionStatus, TransactionType
from portfolio_ledger.providers import InMemoryMarketData
from portfolio_ledger.repositories import InMemoryLedgerStore
from portfolio_ledger.services import EngineContext

D = Decimal
PORTFOLIO = "p1"
OWNER = "owner-1"

_sequence = count()
_EPOCH = datetime(2020, 1, 1, tzinfo=timezone.utc)


def entry(
    day: date,
    kind: TransactionType,
    amount: Decimal | str | int,
    *,
    ticker: str | None = None,
    quantity: Decimal | str | int | None = None,
    price: Decimal | str | int | None = None,
    status: TransactionStatus = TransactionStatus.EXECUTED,
    auto: bool = False,
    portfolio_id: str = PORTFOLIO,
) -> LedgerEntry:
    return LedgerEntry(
        portfolio_id=portfolio_id,
        date=day,
        type=kind,
        amount=D(str(amount)),
        ticker=ticker,
        price=D(str(price)) if price is not None else None,
        quantity=D(str(quantity)) if quantity is not None else None,
        status=status,
        is_auto_suggested=auto,
        created_at=_EPOCH + timedelta(seconds=next(_sequence)),
    )


def credit(day: date, amount, **kwargs) -> LedgerEntry:
    return entry(day, TransactionType.CASH_CREDIT, amount, **kwargs)


def debit(day: date, amount, **kwargs) -> LedgerEntry:
    return entry(day, TransactionType.CASH_DEBIT, amount, **kwargs)


def buy(day: date, ticker: str, quantity, price, kind=TransactionType.BUY, **kwargs) -> LedgerEntry:
    amount = D(str(quantity)) * D(str(price))
    return entry(day, kind, amount, ticker=ticker, quantity=quantity, price=price, **kwargs)


def sell(day: date, ticker: str, quantity, price, kind=TransactionType.SELL_REBALANCE, **kwargs) -> LedgerEntry:
    amount = D(str(quantity)) * D(str(price))
    return entry(day, kind, amount, ticker=ticker, quantity=quantity, price=price, **kwargs)


def dividend(day: date, ticker: str, amount, **kwargs) -> LedgerEntry:
    return entry(day, TransactionType.DIVIDEND, amount, ticker=ticker, **kwargs)


def make_context(
    *,
    today: date,
    store: InMemoryLedgerStore | None = None,
    market: InMemoryMarketData | None = None,
    **overrides,
) -> EngineContext:
    market = market or InMemoryMarketData()
    return EngineContext(
        store=store or InMemoryLedgerStore(),
        quotes=market,
        profiles=market,
        dividends=market,
        settings=LedgerSettings(**overrides),
        clock=lambda: today,
    )


async def seed(ctx: EngineContext, *entries: LedgerEntry) -> None:
    for item in entries:
        await ctx.store.add_transaction(item)
