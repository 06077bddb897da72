"""Ledger replay: holdings, cash and dividend attribution.

Everything here is a pure function of a list of :class:`LedgerEntry` rows.
Only CONFIRMED/EXECUTED rows take part in the replay; pending and rejected
suggestions are ignored. Holdings follow the average-cost method: a sale
reduces the cost basis by ``average_cost * quantity_sold``, never by the sale
proceeds, so the basis of the remaining shares is unaffected by the price at
which the others were sold.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from ..core.errors import LedgerInconsistency, LedgerInconsistencyError
from ..domain import (
    BUY_TYPES,
    CONTRIBUTION_TYPES,
    SELL_TYPES,
    LedgerEntry,
    TransactionType,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Same-day order: inflows, sales, purchases, withdrawals. Sale proceeds fund
# purchases made that day, and any permutation of same-day rows replays to the
# same state.
_SAME_DAY_PHASE = {
    TransactionType.CASH_CREDIT: 0,
    TransactionType.MONTHLY_CONTRIBUTION: 0,
    TransactionType.DIVIDEND: 0,
    TransactionType.SELL_REBALANCE: 1,
    TransactionType.SELL_WITHDRAWAL: 1,
    TransactionType.BUY: 2,
    TransactionType.BUY_REBALANCE: 2,
    TransactionType.CASH_DEBIT: 3,
}


@dataclass
class Position:
    ticker: str
    quantity: Decimal = ZERO
    total_invested: Decimal = ZERO

    @property
    def average_cost(self) -> Decimal:
        if self.quantity <= 0:
            return ZERO
        return self.total_invested / self.quantity


@dataclass
class ReplayResult:
    """Open positions after a replay plus any oversell that had to be clamped."""

    positions: dict[str, Position]
    inconsistencies: list[LedgerInconsistency] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.inconsistencies


@dataclass(frozen=True)
class CashStep:
    entry: LedgerEntry
    balance_before: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class LedgerTotals:
    total_invested: Decimal
    total_withdrawn: Decimal
    total_dividends: Decimal
    total_purchases: Decimal


@dataclass
class ClosedPosition:
    ticker: str
    average_price: Decimal
    total_invested: Decimal
    total_sold: Decimal
    realized_return: Decimal
    realized_return_percentage: float | None
    total_dividends: Decimal
    total_return: Decimal
    total_return_percentage: float | None
    closed_date: date


def committed_entries(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    return [entry for entry in entries if entry.is_committed]


def sort_for_replay(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Order rows by date, then by same-day phase, then by creation."""

    return sorted(
        entries,
        key=lambda entry: (entry.date, _SAME_DAY_PHASE[entry.type], entry.created_at, entry.id),
    )


class HoldingsBook:
    """Incremental replay state; feed committed rows in replay order."""

    def __init__(self, *, strict: bool = False):
        self.strict = strict
        self.positions: dict[str, Position] = {}
        self.cash = ZERO
        self.inconsistencies: list[LedgerInconsistency] = []

    def apply(self, entry: LedgerEntry) -> None:
        self.cash += entry.signed_amount
        if entry.type in BUY_TYPES:
            self._buy(entry)
        elif entry.type in SELL_TYPES:
            self._sell(entry)

    def _trade_fields(self, entry: LedgerEntry) -> tuple[str, Decimal] | None:
        if not entry.ticker or entry.quantity is None:
            logger.warning(
                "Skipping %s %s on %s without ticker or quantity", entry.type.value, entry.id, entry.date
            )
            return None
        return entry.ticker, entry.quantity

    def _buy(self, entry: LedgerEntry) -> None:
        fields = self._trade_fields(entry)
        if fields is None:
            return
        ticker, quantity = fields
        position = self.positions.setdefault(ticker, Position(ticker))
        position.quantity += quantity
        position.total_invested += entry.amount

    def _sell(self, entry: LedgerEntry) -> None:
        fields = self._trade_fields(entry)
        if fields is None:
            return
        ticker, quantity = fields
        position = self.positions.setdefault(ticker, Position(ticker))
        available = position.quantity
        if quantity > available:
            inconsistency = LedgerInconsistency(
                ticker=ticker,
                date=entry.date,
                transaction_id=entry.id,
                attempted_quantity=quantity,
                available_quantity=available,
            )
            if self.strict:
                raise LedgerInconsistencyError(inconsistency)
            logger.warning(
                "Oversell of %s on %s: sold %s with %s held, clamping to zero",
                ticker,
                entry.date,
                quantity,
                available,
            )
            self.inconsistencies.append(inconsistency)
            quantity = available
        average_cost = position.average_cost
        position.quantity -= quantity
        if position.quantity <= 0:
            position.quantity = ZERO
            position.total_invested = ZERO
        else:
            position.total_invested -= average_cost * quantity

    def open_positions(self) -> dict[str, Position]:
        return {
            ticker: Position(ticker, position.quantity, position.total_invested)
            for ticker, position in self.positions.items()
            if position.quantity > 0
        }

    def result(self) -> ReplayResult:
        return ReplayResult(self.open_positions(), list(self.inconsistencies))


def replay_holdings(entries: Iterable[LedgerEntry], *, strict: bool = False) -> ReplayResult:
    """Rebuild open positions from the committed rows of a ledger.

    An oversell is clamped at zero and reported in the result; with
    ``strict=True`` it raises :class:`LedgerInconsistencyError` instead.
    """

    book = HoldingsBook(strict=strict)
    for entry in sort_for_replay(committed_entries(entries)):
        book.apply(entry)
    return book.result()


def holdings_as_of(entries: Iterable[LedgerEntry], day: date) -> dict[str, Position]:
    """Positions held at the start of ``day`` (rows dated ``day`` excluded)."""

    return replay_holdings(entry for entry in entries if entry.date < day).positions


def cash_balance(entries: Iterable[LedgerEntry]) -> Decimal:
    return sum((entry.signed_amount for entry in entries if entry.is_committed), ZERO)


def cash_timeline(entries: Iterable[LedgerEntry]) -> list[CashStep]:
    steps: list[CashStep] = []
    balance = ZERO
    for entry in sort_for_replay(committed_entries(entries)):
        after = balance + entry.signed_amount
        steps.append(CashStep(entry, balance, after))
        balance = after
    return steps


def lowest_cash_balance(entries: Iterable[LedgerEntry]) -> Decimal:
    """Minimum running balance over the replay; zero for an empty ledger."""

    lowest = ZERO
    for step in cash_timeline(entries):
        lowest = min(lowest, step.balance_after)
    return lowest


def contribution_totals(entries: Iterable[LedgerEntry]) -> LedgerTotals:
    """Capital totals used by return calculations.

    Only CASH_DEBIT counts as withdrawn; sales just move value into the cash
    sub-account. Ledgers entered without any credit fall back to plain BUY
    amounts as invested capital.
    """

    credits = withdrawn = dividends = purchases = plain_buys = ZERO
    for entry in entries:
        if not entry.is_committed:
            continue
        if entry.type in CONTRIBUTION_TYPES:
            credits += entry.amount
        elif entry.type is TransactionType.CASH_DEBIT:
            withdrawn += entry.amount
        elif entry.type is TransactionType.DIVIDEND:
            dividends += entry.amount
        elif entry.type in BUY_TYPES:
            purchases += entry.amount
            if entry.type is TransactionType.BUY:
                plain_buys += entry.amount
    invested = credits if credits > 0 else plain_buys
    return LedgerTotals(invested, withdrawn, dividends, purchases)


def dividends_for_current_holdings(
    entries: Iterable[LedgerEntry],
    positions: Mapping[str, Position],
) -> dict[str, Decimal]:
    """Dividends attributable to the shares still held, per ticker.

    Each dividend counts in proportion ``min(current_qty / held_at_dividend, 1)``
    so shares sold after a payment do not keep its credit.
    """

    held: dict[str, Decimal] = defaultdict(lambda: ZERO)
    attributed: dict[str, Decimal] = {ticker: ZERO for ticker in positions}
    for entry in sort_for_replay(committed_entries(entries)):
        ticker = entry.ticker
        if not ticker:
            continue
        if entry.type in BUY_TYPES and entry.quantity is not None:
            held[ticker] += entry.quantity
        elif entry.type in SELL_TYPES and entry.quantity is not None:
            held[ticker] = max(held[ticker] - entry.quantity, ZERO)
        elif entry.type is TransactionType.DIVIDEND and ticker in positions:
            shares_at_dividend = held[ticker]
            if shares_at_dividend <= 0:
                continue
            fraction = min(positions[ticker].quantity / shares_at_dividend, Decimal("1"))
            attributed[ticker] += entry.amount * fraction
    return attributed


def _percentage(numerator: Decimal, denominator: Decimal) -> float | None:
    if denominator <= 0:
        return None
    return float(numerator / denominator)


def closed_positions(entries: Sequence[LedgerEntry]) -> list[ClosedPosition]:
    """Tickers bought at some point and fully sold by the end of the ledger.

    Realized figures aggregate the whole life of the ticker. Dividends are
    summed unattenuated, including those paid after the last sale.
    """

    ordered = sort_for_replay(committed_entries(entries))
    book = HoldingsBook()
    bought_amount: dict[str, Decimal] = defaultdict(lambda: ZERO)
    bought_quantity: dict[str, Decimal] = defaultdict(lambda: ZERO)
    sold_amount: dict[str, Decimal] = defaultdict(lambda: ZERO)
    dividends: dict[str, Decimal] = defaultdict(lambda: ZERO)
    last_sale: dict[str, date] = {}

    for entry in ordered:
        book.apply(entry)
        ticker = entry.ticker
        if not ticker:
            continue
        if entry.type in BUY_TYPES:
            bought_amount[ticker] += entry.amount
            bought_quantity[ticker] += entry.quantity or ZERO
        elif entry.type in SELL_TYPES:
            sold_amount[ticker] += entry.amount
            last_sale[ticker] = entry.date
        elif entry.type is TransactionType.DIVIDEND:
            dividends[ticker] += entry.amount

    still_open = book.open_positions()
    closed: list[ClosedPosition] = []
    for ticker, closed_date in last_sale.items():
        if ticker in still_open or bought_quantity[ticker] <= 0:
            continue
        invested = bought_amount[ticker]
        sold = sold_amount[ticker]
        realized = sold - invested
        total = realized + dividends[ticker]
        closed.append(
            ClosedPosition(
                ticker=ticker,
                average_price=invested / bought_quantity[ticker],
                total_invested=invested,
                total_sold=sold,
                realized_return=realized,
                realized_return_percentage=_percentage(realized, invested),
                total_dividends=dividends[ticker],
                total_return=total,
                total_return_percentage=_percentage(total, invested),
                closed_date=closed_date,
            )
        )
    closed.sort(key=lambda position: (position.closed_date, position.ticker), reverse=True)
    return closed


__all__ = [
    "CashStep",
    "ClosedPosition",
    "HoldingsBook",
    "LedgerTotals",
    "Position",
    "ReplayResult",
    "cash_balance",
    "cash_timeline",
    "closed_positions",
    "committed_entries",
    "contribution_totals",
    "dividends_for_current_holdings",
    "holdings_as_of",
    "lowest_cash_balance",
    "replay_holdings",
    "sort_for_replay",
]
