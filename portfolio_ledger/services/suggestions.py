"""Rules-based planner proposing the next pending transactions.

The planner never touches the committed ledger. It reads the replayed
holdings, the target allocation and the latest quotes, and proposes:

* a contribution (CASH_CREDIT) when the contribution schedule is due, with
  either proportional purchases or a rebalancing pass funded by it;
* dividend credits for payments of the current month that the portfolio
  qualified for on the ex-date.

Proposals are deduplicated against existing PENDING rows by
``(date, type, ticker)`` so repeated calls return the same set.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Sequence

import pandas as pd
from opentelemetry import metrics, trace

from ..core.errors import DataGap
from ..domain import (
    COMMITTED_STATUSES,
    CONTRIBUTION_TYPES,
    DividendEvent,
    LedgerEntry,
    PortfolioConfig,
    TransactionStatus,
    TransactionType,
)
from ..repositories.base import TransactionFilter
from .allocation import AllocationDrift, RebalanceDecision, RebalanceThreshold, allocation_drift
from .context import EngineContext
from .ledger import ZERO, Position, cash_balance, holdings_as_of, replay_holdings
from .portfolios import load_portfolio

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
meter = metrics.get_meter(__name__)

suggestion_counter = meter.create_counter(
    "ledger.suggestions.generated",
    description="Pending transactions proposed by the suggestion engine",
)

CENT = Decimal("0.01")
PENDING_ONLY = frozenset({TransactionStatus.PENDING})
NOT_REJECTED = COMMITTED_STATUSES | PENDING_ONLY


@dataclass
class SuggestedTransaction:
    date: date
    type: TransactionType
    amount: Decimal
    reason: str
    ticker: str | None = None
    price: Decimal | None = None
    quantity: Decimal | None = None
    cash_balance_before: Decimal = ZERO
    cash_balance_after: Decimal = ZERO

    @property
    def key(self) -> tuple[date, TransactionType, str | None]:
        return (self.date, self.type, self.ticker)

    def to_entry(self, portfolio_id: str) -> LedgerEntry:
        return LedgerEntry(
            portfolio_id=portfolio_id,
            date=self.date,
            type=self.type,
            amount=self.amount,
            ticker=self.ticker,
            price=self.price,
            quantity=self.quantity,
            status=TransactionStatus.PENDING,
            is_auto_suggested=True,
            notes=self.reason,
            cash_balance_before=self.cash_balance_before,
            cash_balance_after=self.cash_balance_after,
        )


@dataclass
class SuggestionPlan:
    suggestions: list[SuggestedTransaction] = field(default_factory=list)
    decisions: list[RebalanceDecision] = field(default_factory=list)
    contribution_due: bool = False
    due_dates: list[date] = field(default_factory=list)
    data_gaps: list[DataGap] = field(default_factory=list)
    cleaned_up: int = 0


@dataclass
class RebalancingStatus:
    should_show: bool
    max_deviation: float
    details: list[str]
    drifts: list[AllocationDrift]


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _whole_shares(value: Decimal, price: Decimal) -> Decimal:
    if price <= 0 or value <= 0:
        return ZERO
    return (value / price).to_integral_value(rounding=ROUND_FLOOR)


def _add_months(day: date, months: int) -> date:
    return (pd.Timestamp(day) + pd.DateOffset(months=months)).date()


def _month_start(day: date) -> date:
    return day.replace(day=1)


def _percent(value: float) -> str:
    return f"{value * 100:.1f}%"


def _priced(prices: Mapping[str, Decimal], ticker: str) -> Decimal | None:
    price = prices.get(ticker)
    if price is None or price <= 0:
        return None
    return price


def holding_values(positions: Mapping[str, Position], prices: Mapping[str, Decimal]) -> dict[str, Decimal]:
    """Market value of every priced open position."""

    values: dict[str, Decimal] = {}
    for ticker, position in positions.items():
        price = _priced(prices, ticker)
        if price is not None:
            values[ticker] = position.quantity * price
    return values


def current_drift(
    targets: Mapping[str, Decimal],
    positions: Mapping[str, Position],
    prices: Mapping[str, Decimal],
    threshold: RebalanceThreshold | None = None,
) -> list[AllocationDrift]:
    """Allocation drift over the priced holdings; unpriced tickers are left out."""

    priced_targets = {ticker: target for ticker, target in targets.items() if _priced(prices, ticker) is not None}
    return allocation_drift(holding_values(positions, prices), priced_targets, threshold)


def next_contribution_dates(
    portfolio: PortfolioConfig,
    committed: Sequence[LedgerEntry],
    today: date,
    *,
    decided_this_month: bool = False,
) -> list[date]:
    """Dates on which a contribution should be proposed.

    The schedule runs from the last committed contribution plus the
    rebalance frequency. An overdue contribution is proposed once, dated
    ``today``; missed periods are not accumulated or backdated.
    """

    if portfolio.monthly_contribution <= 0 or not portfolio.tracking_started:
        return []
    contribution_dates = [entry.date for entry in committed if entry.type in CONTRIBUTION_TYPES]
    if contribution_dates:
        next_due = _add_months(max(contribution_dates), portfolio.rebalance_frequency.months)
    else:
        next_due = portfolio.start_date or today
    if next_due > today or decided_this_month:
        return []
    return [today]


def plan_contribution_buys(
    targets: Mapping[str, Decimal],
    positions: Mapping[str, Position],
    prices: Mapping[str, Decimal],
    cash: Decimal,
    day: date,
) -> tuple[list[SuggestedTransaction], list[RebalanceDecision], list[DataGap]]:
    """Spread ``cash`` over the targets in proportion to how far each is below target.

    Whole shares only, most underallocated asset first; what cannot buy a full
    share stays in cash.
    """

    suggestions: list[SuggestedTransaction] = []
    decisions: list[RebalanceDecision] = []
    gaps: list[DataGap] = []
    values = holding_values(positions, prices)
    total_after = sum(values.values(), ZERO) + cash
    actual_total = sum(values.values(), ZERO)

    needs: dict[str, Decimal] = {}
    for ticker, target in sorted(targets.items()):
        if target <= 0:
            continue
        if _priced(prices, ticker) is None:
            logger.warning("No price for %s; skipping contribution purchase", ticker)
            gaps.append(DataGap("price", ticker, "no latest quote"))
            continue
        needs[ticker] = max(target * total_after - values.get(ticker, ZERO), ZERO)
    if not needs or cash <= 0:
        return suggestions, decisions, gaps

    weight_total = sum((targets[ticker] for ticker in needs), ZERO)
    need_total = sum(needs.values(), ZERO)
    budgets: dict[str, Decimal] = {}
    for ticker, need in needs.items():
        if need_total <= 0:
            budgets[ticker] = cash * targets[ticker] / weight_total
        elif cash >= need_total:
            budgets[ticker] = need + (cash - need_total) * targets[ticker] / weight_total
        else:
            budgets[ticker] = cash * need / need_total

    remaining = cash
    for ticker in sorted(needs, key=lambda t: (-needs[t], t)):
        price = prices[ticker]
        actual = float(values.get(ticker, ZERO) / actual_total) if actual_total > 0 else 0.0
        quantity = _whole_shares(min(budgets[ticker], remaining), price)
        amount = _money(quantity * price)
        while quantity > 0 and amount > remaining:
            quantity -= 1
            amount = _money(quantity * price)
        if quantity < 1:
            decisions.append(
                RebalanceDecision(
                    ticker, "SKIP", actual, float(targets[ticker]), ZERO, price, "budget below one share"
                )
            )
            continue
        remaining -= amount
        reason = (
            f"Contribution purchase: {ticker} at {_percent(actual)} of holdings, "
            f"target {_percent(float(targets[ticker]))}"
        )
        suggestions.append(SuggestedTransaction(day, TransactionType.BUY, amount, reason, ticker, price, quantity))
        decisions.append(RebalanceDecision(ticker, "BUY", actual, float(targets[ticker]), quantity, price, reason))
    return suggestions, decisions, gaps


@dataclass
class _SellCandidate:
    ticker: str
    price: Decimal
    excess: Decimal
    profitability: float
    drift: AllocationDrift
    full_exit: bool


def plan_rebalance(
    targets: Mapping[str, Decimal],
    positions: Mapping[str, Position],
    prices: Mapping[str, Decimal],
    cash: Decimal,
    day: date,
    threshold: RebalanceThreshold | None = None,
) -> tuple[list[SuggestedTransaction], list[RebalanceDecision], list[DataGap]]:
    """Sell overweight positions and buy underweight ones toward target.

    Overweight assets past the threshold are sold down to their target share
    count, most profitable first. Loss-making positions are only sold while
    the purchases still lack funding, unless their target is zero. Purchases
    then go to the assets furthest below target, in whole shares.
    """

    suggestions: list[SuggestedTransaction] = []
    decisions: list[RebalanceDecision] = []
    gaps: list[DataGap] = []
    for ticker in sorted(set(targets) | set(positions)):
        if _priced(prices, ticker) is None:
            logger.warning("No price for %s; left out of rebalancing", ticker)
            gaps.append(DataGap("price", ticker, "no latest quote"))

    drifts = {drift.ticker: drift for drift in current_drift(targets, positions, prices, threshold)}
    total = sum(holding_values(positions, prices).values(), ZERO) + cash
    target_quantity = {
        ticker: _whole_shares(targets.get(ticker, ZERO) * total, prices[ticker]) for ticker in drifts
    }

    sells: list[_SellCandidate] = []
    for ticker, drift in drifts.items():
        held = positions.get(ticker)
        if held is None or not drift.needs_rebalancing or drift.actual <= drift.target:
            continue
        full_exit = drift.target <= 0
        excess = held.quantity if full_exit else (held.quantity - target_quantity[ticker]).to_integral_value(
            rounding=ROUND_FLOOR
        )
        if excess <= 0 or (not full_exit and excess < 1):
            continue
        average = held.average_cost
        profitability = float((prices[ticker] - average) / average) if average > 0 else 0.0
        sells.append(_SellCandidate(ticker, prices[ticker], excess, profitability, drift, full_exit))

    buys = []
    for ticker, drift in drifts.items():
        if drift.target <= 0:
            continue
        held_quantity = positions[ticker].quantity if ticker in positions else ZERO
        deficit = (target_quantity[ticker] - held_quantity).to_integral_value(rounding=ROUND_FLOOR)
        if deficit >= 1:
            buys.append((ticker, deficit))
    buys.sort(key=lambda item: (-(drifts[item[0]].target - drifts[item[0]].actual), item[0]))
    purchase_need = sum((deficit * prices[ticker] for ticker, deficit in buys), ZERO)

    available = cash
    sells.sort(key=lambda candidate: candidate.profitability, reverse=True)
    for candidate in sells:
        quantity = candidate.excess
        if candidate.profitability < 0 and not candidate.full_exit:
            shortfall = purchase_need - available
            if shortfall <= 0:
                decisions.append(
                    RebalanceDecision(
                        candidate.ticker,
                        "HOLD",
                        candidate.drift.actual,
                        candidate.drift.target,
                        ZERO,
                        candidate.price,
                        f"overweight at a loss of {_percent(-candidate.profitability)}; purchases already funded",
                    )
                )
                continue
            needed = (shortfall / candidate.price).to_integral_value(rounding=ROUND_CEILING)
            quantity = min(quantity, needed)
        amount = _money(quantity * candidate.price)
        available += amount
        reason = (
            f"Rebalance sale: {candidate.ticker} at {_percent(candidate.drift.actual)} of holdings, "
            f"target {_percent(candidate.drift.target)}, unrealized return {_percent(candidate.profitability)}"
        )
        suggestions.append(
            SuggestedTransaction(
                day, TransactionType.SELL_REBALANCE, amount, reason, candidate.ticker, candidate.price, quantity
            )
        )
        decisions.append(
            RebalanceDecision(
                candidate.ticker, "SELL", candidate.drift.actual, candidate.drift.target, quantity, candidate.price, reason
            )
        )

    for ticker, deficit in buys:
        price = prices[ticker]
        drift = drifts[ticker]
        quantity = min(deficit, _whole_shares(available, price))
        amount = _money(quantity * price)
        while quantity > 0 and amount > available:
            quantity -= 1
            amount = _money(quantity * price)
        if quantity < 1:
            decisions.append(
                RebalanceDecision(ticker, "SKIP", drift.actual, drift.target, ZERO, price, "not enough cash for one share")
            )
            continue
        available -= amount
        reason = (
            f"Rebalance purchase: {ticker} at {_percent(drift.actual)} of holdings, "
            f"target {_percent(drift.target)}"
        )
        suggestions.append(
            SuggestedTransaction(day, TransactionType.BUY_REBALANCE, amount, reason, ticker, price, quantity)
        )
        decisions.append(RebalanceDecision(ticker, "BUY", drift.actual, drift.target, quantity, price, reason))
    return suggestions, decisions, gaps


def _dividend_already_recorded(
    recorded: Iterable[LedgerEntry],
    event: DividendEvent,
    amount: Decimal,
    tolerance: Decimal,
) -> bool:
    for entry in recorded:
        if entry.type is not TransactionType.DIVIDEND or entry.ticker != event.ticker:
            continue
        if _month_start(entry.date) != _month_start(event.payment_date):
            continue
        if entry.price is not None and entry.price > 0:
            if abs(entry.price - event.amount_per_share) <= tolerance * event.amount_per_share:
                return True
        elif abs(entry.amount - amount) <= tolerance * amount:
            return True
    return False


def plan_dividends(
    committed: Sequence[LedgerEntry],
    events: Mapping[str, Sequence[DividendEvent]],
    recorded: Sequence[LedgerEntry],
    today: date,
    tolerance: float = 0.02,
) -> list[SuggestedTransaction]:
    """Dividend credits paid this month for positions held before the ex-date.

    ``recorded`` holds the non-rejected DIVIDEND rows; a matching one blocks
    the proposal.
    """

    suggestions: list[SuggestedTransaction] = []
    current_month = _month_start(today)
    tolerance_value = Decimal(str(tolerance))
    for ticker in sorted(events):
        for event in sorted(events[ticker], key=lambda e: (e.ex_date, e.payment_date)):
            if event.ex_date > today or _month_start(event.payment_date) != current_month:
                continue
            held = holdings_as_of(committed, event.ex_date).get(ticker)
            if held is None or held.quantity <= 0:
                logger.info("Not holding %s before ex-date %s; no dividend", ticker, event.ex_date)
                continue
            amount = _money(held.quantity * event.amount_per_share)
            if amount <= 0 or _dividend_already_recorded(recorded, event, amount, tolerance_value):
                continue
            reason = (
                f"Dividend of {event.amount_per_share} per share on {held.quantity} {ticker} "
                f"held before ex-date {event.ex_date.isoformat()}"
            )
            suggestions.append(
                SuggestedTransaction(
                    event.payment_date,
                    TransactionType.DIVIDEND,
                    amount,
                    reason,
                    ticker,
                    event.amount_per_share,
                    held.quantity,
                )
            )
    return suggestions


def filter_duplicates(
    suggestions: Iterable[SuggestedTransaction], pending: Iterable[LedgerEntry]
) -> list[SuggestedTransaction]:
    existing = {(entry.date, entry.type, entry.ticker) for entry in pending}
    return [suggestion for suggestion in suggestions if suggestion.key not in existing]


def assign_cash_balances(suggestions: Sequence[SuggestedTransaction], starting_balance: Decimal) -> None:
    balance = starting_balance
    for suggestion in suggestions:
        suggestion.cash_balance_before = balance
        if suggestion.type in (TransactionType.BUY, TransactionType.BUY_REBALANCE, TransactionType.CASH_DEBIT):
            balance -= suggestion.amount
        else:
            balance += suggestion.amount
        suggestion.cash_balance_after = balance


async def cleanup_stale_suggestions(ctx: EngineContext, portfolio_id: str, today: date) -> int:
    """Delete PENDING auto-suggested rows dated before the current month."""

    stale = TransactionFilter(
        statuses=PENDING_ONLY,
        auto_suggested=True,
        end_date=_month_start(today) - timedelta(days=1),
    )
    async with ctx.store.atomic():
        removed = await ctx.store.delete_transactions(portfolio_id, stale)
    if removed:
        logger.info("Removed %d stale suggestions from portfolio %s", removed, portfolio_id)
    return removed


async def _latest_prices(ctx: EngineContext, tickers: Sequence[str]) -> dict[str, Decimal]:
    if not tickers:
        return {}
    try:
        return await ctx.quotes.get_latest_prices(tickers)
    except Exception:  # noqa: BLE001
        logger.exception("Quote provider failed for %s", ", ".join(tickers))
        return {}


async def _dividend_events(ctx: EngineContext, tickers: Sequence[str]) -> dict[str, list[DividendEvent]]:
    async def fetch(ticker: str) -> list[DividendEvent]:
        try:
            return await ctx.dividends.fetch_dividend_events(ticker)
        except Exception:  # noqa: BLE001
            logger.exception("Dividend lookup failed for %s", ticker)
            return []

    results = await asyncio.gather(*(fetch(ticker) for ticker in tickers))
    return dict(zip(tickers, results))


async def _load_committed(ctx: EngineContext, portfolio_id: str) -> list[LedgerEntry]:
    return await ctx.store.list_transactions(portfolio_id, TransactionFilter(statuses=COMMITTED_STATUSES))


async def _load_pending(ctx: EngineContext, portfolio_id: str) -> list[LedgerEntry]:
    return await ctx.store.list_transactions(portfolio_id, TransactionFilter(statuses=PENDING_ONLY))


def _record(plan: SuggestionPlan) -> None:
    for suggestion in plan.suggestions:
        suggestion_counter.add(1, {"type": suggestion.type.value})


async def generate_suggestions(ctx: EngineContext, portfolio_id: str, owner_id: str) -> SuggestionPlan:
    """Run the full planning pass for ``portfolio_id``.

    Only the stale-suggestion cleanup writes to the store; the proposals are
    returned for the caller to persist with :func:`create_pending_transactions`.
    """

    with tracer.start_as_current_span("ledger.generate_suggestions") as span:
        span.set_attribute("portfolio.id", portfolio_id)
        portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
        today = ctx.today()
        month_start = _month_start(today)
        plan = SuggestionPlan(cleaned_up=await cleanup_stale_suggestions(ctx, portfolio_id, today))

        committed, pending, rejected = await asyncio.gather(
            _load_committed(ctx, portfolio_id),
            _load_pending(ctx, portfolio_id),
            ctx.store.list_transactions(
                portfolio_id,
                TransactionFilter(statuses=frozenset({TransactionStatus.REJECTED}), start_date=month_start),
            ),
        )
        positions = replay_holdings(committed).positions
        targets = portfolio.targets()
        prices, events = await asyncio.gather(
            _latest_prices(ctx, sorted(set(targets) | set(positions))),
            _dividend_events(ctx, sorted(positions)),
        )
        cash = cash_balance(committed)

        decided = any(
            entry.type in CONTRIBUTION_TYPES and entry.is_auto_suggested and entry.date >= month_start
            for entry in [*pending, *rejected]
        )
        plan.due_dates = next_contribution_dates(portfolio, committed, today, decided_this_month=decided)
        plan.contribution_due = bool(plan.due_dates)

        for due in plan.due_dates:
            contribution = portfolio.monthly_contribution
            plan.suggestions.append(
                SuggestedTransaction(
                    due,
                    TransactionType.CASH_CREDIT,
                    contribution,
                    f"Scheduled {portfolio.rebalance_frequency.value} contribution",
                )
            )
            budget = cash + contribution
            drifts = current_drift(targets, positions, prices, ctx.threshold)
            invested = any(drift.value > 0 for drift in drifts)
            if invested and any(drift.needs_rebalancing for drift in drifts):
                trades, decisions, gaps = plan_rebalance(targets, positions, prices, budget, due, ctx.threshold)
            else:
                trades, decisions, gaps = plan_contribution_buys(targets, positions, prices, budget, due)
            plan.suggestions.extend(trades)
            plan.decisions.extend(decisions)
            plan.data_gaps.extend(gaps)

        recorded = [entry for entry in [*committed, *pending] if entry.type is TransactionType.DIVIDEND]
        plan.suggestions.extend(
            plan_dividends(committed, events, recorded, today, ctx.settings.dividend_amount_tolerance)
        )

        plan.suggestions = filter_duplicates(plan.suggestions, pending)
        assign_cash_balances(plan.suggestions, cash)
        _record(plan)
        span.set_attribute("ledger.suggestions", len(plan.suggestions))
        logger.info(
            "Generated %d suggestions for portfolio %s (contribution due: %s)",
            len(plan.suggestions),
            portfolio_id,
            plan.contribution_due,
        )
        return plan


async def rebalancing_status(ctx: EngineContext, portfolio_id: str, owner_id: str) -> RebalancingStatus:
    """Whether the current holdings drift past the rebalancing threshold."""

    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    committed = await _load_committed(ctx, portfolio_id)
    positions = replay_holdings(committed).positions
    targets = portfolio.targets()
    prices = await _latest_prices(ctx, sorted(set(targets) | set(positions)))
    drifts = current_drift(targets, positions, prices, ctx.threshold)
    if not any(drift.value > 0 for drift in drifts):
        return RebalancingStatus(False, 0.0, [], drifts)
    flagged = [drift for drift in drifts if drift.needs_rebalancing]
    details = [
        f"{drift.ticker}: {_percent(drift.actual)} of holdings vs target {_percent(drift.target)}"
        for drift in flagged
    ]
    max_deviation = max((abs(drift.deviation) for drift in drifts), default=0.0)
    return RebalancingStatus(bool(flagged), max_deviation, details, drifts)


async def rebalancing_suggestions(ctx: EngineContext, portfolio_id: str, owner_id: str) -> SuggestionPlan:
    """Standalone rebalancing pass funded by the current cash balance only."""

    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    today = ctx.today()
    committed, pending = await asyncio.gather(
        _load_committed(ctx, portfolio_id), _load_pending(ctx, portfolio_id)
    )
    positions = replay_holdings(committed).positions
    targets = portfolio.targets()
    prices = await _latest_prices(ctx, sorted(set(targets) | set(positions)))
    drifts = current_drift(targets, positions, prices, ctx.threshold)
    plan = SuggestionPlan()
    if not any(drift.value > 0 for drift in drifts) or not any(drift.needs_rebalancing for drift in drifts):
        return plan
    cash = cash_balance(committed)
    trades, plan.decisions, plan.data_gaps = plan_rebalance(targets, positions, prices, cash, today, ctx.threshold)
    plan.suggestions = filter_duplicates(trades, pending)
    assign_cash_balances(plan.suggestions, cash)
    _record(plan)
    return plan


async def dividend_suggestions(ctx: EngineContext, portfolio_id: str, owner_id: str) -> list[SuggestedTransaction]:
    await load_portfolio(ctx, portfolio_id, owner_id)
    committed, pending = await asyncio.gather(
        _load_committed(ctx, portfolio_id), _load_pending(ctx, portfolio_id)
    )
    positions = replay_holdings(committed).positions
    events = await _dividend_events(ctx, sorted(positions))
    recorded = [entry for entry in [*committed, *pending] if entry.type is TransactionType.DIVIDEND]
    proposals = plan_dividends(
        committed, events, recorded, ctx.today(), ctx.settings.dividend_amount_tolerance
    )
    proposals = filter_duplicates(proposals, pending)
    assign_cash_balances(proposals, cash_balance(committed))
    return proposals


async def create_pending_transactions(
    ctx: EngineContext,
    portfolio_id: str,
    owner_id: str,
    suggestions: Sequence[SuggestedTransaction],
) -> list[str]:
    """Persist proposals as PENDING rows in one unit.

    A proposal matching an existing PENDING row reuses that row's id; one
    matching a committed row is skipped.
    """

    await load_portfolio(ctx, portfolio_id, owner_id)
    ids: list[str] = []
    async with ctx.store.atomic():
        existing = await ctx.store.list_transactions(portfolio_id, TransactionFilter(statuses=NOT_REJECTED))
        index = {(entry.date, entry.type, entry.ticker): entry for entry in existing}
        for suggestion in suggestions:
            match = index.get(suggestion.key)
            if match is not None:
                if match.status is TransactionStatus.PENDING:
                    ids.append(match.id)
                continue
            created = await ctx.store.add_transaction(suggestion.to_entry(portfolio_id))
            index[suggestion.key] = created
            ids.append(created.id)
    logger.info("Stored %d pending transactions for portfolio %s", len(ids), portfolio_id)
    return ids


__all__ = [
    "RebalancingStatus",
    "SuggestedTransaction",
    "SuggestionPlan",
    "assign_cash_balances",
    "cleanup_stale_suggestions",
    "create_pending_transactions",
    "current_drift",
    "dividend_suggestions",
    "filter_duplicates",
    "generate_suggestions",
    "holding_values",
    "next_contribution_dates",
    "plan_contribution_buys",
    "plan_dividends",
    "plan_rebalance",
    "rebalancing_status",
    "rebalancing_suggestions",
]
