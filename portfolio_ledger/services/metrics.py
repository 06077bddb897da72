"""Portfolio performance metrics computed from the replayed ledger.

The snapshot produced here is a cache: every figure can be rebuilt from the
ledger and the quote history. Point-in-time pricing is used for the monthly
evolution series so that no month is valued with a later quote.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field, fields, is_dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

import pandas as pd
from opentelemetry import trace

from ..core.errors import DataGap, LedgerInconsistency
from ..domain import (
    COMMITTED_STATUSES,
    CONTRIBUTION_TYPES,
    CompanyProfile,
    LedgerEntry,
    PortfolioConfig,
    TransactionType,
    utcnow,
)
from ..repositories.base import TransactionFilter
from .allocation import RebalanceThreshold, needs_rebalancing
from .context import EngineContext
from .ledger import (
    ZERO,
    ClosedPosition,
    HoldingsBook,
    Position,
    closed_positions,
    contribution_totals,
    dividends_for_current_holdings,
    sort_for_replay,
)
from .portfolios import load_portfolio

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

OTHER_BUCKET = "Outros"
MONTHS_PER_YEAR = 12
# drawdowns up to 0.01% below the peak are rounding noise
DRAWDOWN_THRESHOLD = 0.0001


@dataclass
class HoldingView:
    ticker: str
    quantity: Decimal
    average_price: Decimal
    total_invested: Decimal
    current_price: Decimal
    current_value: Decimal
    return_value: Decimal
    return_percentage: float | None
    dividends: Decimal
    return_with_dividends: Decimal
    return_with_dividends_percentage: float | None
    actual_allocation: float
    target_allocation: float
    allocation_diff: float
    needs_rebalancing: bool
    price_missing: bool = False


@dataclass
class EvolutionPoint:
    month: str
    valued_on: date
    portfolio_value: Decimal
    cash_balance: Decimal
    cumulative_invested: Decimal
    cumulative_withdrawn: Decimal = ZERO

    @property
    def total_return(self) -> float | None:
        """Return on contributed capital up to this point, withdrawals added back."""

        gain = self.portfolio_value + self.cumulative_withdrawn - self.cumulative_invested
        return _ratio(gain, self.cumulative_invested)


@dataclass
class MonthlyReturn:
    month: str
    value: float | None


@dataclass
class AllocationSlice:
    name: str
    value: Decimal
    percentage: float | None


@dataclass
class DrawdownPoint:
    month: str
    value: Decimal
    peak: Decimal
    drawdown: float
    in_drawdown: bool


@dataclass
class DrawdownPeriod:
    start_month: str
    end_month: str | None
    duration_months: int
    depth: float
    recovered: bool = False


@dataclass
class BenchmarkPoint:
    """Accumulated return of the portfolio and of the fixed-rate benchmarks."""

    month: str
    portfolio: float | None
    cdi: float
    ibovespa: float


@dataclass
class PerformanceSummary:
    current_drawdown: float = 0.0
    max_drawdown_depth: float = 0.0
    drawdown_count: int = 0
    average_recovery_months: float | None = None
    best_month: MonthlyReturn | None = None
    worst_month: MonthlyReturn | None = None
    average_monthly_return: float | None = None
    cdi_return: float | None = None
    ibovespa_return: float | None = None
    outperformance_cdi: float | None = None
    outperformance_ibovespa: float | None = None


@dataclass
class PortfolioMetrics:
    portfolio_id: str
    current_value: Decimal
    cash_balance: Decimal
    total_invested: Decimal
    total_withdrawn: Decimal
    total_dividends: Decimal
    total_return: float | None
    annualized_return: float | None
    volatility: float | None
    sharpe_ratio: float | None
    max_drawdown: float | None
    holdings: list[HoldingView] = field(default_factory=list)
    closed_positions: list[ClosedPosition] = field(default_factory=list)
    monthly_returns: list[MonthlyReturn] = field(default_factory=list)
    evolution: list[EvolutionPoint] = field(default_factory=list)
    sector_allocation: list[AllocationSlice] = field(default_factory=list)
    industry_allocation: list[AllocationSlice] = field(default_factory=list)
    data_gaps: list[DataGap] = field(default_factory=list)
    inconsistencies: list[LedgerInconsistency] = field(default_factory=list)
    drawdown_history: list[DrawdownPoint] = field(default_factory=list)
    drawdown_periods: list[DrawdownPeriod] = field(default_factory=list)
    benchmark_comparison: list[BenchmarkPoint] = field(default_factory=list)
    summary: PerformanceSummary = field(default_factory=PerformanceSummary)
    last_calculated_at: datetime = field(default_factory=utcnow)


def sanitize_number(value: float | Decimal | None) -> float | None:
    """Return ``value`` as a float, or ``None`` for missing, NaN or infinite."""

    if value is None:
        return None
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        value = float(value)
    if not math.isfinite(value):
        return None
    return float(value)


def _ratio(numerator: Decimal, denominator: Decimal) -> float | None:
    if denominator <= 0:
        return None
    return sanitize_number(numerator / denominator)


def _sanitize_floats(record):
    changes = {}
    for item in fields(record):
        value = getattr(record, item.name)
        if isinstance(value, float):
            changes[item.name] = sanitize_number(value)
        elif is_dataclass(value):
            changes[item.name] = _sanitize_floats(value)
    return replace(record, **changes) if changes else record


def sanitize_metrics(metrics: PortfolioMetrics) -> PortfolioMetrics:
    """Replace every NaN/infinite float in the snapshot with ``None``."""

    return replace(
        _sanitize_floats(metrics),
        holdings=[_sanitize_floats(view) for view in metrics.holdings],
        closed_positions=[_sanitize_floats(position) for position in metrics.closed_positions],
        monthly_returns=[_sanitize_floats(point) for point in metrics.monthly_returns],
        sector_allocation=[_sanitize_floats(item) for item in metrics.sector_allocation],
        industry_allocation=[_sanitize_floats(item) for item in metrics.industry_allocation],
        drawdown_history=[_sanitize_floats(point) for point in metrics.drawdown_history],
        drawdown_periods=[_sanitize_floats(period) for period in metrics.drawdown_periods],
        benchmark_comparison=[_sanitize_floats(point) for point in metrics.benchmark_comparison],
    )


def build_holding_views(
    positions: Mapping[str, Position],
    prices: Mapping[str, Decimal],
    targets: Mapping[str, Decimal],
    dividends: Mapping[str, Decimal],
    threshold: RebalanceThreshold | None = None,
) -> list[HoldingView]:
    """Price the open positions; allocations are shares of the holdings value."""

    values = {ticker: position.quantity * prices.get(ticker, ZERO) for ticker, position in positions.items()}
    total_value = sum(values.values(), ZERO)
    views: list[HoldingView] = []
    for ticker, position in positions.items():
        price = prices.get(ticker, ZERO)
        value = values[ticker]
        received = dividends.get(ticker, ZERO)
        gain = value - position.total_invested
        actual = float(value / total_value) if total_value > 0 else 0.0
        target = float(targets.get(ticker, ZERO))
        views.append(
            HoldingView(
                ticker=ticker,
                quantity=position.quantity,
                average_price=position.average_cost,
                total_invested=position.total_invested,
                current_price=price,
                current_value=value,
                return_value=gain,
                return_percentage=_ratio(gain, position.total_invested),
                dividends=received,
                return_with_dividends=gain + received,
                return_with_dividends_percentage=_ratio(gain + received, position.total_invested),
                actual_allocation=actual,
                target_allocation=target,
                allocation_diff=actual - target,
                needs_rebalancing=needs_rebalancing(actual, target, threshold),
                price_missing=ticker not in prices,
            )
        )
    views.sort(key=lambda view: view.current_value, reverse=True)
    return views


async def _safe_prices_as_of(ctx: EngineContext, tickers: Sequence[str], day: date) -> dict[str, Decimal]:
    if not tickers:
        return {}
    try:
        return await ctx.quotes.get_prices_as_of(tickers, day)
    except Exception:  # noqa: BLE001
        logger.exception("Quote provider failed for %s as of %s", ", ".join(tickers), day)
        return {}


async def build_evolution(
    ctx: EngineContext,
    entries: Iterable[LedgerEntry],
    today: date,
    gaps: list[DataGap] | None = None,
) -> list[EvolutionPoint]:
    """One point per calendar month from the first ledger month to ``today``.

    Each month replays the rows dated up to its last day and prices the open
    positions as of ``min(month_end, today)``. Price queries for all months are
    issued concurrently.
    """

    ordered = sort_for_replay(entry for entry in entries if entry.is_committed and entry.date <= today)
    if not ordered:
        return []

    book = HoldingsBook()
    credits = ZERO
    plain_buys = ZERO
    withdrawn = ZERO
    cursor = 0
    states: list[tuple[str, date, dict[str, Position], Decimal, Decimal, Decimal]] = []
    for period in pd.period_range(start=pd.Timestamp(ordered[0].date), end=pd.Timestamp(today), freq="M"):
        valued_on = min(period.end_time.date(), today)
        while cursor < len(ordered) and ordered[cursor].date <= valued_on:
            entry = ordered[cursor]
            book.apply(entry)
            if entry.type in CONTRIBUTION_TYPES:
                credits += entry.amount
            elif entry.type is TransactionType.BUY:
                plain_buys += entry.amount
            elif entry.type is TransactionType.CASH_DEBIT:
                withdrawn += entry.amount
            cursor += 1
        invested = credits if credits > 0 else plain_buys
        states.append((str(period), valued_on, book.open_positions(), book.cash, invested, withdrawn))

    price_maps = await asyncio.gather(
        *(_safe_prices_as_of(ctx, sorted(positions), valued_on) for _, valued_on, positions, _, _, _ in states)
    )

    points: list[EvolutionPoint] = []
    reported: set[str] = set()
    for (month, valued_on, positions, cash, invested, withdrawn), prices in zip(states, price_maps):
        value = cash
        for ticker, position in positions.items():
            price = prices.get(ticker)
            if price is None:
                if ticker not in reported:
                    reported.add(ticker)
                    logger.warning("No price for %s as of %s; valued at zero", ticker, valued_on)
                    if gaps is not None:
                        gaps.append(DataGap("price", ticker, f"no quote on or before {valued_on.isoformat()}"))
                continue
            value += position.quantity * price
        points.append(EvolutionPoint(month, valued_on, value, cash, invested, withdrawn))
    return points


def monthly_returns(evolution: Sequence[EvolutionPoint]) -> list[MonthlyReturn]:
    """Simple change between consecutive points; zero when the base is not positive."""

    returns: list[MonthlyReturn] = []
    for previous, current in zip(evolution, evolution[1:]):
        if previous.portfolio_value <= 0:
            returns.append(MonthlyReturn(current.month, 0.0))
            continue
        change = (current.portfolio_value - previous.portfolio_value) / previous.portfolio_value
        returns.append(MonthlyReturn(current.month, float(change)))
    return returns


def annualized_volatility(returns: Sequence[float]) -> float | None:
    if len(returns) < 2:
        return None
    return sanitize_number(float(pd.Series(returns, dtype="float64").std(ddof=0)) * math.sqrt(MONTHS_PER_YEAR))


def annualized_return(total_return: float | None, months: int) -> float | None:
    """Compound ``total_return`` over ``months``; ``None`` below a year of history."""

    if total_return is None or months < MONTHS_PER_YEAR or 1 + total_return <= 0:
        return None
    return sanitize_number((1 + total_return) ** (MONTHS_PER_YEAR / months) - 1)


def sharpe_ratio(annual_return: float | None, volatility: float | None, risk_free_rate: float = 0.0) -> float | None:
    if annual_return is None or not volatility:
        return None
    return sanitize_number((annual_return - risk_free_rate) / volatility)


def max_drawdown(values: Sequence[Decimal | float]) -> float | None:
    """Largest peak-to-trough decline as a positive fraction."""

    if len(values) < 2:
        return None
    peak = float(values[0])
    worst = 0.0
    for raw in values:
        value = float(raw)
        if value > peak:
            peak = value
        if peak > 0:
            worst = max(worst, (peak - value) / peak)
    return worst


def drawdown_analysis(
    evolution: Sequence[EvolutionPoint],
) -> tuple[list[DrawdownPoint], list[DrawdownPeriod]]:
    """Running peak and drawdown per month, plus the drawdown periods.

    A period opens on the first month more than 0.01% below the running peak
    and closes, recovered, on the month a new peak is set. Its duration counts
    the months from its start to that recovery, or to the end of the series
    for a period still open.
    """

    history: list[DrawdownPoint] = []
    periods: list[DrawdownPeriod] = []
    if not evolution:
        return history, periods

    peak = evolution[0].portfolio_value
    current: DrawdownPeriod | None = None
    started_at = 0
    for index, point in enumerate(evolution):
        value = point.portfolio_value
        if value > peak:
            peak = value
            if current is not None:
                current.end_month = point.month
                current.duration_months = index - started_at
                current.recovered = True
                periods.append(current)
                current = None
        drawdown = float((peak - value) / peak) if peak > 0 else 0.0
        in_drawdown = drawdown > DRAWDOWN_THRESHOLD
        history.append(DrawdownPoint(point.month, value, peak, drawdown, in_drawdown))
        if not in_drawdown:
            continue
        if current is None:
            current = DrawdownPeriod(point.month, None, 0, drawdown)
            started_at = index
        else:
            current.depth = max(current.depth, drawdown)

    if current is not None:
        current.duration_months = len(evolution) - started_at
        periods.append(current)
    return history, periods


def _accumulated(annual_rate: float, months: int) -> float:
    monthly = (1 + annual_rate) ** (1 / MONTHS_PER_YEAR) - 1
    return (1 + monthly) ** months - 1


def benchmark_comparison(
    evolution: Sequence[EvolutionPoint],
    cdi_rate: float,
    ibovespa_rate: float,
) -> list[BenchmarkPoint]:
    """Portfolio return beside CDI and Ibovespa compounded monthly at fixed rates.

    The benchmarks start at zero on the first month of the series.
    """

    return [
        BenchmarkPoint(
            month=point.month,
            portfolio=point.total_return,
            cdi=_accumulated(cdi_rate, index),
            ibovespa=_accumulated(ibovespa_rate, index),
        )
        for index, point in enumerate(evolution)
    ]


def performance_summary(
    returns: Sequence[MonthlyReturn],
    history: Sequence[DrawdownPoint],
    periods: Sequence[DrawdownPeriod],
    benchmarks: Sequence[BenchmarkPoint],
) -> PerformanceSummary:
    summary = PerformanceSummary(
        current_drawdown=history[-1].drawdown if history else 0.0,
        max_drawdown_depth=max((period.depth for period in periods), default=0.0),
        drawdown_count=len(periods),
    )
    recoveries = [period.duration_months for period in periods if period.recovered]
    if recoveries:
        summary.average_recovery_months = sum(recoveries) / len(recoveries)

    known = [item for item in returns if item.value is not None]
    if known:
        summary.best_month = max(known, key=lambda item: item.value)
        if len(known) > 1:
            summary.worst_month = min(known, key=lambda item: item.value)
        summary.average_monthly_return = sanitize_number(
            float(pd.Series([item.value for item in known], dtype="float64").mean())
        )

    if benchmarks:
        last = benchmarks[-1]
        summary.cdi_return = last.cdi
        summary.ibovespa_return = last.ibovespa
        if last.portfolio is not None:
            summary.outperformance_cdi = last.portfolio - last.cdi
            summary.outperformance_ibovespa = last.portfolio - last.ibovespa
    return summary


def allocation_breakdown(
    holdings: Sequence[HoldingView],
    profiles: Mapping[str, CompanyProfile],
    attribute: str,
) -> list[AllocationSlice]:
    """Group holding values by sector or industry, unknowns under ``Outros``."""

    buckets: dict[str, Decimal] = {}
    for view in holdings:
        profile = profiles.get(view.ticker)
        name = getattr(profile, attribute, None) if profile else None
        bucket = name or OTHER_BUCKET
        buckets[bucket] = buckets.get(bucket, ZERO) + view.current_value
    total = sum(buckets.values(), ZERO)
    slices = [AllocationSlice(name, value, _ratio(value, total)) for name, value in buckets.items()]
    slices.sort(key=lambda item: item.value, reverse=True)
    return slices


async def _safe_latest_prices(ctx: EngineContext, tickers: Sequence[str]) -> dict[str, Decimal]:
    if not tickers:
        return {}
    try:
        return await ctx.quotes.get_latest_prices(tickers)
    except Exception:  # noqa: BLE001
        logger.exception("Quote provider failed for %s", ", ".join(tickers))
        return {}


async def _safe_profiles(ctx: EngineContext, tickers: Sequence[str]) -> dict[str, CompanyProfile]:
    if not tickers:
        return {}
    try:
        return await ctx.profiles.get_company_sector_industry(tickers)
    except Exception:  # noqa: BLE001
        logger.exception("Company profile lookup failed for %s", ", ".join(tickers))
        return {}


async def compute_metrics(ctx: EngineContext, portfolio: PortfolioConfig) -> PortfolioMetrics:
    """Build the full metrics snapshot of ``portfolio`` without persisting it."""

    today = ctx.today()
    entries = await ctx.store.list_transactions(
        portfolio.id, TransactionFilter(statuses=COMMITTED_STATUSES, end_date=today)
    )
    book = HoldingsBook()
    for entry in sort_for_replay(entries):
        book.apply(entry)
    positions = book.open_positions()
    tickers = sorted(positions)
    gaps: list[DataGap] = []

    prices, profiles, evolution = await asyncio.gather(
        _safe_latest_prices(ctx, tickers),
        _safe_profiles(ctx, tickers),
        build_evolution(ctx, entries, today, gaps),
    )
    for ticker in tickers:
        if ticker not in prices:
            logger.warning("No latest price for %s in portfolio %s", ticker, portfolio.id)
            gaps.append(DataGap("price", ticker, "no latest quote"))
        if ticker not in profiles:
            gaps.append(DataGap("sector", ticker, "no sector or industry data"))

    holdings = build_holding_views(
        positions,
        prices,
        portfolio.targets(),
        dividends_for_current_holdings(entries, positions),
        ctx.threshold,
    )
    totals = contribution_totals(entries)
    cash = book.cash
    current_value = sum((view.current_value for view in holdings), ZERO) + cash
    total_return = _ratio(current_value + totals.total_withdrawn - totals.total_invested, totals.total_invested)
    returns = monthly_returns(evolution)
    volatility = annualized_volatility([point.value for point in returns if point.value is not None])
    annual = annualized_return(total_return, len(evolution))
    history, periods = drawdown_analysis(evolution)
    benchmarks = benchmark_comparison(evolution, ctx.settings.cdi_annual_rate, ctx.settings.ibovespa_annual_rate)

    return PortfolioMetrics(
        portfolio_id=portfolio.id,
        current_value=current_value,
        cash_balance=cash,
        total_invested=totals.total_invested,
        total_withdrawn=totals.total_withdrawn,
        total_dividends=totals.total_dividends,
        total_return=total_return,
        annualized_return=annual,
        volatility=volatility,
        sharpe_ratio=sharpe_ratio(annual, volatility, ctx.settings.risk_free_rate),
        max_drawdown=max_drawdown([point.portfolio_value for point in evolution]),
        holdings=holdings,
        closed_positions=closed_positions(entries),
        monthly_returns=returns,
        evolution=evolution,
        sector_allocation=allocation_breakdown(holdings, profiles, "sector"),
        industry_allocation=allocation_breakdown(holdings, profiles, "industry"),
        data_gaps=gaps,
        inconsistencies=list(book.inconsistencies),
        drawdown_history=history,
        drawdown_periods=periods,
        benchmark_comparison=benchmarks,
        summary=performance_summary(returns, history, periods, benchmarks),
    )


async def refresh_metrics(ctx: EngineContext, portfolio_id: str, owner_id: str) -> PortfolioMetrics:
    """Recompute, sanitise and upsert the snapshot of a portfolio."""

    with tracer.start_as_current_span("ledger.refresh_metrics") as span:
        span.set_attribute("portfolio.id", portfolio_id)
        portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
        metrics = sanitize_metrics(await compute_metrics(ctx, portfolio))
        async with ctx.store.atomic():
            await ctx.store.upsert_metrics(metrics)
        logger.info(
            "Refreshed metrics for %s: value=%s return=%s gaps=%d",
            portfolio_id,
            metrics.current_value,
            metrics.total_return,
            len(metrics.data_gaps),
        )
        return metrics


async def get_metrics(ctx: EngineContext, portfolio_id: str, owner_id: str) -> PortfolioMetrics:
    """Cached snapshot, refreshed when none is stored."""

    await load_portfolio(ctx, portfolio_id, owner_id)
    cached = await ctx.store.get_metrics(portfolio_id)
    if cached is not None:
        return cached
    return await refresh_metrics(ctx, portfolio_id, owner_id)


async def invalidate_metrics(ctx: EngineContext, portfolio_id: str) -> None:
    await ctx.store.delete_metrics(portfolio_id)


__all__ = [
    "AllocationSlice",
    "BenchmarkPoint",
    "DrawdownPeriod",
    "DrawdownPoint",
    "EvolutionPoint",
    "HoldingView",
    "MonthlyReturn",
    "OTHER_BUCKET",
    "PerformanceSummary",
    "PortfolioMetrics",
    "allocation_breakdown",
    "annualized_return",
    "annualized_volatility",
    "benchmark_comparison",
    "build_evolution",
    "build_holding_views",
    "compute_metrics",
    "drawdown_analysis",
    "get_metrics",
    "invalidate_metrics",
    "max_drawdown",
    "monthly_returns",
    "performance_summary",
    "refresh_metrics",
    "sanitize_metrics",
    "sanitize_number",
    "sharpe_ratio",
]
