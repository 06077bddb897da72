import math
from datetime import date
from decimal import Decimal

import pytest

from ledger_builders import OWNER, buy, credit, debit, dividend, make_context, seed
from portfolio_ledger.domain import CompanyProfile
from portfolio_ledger.providers import InMemoryMarketData
from portfolio_ledger.schemas import AssetAllocationInput, PortfolioCreateRequest
from portfolio_ledger.services.metrics import (
    OTHER_BUCKET,
    EvolutionPoint,
    MonthlyReturn,
    PerformanceSummary,
    PortfolioMetrics,
    annualized_return,
    annualized_volatility,
    benchmark_comparison,
    build_evolution,
    compute_metrics,
    drawdown_analysis,
    get_metrics,
    invalidate_metrics,
    max_drawdown,
    monthly_returns,
    performance_summary,
    refresh_metrics,
    sanitize_metrics,
    sanitize_number,
    sharpe_ratio,
)
from portfolio_ledger.services.portfolios import create_portfolio

D = Decimal
TODAY = date(2024, 3, 20)


def _point(month: str, value) -> EvolutionPoint:
    return EvolutionPoint(month, date(2024, 1, 31), D(str(value)), D("0"), D("0"))


async def _portfolio(ctx, **overrides):
    request = PortfolioCreateRequest(
        name="Metrics",
        monthly_contribution=D("1000"),
        start_date=date(2024, 1, 1),
        assets=[
            AssetAllocationInput(ticker="AAA", target_allocation=D("0.5")),
            AssetAllocationInput(ticker="BBB", target_allocation=D("0.5")),
        ],
        **overrides,
    )
    return await create_portfolio(ctx, OWNER, request)


def _market() -> InMemoryMarketData:
    return InMemoryMarketData(
        prices={
            "AAA": {date(2024, 1, 2): 10, date(2024, 1, 31): 11, date(2024, 2, 29): 12, date(2024, 3, 15): 15},
            "BBB": {date(2024, 1, 2): 20, date(2024, 2, 10): 18, date(2024, 3, 1): 25},
        },
        profiles={"AAA": CompanyProfile(sector="Energy", industry="Oil")},
    )


def test_monthly_returns_are_simple_changes():
    points = [_point("2024-01", 100), _point("2024-02", 110), _point("2024-03", 99)]

    returns = monthly_returns(points)

    assert [r.month for r in returns] == ["2024-02", "2024-03"]
    assert returns[0].value == pytest.approx(0.10)
    assert returns[1].value == pytest.approx(-0.10)
    assert monthly_returns([_point("2024-01", 0), _point("2024-02", 50)])[0].value == 0.0


def test_volatility_is_annualized_population_std():
    assert annualized_volatility([0.1]) is None
    assert annualized_volatility([0.1, -0.1]) == pytest.approx(0.1 * math.sqrt(12))


def test_annualized_return_requires_a_year_of_history():
    assert annualized_return(0.5, 11) is None
    assert annualized_return(None, 24) is None
    assert annualized_return(0.21, 24) == pytest.approx(0.1)
    assert annualized_return(-1.5, 24) is None


def test_sharpe_ratio_guards_zero_volatility():
    assert sharpe_ratio(0.1, 0.2) == pytest.approx(0.5)
    assert sharpe_ratio(0.1, 0.0) is None
    assert sharpe_ratio(None, 0.2) is None
    assert sharpe_ratio(0.1, 0.2, risk_free_rate=0.05) == pytest.approx(0.25)


def test_max_drawdown_walks_forward():
    assert max_drawdown([D("100")]) is None
    assert max_drawdown([100, 120, 90, 130, 117]) == pytest.approx(0.25)
    assert max_drawdown([100, 110, 120]) == 0.0


def _series(*values):
    return [_point(f"2024-{index:02d}", value) for index, value in enumerate(values, start=1)]


def test_drawdown_history_tracks_running_peak():
    history, _ = drawdown_analysis(_series(100, 120, 90, 130, 117))

    assert [point.peak for point in history] == [D("100"), D("120"), D("120"), D("130"), D("130")]
    assert [point.drawdown for point in history] == pytest.approx([0.0, 0.0, 0.25, 0.0, 0.1])
    assert [point.in_drawdown for point in history] == [False, False, True, False, True]


def test_drawdown_periods_close_on_new_peak():
    _, periods = drawdown_analysis(_series(100, 120, 90, 100, 130, 117))

    recovered, ongoing = periods
    assert (recovered.start_month, recovered.end_month, recovered.duration_months) == ("2024-03", "2024-05", 2)
    assert recovered.depth == pytest.approx(0.25)
    assert recovered.recovered
    assert (ongoing.start_month, ongoing.end_month, ongoing.duration_months) == ("2024-06", None, 1)
    assert ongoing.depth == pytest.approx(0.1)
    assert not ongoing.recovered


def test_tiny_dips_are_not_drawdowns():
    history, periods = drawdown_analysis(_series("100", "99.995", "100"))

    assert not history[1].in_drawdown
    assert periods == []
    assert drawdown_analysis([]) == ([], [])


def test_benchmarks_compound_monthly_from_the_first_point():
    points = [
        EvolutionPoint(f"m{index}", date(2024, 1, 31), D("1100"), D("0"), D("1000")) for index in range(13)
    ]

    comparison = benchmark_comparison(points, 0.1175, 0.08)

    assert comparison[0].cdi == 0.0
    assert comparison[0].ibovespa == 0.0
    assert comparison[12].cdi == pytest.approx(0.1175)
    assert comparison[12].ibovespa == pytest.approx(0.08)
    assert comparison[6].cdi == pytest.approx(1.1175 ** 0.5 - 1)
    assert all(point.portfolio == pytest.approx(0.1) for point in comparison)


def test_benchmark_portfolio_return_is_none_without_capital():
    comparison = benchmark_comparison(_series(100), 0.1175, 0.08)
    assert comparison[0].portfolio is None


def test_performance_summary():
    evolution = _series(100, 120, 90, 100, 130, 117)
    returns = monthly_returns(evolution)
    history, periods = drawdown_analysis(evolution)
    benchmarks = benchmark_comparison(
        [
            EvolutionPoint("2024-01", date(2024, 1, 31), D("1000"), D("0"), D("1000")),
            EvolutionPoint("2024-02", date(2024, 2, 29), D("1200"), D("0"), D("1000")),
        ],
        0.1175,
        0.08,
    )

    summary = performance_summary(returns, history, periods, benchmarks)

    assert summary.current_drawdown == pytest.approx(0.1)
    assert summary.max_drawdown_depth == pytest.approx(0.25)
    assert summary.drawdown_count == 2
    assert summary.average_recovery_months == 2
    assert summary.best_month.month == "2024-05"
    assert summary.best_month.value == pytest.approx(0.3)
    assert summary.worst_month.month == "2024-03"
    assert summary.average_monthly_return == pytest.approx((0.2 - 0.25 + 1 / 9 + 0.3 - 0.1) / 5)
    monthly_cdi = 1.1175 ** (1 / 12) - 1
    assert summary.cdi_return == pytest.approx(monthly_cdi)
    assert summary.outperformance_cdi == pytest.approx(0.2 - monthly_cdi)


def test_performance_summary_of_a_single_month():
    summary = performance_summary(monthly_returns(_series(100, 110)), [], [], [])

    assert summary.best_month.value == pytest.approx(0.1)
    assert summary.worst_month is None
    assert summary.average_recovery_months is None
    assert summary.drawdown_count == 0
    assert summary.cdi_return is None


def test_sanitize_replaces_nan_and_infinity():
    assert sanitize_number(float("nan")) is None
    assert sanitize_number(float("inf")) is None
    assert sanitize_number(D("NaN")) is None
    assert sanitize_number(D("1.5")) == 1.5

    metrics = PortfolioMetrics(
        portfolio_id="p",
        current_value=D("0"),
        cash_balance=D("0"),
        total_invested=D("0"),
        total_withdrawn=D("0"),
        total_dividends=D("0"),
        total_return=float("nan"),
        annualized_return=None,
        volatility=float("inf"),
        sharpe_ratio=None,
        max_drawdown=0.1,
        summary=PerformanceSummary(
            average_monthly_return=float("nan"),
            best_month=MonthlyReturn("2024-02", float("inf")),
        ),
    )
    clean = sanitize_metrics(metrics)
    assert clean.summary.average_monthly_return is None
    assert clean.summary.best_month.value is None
    assert clean.total_return is None
    assert clean.volatility is None
    assert clean.max_drawdown == 0.1


@pytest.mark.asyncio
async def test_evolution_uses_point_in_time_prices():
    market = _market()
    ctx = make_context(today=TODAY, market=market)
    ledger = [
        credit(date(2024, 1, 2), 1000),
        buy(date(2024, 1, 2), "AAA", 50, 10),
        buy(date(2024, 2, 15), "BBB", 10, 18),
    ]

    points = await build_evolution(ctx, ledger, TODAY)

    assert [point.month for point in points] == ["2024-01", "2024-02", "2024-03"]
    assert points[0].valued_on == date(2024, 1, 31)
    assert points[0].portfolio_value == D("500") + D("50") * 11
    assert points[1].portfolio_value == D("320") + D("50") * 12 + D("10") * 18
    # current month is valued as of today, not month end
    assert points[2].valued_on == TODAY
    assert points[2].portfolio_value == D("320") + D("50") * 15 + D("10") * 25
    assert all(point.cumulative_invested == D("1000") for point in points)


@pytest.mark.asyncio
async def test_compute_metrics_snapshot():
    market = _market()
    ctx = make_context(today=TODAY, market=market)
    portfolio = await _portfolio(ctx)
    await seed(
        ctx,
        credit(date(2024, 1, 2), 1000, portfolio_id=portfolio.id),
        buy(date(2024, 1, 2), "AAA", 50, 10, portfolio_id=portfolio.id),
        buy(date(2024, 2, 15), "BBB", 10, 18, portfolio_id=portfolio.id),
        dividend(date(2024, 3, 1), "AAA", 20, portfolio_id=portfolio.id),
    )

    metrics = await compute_metrics(ctx, portfolio)

    assert metrics.cash_balance == D("340")
    assert metrics.current_value == D("340") + D("750") + D("250")
    assert metrics.total_invested == D("1000")
    assert metrics.total_dividends == D("20")
    assert metrics.total_return == pytest.approx(0.34)
    assert metrics.annualized_return is None
    assert metrics.sharpe_ratio is None
    assert [view.ticker for view in metrics.holdings] == ["AAA", "BBB"]
    aaa = metrics.holdings[0]
    assert aaa.actual_allocation == pytest.approx(0.75)
    assert aaa.needs_rebalancing
    assert aaa.dividends == D("20")
    assert aaa.return_with_dividends == D("270")
    assert [(s.name, s.percentage) for s in metrics.sector_allocation] == [("Energy", 0.75), (OTHER_BUCKET, 0.25)]
    assert [gap.ticker for gap in metrics.data_gaps if gap.kind == "sector"] == ["BBB"]


@pytest.mark.asyncio
async def test_cash_debit_does_not_change_total_return():
    market = _market()
    ctx = make_context(today=TODAY, market=market)
    portfolio = await _portfolio(ctx)
    await seed(
        ctx,
        credit(date(2024, 1, 2), 1000, portfolio_id=portfolio.id),
        buy(date(2024, 1, 2), "AAA", 50, 10, portfolio_id=portfolio.id),
    )
    before = await compute_metrics(ctx, portfolio)

    await seed(ctx, debit(date(2024, 3, 10), 300, portfolio_id=portfolio.id))
    after = await compute_metrics(ctx, portfolio)

    assert after.total_withdrawn == D("300")
    assert after.current_value == before.current_value - D("300")
    assert after.total_return == pytest.approx(before.total_return)
    # the monthly series adds withdrawals back the same way
    assert after.evolution[-1].cumulative_withdrawn == D("300")
    assert after.benchmark_comparison[-1].portfolio == pytest.approx(after.total_return)
    assert [point.month for point in after.drawdown_history] == ["2024-01", "2024-02", "2024-03"]
    assert after.summary.cdi_return == pytest.approx(after.benchmark_comparison[-1].cdi)


@pytest.mark.asyncio
async def test_missing_price_degrades_instead_of_failing():
    market = InMemoryMarketData(prices={"AAA": {date(2024, 1, 2): 10}})
    ctx = make_context(today=TODAY, market=market)
    portfolio = await _portfolio(ctx)
    await seed(
        ctx,
        credit(date(2024, 1, 2), 1000, portfolio_id=portfolio.id),
        buy(date(2024, 1, 2), "AAA", 10, 10, portfolio_id=portfolio.id),
        buy(date(2024, 1, 3), "BBB", 10, 20, portfolio_id=portfolio.id),
    )

    metrics = await compute_metrics(ctx, portfolio)

    bbb = next(view for view in metrics.holdings if view.ticker == "BBB")
    assert bbb.price_missing
    assert bbb.current_value == D("0")
    assert any(gap.kind == "price" and gap.ticker == "BBB" for gap in metrics.data_gaps)
    assert metrics.current_value == D("700") + D("100")


@pytest.mark.asyncio
async def test_get_metrics_caches_until_invalidated():
    market = _market()
    ctx = make_context(today=TODAY, market=market)
    portfolio = await _portfolio(ctx)
    await seed(ctx, credit(date(2024, 1, 2), 1000, portfolio_id=portfolio.id))

    first = await get_metrics(ctx, portfolio.id, OWNER)
    await seed(ctx, credit(date(2024, 3, 1), 500, portfolio_id=portfolio.id))
    cached = await get_metrics(ctx, portfolio.id, OWNER)
    assert cached.cash_balance == first.cash_balance == D("1000")

    await invalidate_metrics(ctx, portfolio.id)
    fresh = await get_metrics(ctx, portfolio.id, OWNER)
    assert fresh.cash_balance == D("1500")

    refreshed = await refresh_metrics(ctx, portfolio.id, OWNER)
    assert (await ctx.store.get_metrics(portfolio.id)).current_value == refreshed.current_value
