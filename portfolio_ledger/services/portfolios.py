"""Portfolio configuration: target assets, contribution plan and tracking."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from ..core.errors import LedgerValidationError, NotFoundError
from ..domain import PortfolioConfig, TargetAsset, normalize_ticker, utcnow
from ..schemas import PortfolioCreateRequest, PortfolioUpdateRequest
from .allocation import normalize_target_allocations, validate_target_allocations
from .context import EngineContext

logger = logging.getLogger(__name__)


async def load_portfolio(ctx: EngineContext, portfolio_id: str, owner_id: str) -> PortfolioConfig:
    portfolio = await ctx.store.get_portfolio(portfolio_id)
    if portfolio is None or portfolio.owner_id != owner_id or not portfolio.is_active:
        raise NotFoundError(f"Portfolio {portfolio_id} not found")
    return portfolio


async def create_portfolio(
    ctx: EngineContext, owner_id: str, request: PortfolioCreateRequest
) -> PortfolioConfig:
    """Create a tracked portfolio with normalised target allocations."""

    allocations = [(asset.ticker, asset.target_allocation) for asset in request.assets]
    validate_target_allocations(allocations, ctx.settings.allocation_tolerance)
    normalized = normalize_target_allocations(dict(allocations))
    portfolio = PortfolioConfig(
        owner_id=owner_id,
        name=request.name.strip(),
        description=request.description,
        monthly_contribution=request.monthly_contribution,
        rebalance_frequency=request.rebalance_frequency,
        start_date=request.start_date or ctx.today(),
        tracking_started=True,
        assets=[TargetAsset(ticker, allocation) for ticker, allocation in normalized.items()],
    )
    async with ctx.store.atomic():
        saved = await ctx.store.save_portfolio(portfolio)
    logger.info("Created portfolio %s with %d assets", saved.id, len(saved.assets))
    return saved


async def get_portfolio(ctx: EngineContext, portfolio_id: str, owner_id: str) -> PortfolioConfig:
    return await load_portfolio(ctx, portfolio_id, owner_id)


async def list_portfolios(ctx: EngineContext, owner_id: str) -> list[PortfolioConfig]:
    portfolios = await ctx.store.list_portfolios(owner_id)
    return [portfolio for portfolio in portfolios if portfolio.is_active]


async def update_portfolio(
    ctx: EngineContext, portfolio_id: str, owner_id: str, request: PortfolioUpdateRequest
) -> PortfolioConfig:
    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    for name, value in request.changes().items():
        if value is None and name != "description":
            continue
        setattr(portfolio, name, value.strip() if name == "name" else value)
    async with ctx.store.atomic():
        return await ctx.store.save_portfolio(portfolio)


async def start_tracking(
    ctx: EngineContext, portfolio_id: str, owner_id: str, start_date: date | None = None
) -> PortfolioConfig:
    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    portfolio.tracking_started = True
    portfolio.start_date = start_date or portfolio.start_date or ctx.today()
    async with ctx.store.atomic():
        return await ctx.store.save_portfolio(portfolio)


def _check_allocation(ticker: str, target_allocation: Decimal) -> None:
    if target_allocation < 0 or target_allocation > 1:
        raise LedgerValidationError(f"Target allocation for {ticker} must be between 0 and 1")


async def add_asset(
    ctx: EngineContext, portfolio_id: str, owner_id: str, ticker: str, target_allocation: Decimal
) -> PortfolioConfig:
    """Add a target asset, reactivating it when it was removed earlier.

    Allocations are not renormalised here; the caller rebalances the weights
    with :func:`update_asset_allocation`.
    """

    ticker = normalize_ticker(ticker)
    _check_allocation(ticker, target_allocation)
    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    asset = portfolio.find_asset(ticker)
    if asset is not None and asset.is_active:
        raise LedgerValidationError(f"{ticker} is already part of the portfolio")
    if asset is None:
        portfolio.assets.append(TargetAsset(ticker, target_allocation))
    else:
        asset.is_active = True
        asset.removed_at = None
        asset.target_allocation = target_allocation
    async with ctx.store.atomic():
        return await ctx.store.save_portfolio(portfolio)


async def remove_asset(ctx: EngineContext, portfolio_id: str, owner_id: str, ticker: str) -> PortfolioConfig:
    ticker = normalize_ticker(ticker)
    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    asset = portfolio.find_asset(ticker)
    if asset is None or not asset.is_active:
        raise NotFoundError(f"{ticker} is not an active asset of portfolio {portfolio_id}")
    asset.is_active = False
    asset.removed_at = utcnow()
    async with ctx.store.atomic():
        return await ctx.store.save_portfolio(portfolio)


async def update_asset_allocation(
    ctx: EngineContext, portfolio_id: str, owner_id: str, ticker: str, target_allocation: Decimal
) -> PortfolioConfig:
    ticker = normalize_ticker(ticker)
    _check_allocation(ticker, target_allocation)
    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    asset = portfolio.find_asset(ticker)
    if asset is None or not asset.is_active:
        raise NotFoundError(f"{ticker} is not an active asset of portfolio {portfolio_id}")
    asset.target_allocation = target_allocation
    async with ctx.store.atomic():
        return await ctx.store.save_portfolio(portfolio)


async def delete_portfolio(ctx: EngineContext, portfolio_id: str, owner_id: str) -> None:
    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    portfolio.is_active = False
    async with ctx.store.atomic():
        await ctx.store.save_portfolio(portfolio)
        await ctx.store.delete_metrics(portfolio_id)
    logger.info("Deactivated portfolio %s", portfolio_id)


async def touch_last_transaction_date(ctx: EngineContext, portfolio: PortfolioConfig, day: date) -> None:
    if portfolio.last_transaction_date is None or day > portfolio.last_transaction_date:
        portfolio.last_transaction_date = day
        await ctx.store.save_portfolio(portfolio)


__all__ = [
    "add_asset",
    "create_portfolio",
    "delete_portfolio",
    "get_portfolio",
    "list_portfolios",
    "load_portfolio",
    "remove_asset",
    "start_tracking",
    "touch_last_transaction_date",
    "update_asset_allocation",
    "update_portfolio",
]
