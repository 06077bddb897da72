"""Transaction lifecycle: confirmation, rejection, reverts and manual entries.

``PENDING -> CONFIRMED | REJECTED -> (revert) -> PENDING``. Manual entries go
straight to EXECUTED. Manual entries, edits and deletes are validated
after the write, inside the same unit of work, against a fresh replay of the
ledger. A sale of more shares than held rolls the unit back with
:class:`LedgerValidationError`; a negative balance rolls it back with
:class:`InsufficientCashError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Sequence

from opentelemetry import trace

from ..core.errors import CashShortfall, InsufficientCashError, LedgerValidationError, NotFoundError
from ..domain import (
    COMMITTED_STATUSES,
    LedgerEntry,
    TransactionStatus,
    TransactionType,
    utcnow,
)
from ..repositories.base import TransactionFilter
from ..schemas import TransactionCreateRequest, TransactionUpdateRequest
from .context import EngineContext
from .ledger import cash_balance, cash_timeline, lowest_cash_balance, replay_holdings
from .metrics import invalidate_metrics
from .portfolios import load_portfolio, touch_last_transaction_date

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_COMMITTED = TransactionFilter(statuses=COMMITTED_STATUSES)


async def list_transactions(
    ctx: EngineContext,
    portfolio_id: str,
    owner_id: str,
    filters: TransactionFilter | None = None,
) -> list[LedgerEntry]:
    await load_portfolio(ctx, portfolio_id, owner_id)
    return await ctx.store.list_transactions(portfolio_id, filters)


async def get_cash_balance(ctx: EngineContext, portfolio_id: str, owner_id: str) -> Decimal:
    """Balance from a read-only replay; the cached per-row fields are ignored."""

    await load_portfolio(ctx, portfolio_id, owner_id)
    return cash_balance(await ctx.store.list_transactions(portfolio_id, _COMMITTED))


async def recalculate_cash_balances(ctx: EngineContext, portfolio_id: str, owner_id: str) -> int:
    """Rewrite ``cash_balance_before/after`` on every committed row."""

    await load_portfolio(ctx, portfolio_id, owner_id)
    updated = 0
    async with ctx.store.atomic():
        entries = await ctx.store.list_transactions(portfolio_id, _COMMITTED)
        for step in cash_timeline(entries):
            entry = step.entry
            if entry.cash_balance_before == step.balance_before and entry.cash_balance_after == step.balance_after:
                continue
            await ctx.store.update_transaction(
                replace(entry, cash_balance_before=step.balance_before, cash_balance_after=step.balance_after)
            )
            updated += 1
    logger.info("Recalculated cash balances of %d rows in portfolio %s", updated, portfolio_id)
    return updated


async def _get_owned(ctx: EngineContext, portfolio_id: str, transaction_id: str) -> LedgerEntry:
    entry = await ctx.store.get_transaction(portfolio_id, transaction_id)
    if entry is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return entry


@dataclass(frozen=True)
class _LedgerState:
    lowest: Decimal
    balance: Decimal
    oversold_ids: frozenset[str]


def _state_of(entries: Sequence[LedgerEntry]) -> _LedgerState:
    return _LedgerState(
        lowest=lowest_cash_balance(entries),
        balance=cash_balance(entries),
        oversold_ids=frozenset(issue.transaction_id for issue in replay_holdings(entries).inconsistencies),
    )


async def _ledger_state(ctx: EngineContext, portfolio_id: str) -> _LedgerState:
    return _state_of(await ctx.store.list_transactions(portfolio_id, _COMMITTED))


async def _validate_write(
    ctx: EngineContext,
    portfolio_id: str,
    previous: _LedgerState,
    attempted_amount: Decimal,
) -> None:
    """Raise when the ledger as now written oversells a position or dips below zero.

    A ledger that was already inconsistent or negative is only rejected when
    the write makes it worse.
    """

    entries = await ctx.store.list_transactions(portfolio_id, _COMMITTED)
    new_issues = [
        issue for issue in replay_holdings(entries).inconsistencies if issue.transaction_id not in previous.oversold_ids
    ]
    if new_issues:
        issue = new_issues[0]
        logger.warning(
            "Rejected write in portfolio %s: sells %s %s with %s held on %s",
            portfolio_id,
            issue.attempted_quantity,
            issue.ticker,
            issue.available_quantity,
            issue.date,
        )
        raise LedgerValidationError(
            f"Cannot sell {issue.attempted_quantity} {issue.ticker} on {issue.date}: "
            f"only {issue.available_quantity} held"
        )

    low = lowest_cash_balance(entries)
    tolerance = Decimal(str(ctx.settings.cash_tolerance))
    if low < -tolerance and low < previous.lowest:
        details = CashShortfall(
            current_balance=previous.balance,
            attempted_amount=attempted_amount,
            shortfall=-low,
        )
        logger.warning(
            "Rejected write in portfolio %s: balance %s, attempted %s, short by %s",
            portfolio_id,
            details.current_balance,
            details.attempted_amount,
            details.shortfall,
        )
        raise InsufficientCashError(details)


def _apply_changes(entry: LedgerEntry, request: TransactionUpdateRequest | None) -> LedgerEntry:
    if request is None:
        return entry
    changes = {name: value for name, value in request.changes().items() if value is not None or name == "notes"}
    return replace(entry, **changes)


async def confirm_transaction(
    ctx: EngineContext,
    portfolio_id: str,
    owner_id: str,
    transaction_id: str,
    updates: TransactionUpdateRequest | None = None,
) -> LedgerEntry:
    """Commit a PENDING row, optionally adjusting what was actually executed."""

    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    async with ctx.store.atomic():
        entry = await _get_owned(ctx, portfolio_id, transaction_id)
        if entry.status is not TransactionStatus.PENDING:
            raise LedgerValidationError(f"Only PENDING transactions can be confirmed (is {entry.status.value})")
        entry = _apply_changes(entry, updates)
        entry = replace(entry, status=TransactionStatus.CONFIRMED, confirmed_at=utcnow())
        saved = await ctx.store.update_transaction(entry)
        await touch_last_transaction_date(ctx, portfolio, saved.date)
        await invalidate_metrics(ctx, portfolio_id)
    logger.info("Confirmed %s %s in portfolio %s", saved.type.value, saved.id, portfolio_id)
    return saved


async def reject_transaction(
    ctx: EngineContext,
    portfolio_id: str,
    owner_id: str,
    transaction_id: str,
    reason: str | None = None,
) -> LedgerEntry:
    await load_portfolio(ctx, portfolio_id, owner_id)
    async with ctx.store.atomic():
        entry = await _get_owned(ctx, portfolio_id, transaction_id)
        if entry.status is not TransactionStatus.PENDING:
            raise LedgerValidationError(f"Only PENDING transactions can be rejected (is {entry.status.value})")
        saved = await ctx.store.update_transaction(
            replace(entry, status=TransactionStatus.REJECTED, rejected_at=utcnow(), rejection_reason=reason)
        )
    logger.info("Rejected %s %s in portfolio %s", saved.type.value, saved.id, portfolio_id)
    return saved


async def revert_transaction(
    ctx: EngineContext, portfolio_id: str, owner_id: str, transaction_id: str
) -> LedgerEntry:
    """Send a CONFIRMED or REJECTED row back to PENDING for correction."""

    await load_portfolio(ctx, portfolio_id, owner_id)
    async with ctx.store.atomic():
        entry = await _get_owned(ctx, portfolio_id, transaction_id)
        if entry.status not in (TransactionStatus.CONFIRMED, TransactionStatus.REJECTED):
            raise LedgerValidationError(
                f"Only CONFIRMED or REJECTED transactions can be reverted (is {entry.status.value})"
            )
        saved = await ctx.store.update_transaction(
            replace(
                entry,
                status=TransactionStatus.PENDING,
                confirmed_at=None,
                rejected_at=None,
                rejection_reason=None,
            )
        )
        await invalidate_metrics(ctx, portfolio_id)
    logger.info("Reverted %s %s in portfolio %s", saved.type.value, saved.id, portfolio_id)
    return saved


async def confirm_batch(
    ctx: EngineContext, portfolio_id: str, owner_id: str, transaction_ids: Sequence[str]
) -> list[LedgerEntry]:
    """Confirm several PENDING rows together; any invalid id aborts the whole batch."""

    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    if not transaction_ids:
        return []
    confirmed_at = utcnow()
    saved: list[LedgerEntry] = []
    async with ctx.store.atomic():
        entries = [await _get_owned(ctx, portfolio_id, transaction_id) for transaction_id in transaction_ids]
        not_pending = [entry.id for entry in entries if entry.status is not TransactionStatus.PENDING]
        if not_pending:
            raise LedgerValidationError(f"Transactions not PENDING: {', '.join(not_pending)}")
        for entry in entries:
            saved.append(
                await ctx.store.update_transaction(
                    replace(entry, status=TransactionStatus.CONFIRMED, confirmed_at=confirmed_at)
                )
            )
        await touch_last_transaction_date(ctx, portfolio, max(entry.date for entry in saved))
        await invalidate_metrics(ctx, portfolio_id)
    logger.info("Confirmed %d transactions in portfolio %s", len(saved), portfolio_id)
    return saved


def _entry_from_request(portfolio_id: str, request: TransactionCreateRequest) -> LedgerEntry:
    return LedgerEntry(
        portfolio_id=portfolio_id,
        date=request.date,
        type=request.type,
        amount=request.amount,
        ticker=request.ticker,
        price=request.price,
        quantity=request.quantity,
        status=TransactionStatus.EXECUTED,
        is_auto_suggested=False,
        notes=request.notes,
    )


async def create_manual_transaction(
    ctx: EngineContext, portfolio_id: str, owner_id: str, request: TransactionCreateRequest
) -> LedgerEntry:
    """Record an executed transaction entered by the investor.

    The row is inserted first and the resulting ledger replayed; an oversold
    position or a cash shortfall rolls the insert back.
    """

    with tracer.start_as_current_span("ledger.create_manual_transaction") as span:
        span.set_attribute("portfolio.id", portfolio_id)
        span.set_attribute("ledger.transaction_type", request.type.value)
        portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
        async with ctx.store.atomic():
            previous = await _ledger_state(ctx, portfolio_id)
            created = await ctx.store.add_transaction(_entry_from_request(portfolio_id, request))
            await _validate_write(ctx, portfolio_id, previous, request.amount)
            await touch_last_transaction_date(ctx, portfolio, created.date)
            await invalidate_metrics(ctx, portfolio_id)
        logger.info("Recorded manual %s %s in portfolio %s", created.type.value, created.id, portfolio_id)
        return created


async def create_transaction_with_cash_credit(
    ctx: EngineContext, portfolio_id: str, owner_id: str, request: TransactionCreateRequest
) -> tuple[LedgerEntry, LedgerEntry]:
    """Record a purchase together with the cash credit that funds it."""

    if request.type not in (TransactionType.BUY, TransactionType.BUY_REBALANCE):
        raise LedgerValidationError("Automatic cash credit only applies to purchases")
    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    credit = LedgerEntry(
        portfolio_id=portfolio_id,
        date=request.date,
        type=TransactionType.CASH_CREDIT,
        amount=request.amount,
        status=TransactionStatus.EXECUTED,
        notes=f"Cash credit funding the purchase of {request.ticker}",
    )
    async with ctx.store.atomic():
        saved_credit = await ctx.store.add_transaction(credit)
        purchase = await ctx.store.add_transaction(_entry_from_request(portfolio_id, request))
        await touch_last_transaction_date(ctx, portfolio, purchase.date)
        await invalidate_metrics(ctx, portfolio_id)
    logger.info("Recorded funded purchase of %s in portfolio %s", request.ticker, portfolio_id)
    return saved_credit, purchase


def _ensure_editable(entry: LedgerEntry, action: str) -> None:
    if entry.status is TransactionStatus.CONFIRMED and entry.is_auto_suggested:
        raise LedgerValidationError(f"Confirmed suggestions cannot be {action}; revert the transaction first")


async def update_transaction(
    ctx: EngineContext,
    portfolio_id: str,
    owner_id: str,
    transaction_id: str,
    request: TransactionUpdateRequest,
) -> LedgerEntry:
    """Edit a row; committed rows must keep cash covered or the edit is undone."""

    portfolio = await load_portfolio(ctx, portfolio_id, owner_id)
    async with ctx.store.atomic():
        entry = await _get_owned(ctx, portfolio_id, transaction_id)
        _ensure_editable(entry, "edited")
        previous = await _ledger_state(ctx, portfolio_id)
        saved = await ctx.store.update_transaction(_apply_changes(entry, request))
        if saved.is_committed:
            await _validate_write(ctx, portfolio_id, previous, saved.amount)
            await touch_last_transaction_date(ctx, portfolio, saved.date)
            await invalidate_metrics(ctx, portfolio_id)
    return saved


async def delete_transaction(ctx: EngineContext, portfolio_id: str, owner_id: str, transaction_id: str) -> None:
    await load_portfolio(ctx, portfolio_id, owner_id)
    async with ctx.store.atomic():
        entry = await _get_owned(ctx, portfolio_id, transaction_id)
        _ensure_editable(entry, "deleted")
        previous = await _ledger_state(ctx, portfolio_id)
        await ctx.store.delete_transaction(portfolio_id, transaction_id)
        if entry.is_committed:
            await _validate_write(ctx, portfolio_id, previous, entry.amount)
            await invalidate_metrics(ctx, portfolio_id)
    logger.info("Deleted %s %s from portfolio %s", entry.type.value, entry.id, portfolio_id)


__all__ = [
    "confirm_batch",
    "confirm_transaction",
    "create_manual_transaction",
    "create_transaction_with_cash_credit",
    "delete_transaction",
    "get_cash_balance",
    "list_transactions",
    "recalculate_cash_balances",
    "reject_transaction",
    "revert_transaction",
    "update_transaction",
]
