"""Target allocation helpers and the rebalancing threshold."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Mapping

from ..config import LedgerSettings
from ..core.errors import LedgerValidationError

_ALLOCATION_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class RebalanceThreshold:
    absolute: float = 0.05
    relative: float = 0.20

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> "RebalanceThreshold":
        return cls(settings.rebalance_absolute_threshold, settings.rebalance_relative_threshold)


def needs_rebalancing(actual: float, target: float, threshold: RebalanceThreshold | None = None) -> bool:
    """Single drift rule used by every caller.

    True when the absolute drift exceeds ``threshold.absolute``, when the
    drift relative to the target exceeds ``threshold.relative``, or when the
    target is zero and anything is still held.
    """

    threshold = threshold or RebalanceThreshold()
    # Rounded so that 0.25 vs 0.20 does not trip on float noise
    diff = round(abs(actual - target), 9)
    if target <= 0:
        return actual > 0
    return diff > threshold.absolute or round(diff / target, 9) > threshold.relative


@dataclass(frozen=True)
class AllocationDrift:
    ticker: str
    value: Decimal
    actual: float
    target: float
    needs_rebalancing: bool

    @property
    def deviation(self) -> float:
        return self.actual - self.target


@dataclass(frozen=True)
class RebalanceDecision:
    """Audit record of what the planner decided for one ticker and why."""

    ticker: str
    action: str
    actual_allocation: float
    target_allocation: float
    quantity: Decimal
    price: Decimal | None
    reason: str


def current_allocations(values: Mapping[str, Decimal]) -> dict[str, float]:
    """Share of each ticker in the total value given (cash excluded)."""

    total = sum(values.values(), Decimal("0"))
    if total <= 0:
        return {ticker: 0.0 for ticker in values}
    return {ticker: float(value / total) for ticker, value in values.items()}


def allocation_drift(
    values: Mapping[str, Decimal],
    targets: Mapping[str, Decimal],
    threshold: RebalanceThreshold | None = None,
) -> list[AllocationDrift]:
    """Drift for every targeted ticker and every held ticker without a target."""

    tickers = sorted(set(values) | set(targets))
    full_values = {ticker: values.get(ticker, Decimal("0")) for ticker in tickers}
    actual = current_allocations(full_values)
    drifts = []
    for ticker in tickers:
        target = float(targets.get(ticker, Decimal("0")))
        drifts.append(
            AllocationDrift(
                ticker=ticker,
                value=full_values[ticker],
                actual=actual[ticker],
                target=target,
                needs_rebalancing=needs_rebalancing(actual[ticker], target, threshold),
            )
        )
    return drifts


def validate_target_allocations(allocations: Iterable[tuple[str, Decimal]], tolerance: float) -> None:
    items = list(allocations)
    if not items:
        raise LedgerValidationError("A portfolio needs at least one asset")
    seen: set[str] = set()
    for ticker, allocation in items:
        if ticker in seen:
            raise LedgerValidationError(f"Duplicate asset {ticker}")
        seen.add(ticker)
        if allocation < 0 or allocation > 1:
            raise LedgerValidationError(f"Target allocation for {ticker} must be between 0 and 1")
    total = sum((allocation for _, allocation in items), Decimal("0"))
    if abs(total - 1) > Decimal(str(tolerance)):
        raise LedgerValidationError(f"Target allocations must sum to 1.0 (got {total})")


def normalize_target_allocations(allocations: Mapping[str, Decimal]) -> dict[str, Decimal]:
    """Scale allocations so they add up to exactly 1."""

    total = sum(allocations.values(), Decimal("0"))
    if total <= 0:
        raise LedgerValidationError("Target allocations must add up to a positive total")
    normalized = {
        ticker: (allocation / total).quantize(_ALLOCATION_QUANTUM, rounding=ROUND_DOWN)
        for ticker, allocation in allocations.items()
    }
    remainder = Decimal("1") - sum(normalized.values(), Decimal("0"))
    if remainder:
        largest = max(normalized, key=lambda ticker: normalized[ticker])
        normalized[largest] += remainder
    return normalized


__all__ = [
    "AllocationDrift",
    "RebalanceDecision",
    "RebalanceThreshold",
    "allocation_drift",
    "current_allocations",
    "needs_rebalancing",
    "normalize_target_allocations",
    "validate_target_allocations",
]
