"""Schema exports for the ledger engine."""

from .portfolio import (
    AssetAllocationInput,
    PortfolioCreateRequest,
    PortfolioUpdateRequest,
    TransactionCreateRequest,
    TransactionUpdateRequest,
)

__all__ = [
    "AssetAllocationInput",
    "PortfolioCreateRequest",
    "PortfolioUpdateRequest",
    "TransactionCreateRequest",
    "TransactionUpdateRequest",
]
