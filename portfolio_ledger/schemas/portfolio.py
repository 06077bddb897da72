"""Pydantic inputs accepted by the portfolio and transaction services."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ..domain import TRADE_TYPES, RebalanceFrequency, TransactionType, normalize_ticker


class AssetAllocationInput(BaseModel):
    ticker: str = Field(..., examples=["PETR4"])
    target_allocation: Decimal = Field(..., ge=0, le=1, description="Fraction of the portfolio")

    @field_validator("ticker")
    @classmethod
    def _normalize_ticker(cls, value: str) -> str:
        return normalize_ticker(value)


class PortfolioCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str | None = Field(default=None, max_length=512)
    monthly_contribution: Decimal = Field(default=Decimal("0"), ge=0)
    rebalance_frequency: RebalanceFrequency = RebalanceFrequency.MONTHLY
    start_date: dt.date | None = None
    assets: list[AssetAllocationInput] = Field(default_factory=list)


class PortfolioUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = Field(default=None, max_length=512)
    monthly_contribution: Decimal | None = Field(default=None, ge=0)
    rebalance_frequency: RebalanceFrequency | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class TransactionCreateRequest(BaseModel):
    date: dt.date
    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    ticker: str | None = Field(default=None, examples=["ITSA4"])
    price: Decimal | None = Field(default=None, ge=0)
    quantity: Decimal | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=1024)

    @field_validator("ticker")
    @classmethod
    def _normalize_ticker(cls, value: str | None) -> str | None:
        return normalize_ticker(value) if value is not None else None

    @model_validator(mode="after")
    def _check_trade_fields(self) -> "TransactionCreateRequest":
        if self.type in TRADE_TYPES and (self.ticker is None or self.quantity is None or self.price is None):
            raise ValueError(f"{self.type.value} requires ticker, price and quantity")
        if self.type is TransactionType.DIVIDEND and self.ticker is None:
            raise ValueError("DIVIDEND requires a ticker")
        return self


class TransactionUpdateRequest(BaseModel):
    date: dt.date | None = None
    amount: Decimal | None = Field(default=None, ge=0)
    price: Decimal | None = Field(default=None, ge=0)
    quantity: Decimal | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=1024)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


__all__ = [
    "AssetAllocationInput",
    "PortfolioCreateRequest",
    "PortfolioUpdateRequest",
    "TransactionCreateRequest",
    "TransactionUpdateRequest",
]
