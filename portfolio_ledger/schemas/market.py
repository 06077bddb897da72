"""Pydantic payloads exchanged with the market-data service."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


class QuoteRequest(BaseModel):
    tickers: list[str]
    as_of: date | None = None


class QuoteResponse(BaseModel):
    prices: dict[str, Decimal | None] = Field(default_factory=dict)


class DividendEventPayload(BaseModel):
    ex_date: date
    payment_date: date
    amount_per_share: Decimal = Field(..., ge=0)


class DividendResponse(BaseModel):
    ticker: str
    events: list[DividendEventPayload] = Field(default_factory=list)


class CompanyProfilePayload(BaseModel):
    sector: str | None = None
    industry: str | None = None


class CompanyProfileResponse(BaseModel):
    profiles: dict[str, CompanyProfilePayload] = Field(default_factory=dict)


__all__ = [
    "CompanyProfilePayload",
    "CompanyProfileResponse",
    "DividendEventPayload",
    "DividendResponse",
    "QuoteRequest",
    "QuoteResponse",
]
