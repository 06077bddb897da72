"""Client for the HTTP market-data service."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Sequence

import httpx
from opentelemetry.propagate import inject
from pydantic import ValidationError

from ..config import LedgerSettings
from ..domain import CompanyProfile, DividendEvent
from ..schemas.market import CompanyProfileResponse, DividendResponse, QuoteRequest, QuoteResponse

logger = logging.getLogger(__name__)


class HttpQuoteProvider:
    """Quotes, company profiles and dividend events over HTTP.

    Failures are logged and surface as missing data, never as exceptions.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: LedgerSettings, **kwargs: Any) -> "HttpQuoteProvider":
        if not settings.quote_service_url:
            raise ValueError("quote_service_url is not configured")
        return cls(
            settings.quote_service_url,
            timeout=settings.quote_service_timeout_seconds,
            token=settings.quote_service_token,
            **kwargs,
        )

    def _headers(self) -> dict[str, str]:
        # Propagate the current trace so market-data spans join the ledger trace
        headers: dict[str, str] = {}
        inject(headers)
        if self.token:
            headers["X-Internal-Token"] = self.token
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any | None:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError):
            logger.exception("Market data request %s %s failed", method, path)
            return None

    async def _prices(self, payload: QuoteRequest, path: str) -> dict[str, Decimal]:
        if not payload.tickers:
            return {}
        body = await self._request("POST", path, json=payload.model_dump(mode="json"))
        if body is None:
            return {}
        try:
            parsed = QuoteResponse.model_validate(body)
        except ValidationError:
            logger.exception("Unexpected quote payload from %s", path)
            return {}
        # Zero or negative quotes are treated as missing
        return {ticker: price for ticker, price in parsed.prices.items() if price is not None and price > 0}

    async def get_latest_prices(self, tickers: Sequence[str]) -> dict[str, Decimal]:
        return await self._prices(QuoteRequest(tickers=list(tickers)), "/quotes/latest")

    async def get_prices_as_of(self, tickers: Sequence[str], day: date) -> dict[str, Decimal]:
        return await self._prices(QuoteRequest(tickers=list(tickers), as_of=day), "/quotes/as-of")

    async def get_company_sector_industry(self, tickers: Sequence[str]) -> dict[str, CompanyProfile]:
        if not tickers:
            return {}
        body = await self._request("POST", "/companies/profile", json={"tickers": list(tickers)})
        if body is None:
            return {}
        try:
            parsed = CompanyProfileResponse.model_validate(body)
        except ValidationError:
            logger.exception("Unexpected company profile payload")
            return {}
        return {
            ticker: CompanyProfile(sector=profile.sector, industry=profile.industry)
            for ticker, profile in parsed.profiles.items()
        }

    async def fetch_dividend_events(self, ticker: str) -> list[DividendEvent]:
        body = await self._request("GET", f"/dividends/{ticker}")
        if body is None:
            return []
        try:
            parsed = DividendResponse.model_validate(body)
        except ValidationError:
            logger.exception("Unexpected dividend payload for %s", ticker)
            return []
        return [
            DividendEvent(
                ticker=ticker,
                ex_date=event.ex_date,
                payment_date=event.payment_date,
                amount_per_share=event.amount_per_share,
            )
            for event in parsed.events
        ]


__all__ = ["HttpQuoteProvider"]
