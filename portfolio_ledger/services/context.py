"""Collaborators passed explicitly to every engine operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable
from zoneinfo import ZoneInfo

from ..config import LedgerSettings, get_settings
from ..providers.market_data import CompanyProfileProvider, DividendProvider, QuoteProvider
from ..repositories.base import LedgerStore
from .allocation import RebalanceThreshold


def zoned_today(timezone: str) -> Callable[[], date]:
    zone = ZoneInfo(timezone)
    return lambda: datetime.now(zone).date()


@dataclass(frozen=True)
class EngineContext:
    store: LedgerStore
    quotes: QuoteProvider
    profiles: CompanyProfileProvider
    dividends: DividendProvider
    settings: LedgerSettings = field(default_factory=get_settings)
    clock: Callable[[], date] | None = None

    def today(self) -> date:
        if self.clock is not None:
            return self.clock()
        return zoned_today(self.settings.timezone)()

    @property
    def threshold(self) -> RebalanceThreshold:
        return RebalanceThreshold.from_settings(self.settings)


__all__ = ["EngineContext", "zoned_today"]
