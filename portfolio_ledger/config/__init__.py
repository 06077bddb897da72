"""Configuration helpers for the ledger engine."""

from .settings import LedgerSettings, get_settings

__all__ = ["LedgerSettings", "get_settings"]
