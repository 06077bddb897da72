"""Persistence contract and store implementations for the ledger."""

from .base import LedgerStore, TransactionFilter
from .memory import InMemoryLedgerStore

__all__ = ["InMemoryLedgerStore", "LedgerStore", "TransactionFilter"]
