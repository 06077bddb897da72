"""Ledger engine services: replay, metrics, suggestions and lifecycle."""

from .context import EngineContext

__all__ = ["EngineContext"]
