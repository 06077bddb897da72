"""Portfolio ledger engine: replay, metrics and rebalancing suggestions."""

__version__ = "0.1.0"
