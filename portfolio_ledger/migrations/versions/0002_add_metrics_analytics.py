"""Add drawdown and benchmark analytics to portfolio_metrics.

Revision ID: 0002_add_metrics_analytics
Revises: 0001_create_ledger_tables
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0002_add_metrics_analytics"
down_revision = "0001_create_ledger_tables"
branch_labels = None
depends_on = None

ANALYTICS_COLUMNS = (
    ("drawdown_history", "'[]'"),
    ("drawdown_periods", "'[]'"),
    ("benchmark_comparison", "'[]'"),
    ("summary", "'{}'"),
)


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _existing_columns() -> set[str]:
    return {column["name"] for column in inspect(op.get_bind()).get_columns("portfolio_metrics")}


def upgrade() -> None:
    existing = _existing_columns()
    for name, default in ANALYTICS_COLUMNS:
        if name not in existing:
            op.add_column(
                "portfolio_metrics",
                sa.Column(name, _json(), nullable=False, server_default=sa.text(default)),
            )


def downgrade() -> None:
    existing = _existing_columns()
    for name, _ in reversed(ANALYTICS_COLUMNS):
        if name in existing:
            op.drop_column("portfolio_metrics", name)
