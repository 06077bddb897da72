"""Portfolio configuration, ledger, metrics and market data tables."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql

revision = "0001_create_ledger_tables"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPES = (
    "CASH_CREDIT",
    "CASH_DEBIT",
    "BUY",
    "BUY_REBALANCE",
    "SELL_REBALANCE",
    "SELL_WITHDRAWAL",
    "DIVIDEND",
    "MONTHLY_CONTRIBUTION",
)
TRANSACTION_STATUSES = ("PENDING", "CONFIRMED", "EXECUTED", "REJECTED")


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _has_table(bind, table_name: str) -> bool:
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    bind = op.get_bind()
    now = sa.text("CURRENT_TIMESTAMP")

    if not _has_table(bind, "portfolio_config"):
        op.create_table(
            "portfolio_config",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("owner_id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=128), nullable=False),
            sa.Column("description", sa.String(length=512)),
            sa.Column("start_date", sa.Date),
            sa.Column("monthly_contribution", sa.Numeric(18, 2), nullable=False, server_default="0"),
            sa.Column(
                "rebalance_frequency",
                sa.Enum("monthly", "quarterly", "yearly", name="rebalance_frequency"),
                nullable=False,
                server_default="monthly",
            ),
            sa.Column("tracking_started", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("last_transaction_date", sa.Date),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=now),
            sa.Index("ix_portfolio_config_owner", "owner_id", "is_active"),
        )

    if not _has_table(bind, "portfolio_config_asset"):
        op.create_table(
            "portfolio_config_asset",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column(
                "portfolio_id",
                sa.String(length=36),
                sa.ForeignKey("portfolio_config.id", ondelete="CASCADE", name="fk_portfolio_config_asset_portfolio_id_portfolio_config"),
                nullable=False,
            ),
            sa.Column("ticker", sa.String(length=20), nullable=False),
            sa.Column("target_allocation", sa.Numeric(9, 6), nullable=False),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=now),
            sa.Column("removed_at", sa.DateTime(timezone=True)),
            sa.UniqueConstraint("portfolio_id", "ticker", name="uq_portfolio_config_asset_ticker"),
        )

    if not _has_table(bind, "portfolio_transaction"):
        op.create_table(
            "portfolio_transaction",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column(
                "portfolio_id",
                sa.String(length=36),
                sa.ForeignKey("portfolio_config.id", ondelete="CASCADE", name="fk_portfolio_transaction_portfolio_id_portfolio_config"),
                nullable=False,
            ),
            sa.Column("date", sa.Date, nullable=False),
            sa.Column("type", sa.Enum(*TRANSACTION_TYPES, name="ledger_transaction_type"), nullable=False),
            sa.Column("ticker", sa.String(length=20)),
            sa.Column("amount", sa.Numeric(18, 2), nullable=False),
            sa.Column("price", sa.Numeric(18, 6)),
            sa.Column("quantity", sa.Numeric(18, 6)),
            sa.Column("cash_balance_before", sa.Numeric(18, 2)),
            sa.Column("cash_balance_after", sa.Numeric(18, 2)),
            sa.Column("status", sa.Enum(*TRANSACTION_STATUSES, name="ledger_transaction_status"), nullable=False),
            sa.Column("is_auto_suggested", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("notes", sa.String(length=1024)),
            sa.Column("confirmed_at", sa.DateTime(timezone=True)),
            sa.Column("rejected_at", sa.DateTime(timezone=True)),
            sa.Column("rejection_reason", sa.String(length=512)),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=now),
            sa.Index("ix_portfolio_transaction_status_date", "portfolio_id", "status", "date"),
            sa.Index("ix_portfolio_transaction_ticker", "portfolio_id", "ticker"),
        )

    if not _has_table(bind, "portfolio_metrics"):
        op.create_table(
            "portfolio_metrics",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column(
                "portfolio_id",
                sa.String(length=36),
                sa.ForeignKey("portfolio_config.id", ondelete="CASCADE", name="fk_portfolio_metrics_portfolio_id_portfolio_config"),
                nullable=False,
            ),
            sa.Column("current_value", sa.Numeric(18, 2), nullable=False),
            sa.Column("cash_balance", sa.Numeric(18, 2), nullable=False),
            sa.Column("total_invested", sa.Numeric(18, 2), nullable=False),
            sa.Column("total_withdrawn", sa.Numeric(18, 2), nullable=False),
            sa.Column("total_dividends", sa.Numeric(18, 2), nullable=False),
            sa.Column("total_return", sa.Float),
            sa.Column("annualized_return", sa.Float),
            sa.Column("volatility", sa.Float),
            sa.Column("sharpe_ratio", sa.Float),
            sa.Column("max_drawdown", sa.Float),
            sa.Column("holdings", _json(), nullable=False),
            sa.Column("closed_positions", _json(), nullable=False),
            sa.Column("monthly_returns", _json(), nullable=False),
            sa.Column("evolution", _json(), nullable=False),
            sa.Column("sector_allocation", _json(), nullable=False),
            sa.Column("industry_allocation", _json(), nullable=False),
            sa.Column("data_gaps", _json(), nullable=False),
            sa.Column("inconsistencies", _json(), nullable=False),
            sa.Column("last_calculated_at", sa.DateTime(timezone=True), nullable=False, server_default=now),
            sa.UniqueConstraint("portfolio_id", name="uq_portfolio_metrics_portfolio"),
        )

    if not _has_table(bind, "daily_quote"):
        op.create_table(
            "daily_quote",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("ticker", sa.String(length=20), nullable=False),
            sa.Column("date", sa.Date, nullable=False),
            sa.Column("close", sa.Numeric(18, 6), nullable=False),
            sa.UniqueConstraint("ticker", "date", name="uq_daily_quote_ticker_date"),
            sa.Index("ix_daily_quote_ticker_date", "ticker", "date"),
        )

    if not _has_table(bind, "company_profile"):
        op.create_table(
            "company_profile",
            sa.Column("ticker", sa.String(length=20), primary_key=True),
            sa.Column("sector", sa.String(length=128)),
            sa.Column("industry", sa.String(length=128)),
        )

    if not _has_table(bind, "dividend_event"):
        op.create_table(
            "dividend_event",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("ticker", sa.String(length=20), nullable=False),
            sa.Column("ex_date", sa.Date, nullable=False),
            sa.Column("payment_date", sa.Date, nullable=False),
            sa.Column("amount_per_share", sa.Numeric(18, 8), nullable=False),
            sa.UniqueConstraint("ticker", "ex_date", "payment_date", name="uq_dividend_event"),
            sa.Index("ix_dividend_event_ticker", "ticker"),
        )


def downgrade() -> None:
    op.drop_table("dividend_event")
    op.drop_table("company_profile")
    op.drop_table("daily_quote")
    op.drop_table("portfolio_metrics")
    op.drop_table("portfolio_transaction")
    op.drop_table("portfolio_config_asset")
    op.drop_table("portfolio_config")
