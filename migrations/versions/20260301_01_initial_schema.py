"""Initial schema for tenants, P&L reports and trade-promotion facts."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20260301_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None

_METRIC_COLUMNS = (
    ("gross_sales", 18),
    ("trade_spend", 18),
    ("net_sales", 18),
    ("cogs", 18),
    ("gross_profit", 18),
    ("gross_margin_pct", 12),
    ("accruals", 18),
    ("settlements", 18),
    ("claims", 18),
    ("deductions", 18),
    ("net_trade_cost", 18),
    ("net_profit", 18),
    ("net_margin_pct", 12),
    ("budget_amount", 18),
    ("budget_variance", 18),
    ("budget_variance_pct", 12),
    ("roi", 12),
)


def _metric_columns() -> list[sa.Column]:
    return [
        sa.Column(name, sa.Numeric(precision, 2), nullable=False, server_default="0")
        for name, precision in _METRIC_COLUMNS
    ]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _fact_table(name: str, *columns: sa.Column) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        *columns,
    )
    op.create_index(f"ix_{name}_tenant_id", name, ["tenant_id"])


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def upgrade() -> None:  # noqa: D401
    """Create initial tables and constraints."""

    tenant_status = sa.Enum("ACTIVE", "SUSPENDED", "INACTIVE", name="tenant_status")
    report_type = sa.Enum(
        "customer", "promotion", "product", "channel", "period", "consolidated", name="pnl_report_type"
    )
    period_type = sa.Enum("weekly", "monthly", "quarterly", "annually", "custom", name="pnl_period_type")
    report_status = sa.Enum(
        "draft", "generating", "generated", "approved", "published", "archived", name="pnl_report_status"
    )
    line_type = sa.Enum("customer", "promotion", name="pnl_line_type")

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("status", tenant_status, nullable=False, server_default="ACTIVE"),
        *_timestamps(),
    )

    op.create_table(
        "pnl_reports",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("report_type", report_type, nullable=False, server_default="customer"),
        sa.Column("period_type", period_type, nullable=False, server_default="monthly"),
        sa.Column("status", report_status, nullable=False, server_default="draft"),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("customer_id", sa.String(length=36)),
        sa.Column("promotion_id", sa.String(length=36)),
        sa.Column("product_id", sa.String(length=36)),
        sa.Column("category", sa.String(length=128)),
        sa.Column("channel", sa.String(length=128)),
        sa.Column("region", sa.String(length=128)),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="ZAR"),
        *_metric_columns(),
        sa.Column("line_item_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("generated_at", sa.DateTime(timezone=True)),
        sa.Column("generated_by", sa.String(length=320)),
        sa.Column("generation_token", sa.String(length=32)),
        sa.Column("generation_started_at", sa.DateTime(timezone=True)),
        sa.Column("data", sa.JSON()),
        sa.Column("created_by", sa.String(length=320)),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_pnl_reports_tenant_id", "pnl_reports", ["tenant_id"])
    op.create_index("ix_pnl_reports_tenant_status", "pnl_reports", ["tenant_id", "status"])

    op.create_table(
        "pnl_line_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column(
            "report_id", sa.String(length=36), sa.ForeignKey("pnl_reports.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("line_type", line_type, nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("dimension_id", sa.String(length=36), nullable=False),
        sa.Column("dimension_name", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=36)),
        sa.Column("customer_name", sa.String(length=255)),
        sa.Column("promotion_id", sa.String(length=36)),
        sa.Column("promotion_name", sa.String(length=255)),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default="0"),
        *_metric_columns(),
        sa.Column("data", sa.JSON()),
        *_timestamps(),
        sa.UniqueConstraint("report_id", "sort_order", name="uq_pnl_line_items_report_sort"),
    )
    op.create_index("ix_pnl_line_items_tenant_report", "pnl_line_items", ["tenant_id", "report_id"])

    _fact_table("customers", sa.Column("name", sa.String(length=255), nullable=False))
    _fact_table(
        "promotions",
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("status", sa.String(length=32)),
    )

    op.create_table(
        "trade_spends",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("customer_id", sa.String(length=36)),
        sa.Column("promotion_id", sa.String(length=36)),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_trade_spends_tenant_customer", "trade_spends", ["tenant_id", "customer_id"])
    op.create_index("ix_trade_spends_tenant_promotion", "trade_spends", ["tenant_id", "promotion_id"])

    _fact_table(
        "accruals",
        sa.Column("customer_id", sa.String(length=36)),
        sa.Column("promotion_id", sa.String(length=36)),
        sa.Column("accrued_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
    )
    _fact_table(
        "settlements",
        sa.Column("customer_id", sa.String(length=36)),
        sa.Column("promotion_id", sa.String(length=36)),
        sa.Column("settled_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
    )
    _fact_table(
        "claims",
        sa.Column("customer_id", sa.String(length=36)),
        sa.Column("promotion_id", sa.String(length=36)),
        sa.Column("claimed_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
    )
    _fact_table(
        "deductions",
        sa.Column("customer_id", sa.String(length=36)),
        sa.Column("promotion_id", sa.String(length=36)),
        sa.Column("deduction_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
    )
    _fact_table(
        "budgets",
        sa.Column("customer_id", sa.String(length=36)),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    for table in (
        "budgets",
        "deductions",
        "claims",
        "settlements",
        "accruals",
        "trade_spends",
        "promotions",
        "customers",
        "pnl_line_items",
        "pnl_reports",
        "tenants",
    ):
        op.drop_table(table)

    for enum_name in ("pnl_line_type", "pnl_report_status", "pnl_period_type", "pnl_report_type", "tenant_status"):
        _drop_enum(enum_name)
