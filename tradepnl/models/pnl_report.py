"""P&L report header and line item ORM models."""
from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradepnl.models.base import Base, TimestampMixin, money_column, percent_column


class ReportType(str, enum.Enum):
    CUSTOMER = "customer"
    PROMOTION = "promotion"
    PRODUCT = "product"
    CHANNEL = "channel"
    PERIOD = "period"
    CONSOLIDATED = "consolidated"


class PeriodType(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"
    CUSTOM = "custom"


class ReportStatus(str, enum.Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    GENERATED = "generated"
    APPROVED = "approved"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class LineType(str, enum.Enum):
    CUSTOMER = "customer"
    PROMOTION = "promotion"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class PnlMetricsMixin:
    """Derived P&L metric columns shared by report headers and line items."""

    gross_sales: Mapped[Decimal] = money_column()
    trade_spend: Mapped[Decimal] = money_column()
    net_sales: Mapped[Decimal] = money_column()
    cogs: Mapped[Decimal] = money_column()
    gross_profit: Mapped[Decimal] = money_column()
    gross_margin_pct: Mapped[Decimal] = percent_column()
    accruals: Mapped[Decimal] = money_column()
    settlements: Mapped[Decimal] = money_column()
    claims: Mapped[Decimal] = money_column()
    deductions: Mapped[Decimal] = money_column()
    net_trade_cost: Mapped[Decimal] = money_column()
    net_profit: Mapped[Decimal] = money_column()
    net_margin_pct: Mapped[Decimal] = percent_column()
    budget_amount: Mapped[Decimal] = money_column()
    budget_variance: Mapped[Decimal] = money_column()
    budget_variance_pct: Mapped[Decimal] = percent_column()
    roi: Mapped[Decimal] = percent_column()


class PnlReport(PnlMetricsMixin, TimestampMixin, Base):
    """Persisted P&L report header for a tenant."""

    __tablename__ = "pnl_reports"
    __table_args__ = (
        Index("ix_pnl_reports_tenant_id", "tenant_id"),
        Index("ix_pnl_reports_tenant_status", "tenant_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    report_type: Mapped[ReportType] = mapped_column(
        SAEnum(ReportType, name="pnl_report_type", values_callable=_enum_values),
        nullable=False,
        default=ReportType.CUSTOMER,
    )
    period_type: Mapped[PeriodType] = mapped_column(
        SAEnum(PeriodType, name="pnl_period_type", values_callable=_enum_values),
        nullable=False,
        default=PeriodType.MONTHLY,
    )
    status: Mapped[ReportStatus] = mapped_column(
        SAEnum(ReportStatus, name="pnl_report_status", values_callable=_enum_values),
        nullable=False,
        default=ReportStatus.DRAFT,
    )
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    promotion_id: Mapped[str | None] = mapped_column(String(36))
    product_id: Mapped[str | None] = mapped_column(String(36))
    category: Mapped[str | None] = mapped_column(String(128))
    channel: Mapped[str | None] = mapped_column(String(128))
    region: Mapped[str | None] = mapped_column(String(128))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZAR")

    line_item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    generated_by: Mapped[str | None] = mapped_column(String(320))
    generation_token: Mapped[str | None] = mapped_column(String(32))
    generation_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    data: Mapped[dict | None] = mapped_column(JSON)
    created_by: Mapped[str | None] = mapped_column(String(320))
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tenant = relationship("Tenant", back_populates="pnl_reports")
    line_items = relationship(
        "PnlLineItem",
        back_populates="report",
        order_by="PnlLineItem.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": lock_version}


class PnlLineItem(PnlMetricsMixin, TimestampMixin, Base):
    """One dimension value's row of derived metrics within a report."""

    __tablename__ = "pnl_line_items"
    __table_args__ = (
        UniqueConstraint("report_id", "sort_order", name="uq_pnl_line_items_report_sort"),
        Index("ix_pnl_line_items_tenant_report", "tenant_id", "report_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    report_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pnl_reports.id", ondelete="CASCADE"), nullable=False
    )
    line_type: Mapped[LineType] = mapped_column(
        SAEnum(LineType, name="pnl_line_type", values_callable=_enum_values), nullable=False
    )
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)
    dimension_id: Mapped[str] = mapped_column(String(36), nullable=False)
    dimension_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    customer_name: Mapped[str | None] = mapped_column(String(255))
    promotion_id: Mapped[str | None] = mapped_column(String(36))
    promotion_name: Mapped[str | None] = mapped_column(String(255))
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data: Mapped[dict | None] = mapped_column(JSON)

    report = relationship("PnlReport", back_populates="line_items")


__all__ = [
    "LineType",
    "PeriodType",
    "PnlLineItem",
    "PnlMetricsMixin",
    "PnlReport",
    "ReportStatus",
    "ReportType",
]
