"""Schemas for P&L reports, line items and live views."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from tradepnl.models.pnl_report import LineType, PeriodType, ReportStatus, ReportType


class PnlMetricsRead(BaseModel):
    """Derived metric set shared by headers, line items and live rows."""

    gross_sales: Decimal = Decimal("0")
    trade_spend: Decimal = Decimal("0")
    net_sales: Decimal = Decimal("0")
    cogs: Decimal = Decimal("0")
    gross_profit: Decimal = Decimal("0")
    gross_margin_pct: Decimal = Decimal("0")
    accruals: Decimal = Decimal("0")
    settlements: Decimal = Decimal("0")
    claims: Decimal = Decimal("0")
    deductions: Decimal = Decimal("0")
    net_trade_cost: Decimal = Decimal("0")
    net_profit: Decimal = Decimal("0")
    net_margin_pct: Decimal = Decimal("0")
    budget_amount: Decimal = Decimal("0")
    budget_variance: Decimal = Decimal("0")
    budget_variance_pct: Decimal = Decimal("0")
    roi: Decimal = Decimal("0")


class ReportCreate(BaseModel):
    """Payload for creating a draft P&L report."""

    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    report_type: ReportType = Field(default=ReportType.CUSTOMER)
    period_type: PeriodType = Field(default=PeriodType.MONTHLY)
    start_date: date | None = None
    end_date: date | None = None
    customer_id: str | None = Field(default=None, max_length=36)
    promotion_id: str | None = Field(default=None, max_length=36)
    product_id: str | None = Field(default=None, max_length=36)
    category: str | None = Field(default=None, max_length=128)
    channel: str | None = Field(default=None, max_length=128)
    region: str | None = Field(default=None, max_length=128)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    data: dict | None = None


class ReportUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    status: ReportStatus | None = None
    report_type: ReportType | None = None
    period_type: PeriodType | None = None
    start_date: date | None = None
    end_date: date | None = None
    customer_id: str | None = Field(default=None, max_length=36)
    promotion_id: str | None = Field(default=None, max_length=36)
    product_id: str | None = Field(default=None, max_length=36)
    category: str | None = Field(default=None, max_length=128)
    channel: str | None = Field(default=None, max_length=128)
    region: str | None = Field(default=None, max_length=128)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    data: dict | None = None


class ReportRead(PnlMetricsRead):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    name: str
    description: str | None
    status: ReportStatus
    report_type: ReportType
    period_type: PeriodType
    start_date: date | None
    end_date: date | None
    customer_id: str | None
    promotion_id: str | None
    product_id: str | None
    category: str | None
    channel: str | None
    region: str | None
    currency: str
    line_item_count: int
    generated_at: datetime | None
    generated_by: str | None
    data: dict | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class LineItemRead(PnlMetricsRead):
    model_config = ConfigDict(from_attributes=True)

    id: str
    report_id: str
    line_type: LineType
    label: str
    sort_order: int
    dimension_id: str
    dimension_name: str
    customer_id: str | None
    customer_name: str | None
    promotion_id: str | None
    promotion_name: str | None
    transaction_count: int


class ReportDetail(ReportRead):
    """Report header together with its ordered line items."""

    line_items: list[LineItemRead] = Field(default_factory=list)


class ReportList(BaseModel):
    items: list[ReportRead]
    total: int
    limit: int
    offset: int


class LineItemList(BaseModel):
    items: list[LineItemRead]
    total: int


class LiveCustomerRow(PnlMetricsRead):
    customer_id: str
    customer_name: str
    transaction_count: int


class LivePromotionRow(PnlMetricsRead):
    promotion_id: str
    promotion_name: str
    promo_start: date | None = None
    promo_end: date | None = None
    promo_status: str | None = None
    transaction_count: int


class LiveCustomerResponse(BaseModel):
    items: list[LiveCustomerRow]
    total: int


class LivePromotionResponse(BaseModel):
    items: list[LivePromotionRow]
    total: int


class ReportCounts(BaseModel):
    total: int = 0
    customer_reports: int = 0
    promotion_reports: int = 0
    generated: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)


class ReportFinancials(BaseModel):
    total_gross_sales: Decimal = Decimal("0")
    total_trade_spend: Decimal = Decimal("0")
    total_net_sales: Decimal = Decimal("0")
    total_gross_profit: Decimal = Decimal("0")
    total_net_profit: Decimal = Decimal("0")
    avg_gross_margin: Decimal = Decimal("0")
    avg_net_margin: Decimal = Decimal("0")
    avg_roi: Decimal = Decimal("0")


class ReportSummary(BaseModel):
    reports: ReportCounts
    financials: ReportFinancials


class OptionItem(BaseModel):
    value: str
    label: str


class ReportOptions(BaseModel):
    report_types: list[OptionItem]
    period_types: list[OptionItem]
    statuses: list[OptionItem]


__all__ = [
    "LineItemList",
    "LineItemRead",
    "LiveCustomerResponse",
    "LiveCustomerRow",
    "LivePromotionResponse",
    "LivePromotionRow",
    "OptionItem",
    "PnlMetricsRead",
    "ReportCounts",
    "ReportCreate",
    "ReportDetail",
    "ReportFinancials",
    "ReportList",
    "ReportOptions",
    "ReportRead",
    "ReportSummary",
    "ReportUpdate",
]
