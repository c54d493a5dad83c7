"""ORM models package."""
from .base import Base, TimestampMixin
from .facts import Accrual, Budget, Claim, Customer, Deduction, Promotion, Settlement, TradeSpend
from .pnl_report import (
    LineType,
    PeriodType,
    PnlLineItem,
    PnlMetricsMixin,
    PnlReport,
    ReportStatus,
    ReportType,
)
from .tenant import Tenant, TenantStatus

__all__ = [
    "Accrual",
    "Base",
    "Budget",
    "Claim",
    "Customer",
    "Deduction",
    "LineType",
    "PeriodType",
    "PnlLineItem",
    "PnlMetricsMixin",
    "PnlReport",
    "Promotion",
    "ReportStatus",
    "ReportType",
    "Settlement",
    "Tenant",
    "TenantStatus",
    "TimestampMixin",
    "TradeSpend",
]
