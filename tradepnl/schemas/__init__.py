"""Pydantic schemas package."""

from .pnl import (
    LineItemList,
    LineItemRead,
    LiveCustomerResponse,
    LiveCustomerRow,
    LivePromotionResponse,
    LivePromotionRow,
    OptionItem,
    PnlMetricsRead,
    ReportCounts,
    ReportCreate,
    ReportDetail,
    ReportFinancials,
    ReportList,
    ReportOptions,
    ReportRead,
    ReportSummary,
    ReportUpdate,
)

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
