"""P&L report lifecycle: CRUD, generation and cross-report summaries.

Generation is serialized per report by a lease stored on the header row
(``generation_token`` + ``generation_started_at``). The lease is taken in a
short transaction that also moves the report to ``generating``; the new line
items are then computed outside any write transaction and swapped in, together
with the header totals, in a single transaction that re-checks the lease. A
failure anywhere after the lease is taken rolls the swap back and returns the
report to ``draft``.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from tradepnl.core.config import Settings, get_settings
from tradepnl.db.session import serializable_transaction
from tradepnl.models import LineType, PeriodType, PnlLineItem, PnlReport, ReportStatus, ReportType
from tradepnl.obs import record_generation, start_span
from tradepnl.services.aggregation import DimensionPnl, compute_dimension_pnl
from tradepnl.services.financial_model import (
    Dimension,
    ModelAssumptions,
    PnlMetrics,
    allocate_cents,
    assumptions_from_settings,
    round_amount,
    summarise,
)

logger = logging.getLogger(__name__)


class PnlError(RuntimeError):
    """Base exception for P&L service errors."""


class ReportNotFoundError(PnlError):
    """Raised when a report id is absent or belongs to another tenant."""


class ReportValidationError(PnlError):
    """Raised when report fields are missing or inconsistent."""


class ReportGenerationInProgressError(PnlError):
    """Raised when another request holds a live generation lease on the report."""


class ReportConcurrencyError(PnlError):
    """Raised when the report header was modified concurrently."""


class ReportGenerationError(PnlError):
    """Raised when generation fails; the report has been returned to draft."""


REPORT_DIMENSIONS: dict[ReportType, Dimension] = {
    ReportType.CUSTOMER: Dimension.CUSTOMER,
    ReportType.CONSOLIDATED: Dimension.CUSTOMER,
    ReportType.PROMOTION: Dimension.PROMOTION,
}

MANUAL_STATUSES = frozenset(
    {ReportStatus.DRAFT, ReportStatus.APPROVED, ReportStatus.PUBLISHED, ReportStatus.ARCHIVED}
)
GENERATED_STATUSES = frozenset(
    {ReportStatus.GENERATED, ReportStatus.APPROVED, ReportStatus.PUBLISHED, ReportStatus.ARCHIVED}
)

_REQUIRED_FIELDS = frozenset({"name", "status", "report_type", "period_type", "currency"})
_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "status",
        "report_type",
        "period_type",
        "start_date",
        "end_date",
        "customer_id",
        "promotion_id",
        "product_id",
        "category",
        "channel",
        "region",
        "currency",
        "data",
    }
)

REPORT_TYPE_LABELS = {
    ReportType.CUSTOMER: "P&L by Customer",
    ReportType.PROMOTION: "P&L by Promotion",
    ReportType.PRODUCT: "P&L by Product",
    ReportType.CHANNEL: "P&L by Channel",
    ReportType.PERIOD: "P&L by Period",
    ReportType.CONSOLIDATED: "Consolidated P&L",
}


@dataclass(slots=True, frozen=True)
class ReportPage:
    items: list[PnlReport]
    total: int
    limit: int
    offset: int


@dataclass(slots=True, frozen=True)
class GenerationResult:
    report: PnlReport
    line_items: list[PnlLineItem]


@dataclass(slots=True, frozen=True)
class _GenerationPlan:
    """Snapshot of the report fields a generation run works from."""

    token: str
    report_type: ReportType
    dimension: Dimension | None
    start_date: date | None
    end_date: date | None
    dimension_id: str | None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def validate_date_window(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ReportValidationError("end_date must not be before start_date")


def report_options() -> dict[str, list[dict[str, str]]]:
    """Selectable report types, period types and statuses with display labels."""

    return {
        "report_types": [
            {"value": report_type.value, "label": REPORT_TYPE_LABELS[report_type]} for report_type in ReportType
        ],
        "period_types": [
            {"value": period.value, "label": "Custom Range" if period.value == "custom" else period.value.title()}
            for period in PeriodType
        ],
        "statuses": [{"value": item.value, "label": item.value.title()} for item in ReportStatus],
    }


class PnlReportService:
    """Coordinates the P&L report lifecycle for one database session."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        assumptions: ModelAssumptions | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._assumptions = assumptions or assumptions_from_settings(self._settings)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # Reads -----------------------------------------------------------------

    def get_report(self, *, tenant_id: str, report_id: str) -> PnlReport:
        report = self._session.get(PnlReport, report_id)
        if report is None or report.tenant_id != tenant_id:
            raise ReportNotFoundError(f"P&L report '{report_id}' was not found for tenant '{tenant_id}'")
        return report

    def get_line_items(self, *, tenant_id: str, report_id: str) -> list[PnlLineItem]:
        self.get_report(tenant_id=tenant_id, report_id=report_id)
        statement = (
            select(PnlLineItem)
            .where(PnlLineItem.report_id == report_id, PnlLineItem.tenant_id == tenant_id)
            .order_by(PnlLineItem.sort_order)
        )
        return list(self._session.scalars(statement).all())

    def list_reports(
        self,
        *,
        tenant_id: str,
        status: ReportStatus | None = None,
        report_type: ReportType | None = None,
        customer_id: str | None = None,
        promotion_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ReportPage:
        limit = min(limit or self._settings.pnl_list_default_limit, self._settings.pnl_list_max_limit)
        offset = max(offset, 0)

        filters = [PnlReport.tenant_id == tenant_id]
        if status is not None:
            filters.append(PnlReport.status == status)
        if report_type is not None:
            filters.append(PnlReport.report_type == report_type)
        if customer_id is not None:
            filters.append(PnlReport.customer_id == customer_id)
        if promotion_id is not None:
            filters.append(PnlReport.promotion_id == promotion_id)

        total = self._session.scalar(select(func.count()).select_from(PnlReport).where(*filters)) or 0
        statement = (
            select(PnlReport)
            .where(*filters)
            .order_by(PnlReport.created_at.desc(), PnlReport.id)
            .limit(limit)
            .offset(offset)
        )
        items = list(self._session.scalars(statement).all())
        return ReportPage(items=items, total=total, limit=limit, offset=offset)

    # Writes ----------------------------------------------------------------

    def create_report(self, *, tenant_id: str, actor: str | None, fields: dict[str, Any]) -> PnlReport:
        """Create a draft report; ``name`` is required and must not be blank."""

        name = (fields.get("name") or "").strip()
        if not name:
            raise ReportValidationError("Report name is required")
        validate_date_window(fields.get("start_date"), fields.get("end_date"))

        report = PnlReport(
            tenant_id=tenant_id,
            name=name,
            description=fields.get("description"),
            report_type=fields.get("report_type") or ReportType.CUSTOMER,
            period_type=fields.get("period_type") or PeriodType.MONTHLY,
            status=ReportStatus.DRAFT,
            start_date=fields.get("start_date"),
            end_date=fields.get("end_date"),
            customer_id=fields.get("customer_id"),
            promotion_id=fields.get("promotion_id"),
            product_id=fields.get("product_id"),
            category=fields.get("category"),
            channel=fields.get("channel"),
            region=fields.get("region"),
            currency=fields.get("currency") or self._settings.pnl_default_currency,
            data=fields.get("data") or {},
            created_by=actor,
        )
        self._session.add(report)
        self._session.commit()
        self._session.refresh(report)
        logger.info("created P&L report %s for tenant %s", report.id, tenant_id)
        return report

    def update_report(self, *, tenant_id: str, report_id: str, changes: dict[str, Any]) -> PnlReport:
        """Apply a partial update, including manual status transitions."""

        report = self.get_report(tenant_id=tenant_id, report_id=report_id)
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ReportValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        status = changes.get("status")
        if status is not None and ReportStatus(status) not in MANUAL_STATUSES:
            raise ReportValidationError(f"Status '{ReportStatus(status).value}' is set by report generation only")
        if "name" in changes and not (changes["name"] or "").strip():
            raise ReportValidationError("Report name is required")
        if self._lease_active(report, self._clock()):
            raise ReportGenerationInProgressError(f"P&L report '{report_id}' is being generated")

        for field_name, value in changes.items():
            if value is None and field_name in _REQUIRED_FIELDS:
                continue
            if field_name == "name":
                value = value.strip()
            elif field_name == "status":
                value = ReportStatus(value)
            setattr(report, field_name, value)
        try:
            validate_date_window(report.start_date, report.end_date)
        except ReportValidationError:
            self._session.rollback()
            raise

        try:
            self._session.commit()
        except StaleDataError as exc:
            self._session.rollback()
            raise ReportConcurrencyError("P&L report was modified concurrently") from exc
        self._session.refresh(report)
        return report

    def delete_report(self, *, tenant_id: str, report_id: str) -> None:
        """Remove the report header and every one of its line items in one transaction."""

        with serializable_transaction(self._session):
            report = self._locked_report(tenant_id=tenant_id, report_id=report_id)
            if report is None:
                raise ReportNotFoundError(f"P&L report '{report_id}' was not found for tenant '{tenant_id}'")
            if self._lease_active(report, self._clock()):
                raise ReportGenerationInProgressError(f"P&L report '{report_id}' is being generated")
            self._session.execute(
                delete(PnlLineItem).where(PnlLineItem.report_id == report_id, PnlLineItem.tenant_id == tenant_id)
            )
            self._session.expire(report, ["line_items"])
            self._session.delete(report)
            self._flush()
        logger.info("deleted P&L report %s for tenant %s", report_id, tenant_id)

    # Generation ------------------------------------------------------------

    def generate_report(self, *, tenant_id: str, report_id: str, actor: str | None) -> GenerationResult:
        """Rebuild the report's line items and totals from the fact tables."""

        report = self.get_report(tenant_id=tenant_id, report_id=report_id)
        report_type = report.report_type.value
        started = time.perf_counter()

        with start_span("pnl.generate", tenant_id=tenant_id, report_id=report_id, report_type=report_type):
            try:
                plan = self._acquire_lease(tenant_id=tenant_id, report_id=report_id)
            except (ReportGenerationInProgressError, ReportConcurrencyError):
                record_generation(report_type, outcome="conflict", duration_seconds=time.perf_counter() - started)
                raise
            logger.info("generating P&L report %s for tenant %s", report_id, tenant_id)

            try:
                rows = self._compute_rows(tenant_id=tenant_id, plan=plan)
                result = self._swap_in(tenant_id=tenant_id, report_id=report_id, plan=plan, rows=rows, actor=actor)
            except (ReportConcurrencyError, ReportNotFoundError):
                self._session.rollback()
                record_generation(report_type, outcome="conflict", duration_seconds=time.perf_counter() - started)
                raise
            except Exception as exc:
                self._session.rollback()
                logger.exception("P&L report %s generation failed for tenant %s", report_id, tenant_id)
                self._release_to_draft(tenant_id=tenant_id, report_id=report_id, token=plan.token)
                record_generation(report_type, outcome="failed", duration_seconds=time.perf_counter() - started)
                raise ReportGenerationError(f"P&L report generation failed: {exc}") from exc

        record_generation(
            report_type,
            outcome="generated",
            duration_seconds=time.perf_counter() - started,
            line_items=len(result.line_items),
        )
        logger.info(
            "generated P&L report %s for tenant %s with %s line items",
            report_id,
            tenant_id,
            len(result.line_items),
        )
        return result

    def _acquire_lease(self, *, tenant_id: str, report_id: str) -> _GenerationPlan:
        now = self._clock()
        token = uuid4().hex
        with serializable_transaction(self._session):
            report = self._locked_report(tenant_id=tenant_id, report_id=report_id)
            if report is None:
                raise ReportNotFoundError(f"P&L report '{report_id}' was not found for tenant '{tenant_id}'")
            if self._lease_active(report, now):
                raise ReportGenerationInProgressError(f"P&L report '{report_id}' is already being generated")
            if report.status is ReportStatus.GENERATING:
                logger.warning("taking over expired generation lease on P&L report %s", report_id)

            dimension = REPORT_DIMENSIONS.get(report.report_type)
            if dimension is Dimension.CUSTOMER:
                dimension_id = report.customer_id
            elif dimension is Dimension.PROMOTION:
                dimension_id = report.promotion_id
            else:
                dimension_id = None
            plan = _GenerationPlan(
                token=token,
                report_type=report.report_type,
                dimension=dimension,
                start_date=report.start_date,
                end_date=report.end_date,
                dimension_id=dimension_id,
            )

            report.status = ReportStatus.GENERATING
            report.generation_token = token
            report.generation_started_at = now
            self._flush()
        return plan

    def _compute_rows(self, *, tenant_id: str, plan: _GenerationPlan) -> list[DimensionPnl]:
        if plan.dimension is None:
            logger.info("report type %s has no trade-spend dimension; generating empty P&L", plan.report_type.value)
            return []
        return compute_dimension_pnl(
            self._session,
            tenant_id=tenant_id,
            dimension=plan.dimension,
            start_date=plan.start_date,
            end_date=plan.end_date,
            dimension_id=plan.dimension_id,
            assumptions=self._assumptions,
            batch_size=self._settings.pnl_enrichment_batch_size,
        )

    def _swap_in(
        self,
        *,
        tenant_id: str,
        report_id: str,
        plan: _GenerationPlan,
        rows: list[DimensionPnl],
        actor: str | None,
    ) -> GenerationResult:
        raw_metrics = [row.metrics for row in rows]
        totals = summarise(raw_metrics).rounded()
        line_items = [
            _build_line_item(
                tenant_id=tenant_id,
                report_id=report_id,
                dimension=plan.dimension,
                rank=rank,
                row=row,
                metrics=metrics,
            )
            for rank, (row, metrics) in enumerate(zip(rows, allocate_cents(raw_metrics, totals)), start=1)
        ]

        with serializable_transaction(self._session):
            report = self._locked_report(tenant_id=tenant_id, report_id=report_id)
            if report is None:
                raise ReportNotFoundError(f"P&L report '{report_id}' was deleted during generation")
            if report.generation_token != plan.token:
                raise ReportConcurrencyError(f"Generation lease on P&L report '{report_id}' was lost")

            self._session.execute(
                delete(PnlLineItem).where(PnlLineItem.report_id == report_id, PnlLineItem.tenant_id == tenant_id)
            )
            self._session.expire(report, ["line_items"])
            self._session.add_all(line_items)

            _apply_metrics(report, totals)
            report.status = ReportStatus.GENERATED
            report.generated_at = self._clock()
            report.generated_by = actor
            report.line_item_count = len(line_items)
            report.generation_token = None
            report.generation_started_at = None
            self._flush()

        self._session.refresh(report)
        return GenerationResult(report=report, line_items=self.get_line_items(tenant_id=tenant_id, report_id=report_id))

    def _release_to_draft(self, *, tenant_id: str, report_id: str, token: str) -> None:
        try:
            with serializable_transaction(self._session):
                report = self._locked_report(tenant_id=tenant_id, report_id=report_id)
                if report is None or report.generation_token != token:
                    logger.warning("generation lease on P&L report %s is no longer held; leaving status", report_id)
                    return
                report.status = ReportStatus.DRAFT
                report.generation_token = None
                report.generation_started_at = None
                self._session.flush()
        except Exception:
            logger.exception("failed to return P&L report %s to draft", report_id)

    # Summary ---------------------------------------------------------------

    def summarise_reports(self, *, tenant_id: str) -> dict[str, dict[str, Any]]:
        """Counts by status and type, plus financial totals of generated reports."""

        counts = self._session.execute(
            select(PnlReport.status, PnlReport.report_type, func.count())
            .where(PnlReport.tenant_id == tenant_id)
            .group_by(PnlReport.status, PnlReport.report_type)
        ).all()

        by_status: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for status, report_type, count in counts:
            by_status[status.value] = by_status.get(status.value, 0) + count
            by_type[report_type.value] = by_type.get(report_type.value, 0) + count

        financials = self._session.execute(
            select(
                func.sum(PnlReport.gross_sales),
                func.sum(PnlReport.trade_spend),
                func.sum(PnlReport.net_sales),
                func.sum(PnlReport.gross_profit),
                func.sum(PnlReport.net_profit),
                func.avg(PnlReport.gross_margin_pct),
                func.avg(PnlReport.net_margin_pct),
                func.avg(PnlReport.roi),
            ).where(PnlReport.tenant_id == tenant_id, PnlReport.status.in_(GENERATED_STATUSES))
        ).one()
        (gross_sales, trade_spend, net_sales, gross_profit, net_profit, gross_margin, net_margin, roi) = (
            round_amount(value or 0) for value in financials
        )

        return {
            "reports": {
                "total": sum(by_status.values()),
                "customer_reports": by_type.get(ReportType.CUSTOMER.value, 0),
                "promotion_reports": by_type.get(ReportType.PROMOTION.value, 0),
                "generated": by_status.get(ReportStatus.GENERATED.value, 0),
                "by_status": by_status,
                "by_type": by_type,
            },
            "financials": {
                "total_gross_sales": gross_sales,
                "total_trade_spend": trade_spend,
                "total_net_sales": net_sales,
                "total_gross_profit": gross_profit,
                "total_net_profit": net_profit,
                "avg_gross_margin": gross_margin,
                "avg_net_margin": net_margin,
                "avg_roi": roi,
            },
        }

    # Helpers ---------------------------------------------------------------

    def _locked_report(self, *, tenant_id: str, report_id: str) -> PnlReport | None:
        statement = (
            select(PnlReport)
            .where(PnlReport.id == report_id, PnlReport.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(statement).one_or_none()

    def _lease_active(self, report: PnlReport, now: datetime) -> bool:
        if report.status is not ReportStatus.GENERATING or report.generation_started_at is None:
            return False
        lease = timedelta(seconds=self._settings.pnl_generation_lease_seconds)
        return _as_utc(now) - _as_utc(report.generation_started_at) < lease

    def _flush(self) -> None:
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise ReportConcurrencyError("P&L report was modified concurrently") from exc


def _apply_metrics(target: PnlReport | PnlLineItem, metrics: PnlMetrics) -> None:
    for name, value in metrics.as_dict().items():
        setattr(target, name, value)


def _build_line_item(
    *,
    tenant_id: str,
    report_id: str,
    dimension: Dimension | None,
    rank: int,
    row: DimensionPnl,
    metrics: PnlMetrics,
) -> PnlLineItem:
    spend = row.spend
    item = PnlLineItem(
        tenant_id=tenant_id,
        report_id=report_id,
        line_type=LineType(dimension.value),
        label=spend.dimension_name,
        sort_order=rank,
        dimension_id=spend.dimension_id,
        dimension_name=spend.dimension_name,
        transaction_count=spend.transaction_count,
        data={},
    )
    if dimension is Dimension.CUSTOMER:
        item.customer_id = spend.dimension_id
        item.customer_name = spend.dimension_name
    else:
        item.promotion_id = spend.dimension_id
        item.promotion_name = spend.dimension_name
        item.data = {
            "promo_start": spend.start_date.isoformat() if spend.start_date else None,
            "promo_end": spend.end_date.isoformat() if spend.end_date else None,
            "promo_status": spend.status,
        }
    _apply_metrics(item, metrics)
    return item


__all__ = [
    "GENERATED_STATUSES",
    "GenerationResult",
    "MANUAL_STATUSES",
    "PnlError",
    "PnlReportService",
    "REPORT_DIMENSIONS",
    "ReportConcurrencyError",
    "ReportGenerationError",
    "ReportGenerationInProgressError",
    "ReportNotFoundError",
    "ReportPage",
    "ReportValidationError",
    "report_options",
    "validate_date_window",
]
