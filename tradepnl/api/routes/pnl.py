"""P&L report endpoints."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from tradepnl.api.deps import READ_ROLES, WRITE_ROLES, get_db_session, require_role
from tradepnl.core.security import AuthenticatedUser
from tradepnl.models import ReportStatus, ReportType
from tradepnl.schemas.pnl import (
    LineItemList,
    LineItemRead,
    LiveCustomerResponse,
    LiveCustomerRow,
    LivePromotionResponse,
    LivePromotionRow,
    ReportCreate,
    ReportDetail,
    ReportList,
    ReportOptions,
    ReportRead,
    ReportSummary,
    ReportUpdate,
)
from tradepnl.services.live_pnl import live_by_customer, live_by_promotion
from tradepnl.services.pnl_reports import (
    PnlReportService,
    ReportConcurrencyError,
    ReportGenerationError,
    ReportGenerationInProgressError,
    ReportNotFoundError,
    ReportValidationError,
    report_options,
)

router = APIRouter(prefix="/pnl")


def _get_service(session: Session = Depends(get_db_session)) -> PnlReportService:
    return PnlReportService(session)


@router.get("/", response_model=ReportList)
def list_reports(
    status_filter: ReportStatus | None = Query(default=None, alias="status"),
    report_type: ReportType | None = Query(default=None),
    customer_id: str | None = Query(default=None),
    promotion_id: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    service: PnlReportService = Depends(_get_service),
    user: AuthenticatedUser = Depends(require_role(*READ_ROLES)),
) -> ReportList:
    """List the tenant's P&L report headers, newest first."""

    page = service.list_reports(
        tenant_id=user.tenant_id,
        status=status_filter,
        report_type=report_type,
        customer_id=customer_id,
        promotion_id=promotion_id,
        limit=limit,
        offset=offset,
    )
    return ReportList(
        items=[ReportRead.model_validate(item) for item in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/options", response_model=ReportOptions)
def get_options(user: AuthenticatedUser = Depends(require_role(*READ_ROLES))) -> ReportOptions:
    """Return the selectable report types, period types and statuses."""

    return ReportOptions.model_validate(report_options())


@router.get("/summary", response_model=ReportSummary)
def get_summary(
    service: PnlReportService = Depends(_get_service),
    user: AuthenticatedUser = Depends(require_role(*READ_ROLES)),
) -> ReportSummary:
    """Summarise report counts and generated financials for the tenant."""

    return ReportSummary.model_validate(service.summarise_reports(tenant_id=user.tenant_id))


@router.get("/live-by-customer", response_model=LiveCustomerResponse)
def get_live_by_customer(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(require_role(*READ_ROLES)),
) -> LiveCustomerResponse:
    """Compute a per-customer P&L on the fly without persisting it."""

    try:
        rows = live_by_customer(session, tenant_id=user.tenant_id, start_date=start_date, end_date=end_date)
    except ReportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    items = [LiveCustomerRow(**row) for row in rows]
    return LiveCustomerResponse(items=items, total=len(items))


@router.get("/live-by-promotion", response_model=LivePromotionResponse)
def get_live_by_promotion(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(require_role(*READ_ROLES)),
) -> LivePromotionResponse:
    """Compute a per-promotion P&L on the fly without persisting it."""

    try:
        rows = live_by_promotion(session, tenant_id=user.tenant_id, start_date=start_date, end_date=end_date)
    except ReportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    items = [LivePromotionRow(**row) for row in rows]
    return LivePromotionResponse(items=items, total=len(items))


@router.get("/{report_id}", response_model=ReportDetail)
def get_report(
    report_id: str,
    service: PnlReportService = Depends(_get_service),
    user: AuthenticatedUser = Depends(require_role(*READ_ROLES)),
) -> ReportDetail:
    """Fetch a report header with its ordered line items."""

    try:
        report = service.get_report(tenant_id=user.tenant_id, report_id=report_id)
        line_items = service.get_line_items(tenant_id=user.tenant_id, report_id=report_id)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    header = ReportRead.model_validate(report)
    return ReportDetail(
        **header.model_dump(),
        line_items=[LineItemRead.model_validate(item) for item in line_items],
    )


@router.post("/", response_model=ReportRead, status_code=status.HTTP_201_CREATED)
def create_report(
    payload: ReportCreate,
    service: PnlReportService = Depends(_get_service),
    user: AuthenticatedUser = Depends(require_role(*WRITE_ROLES)),
) -> ReportRead:
    """Create a draft report for the authenticated tenant."""

    try:
        report = service.create_report(tenant_id=user.tenant_id, actor=user.email, fields=payload.model_dump())
    except ReportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return ReportRead.model_validate(report)


@router.put("/{report_id}", response_model=ReportRead)
def update_report(
    report_id: str,
    payload: ReportUpdate,
    service: PnlReportService = Depends(_get_service),
    user: AuthenticatedUser = Depends(require_role(*WRITE_ROLES)),
) -> ReportRead:
    """Apply a partial update to a report header."""

    try:
        report = service.update_report(
            tenant_id=user.tenant_id,
            report_id=report_id,
            changes=payload.model_dump(exclude_unset=True),
        )
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ReportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (ReportGenerationInProgressError, ReportConcurrencyError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return ReportRead.model_validate(report)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report(
    report_id: str,
    service: PnlReportService = Depends(_get_service),
    user: AuthenticatedUser = Depends(require_role(*WRITE_ROLES)),
) -> Response:
    """Delete a report together with its line items."""

    try:
        service.delete_report(tenant_id=user.tenant_id, report_id=report_id)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (ReportGenerationInProgressError, ReportConcurrencyError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{report_id}/generate", response_model=ReportDetail)
def generate_report(
    report_id: str,
    service: PnlReportService = Depends(_get_service),
    user: AuthenticatedUser = Depends(require_role(*WRITE_ROLES)),
) -> ReportDetail:
    """Regenerate a report's line items and totals from the tenant's facts."""

    try:
        result = service.generate_report(tenant_id=user.tenant_id, report_id=report_id, actor=user.email)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (ReportGenerationInProgressError, ReportConcurrencyError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ReportGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    header = ReportRead.model_validate(result.report)
    return ReportDetail(
        **header.model_dump(),
        line_items=[LineItemRead.model_validate(item) for item in result.line_items],
    )


@router.get("/{report_id}/line-items", response_model=LineItemList)
def list_line_items(
    report_id: str,
    service: PnlReportService = Depends(_get_service),
    user: AuthenticatedUser = Depends(require_role(*READ_ROLES)),
) -> LineItemList:
    """List a report's line items in rank order."""

    try:
        line_items = service.get_line_items(tenant_id=user.tenant_id, report_id=report_id)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    items = [LineItemRead.model_validate(item) for item in line_items]
    return LineItemList(items=items, total=len(items))


__all__ = ["router"]
