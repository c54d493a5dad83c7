"""Live P&L views computed straight from the fact tables, nothing persisted."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from tradepnl.core.config import Settings, get_settings
from tradepnl.obs import start_span
from tradepnl.services.aggregation import DimensionPnl, compute_dimension_pnl
from tradepnl.services.financial_model import Dimension, assumptions_from_settings
from tradepnl.services.pnl_reports import validate_date_window

logger = logging.getLogger(__name__)


def _live_rows(
    session: Session,
    *,
    tenant_id: str,
    dimension: Dimension,
    start_date: date | None,
    end_date: date | None,
    settings: Settings | None,
) -> list[DimensionPnl]:
    validate_date_window(start_date, end_date)
    settings = settings or get_settings()
    with start_span("pnl.live", tenant_id=tenant_id, dimension=dimension.value):
        rows = compute_dimension_pnl(
            session,
            tenant_id=tenant_id,
            dimension=dimension,
            start_date=start_date,
            end_date=end_date,
            assumptions=assumptions_from_settings(settings),
            batch_size=settings.pnl_enrichment_batch_size,
        )
    logger.debug("live %s P&L for tenant %s returned %s rows", dimension.value, tenant_id, len(rows))
    return rows


def live_by_customer(
    session: Session,
    *,
    tenant_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
    settings: Settings | None = None,
) -> list[dict[str, Any]]:
    """Per-customer P&L over the window, ordered by trade spend descending."""

    rows = _live_rows(
        session,
        tenant_id=tenant_id,
        dimension=Dimension.CUSTOMER,
        start_date=start_date,
        end_date=end_date,
        settings=settings,
    )
    return [
        {
            "customer_id": row.spend.dimension_id,
            "customer_name": row.spend.dimension_name,
            "transaction_count": row.spend.transaction_count,
            **row.metrics.rounded().as_dict(),
        }
        for row in rows
    ]


def live_by_promotion(
    session: Session,
    *,
    tenant_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
    settings: Settings | None = None,
) -> list[dict[str, Any]]:
    """Per-promotion P&L over the window; promotions carry no budget, claims or deductions."""

    rows = _live_rows(
        session,
        tenant_id=tenant_id,
        dimension=Dimension.PROMOTION,
        start_date=start_date,
        end_date=end_date,
        settings=settings,
    )
    return [
        {
            "promotion_id": row.spend.dimension_id,
            "promotion_name": row.spend.dimension_name,
            "promo_start": row.spend.start_date,
            "promo_end": row.spend.end_date,
            "promo_status": row.spend.status,
            "transaction_count": row.spend.transaction_count,
            **row.metrics.rounded().as_dict(),
        }
        for row in rows
    ]


__all__ = ["live_by_customer", "live_by_promotion"]
