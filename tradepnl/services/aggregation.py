"""Trade spend aggregation and fact enrichment per P&L dimension."""
from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from tradepnl.models import Accrual, Budget, Claim, Customer, Deduction, Promotion, Settlement, TradeSpend
from tradepnl.obs import start_span
from tradepnl.services.financial_model import (
    DEFAULT_ASSUMPTIONS,
    Dimension,
    FactTotals,
    ModelAssumptions,
    PnlMetrics,
    calculate_pnl,
)

logger = logging.getLogger(__name__)

UNKNOWN_DIMENSION_NAME = "Unknown"
DEFAULT_BATCH_SIZE = 500

_FACT_SOURCES: dict[str, tuple[type, str]] = {
    "accrued": (Accrual, "accrued_amount"),
    "settled": (Settlement, "settled_amount"),
    "claimed": (Claim, "claimed_amount"),
    "deducted": (Deduction, "deduction_amount"),
    "budgeted": (Budget, "amount"),
}

# Promotions are costed on accruals only and carry no budget.
ENRICHMENT_SOURCES: dict[Dimension, tuple[str, ...]] = {
    Dimension.CUSTOMER: ("accrued", "settled", "claimed", "deducted", "budgeted"),
    Dimension.PROMOTION: ("accrued", "settled"),
}


@dataclass(frozen=True, slots=True)
class DimensionSpend:
    """One aggregated trade-spend row for a dimension value."""

    dimension_id: str
    dimension_name: str
    transaction_count: int
    total_trade_spend: Decimal
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None


@dataclass(frozen=True, slots=True)
class EnrichedDimension:
    spend: DimensionSpend
    totals: FactTotals


@dataclass(frozen=True, slots=True)
class DimensionPnl:
    """Aggregated, enriched and derived result for one dimension value."""

    spend: DimensionSpend
    totals: FactTotals
    metrics: PnlMetrics


def _window_bounds(start_date: date | None, end_date: date | None) -> tuple[datetime | None, datetime | None]:
    lower = datetime.combine(start_date, time.min, tzinfo=timezone.utc) if start_date else None
    upper = (
        datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc) if end_date else None
    )
    return lower, upper


def _as_decimal(value: Decimal | float | int | None) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def aggregate_trade_spend(
    session: Session,
    *,
    tenant_id: str,
    dimension: Dimension,
    start_date: date | None = None,
    end_date: date | None = None,
    dimension_id: str | None = None,
) -> list[DimensionSpend]:
    """Sum and count trade spend per dimension value, largest spend first.

    The date window is inclusive on both ends and applies to the trade spend's
    ``created_at``. Rows without a dimension id and dimension values whose
    spend nets to zero are left out.
    """

    if dimension is Dimension.CUSTOMER:
        key_column = TradeSpend.customer_id
        name_model = Customer
        extra_columns: tuple = ()
    else:
        key_column = TradeSpend.promotion_id
        name_model = Promotion
        extra_columns = (Promotion.start_date, Promotion.end_date, Promotion.status)

    total_spend = func.sum(TradeSpend.amount)
    statement = (
        select(
            key_column,
            name_model.name,
            *extra_columns,
            func.count(TradeSpend.id),
            total_spend,
        )
        .select_from(TradeSpend)
        .outerjoin(
            name_model,
            and_(name_model.id == key_column, name_model.tenant_id == TradeSpend.tenant_id),
        )
        .where(TradeSpend.tenant_id == tenant_id, key_column.is_not(None))
        .group_by(key_column, name_model.name, *extra_columns)
        .having(total_spend != 0)
        .order_by(total_spend.desc(), key_column)
    )

    lower, upper = _window_bounds(start_date, end_date)
    if lower is not None:
        statement = statement.where(TradeSpend.created_at >= lower)
    if upper is not None:
        statement = statement.where(TradeSpend.created_at < upper)
    if dimension_id is not None:
        statement = statement.where(key_column == dimension_id)

    rows: list[DimensionSpend] = []
    for result in session.execute(statement):
        if dimension is Dimension.CUSTOMER:
            key, name, count, spend = result
            extras: dict = {}
        else:
            key, name, promo_start, promo_end, promo_status, count, spend = result
            extras = {"start_date": promo_start, "end_date": promo_end, "status": promo_status}
        rows.append(
            DimensionSpend(
                dimension_id=key,
                dimension_name=name or UNKNOWN_DIMENSION_NAME,
                transaction_count=int(count or 0),
                total_trade_spend=_as_decimal(spend),
                **extras,
            )
        )
    return rows


def _chunked(values: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for offset in range(0, len(values), size):
        yield values[offset : offset + size]


def sum_facts_by_dimension(
    session: Session,
    *,
    source: str,
    tenant_id: str,
    dimension: Dimension,
    dimension_ids: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, Decimal]:
    """Return ``{dimension_id: summed amount}`` for one fact source.

    Ids with no matching facts are absent from the result.
    """

    model, amount_attribute = _FACT_SOURCES[source]
    key_column = getattr(model, f"{dimension.value}_id")
    amount_column = getattr(model, amount_attribute)

    totals: dict[str, Decimal] = {}
    for chunk in _chunked(list(dimension_ids), batch_size):
        statement = (
            select(key_column, func.sum(amount_column))
            .where(model.tenant_id == tenant_id, key_column.in_(chunk))
            .group_by(key_column)
        )
        for key, amount in session.execute(statement):
            totals[key] = _as_decimal(amount)
    return totals


def enrich_dimensions(
    session: Session,
    *,
    tenant_id: str,
    dimension: Dimension,
    rows: Sequence[DimensionSpend],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[EnrichedDimension]:
    """Attach accrual, settlement, claim, deduction and budget totals to each row.

    Each source is read with one grouped query over every id in ``rows``.
    A dimension value missing from a source contributes zero.
    """

    if not rows:
        return []

    dimension_ids = [row.dimension_id for row in rows]
    sources = ENRICHMENT_SOURCES[dimension]
    lookups = {
        source: sum_facts_by_dimension(
            session,
            source=source,
            tenant_id=tenant_id,
            dimension=dimension,
            dimension_ids=dimension_ids,
            batch_size=batch_size,
        )
        for source in sources
    }

    enriched: list[EnrichedDimension] = []
    for row in rows:
        amounts = {source: lookups[source].get(row.dimension_id, Decimal("0")) for source in sources}
        enriched.append(
            EnrichedDimension(
                spend=row,
                totals=FactTotals(trade_spend=row.total_trade_spend, **amounts),
            )
        )
    return enriched


def compute_dimension_pnl(
    session: Session,
    *,
    tenant_id: str,
    dimension: Dimension,
    start_date: date | None = None,
    end_date: date | None = None,
    dimension_id: str | None = None,
    assumptions: ModelAssumptions = DEFAULT_ASSUMPTIONS,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[DimensionPnl]:
    """Run aggregation, enrichment and the financial model for one dimension."""

    with start_span("pnl.aggregate", tenant_id=tenant_id, dimension=dimension.value):
        spend_rows = aggregate_trade_spend(
            session,
            tenant_id=tenant_id,
            dimension=dimension,
            start_date=start_date,
            end_date=end_date,
            dimension_id=dimension_id,
        )

    with start_span("pnl.enrich", tenant_id=tenant_id, dimension=dimension.value, rows=len(spend_rows)):
        enriched = enrich_dimensions(
            session,
            tenant_id=tenant_id,
            dimension=dimension,
            rows=spend_rows,
            batch_size=batch_size,
        )

    logger.debug(
        "computed %s P&L rows for tenant %s by %s", len(enriched), tenant_id, dimension.value
    )
    return [
        DimensionPnl(
            spend=item.spend,
            totals=item.totals,
            metrics=calculate_pnl(item.totals, dimension, assumptions),
        )
        for item in enriched
    ]


__all__ = [
    "DimensionPnl",
    "DimensionSpend",
    "ENRICHMENT_SOURCES",
    "EnrichedDimension",
    "UNKNOWN_DIMENSION_NAME",
    "aggregate_trade_spend",
    "compute_dimension_pnl",
    "enrich_dimensions",
    "sum_facts_by_dimension",
]
