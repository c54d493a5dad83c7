from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from tradepnl.services.aggregation import (
    UNKNOWN_DIMENSION_NAME,
    aggregate_trade_spend,
    compute_dimension_pnl,
    enrich_dimensions,
    sum_facts_by_dimension,
)
from tradepnl.services.financial_model import Dimension

TENANT = "tenant-demo"


def test_aggregate_orders_by_spend_and_counts_transactions(db_session: Session, facts) -> None:
    small = facts.customer("Small Co")
    large = facts.customer("Large Co")
    facts.spend("100.00", customer_id=small.id)
    facts.spend("400.00", customer_id=large.id)
    facts.spend("250.00", customer_id=large.id)

    rows = aggregate_trade_spend(db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER)

    assert [row.dimension_name for row in rows] == ["Large Co", "Small Co"]
    assert rows[0].transaction_count == 2
    assert rows[0].total_trade_spend == Decimal("650.00")
    assert rows[1].total_trade_spend == Decimal("100.00")


def test_aggregate_breaks_ties_by_dimension_id(db_session: Session, facts) -> None:
    second = facts.customer("Second", customer_id="cust-b")
    first = facts.customer("First", customer_id="cust-a")
    facts.spend("300.00", customer_id=second.id)
    facts.spend("300.00", customer_id=first.id)

    rows = aggregate_trade_spend(db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER)

    assert [row.dimension_id for row in rows] == ["cust-a", "cust-b"]


def test_aggregate_skips_unattributed_and_net_zero_spend(db_session: Session, facts) -> None:
    customer = facts.customer("Refunded")
    facts.spend("200.00", customer_id=customer.id)
    facts.spend("-200.00", customer_id=customer.id)
    facts.spend("75.00", promotion_id="promo-only")

    rows = aggregate_trade_spend(db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER)

    assert rows == []


def test_aggregate_names_unknown_dimensions(db_session: Session, facts) -> None:
    facts.spend("90.00", customer_id="missing-customer")

    rows = aggregate_trade_spend(db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER)

    assert len(rows) == 1
    assert rows[0].dimension_id == "missing-customer"
    assert rows[0].dimension_name == UNKNOWN_DIMENSION_NAME


def test_aggregate_is_tenant_scoped(db_session: Session, facts) -> None:
    mine = facts.customer("Mine")
    facts.spend("10.00", customer_id=mine.id)
    other = facts.for_tenant("tenant-other")
    theirs = other.customer("Theirs")
    other.spend("999.00", customer_id=theirs.id)

    rows = aggregate_trade_spend(db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER)

    assert [row.dimension_name for row in rows] == ["Mine"]


def test_aggregate_date_window_is_inclusive(db_session: Session, facts) -> None:
    customer = facts.customer("Windowed")
    facts.spend("1.00", customer_id=customer.id, created_at=datetime(2026, 2, 28, 23, 0, tzinfo=timezone.utc))
    facts.spend("10.00", customer_id=customer.id, created_at=datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc))
    facts.spend("100.00", customer_id=customer.id, created_at=datetime(2026, 3, 31, 23, 59, tzinfo=timezone.utc))
    facts.spend("1000.00", customer_id=customer.id, created_at=datetime(2026, 4, 1, 0, 0, tzinfo=timezone.utc))

    rows = aggregate_trade_spend(
        db_session,
        tenant_id=TENANT,
        dimension=Dimension.CUSTOMER,
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 31),
    )

    assert rows[0].total_trade_spend == Decimal("110.00")
    assert rows[0].transaction_count == 2


def test_aggregate_filters_single_dimension(db_session: Session, facts) -> None:
    first = facts.customer("First")
    second = facts.customer("Second")
    facts.spend("10.00", customer_id=first.id)
    facts.spend("20.00", customer_id=second.id)

    rows = aggregate_trade_spend(
        db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER, dimension_id=first.id
    )

    assert [row.dimension_id for row in rows] == [first.id]


def test_promotion_rows_carry_schedule_and_status(db_session: Session, facts) -> None:
    promotion = facts.promotion(
        "Winter Bundle", start_date=date(2026, 5, 1), end_date=date(2026, 7, 31), status="active"
    )
    facts.spend("500.00", promotion_id=promotion.id)

    rows = aggregate_trade_spend(db_session, tenant_id=TENANT, dimension=Dimension.PROMOTION)

    assert rows[0].dimension_name == "Winter Bundle"
    assert rows[0].start_date == date(2026, 5, 1)
    assert rows[0].end_date == date(2026, 7, 31)
    assert rows[0].status == "active"


def test_sum_facts_batches_ids(db_session: Session, facts) -> None:
    customers = [facts.customer(f"Customer {index}") for index in range(5)]
    for customer in customers:
        facts.claim("12.50", customer_id=customer.id)
        facts.claim("7.50", customer_id=customer.id)

    totals = sum_facts_by_dimension(
        db_session,
        source="claimed",
        tenant_id=TENANT,
        dimension=Dimension.CUSTOMER,
        dimension_ids=[customer.id for customer in customers],
        batch_size=2,
    )

    assert set(totals) == {customer.id for customer in customers}
    assert all(amount == Decimal("20.00") for amount in totals.values())


def test_enrichment_defaults_missing_sources_to_zero(db_session: Session, facts) -> None:
    customer = facts.customer("Partial")
    facts.spend("1000.00", customer_id=customer.id)
    facts.accrual("100.00", customer_id=customer.id)
    facts.budget("900.00", customer_id=customer.id)

    spend_rows = aggregate_trade_spend(db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER)
    enriched = enrich_dimensions(db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER, rows=spend_rows)

    totals = enriched[0].totals
    assert totals.trade_spend == Decimal("1000.00")
    assert totals.accrued == Decimal("100.00")
    assert totals.settled == Decimal("0")
    assert totals.claimed == Decimal("0")
    assert totals.deducted == Decimal("0")
    assert totals.budgeted == Decimal("900.00")


def test_compute_dimension_pnl_runs_full_pipeline(db_session: Session, facts) -> None:
    customer = facts.customer("Scenario")
    facts.spend("1000.00", customer_id=customer.id)
    facts.accrual("100.00", customer_id=customer.id)
    facts.claim("50.00", customer_id=customer.id)
    facts.deduction("20.00", customer_id=customer.id)
    facts.budget("900.00", customer_id=customer.id)

    rows = compute_dimension_pnl(db_session, tenant_id=TENANT, dimension=Dimension.CUSTOMER)

    metrics = rows[0].metrics.rounded()
    assert metrics.net_profit == Decimal("430.00")
    assert metrics.budget_variance_pct == Decimal("-11.11")
