"""Seed script for a demo tenant with customers, promotions and trade-promotion facts."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from tradepnl.core.config import get_settings
from tradepnl.db.session import SessionLocal, engine
from tradepnl.models import (
    Accrual,
    Base,
    Budget,
    Claim,
    Customer,
    Deduction,
    Promotion,
    Settlement,
    Tenant,
    TenantStatus,
    TradeSpend,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_CUSTOMERS = [
    # name, trade spend entries, accrued, settled, claimed, deducted, budget
    ("Shoprite Holdings", ["42000.00", "18500.00", "9500.00"], "52000.00", "30000.00", "6500.00", "2500.00", "90000.00"),
    ("Pick n Pay", ["27500.00", "12500.00"], "36000.00", "21000.00", "4000.00", "1200.00", "45000.00"),
    ("Spar Group", ["15800.00"], "14000.00", "9000.00", "1500.00", "0.00", "12000.00"),
]

DEMO_PROMOTIONS = [
    ("Winter Soup Bundle", date(2026, 5, 1), date(2026, 7, 31), "active"),
    ("Back to School", date(2026, 1, 5), date(2026, 2, 15), "completed"),
]


def seed(session: Session) -> None:
    """Seed the demo tenant; does nothing if it already exists."""

    settings = get_settings()
    tenant_id = settings.default_tenant_id

    tenant = session.get(Tenant, tenant_id)
    if tenant is not None:
        logger.info("Tenant %s already exists", tenant_id)
        return

    session.add(Tenant(id=tenant_id, name="Demo Tenant", status=TenantStatus.ACTIVE))
    logger.info("Created tenant %s", tenant_id)

    promotions = [
        Promotion(tenant_id=tenant_id, name=name, start_date=start, end_date=end, status=status)
        for name, start, end, status in DEMO_PROMOTIONS
    ]
    session.add_all(promotions)
    session.flush()

    spend_date = datetime(2026, 6, 15, 9, 0, tzinfo=timezone.utc)
    for index, (name, spends, accrued, settled, claimed, deducted, budget) in enumerate(DEMO_CUSTOMERS):
        customer = Customer(tenant_id=tenant_id, name=name)
        session.add(customer)
        session.flush()
        promotion = promotions[index % len(promotions)]

        for amount in spends:
            session.add(
                TradeSpend(
                    tenant_id=tenant_id,
                    customer_id=customer.id,
                    promotion_id=promotion.id,
                    amount=Decimal(amount),
                    created_at=spend_date,
                )
            )
        session.add_all(
            [
                Accrual(
                    tenant_id=tenant_id,
                    customer_id=customer.id,
                    promotion_id=promotion.id,
                    accrued_amount=Decimal(accrued),
                ),
                Settlement(
                    tenant_id=tenant_id,
                    customer_id=customer.id,
                    promotion_id=promotion.id,
                    settled_amount=Decimal(settled),
                ),
                Claim(tenant_id=tenant_id, customer_id=customer.id, claimed_amount=Decimal(claimed)),
                Deduction(tenant_id=tenant_id, customer_id=customer.id, deduction_amount=Decimal(deducted)),
                Budget(tenant_id=tenant_id, customer_id=customer.id, amount=Decimal(budget)),
            ]
        )
        logger.info("Added customer %s with %s trade spends", name, len(spends))


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed(session)
        session.commit()


if __name__ == "__main__":
    main()
