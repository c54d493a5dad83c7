"""Read-only mappings of the trade-promotion fact and dimension tables.

These tables are owned by the surrounding back office. The P&L engine only
queries them, always filtered by tenant.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from tradepnl.models.base import Base, money_column


def _uuid() -> str:
    return str(uuid.uuid4())


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (Index("ix_customers_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Promotion(Base):
    __tablename__ = "promotions"
    __table_args__ = (Index("ix_promotions_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str | None] = mapped_column(String(32))


class TradeSpend(Base):
    """Recorded promotional expenditure attributable to a customer and/or promotion."""

    __tablename__ = "trade_spends"
    __table_args__ = (
        Index("ix_trade_spends_tenant_customer", "tenant_id", "customer_id"),
        Index("ix_trade_spends_tenant_promotion", "tenant_id", "promotion_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    promotion_id: Mapped[str | None] = mapped_column(String(36))
    amount: Mapped[Decimal] = money_column()
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Accrual(Base):
    __tablename__ = "accruals"
    __table_args__ = (Index("ix_accruals_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    promotion_id: Mapped[str | None] = mapped_column(String(36))
    accrued_amount: Mapped[Decimal] = money_column()


class Settlement(Base):
    __tablename__ = "settlements"
    __table_args__ = (Index("ix_settlements_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    promotion_id: Mapped[str | None] = mapped_column(String(36))
    settled_amount: Mapped[Decimal] = money_column()


class Claim(Base):
    __tablename__ = "claims"
    __table_args__ = (Index("ix_claims_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    promotion_id: Mapped[str | None] = mapped_column(String(36))
    claimed_amount: Mapped[Decimal] = money_column()


class Deduction(Base):
    __tablename__ = "deductions"
    __table_args__ = (Index("ix_deductions_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    promotion_id: Mapped[str | None] = mapped_column(String(36))
    deduction_amount: Mapped[Decimal] = money_column()


class Budget(Base):
    __tablename__ = "budgets"
    __table_args__ = (Index("ix_budgets_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    amount: Mapped[Decimal] = money_column()


__all__ = [
    "Accrual",
    "Budget",
    "Claim",
    "Customer",
    "Deduction",
    "Promotion",
    "Settlement",
    "TradeSpend",
]
