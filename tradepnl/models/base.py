"""Declarative base and mixins for ORM models."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

MONEY = Numeric(18, 2)
PERCENT = Numeric(12, 2)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TimestampMixin:
    """Mixin adding created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


def money_column(**kwargs: Any) -> Mapped[Decimal]:
    """Two-decimal monetary column defaulting to zero."""
    return mapped_column(MONEY, nullable=False, default=Decimal("0"), **kwargs)


def percent_column(**kwargs: Any) -> Mapped[Decimal]:
    """Two-decimal percentage column defaulting to zero."""
    return mapped_column(PERCENT, nullable=False, default=Decimal("0"), **kwargs)


__all__ = ["Base", "MONEY", "PERCENT", "TimestampMixin", "money_column", "percent_column"]
