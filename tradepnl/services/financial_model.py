"""Deterministic P&L derivation shared by generated reports and live views.

The model maps one dimension's raw fact totals to the full metric set:

    gross_sales       = trade_spend * SALES_TO_SPEND_RATIO
    net_sales         = gross_sales - trade_spend
    cogs              = gross_sales * COGS_RATIO
    gross_profit      = net_sales - cogs
    net_trade_cost    = accrued + claimed + deducted   (customer)
                      = accrued                        (promotion)
    net_profit        = gross_profit - net_trade_cost
    budget_variance   = budgeted - trade_spend         (customer, 0 for promotion)
    margins / ROI     = ratios to gross_sales / trade_spend, in percent, 0 when the base is not positive

The two ratios are business assumptions rather than values derived from
pricing or cost data. They can be overridden through ``ModelAssumptions``.

Report headers round each raw grand total once; ``allocate_cents`` rounds the
line items so that they add up to those totals exactly.
"""
from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, fields, replace
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from tradepnl.core.config import Settings

SALES_TO_SPEND_RATIO = Decimal("4")
COGS_RATIO = Decimal("0.6")

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")
_ZERO = Decimal("0")

ADDITIVE_FIELDS = (
    "gross_sales",
    "trade_spend",
    "net_sales",
    "cogs",
    "gross_profit",
    "accruals",
    "settlements",
    "claims",
    "deductions",
    "net_trade_cost",
    "net_profit",
    "budget_amount",
    "budget_variance",
)


class Dimension(str, enum.Enum):
    """Grouping key of a P&L computation."""

    CUSTOMER = "customer"
    PROMOTION = "promotion"


@dataclass(frozen=True, slots=True)
class ModelAssumptions:
    sales_to_spend_ratio: Decimal = SALES_TO_SPEND_RATIO
    cogs_ratio: Decimal = COGS_RATIO


DEFAULT_ASSUMPTIONS = ModelAssumptions()


def assumptions_from_settings(settings: "Settings") -> ModelAssumptions:
    return ModelAssumptions(
        sales_to_spend_ratio=Decimal(settings.pnl_sales_to_spend_ratio),
        cogs_ratio=Decimal(settings.pnl_cogs_ratio),
    )


@dataclass(frozen=True, slots=True)
class FactTotals:
    """Raw per-dimension sums pulled from the fact tables."""

    trade_spend: Decimal
    accrued: Decimal = _ZERO
    settled: Decimal = _ZERO
    claimed: Decimal = _ZERO
    deducted: Decimal = _ZERO
    budgeted: Decimal = _ZERO


@dataclass(frozen=True, slots=True)
class PnlMetrics:
    gross_sales: Decimal
    trade_spend: Decimal
    net_sales: Decimal
    cogs: Decimal
    gross_profit: Decimal
    gross_margin_pct: Decimal
    accruals: Decimal
    settlements: Decimal
    claims: Decimal
    deductions: Decimal
    net_trade_cost: Decimal
    net_profit: Decimal
    net_margin_pct: Decimal
    budget_amount: Decimal
    budget_variance: Decimal
    budget_variance_pct: Decimal
    roi: Decimal

    def rounded(self) -> "PnlMetrics":
        """Return a copy with every field rounded to two decimals, half away from zero."""
        return replace(self, **{name: round_amount(value) for name, value in self.as_dict().items()})

    def as_dict(self) -> dict[str, Decimal]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


def round_amount(value: Decimal | int | float) -> Decimal:
    """Round to cents using half-away-from-zero."""
    return _to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def _to_decimal(value: Decimal | int | float | None) -> Decimal:
    if value is None:
        return _ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator > 0:
        return numerator / denominator * _HUNDRED
    return _ZERO


def calculate_pnl(
    totals: FactTotals,
    dimension: Dimension,
    assumptions: ModelAssumptions = DEFAULT_ASSUMPTIONS,
) -> PnlMetrics:
    """Derive the unrounded metric set for one dimension value.

    Promotion rows never carry claims, deductions or budget: their net trade
    cost is the accrued amount alone and their budget variance is zero.
    """

    trade_spend = _to_decimal(totals.trade_spend)
    accrued = _to_decimal(totals.accrued)
    settled = _to_decimal(totals.settled)
    if dimension is Dimension.CUSTOMER:
        claimed = _to_decimal(totals.claimed)
        deducted = _to_decimal(totals.deducted)
        budgeted = _to_decimal(totals.budgeted)
    else:
        claimed = deducted = budgeted = _ZERO

    gross_sales = trade_spend * assumptions.sales_to_spend_ratio
    net_sales = gross_sales - trade_spend
    cogs = gross_sales * assumptions.cogs_ratio
    gross_profit = net_sales - cogs
    net_trade_cost = accrued + claimed + deducted
    net_profit = gross_profit - net_trade_cost
    if dimension is Dimension.CUSTOMER:
        budget_variance = budgeted - trade_spend
    else:
        budget_variance = _ZERO

    return PnlMetrics(
        gross_sales=gross_sales,
        trade_spend=trade_spend,
        net_sales=net_sales,
        cogs=cogs,
        gross_profit=gross_profit,
        gross_margin_pct=_percentage(gross_profit, gross_sales),
        accruals=accrued,
        settlements=settled,
        claims=claimed,
        deductions=deducted,
        net_trade_cost=net_trade_cost,
        net_profit=net_profit,
        net_margin_pct=_percentage(net_profit, gross_sales),
        budget_amount=budgeted,
        budget_variance=budget_variance,
        budget_variance_pct=_percentage(budget_variance, budgeted),
        roi=_percentage(net_profit, trade_spend),
    )


def summarise(rows: Iterable[PnlMetrics]) -> PnlMetrics:
    """Sum unrounded additive fields and recompute the ratios from the grand totals."""

    sums = dict.fromkeys(ADDITIVE_FIELDS, _ZERO)
    for row in rows:
        for name in ADDITIVE_FIELDS:
            sums[name] += getattr(row, name)

    return PnlMetrics(
        **sums,
        gross_margin_pct=_percentage(sums["gross_profit"], sums["gross_sales"]),
        net_margin_pct=_percentage(sums["net_profit"], sums["gross_sales"]),
        budget_variance_pct=_percentage(sums["budget_variance"], sums["budget_amount"]),
        roi=_percentage(sums["net_profit"], sums["trade_spend"]),
    )


def allocate_cents(rows: Sequence[PnlMetrics], totals: PnlMetrics) -> list[PnlMetrics]:
    """Round ``rows`` so each additive field sums exactly to the rounded ``totals``.

    Every additive value is floored to the cent and the cents still owed to
    the total go to the rows with the largest remainders, earlier rows first
    on ties. Ratios are rounded per row as usual.
    """

    rounded = [row.rounded() for row in rows]
    allocated: list[dict[str, Decimal]] = [{} for _ in rows]
    for name in ADDITIVE_FIELDS:
        raw = [_to_decimal(getattr(row, name)) for row in rows]
        floors = [value.quantize(_CENT, rounding=ROUND_FLOOR) for value in raw]
        owed = int((getattr(totals, name) - sum(floors, _ZERO)) / _CENT)
        order = sorted(range(len(rows)), key=lambda index: (floors[index] - raw[index], index))
        for position, index in enumerate(order):
            allocated[index][name] = floors[index] + _CENT if position < owed else floors[index]
    return [replace(row, **values) for row, values in zip(rounded, allocated)]


__all__ = [
    "ADDITIVE_FIELDS",
    "COGS_RATIO",
    "DEFAULT_ASSUMPTIONS",
    "Dimension",
    "FactTotals",
    "ModelAssumptions",
    "PnlMetrics",
    "SALES_TO_SPEND_RATIO",
    "allocate_cents",
    "assumptions_from_settings",
    "calculate_pnl",
    "round_amount",
    "summarise",
]
