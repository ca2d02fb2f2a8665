from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')


@dataclass(frozen=True)
class ProfitFields:
    total_revenue: Decimal
    total_costs: Decimal
    net_profit: Decimal


def to_money(value: Decimal | int | str | None) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_profit_fields(
    *,
    purchase_price: Decimal | None = None,
    sale_price: Decimal | None = None,
    shipping_charged: Decimal | None = None,
    shipping_cost: Decimal | None = None,
    platform_fees: Decimal | None = None,
    other_fees: Decimal | None = None,
    supply_cost: Decimal | None = None,
    adjustment: Decimal | None = None,
) -> ProfitFields:
    """Derive revenue, costs and profit from a sale's component fields.

    Missing inputs count as zero. ``adjustment`` is applied after the
    mechanical subtraction, so a negative value reads as an extra cost.
    """
    total_revenue = to_money(sale_price) + to_money(shipping_charged)
    total_costs = (
        to_money(purchase_price)
        + to_money(shipping_cost)
        + to_money(platform_fees)
        + to_money(other_fees)
        + to_money(supply_cost)
    )
    net_profit = total_revenue - total_costs + to_money(adjustment)
    return ProfitFields(total_revenue=total_revenue, total_costs=total_costs, net_profit=net_profit)


def profit_fields_for(sale) -> ProfitFields:
    return calculate_profit_fields(
        purchase_price=sale.purchase_price,
        sale_price=sale.sale_price,
        shipping_charged=sale.shipping_charged,
        shipping_cost=sale.shipping_cost,
        platform_fees=sale.platform_fees,
        other_fees=sale.other_fees,
        supply_cost=sale.supply_cost,
        adjustment=sale.adjustment,
    )


def apply_profit(sale) -> ProfitFields:
    fields = profit_fields_for(sale)
    sale.total_revenue = fields.total_revenue
    sale.total_costs = fields.total_costs
    sale.net_profit = fields.net_profit
    return fields


def estimate_platform_fees(platform, *, sale_price: Decimal | None, shipping_charged: Decimal | None) -> Decimal:
    # Percentages apply to item price plus shipping charged.
    gross = to_money(sale_price) + to_money(shipping_charged)
    rate = Decimal(str(platform.fee_percentage or 0)) + Decimal(str(platform.payment_fee_pct or 0))
    fee = gross * rate / Decimal('100') + Decimal(str(platform.fixed_fee or 0))
    return to_money(fee)
