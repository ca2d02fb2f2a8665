from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from seller_ledger.models import Sale, SaleOrder, SaleStatus
from seller_ledger.services.profit_service import to_money


@dataclass(frozen=True)
class SellerSummary:
    status_counts: dict[str, int]
    total_sales: int
    sold_total_revenue: Decimal
    sold_total_costs: Decimal
    sold_net_profit: Decimal
    parked_supply_cost: Decimal


def seller_summary(db: Session, *, user_id: int) -> SellerSummary:
    counts = {status.value: 0 for status in SaleStatus}
    for status, count in db.execute(
        select(Sale.status, func.count(Sale.id)).where(Sale.user_id == user_id).group_by(Sale.status)
    ).all():
        counts[SaleStatus(status).value] = count

    revenue, costs, profit = db.execute(
        select(
            func.coalesce(func.sum(Sale.total_revenue), 0),
            func.coalesce(func.sum(Sale.total_costs), 0),
            func.coalesce(func.sum(Sale.net_profit), 0),
        ).where(Sale.user_id == user_id, Sale.status == SaleStatus.SOLD)
    ).one()

    # Orders without sales hold their supply cost until a sale is linked.
    has_sales = select(Sale.id).where(Sale.order_id == SaleOrder.id).exists()
    parked = db.execute(
        select(func.coalesce(func.sum(SaleOrder.total_supply_cost), 0)).where(
            SaleOrder.user_id == user_id, ~has_sales
        )
    ).scalar_one()

    return SellerSummary(
        status_counts=counts,
        total_sales=sum(counts.values()),
        sold_total_revenue=to_money(revenue),
        sold_total_costs=to_money(costs),
        sold_net_profit=to_money(profit),
        parked_supply_cost=to_money(parked),
    )
