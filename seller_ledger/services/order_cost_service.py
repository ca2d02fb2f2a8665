"""Shared supply costs of an order and their split across its sales.

An order's supply cost is its shipping config's cost plus any extra FIFO
allocations recorded as ``OrderSupplyUsage`` rows. The total is split evenly
between the order's linked sales; an order with no sales keeps the total on
itself until a sale is linked again.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from seller_ledger.errors import AlreadyAllocated, ValidationError
from seller_ledger.models import OrderSupplyUsage, Sale, SaleOrder
from seller_ledger.services.profit_service import ZERO, apply_profit
from seller_ledger.services.shipping_cost_service import config_cost
from seller_ledger.services.supply_inventory_service import (
    BatchDraw,
    SupplyAllocation,
    apply_draws,
    plan_allocation,
    release,
)

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class SupplyRequestLine:
    supply_type_id: int
    quantity: int


def linked_sales(db: Session, *, order_id: int) -> list[Sale]:
    return db.execute(select(Sale).where(Sale.order_id == order_id).order_by(Sale.id.asc())).scalars().all()


def order_usages(db: Session, *, order_id: int) -> list[OrderSupplyUsage]:
    return (
        db.execute(
            select(OrderSupplyUsage).where(OrderSupplyUsage.order_id == order_id).order_by(OrderSupplyUsage.id.asc())
        )
        .scalars()
        .all()
    )


def split_evenly(total: Decimal, count: int) -> list[Decimal]:
    """Split ``total`` into ``count`` cent amounts that add back up exactly.

    Every share is the same except for leftover cents, which go one each to
    the first shares.
    """
    if count <= 0:
        return []
    cents = int((Decimal(total).quantize(CENTS, rounding=ROUND_HALF_UP) * 100).to_integral_value())
    base, leftover = divmod(cents, count)
    return [(Decimal(base + (1 if index < leftover else 0)) / 100).quantize(CENTS) for index in range(count)]


def distribute_supply_cost(db: Session, *, order: SaleOrder) -> list[Sale]:
    sales = linked_sales(db, order_id=order.id)
    if not sales:
        logger.info('Order %s has no linked sales; supply cost %s stays on the order', order.id, order.total_supply_cost)
        return []

    now = _now()
    shares = split_evenly(order.total_supply_cost, len(sales))
    for sale, share in zip(sales, shares):
        sale.supply_cost = share
        apply_profit(sale)
        sale.updated_at = now
    db.flush()
    logger.info(
        'Distributed supply cost %s across %s sale(s) of order %s',
        order.total_supply_cost,
        len(sales),
        order.id,
    )
    return sales


def recompute_config_cost(db: Session, *, order: SaleOrder) -> Decimal:
    usages = order_usages(db, order_id=order.id)
    extra = sum((Decimal(usage.total_cost) for usage in usages), Decimal('0'))

    order.config_cost = config_cost(db, user_id=order.user_id, config_id=order.shipping_config_id)
    order.extra_supply_cost = extra.quantize(CENTS, rounding=ROUND_HALF_UP)
    order.total_supply_cost = order.config_cost + order.extra_supply_cost
    order.updated_at = _now()
    db.flush()

    distribute_supply_cost(db, order=order)
    return order.total_supply_cost


def _coerce_lines(requested: list) -> list[SupplyRequestLine]:
    lines: list[SupplyRequestLine] = []
    for raw in requested:
        if isinstance(raw, SupplyRequestLine):
            lines.append(raw)
            continue
        try:
            lines.append(SupplyRequestLine(supply_type_id=raw['supply_type_id'], quantity=raw['quantity']))
        except (KeyError, TypeError) as exc:
            raise ValidationError('Each supply line needs supply_type_id and quantity') from exc
    return lines


def allocate_extra_supplies(db: Session, *, order: SaleOrder, requested: list) -> list[OrderSupplyUsage]:
    """Draw extra supplies for ``order`` from inventory, all or nothing.

    Every line is planned against inventory first, counting units promised to
    earlier lines; if any line falls short nothing is written. Orders that
    already hold allocations must be cleared first.
    """
    if not requested:
        raise ValidationError('Supplies list is required')
    lines = _coerce_lines(requested)

    if order_usages(db, order_id=order.id):
        raise AlreadyAllocated(
            'Supplies have already been allocated for this order. Delete existing allocations first.'
        )

    reserved: dict[int, int] = {}
    allocations: list[SupplyAllocation] = []
    for line in lines:
        allocation = plan_allocation(
            db,
            user_id=order.user_id,
            supply_type_id=line.supply_type_id,
            quantity=line.quantity,
            reserved=reserved,
        )
        for draw in allocation.draws:
            reserved[draw.batch_id] = reserved.get(draw.batch_id, 0) + draw.quantity_used
        allocations.append(allocation)

    draws = [draw for allocation in allocations for draw in allocation.draws]
    apply_draws(db, user_id=order.user_id, draws=draws)

    usages = [
        OrderSupplyUsage(
            order_id=order.id,
            supply_batch_id=draw.batch_id,
            quantity_used=draw.quantity_used,
            cost_per_unit=draw.cost_per_unit,
            total_cost=draw.total_cost,
        )
        for draw in draws
    ]
    db.add_all(usages)
    db.flush()

    extra = sum((allocation.total_cost for allocation in allocations), Decimal('0'))
    logger.info('Allocated extra supplies for order %s: %s line(s), cost %s', order.id, len(lines), extra)
    recompute_config_cost(db, order=order)
    return usages


def _release_usages(db: Session, *, order: SaleOrder, usages: list[OrderSupplyUsage]) -> None:
    if not usages:
        return
    release(
        db,
        user_id=order.user_id,
        allocation=[
            BatchDraw(
                batch_id=usage.supply_batch_id,
                quantity_used=usage.quantity_used,
                cost_per_unit=Decimal(usage.cost_per_unit),
            )
            for usage in usages
        ],
    )
    db.execute(delete(OrderSupplyUsage).where(OrderSupplyUsage.order_id == order.id))
    db.flush()


def clear_extra_supplies(db: Session, *, order: SaleOrder) -> int:
    usages = order_usages(db, order_id=order.id)
    if not usages:
        raise ValidationError('No supplies allocated to this order')

    returned = sum(usage.quantity_used for usage in usages)
    _release_usages(db, order=order, usages=usages)
    recompute_config_cost(db, order=order)
    logger.info('Returned %s supply unit(s) from order %s to inventory', returned, order.id)
    return returned


def zero_order_level_fields(sale: Sale) -> None:
    sale.shipping_charged = ZERO
    sale.shipping_cost = ZERO
    sale.platform_fees = ZERO
    sale.supply_cost = ZERO


def unlink_all(db: Session, *, order: SaleOrder) -> list[Sale]:
    """Dismantle ``order``: free its sales, restock its supplies, delete it.

    Runs inside the caller's transaction; the caller commits or rolls back
    the whole thing.
    """
    now = _now()
    sales = linked_sales(db, order_id=order.id)
    for sale in sales:
        zero_order_level_fields(sale)
        sale.order_id = None
        apply_profit(sale)
        sale.updated_at = now
    db.flush()

    usages = order_usages(db, order_id=order.id)
    _release_usages(db, order=order, usages=usages)

    db.delete(order)
    db.flush()
    logger.info(
        'Deleted order %s: unlinked %s sale(s), returned %s usage row(s) to inventory',
        order.id,
        len(sales),
        len(usages),
    )
    return sales
