from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from seller_ledger.errors import Conflict, NotFound, ValidationError
from seller_ledger.models import OrderStatus, OrderSupplyUsage, Sale, SaleOrder
from seller_ledger.services.input_utils import clean_text, page_bounds, parse_money
from seller_ledger.services.order_cost_service import (
    allocate_extra_supplies,
    clear_extra_supplies,
    distribute_supply_cost,
    linked_sales,
    order_usages,
    recompute_config_cost,
    unlink_all,
    zero_order_level_fields,
)
from seller_ledger.services.platform_service import get_usable_platform
from seller_ledger.services.profit_service import apply_profit
from seller_ledger.services.shipping_cost_service import get_shipping_config

logger = logging.getLogger(__name__)

ORDER_TEXT_FIELDS = ('order_reference', 'buyer_username', 'tracking_number', 'notes')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class OrderDetail:
    order: SaleOrder
    sales: list[Sale]
    usages: list[OrderSupplyUsage]


@dataclass(frozen=True)
class OrderPage:
    orders: list[OrderDetail]
    total: int
    limit: int
    offset: int


def _parse_status(value: object) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError('status must be one of: pending, shipped, delivered, cancelled') from exc


def _parse_date(value: object) -> date | None:
    if value is None or value == '':
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError('ship_date must be an ISO date') from exc


def _sale_ids(sale_ids: Iterable[int] | None) -> list[int]:
    ids = list(dict.fromkeys(sale_ids or []))
    if not ids:
        raise ValidationError('sale_ids is required')
    return ids


def get_order(db: Session, *, user_id: int, order_id: int) -> SaleOrder:
    order = db.execute(
        select(SaleOrder).where(SaleOrder.id == order_id, SaleOrder.user_id == user_id)
    ).scalar_one_or_none()
    if not order:
        raise NotFound('Order not found')
    return order


def _detail(db: Session, order: SaleOrder) -> OrderDetail:
    return OrderDetail(
        order=order,
        sales=linked_sales(db, order_id=order.id),
        usages=order_usages(db, order_id=order.id),
    )


def order_detail(db: Session, *, user_id: int, order_id: int) -> OrderDetail:
    return _detail(db, get_order(db, user_id=user_id, order_id=order_id))


def list_orders(
    db: Session,
    *,
    user_id: int,
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> OrderPage:
    limit, offset = page_bounds(limit, offset)
    filters = [SaleOrder.user_id == user_id]
    if status:
        filters.append(SaleOrder.status == _parse_status(status))

    total = db.execute(select(func.count(SaleOrder.id)).where(*filters)).scalar_one()
    orders = (
        db.execute(
            select(SaleOrder)
            .where(*filters)
            .order_by(SaleOrder.created_at.desc(), SaleOrder.id.desc())
            .limit(limit)
            .offset(offset)
        )
        .scalars()
        .all()
    )
    return OrderPage(orders=[_detail(db, order) for order in orders], total=total, limit=limit, offset=offset)


def _link_sales(db: Session, *, order: SaleOrder, sale_ids: list[int]) -> list[Sale]:
    sales = (
        db.execute(select(Sale).where(Sale.user_id == order.user_id, Sale.id.in_(sale_ids)).order_by(Sale.id.asc()))
        .scalars()
        .all()
    )
    found = {sale.id for sale in sales}
    missing = [sale_id for sale_id in sale_ids if sale_id not in found]
    if missing:
        raise NotFound(f'Sale(s) not found: {", ".join(str(sale_id) for sale_id in missing)}')

    taken = [sale.id for sale in sales if sale.order_id is not None and sale.order_id != order.id]
    if taken:
        raise Conflict(f'Sale(s) already belong to another order: {", ".join(str(sale_id) for sale_id in taken)}')

    now = _now()
    linked: list[Sale] = []
    for sale in sales:
        if sale.order_id == order.id:
            continue
        zero_order_level_fields(sale)
        sale.order_id = order.id
        sale.shipping_config_id = None
        apply_profit(sale)
        sale.updated_at = now
        linked.append(sale)
    db.flush()
    return linked


def create_order(
    db: Session,
    *,
    user_id: int,
    platform_id: int | None = None,
    shipping_config_id: int | None = None,
    order_reference: str | None = None,
    buyer_username: str | None = None,
    status: object = OrderStatus.PENDING,
    ship_date: object = None,
    shipping_charged: object = None,
    shipping_cost: object = None,
    tracking_number: str | None = None,
    notes: str | None = None,
    sale_ids: Iterable[int] | None = None,
) -> OrderDetail:
    order = SaleOrder(
        user_id=user_id,
        order_reference=clean_text(order_reference),
        buyer_username=clean_text(buyer_username),
        status=_parse_status(status),
        ship_date=_parse_date(ship_date),
        shipping_charged=parse_money(shipping_charged, field='shipping_charged'),
        shipping_cost=parse_money(shipping_cost, field='shipping_cost'),
        tracking_number=clean_text(tracking_number),
        notes=clean_text(notes),
    )
    if platform_id is not None:
        order.platform_id = get_usable_platform(db, user_id=user_id, platform_id=platform_id).id
    if shipping_config_id is not None:
        order.shipping_config_id = get_shipping_config(
            db, user_id=user_id, config_id=shipping_config_id, active_only=True
        ).id
    db.add(order)
    db.flush()

    if sale_ids:
        _link_sales(db, order=order, sale_ids=_sale_ids(sale_ids))
    recompute_config_cost(db, order=order)

    logger.info('Created order %s for user %s', order.id, user_id)
    return _detail(db, order)


def update_order(db: Session, *, user_id: int, order_id: int, changes: Mapping[str, object]) -> OrderDetail:
    order = get_order(db, user_id=user_id, order_id=order_id)

    if 'platform_id' in changes:
        platform_id = changes['platform_id']
        order.platform_id = (
            get_usable_platform(db, user_id=user_id, platform_id=platform_id).id if platform_id is not None else None
        )
    if 'status' in changes and changes['status'] is not None:
        order.status = _parse_status(changes['status'])
    if 'ship_date' in changes:
        order.ship_date = _parse_date(changes['ship_date'])
    for field in ('shipping_charged', 'shipping_cost'):
        if field in changes:
            setattr(order, field, parse_money(changes[field], field=field))
    for field in ORDER_TEXT_FIELDS:
        if field in changes:
            setattr(order, field, clean_text(changes[field]))

    config_changed = False
    if 'shipping_config_id' in changes:
        config_id = changes['shipping_config_id']
        if config_id is not None:
            config_id = get_shipping_config(db, user_id=user_id, config_id=config_id, active_only=True).id
        config_changed = config_id != order.shipping_config_id
        order.shipping_config_id = config_id

    order.updated_at = _now()
    db.flush()

    if config_changed:
        recompute_config_cost(db, order=order)
        logger.info(
            'Updated order %s, redistributed supply cost %s', order.id, order.total_supply_cost
        )
    else:
        logger.info('Updated order %s', order.id)
    return _detail(db, order)


def delete_order(db: Session, *, user_id: int, order_id: int) -> list[int]:
    order = get_order(db, user_id=user_id, order_id=order_id)
    return [sale.id for sale in unlink_all(db, order=order)]


def add_sales(db: Session, *, user_id: int, order_id: int, sale_ids: Iterable[int] | None) -> OrderDetail:
    order = get_order(db, user_id=user_id, order_id=order_id)
    linked = _link_sales(db, order=order, sale_ids=_sale_ids(sale_ids))
    distribute_supply_cost(db, order=order)
    logger.info('Added %s sale(s) to order %s', len(linked), order.id)
    return _detail(db, order)


def remove_sales(db: Session, *, user_id: int, order_id: int, sale_ids: Iterable[int] | None) -> OrderDetail:
    """Unlink sales from an order and spread its supply cost over the rest.

    Removed sales keep their field values, including the supply share they
    last received.
    """
    order = get_order(db, user_id=user_id, order_id=order_id)
    ids = _sale_ids(sale_ids)
    sales = (
        db.execute(select(Sale).where(Sale.order_id == order.id, Sale.id.in_(ids)).order_by(Sale.id.asc()))
        .scalars()
        .all()
    )
    found = {sale.id for sale in sales}
    missing = [sale_id for sale_id in ids if sale_id not in found]
    if missing:
        raise NotFound(f'Sale(s) not in this order: {", ".join(str(sale_id) for sale_id in missing)}')

    now = _now()
    for sale in sales:
        sale.order_id = None
        apply_profit(sale)
        sale.updated_at = now
    db.flush()

    distribute_supply_cost(db, order=order)
    logger.info('Removed %s sale(s) from order %s', len(sales), order.id)
    return _detail(db, order)


def allocate_supplies(db: Session, *, user_id: int, order_id: int, supplies: list) -> OrderDetail:
    order = get_order(db, user_id=user_id, order_id=order_id)
    allocate_extra_supplies(db, order=order, requested=supplies)
    return _detail(db, order)


def clear_supplies(db: Session, *, user_id: int, order_id: int) -> tuple[OrderDetail, int]:
    order = get_order(db, user_id=user_id, order_id=order_id)
    returned = clear_extra_supplies(db, order=order)
    return _detail(db, order), returned
