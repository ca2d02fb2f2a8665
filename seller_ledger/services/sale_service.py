from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from seller_ledger.errors import Conflict, NotFound, ValidationError
from seller_ledger.models import CollectionItem, Sale, SaleOrder, SaleStatus
from seller_ledger.services.input_utils import clean_text, page_bounds, parse_money
from seller_ledger.services.order_cost_service import distribute_supply_cost
from seller_ledger.services.platform_service import get_usable_platform
from seller_ledger.services.profit_service import ZERO, apply_profit, estimate_platform_fees
from seller_ledger.services.shipping_cost_service import config_cost, get_shipping_config

logger = logging.getLogger(__name__)

EDITABLE_MONEY_FIELDS = (
    'purchase_price',
    'sale_price',
    'shipping_charged',
    'shipping_cost',
    'platform_fees',
    'other_fees',
)
TEXT_FIELDS = ('buyer_username', 'tracking_number', 'notes')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class SalePage:
    sales: list[Sale]
    total: int
    limit: int
    offset: int


@dataclass(frozen=True)
class SaleRemoval:
    sale_id: int
    restored_to_collection: bool
    order_id: int | None


def _parse_status(value: object) -> SaleStatus:
    if isinstance(value, SaleStatus):
        return value
    try:
        return SaleStatus(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError('status must be one of: listed, sold') from exc


def _parse_date(value: object, *, field: str) -> date | None:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(f'{field} must be an ISO date') from exc


def get_sale(db: Session, *, user_id: int, sale_id: int) -> Sale:
    sale = db.execute(select(Sale).where(Sale.id == sale_id, Sale.user_id == user_id)).scalar_one_or_none()
    if not sale:
        raise NotFound('Sale not found')
    return sale


def list_sales(
    db: Session,
    *,
    user_id: int,
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> SalePage:
    limit, offset = page_bounds(limit, offset)
    filters = [Sale.user_id == user_id]
    if status:
        filters.append(Sale.status == _parse_status(status))

    total = db.execute(select(func.count(Sale.id)).where(*filters)).scalar_one()
    sales = (
        db.execute(
            select(Sale)
            .where(*filters)
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .limit(limit)
            .offset(offset)
        )
        .scalars()
        .all()
    )
    return SalePage(sales=sales, total=total, limit=limit, offset=offset)


def create_sale(
    db: Session,
    *,
    user_id: int,
    card_id: int | None,
    status: object = SaleStatus.LISTED,
    sale_date: object = None,
    platform_id: int | None = None,
    shipping_config_id: int | None = None,
    purchase_price: object = None,
    sale_price: object = None,
    shipping_charged: object = None,
    shipping_cost: object = None,
    platform_fees: object = None,
    other_fees: object = None,
    supply_cost: object = None,
    adjustment: object = None,
    buyer_username: str | None = None,
    tracking_number: str | None = None,
    notes: str | None = None,
) -> Sale:
    if card_id is None:
        raise ValidationError('card_id is required')

    sale = Sale(
        user_id=user_id,
        card_id=card_id,
        status=_parse_status(status),
        sale_date=_parse_date(sale_date, field='sale_date'),
        purchase_price=parse_money(purchase_price, field='purchase_price'),
        sale_price=parse_money(sale_price, field='sale_price'),
        shipping_charged=parse_money(shipping_charged, field='shipping_charged'),
        shipping_cost=parse_money(shipping_cost, field='shipping_cost'),
        platform_fees=parse_money(platform_fees, field='platform_fees'),
        other_fees=parse_money(other_fees, field='other_fees'),
        supply_cost=parse_money(supply_cost, field='supply_cost'),
        adjustment=parse_money(adjustment, field='adjustment', allow_negative=True),
        buyer_username=clean_text(buyer_username),
        tracking_number=clean_text(tracking_number),
        notes=clean_text(notes),
    )

    if platform_id is not None:
        platform = get_usable_platform(db, user_id=user_id, platform_id=platform_id)
        sale.platform_id = platform.id
        if sale.platform_fees is None:
            sale.platform_fees = estimate_platform_fees(
                platform, sale_price=sale.sale_price, shipping_charged=sale.shipping_charged
            )

    if shipping_config_id is not None:
        config = get_shipping_config(db, user_id=user_id, config_id=shipping_config_id, active_only=True)
        sale.shipping_config_id = config.id
        sale.supply_cost = config_cost(db, user_id=user_id, config_id=config.id)

    if sale.status == SaleStatus.SOLD and sale.sale_date is None:
        sale.sale_date = date.today()

    apply_profit(sale)
    db.add(sale)
    db.flush()
    logger.info('Created sale %s for card %s (user %s)', sale.id, card_id, user_id)
    return sale


def update_sale(db: Session, *, user_id: int, sale_id: int, changes: Mapping[str, object]) -> Sale:
    """Apply a partial update to a sale and re-derive its profit.

    Only keys present in ``changes`` are touched. Order membership is managed
    by the order operations; a sale that belongs to an order takes its supply
    cost from that order and cannot carry its own shipping config.
    """
    sale = get_sale(db, user_id=user_id, sale_id=sale_id)

    if 'order_id' in changes:
        raise ValidationError('Order membership is changed through the order endpoints')

    if 'status' in changes and changes['status'] is not None:
        new_status = _parse_status(changes['status'])
        if sale.status == SaleStatus.SOLD and new_status == SaleStatus.LISTED:
            raise ValidationError('A sold sale cannot go back to listed')
        sale.status = new_status

    if 'sale_date' in changes:
        sale.sale_date = _parse_date(changes['sale_date'], field='sale_date')

    if 'platform_id' in changes:
        platform_id = changes['platform_id']
        sale.platform_id = (
            get_usable_platform(db, user_id=user_id, platform_id=platform_id).id if platform_id is not None else None
        )

    for field in EDITABLE_MONEY_FIELDS:
        if field in changes:
            setattr(sale, field, parse_money(changes[field], field=field))
    if 'adjustment' in changes:
        sale.adjustment = parse_money(changes['adjustment'], field='adjustment', allow_negative=True)

    if 'supply_cost' in changes and 'shipping_config_id' not in changes:
        if sale.order_id is not None:
            raise ValidationError('Supply cost of a sale in an order comes from the order')
        if sale.shipping_config_id is not None:
            raise ValidationError('Supply cost of a sale with a shipping config comes from the config')
        sale.supply_cost = parse_money(changes['supply_cost'], field='supply_cost')

    if 'shipping_config_id' in changes:
        config_id = changes['shipping_config_id']
        if sale.order_id is not None and config_id is not None:
            raise ValidationError('A sale in an order uses the order shipping config')
        if config_id is None:
            sale.shipping_config_id = None
            if sale.order_id is None:
                sale.supply_cost = ZERO
        else:
            config = get_shipping_config(db, user_id=user_id, config_id=config_id, active_only=True)
            sale.shipping_config_id = config.id
            sale.supply_cost = config_cost(db, user_id=user_id, config_id=config.id)

    for field in TEXT_FIELDS:
        if field in changes:
            setattr(sale, field, clean_text(changes[field]))

    if sale.status == SaleStatus.SOLD and sale.sale_date is None:
        sale.sale_date = date.today()

    apply_profit(sale)
    sale.updated_at = _now()
    db.flush()
    logger.info('Updated sale %s', sale.id)
    return sale


def delete_sale(db: Session, *, user_id: int, sale_id: int) -> SaleRemoval:
    sale = get_sale(db, user_id=user_id, sale_id=sale_id)
    order_id = sale.order_id

    restored = False
    if sale.collection_item_id is not None:
        item = db.execute(select(CollectionItem).where(CollectionItem.id == sale.collection_item_id)).scalar_one_or_none()
        if item:
            item.sold_at = None
            item.sale_id = None
            restored = True
            logger.info('Restored collection item %s for deleted sale %s', item.id, sale.id)

    db.delete(sale)
    db.flush()

    if order_id is not None:
        order = db.execute(select(SaleOrder).where(SaleOrder.id == order_id)).scalar_one()
        distribute_supply_cost(db, order=order)

    logger.info('Deleted sale %s', sale_id)
    return SaleRemoval(sale_id=sale_id, restored_to_collection=restored, order_id=order_id)


def sell_from_collection(db: Session, *, user_id: int, collection_item_id: int | None) -> Sale:
    """Archive a collection item into a new listed sale.

    The item is not deleted: it is stamped sold and points at the sale, so
    deleting the sale later puts it back in the collection.
    """
    if collection_item_id is None:
        raise ValidationError('collection_item_id is required')

    item = db.execute(
        select(CollectionItem).where(CollectionItem.id == collection_item_id, CollectionItem.user_id == user_id)
    ).scalar_one_or_none()
    if not item:
        raise NotFound('Card not found in your collection')
    if item.sold_at is not None:
        raise Conflict('Card has already been sold from your collection')

    sale = Sale(
        user_id=user_id,
        card_id=item.card_id,
        collection_item_id=item.id,
        status=SaleStatus.LISTED,
        sale_date=date.today(),
        purchase_price=item.purchase_price,
    )
    apply_profit(sale)
    db.add(sale)
    db.flush()

    item.sold_at = _now()
    item.sale_id = sale.id
    db.flush()
    logger.info('Created sale %s from collection item %s (archived)', sale.id, item.id)
    return sale
