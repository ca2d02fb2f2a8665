from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from seller_ledger.errors import Conflict, NotFound, ValidationError
from seller_ledger.models import OrderSupplyUsage, ShippingConfig, ShippingConfigItem, SupplyBatch, SupplyType
from seller_ledger.services.input_utils import clean_text, parse_money, parse_positive_int, require_name
from seller_ledger.services.shipping_cost_service import get_shipping_config
from seller_ledger.services.supply_inventory_service import UNIT_COST_PLACES, get_supply_type

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _parse_date(value: object, *, field: str) -> date | None:
    if value is None or value == '':
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(f'{field} must be an ISO date') from exc


# Supply types


def list_supply_types(db: Session, *, user_id: int, include_inactive: bool = False) -> list[SupplyType]:
    stmt = select(SupplyType).where(SupplyType.user_id == user_id).order_by(SupplyType.name.asc())
    if not include_inactive:
        stmt = stmt.where(SupplyType.active.is_(True))
    return db.execute(stmt).scalars().all()


def _ensure_unique_type_name(db: Session, *, user_id: int, name: str, exclude_id: int | None = None) -> None:
    stmt = select(SupplyType.id).where(SupplyType.user_id == user_id, SupplyType.name == name)
    if exclude_id is not None:
        stmt = stmt.where(SupplyType.id != exclude_id)
    if db.execute(stmt).first():
        raise Conflict('A supply type with this name already exists')


def create_supply_type(db: Session, *, user_id: int, name: str, description: str | None = None) -> SupplyType:
    clean_name = require_name(name, label='Name')
    _ensure_unique_type_name(db, user_id=user_id, name=clean_name)

    supply_type = SupplyType(user_id=user_id, name=clean_name, description=clean_text(description), active=True)
    db.add(supply_type)
    db.flush()
    logger.info('Created supply type %s (%s)', supply_type.id, supply_type.name)
    return supply_type


def update_supply_type(db: Session, *, user_id: int, supply_type_id: int, changes: Mapping[str, object]) -> SupplyType:
    supply_type = get_supply_type(db, user_id=user_id, supply_type_id=supply_type_id)
    if 'name' in changes:
        clean_name = require_name(changes['name'], label='Name')
        _ensure_unique_type_name(db, user_id=user_id, name=clean_name, exclude_id=supply_type.id)
        supply_type.name = clean_name
    if 'description' in changes:
        supply_type.description = clean_text(changes['description'])
    if 'active' in changes and changes['active'] is not None:
        supply_type.active = bool(changes['active'])
    db.flush()
    logger.info('Updated supply type %s', supply_type.id)
    return supply_type


def deactivate_supply_type(db: Session, *, user_id: int, supply_type_id: int) -> SupplyType:
    supply_type = get_supply_type(db, user_id=user_id, supply_type_id=supply_type_id)
    supply_type.active = False
    db.flush()
    logger.info('Deactivated supply type %s', supply_type.id)
    return supply_type


# Supply batches


def get_batch(db: Session, *, user_id: int, batch_id: int, for_update: bool = False) -> SupplyBatch:
    stmt = select(SupplyBatch).where(SupplyBatch.id == batch_id, SupplyBatch.user_id == user_id)
    if for_update:
        # Quantity edits and deletes race allocations; reread the row under its lock.
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    batch = db.execute(stmt).scalar_one_or_none()
    if not batch:
        raise NotFound('Supply batch not found')
    return batch


def list_batches(
    db: Session,
    *,
    user_id: int,
    supply_type_id: int | None = None,
    include_depleted: bool = False,
) -> list[SupplyBatch]:
    stmt = select(SupplyBatch).where(SupplyBatch.user_id == user_id)
    if supply_type_id is not None:
        stmt = stmt.where(SupplyBatch.supply_type_id == supply_type_id)
    if not include_depleted:
        stmt = stmt.where(SupplyBatch.is_depleted.is_(False))
    stmt = stmt.order_by(SupplyBatch.supply_type_id.asc(), SupplyBatch.purchase_date.asc(), SupplyBatch.id.asc())
    return db.execute(stmt).scalars().all()


def record_batch(
    db: Session,
    *,
    user_id: int,
    supply_type_id: int | None,
    quantity_purchased: int,
    total_cost: object,
    purchase_date: object = None,
    notes: str | None = None,
    source_url: str | None = None,
) -> SupplyBatch:
    """Record a supply purchase as a new batch with its own unit cost.

    The unit cost is fixed here, total cost over quantity at six places, and
    never changes afterwards.
    """
    if supply_type_id is None:
        raise ValidationError('supply_type_id is required')
    quantity = parse_positive_int(quantity_purchased, field='quantity_purchased')
    cost = parse_money(total_cost, field='total_cost')
    if cost is None:
        raise ValidationError('total_cost is required')

    supply_type = get_supply_type(db, user_id=user_id, supply_type_id=supply_type_id)
    if not supply_type.active:
        raise ValidationError('Supply type is inactive')

    batch = SupplyBatch(
        user_id=user_id,
        supply_type_id=supply_type.id,
        purchase_date=_parse_date(purchase_date, field='purchase_date') or date.today(),
        quantity_purchased=quantity,
        quantity_remaining=quantity,
        total_cost=cost,
        cost_per_unit=(cost / quantity).quantize(UNIT_COST_PLACES, rounding=ROUND_HALF_UP),
        is_depleted=False,
        notes=clean_text(notes),
        source_url=clean_text(source_url),
    )
    db.add(batch)
    db.flush()
    logger.info('Recorded batch %s: %s x %s at %s each', batch.id, quantity, supply_type.name, batch.cost_per_unit)
    return batch


def update_batch(db: Session, *, user_id: int, batch_id: int, changes: Mapping[str, object]) -> SupplyBatch:
    batch = get_batch(db, user_id=user_id, batch_id=batch_id, for_update=True)

    if 'cost_per_unit' in changes:
        raise ValidationError('cost_per_unit cannot be changed once a batch is recorded')

    if 'purchase_date' in changes:
        purchase_date = _parse_date(changes['purchase_date'], field='purchase_date')
        if purchase_date is None:
            raise ValidationError('purchase_date cannot be cleared')
        batch.purchase_date = purchase_date

    if 'quantity_purchased' in changes:
        quantity = parse_positive_int(changes['quantity_purchased'], field='quantity_purchased')
        used = batch.quantity_purchased - batch.quantity_remaining
        if quantity < used:
            raise ValidationError(f'quantity_purchased cannot drop below the {used} units already used')
        batch.quantity_purchased = quantity
        batch.quantity_remaining = quantity - used
        batch.total_cost = (Decimal(batch.cost_per_unit) * quantity).quantize(CENTS, rounding=ROUND_HALF_UP)
        batch.is_depleted = batch.quantity_remaining == 0

    if 'notes' in changes:
        batch.notes = clean_text(changes['notes'])
    if 'source_url' in changes:
        batch.source_url = clean_text(changes['source_url'])

    batch.updated_at = _now()
    db.flush()
    logger.info('Updated batch %s', batch.id)
    return batch


def delete_batch(db: Session, *, user_id: int, batch_id: int) -> None:
    batch = get_batch(db, user_id=user_id, batch_id=batch_id, for_update=True)
    used = db.execute(
        select(OrderSupplyUsage.id).where(OrderSupplyUsage.supply_batch_id == batch.id).limit(1)
    ).first()
    if used or batch.quantity_remaining != batch.quantity_purchased:
        raise Conflict('Cannot delete a batch that has been drawn from')
    db.delete(batch)
    db.flush()
    logger.info('Deleted batch %s', batch_id)


# Shipping configs


@dataclass(frozen=True)
class ConfigLine:
    item_id: int
    supply_type_id: int
    supply_type_name: str
    quantity: int


@dataclass(frozen=True)
class ShippingConfigDetail:
    config: ShippingConfig
    items: list[ConfigLine]


def _config_lines(db: Session, *, config_id: int) -> list[ConfigLine]:
    rows = db.execute(
        select(ShippingConfigItem, SupplyType.name)
        .join(SupplyType, SupplyType.id == ShippingConfigItem.supply_type_id)
        .where(ShippingConfigItem.shipping_config_id == config_id)
        .order_by(ShippingConfigItem.id.asc())
    ).all()
    return [
        ConfigLine(item_id=item.id, supply_type_id=item.supply_type_id, supply_type_name=name, quantity=item.quantity)
        for item, name in rows
    ]


def _parse_items(db: Session, *, user_id: int, items: list | None) -> list[tuple[int, int]]:
    parsed: list[tuple[int, int]] = []
    for raw in items or []:
        try:
            supply_type_id = raw['supply_type_id']
            quantity = raw.get('quantity', 1)
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValidationError('Each item needs a supply_type_id') from exc
        parsed.append((supply_type_id, parse_positive_int(quantity, field='quantity')))

    type_ids = {supply_type_id for supply_type_id, _ in parsed}
    if type_ids:
        owned = set(
            db.execute(select(SupplyType.id).where(SupplyType.user_id == user_id, SupplyType.id.in_(type_ids)))
            .scalars()
            .all()
        )
        if owned != type_ids:
            raise ValidationError('Invalid supply type in items')
    return parsed


def shipping_config_detail(db: Session, *, user_id: int, config_id: int) -> ShippingConfigDetail:
    config = get_shipping_config(db, user_id=user_id, config_id=config_id)
    return ShippingConfigDetail(config=config, items=_config_lines(db, config_id=config.id))


def list_shipping_configs(db: Session, *, user_id: int, include_inactive: bool = False) -> list[ShippingConfigDetail]:
    stmt = select(ShippingConfig).where(ShippingConfig.user_id == user_id).order_by(ShippingConfig.name.asc())
    if not include_inactive:
        stmt = stmt.where(ShippingConfig.active.is_(True))
    return [
        ShippingConfigDetail(config=config, items=_config_lines(db, config_id=config.id))
        for config in db.execute(stmt).scalars().all()
    ]


def create_shipping_config(
    db: Session,
    *,
    user_id: int,
    name: str,
    description: str | None = None,
    items: list | None = None,
) -> ShippingConfigDetail:
    clean_name = require_name(name, label='Name')
    parsed = _parse_items(db, user_id=user_id, items=items)

    config = ShippingConfig(user_id=user_id, name=clean_name, description=clean_text(description), active=True)
    db.add(config)
    db.flush()
    db.add_all(
        [
            ShippingConfigItem(shipping_config_id=config.id, supply_type_id=supply_type_id, quantity=quantity)
            for supply_type_id, quantity in parsed
        ]
    )
    db.flush()
    logger.info('Created shipping config %s (%s) with %s item(s)', config.id, config.name, len(parsed))
    return ShippingConfigDetail(config=config, items=_config_lines(db, config_id=config.id))


def update_shipping_config(
    db: Session, *, user_id: int, config_id: int, changes: Mapping[str, object]
) -> ShippingConfigDetail:
    config = get_shipping_config(db, user_id=user_id, config_id=config_id)

    if 'name' in changes:
        config.name = require_name(changes['name'], label='Name')
    if 'description' in changes:
        config.description = clean_text(changes['description'])
    if 'active' in changes and changes['active'] is not None:
        config.active = bool(changes['active'])

    if 'items' in changes and changes['items'] is not None:
        parsed = _parse_items(db, user_id=user_id, items=changes['items'])
        db.execute(delete(ShippingConfigItem).where(ShippingConfigItem.shipping_config_id == config.id))
        db.add_all(
            [
                ShippingConfigItem(shipping_config_id=config.id, supply_type_id=supply_type_id, quantity=quantity)
                for supply_type_id, quantity in parsed
            ]
        )

    db.flush()
    logger.info('Updated shipping config %s', config.id)
    return ShippingConfigDetail(config=config, items=_config_lines(db, config_id=config.id))


def deactivate_shipping_config(db: Session, *, user_id: int, config_id: int) -> ShippingConfig:
    config = get_shipping_config(db, user_id=user_id, config_id=config_id)
    config.active = False
    db.flush()
    logger.info('Deactivated shipping config %s', config.id)
    return config
