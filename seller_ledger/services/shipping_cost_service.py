from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from seller_ledger.errors import NotFound
from seller_ledger.models import ShippingConfig, ShippingConfigItem, SupplyBatch, SupplyType

CENTS = Decimal('0.01')


@dataclass(frozen=True)
class ConfigItemCost:
    supply_type_id: int
    supply_type_name: str
    quantity: int
    unit_cost: Decimal | None
    cost: Decimal | None
    error: str | None = None


@dataclass(frozen=True)
class ConfigCostPreview:
    shipping_config_id: int
    shipping_config_name: str
    total_cost: Decimal | None
    items: list[ConfigItemCost]
    error: str | None = None


def get_shipping_config(db: Session, *, user_id: int, config_id: int, active_only: bool = False) -> ShippingConfig:
    stmt = select(ShippingConfig).where(ShippingConfig.id == config_id, ShippingConfig.user_id == user_id)
    if active_only:
        stmt = stmt.where(ShippingConfig.active.is_(True))
    config = db.execute(stmt).scalar_one_or_none()
    if not config:
        raise NotFound('Shipping config not found')
    return config


def _oldest_available_unit_cost(db: Session, *, user_id: int, supply_type_id: int) -> Decimal | None:
    return db.execute(
        select(SupplyBatch.cost_per_unit)
        .where(
            SupplyBatch.user_id == user_id,
            SupplyBatch.supply_type_id == supply_type_id,
            SupplyBatch.is_depleted.is_(False),
            SupplyBatch.quantity_remaining > 0,
        )
        .order_by(SupplyBatch.purchase_date.asc(), SupplyBatch.id.asc())
        .limit(1)
    ).scalar_one_or_none()


def preview_config_cost(db: Session, *, user_id: int, config_id: int) -> ConfigCostPreview:
    """Estimate what one shipment packed with this config would cost.

    Each line is priced at the unit cost of the oldest batch still holding
    stock. Nothing is consumed. When any line has no stock at all the preview
    carries an error and no total; the lines that could be priced are still
    listed.
    """
    config = get_shipping_config(db, user_id=user_id, config_id=config_id)
    rows = db.execute(
        select(ShippingConfigItem, SupplyType.name)
        .join(SupplyType, SupplyType.id == ShippingConfigItem.supply_type_id)
        .where(ShippingConfigItem.shipping_config_id == config.id)
        .order_by(ShippingConfigItem.id.asc())
    ).all()

    items: list[ConfigItemCost] = []
    missing: list[str] = []
    for item, type_name in rows:
        unit_cost = _oldest_available_unit_cost(db, user_id=user_id, supply_type_id=item.supply_type_id)
        if unit_cost is None:
            missing.append(type_name)
            items.append(
                ConfigItemCost(
                    supply_type_id=item.supply_type_id,
                    supply_type_name=type_name,
                    quantity=item.quantity,
                    unit_cost=None,
                    cost=None,
                    error=f'No available inventory for {type_name}',
                )
            )
            continue
        unit_cost = Decimal(unit_cost)
        items.append(
            ConfigItemCost(
                supply_type_id=item.supply_type_id,
                supply_type_name=type_name,
                quantity=item.quantity,
                unit_cost=unit_cost,
                cost=unit_cost * item.quantity,
            )
        )

    if missing:
        return ConfigCostPreview(
            shipping_config_id=config.id,
            shipping_config_name=config.name,
            total_cost=None,
            items=items,
            error=f'No available inventory for: {", ".join(missing)}',
        )

    return ConfigCostPreview(
        shipping_config_id=config.id,
        shipping_config_name=config.name,
        total_cost=sum((item.cost for item in items), Decimal('0')).quantize(CENTS, rounding=ROUND_HALF_UP),
        items=items,
    )


def config_cost_for_distribution(preview: ConfigCostPreview) -> Decimal:
    # Lines without stock contribute nothing rather than blocking the order.
    priced = sum((item.cost for item in preview.items if item.cost is not None), Decimal('0'))
    return priced.quantize(CENTS, rounding=ROUND_HALF_UP)


def config_cost(db: Session, *, user_id: int, config_id: int | None) -> Decimal:
    if config_id is None:
        return Decimal('0.00')
    return config_cost_for_distribution(preview_config_cost(db, user_id=user_id, config_id=config_id))
