from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from seller_ledger.db import make_session_factory
from seller_ledger.models import (
    Base,
    CollectionItem,
    Sale,
    SaleStatus,
    Seller,
    SellerRole,
    ShippingConfig,
    ShippingConfigItem,
    SupplyBatch,
    SupplyType,
)
from seller_ledger.services.profit_service import apply_profit


def make_engine():
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    return engine


def make_session() -> Session:
    return make_session_factory(make_engine())()


def add_seller(db: Session, username: str = 'seller1', role: SellerRole = SellerRole.SELLER, active: bool = True) -> Seller:
    seller = Seller(username=username, role=role, active=active)
    db.add(seller)
    db.flush()
    return seller


def add_supply_type(db: Session, user_id: int, name: str) -> SupplyType:
    supply_type = SupplyType(user_id=user_id, name=name, active=True)
    db.add(supply_type)
    db.flush()
    return supply_type


def add_batch(
    db: Session,
    user_id: int,
    supply_type_id: int,
    *,
    quantity: int,
    cost_per_unit: str,
    purchased: date = date(2024, 1, 1),
) -> SupplyBatch:
    unit_cost = Decimal(cost_per_unit)
    batch = SupplyBatch(
        user_id=user_id,
        supply_type_id=supply_type_id,
        purchase_date=purchased,
        quantity_purchased=quantity,
        quantity_remaining=quantity,
        total_cost=(unit_cost * quantity).quantize(Decimal('0.01')),
        cost_per_unit=unit_cost,
        is_depleted=False,
    )
    db.add(batch)
    db.flush()
    return batch


def add_config(db: Session, user_id: int, name: str, items: list[tuple[int, int]]) -> ShippingConfig:
    config = ShippingConfig(user_id=user_id, name=name, active=True)
    db.add(config)
    db.flush()
    for supply_type_id, quantity in items:
        db.add(ShippingConfigItem(shipping_config_id=config.id, supply_type_id=supply_type_id, quantity=quantity))
    db.flush()
    return config


def add_sale(db: Session, user_id: int, **fields) -> Sale:
    fields.setdefault('card_id', 1)
    fields.setdefault('status', SaleStatus.LISTED)
    sale = Sale(user_id=user_id, **fields)
    apply_profit(sale)
    db.add(sale)
    db.flush()
    return sale


def add_collection_item(db: Session, user_id: int, *, card_id: int = 42, purchase_price: str | None = '5.00') -> CollectionItem:
    item = CollectionItem(
        user_id=user_id,
        card_id=card_id,
        purchase_price=Decimal(purchase_price) if purchase_price is not None else None,
    )
    db.add(item)
    db.flush()
    return item
