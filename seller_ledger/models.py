from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntId = BigInteger().with_variant(Integer(), 'sqlite')

Money = Numeric(12, 2)
UnitCost = Numeric(14, 6)


class Base(DeclarativeBase):
    pass


class SellerRole(str, Enum):
    ADMIN = 'ADMIN'
    SELLER = 'SELLER'
    COLLECTOR = 'COLLECTOR'


class SaleStatus(str, Enum):
    LISTED = 'listed'
    SOLD = 'sold'


class OrderStatus(str, Enum):
    PENDING = 'pending'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


class Seller(Base):
    __tablename__ = 'sellers'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    role: Mapped[SellerRole] = mapped_column(
        SQLEnum(SellerRole, name='seller_role'), nullable=False, default=SellerRole.SELLER, server_default='SELLER'
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CollectionItem(Base):
    __tablename__ = 'collection_items'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('sellers.id'), nullable=False)
    card_id: Mapped[int] = mapped_column(BigIntId, nullable=False)
    purchase_price: Mapped[Decimal | None] = mapped_column(Money)
    sold_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sale_id: Mapped[int | None] = mapped_column(BigIntId)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SellingPlatform(Base):
    __tablename__ = 'selling_platforms'
    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='selling_platforms_user_name_uniq'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('sellers.id'))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    fee_percentage: Mapped[Decimal | None] = mapped_column(Numeric(6, 3))
    payment_fee_pct: Mapped[Decimal | None] = mapped_column(Numeric(6, 3))
    fixed_fee: Mapped[Decimal | None] = mapped_column(Money)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SupplyType(Base):
    __tablename__ = 'supply_types'
    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='supply_types_user_name_uniq'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('sellers.id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SupplyBatch(Base):
    __tablename__ = 'supply_batches'
    __table_args__ = (
        CheckConstraint('quantity_purchased > 0', name='supply_batches_purchased_positive_ck'),
        CheckConstraint(
            'quantity_remaining >= 0 AND quantity_remaining <= quantity_purchased',
            name='supply_batches_remaining_range_ck',
        ),
        Index('supply_batches_fifo_idx', 'user_id', 'supply_type_id', 'is_depleted', 'purchase_date', 'id'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('sellers.id'), nullable=False)
    supply_type_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('supply_types.id'), nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity_purchased: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    is_depleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    notes: Mapped[str | None] = mapped_column(Text)
    source_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ShippingConfig(Base):
    __tablename__ = 'shipping_configs'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('sellers.id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ShippingConfigItem(Base):
    __tablename__ = 'shipping_config_items'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='shipping_config_items_quantity_positive_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    shipping_config_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey('shipping_configs.id', ondelete='CASCADE'), nullable=False
    )
    supply_type_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('supply_types.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')


class SaleOrder(Base):
    __tablename__ = 'sale_orders'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('sellers.id'), nullable=False)
    platform_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('selling_platforms.id'))
    shipping_config_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('shipping_configs.id'))
    order_reference: Mapped[str | None] = mapped_column(Text)
    buyer_username: Mapped[str | None] = mapped_column(Text)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OrderStatus.PENDING,
        server_default='pending',
    )
    ship_date: Mapped[date | None] = mapped_column(Date)
    shipping_charged: Mapped[Decimal | None] = mapped_column(Money)
    shipping_cost: Mapped[Decimal | None] = mapped_column(Money)
    tracking_number: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    config_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    extra_supply_cost: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal('0.00'), server_default='0'
    )
    total_supply_cost: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal('0.00'), server_default='0'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Sale(Base):
    __tablename__ = 'sales'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('sellers.id'), nullable=False)
    card_id: Mapped[int] = mapped_column(BigIntId, nullable=False)
    collection_item_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('collection_items.id'))
    platform_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('selling_platforms.id'))
    order_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('sale_orders.id'))
    shipping_config_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('shipping_configs.id'))
    status: Mapped[SaleStatus] = mapped_column(
        SQLEnum(SaleStatus, name='sale_status', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=SaleStatus.LISTED,
        server_default='listed',
    )
    sale_date: Mapped[date | None] = mapped_column(Date)
    purchase_price: Mapped[Decimal | None] = mapped_column(Money)
    sale_price: Mapped[Decimal | None] = mapped_column(Money)
    shipping_charged: Mapped[Decimal | None] = mapped_column(Money)
    shipping_cost: Mapped[Decimal | None] = mapped_column(Money)
    platform_fees: Mapped[Decimal | None] = mapped_column(Money)
    other_fees: Mapped[Decimal | None] = mapped_column(Money)
    supply_cost: Mapped[Decimal | None] = mapped_column(Money)
    # Signed manual correction: negative is an extra cost, positive extra profit.
    adjustment: Mapped[Decimal | None] = mapped_column(Money)
    total_revenue: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    total_costs: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    net_profit: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    buyer_username: Mapped[str | None] = mapped_column(Text)
    tracking_number: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OrderSupplyUsage(Base):
    __tablename__ = 'order_supply_usages'
    __table_args__ = (
        CheckConstraint('quantity_used > 0', name='order_supply_usages_quantity_positive_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    order_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('sale_orders.id', ondelete='CASCADE'), nullable=False)
    supply_batch_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('supply_batches.id'), nullable=False)
    quantity_used: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('sellers.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
