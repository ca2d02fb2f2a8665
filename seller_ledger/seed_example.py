from datetime import date
from decimal import Decimal

from sqlalchemy import select

from seller_ledger.db import SessionLocal, get_engine
from seller_ledger.models import Base, Seller, SellerRole, SellingPlatform
from seller_ledger.services.supply_catalog_service import (
    create_shipping_config,
    create_supply_type,
    list_supply_types,
    record_batch,
)

DEFAULT_PLATFORMS = [
    ('eBay', Decimal('13.250'), None, Decimal('0.30')),
    ('COMC', Decimal('5.000'), None, None),
    ('In Person', None, None, None),
]

DEMO_SUPPLIES = [
    ('Penny Sleeve', 'Soft sleeve', 1000, Decimal('10.00')),
    ('Toploader', '3x4 rigid holder', 100, Decimal('12.00')),
    ('Bubble Mailer', '4x8 padded envelope', 50, Decimal('17.50')),
]


def seed() -> None:
    Base.metadata.create_all(get_engine())

    with SessionLocal() as db:
        for name, fee_pct, payment_pct, fixed_fee in DEFAULT_PLATFORMS:
            existing = db.execute(
                select(SellingPlatform).where(SellingPlatform.user_id.is_(None), SellingPlatform.name == name)
            ).scalar_one_or_none()
            if not existing:
                db.add(
                    SellingPlatform(
                        user_id=None,
                        name=name,
                        fee_percentage=fee_pct,
                        payment_fee_pct=payment_pct,
                        fixed_fee=fixed_fee,
                        active=True,
                    )
                )
        db.flush()

        seller = db.execute(select(Seller).where(Seller.username == 'demo-seller')).scalar_one_or_none()
        if not seller:
            seller = Seller(username='demo-seller', role=SellerRole.SELLER, active=True)
            db.add(seller)
            db.flush()

        if not list_supply_types(db, user_id=seller.id, include_inactive=True):
            type_ids = {}
            for name, description, quantity, total_cost in DEMO_SUPPLIES:
                supply_type = create_supply_type(db, user_id=seller.id, name=name, description=description)
                record_batch(
                    db,
                    user_id=seller.id,
                    supply_type_id=supply_type.id,
                    quantity_purchased=quantity,
                    total_cost=total_cost,
                    purchase_date=date.today(),
                )
                type_ids[name] = supply_type.id

            create_shipping_config(
                db,
                user_id=seller.id,
                name='Single card, bubble mailer',
                items=[
                    {'supply_type_id': type_ids['Penny Sleeve'], 'quantity': 1},
                    {'supply_type_id': type_ids['Toploader'], 'quantity': 1},
                    {'supply_type_id': type_ids['Bubble Mailer'], 'quantity': 1},
                ],
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
