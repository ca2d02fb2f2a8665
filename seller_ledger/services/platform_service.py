from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from seller_ledger.errors import Conflict, NotFound, ValidationError
from seller_ledger.models import Sale, SellingPlatform
from seller_ledger.services.input_utils import parse_money, require_name
from seller_ledger.services.profit_service import estimate_platform_fees

logger = logging.getLogger(__name__)

PERCENT_PLACES = Decimal('0.001')


@dataclass(frozen=True)
class PlatformRemoval:
    platform_id: int
    deactivated: bool


def _parse_percentage(value: object, *, field: str) -> Decimal | None:
    if value is None or value == '':
        return None
    try:
        pct = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f'{field} must be a decimal percentage') from exc
    if not pct.is_finite() or pct < 0 or pct > 100:
        raise ValidationError(f'{field} must be between 0 and 100')
    return pct.quantize(PERCENT_PLACES)


def list_platforms(db: Session, *, user_id: int, include_inactive: bool = False) -> list[SellingPlatform]:
    stmt = (
        select(SellingPlatform)
        .where(or_(SellingPlatform.user_id.is_(None), SellingPlatform.user_id == user_id))
        .order_by(SellingPlatform.name.asc(), SellingPlatform.id.asc())
    )
    if not include_inactive:
        stmt = stmt.where(SellingPlatform.active.is_(True))
    return db.execute(stmt).scalars().all()


def get_usable_platform(db: Session, *, user_id: int, platform_id: int) -> SellingPlatform:
    """Return a platform a sale may reference: a system default or one of the seller's own."""
    platform = db.execute(
        select(SellingPlatform).where(
            SellingPlatform.id == platform_id,
            or_(SellingPlatform.user_id.is_(None), SellingPlatform.user_id == user_id),
        )
    ).scalar_one_or_none()
    if not platform:
        raise NotFound('Platform not found')
    return platform


def _get_owned_platform(db: Session, *, user_id: int, platform_id: int) -> SellingPlatform:
    platform = db.execute(
        select(SellingPlatform).where(SellingPlatform.id == platform_id, SellingPlatform.user_id == user_id)
    ).scalar_one_or_none()
    if not platform:
        raise NotFound('Platform not found')
    return platform


def _ensure_unique_name(db: Session, *, user_id: int, name: str, exclude_id: int | None = None) -> None:
    stmt = select(SellingPlatform.id).where(SellingPlatform.user_id == user_id, SellingPlatform.name == name)
    if exclude_id is not None:
        stmt = stmt.where(SellingPlatform.id != exclude_id)
    if db.execute(stmt).first():
        raise Conflict('A platform with this name already exists')


def create_platform(
    db: Session,
    *,
    user_id: int,
    name: str,
    fee_percentage: object = None,
    payment_fee_pct: object = None,
    fixed_fee: object = None,
) -> SellingPlatform:
    clean_name = require_name(name, label='Name')
    _ensure_unique_name(db, user_id=user_id, name=clean_name)

    platform = SellingPlatform(
        user_id=user_id,
        name=clean_name,
        fee_percentage=_parse_percentage(fee_percentage, field='fee_percentage'),
        payment_fee_pct=_parse_percentage(payment_fee_pct, field='payment_fee_pct'),
        fixed_fee=parse_money(fixed_fee, field='fixed_fee'),
        active=True,
    )
    db.add(platform)
    db.flush()
    logger.info('Created platform %s (%s) for user %s', platform.id, platform.name, user_id)
    return platform


def update_platform(db: Session, *, user_id: int, platform_id: int, changes: Mapping[str, object]) -> SellingPlatform:
    platform = _get_owned_platform(db, user_id=user_id, platform_id=platform_id)

    if 'name' in changes:
        clean_name = require_name(changes['name'], label='Name')
        _ensure_unique_name(db, user_id=user_id, name=clean_name, exclude_id=platform.id)
        platform.name = clean_name
    if 'fee_percentage' in changes:
        platform.fee_percentage = _parse_percentage(changes['fee_percentage'], field='fee_percentage')
    if 'payment_fee_pct' in changes:
        platform.payment_fee_pct = _parse_percentage(changes['payment_fee_pct'], field='payment_fee_pct')
    if 'fixed_fee' in changes:
        platform.fixed_fee = parse_money(changes['fixed_fee'], field='fixed_fee')
    if 'active' in changes and changes['active'] is not None:
        platform.active = bool(changes['active'])

    db.flush()
    logger.info('Updated platform %s', platform.id)
    return platform


def delete_platform(db: Session, *, user_id: int, platform_id: int) -> PlatformRemoval:
    platform = _get_owned_platform(db, user_id=user_id, platform_id=platform_id)

    in_use = db.execute(
        select(Sale.id).where(Sale.user_id == user_id, Sale.platform_id == platform.id).limit(1)
    ).first()
    if in_use:
        platform.active = False
        db.flush()
        logger.info('Deactivated platform %s; sales still reference it', platform.id)
        return PlatformRemoval(platform_id=platform_id, deactivated=True)

    db.delete(platform)
    db.flush()
    logger.info('Deleted platform %s', platform_id)
    return PlatformRemoval(platform_id=platform_id, deactivated=False)


def fee_estimate(db: Session, *, user_id: int, platform_id: int, sale_price: object, shipping_charged: object = None) -> Decimal:
    platform = get_usable_platform(db, user_id=user_id, platform_id=platform_id)
    return estimate_platform_fees(
        platform,
        sale_price=parse_money(sale_price, field='sale_price'),
        shipping_charged=parse_money(shipping_charged, field='shipping_charged'),
    )
