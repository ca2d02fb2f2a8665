from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from seller_ledger.auth import Principal, seller_access
from seller_ledger.db import get_db, transaction
from seller_ledger.dependencies import get_client_ip
from seller_ledger.serializers import money, platform_to_dict
from seller_ledger.services.audit_service import log_audit
from seller_ledger.services.platform_service import (
    create_platform,
    delete_platform,
    fee_estimate,
    list_platforms,
    update_platform,
)

router = APIRouter(prefix='/seller/platforms', tags=['platforms'])


class PlatformCreate(BaseModel):
    name: str
    fee_percentage: Decimal | None = None
    payment_fee_pct: Decimal | None = None
    fixed_fee: Decimal | None = None


class PlatformUpdate(BaseModel):
    name: str | None = None
    fee_percentage: Decimal | None = None
    payment_fee_pct: Decimal | None = None
    fixed_fee: Decimal | None = None
    active: bool | None = None


class FeeEstimateRequest(BaseModel):
    sale_price: Decimal
    shipping_charged: Decimal | None = None


@router.get('')
def platforms_list(
    include_inactive: bool = False,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    platforms = list_platforms(db, user_id=principal.id, include_inactive=include_inactive)
    return {'platforms': [platform_to_dict(platform) for platform in platforms]}


@router.post('', status_code=201)
def platform_create(
    payload: PlatformCreate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        platform = create_platform(db, user_id=principal.id, **payload.model_dump())
        log_audit(
            db,
            actor_user_id=principal.id,
            action='PLATFORM_CREATED',
            ip=get_client_ip(request),
            metadata={'platform_id': platform.id, 'name': platform.name},
        )
    return {'message': 'Platform created successfully', 'platform': platform_to_dict(platform)}


@router.put('/{platform_id}')
def platform_update(
    platform_id: int,
    payload: PlatformUpdate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    with transaction(db):
        platform = update_platform(db, user_id=principal.id, platform_id=platform_id, changes=changes)
        log_audit(
            db,
            actor_user_id=principal.id,
            action='PLATFORM_UPDATED',
            ip=get_client_ip(request),
            metadata={'platform_id': platform.id, 'fields': sorted(changes)},
        )
    return {'message': 'Platform updated successfully', 'platform': platform_to_dict(platform)}


@router.delete('/{platform_id}')
def platform_delete(
    platform_id: int,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        removal = delete_platform(db, user_id=principal.id, platform_id=platform_id)
        log_audit(
            db,
            actor_user_id=principal.id,
            action='PLATFORM_DEACTIVATED' if removal.deactivated else 'PLATFORM_DELETED',
            ip=get_client_ip(request),
            metadata={'platform_id': platform_id},
        )
    if removal.deactivated:
        return {'message': 'Platform deactivated (in use by sales)', 'deactivated': True}
    return {'message': 'Platform deleted successfully', 'deactivated': False}


@router.post('/{platform_id}/fee-estimate')
def platform_fee_estimate(
    platform_id: int,
    payload: FeeEstimateRequest,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    fees = fee_estimate(
        db,
        user_id=principal.id,
        platform_id=platform_id,
        sale_price=payload.sale_price,
        shipping_charged=payload.shipping_charged,
    )
    return {'platform_id': platform_id, 'platform_fees': money(fees)}
