from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from seller_ledger.auth import Principal, seller_access
from seller_ledger.db import get_db, transaction
from seller_ledger.dependencies import get_client_ip
from seller_ledger.serializers import sale_to_dict, summary_to_dict
from seller_ledger.services.audit_service import log_audit
from seller_ledger.services.sale_service import (
    create_sale,
    delete_sale,
    get_sale,
    list_sales,
    sell_from_collection,
    update_sale,
)
from seller_ledger.services.summary_service import seller_summary

router = APIRouter(prefix='/seller', tags=['sales'])


class SaleCreate(BaseModel):
    card_id: int | None = None
    status: str = 'listed'
    sale_date: date | None = None
    platform_id: int | None = None
    shipping_config_id: int | None = None
    purchase_price: Decimal | None = None
    sale_price: Decimal | None = None
    shipping_charged: Decimal | None = None
    shipping_cost: Decimal | None = None
    platform_fees: Decimal | None = None
    other_fees: Decimal | None = None
    supply_cost: Decimal | None = None
    adjustment: Decimal | None = None
    buyer_username: str | None = None
    tracking_number: str | None = None
    notes: str | None = None


class SaleUpdate(BaseModel):
    status: str | None = None
    sale_date: date | None = None
    platform_id: int | None = None
    shipping_config_id: int | None = None
    purchase_price: Decimal | None = None
    sale_price: Decimal | None = None
    shipping_charged: Decimal | None = None
    shipping_cost: Decimal | None = None
    platform_fees: Decimal | None = None
    other_fees: Decimal | None = None
    supply_cost: Decimal | None = None
    adjustment: Decimal | None = None
    buyer_username: str | None = None
    tracking_number: str | None = None
    notes: str | None = None


class SellFromCollectionRequest(BaseModel):
    collection_item_id: int | None = None


@router.get('/sales')
def sales_list(
    status: str | None = None,
    limit: int | None = None,
    offset: int = 0,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    page = list_sales(db, user_id=principal.id, status=status, limit=limit, offset=offset)
    return {
        'sales': [sale_to_dict(sale) for sale in page.sales],
        'total': page.total,
        'limit': page.limit,
        'offset': page.offset,
    }


@router.get('/sales/{sale_id}')
def sale_detail(
    sale_id: int,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    return {'sale': sale_to_dict(get_sale(db, user_id=principal.id, sale_id=sale_id))}


@router.post('/sales', status_code=201)
def sale_create(
    payload: SaleCreate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        sale = create_sale(db, user_id=principal.id, **payload.model_dump())
        log_audit(
            db,
            actor_user_id=principal.id,
            action='SALE_CREATED',
            ip=get_client_ip(request),
            metadata={'sale_id': sale.id, 'card_id': sale.card_id},
        )
    return {'message': 'Sale created successfully', 'sale': sale_to_dict(sale)}


@router.post('/sell-from-collection', status_code=201)
def sale_from_collection(
    payload: SellFromCollectionRequest,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        sale = sell_from_collection(db, user_id=principal.id, collection_item_id=payload.collection_item_id)
        log_audit(
            db,
            actor_user_id=principal.id,
            action='SALE_CREATED_FROM_COLLECTION',
            ip=get_client_ip(request),
            metadata={'sale_id': sale.id, 'collection_item_id': payload.collection_item_id},
        )
    return {'message': 'Card listed for sale and archived from collection', 'sale': sale_to_dict(sale)}


@router.put('/sales/{sale_id}')
def sale_update(
    sale_id: int,
    payload: SaleUpdate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    with transaction(db):
        sale = update_sale(db, user_id=principal.id, sale_id=sale_id, changes=changes)
        log_audit(
            db,
            actor_user_id=principal.id,
            action='SALE_UPDATED',
            ip=get_client_ip(request),
            metadata={'sale_id': sale.id, 'fields': sorted(changes)},
        )
    return {'message': 'Sale updated successfully', 'sale': sale_to_dict(sale)}


@router.delete('/sales/{sale_id}')
def sale_delete(
    sale_id: int,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        removal = delete_sale(db, user_id=principal.id, sale_id=sale_id)
        log_audit(
            db,
            actor_user_id=principal.id,
            action='SALE_DELETED',
            ip=get_client_ip(request),
            metadata={
                'sale_id': removal.sale_id,
                'order_id': removal.order_id,
                'restored_to_collection': removal.restored_to_collection,
            },
        )
    return {
        'message': (
            'Sale deleted and card restored to collection'
            if removal.restored_to_collection
            else 'Sale deleted successfully'
        ),
        'restored_to_collection': removal.restored_to_collection,
    }


@router.get('/summary')
def summary(
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    return summary_to_dict(seller_summary(db, user_id=principal.id))
