from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from seller_ledger.auth import Principal, seller_access
from seller_ledger.db import get_db, transaction
from seller_ledger.dependencies import get_client_ip
from seller_ledger.serializers import order_detail_to_dict
from seller_ledger.services.audit_service import log_audit
from seller_ledger.services.order_service import (
    add_sales,
    allocate_supplies,
    clear_supplies,
    create_order,
    delete_order,
    list_orders,
    order_detail,
    remove_sales,
    update_order,
)

router = APIRouter(prefix='/seller/orders', tags=['orders'])


class OrderCreate(BaseModel):
    platform_id: int | None = None
    shipping_config_id: int | None = None
    order_reference: str | None = None
    buyer_username: str | None = None
    status: str = 'pending'
    ship_date: date | None = None
    shipping_charged: Decimal | None = None
    shipping_cost: Decimal | None = None
    tracking_number: str | None = None
    notes: str | None = None
    sale_ids: list[int] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    platform_id: int | None = None
    shipping_config_id: int | None = None
    order_reference: str | None = None
    buyer_username: str | None = None
    status: str | None = None
    ship_date: date | None = None
    shipping_charged: Decimal | None = None
    shipping_cost: Decimal | None = None
    tracking_number: str | None = None
    notes: str | None = None


class SaleIdsRequest(BaseModel):
    sale_ids: list[int] = Field(default_factory=list)


class SupplyLine(BaseModel):
    supply_type_id: int
    quantity: int


class AllocateSuppliesRequest(BaseModel):
    supplies: list[SupplyLine] = Field(default_factory=list)


def _audit(db: Session, request: Request, principal: Principal, action: str, metadata: dict) -> None:
    log_audit(db, actor_user_id=principal.id, action=action, ip=get_client_ip(request), metadata=metadata)


@router.get('')
def orders_list(
    status: str | None = None,
    limit: int | None = None,
    offset: int = 0,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    page = list_orders(db, user_id=principal.id, status=status, limit=limit, offset=offset)
    return {
        'orders': [order_detail_to_dict(detail) for detail in page.orders],
        'total': page.total,
        'limit': page.limit,
        'offset': page.offset,
    }


@router.get('/{order_id}')
def order_get(
    order_id: int,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    return {'order': order_detail_to_dict(order_detail(db, user_id=principal.id, order_id=order_id))}


@router.post('', status_code=201)
def order_create(
    payload: OrderCreate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        detail = create_order(db, user_id=principal.id, **payload.model_dump())
        _audit(
            db,
            request,
            principal,
            'ORDER_CREATED',
            {'order_id': detail.order.id, 'sale_ids': [sale.id for sale in detail.sales]},
        )
    return {'message': 'Order created successfully', 'order': order_detail_to_dict(detail)}


@router.put('/{order_id}')
def order_update(
    order_id: int,
    payload: OrderUpdate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    with transaction(db):
        detail = update_order(db, user_id=principal.id, order_id=order_id, changes=changes)
        _audit(db, request, principal, 'ORDER_UPDATED', {'order_id': order_id, 'fields': sorted(changes)})
    return {'message': 'Order updated successfully', 'order': order_detail_to_dict(detail)}


@router.delete('/{order_id}')
def order_delete(
    order_id: int,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        unlinked = delete_order(db, user_id=principal.id, order_id=order_id)
        _audit(db, request, principal, 'ORDER_DELETED', {'order_id': order_id, 'unlinked_sale_ids': unlinked})
    return {'message': 'Order deleted successfully', 'unlinked_sale_ids': unlinked}


@router.post('/{order_id}/add-sales')
def order_add_sales(
    order_id: int,
    payload: SaleIdsRequest,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        detail = add_sales(db, user_id=principal.id, order_id=order_id, sale_ids=payload.sale_ids)
        _audit(db, request, principal, 'ORDER_SALES_ADDED', {'order_id': order_id, 'sale_ids': payload.sale_ids})
    return {'message': f'Added {len(payload.sale_ids)} sales to order', 'order': order_detail_to_dict(detail)}


@router.post('/{order_id}/remove-sales')
def order_remove_sales(
    order_id: int,
    payload: SaleIdsRequest,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        detail = remove_sales(db, user_id=principal.id, order_id=order_id, sale_ids=payload.sale_ids)
        _audit(db, request, principal, 'ORDER_SALES_REMOVED', {'order_id': order_id, 'sale_ids': payload.sale_ids})
    return {'message': f'Removed {len(payload.sale_ids)} sales from order', 'order': order_detail_to_dict(detail)}


@router.post('/{order_id}/allocate-supplies')
def order_allocate_supplies(
    order_id: int,
    payload: AllocateSuppliesRequest,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    supplies = [line.model_dump() for line in payload.supplies]
    with transaction(db):
        detail = allocate_supplies(db, user_id=principal.id, order_id=order_id, supplies=supplies)
        _audit(db, request, principal, 'ORDER_SUPPLIES_ALLOCATED', {'order_id': order_id, 'supplies': supplies})
    return {'message': 'Supplies allocated successfully', 'order': order_detail_to_dict(detail)}


@router.delete('/{order_id}/supplies')
def order_clear_supplies(
    order_id: int,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        detail, returned = clear_supplies(db, user_id=principal.id, order_id=order_id)
        _audit(db, request, principal, 'ORDER_SUPPLIES_CLEARED', {'order_id': order_id, 'units_returned': returned})
    return {
        'message': f'Returned {returned} supply units to inventory',
        'order': order_detail_to_dict(detail),
    }
