from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from seller_ledger.auth import Principal, seller_access
from seller_ledger.db import get_db, transaction
from seller_ledger.dependencies import get_client_ip
from seller_ledger.serializers import (
    batch_to_dict,
    inventory_row_to_dict,
    preview_to_dict,
    shipping_config_to_dict,
    supply_type_to_dict,
)
from seller_ledger.services.audit_service import log_audit
from seller_ledger.services.shipping_cost_service import preview_config_cost
from seller_ledger.services.supply_catalog_service import (
    create_shipping_config,
    create_supply_type,
    deactivate_shipping_config,
    deactivate_supply_type,
    delete_batch,
    list_batches,
    list_shipping_configs,
    list_supply_types,
    record_batch,
    shipping_config_detail,
    update_batch,
    update_shipping_config,
    update_supply_type,
)
from seller_ledger.services.supply_inventory_service import inventory_summary

router = APIRouter(prefix='/supplies', tags=['supplies'])


class SupplyTypeCreate(BaseModel):
    name: str
    description: str | None = None


class SupplyTypeUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    active: bool | None = None


class BatchCreate(BaseModel):
    supply_type_id: int | None = None
    purchase_date: date | None = None
    quantity_purchased: int
    total_cost: Decimal
    notes: str | None = None
    source_url: str | None = None


class BatchUpdate(BaseModel):
    purchase_date: date | None = None
    quantity_purchased: int | None = None
    cost_per_unit: Decimal | None = None
    notes: str | None = None
    source_url: str | None = None


class ConfigItem(BaseModel):
    supply_type_id: int
    quantity: int = 1


class ShippingConfigCreate(BaseModel):
    name: str
    description: str | None = None
    items: list[ConfigItem] = Field(default_factory=list)


class ShippingConfigUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    active: bool | None = None
    items: list[ConfigItem] | None = None


class CalculateCostRequest(BaseModel):
    shipping_config_id: int


def _audit(db: Session, request: Request, principal: Principal, action: str, metadata: dict) -> None:
    log_audit(db, actor_user_id=principal.id, action=action, ip=get_client_ip(request), metadata=metadata)


# Supply types


@router.get('/types')
def supply_types_list(
    include_inactive: bool = False,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    types = list_supply_types(db, user_id=principal.id, include_inactive=include_inactive)
    return {'supply_types': [supply_type_to_dict(supply_type) for supply_type in types]}


@router.post('/types', status_code=201)
def supply_type_create(
    payload: SupplyTypeCreate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        supply_type = create_supply_type(db, user_id=principal.id, name=payload.name, description=payload.description)
        _audit(db, request, principal, 'SUPPLY_TYPE_CREATED', {'supply_type_id': supply_type.id})
    return {'message': 'Supply type created successfully', 'supply_type': supply_type_to_dict(supply_type)}


@router.put('/types/{supply_type_id}')
def supply_type_update(
    supply_type_id: int,
    payload: SupplyTypeUpdate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    with transaction(db):
        supply_type = update_supply_type(db, user_id=principal.id, supply_type_id=supply_type_id, changes=changes)
        _audit(db, request, principal, 'SUPPLY_TYPE_UPDATED', {'supply_type_id': supply_type.id, 'fields': sorted(changes)})
    return {'message': 'Supply type updated successfully', 'supply_type': supply_type_to_dict(supply_type)}


@router.delete('/types/{supply_type_id}')
def supply_type_delete(
    supply_type_id: int,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        deactivate_supply_type(db, user_id=principal.id, supply_type_id=supply_type_id)
        _audit(db, request, principal, 'SUPPLY_TYPE_DEACTIVATED', {'supply_type_id': supply_type_id})
    return {'message': 'Supply type deleted successfully'}


# Supply batches


@router.get('/batches')
def batches_list(
    supply_type_id: int | None = None,
    include_depleted: bool = False,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    batches = list_batches(db, user_id=principal.id, supply_type_id=supply_type_id, include_depleted=include_depleted)
    return {'batches': [batch_to_dict(batch) for batch in batches]}


@router.get('/batches/summary')
def batches_summary(
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    return {'summary': [inventory_row_to_dict(row) for row in inventory_summary(db, user_id=principal.id)]}


@router.post('/batches', status_code=201)
def batch_create(
    payload: BatchCreate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        batch = record_batch(db, user_id=principal.id, **payload.model_dump())
        _audit(
            db,
            request,
            principal,
            'SUPPLY_BATCH_RECORDED',
            {'batch_id': batch.id, 'supply_type_id': batch.supply_type_id, 'quantity': batch.quantity_purchased},
        )
    return {'message': 'Supply batch created successfully', 'batch': batch_to_dict(batch)}


@router.put('/batches/{batch_id}')
def batch_update(
    batch_id: int,
    payload: BatchUpdate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    with transaction(db):
        batch = update_batch(db, user_id=principal.id, batch_id=batch_id, changes=changes)
        _audit(db, request, principal, 'SUPPLY_BATCH_UPDATED', {'batch_id': batch.id, 'fields': sorted(changes)})
    return {'message': 'Supply batch updated successfully', 'batch': batch_to_dict(batch)}


@router.delete('/batches/{batch_id}')
def batch_delete(
    batch_id: int,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        delete_batch(db, user_id=principal.id, batch_id=batch_id)
        _audit(db, request, principal, 'SUPPLY_BATCH_DELETED', {'batch_id': batch_id})
    return {'message': 'Supply batch deleted successfully'}


# Shipping configs


@router.get('/shipping-configs')
def shipping_configs_list(
    include_inactive: bool = False,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    configs = list_shipping_configs(db, user_id=principal.id, include_inactive=include_inactive)
    return {'shipping_configs': [shipping_config_to_dict(detail) for detail in configs]}


@router.get('/shipping-configs/{config_id}')
def shipping_config_get(
    config_id: int,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    detail = shipping_config_detail(db, user_id=principal.id, config_id=config_id)
    return {'shipping_config': shipping_config_to_dict(detail)}


@router.post('/shipping-configs', status_code=201)
def shipping_config_create(
    payload: ShippingConfigCreate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        detail = create_shipping_config(
            db,
            user_id=principal.id,
            name=payload.name,
            description=payload.description,
            items=[item.model_dump() for item in payload.items],
        )
        _audit(db, request, principal, 'SHIPPING_CONFIG_CREATED', {'shipping_config_id': detail.config.id})
    return {'message': 'Shipping config created successfully', 'shipping_config': shipping_config_to_dict(detail)}


@router.put('/shipping-configs/{config_id}')
def shipping_config_update(
    config_id: int,
    payload: ShippingConfigUpdate,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    with transaction(db):
        detail = update_shipping_config(db, user_id=principal.id, config_id=config_id, changes=changes)
        _audit(db, request, principal, 'SHIPPING_CONFIG_UPDATED', {'shipping_config_id': config_id, 'fields': sorted(changes)})
    return {'message': 'Shipping config updated successfully', 'shipping_config': shipping_config_to_dict(detail)}


@router.delete('/shipping-configs/{config_id}')
def shipping_config_delete(
    config_id: int,
    request: Request,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    with transaction(db):
        deactivate_shipping_config(db, user_id=principal.id, config_id=config_id)
        _audit(db, request, principal, 'SHIPPING_CONFIG_DEACTIVATED', {'shipping_config_id': config_id})
    return {'message': 'Shipping config deleted successfully'}


@router.post('/calculate-cost')
def calculate_cost(
    payload: CalculateCostRequest,
    principal: Principal = Depends(seller_access),
    db: Session = Depends(get_db),
):
    return preview_to_dict(preview_config_cost(db, user_id=principal.id, config_id=payload.shipping_config_id))
