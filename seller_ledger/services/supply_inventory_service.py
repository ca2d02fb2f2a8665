"""FIFO costing over purchased supply batches.

Batches of one supply type are consumed oldest purchase first (creation order
breaks ties) and every draw keeps its batch's own unit cost. Allocation is
split into a read-only plan and an apply step so callers that need several
supply types can check all of them before writing anything.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from seller_ledger.errors import InsufficientInventory, InvalidRelease, NotFound, ValidationError
from seller_ledger.models import SupplyBatch, SupplyType

logger = logging.getLogger(__name__)

UNIT_COST_PLACES = Decimal('0.000001')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class BatchDraw:
    batch_id: int
    quantity_used: int
    cost_per_unit: Decimal
    supply_type_id: int | None = None

    @property
    def total_cost(self) -> Decimal:
        return (self.cost_per_unit * self.quantity_used).quantize(UNIT_COST_PLACES)


@dataclass
class SupplyAllocation:
    supply_type_id: int
    quantity: int
    draws: tuple[BatchDraw, ...]
    # Set once the draws have gone back to their batches.
    released: bool = field(default=False, compare=False)

    @property
    def total_cost(self) -> Decimal:
        return sum((draw.total_cost for draw in self.draws), Decimal('0'))


@dataclass(frozen=True)
class SupplyInventoryRow:
    supply_type_id: int
    name: str
    total_remaining: int
    batch_count: int
    min_cost: Decimal | None
    max_cost: Decimal | None
    avg_cost: Decimal | None


def _validate_quantity(quantity: object) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError('Quantity must be a whole number')
    if quantity <= 0:
        raise ValidationError('Quantity must be greater than zero')
    return quantity


def get_supply_type(db: Session, *, user_id: int, supply_type_id: int) -> SupplyType:
    supply_type = db.execute(
        select(SupplyType).where(SupplyType.id == supply_type_id, SupplyType.user_id == user_id)
    ).scalar_one_or_none()
    if not supply_type:
        raise NotFound('Supply type not found')
    return supply_type


def _available_batches(db: Session, *, user_id: int, supply_type_id: int) -> list[SupplyBatch]:
    # Row locks keep concurrent allocations of the same type from reading the same remaining counts.
    return (
        db.execute(
            select(SupplyBatch)
            .where(
                SupplyBatch.user_id == user_id,
                SupplyBatch.supply_type_id == supply_type_id,
                SupplyBatch.is_depleted.is_(False),
                SupplyBatch.quantity_remaining > 0,
            )
            .order_by(SupplyBatch.purchase_date.asc(), SupplyBatch.id.asc())
            .with_for_update()
        )
        .scalars()
        .all()
    )


def _locked_batches_by_id(db: Session, *, user_id: int, batch_ids: Iterable[int]) -> dict[int, SupplyBatch]:
    ids = sorted(set(batch_ids))
    if not ids:
        return {}
    rows = (
        db.execute(
            select(SupplyBatch)
            .where(SupplyBatch.user_id == user_id, SupplyBatch.id.in_(ids))
            .order_by(SupplyBatch.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    return {batch.id: batch for batch in rows}


def _quantities_by_batch(draws: Iterable[BatchDraw]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for draw in draws:
        totals[draw.batch_id] = totals.get(draw.batch_id, 0) + draw.quantity_used
    return totals


def available_quantity(db: Session, *, user_id: int, supply_type_id: int) -> int:
    return sum(batch.quantity_remaining for batch in _available_batches(db, user_id=user_id, supply_type_id=supply_type_id))


def plan_allocation(
    db: Session,
    *,
    user_id: int,
    supply_type_id: int,
    quantity: int,
    reserved: dict[int, int] | None = None,
) -> SupplyAllocation:
    """Work out which batches would cover ``quantity`` without touching them.

    ``reserved`` maps batch id to units already promised to earlier lines of
    the same request; those units are treated as gone.
    """
    quantity = _validate_quantity(quantity)
    supply_type = get_supply_type(db, user_id=user_id, supply_type_id=supply_type_id)
    reserved = reserved or {}

    draws: list[BatchDraw] = []
    remaining = quantity
    for batch in _available_batches(db, user_id=user_id, supply_type_id=supply_type_id):
        if remaining <= 0:
            break
        free = batch.quantity_remaining - reserved.get(batch.id, 0)
        if free <= 0:
            continue
        take = min(remaining, free)
        draws.append(
            BatchDraw(
                batch_id=batch.id,
                supply_type_id=supply_type_id,
                quantity_used=take,
                cost_per_unit=Decimal(batch.cost_per_unit),
            )
        )
        remaining -= take

    if remaining > 0:
        available = quantity - remaining
        logger.warning(
            'Refused allocation of %s x %s (type %s) for user %s: only %s available',
            quantity,
            supply_type.name,
            supply_type_id,
            user_id,
            available,
        )
        raise InsufficientInventory(
            f'Insufficient inventory for {supply_type.name}. Need {quantity}, can allocate {available}',
            supply_type_id=supply_type_id,
            requested=quantity,
            available=available,
        )

    return SupplyAllocation(supply_type_id=supply_type_id, quantity=quantity, draws=tuple(draws))


def apply_draws(db: Session, *, user_id: int, draws: Iterable[BatchDraw]) -> None:
    draws = list(draws)
    needed = _quantities_by_batch(draws)
    batches = _locked_batches_by_id(db, user_id=user_id, batch_ids=needed)

    # Check every batch before decrementing any of them.
    for batch_id, quantity in needed.items():
        batch = batches.get(batch_id)
        if batch is None:
            raise NotFound('Supply batch not found')
        if batch.is_depleted or batch.quantity_remaining < quantity:
            raise InsufficientInventory(
                f'Supply batch {batch_id} no longer has {quantity} units available',
                supply_type_id=batch.supply_type_id,
                requested=quantity,
                available=batch.quantity_remaining,
            )

    now = _now()
    for batch_id, quantity in needed.items():
        batch = batches[batch_id]
        batch.quantity_remaining -= quantity
        batch.is_depleted = batch.quantity_remaining == 0
        batch.updated_at = now
    db.flush()


def allocate(db: Session, *, user_id: int, supply_type_id: int, quantity: int) -> SupplyAllocation:
    allocation = plan_allocation(db, user_id=user_id, supply_type_id=supply_type_id, quantity=quantity)
    apply_draws(db, user_id=user_id, draws=allocation.draws)
    logger.info(
        'Allocated %s units of supply type %s across %s batch(es), cost %s',
        quantity,
        supply_type_id,
        len(allocation.draws),
        allocation.total_cost,
    )
    return allocation


def release(db: Session, *, user_id: int, allocation: SupplyAllocation | Iterable[BatchDraw]) -> None:
    """Return previously drawn units to their batches.

    A ``SupplyAllocation`` is consumed by its first release; releasing it
    again is refused with ``InvalidRelease`` even when other allocations have
    drawn from the same batches since. Bare draws carry no such identity
    (order usages are deleted as they are released), so for them only the
    purchased-quantity ceiling is checked. Nothing changes on refusal.
    """
    handle = allocation if isinstance(allocation, SupplyAllocation) else None
    draws = handle.draws if handle is not None else tuple(allocation)
    returned = _quantities_by_batch(draws)
    batches = _locked_batches_by_id(db, user_id=user_id, batch_ids=returned)

    if handle is not None and handle.released:
        raise InvalidRelease(f'Allocation of supply type {handle.supply_type_id} was already released')

    for batch_id, quantity in returned.items():
        batch = batches.get(batch_id)
        if batch is None:
            raise NotFound('Supply batch not found')
        if quantity <= 0:
            raise InvalidRelease('Released quantity must be positive')
        if batch.quantity_remaining + quantity > batch.quantity_purchased:
            raise InvalidRelease(
                f'Supply batch {batch_id} cannot take back {quantity} units; the allocation was already released'
            )

    now = _now()
    for batch_id, quantity in returned.items():
        batch = batches[batch_id]
        batch.quantity_remaining += quantity
        batch.is_depleted = batch.quantity_remaining == 0
        batch.updated_at = now
    db.flush()
    if handle is not None:
        handle.released = True
    logger.info('Released %s units back to %s batch(es)', sum(returned.values()), len(returned))


def inventory_summary(db: Session, *, user_id: int) -> list[SupplyInventoryRow]:
    supply_types = (
        db.execute(
            select(SupplyType)
            .where(SupplyType.user_id == user_id, SupplyType.active.is_(True))
            .order_by(SupplyType.name.asc())
        )
        .scalars()
        .all()
    )
    batches = (
        db.execute(
            select(SupplyBatch).where(
                SupplyBatch.user_id == user_id,
                SupplyBatch.is_depleted.is_(False),
            )
        )
        .scalars()
        .all()
    )
    by_type: dict[int, list[SupplyBatch]] = {}
    for batch in batches:
        by_type.setdefault(batch.supply_type_id, []).append(batch)

    rows: list[SupplyInventoryRow] = []
    for supply_type in supply_types:
        type_batches = by_type.get(supply_type.id, [])
        costs = [Decimal(batch.cost_per_unit) for batch in type_batches]
        rows.append(
            SupplyInventoryRow(
                supply_type_id=supply_type.id,
                name=supply_type.name,
                total_remaining=sum(batch.quantity_remaining for batch in type_batches),
                batch_count=len(type_batches),
                min_cost=min(costs) if costs else None,
                max_cost=max(costs) if costs else None,
                avg_cost=(sum(costs, Decimal('0')) / len(costs)).quantize(UNIT_COST_PLACES) if costs else None,
            )
        )
    return rows
