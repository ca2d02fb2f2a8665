from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from seller_ledger.config import settings
from seller_ledger.errors import ValidationError

CENTS = Decimal('0.01')


def parse_money(value: object, *, field: str, allow_negative: bool = False) -> Decimal | None:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a decimal amount')
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f'{field} must be a decimal amount') from exc
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a decimal amount')
    if amount < 0 and not allow_negative:
        raise ValidationError(f'{field} cannot be negative')
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_positive_int(value: object, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be a whole number')
    if value <= 0:
        raise ValidationError(f'{field} must be greater than zero')
    return value


def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def require_name(value: str | None, *, label: str) -> str:
    cleaned = clean_text(value)
    if not cleaned:
        raise ValidationError(f'{label} is required')
    return cleaned


def page_bounds(limit: int | None, offset: int | None) -> tuple[int, int]:
    if limit is None:
        limit = settings.default_page_size
    if limit <= 0:
        raise ValidationError('limit must be greater than zero')
    offset = offset or 0
    if offset < 0:
        raise ValidationError('offset cannot be negative')
    return min(limit, settings.max_page_size), offset
