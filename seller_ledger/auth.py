from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from seller_ledger.config import settings
from seller_ledger.db import get_db
from seller_ledger.models import Seller


class Role(str, Enum):
    ADMIN = "ADMIN"
    SELLER = "SELLER"
    COLLECTOR = "COLLECTOR"


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    active: bool


def get_current_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        username = request.headers.get(settings.principal_header, "").strip()
        if not username:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        seller = db.execute(select(Seller).where(Seller.username == username)).scalar_one_or_none()
        if not seller:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        principal = Principal(id=seller.id, username=seller.username, role=Role(seller.role.value), active=seller.active)
        request.state.principal = principal
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


seller_access = require_role(Role.ADMIN, Role.SELLER)
