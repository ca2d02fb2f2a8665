from __future__ import annotations

from sqlalchemy.orm import Session

from seller_ledger.models import AuditLog


def log_audit(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    ip: str | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            ip=ip,
            meta=metadata or {},
        )
    )
