from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fieldtrack.models import AuditActorType, AuditLog
from fieldtrack.routers.request_info import client_ip, request_id, user_agent

logger = logging.getLogger("fieldtrack.audit")


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditLog | None:
    """Persist one audit row in its own commit.

    Returns the stored row, or None when the write failed. A failed write is
    rolled back and logged; it never fails the request that triggered it.
    """
    fields: dict[str, Any] = {
        "actor_type": actor_type,
        "actor_id": actor_id,
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "ip": ip,
        "user_agent": user_agent,
        "success": success,
        "details": details or {},
    }
    audit = AuditLog(ts_utc=datetime.now(timezone.utc), **fields)
    db.add(audit)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={"request_id": request_id, "action": action, "actor_id": actor_id, "success": success},
        )
        return None

    logger.info("audit_event", extra={"request_id": request_id, **fields})
    return audit


def audit_request(
    db: Session,
    request: Request,
    *,
    action: str,
    actor_type: AuditActorType = AuditActorType.USER,
    actor_id: str,
    success: bool = True,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog | None:
    return log_audit(
        db,
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        success=success,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=client_ip(request),
        user_agent=user_agent(request),
        details=details,
        request_id=request_id(request),
    )
