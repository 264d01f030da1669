"""Append-only audit log: insert and filtered reads, nothing else."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import uuid4

from sqlalchemy import asc, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.clock import day_start, next_day_start, utc_now_iso
from ..core.errors import ValidationFailed
from ..core.lifecycle import AUDIT_ACTIONS
from ..db.transaction import PENDING_AUDIT_KEY
from ..models.audit import AuditLogEntry
from .pagination import paginate

LOGGER = logging.getLogger(__name__)


def _insert_entry(db: Session, payload: dict[str, Any]) -> AuditLogEntry:
    entry = AuditLogEntry(
        event_key=payload["event_key"],
        action=payload["action"],
        entity_type=payload["entity_type"],
        entity_id=payload["entity_id"],
        user_id=payload["user_id"],
        created_at=payload["created_at"],
    )
    entry.details = payload["metadata"]
    db.add(entry)
    db.flush()
    return entry


def append(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: object,
    user_id: str | None,
    metadata: dict[str, Any] | None = None,
) -> AuditLogEntry | None:
    """Record one mutation inside the caller's transaction.

    The insert runs in a SAVEPOINT. If it fails the savepoint is rolled back,
    the payload is parked on the session and the caller's change carries on;
    ``unit_of_work`` spools the parked payload after its commit succeeds.
    Business rules never reject an audit entry.
    """

    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    payload = {
        "event_key": uuid4().hex,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "user_id": user_id,
        "metadata": metadata or {},
        "created_at": utc_now_iso(),
    }
    try:
        with db.begin_nested():
            entry = _insert_entry(db, payload)
    except SQLAlchemyError:
        LOGGER.warning(
            "audit.append_degraded",
            exc_info=True,
            extra={"extra_data": {"action": action, "entity_id": payload["entity_id"]}},
        )
        db.info.setdefault(PENDING_AUDIT_KEY, []).append(payload)
        return None
    return entry


def _filtered_stmt(
    *,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    order: str = "desc",
):
    stmt = select(AuditLogEntry)
    if action:
        normalized = action.strip().upper()
        if normalized not in AUDIT_ACTIONS:
            raise ValidationFailed(f"Unknown audit action '{action}'", details={"allowed": list(AUDIT_ACTIONS)})
        stmt = stmt.where(AuditLogEntry.action == normalized)
    if entity_type:
        stmt = stmt.where(AuditLogEntry.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(AuditLogEntry.entity_id == str(entity_id))
    if user_id:
        stmt = stmt.where(AuditLogEntry.user_id == user_id)
    if date_from:
        stmt = stmt.where(AuditLogEntry.created_at >= day_start(date_from))
    if date_to:
        stmt = stmt.where(AuditLogEntry.created_at < next_day_start(date_to))
    if date_from and date_to and date_from > date_to:
        raise ValidationFailed("date_from must not be after date_to")
    direction = asc if (order or "desc").lower() == "asc" else desc
    return stmt.order_by(direction(AuditLogEntry.created_at), direction(AuditLogEntry.id))


def list_audit(
    db: Session,
    *,
    page: int | None = 1,
    page_size: int | None = None,
    **filters: Any,
) -> dict[str, Any]:
    """Page through the log, newest first unless ``order="asc"``."""

    return paginate(db, _filtered_stmt(**filters), page, page_size)


def iter_audit(db: Session, **filters: Any) -> list[AuditLogEntry]:
    """Every entry matching ``filters``; used by reports that aggregate."""

    return db.execute(_filtered_stmt(**filters)).scalars().all()


def entries_for_entity(db: Session, entity_type: str, entity_id: object) -> list[AuditLogEntry]:
    """Oldest-first timeline of one asset or assignment."""

    stmt = (
        select(AuditLogEntry)
        .where(AuditLogEntry.entity_type == entity_type, AuditLogEntry.entity_id == str(entity_id))
        .order_by(asc(AuditLogEntry.created_at), asc(AuditLogEntry.id))
    )
    return db.execute(stmt).scalars().all()
