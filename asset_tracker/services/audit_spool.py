"""Durable fallback for audit entries that missed their transaction.

When the audit insert fails but the asset/assignment change itself commits,
the entry is appended to a JSON-lines file under ``DATA_DIR``. Replaying the
file later inserts every entry whose ``event_key`` is not yet in the table, so
delivery is at-least-once without creating duplicates.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import StorageUnavailable
from ..models.audit import AuditLogEntry

LOGGER = logging.getLogger(__name__)
_SPOOL_LOCK = threading.Lock()


def spool_entries(payloads: Iterable[dict[str, Any]]) -> list[str]:
    """Append payloads to the spool file and return caller-facing warnings."""

    path = settings.audit_spool_path
    warnings: list[str] = []
    with _SPOOL_LOCK:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            for payload in payloads:
                handle.write(json.dumps(payload, default=str) + "\n")
                warnings.append(
                    f"Audit entry {payload['action']} for {payload['entity_type']} "
                    f"{payload['entity_id']} was queued for replay"
                )
                LOGGER.warning(
                    "audit.spooled",
                    extra={"extra_data": {"event_key": payload["event_key"], "action": payload["action"]}},
                )
    return warnings


def pending_count() -> int:
    path = settings.audit_spool_path
    if not path.exists():
        return 0
    with path.open("r", encoding="utf-8") as handle:
        return sum(1 for line in handle if line.strip())


def _read_spool() -> list[dict[str, Any]]:
    path = settings.audit_spool_path
    if not path.exists():
        return []
    payloads: list[dict[str, Any]] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            payloads.append(json.loads(line))
        except json.JSONDecodeError:
            LOGGER.error("audit.spool_corrupt_line", extra={"extra_data": {"line": line[:200]}})
    return payloads


def replay_spooled_entries(db: Session) -> int:
    """Insert spooled entries that are not yet stored; return how many were added."""

    with _SPOOL_LOCK:
        payloads = _read_spool()
        if not payloads:
            return 0
        keys = [payload["event_key"] for payload in payloads]
        try:
            existing = set(
                db.execute(select(AuditLogEntry.event_key).where(AuditLogEntry.event_key.in_(keys))).scalars()
            )
            inserted = 0
            for payload in payloads:
                if payload["event_key"] in existing:
                    continue
                entry = AuditLogEntry(
                    event_key=payload["event_key"],
                    action=payload["action"],
                    entity_type=payload["entity_type"],
                    entity_id=str(payload["entity_id"]),
                    user_id=payload.get("user_id"),
                    created_at=payload["created_at"],
                )
                entry.details = payload.get("metadata")
                db.add(entry)
                existing.add(payload["event_key"])
                inserted += 1
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.error("audit.replay_failed", exc_info=True)
            raise StorageUnavailable("Audit spool could not be replayed") from exc
        settings.audit_spool_path.write_text("", encoding="utf-8")
    LOGGER.info("audit.replayed", extra={"extra_data": {"inserted": inserted, "spooled": len(payloads)}})
    return inserted
