from __future__ import annotations

import json

from sqlalchemy import Column, Index, Integer, Text

from ..db.session import Base


class AuditLogEntry(Base):
    """One immutable record of a registry or ledger mutation.

    Rows are only ever inserted. ``metadata`` holds a JSON snapshot of the
    fields that mattered at the time of the action.
    """

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    event_key = Column(Text, nullable=False, unique=True, index=True)
    action = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=False, index=True)
    user_id = Column(Text, nullable=True)
    metadata_blob = Column("metadata", Text, nullable=True)
    created_at = Column(Text, nullable=False)

    __table_args__ = (Index("ix_audit_log_action_created_at", "action", "created_at"),)

    @property
    def details(self) -> dict[str, object]:
        raw = self.metadata_blob
        if not raw:
            return {}
        try:
            decoded = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return {}
        return decoded if isinstance(decoded, dict) else {}

    @details.setter
    def details(self, value: dict[str, object] | None) -> None:
        self.metadata_blob = json.dumps(value, default=str) if value else None
