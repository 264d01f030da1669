"""Small idempotent schema upgrades for existing SQLite databases.

``Base.metadata.create_all`` builds fresh databases. These helpers only ADD
columns and indexes to databases created by older releases; nothing is ever
dropped.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

LOGGER = logging.getLogger(__name__)


def _table_columns(engine: Engine, table: str) -> list[dict[str, object]]:
    with engine.connect() as conn:
        return conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()


def _column_names(engine: Engine, table: str) -> set[str]:
    return {record["name"] for record in _table_columns(engine, table)}


def _add_column_sqlite(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))
    LOGGER.info("migration.column_added", extra={"extra_data": {"table": table, "column": col_def}})


def _create_index_if_not_exists(
    engine: Engine,
    table: str,
    name: str,
    cols: Iterable[str],
    unique: bool = False,
    where: str | None = None,
) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    where_sql = f" WHERE {where}" if where else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql}){where_sql}"))


def _ensure_columns(engine: Engine, table: str, needed: dict[str, str]) -> None:
    existing = _column_names(engine, table)
    if not existing:
        # Table absent -> create_all builds the full schema.
        return
    for name, dtype in needed.items():
        if name not in existing:
            _add_column_sqlite(engine, table, f"{name} {dtype}")


def run_migrations(engine: Engine) -> None:
    """Bring an existing SQLite schema up to what the models expect."""

    if engine.dialect.name != "sqlite":
        return

    _ensure_columns(
        engine,
        "assets",
        {
            "type_detail": "TEXT",
            "gpu": "TEXT",
            "retire_reason": "TEXT",
            "version": "INTEGER DEFAULT 1 NOT NULL",
            "created_by": "TEXT",
            "updated_at": "TEXT",
        },
    )
    _ensure_columns(
        engine,
        "assignments",
        {
            "retired": "INTEGER DEFAULT 0 NOT NULL",
            "retire_reason": "TEXT",
            "assigned_by": "TEXT",
            "returned_by": "TEXT",
            "updated_at": "TEXT",
        },
    )
    _ensure_columns(engine, "audit_log", {"event_key": "TEXT"})

    if _column_names(engine, "audit_log"):
        # Rows written before event keys existed get a stable synthetic key.
        with engine.begin() as conn:
            conn.execute(text("UPDATE audit_log SET event_key = 'legacy-' || id WHERE event_key IS NULL"))
        _create_index_if_not_exists(engine, "audit_log", "ix_audit_log_action_created_at", ["action", "created_at"])
        _create_index_if_not_exists(engine, "audit_log", "ix_audit_log_entity_id", ["entity_id"])
        _create_index_if_not_exists(engine, "audit_log", "ix_audit_log_event_key", ["event_key"], unique=True)

    if _column_names(engine, "assignments"):
        _create_index_if_not_exists(
            engine,
            "assignments",
            "uq_assignments_one_active_per_asset",
            ["asset_id"],
            unique=True,
            where="status = 'active'",
        )
