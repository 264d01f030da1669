"""Read-only projections over the audit log and the live ledger tables.

Nothing here writes. Retired-asset rows come from the terminal retired
assignment (employee, reason, time); the audit log only supplies the timeline.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, Iterable

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session, aliased

from ..core.errors import ValidationFailed
from ..core.lifecycle import (
    ASSET_RETIRED,
    ASSIGN_ASSET,
    AUDIT_ACTIONS,
    CREATE_ASSET,
    RETIRE_ASSET,
    RETURN_ASSET,
)
from ..crud.audit import list_audit
from ..crud.pagination import normalize_page
from ..models.asset import Asset
from ..models.assignment import Assignment
from ..models.audit import AuditLogEntry
from ..models.employee import Employee

GENERIC_COLUMNS = ["created_at", "action", "entity_type", "entity_id", "user_id"]

EXPORT_COLUMNS: Dict[str, list[str]] = {
    CREATE_ASSET: ["created_at", "asset_id", "asset_type", "brand", "model", "status"],
    ASSIGN_ASSET: ["created_at", "asset_code", "employee_id", "employee_name", "assigned_at", "assigned_by"],
    RETURN_ASSET: ["created_at", "asset_code", "employee_id", "employee_name", "returned_at", "returned_by"],
    RETIRE_ASSET: [
        "retired_at",
        "asset_code",
        "asset_type",
        "brand",
        "model",
        "employee_id",
        "employee_name",
        "retire_reason",
    ],
}

WORKBOOK_SHEETS = (
    ("created", CREATE_ASSET),
    ("assigned", ASSIGN_ASSET),
    ("returned", RETURN_ASSET),
    ("retired", RETIRE_ASSET),
)

MONTHLY_ACTIONS = (CREATE_ASSET, ASSIGN_ASSET, RETURN_ASSET, RETIRE_ASSET)


def _terminal_retirements():
    """Latest retired assignment id per asset, as a subquery."""

    return (
        select(Assignment.asset_id, func.max(Assignment.id).label("assignment_id"))
        .where(Assignment.retired == 1)
        .group_by(Assignment.asset_id)
        .subquery()
    )


def _retired_row(asset: Asset, assignment: Assignment | None, employee: Employee | None) -> dict[str, Any]:
    return {
        "asset_db_id": asset.id,
        "asset_code": asset.asset_id,
        "serial_number": asset.serial_number,
        "asset_type": asset.asset_type,
        "brand": asset.brand,
        "model": asset.model,
        "assignment_id": assignment.id if assignment else None,
        "employee_id": employee.employee_id if employee else None,
        "employee_name": employee.name if employee else None,
        "retire_reason": (assignment.retire_reason if assignment else None) or asset.retire_reason,
        "retired_at": (assignment.returned_at if assignment else None) or asset.updated_at,
        "retired_by": assignment.returned_by if assignment else None,
    }


def retired_assets_view(db: Session, *, page: int | None = 1, page_size: int | None = None) -> dict[str, Any]:
    """Retired assets joined with the assignment that retired them.

    Assets retired administratively, without ever leaving custody through the
    ledger, appear with empty employee fields and the asset's own reason.
    """

    page, size = normalize_page(page, page_size)
    terminal = _terminal_retirements()
    retiring = aliased(Assignment)
    base = (
        select(Asset, retiring, Employee)
        .outerjoin(terminal, terminal.c.asset_id == Asset.id)
        .outerjoin(retiring, retiring.id == terminal.c.assignment_id)
        .outerjoin(Employee, Employee.id == retiring.employee_id)
        .where(Asset.status == ASSET_RETIRED)
    )
    # The outer joins yield at most one row per asset, so counting assets is exact.
    total = db.execute(select(func.count(Asset.id)).where(Asset.status == ASSET_RETIRED)).scalar_one()
    stmt = base.order_by(desc(Asset.updated_at), desc(Asset.id)).limit(size).offset((page - 1) * size)
    rows = [_retired_row(asset, assignment, employee) for asset, assignment, employee in db.execute(stmt).all()]
    return {"data": rows, "total": int(total or 0), "page": page, "page_size": size}


def _meta_row(entry: AuditLogEntry) -> dict[str, Any]:
    meta = entry.details
    return {
        "created_at": entry.created_at,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "user_id": entry.user_id,
        "asset_id": meta.get("asset_id") or meta.get("asset_code") or entry.entity_id,
        "asset_code": meta.get("asset_code") or meta.get("asset_id") or entry.entity_id,
        "asset_type": meta.get("asset_type"),
        "brand": meta.get("brand"),
        "model": meta.get("model"),
        "status": meta.get("status"),
        "employee_id": meta.get("employee_id"),
        "employee_name": meta.get("employee_name"),
        "assigned_at": meta.get("assigned_at"),
        "assigned_by": meta.get("assigned_by") or entry.user_id,
        "returned_at": meta.get("returned_at"),
        "returned_by": meta.get("returned_by") or entry.user_id,
    }


def _project(rows: Iterable[dict[str, Any]], columns: list[str]) -> list[list[Any]]:
    return [[row.get(column) for column in columns] for row in rows]


def export_rows(
    db: Session,
    action: str | None = None,
    *,
    page: int | None = 1,
    page_size: int | None = None,
) -> tuple[list[str], list[list[Any]]]:
    """Flatten one page of the log into ``(headers, rows)`` for the action's schema."""

    normalized = (action or "").strip().upper() or None
    if normalized and normalized not in AUDIT_ACTIONS:
        raise ValidationFailed(f"Unknown audit action '{action}'", details={"allowed": list(AUDIT_ACTIONS)})
    if normalized == RETIRE_ASSET:
        view = retired_assets_view(db, page=page, page_size=page_size)
        columns = EXPORT_COLUMNS[RETIRE_ASSET]
        return columns, _project(view["data"], columns)

    columns = EXPORT_COLUMNS.get(normalized, GENERIC_COLUMNS)
    result = list_audit(db, action=normalized, page=page, page_size=page_size)
    return columns, _project((_meta_row(entry) for entry in result["data"]), columns)


def workbook_sheets(db: Session, *, limit: int | None = None) -> list[tuple[str, list[str], list[list[Any]]]]:
    """The four report tabs as ``(sheet_name, headers, rows)``."""

    sheets = []
    for name, action in WORKBOOK_SHEETS:
        headers, rows = export_rows(db, action, page=1, page_size=limit)
        sheets.append((name, headers, rows))
    return sheets


def monthly_activity(db: Session, year: int) -> list[dict[str, Any]]:
    """Per-month counts of lifecycle audit actions for ``year``."""

    if year < 1970 or year > 9999:
        raise ValidationFailed("year is out of range")
    month = func.substr(AuditLogEntry.created_at, 1, 7)
    stmt = (
        select(month.label("month"), AuditLogEntry.action, func.count(AuditLogEntry.id))
        .where(
            AuditLogEntry.created_at >= f"{year:04d}-01-01",
            AuditLogEntry.created_at < f"{year + 1:04d}-01-01",
            AuditLogEntry.action.in_(MONTHLY_ACTIONS),
        )
        .group_by(month, AuditLogEntry.action)
    )
    counts: Dict[str, Dict[str, int]] = defaultdict(dict)
    for month_key, action, count in db.execute(stmt).all():
        counts[month_key][action] = int(count)

    months = []
    for index in range(1, 13):
        month_key = f"{year:04d}-{index:02d}"
        row: dict[str, Any] = {"month": month_key}
        for action in MONTHLY_ACTIONS:
            row[action.lower()] = counts.get(month_key, {}).get(action, 0)
        months.append(row)
    return months


__all__ = [
    "EXPORT_COLUMNS",
    "export_rows",
    "monthly_activity",
    "retired_assets_view",
    "workbook_sheets",
]
