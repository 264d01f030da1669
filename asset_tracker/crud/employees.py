"""Employee directory lookups used by the ledger."""

from __future__ import annotations

from typing import Any

from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session

from ..core.asset_codes import normalize_code
from ..core.clock import utc_now_iso
from ..core.errors import Conflict, NotFound, ValidationFailed
from ..core.security import Actor, ensure_can_mutate
from ..db.transaction import unit_of_work
from ..models.employee import Employee
from .pagination import paginate

EMPLOYEE_FIELDS = ("employee_id", "name", "email", "department")


def get_employee(db: Session, employee_pk: int) -> Employee | None:
    return db.get(Employee, employee_pk)


def get_employee_by_code(db: Session, code: str | None) -> Employee | None:
    normalized = normalize_code(code)
    if not normalized:
        return None
    stmt = select(Employee).where(Employee.employee_id == normalized)
    return db.execute(stmt).scalars().first()


def resolve_employee(db: Session, ref: int | str | None) -> Employee:
    """Find an employee by internal id or by employee code."""

    employee = None
    if isinstance(ref, int):
        employee = db.get(Employee, ref)
    elif isinstance(ref, str) and ref.strip():
        employee = get_employee_by_code(db, ref)
        if employee is None and ref.strip().isdigit():
            employee = db.get(Employee, int(ref.strip()))
    else:
        raise ValidationFailed("employee_id is required")
    if employee is None:
        raise NotFound(f"No employee matches '{ref}'")
    return employee


def create_employee(db: Session, actor: Actor, payload: dict[str, Any]) -> Employee:
    ensure_can_mutate(actor)
    data = {key: payload.get(key) for key in EMPLOYEE_FIELDS}
    for key, value in data.items():
        if isinstance(value, str):
            data[key] = value.strip() or None
    data["employee_id"] = normalize_code(data.get("employee_id"))
    missing = [key for key in ("employee_id", "name") if not data.get(key)]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})
    if get_employee_by_code(db, data["employee_id"]):
        raise Conflict(f"Employee {data['employee_id']} already exists")

    employee = Employee(**data, created_at=utc_now_iso())
    with unit_of_work(db, conflict=f"Employee {data['employee_id']} already exists"):
        db.add(employee)
    return employee


def list_employees(db: Session, *, q: str | None = None, page: int | None = 1, page_size: int | None = None):
    stmt = select(Employee)
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(or_(Employee.employee_id.ilike(pattern), Employee.name.ilike(pattern)))
    stmt = stmt.order_by(desc(Employee.created_at), desc(Employee.id))
    return paginate(db, stmt, page, page_size)
