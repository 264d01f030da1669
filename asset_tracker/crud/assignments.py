"""Assignment ledger: the custody state machine.

Per asset the ledger moves between three states::

    AVAILABLE --assign--> ASSIGNED --return_asset--> AVAILABLE
                                   --return_asset(retired)--> RETIRED

Each transition updates the assignment and the asset in one transaction and
writes one audit entry. Races on the same asset are decided by the asset's
version column: the loser's UPDATE matches no row, SQLAlchemy raises
``StaleDataError`` and the caller receives ``Conflict``.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session

from ..core.asset_codes import code_aliases, normalize_code
from ..core.clock import day_start, next_day_start, utc_now_iso
from ..core.errors import Conflict, NotFound, ValidationFailed
from ..core.lifecycle import (
    ASSET_ACTIVE,
    ASSET_ASSIGNED,
    ASSET_RETIRED,
    ASSIGN_ASSET,
    ASSIGNMENT_ACTIVE,
    ASSIGNMENT_RETIRED,
    ASSIGNMENT_RETURNED,
    ASSIGNMENT_STATUS_CHOICES,
    ENTITY_ASSIGNMENT,
    RETIRE_ASSET,
    RETURN_ASSET,
    UPDATE_RETURN_DETAILS,
    normalize_asset_type,
    parse_status_list,
)
from ..core.security import Actor, ensure_can_mutate
from ..db.transaction import unit_of_work
from ..models.asset import Asset
from ..models.assignment import Assignment
from ..models.employee import Employee
from . import audit
from .assets import resolve_asset
from .employees import resolve_employee
from .pagination import paginate

LOGGER = logging.getLogger(__name__)

AMENDABLE_FIELDS = ("notes", "condition_on_return", "retired", "retire_reason")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def get_assignment(db: Session, assignment_id: int) -> Assignment | None:
    return db.get(Assignment, assignment_id)


def require_assignment(db: Session, assignment_id: int) -> Assignment:
    assignment = db.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFound(f"Assignment {assignment_id} not found")
    return assignment


def active_assignment_for(db: Session, asset_pk: int) -> Assignment | None:
    stmt = select(Assignment).where(Assignment.asset_id == asset_pk, Assignment.status == ASSIGNMENT_ACTIVE)
    return db.execute(stmt).scalars().first()


def latest_assignment_for(db: Session, asset_pk: int) -> Assignment | None:
    stmt = (
        select(Assignment)
        .where(Assignment.asset_id == asset_pk)
        .order_by(desc(Assignment.assigned_at), desc(Assignment.id))
    )
    return db.execute(stmt).scalars().first()


def _unavailable(db: Session, asset_pk: int) -> Conflict:
    """Explain why an asset cannot be assigned, naming the holder if known."""

    asset = db.get(Asset, asset_pk, populate_existing=True)
    code = asset.asset_id if asset else str(asset_pk)
    if asset is not None and asset.status == ASSET_RETIRED:
        return Conflict(
            f"Asset {code} is retired and cannot be assigned",
            details={"asset": code, "status": asset.status, "retire_reason": asset.retire_reason},
        )
    current = active_assignment_for(db, asset_pk)
    if current is not None and current.employee is not None:
        holder = current.employee
        return Conflict(
            f"Asset {code} is assigned to employee {holder.display_name}",
            details={
                "asset": code,
                "assignment_id": current.id,
                "holder": {"employee_id": holder.employee_id, "name": holder.name},
            },
        )
    status = asset.status if asset else None
    return Conflict(f"Asset {code} is not available", details={"asset": code, "status": status})


def assign(
    db: Session,
    actor: Actor,
    asset_ref: int | str,
    employee_ref: int | str,
    *,
    notes: str | None = None,
    condition_on_assign: str | None = None,
) -> Assignment:
    """Hand an available asset to an employee."""

    ensure_can_mutate(actor)
    asset = resolve_asset(db, asset_ref)
    employee = resolve_employee(db, employee_ref)
    asset_pk = asset.id

    if asset.status != ASSET_ACTIVE or active_assignment_for(db, asset_pk) is not None:
        raise _unavailable(db, asset_pk)

    now = utc_now_iso()
    assignment = Assignment(
        asset_id=asset_pk,
        employee_id=employee.id,
        status=ASSIGNMENT_ACTIVE,
        notes=_text(notes),
        condition_on_assign=_text(condition_on_assign),
        assigned_at=now,
        assigned_by=actor.user_id,
        retired=0,
        updated_at=now,
    )
    assignment.asset = asset
    assignment.employee = employee
    with unit_of_work(db, conflict=lambda: _unavailable(db, asset_pk)) as uow:
        asset.status = ASSET_ASSIGNED
        asset.updated_at = now
        db.add(assignment)
        db.flush()
        audit.append(
            db,
            action=ASSIGN_ASSET,
            entity_type=ENTITY_ASSIGNMENT,
            entity_id=assignment.id,
            user_id=actor.user_id,
            metadata=assignment.snapshot(),
        )
    assignment.warnings = uow.warnings
    LOGGER.info(
        "assignment.created",
        extra={
            "extra_data": {
                "assignment_id": assignment.id,
                "asset": asset.asset_id,
                "employee": employee.employee_id,
                "actor": actor.user_id,
            }
        },
    )
    return assignment


def return_asset(
    db: Session,
    actor: Actor,
    assignment_id: int,
    *,
    notes: str | None = None,
    condition_on_return: str | None = None,
    retired: bool = False,
    retire_reason: str | None = None,
) -> Assignment:
    """Close the active assignment; the asset becomes available or retired."""

    ensure_can_mutate(actor)
    if not isinstance(retired, bool):
        raise ValidationFailed("retired must be true or false")
    reason = _text(retire_reason)
    if retired and not reason:
        raise ValidationFailed("retire_reason is required when retiring an asset")

    assignment = require_assignment(db, assignment_id)
    if assignment.status != ASSIGNMENT_ACTIVE:
        raise Conflict(
            f"Assignment {assignment_id} is not active",
            details={"assignment_id": assignment_id, "status": assignment.status},
        )
    asset = assignment.asset
    if asset.status != ASSET_ASSIGNED:
        raise Conflict(
            f"Asset {asset.asset_id} is not in an assigned state",
            details={"asset": asset.asset_id, "status": asset.status},
        )

    now = utc_now_iso()
    with unit_of_work(db, conflict=f"Assignment {assignment_id} was changed by another request") as uow:
        if notes is not None:
            assignment.notes = _text(notes)
        assignment.condition_on_return = _text(condition_on_return)
        assignment.returned_at = now
        assignment.returned_by = actor.user_id
        assignment.retired = 1 if retired else 0
        assignment.retire_reason = reason if retired else None
        assignment.status = ASSIGNMENT_RETIRED if retired else ASSIGNMENT_RETURNED
        assignment.updated_at = now
        asset.status = ASSET_RETIRED if retired else ASSET_ACTIVE
        asset.retire_reason = reason if retired else None
        asset.updated_at = now
        db.flush()
        audit.append(
            db,
            action=RETIRE_ASSET if retired else RETURN_ASSET,
            entity_type=ENTITY_ASSIGNMENT,
            entity_id=assignment.id,
            user_id=actor.user_id,
            metadata={**assignment.snapshot(), "asset_status": asset.status},
        )
    assignment.warnings = uow.warnings
    LOGGER.info(
        "assignment.retired" if retired else "assignment.returned",
        extra={"extra_data": {"assignment_id": assignment.id, "asset": asset.asset_id, "actor": actor.user_id}},
    )
    return assignment


def amend_return(db: Session, actor: Actor, assignment_id: int, fields: dict[str, Any]) -> Assignment:
    """Correct a closed assignment after the fact.

    ``notes``, ``condition_on_return`` and ``retire_reason`` are plain edits.
    Toggling ``retired`` re-derives the asset status: on retires the asset, off
    makes it available again. The assignment itself is never reopened.
    """

    ensure_can_mutate(actor)
    assignment = require_assignment(db, assignment_id)
    if assignment.status == ASSIGNMENT_ACTIVE:
        raise Conflict(
            f"Assignment {assignment_id} is still active; return it instead of amending",
            details={"assignment_id": assignment_id, "status": assignment.status},
        )

    fields = dict(fields)
    status = fields.pop("status", None)
    if status is not None:
        status = str(status).strip().lower()
        if status == ASSIGNMENT_ACTIVE:
            raise Conflict("A returned assignment cannot be reopened")
        if status not in ASSIGNMENT_STATUS_CHOICES:
            raise ValidationFailed(f"status must be one of {', '.join(ASSIGNMENT_STATUS_CHOICES)}")
        fields.setdefault("retired", status == ASSIGNMENT_RETIRED)

    if "retired" in fields and not isinstance(fields["retired"], bool):
        raise ValidationFailed("retired must be true or false")

    asset = assignment.asset
    was_retired = bool(assignment.retired)
    want_retired = fields.get("retired", was_retired)
    new_reason = _text(fields["retire_reason"]) if "retire_reason" in fields else assignment.retire_reason

    updates: dict[str, Any] = {}
    asset_updates: dict[str, Any] = {}
    for key in ("notes", "condition_on_return"):
        if key in fields:
            updates[key] = _text(fields[key])

    if want_retired != was_retired:
        latest = latest_assignment_for(db, asset.id)
        if latest is None or latest.id != assignment.id:
            raise Conflict(
                f"Only the most recent assignment of asset {asset.asset_id} can change its retirement",
                details={"assignment_id": assignment_id, "latest_assignment_id": latest.id if latest else None},
            )
        if asset.status == ASSET_ASSIGNED:
            raise Conflict(f"Asset {asset.asset_id} is currently assigned")
        if want_retired:
            if not new_reason:
                raise ValidationFailed("retire_reason is required when retiring an asset")
            updates.update(status=ASSIGNMENT_RETIRED, retired=1, retire_reason=new_reason)
            asset_updates.update(status=ASSET_RETIRED, retire_reason=new_reason)
        else:
            updates.update(status=ASSIGNMENT_RETURNED, retired=0, retire_reason=None)
            asset_updates.update(status=ASSET_ACTIVE, retire_reason=None)
    elif was_retired and "retire_reason" in fields:
        if not new_reason:
            raise ValidationFailed("retire_reason cannot be empty on a retired assignment")
        updates["retire_reason"] = new_reason
        if asset.status == ASSET_RETIRED:
            latest = latest_assignment_for(db, asset.id)
            if latest is not None and latest.id == assignment.id:
                asset_updates["retire_reason"] = new_reason

    changes = {
        key: [getattr(assignment, key), value] for key, value in updates.items() if getattr(assignment, key) != value
    }
    asset_changes = {
        key: [getattr(asset, key), value] for key, value in asset_updates.items() if getattr(asset, key) != value
    }
    if not changes and not asset_changes:
        assignment.warnings = []
        return assignment

    now = utc_now_iso()
    with unit_of_work(db, conflict=f"Assignment {assignment_id} was changed by another request") as uow:
        for key, (_, value) in changes.items():
            setattr(assignment, key, value)
        assignment.updated_at = now
        for key, (_, value) in asset_changes.items():
            setattr(asset, key, value)
        if asset_changes:
            asset.updated_at = now
        db.flush()
        audit.append(
            db,
            action=UPDATE_RETURN_DETAILS,
            entity_type=ENTITY_ASSIGNMENT,
            entity_id=assignment.id,
            user_id=actor.user_id,
            metadata={
                **assignment.snapshot(),
                "asset_status": asset.status,
                "changes": changes,
                "asset_changes": asset_changes,
            },
        )
    assignment.warnings = uow.warnings
    LOGGER.info(
        "assignment.amended",
        extra={
            "extra_data": {
                "assignment_id": assignment.id,
                "fields": sorted(changes),
                "asset_status": asset.status,
                "actor": actor.user_id,
            }
        },
    )
    return assignment


def _assignment_stmt(
    *,
    status: str | None = None,
    retired: bool | None = None,
    assignment_id: int | None = None,
    asset_id: int | None = None,
    asset_code: str | None = None,
    serial_number: str | None = None,
    brand: str | None = None,
    model: str | None = None,
    asset_type: str | None = None,
    employee_id: str | None = None,
    employee_pk: int | None = None,
    employee_name: str | None = None,
    assigned_from: date | None = None,
    assigned_to: date | None = None,
    returned_from: date | None = None,
    returned_to: date | None = None,
    assigned_date: date | None = None,
    returned_date: date | None = None,
):
    stmt = (
        select(Assignment)
        .join(Asset, Asset.id == Assignment.asset_id)
        .join(Employee, Employee.id == Assignment.employee_id)
    )
    if status:
        statuses = parse_status_list(status, ASSIGNMENT_STATUS_CHOICES)
        if not statuses:
            raise ValidationFailed(
                f"status must be a comma separated list of {', '.join(ASSIGNMENT_STATUS_CHOICES)}"
            )
        stmt = stmt.where(Assignment.status.in_(statuses))
    if retired is not None:
        stmt = stmt.where(Assignment.retired == (1 if retired else 0))
    if assignment_id is not None:
        stmt = stmt.where(Assignment.id == assignment_id)
    if asset_id is not None:
        stmt = stmt.where(Assignment.asset_id == asset_id)
    if asset_code:
        aliases = code_aliases(asset_code)
        stmt = stmt.where(or_(Asset.asset_id.in_(aliases), Asset.serial_number.in_(aliases)))
    if serial_number:
        stmt = stmt.where(Asset.serial_number.ilike(f"%{serial_number.strip()}%"))
    if brand:
        stmt = stmt.where(Asset.brand.ilike(f"%{brand.strip()}%"))
    if model:
        stmt = stmt.where(Asset.model.ilike(f"%{model.strip()}%"))
    if asset_type:
        stmt = stmt.where(Asset.asset_type == normalize_asset_type(asset_type))
    if employee_id:
        stmt = stmt.where(Employee.employee_id == normalize_code(employee_id))
    if employee_pk is not None:
        stmt = stmt.where(Assignment.employee_id == employee_pk)
    if employee_name:
        stmt = stmt.where(Employee.name.ilike(f"%{employee_name.strip()}%"))
    if assigned_date:
        assigned_from = assigned_to = assigned_date
    if returned_date:
        returned_from = returned_to = returned_date
    if assigned_from:
        stmt = stmt.where(Assignment.assigned_at >= day_start(assigned_from))
    if assigned_to:
        stmt = stmt.where(Assignment.assigned_at < next_day_start(assigned_to))
    if returned_from:
        stmt = stmt.where(Assignment.returned_at >= day_start(returned_from))
    if returned_to:
        stmt = stmt.where(Assignment.returned_at < next_day_start(returned_to))
    return stmt.order_by(desc(Assignment.assigned_at), desc(Assignment.id))


def list_assignments(db: Session, *, page: int | None = 1, page_size: int | None = None, **filters: Any):
    """Filtered, paginated assignment history, newest assignment first."""

    return paginate(db, _assignment_stmt(**filters), page, page_size)


def iter_assignments(db: Session, **filters: Any) -> list[Assignment]:
    return db.execute(_assignment_stmt(**filters)).unique().scalars().all()


def employee_assets(db: Session, employee_ref: int | str) -> list[Assignment]:
    """Everything ever assigned to one employee, current custody first."""

    employee = resolve_employee(db, employee_ref)
    rows = iter_assignments(db, employee_pk=employee.id)
    return sorted(rows, key=lambda row: row.status != ASSIGNMENT_ACTIVE)
