from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.security import Actor
from ..crud.assignments import amend_return, assign, list_assignments, require_assignment, return_asset
from ..db.session import get_db
from ..deps.auth import get_actor
from ..schemas.assignment import AssignmentCreate, AssignmentOut, AssignmentUpdate, ReturnRequest
from ..schemas.common import Page

router = APIRouter(prefix="/api/assignments", tags=["assignments"])


@router.post("", response_model=AssignmentOut, status_code=201)
def api_assign(payload: AssignmentCreate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return assign(
        db,
        actor,
        payload.asset_id,
        payload.employee_id,
        notes=payload.notes,
        condition_on_assign=payload.condition_on_assign,
    )


@router.post("/{assignment_id}/return", response_model=AssignmentOut)
def api_return(
    assignment_id: int,
    payload: ReturnRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return return_asset(
        db,
        actor,
        assignment_id,
        notes=payload.notes,
        condition_on_return=payload.condition_on_return,
        retired=payload.retired,
        retire_reason=payload.retire_reason,
    )


@router.patch("/{assignment_id}", response_model=AssignmentOut)
def api_amend(
    assignment_id: int,
    payload: AssignmentUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return amend_return(db, actor, assignment_id, payload.model_dump(exclude_unset=True))


@router.get("", response_model=Page[AssignmentOut], dependencies=[Depends(get_actor)])
def api_list_assignments(
    status: Optional[str] = None,
    retired: Optional[bool] = None,
    assignment_id: Optional[int] = None,
    asset_id: Optional[int] = None,
    asset_code: Optional[str] = None,
    serial_number: Optional[str] = None,
    brand: Optional[str] = None,
    model: Optional[str] = None,
    asset_type: Optional[str] = None,
    employee_id: Optional[str] = None,
    employee_name: Optional[str] = None,
    assigned_from: Optional[date] = None,
    assigned_to: Optional[date] = None,
    returned_from: Optional[date] = None,
    returned_to: Optional[date] = None,
    assigned_date: Optional[date] = None,
    returned_date: Optional[date] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return list_assignments(
        db,
        page=page,
        page_size=page_size,
        status=status,
        retired=retired,
        assignment_id=assignment_id,
        asset_id=asset_id,
        asset_code=asset_code,
        serial_number=serial_number,
        brand=brand,
        model=model,
        asset_type=asset_type,
        employee_id=employee_id,
        employee_name=employee_name,
        assigned_from=assigned_from,
        assigned_to=assigned_to,
        returned_from=returned_from,
        returned_to=returned_to,
        assigned_date=assigned_date,
        returned_date=returned_date,
    )


@router.get("/{assignment_id}", response_model=AssignmentOut, dependencies=[Depends(get_actor)])
def api_get_assignment(assignment_id: int, db: Session = Depends(get_db)):
    return require_assignment(db, assignment_id)
