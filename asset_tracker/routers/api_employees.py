from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.security import Actor
from ..crud.assignments import employee_assets
from ..crud.employees import create_employee, list_employees, resolve_employee
from ..db.session import get_db
from ..deps.auth import get_actor
from ..schemas.assignment import AssignmentOut
from ..schemas.common import Page
from ..schemas.employee import EmployeeCreate, EmployeeOut

router = APIRouter(prefix="/api/employees", tags=["employees"])


@router.post("", response_model=EmployeeOut, status_code=201)
def api_create_employee(payload: EmployeeCreate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return create_employee(db, actor, payload.model_dump())


@router.get("", response_model=Page[EmployeeOut], dependencies=[Depends(get_actor)])
def api_list_employees(
    q: Optional[str] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return list_employees(db, q=q, page=page, page_size=page_size)


@router.get("/{employee_ref}", response_model=EmployeeOut, dependencies=[Depends(get_actor)])
def api_get_employee(employee_ref: str, db: Session = Depends(get_db)):
    return resolve_employee(db, employee_ref)


@router.get("/{employee_ref}/assets", response_model=list[AssignmentOut], dependencies=[Depends(get_actor)])
def api_employee_assets(employee_ref: str, db: Session = Depends(get_db)):
    return employee_assets(db, employee_ref)
