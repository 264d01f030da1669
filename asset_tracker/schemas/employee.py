from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class EmployeeCreate(BaseModel):
    employee_id: str
    name: str
    email: Optional[str] = None
    department: Optional[str] = None


class EmployeeBrief(BaseModel):
    id: int
    employee_id: str
    name: str

    class Config:
        from_attributes = True


class EmployeeOut(EmployeeBrief):
    email: Optional[str] = None
    department: Optional[str] = None
    created_at: str
