"""Pydantic schemas for the assignment ledger endpoints.

``retired`` is a ``StrictBool`` everywhere: ``"yes"`` or ``1`` are rejected
instead of being coerced into a retirement.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field, StrictBool

from .asset import AssetBrief
from .employee import EmployeeBrief


class AssignmentCreate(BaseModel):
    asset_id: Union[int, str]
    employee_id: Union[int, str]
    notes: Optional[str] = None
    condition_on_assign: Optional[str] = None


class ReturnRequest(BaseModel):
    notes: Optional[str] = None
    condition_on_return: Optional[str] = None
    retired: StrictBool = False
    retire_reason: Optional[str] = None


class AssignmentUpdate(BaseModel):
    notes: Optional[str] = None
    condition_on_return: Optional[str] = None
    retired: Optional[StrictBool] = None
    retire_reason: Optional[str] = None
    status: Optional[str] = None


class AssignmentOut(BaseModel):
    id: int
    asset_id: int
    employee_id: int
    status: str
    notes: Optional[str] = None
    condition_on_assign: Optional[str] = None
    condition_on_return: Optional[str] = None
    assigned_at: str
    assigned_by: Optional[str] = None
    returned_at: Optional[str] = None
    returned_by: Optional[str] = None
    retired: bool = False
    retire_reason: Optional[str] = None
    updated_at: Optional[str] = None
    asset: Optional[AssetBrief] = None
    employee: Optional[EmployeeBrief] = None
    warnings: list[str] = Field(default_factory=list)

    class Config:
        from_attributes = True
