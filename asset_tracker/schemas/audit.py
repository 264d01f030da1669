from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditLogOut(BaseModel):
    id: int
    event_key: str
    action: str
    entity_type: str
    entity_id: str
    user_id: Optional[str] = None
    # ``AuditLogEntry.details`` is the decoded JSON column.
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="details")
    created_at: str

    class Config:
        from_attributes = True


class RetiredAssetRow(BaseModel):
    asset_db_id: int
    asset_code: str
    serial_number: str
    asset_type: str
    brand: Optional[str] = None
    model: Optional[str] = None
    assignment_id: Optional[int] = None
    employee_id: Optional[str] = None
    employee_name: Optional[str] = None
    retire_reason: Optional[str] = None
    retired_at: Optional[str] = None
    retired_by: Optional[str] = None


class MonthlyActivityRow(BaseModel):
    month: str
    create_asset: int = 0
    assign_asset: int = 0
    return_asset: int = 0
    retire_asset: int = 0


class ReplayResult(BaseModel):
    inserted: int
    pending: int
