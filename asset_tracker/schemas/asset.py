"""Pydantic schemas for asset registry payloads."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class AssetBase(BaseModel):
    type_detail: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    cpu: Optional[str] = None
    ram: Optional[str] = None
    storage: Optional[str] = None
    os: Optional[str] = None
    gpu: Optional[str] = None
    location: Optional[str] = None
    purchase_date: Optional[str] = None
    warranty_expiry: Optional[str] = None


class AssetCreate(AssetBase):
    asset_id: str
    serial_number: str
    asset_type: str
    status: Optional[str] = None


class AssetUpdate(AssetBase):
    asset_id: Optional[str] = None
    serial_number: Optional[str] = None
    asset_type: Optional[str] = None
    status: Optional[str] = None
    retire_reason: Optional[str] = None


class AssetOut(AssetBase):
    id: int
    asset_id: str
    serial_number: str
    asset_type: str
    status: str
    retire_reason: Optional[str] = None
    version: int
    created_by: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)

    class Config:
        from_attributes = True


class AssetBrief(BaseModel):
    id: int
    asset_id: str
    serial_number: str
    asset_type: str
    brand: Optional[str] = None
    model: Optional[str] = None
    status: str

    class Config:
        from_attributes = True


class AssetSummary(BaseModel):
    active: int = 0
    assigned: int = 0
    retired: int = 0
    total: int = 0
