from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.lifecycle import ENTITY_ASSET
from ..core.security import Actor
from ..crud.assets import asset_summary, create_asset, list_assets, resolve_asset, update_asset
from ..crud.audit import entries_for_entity
from ..db.session import get_db
from ..deps.auth import get_actor
from ..schemas.asset import AssetCreate, AssetOut, AssetSummary, AssetUpdate
from ..schemas.audit import AuditLogOut
from ..schemas.common import Page

router = APIRouter(prefix="/api/assets", tags=["assets"])


@router.post("", response_model=AssetOut, status_code=201)
def api_create_asset(payload: AssetCreate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return create_asset(db, actor, payload.model_dump(exclude_none=True))


@router.get("", response_model=Page[AssetOut], dependencies=[Depends(get_actor)])
def api_list_assets(
    q: Optional[str] = None,
    asset_type: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return list_assets(db, q=q, asset_type=asset_type, status=status, page=page, page_size=page_size)


@router.get("/summary", response_model=AssetSummary, dependencies=[Depends(get_actor)])
def api_asset_summary(db: Session = Depends(get_db)):
    return asset_summary(db)


@router.get("/{asset_ref}", response_model=AssetOut, dependencies=[Depends(get_actor)])
def api_get_asset(asset_ref: str, db: Session = Depends(get_db)):
    """Look an asset up by internal id, asset code or serial number."""

    return resolve_asset(db, asset_ref)


@router.get("/{asset_ref}/history", response_model=list[AuditLogOut], dependencies=[Depends(get_actor)])
def api_asset_history(asset_ref: str, db: Session = Depends(get_db)):
    asset = resolve_asset(db, asset_ref)
    return entries_for_entity(db, ENTITY_ASSET, asset.id)


@router.patch("/{asset_pk}", response_model=AssetOut)
def api_update_asset(
    asset_pk: int,
    payload: AssetUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return update_asset(db, actor, asset_pk, payload.model_dump(exclude_unset=True))
