"""Asset registry: creation, field edits, lookups and status counts.

Status changes caused by custody (``active`` <-> ``assigned``, retirement at
hand-back) belong to the assignment ledger. ``update_asset`` only allows the
administrative overrides that keep the ledger's invariants intact.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import desc, func, or_, select
from sqlalchemy.orm import Session

from ..core.asset_codes import code_aliases, normalize_code
from ..core.clock import utc_now_iso
from ..core.errors import Conflict, NotFound, ValidationFailed
from ..core.lifecycle import (
    ASSET_ACTIVE,
    ASSET_ASSIGNED,
    ASSET_RETIRED,
    ASSET_STATUS_CHOICES,
    ASSET_TYPE_CHOICES,
    ASSET_TYPE_LAPTOP,
    ASSET_TYPE_OTHER,
    CREATE_ASSET,
    ENTITY_ASSET,
    LAPTOP_SPEC_FIELDS,
    UPDATE_ASSET,
    normalize_asset_type,
)
from ..core.security import Actor, ensure_can_mutate
from ..db.transaction import unit_of_work
from ..models.asset import Asset
from . import audit
from .pagination import paginate

LOGGER = logging.getLogger(__name__)

REQUIRED_FIELDS = ("asset_id", "serial_number", "asset_type")
EDITABLE_FIELDS = (
    "asset_id",
    "serial_number",
    "asset_type",
    "type_detail",
    "brand",
    "model",
    *LAPTOP_SPEC_FIELDS,
    "location",
    "purchase_date",
    "warranty_expiry",
)
DUPLICATE_MESSAGE = "An asset with this asset ID or serial number already exists"


def _clean(payload: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    """Keep known keys, trim strings and turn blanks into ``None``."""

    data: dict[str, Any] = {}
    for key in keys:
        if key not in payload:
            continue
        value = payload[key]
        if isinstance(value, str):
            value = value.strip() or None
        elif value is not None:
            value = str(value)
        data[key] = value
    if "asset_id" in data:
        data["asset_id"] = normalize_code(data["asset_id"])
    if "serial_number" in data:
        data["serial_number"] = normalize_code(data["serial_number"])
    if "asset_type" in data:
        data["asset_type"] = normalize_asset_type(data["asset_type"]) or None
    return data


def _apply_type_rules(values: dict[str, Any]) -> None:
    """Validate the type and drop fields that do not apply to it (in place)."""

    asset_type = values.get("asset_type")
    if asset_type not in ASSET_TYPE_CHOICES:
        raise ValidationFailed(
            f"asset_type must be one of {', '.join(ASSET_TYPE_CHOICES)}",
            details={"asset_type": asset_type},
        )
    if asset_type == ASSET_TYPE_OTHER:
        if not values.get("type_detail"):
            raise ValidationFailed("type_detail is required when asset_type is 'other'")
    else:
        values["type_detail"] = None
    if asset_type != ASSET_TYPE_LAPTOP:
        for key in LAPTOP_SPEC_FIELDS:
            values[key] = None


def _ensure_unique(db: Session, asset_id: str | None, serial_number: str | None, exclude_pk: int | None = None) -> None:
    clauses = []
    if asset_id:
        clauses.append(Asset.asset_id == asset_id)
    if serial_number:
        clauses.append(Asset.serial_number == serial_number)
    if not clauses:
        return
    stmt = select(Asset).where(or_(*clauses))
    if exclude_pk is not None:
        stmt = stmt.where(Asset.id != exclude_pk)
    clash = db.execute(stmt).scalars().first()
    if clash is None:
        return
    field = "asset_id" if asset_id and clash.asset_id == asset_id else "serial_number"
    raise Conflict(DUPLICATE_MESSAGE, details={"field": field, "asset": clash.asset_id})


def get_asset(db: Session, asset_pk: int) -> Asset | None:
    return db.get(Asset, asset_pk)


def require_asset(db: Session, asset_pk: int) -> Asset:
    asset = db.get(Asset, asset_pk)
    if asset is None:
        raise NotFound(f"Asset {asset_pk} not found")
    return asset


def find_asset_by_code(db: Session, code: str | None) -> Asset | None:
    """Match a business asset ID or a serial number, tolerating separators."""

    for candidate in code_aliases(code):
        stmt = select(Asset).where(or_(Asset.asset_id == candidate, Asset.serial_number == candidate))
        asset = db.execute(stmt).scalars().first()
        if asset:
            return asset
    return None


def resolve_asset(db: Session, ref: int | str | None) -> Asset:
    """Accept an internal id or a human code and return the asset."""

    asset = None
    if isinstance(ref, int):
        asset = db.get(Asset, ref)
    elif isinstance(ref, str) and ref.strip():
        asset = find_asset_by_code(db, ref)
        if asset is None and ref.strip().isdigit():
            asset = db.get(Asset, int(ref.strip()))
    else:
        raise ValidationFailed("asset_id is required")
    if asset is None:
        raise NotFound(f"No asset matches '{ref}'")
    return asset


def create_asset(db: Session, actor: Actor, payload: dict[str, Any]) -> Asset:
    """Register new equipment as available and audit it as CREATE_ASSET."""

    ensure_can_mutate(actor)
    data = _clean(payload, EDITABLE_FIELDS)
    missing = [key for key in REQUIRED_FIELDS if not data.get(key)]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})
    requested_status = payload.get("status")
    if isinstance(requested_status, str):
        requested_status = requested_status.strip().lower() or None
    if requested_status not in (None, ASSET_ACTIVE):
        raise ValidationFailed("New assets always start as 'active'")
    _apply_type_rules(data)
    _ensure_unique(db, data["asset_id"], data["serial_number"])

    now = utc_now_iso()
    asset = Asset(
        **data,
        status=ASSET_ACTIVE,
        created_by=actor.user_id,
        created_at=now,
        updated_at=now,
    )
    with unit_of_work(db, conflict=DUPLICATE_MESSAGE) as uow:
        db.add(asset)
        db.flush()
        audit.append(
            db,
            action=CREATE_ASSET,
            entity_type=ENTITY_ASSET,
            entity_id=asset.id,
            user_id=actor.user_id,
            metadata=asset.snapshot(),
        )
    asset.warnings = uow.warnings
    LOGGER.info("asset.created", extra={"extra_data": {"asset": asset.asset_id, "actor": actor.user_id}})
    return asset


def _resolve_status_change(asset: Asset, requested: str | None, reason: str | None) -> str:
    """Return the status the asset may end up with, or raise."""

    if requested is None or requested == asset.status:
        return asset.status
    if requested not in ASSET_STATUS_CHOICES:
        raise ValidationFailed(f"status must be one of {', '.join(ASSET_STATUS_CHOICES)}")
    if requested == ASSET_ASSIGNED:
        raise ValidationFailed("Assets become 'assigned' only by assigning them to an employee")
    if asset.status == ASSET_ASSIGNED:
        raise Conflict(f"Asset {asset.asset_id} is assigned; return it before changing its status")
    if asset.status == ASSET_RETIRED:
        raise Conflict(f"Asset {asset.asset_id} is retired and cannot be reactivated")
    # active -> retired: administrative retirement of an unassigned asset
    if not reason:
        raise ValidationFailed("retire_reason is required when retiring an asset")
    return ASSET_RETIRED


def update_asset(db: Session, actor: Actor, asset_pk: int, payload: dict[str, Any]) -> Asset:
    """Apply field edits and administrative status overrides.

    Unknown keys are ignored so older clients with stale fields do not break.
    A call that changes nothing writes nothing and emits no audit entry.
    """

    ensure_can_mutate(actor)
    asset = require_asset(db, asset_pk)
    data = _clean(payload, EDITABLE_FIELDS + ("retire_reason",))
    blanked = [key for key in REQUIRED_FIELDS if key in data and not data[key]]
    if blanked:
        raise ValidationFailed(f"Fields cannot be empty: {', '.join(blanked)}", details={"fields": blanked})

    requested_status = payload.get("status")
    if isinstance(requested_status, str):
        requested_status = requested_status.strip().lower() or None
    reason = data.pop("retire_reason", None) if "retire_reason" in data else asset.retire_reason
    new_status = _resolve_status_change(asset, requested_status, reason)

    if {"asset_type", "type_detail"} & data.keys() or any(key in data for key in LAPTOP_SPEC_FIELDS):
        merged = {key: getattr(asset, key) for key in ("asset_type", "type_detail", *LAPTOP_SPEC_FIELDS)}
        merged.update({key: value for key, value in data.items() if key in merged})
        _apply_type_rules(merged)
        data.update(merged)

    if data.get("asset_id") != asset.asset_id or data.get("serial_number") != asset.serial_number:
        _ensure_unique(db, data.get("asset_id"), data.get("serial_number"), exclude_pk=asset.id)

    data["status"] = new_status
    data["retire_reason"] = reason if new_status == ASSET_RETIRED else None

    changes: dict[str, list[Any]] = {}
    for key, value in data.items():
        current = getattr(asset, key)
        if current != value:
            changes[key] = [current, value]
    if not changes:
        asset.warnings = []
        return asset

    with unit_of_work(db, conflict=f"Asset {asset.asset_id} was changed by another request") as uow:
        for key, (_, value) in changes.items():
            setattr(asset, key, value)
        asset.updated_at = utc_now_iso()
        db.flush()
        audit.append(
            db,
            action=UPDATE_ASSET,
            entity_type=ENTITY_ASSET,
            entity_id=asset.id,
            user_id=actor.user_id,
            metadata={**asset.snapshot(), "retire_reason": asset.retire_reason, "changes": changes},
        )
    asset.warnings = uow.warnings
    LOGGER.info(
        "asset.updated",
        extra={"extra_data": {"asset": asset.asset_id, "fields": sorted(changes), "actor": actor.user_id}},
    )
    return asset


def list_assets(
    db: Session,
    *,
    q: str | None = None,
    asset_type: str | None = None,
    status: str | None = None,
    page: int | None = 1,
    page_size: int | None = None,
) -> dict[str, Any]:
    """Filter by free text over codes/brand/model, or exact type/status."""

    stmt = select(Asset)
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(
            or_(
                Asset.asset_id.ilike(pattern),
                Asset.serial_number.ilike(pattern),
                Asset.brand.ilike(pattern),
                Asset.model.ilike(pattern),
            )
        )
    if asset_type:
        stmt = stmt.where(Asset.asset_type == normalize_asset_type(asset_type))
    if status:
        stmt = stmt.where(Asset.status == status.strip().lower())
    stmt = stmt.order_by(desc(Asset.created_at), desc(Asset.id))
    return paginate(db, stmt, page, page_size)


def asset_summary(db: Session) -> dict[str, int]:
    """Counts per status read straight from the committed table."""

    rows = db.execute(select(Asset.status, func.count(Asset.id)).group_by(Asset.status)).all()
    counts = {status: 0 for status in ASSET_STATUS_CHOICES}
    for status, count in rows:
        if status in counts:
            counts[status] = int(count)
    counts["total"] = sum(counts[status] for status in ASSET_STATUS_CHOICES)
    return counts
