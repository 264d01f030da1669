"""Admin views over the audit log: listing, retired assets, exports."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..crud.audit import list_audit
from ..db.session import get_db
from ..deps.auth import require_admin
from ..schemas.audit import AuditLogOut, MonthlyActivityRow, ReplayResult, RetiredAssetRow
from ..schemas.common import Page
from ..services.audit_spool import pending_count, replay_spooled_entries
from ..services.export import render_csv, render_workbook
from ..services.reporting import export_rows, monthly_activity, retired_assets_view, workbook_sheets

router = APIRouter(prefix="/api/admin/logs", tags=["admin"], dependencies=[Depends(require_admin)])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("", response_model=Page[AuditLogOut])
def api_list_logs(
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    order: str = "desc",
    page: int = 1,
    page_size: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return list_audit(
        db,
        page=page,
        page_size=page_size,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        order=order,
    )


@router.get("/retired", response_model=Page[RetiredAssetRow])
def api_retired_assets(page: int = 1, page_size: Optional[int] = None, db: Session = Depends(get_db)):
    return retired_assets_view(db, page=page, page_size=page_size)


@router.get("/export.csv")
def api_export_csv(
    action: Optional[str] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    db: Session = Depends(get_db),
):
    headers, rows = export_rows(db, action, page=page, page_size=page_size)
    label = (action or "all").strip().lower() or "all"
    return Response(
        content=render_csv(headers, rows),
        media_type="text/csv; charset=utf-8",
        headers=_attachment(f"asset-log-{label}.csv"),
    )


@router.get("/export.xlsx")
def api_export_xlsx(limit: Optional[int] = None, db: Session = Depends(get_db)):
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return Response(
        content=render_workbook(workbook_sheets(db, limit=limit)),
        media_type=XLSX_MEDIA_TYPE,
        headers=_attachment(f"asset-report-{stamp}.xlsx"),
    )


@router.get("/monthly", response_model=list[MonthlyActivityRow])
def api_monthly_activity(year: Optional[int] = None, db: Session = Depends(get_db)):
    return monthly_activity(db, year or datetime.now(timezone.utc).year)


@router.post("/replay", response_model=ReplayResult)
def api_replay_spool(db: Session = Depends(get_db)):
    inserted = replay_spooled_entries(db)
    return {"inserted": inserted, "pending": pending_count()}
