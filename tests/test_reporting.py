"""Tests for the read-only reporting projections and file exports."""

import csv
import io
import os
import sys
from pathlib import Path

import pytest
from openpyxl import load_workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from asset_tracker.core.clock import utc_now_iso
from asset_tracker.core.errors import ValidationFailed
from asset_tracker.core.security import Actor
from asset_tracker.crud.assets import create_asset, resolve_asset, update_asset
from asset_tracker.crud.assignments import amend_return, assign, return_asset
from asset_tracker.crud.employees import create_employee
from asset_tracker.db.session import Base
from asset_tracker.services.export import render_csv, render_workbook
from asset_tracker.services.reporting import (
    EXPORT_COLUMNS,
    GENERIC_COLUMNS,
    export_rows,
    monthly_activity,
    retired_assets_view,
    workbook_sheets,
)

from asset_tracker.models import assignment as assignment_model  # noqa: F401
from asset_tracker.models import audit as audit_model  # noqa: F401
from asset_tracker.models import employee as employee_model  # noqa: F401

IT = Actor(user_id="it.admin", role="it_admin")


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def lifecycle(db_session):
    """Four laptops: one in use, one returned, one retired at hand-back, one retired by an admin."""

    for index in range(1, 5):
        create_asset(
            db_session,
            IT,
            {
                "asset_id": f"LAP-00{index}",
                "serial_number": f"SN{index}",
                "asset_type": "laptop",
                "brand": "Dell",
                "model": f"Model {index}",
            },
        )
    create_employee(db_session, IT, {"employee_id": "E100", "name": "Ada Lovelace"})
    create_employee(db_session, IT, {"employee_id": "E200", "name": "Grace Hopper"})

    assign(db_session, IT, "LAP-001", "E100")
    returned = assign(db_session, IT, "LAP-002", "E200")
    return_asset(db_session, IT, returned.id)
    retired = assign(db_session, IT, "LAP-003", "E200")
    return_asset(db_session, IT, retired.id, retired=True, retire_reason="Broken screen")
    lost = resolve_asset(db_session, "LAP-004")
    update_asset(db_session, IT, lost.id, {"status": "retired", "retire_reason": "Lost"})
    return {"retired_assignment": retired.id, "lost_asset": lost.id}


def test_retired_view_joins_the_retiring_assignment(db_session, lifecycle):
    view = retired_assets_view(db_session)

    assert view["total"] == 2
    rows = {row["asset_code"]: row for row in view["data"]}
    assert set(rows) == {"LAP-003", "LAP-004"}

    broken = rows["LAP-003"]
    assert broken["assignment_id"] == lifecycle["retired_assignment"]
    assert broken["employee_id"] == "E200"
    assert broken["employee_name"] == "Grace Hopper"
    assert broken["retire_reason"] == "Broken screen"
    assert broken["retired_by"] == "it.admin"
    assert broken["retired_at"]

    lost = rows["LAP-004"]
    assert lost["assignment_id"] is None
    assert lost["employee_id"] is None
    assert lost["retire_reason"] == "Lost"


def test_retired_view_follows_amendments(db_session, lifecycle):
    amend_return(db_session, IT, lifecycle["retired_assignment"], {"retire_reason": "Screen and hinge"})
    rows = {row["asset_code"]: row for row in retired_assets_view(db_session)["data"]}
    assert rows["LAP-003"]["retire_reason"] == "Screen and hinge"

    amend_return(db_session, IT, lifecycle["retired_assignment"], {"retired": False})
    view = retired_assets_view(db_session)
    assert [row["asset_code"] for row in view["data"]] == ["LAP-004"]


def test_export_rows_use_fixed_schemas(db_session, lifecycle):
    headers, rows = export_rows(db_session, "ASSIGN_ASSET")
    assert headers == EXPORT_COLUMNS["ASSIGN_ASSET"]
    assert len(rows) == 3
    by_asset = {row[headers.index("asset_code")]: row for row in rows}
    assert by_asset["LAP-001"][headers.index("employee_name")] == "Ada Lovelace"
    assert by_asset["LAP-001"][headers.index("assigned_by")] == "it.admin"

    headers, rows = export_rows(db_session, "return_asset")
    assert headers == EXPORT_COLUMNS["RETURN_ASSET"]
    assert [row[headers.index("asset_code")] for row in rows] == ["LAP-002"]

    headers, rows = export_rows(db_session, "RETIRE_ASSET")
    assert headers[0] == "retired_at"
    assert {row[headers.index("retire_reason")] for row in rows} == {"Broken screen", "Lost"}

    headers, rows = export_rows(db_session, "UPDATE_ASSET")
    assert headers == GENERIC_COLUMNS
    assert len(rows) == 1

    headers, rows = export_rows(db_session, None, page=1, page_size=3)
    assert headers == GENERIC_COLUMNS
    assert len(rows) == 3

    with pytest.raises(ValidationFailed):
        export_rows(db_session, "EXPLODE")


def test_render_csv_quotes_and_blanks():
    text = render_csv(["a", "b", "c"], [["x,y", None, True], [1, "two", False]])
    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed == [["a", "b", "c"], ["x,y", "", "true"], ["1", "two", "false"]]


def test_workbook_has_one_sheet_per_lifecycle_step(db_session, lifecycle):
    content = render_workbook(workbook_sheets(db_session))

    workbook = load_workbook(io.BytesIO(content))
    assert workbook.sheetnames == ["created", "assigned", "returned", "retired"]
    created = workbook["created"]
    assert [cell.value for cell in created[1]] == EXPORT_COLUMNS["CREATE_ASSET"]
    assert created.max_row == 5
    retired = workbook["retired"]
    assert retired.max_row == 3
    assert created.freeze_panes == "A2"


def test_monthly_activity_counts_current_month(db_session, lifecycle):
    now = utc_now_iso()
    months = monthly_activity(db_session, int(now[:4]))

    assert len(months) == 12
    current = next(row for row in months if row["month"] == now[:7])
    assert current == {
        "month": now[:7],
        "create_asset": 4,
        "assign_asset": 3,
        "return_asset": 1,
        "retire_asset": 1,
    }
    assert sum(row["create_asset"] for row in months) == 4

    with pytest.raises(ValidationFailed):
        monthly_activity(db_session, 0)
