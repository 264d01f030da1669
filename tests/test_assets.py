"""Tests for the asset registry: creation rules, edits and lookups."""

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from asset_tracker.core.asset_codes import code_aliases, normalize_code
from asset_tracker.core.errors import Conflict, Forbidden, NotFound, StorageUnavailable, ValidationFailed
from asset_tracker.core.security import Actor
from asset_tracker.crud.assets import (
    asset_summary,
    create_asset,
    find_asset_by_code,
    list_assets,
    resolve_asset,
    update_asset,
)
from asset_tracker.crud.assignments import assign
from asset_tracker.crud.audit import list_audit
from asset_tracker.crud.employees import create_employee
from asset_tracker.db.session import Base
from asset_tracker.models.asset import Asset

# Ensure models are registered so metadata tables are created
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


def _laptop(code="LAP-001", serial="SN1", **extra):
    payload = {"asset_id": code, "serial_number": serial, "asset_type": "laptop", "brand": "Dell", "model": "5440"}
    payload.update(extra)
    return payload


def test_code_normalisation_and_aliases():
    assert normalize_code("  lap   001 ") == "LAP 001"
    assert normalize_code("   ") is None
    assert code_aliases("lap_001") == ["LAP_001", "LAP-001", "LAP001"]
    assert code_aliases(None) == []


def test_create_asset_starts_active_and_is_audited(db_session):
    asset = create_asset(db_session, IT, _laptop(cpu="i7", ram="16GB"))

    assert asset.status == "active"
    assert asset.asset_id == "LAP-001"
    assert asset.created_by == "it.admin"
    assert asset.cpu == "i7"
    assert asset.warnings == []

    log = list_audit(db_session, action="CREATE_ASSET")
    assert log["total"] == 1
    entry = log["data"][0]
    assert entry.entity_type == "asset"
    assert entry.entity_id == str(asset.id)
    assert entry.user_id == "it.admin"
    assert entry.details["asset_id"] == "LAP-001"
    assert entry.details["status"] == "active"


def test_create_asset_validates_required_fields(db_session):
    with pytest.raises(ValidationFailed) as excinfo:
        create_asset(db_session, IT, {"asset_id": "  ", "serial_number": "SN1", "asset_type": "laptop"})
    assert excinfo.value.details == {"fields": ["asset_id"]}

    with pytest.raises(ValidationFailed):
        create_asset(db_session, IT, _laptop(asset_type="toaster"))

    with pytest.raises(ValidationFailed):
        create_asset(db_session, IT, _laptop(status="retired"))
    with pytest.raises(ValidationFailed):
        create_asset(db_session, IT, _laptop(status=5))

    assert db_session.execute(select(Asset)).scalars().all() == []


def test_create_asset_type_rules(db_session):
    mouse = create_asset(
        db_session,
        IT,
        {"asset_id": "MS-1", "serial_number": "M1", "asset_type": "Mouse", "cpu": "n/a", "type_detail": "x"},
    )
    assert mouse.asset_type == "mouse"
    assert mouse.cpu is None
    assert mouse.type_detail is None

    with pytest.raises(ValidationFailed):
        create_asset(db_session, IT, {"asset_id": "OT-1", "serial_number": "O1", "asset_type": "other"})

    dock = create_asset(
        db_session,
        IT,
        {"asset_id": "OT-1", "serial_number": "O1", "asset_type": "other", "type_detail": "Docking station"},
    )
    assert dock.type_detail == "Docking station"


def test_duplicate_asset_id_or_serial_conflicts(db_session):
    create_asset(db_session, IT, _laptop())

    with pytest.raises(Conflict) as excinfo:
        create_asset(db_session, IT, _laptop(code="lap-001", serial="SN2"))
    assert excinfo.value.details["field"] == "asset_id"

    with pytest.raises(Conflict) as excinfo:
        create_asset(db_session, IT, _laptop(code="LAP-002", serial="sn1"))
    assert excinfo.value.details["field"] == "serial_number"


def test_employee_role_cannot_mutate(db_session):
    with pytest.raises(Forbidden):
        create_asset(db_session, Actor(user_id="E100", role="employee"), _laptop())
    with pytest.raises(Forbidden):
        create_asset(db_session, None, _laptop())


def test_lookup_by_code_serial_and_id(db_session):
    asset = create_asset(db_session, IT, _laptop())

    assert find_asset_by_code(db_session, "lap_001").id == asset.id
    assert find_asset_by_code(db_session, "sn1").id == asset.id
    assert resolve_asset(db_session, asset.id).id == asset.id
    assert resolve_asset(db_session, str(asset.id)).id == asset.id
    with pytest.raises(NotFound):
        resolve_asset(db_session, "LAP-404")
    with pytest.raises(ValidationFailed):
        resolve_asset(db_session, "")


def test_update_asset_records_changes(db_session):
    asset = create_asset(db_session, IT, _laptop())

    updated = update_asset(db_session, IT, asset.id, {"brand": "Lenovo", "location": "HQ", "unknown": "ignored"})

    assert updated.brand == "Lenovo"
    assert updated.location == "HQ"
    assert updated.version == 2
    entry = list_audit(db_session, action="UPDATE_ASSET")["data"][0]
    assert entry.details["changes"]["brand"] == ["Dell", "Lenovo"]
    assert entry.details["changes"]["location"] == [None, "HQ"]


def test_update_without_effect_writes_nothing(db_session):
    asset = create_asset(db_session, IT, _laptop())

    update_asset(db_session, IT, asset.id, {"brand": "Dell", "model": "5440"})

    assert list_audit(db_session, action="UPDATE_ASSET")["total"] == 0
    assert db_session.get(Asset, asset.id).version == 1


def test_update_asset_status_rules(db_session):
    asset = create_asset(db_session, IT, _laptop())

    with pytest.raises(ValidationFailed):
        update_asset(db_session, IT, asset.id, {"status": "assigned"})
    with pytest.raises(ValidationFailed):
        update_asset(db_session, IT, asset.id, {"status": "retired"})
    with pytest.raises(ValidationFailed):
        update_asset(db_session, IT, asset.id, {"serial_number": "  "})

    retired = update_asset(db_session, IT, asset.id, {"status": "retired", "retire_reason": "Lost in transit"})
    assert retired.status == "retired"
    assert retired.retire_reason == "Lost in transit"

    with pytest.raises(Conflict):
        update_asset(db_session, IT, asset.id, {"status": "active"})


def test_assigned_asset_status_is_owned_by_the_ledger(db_session):
    asset = create_asset(db_session, IT, _laptop())
    create_employee(db_session, IT, {"employee_id": "E100", "name": "Ada"})
    assign(db_session, IT, "LAP-001", "E100")

    with pytest.raises(Conflict):
        update_asset(db_session, IT, asset.id, {"status": "retired", "retire_reason": "Broken"})
    with pytest.raises(Conflict):
        update_asset(db_session, IT, asset.id, {"status": "active"})

    # Plain field edits are still allowed while assigned.
    assert update_asset(db_session, IT, asset.id, {"location": "Remote"}).status == "assigned"


def test_stale_update_loses_optimistic_lock(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    Sessions = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    setup = Sessions()
    asset = create_asset(setup, IT, _laptop())
    asset_pk = asset.id
    setup.close()

    first, second = Sessions(), Sessions()
    try:
        stale = second.get(Asset, asset_pk)
        assert stale.version == 1
        update_asset(first, IT, asset_pk, {"brand": "HP"})

        with pytest.raises(Conflict):
            update_asset(second, IT, asset_pk, {"location": "Lab"})
        assert stale.location is None
    finally:
        first.close()
        second.close()

    check = Sessions()
    stored = check.get(Asset, asset_pk)
    assert stored.brand == "HP"
    assert stored.location is None
    assert stored.version == 2
    check.close()


def test_storage_failure_aborts_the_change(db_session, monkeypatch):
    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(StorageUnavailable):
        create_asset(db_session, IT, _laptop())
    monkeypatch.undo()

    assert db_session.execute(select(Asset)).scalars().all() == []
    assert list_audit(db_session)["total"] == 0


def test_list_assets_filters_and_summary(db_session):
    create_asset(db_session, IT, _laptop())
    create_asset(db_session, IT, _laptop(code="LAP-002", serial="SN2", brand="Apple", model="MacBook Air"))
    create_asset(db_session, IT, {"asset_id": "KB-1", "serial_number": "K1", "asset_type": "keyboard"})
    create_employee(db_session, IT, {"employee_id": "E100", "name": "Ada"})
    assign(db_session, IT, "LAP-002", "E100")

    assert list_assets(db_session, q="macbook")["total"] == 1
    assert list_assets(db_session, asset_type="LAPTOP")["total"] == 2
    assert [a.asset_id for a in list_assets(db_session, status="assigned")["data"]] == ["LAP-002"]

    page = list_assets(db_session, page=2, page_size=2)
    assert page["total"] == 3
    assert page["page"] == 2
    assert len(page["data"]) == 1

    assert asset_summary(db_session) == {"active": 2, "assigned": 1, "retired": 0, "total": 3}
