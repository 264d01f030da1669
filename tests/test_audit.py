"""Tests for the append-only audit log and its degraded-write spool."""

import json
import os
import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from asset_tracker.core.config import settings
from asset_tracker.core.errors import ValidationFailed
from asset_tracker.core.security import Actor
from asset_tracker.crud import audit as audit_crud
from asset_tracker.crud.assets import create_asset, resolve_asset
from asset_tracker.crud.assignments import assign, return_asset
from asset_tracker.crud.audit import append, entries_for_entity, iter_audit, list_audit
from asset_tracker.crud.employees import create_employee
from asset_tracker.db.session import Base
from asset_tracker.services.audit_spool import pending_count, replay_spooled_entries

from asset_tracker.models import asset as asset_model  # noqa: F401
from asset_tracker.models import assignment as assignment_model  # noqa: F401
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
def spool_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "DATA_DIR", tmp_path)
    return tmp_path


def _broken_insert(db, payload):
    raise OperationalError("INSERT INTO audit_log", {}, Exception("disk I/O error"))


def test_failed_audit_write_does_not_block_the_change(db_session, spool_dir, monkeypatch):
    monkeypatch.setattr(audit_crud, "_insert_entry", _broken_insert)

    asset = create_asset(db_session, IT, {"asset_id": "LAP-001", "serial_number": "SN1", "asset_type": "laptop"})

    assert resolve_asset(db_session, "LAP-001").id == asset.id
    assert len(asset.warnings) == 1
    assert "CREATE_ASSET" in asset.warnings[0]
    assert list_audit(db_session)["total"] == 0

    lines = (spool_dir / settings.AUDIT_SPOOL_FILE).read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["action"] == "CREATE_ASSET"
    assert payload["entity_id"] == str(asset.id)
    assert payload["metadata"]["asset_id"] == "LAP-001"
    assert pending_count() == 1


def test_replay_inserts_spooled_entries_once(db_session, spool_dir, monkeypatch):
    create_employee(db_session, IT, {"employee_id": "E100", "name": "Ada"})
    monkeypatch.setattr(audit_crud, "_insert_entry", _broken_insert)
    create_asset(db_session, IT, {"asset_id": "LAP-001", "serial_number": "SN1", "asset_type": "laptop"})
    assignment = assign(db_session, IT, "LAP-001", "E100")
    assert assignment.warnings
    monkeypatch.undo()
    monkeypatch.setattr(settings, "DATA_DIR", spool_dir)

    spool_file = spool_dir / settings.AUDIT_SPOOL_FILE
    spooled = spool_file.read_text(encoding="utf-8")

    assert replay_spooled_entries(db_session) == 2
    assert pending_count() == 0
    actions = [entry.action for entry in list_audit(db_session, order="asc")["data"]]
    assert actions == ["CREATE_ASSET", "ASSIGN_ASSET"]

    # A crash before truncation means the same lines get replayed again.
    spool_file.write_text(spooled, encoding="utf-8")
    assert replay_spooled_entries(db_session) == 0
    assert list_audit(db_session)["total"] == 2
    assert replay_spooled_entries(db_session) == 0


def test_replay_without_spool_is_a_noop(db_session, spool_dir):
    assert pending_count() == 0
    assert replay_spooled_entries(db_session) == 0


def test_append_rejects_unknown_action(db_session):
    with pytest.raises(ValueError):
        append(db_session, action="DELETE_ASSET", entity_type="asset", entity_id=1, user_id="x")


def test_list_audit_filters(db_session):
    create_employee(db_session, IT, {"employee_id": "E100", "name": "Ada"})
    other = Actor(user_id="admin.two", role="admin")
    first = create_asset(db_session, IT, {"asset_id": "LAP-001", "serial_number": "SN1", "asset_type": "laptop"})
    create_asset(db_session, other, {"asset_id": "LAP-002", "serial_number": "SN2", "asset_type": "laptop"})
    assignment = assign(db_session, IT, "LAP-001", "E100")
    return_asset(db_session, other, assignment.id)

    assert list_audit(db_session)["total"] == 4
    assert list_audit(db_session, action="create_asset")["total"] == 2
    assert list_audit(db_session, user_id="admin.two")["total"] == 2
    assert list_audit(db_session, entity_type="assignment")["total"] == 2
    assert list_audit(db_session, entity_type="asset", entity_id=first.id)["total"] == 1
    assert list_audit(db_session, date_from=date(2000, 1, 1), date_to=date(2000, 12, 31))["total"] == 0

    newest = list_audit(db_session, page_size=1)["data"][0]
    assert newest.action == "RETURN_ASSET"
    oldest = list_audit(db_session, order="asc", page_size=1)["data"][0]
    assert oldest.action == "CREATE_ASSET"

    with pytest.raises(ValidationFailed):
        list_audit(db_session, action="NOPE")
    with pytest.raises(ValidationFailed):
        list_audit(db_session, date_from=date(2020, 2, 1), date_to=date(2020, 1, 1))


def test_entity_timeline_is_oldest_first(db_session):
    create_employee(db_session, IT, {"employee_id": "E100", "name": "Ada"})
    create_asset(db_session, IT, {"asset_id": "LAP-001", "serial_number": "SN1", "asset_type": "laptop"})
    assignment = assign(db_session, IT, "LAP-001", "E100")
    return_asset(db_session, IT, assignment.id, retired=True, retire_reason="Cracked")

    timeline = entries_for_entity(db_session, "assignment", assignment.id)

    assert [entry.action for entry in timeline] == ["ASSIGN_ASSET", "RETIRE_ASSET"]
    assert timeline[1].details["retired"] is True
    assert timeline[1].details["retire_reason"] == "Cracked"
    assert len(iter_audit(db_session, action="RETIRE_ASSET")) == 1


def test_unwritable_spool_still_returns_the_committed_change(db_session, tmp_path, monkeypatch, caplog):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setattr(settings, "DATA_DIR", blocker)
    monkeypatch.setattr(audit_crud, "_insert_entry", _broken_insert)

    with caplog.at_level("ERROR", logger="asset_tracker.db.transaction"):
        asset = create_asset(db_session, IT, {"asset_id": "LAP-001", "serial_number": "SN1", "asset_type": "laptop"})

    assert resolve_asset(db_session, "LAP-001").id == asset.id
    assert asset.warnings == [f"Audit entry CREATE_ASSET for asset {asset.id} could not be recorded"]
    lost = [record for record in caplog.records if record.getMessage() == "audit.entry_lost"]
    assert len(lost) == 1
    assert lost[0].extra_data["payload"]["metadata"]["asset_id"] == "LAP-001"
