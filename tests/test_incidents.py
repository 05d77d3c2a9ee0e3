import uuid

import pytest
from sqlalchemy.exc import OperationalError
from structlog.testing import capture_logs

from triplog.models.models import Report
from triplog.schemas.trips import ReportType
from triplog.services.errors import EscalationFailure, NotFound
from triplog.services.incidents import SqlReportCreator


def test_creates_open_report(db, vehicle, driver_id, tenant_id):
    with capture_logs() as logs:
        report = SqlReportCreator(db).create(
            vehicle.id,
            ReportType.damage,
            "New severe defects detected after trip 42",
            "dent - rear bumper: deep dent",
            driver_id,
            tenant_id,
        )

    assert report.id is not None
    assert report.status == "open"
    assert report.type == "damage"
    assert report.notes == "dent - rear bumper: deep dent"
    assert db.query(Report).count() == 1
    assert [e["event"] for e in logs] == ["incident_report_created"]


def test_accepts_plain_string_type(db, vehicle, driver_id, tenant_id):
    report = SqlReportCreator(db).create(vehicle.id, "mechanical", "engine light", None, driver_id, tenant_id)

    assert report.type == "mechanical"
    assert report.notes is None


def test_vehicle_must_belong_to_tenant(db, vehicle, driver_id, other_tenant_id):
    with pytest.raises(NotFound):
        SqlReportCreator(db).create(vehicle.id, ReportType.damage, "x", None, driver_id, other_tenant_id)


def test_unknown_vehicle(db, driver_id, tenant_id):
    with pytest.raises(NotFound):
        SqlReportCreator(db).create(uuid.uuid4(), ReportType.damage, "x", None, driver_id, tenant_id)


def test_database_error_becomes_escalation_failure(db, vehicle, driver_id, tenant_id, monkeypatch):
    def broken_commit():
        raise OperationalError("INSERT INTO reports", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", broken_commit)

    with pytest.raises(EscalationFailure) as exc_info:
        SqlReportCreator(db).create(vehicle.id, ReportType.damage, "x", None, driver_id, tenant_id)

    assert exc_info.value.status_code == 502
    assert db.query(Report).count() == 0
