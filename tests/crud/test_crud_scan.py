# tests/crud/test_crud_scan.py

import uuid

import pytest

from app.api.v1.schemas import ScanStatus
from app.core.exceptions import AccountNotFoundError
from app.crud import crud_account, crud_audit, crud_scan


def test_create_and_get_scan(tenant_db, scan_id):
    scan = crud_scan.create_scan(tenant_db, "tenant-a", scan_id)

    assert scan["scan_id"] == scan_id
    assert scan["status"] == ScanStatus.QUEUED.value
    assert scan["volumes_found"] == 0
    assert crud_scan.get_scan(tenant_db, "tenant-b", scan_id) is None


def test_ensure_scan_creates_missing_record_once(tenant_db, scan_id):
    first = crud_scan.ensure_scan(tenant_db, "tenant-a", scan_id)
    crud_scan.update_scan_status(tenant_db, "tenant-a", scan_id, ScanStatus.IN_PROGRESS)
    second = crud_scan.ensure_scan(tenant_db, "tenant-a", scan_id)

    assert first["status"] == ScanStatus.QUEUED.value
    assert second["status"] == ScanStatus.IN_PROGRESS.value


def test_completed_scan_records_metrics(tenant_db, scan_id):
    crud_scan.create_scan(tenant_db, "tenant-a", scan_id)
    metrics = {"volumesFound": 3, "snapshotsFound": 1, "errors": ["us-west-2: AccessDenied"]}

    assert crud_scan.update_scan_status(tenant_db, "tenant-a", scan_id, ScanStatus.COMPLETED, metrics=metrics) is True

    scan = crud_scan.get_scan(tenant_db, "tenant-a", scan_id)
    assert scan["status"] == "completed"
    assert scan["volumes_found"] == 3
    assert scan["snapshots_found"] == 1
    assert scan["metrics"]["errors"] == ["us-west-2: AccessDenied"]
    assert scan["completed_at"] is not None


def test_terminal_scan_is_not_updated_again(tenant_db, scan_id):
    crud_scan.create_scan(tenant_db, "tenant-a", scan_id)
    crud_scan.update_scan_status(tenant_db, "tenant-a", scan_id, ScanStatus.FAILED, error_message="first")

    assert crud_scan.update_scan_status(tenant_db, "tenant-a", scan_id, ScanStatus.COMPLETED) is False
    scan = crud_scan.get_scan(tenant_db, "tenant-a", scan_id)
    assert scan["status"] == "failed"
    assert scan["error_message"] == "first"


def test_update_unknown_scan_returns_false(tenant_db):
    assert crud_scan.update_scan_status(tenant_db, "tenant-a", uuid.uuid4(), ScanStatus.IN_PROGRESS) is False


def test_list_scans_filters_by_status(tenant_db):
    done, queued = uuid.uuid4(), uuid.uuid4()
    crud_scan.create_scan(tenant_db, "tenant-a", done)
    crud_scan.create_scan(tenant_db, "tenant-a", queued)
    crud_scan.update_scan_status(tenant_db, "tenant-a", done, ScanStatus.COMPLETED)

    assert len(crud_scan.list_scans(tenant_db, "tenant-a")) == 2
    completed = crud_scan.list_scans(tenant_db, "tenant-a", status=ScanStatus.COMPLETED)
    assert [s["scan_id"] for s in completed] == [done]


def test_account_registration_and_deactivation(tenant_db, register_account):
    account = register_account("tenant-a", regions=["us-east-1", "eu-west-1"])

    assert account["is_active"] is True
    assert account["regions"] == ["us-east-1", "eu-west-1"]
    tenants = tenant_db.query_with_tenant("tenant-a", "SELECT id FROM tenants")
    assert tenants == [{"id": "tenant-a"}]

    deactivated = crud_account.deactivate_account(tenant_db, "tenant-a", account["account_id"], user_id="user-1")
    assert deactivated["is_active"] is False
    assert crud_account.list_accounts(tenant_db, "tenant-a") == []
    assert len(crud_account.list_accounts(tenant_db, "tenant-a", include_inactive=True)) == 1
    assert crud_audit.list_entries(tenant_db, "tenant-a")[0]["action"] == "DEACTIVATE_ACCOUNT"

    with pytest.raises(AccountNotFoundError):
        crud_account.deactivate_account(tenant_db, "tenant-b", account["account_id"])
