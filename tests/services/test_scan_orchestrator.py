# tests/services/test_scan_orchestrator.py

import itertools

import pytest
from unittest.mock import MagicMock

from app.api.v1.schemas import ScanRequestMessage, ScanStatus
from app.core.exceptions import RoleAssumptionError
from app.crud import crud_scan, crud_volume
from app.services.credential_validator import CredentialValidator
from app.services.pricing import load_pricing_table
from app.services.scan_orchestrator import (
    INTERNAL_ERROR_MESSAGE,
    ROLE_ASSUMPTION_FAILED_MESSAGE,
    VALIDATION_FAILED_MESSAGE,
    ScanOrchestrator,
)

TENANT = "tenant-a"
ACCOUNT = "123456789012"
ROLE_ARN = f"arn:aws:iam::{ACCOUNT}:role/EBSVolumeManager-CustomerRole"


class FakeRegionScanner:
    """Returns canned volumes per region, or raises the configured error."""

    def __init__(self, volume_factory, per_region):
        self._volume_factory = volume_factory
        self._per_region = per_region
        self.regions = []

    def __call__(self, provider, region, tenant_id, account_internal_id, pricing):
        self.regions.append(region)
        outcome = self._per_region.get(region, 0)
        if isinstance(outcome, Exception):
            raise outcome
        return [
            self._volume_factory(tenant_id, account_internal_id, f"vol-{region}-{i}", region=region)
            for i in range(outcome)
        ]


@pytest.fixture
def role_client(credentials_factory):
    client = MagicMock()
    client.assume.return_value = credentials_factory()
    return client


@pytest.fixture
def make_orchestrator(tenant_db, external_ids, role_client, volume_factory):
    def _make(per_region=None, **kwargs):
        scanner = FakeRegionScanner(volume_factory, per_region or {})
        orchestrator = ScanOrchestrator(
            db=tenant_db,
            validator=CredentialValidator(tenant_db, external_ids),
            role_client=role_client,
            pricing=load_pricing_table(),
            volume_scanner=scanner,
            snapshot_scanner=MagicMock(return_value=[]),
            provider_factory=MagicMock(),
            **kwargs,
        )
        return orchestrator, scanner
    return _make


@pytest.fixture
def request_for(external_ids, scan_id):
    def _request(regions, tenant_id=TENANT, external_id=None):
        return ScanRequestMessage(
            scan_id=scan_id,
            tenant_id=tenant_id,
            account_id=ACCOUNT,
            role_arn=ROLE_ARN,
            external_id=external_id or external_ids.generate(tenant_id, ACCOUNT),
            regions=regions,
        )
    return _request


def test_unregistered_account_fails_without_assuming_role(make_orchestrator, request_for, role_client, tenant_db, scan_id):
    orchestrator, scanner = make_orchestrator({"r1": 3})

    outcome = orchestrator.process(request_for(["r1"]))

    assert outcome.status == ScanStatus.FAILED
    role_client.assume.assert_not_called()
    assert scanner.regions == []
    assert crud_volume.list_volumes(tenant_db, TENANT) == []
    scan = crud_scan.get_scan(tenant_db, TENANT, scan_id)
    assert scan["status"] == "failed"
    assert scan["error_message"] == VALIDATION_FAILED_MESSAGE


def test_scan_id_owned_by_another_tenant_is_rejected(make_orchestrator, request_for, register_account, role_client, tenant_db, scan_id):
    register_account(TENANT)
    crud_scan.create_scan(tenant_db, "tenant-b", scan_id)
    orchestrator, scanner = make_orchestrator({"r1": 3})

    outcome = orchestrator.process(request_for(["r1"]))

    assert outcome.status == ScanStatus.FAILED
    assert outcome.duplicate_delivery is False
    role_client.assume.assert_not_called()
    assert scanner.regions == []
    assert crud_scan.get_scan(tenant_db, TENANT, scan_id) is None
    assert crud_scan.get_scan(tenant_db, "tenant-b", scan_id)["status"] == "queued"


def test_forged_external_id_fails_without_assuming_role(make_orchestrator, request_for, register_account, role_client):
    register_account(TENANT)
    orchestrator, _ = make_orchestrator({"r1": 3})

    outcome = orchestrator.process(request_for(["r1"], external_id="0" * 32))

    assert outcome.status == ScanStatus.FAILED
    role_client.assume.assert_not_called()


def test_region_failure_does_not_fail_scan(make_orchestrator, request_for, register_account, role_client, tenant_db, scan_id):
    register_account(TENANT)
    orchestrator, scanner = make_orchestrator({"r1": 3, "r2": RuntimeError("AccessDenied on DescribeVolumes")})

    outcome = orchestrator.process(request_for(["r1", "r2"]))

    assert outcome.status == ScanStatus.COMPLETED
    assert outcome.volumes_found == 3
    assert outcome.errors == ["r2: AccessDenied on DescribeVolumes"]
    assert scanner.regions == ["r1", "r2"]
    role_client.assume.assert_called_once_with(ROLE_ARN, request_for(["r1"]).external_id, str(scan_id))

    scan = crud_scan.get_scan(tenant_db, TENANT, scan_id)
    assert scan["status"] == "completed"
    assert scan["volumes_found"] == 3
    assert scan["metrics"]["errors"] == ["r2: AccessDenied on DescribeVolumes"]
    assert scan["aws_account_id"] is not None
    assert len(crud_volume.list_volumes(tenant_db, TENANT)) == 3


def test_redelivered_request_is_not_processed_again(make_orchestrator, request_for, register_account, role_client, tenant_db):
    register_account(TENANT)
    orchestrator, scanner = make_orchestrator({"r1": 2})
    orchestrator.process(request_for(["r1"]))

    outcome = orchestrator.process(request_for(["r1"]))

    assert outcome.duplicate_delivery is True
    assert outcome.status == ScanStatus.COMPLETED
    role_client.assume.assert_called_once()
    assert scanner.regions == ["r1"]
    assert len(crud_volume.list_volumes(tenant_db, TENANT)) == 2


def test_role_assumption_failure_fails_scan(make_orchestrator, request_for, register_account, role_client, tenant_db, scan_id):
    register_account(TENANT)
    role_client.assume.side_effect = RoleAssumptionError("Failed to assume role (STS error code AccessDenied)")
    orchestrator, scanner = make_orchestrator({"r1": 3})

    outcome = orchestrator.process(request_for(["r1"]))

    assert outcome.status == ScanStatus.FAILED
    assert scanner.regions == []
    scan = crud_scan.get_scan(tenant_db, TENANT, scan_id)
    assert scan["error_message"] == ROLE_ASSUMPTION_FAILED_MESSAGE


def test_regions_fall_back_to_account_configuration(make_orchestrator, request_for, register_account):
    register_account(TENANT, regions=["eu-west-1", "eu-west-1", "us-west-2"])
    orchestrator, scanner = make_orchestrator({"eu-west-1": 1, "us-west-2": 1})

    outcome = orchestrator.process(request_for([]))

    assert scanner.regions == ["eu-west-1", "us-west-2"]
    assert outcome.volumes_found == 2


def test_expiring_credentials_are_refreshed_between_regions(make_orchestrator, request_for, register_account, role_client, credentials_factory):
    register_account(TENANT)
    role_client.assume.side_effect = [credentials_factory(expires_in_seconds=60), credentials_factory()]
    orchestrator, _ = make_orchestrator({"r1": 1}, refresh_margin_seconds=300)

    outcome = orchestrator.process(request_for(["r1"]))

    assert outcome.status == ScanStatus.COMPLETED
    assert role_client.assume.call_count == 2


def test_regions_after_deadline_are_skipped(make_orchestrator, request_for, register_account, tenant_db, scan_id):
    register_account(TENANT)
    ticks = itertools.chain([0, 0], itertools.repeat(1000))
    orchestrator, scanner = make_orchestrator({"r1": 1, "r2": 1}, timeout_seconds=900, clock=lambda: next(ticks))

    outcome = orchestrator.process(request_for(["r1", "r2"]))

    assert outcome.status == ScanStatus.COMPLETED
    assert scanner.regions == ["r1"]
    assert outcome.errors == ["r2: skipped, scan time limit reached"]


def test_concurrent_regions_keep_request_order(make_orchestrator, request_for, register_account, tenant_db):
    register_account(TENANT)
    # Persistence is replaced so the worker threads never share the single SQLite connection.
    orchestrator, scanner = make_orchestrator(
        {"r1": 1, "r2": RuntimeError("throttled"), "r3": RuntimeError("denied")},
        region_concurrency=3,
    )
    orchestrator._db = MagicMock(wraps=tenant_db)
    orchestrator._db.transaction_with_tenant = MagicMock(return_value=None)

    outcome = orchestrator.process(request_for(["r1", "r2", "r3"]))

    assert outcome.status == ScanStatus.COMPLETED
    assert sorted(scanner.regions) == ["r1", "r2", "r3"]
    assert outcome.volumes_found == 1
    assert outcome.errors == ["r2: throttled", "r3: denied"]


def test_unexpected_error_marks_scan_failed(make_orchestrator, request_for, register_account, tenant_db, scan_id):
    register_account(TENANT)
    orchestrator, _ = make_orchestrator({"r1": 1})
    orchestrator._validator = MagicMock()
    orchestrator._validator.verify.side_effect = KeyError("boom")

    outcome = orchestrator.process(request_for(["r1"]))

    assert outcome.status == ScanStatus.FAILED
    assert crud_scan.get_scan(tenant_db, TENANT, scan_id)["error_message"] == INTERNAL_ERROR_MESSAGE
