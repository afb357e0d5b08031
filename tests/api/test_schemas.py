# tests/api/test_schemas.py

import datetime
import uuid
from decimal import Decimal

from app.api.v1.schemas import Scan, ScanRequestMessage, TenantClaims, Volume


def test_tenant_claims_from_identity_provider_attributes():
    claims = TenantClaims.from_token_claims({
        "sub": "user-1",
        "custom:tenant_id": "tenant-a",
        "custom:user_role": "admin",
        "custom:permissions": "volumes:read, volumes:delete",
    })

    assert claims.tenant_id == "tenant-a"
    assert claims.user_id == "user-1"
    assert claims.is_admin is True
    assert claims.has_permission("volumes:delete") is True
    assert claims.has_permission("accounts:write") is False


def test_tenant_claims_defaults():
    claims = TenantClaims.from_token_claims({"tenantId": "tenant-b", "permissions": ["volumes:read"]})

    assert claims.tenant_id == "tenant-b"
    assert claims.user_role == "user"
    assert claims.is_admin is False
    assert claims.permissions == ["volumes:read"]
    assert TenantClaims.from_token_claims({}).tenant_id == ""


def test_scan_request_message_wire_format():
    scan_id = uuid.uuid4()
    message = ScanRequestMessage.model_validate({
        "scanId": str(scan_id),
        "tenantId": "tenant-a",
        "accountId": "123456789012",
        "roleArn": "arn:aws:iam::123456789012:role/EBSVolumeManager-CustomerRole",
        "externalId": "abc",
        "regions": ["us-east-1"],
    })

    assert message.scan_id == scan_id
    dumped = message.model_dump(mode="json", by_alias=True)
    assert dumped["scanId"] == str(scan_id)
    assert set(dumped) == {"scanId", "tenantId", "accountId", "roleArn", "externalId", "regions"}


def test_scan_from_row_exposes_region_errors():
    scan_id = uuid.uuid4()
    scan = Scan.from_row({
        "scan_id": scan_id,
        "tenant_id": "tenant-a",
        "status": "completed",
        "started_at": datetime.datetime(2024, 1, 1),
        "completed_at": datetime.datetime(2024, 1, 1, 0, 5),
        "volumes_found": 3,
        "snapshots_found": 0,
        "metrics": {"volumesFound": 3, "errors": ["r2: msg"]},
        "error_message": None,
    })

    dumped = scan.model_dump(by_alias=True)
    assert dumped["scanId"] == scan_id
    assert dumped["volumesFound"] == 3
    assert dumped["errors"] == ["r2: msg"]


def test_volume_cost_serialized_as_float():
    volume = Volume.model_validate({
        "volume_id": "vol-1",
        "size_gb": 100,
        "region": "us-east-1",
        "cost_per_month": Decimal("8.00"),
    })

    assert volume.cost_per_month == 8.0
    assert isinstance(volume.cost_per_month, float)
