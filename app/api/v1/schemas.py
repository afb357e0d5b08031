from enum import Enum
from typing import List, Optional, Dict
from pydantic import BaseModel, Field, ConfigDict, field_validator
from uuid import UUID
from datetime import datetime


# Claims forwarded by the upstream identity provider
class TenantClaims(BaseModel):
    tenant_id: str
    user_id: Optional[str] = None
    user_role: str = "user"
    permissions: List[str] = []

    @classmethod
    def from_token_claims(cls, claims: Dict[str, object]) -> "TenantClaims":
        raw_permissions = claims.get("custom:permissions") or claims.get("permissions") or ""
        if isinstance(raw_permissions, str):
            permissions = [p.strip() for p in raw_permissions.split(",") if p.strip()]
        else:
            permissions = [str(p) for p in raw_permissions]
        return cls(
            tenant_id=claims.get("custom:tenant_id") or claims.get("tenantId") or "",
            user_id=claims.get("sub"),
            user_role=claims.get("custom:user_role") or claims.get("userRole") or "user",
            permissions=permissions,
        )

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    @property
    def is_admin(self) -> bool:
        return self.user_role == "admin"


class ScanStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_SCAN_STATUSES = (ScanStatus.COMPLETED, ScanStatus.FAILED)


class ScanRequestMessage(BaseModel):
    """Body of a message on the scan queue."""
    scan_id: UUID = Field(alias="scanId")
    tenant_id: str = Field(alias="tenantId", min_length=1)
    account_id: str = Field(alias="accountId", min_length=1)
    role_arn: str = Field(alias="roleArn", min_length=1)
    external_id: str = Field(alias="externalId", min_length=1)
    regions: List[str] = Field(alias="regions")

    model_config = ConfigDict(populate_by_name=True)


class ScanCreate(BaseModel):
    account_id: str = Field(alias="accountId", min_length=1)
    role_arn: str = Field(alias="roleArn", min_length=1)
    external_id: str = Field(alias="externalId", min_length=1)
    regions: List[str] = ["us-east-1"]

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "accountId": "123456789012",
                "roleArn": "arn:aws:iam::123456789012:role/EBSVolumeManager-CustomerRole",
                "externalId": "0f1e2d3c4b5a69788796a5b4c3d2e1f0",
                "regions": ["us-east-1", "us-west-2"],
            }
        },
    )


class ScanAccepted(BaseModel):
    scan_id: UUID = Field(serialization_alias="scanId")
    status: ScanStatus = ScanStatus.QUEUED
    message: str = "Scan request queued successfully"


class Scan(BaseModel):
    """Coarse scan status as exposed to tenants."""
    scan_id: UUID = Field(serialization_alias="scanId")
    tenant_id: str = Field(serialization_alias="tenantId")
    status: ScanStatus
    started_at: Optional[datetime] = Field(default=None, serialization_alias="startedAt")
    completed_at: Optional[datetime] = Field(default=None, serialization_alias="completedAt")
    volumes_found: int = Field(default=0, serialization_alias="volumesFound")
    snapshots_found: int = Field(default=0, serialization_alias="snapshotsFound")
    errors: Optional[List[str]] = None
    error_message: Optional[str] = Field(default=None, serialization_alias="errorMessage")

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_row(cls, row: Dict[str, object]) -> "Scan":
        metrics = row.get("metrics") or {}
        return cls(
            scan_id=row["scan_id"],
            tenant_id=row["tenant_id"],
            status=row["status"],
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            volumes_found=row.get("volumes_found") or 0,
            snapshots_found=row.get("snapshots_found") or 0,
            errors=metrics.get("errors") or None,
            error_message=row.get("error_message"),
        )


class CloudAccountCreate(BaseModel):
    account_id: str = Field(alias="accountId", pattern=r"^\d{12}$")
    account_alias: Optional[str] = Field(default=None, alias="accountAlias")
    regions: List[str] = ["us-east-1"]

    model_config = ConfigDict(populate_by_name=True)


class CloudAccount(BaseModel):
    id: UUID
    account_id: str = Field(serialization_alias="accountId")
    account_alias: Optional[str] = Field(default=None, serialization_alias="accountAlias")
    role_arn: str = Field(serialization_alias="roleArn")
    external_id: str = Field(serialization_alias="externalId")
    is_active: bool = Field(serialization_alias="isActive")
    regions: Optional[List[str]] = None


class Volume(BaseModel):
    volume_id: str = Field(serialization_alias="volumeId")
    size_gb: int = Field(serialization_alias="sizeGb")
    volume_type: Optional[str] = Field(default=None, serialization_alias="volumeType")
    state: Optional[str] = None
    encrypted: bool = False
    region: str
    availability_zone: Optional[str] = Field(default=None, serialization_alias="availabilityZone")
    iops: Optional[int] = None
    throughput: Optional[int] = None
    instance_id: Optional[str] = Field(default=None, serialization_alias="instanceId")
    cost_per_month: Optional[float] = Field(default=None, serialization_alias="costPerMonth")
    tags: Optional[Dict[str, str]] = None
    last_scanned_at: Optional[datetime] = Field(default=None, serialization_alias="lastScannedAt")

    @field_validator("cost_per_month", mode="before")
    @classmethod
    def decimal_to_float(cls, v):
        return float(v) if v is not None else None
