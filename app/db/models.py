import uuid
import datetime
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, Numeric, String, Text,
    UniqueConstraint, Uuid,
)

from app.db.session import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class CloudAccount(Base):
    __tablename__ = "aws_accounts"
    __table_args__ = (UniqueConstraint("tenant_id", "account_id", name="uq_aws_accounts_tenant_account"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)
    account_id = Column(String(12), nullable=False)
    account_alias = Column(String(255), nullable=True)
    role_arn = Column(String(512), nullable=False)
    external_id = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    regions = Column(JSON, nullable=True) # list of region names to scan
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Volume(Base):
    __tablename__ = "ebs_volumes"
    __table_args__ = (
        UniqueConstraint("tenant_id", "volume_id", name="uq_ebs_volumes_tenant_volume"),
        Index("idx_volumes_state", "state"),
        Index("idx_volumes_region", "region"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)
    aws_account_id = Column(Uuid(as_uuid=True), ForeignKey("aws_accounts.id"), nullable=False, index=True)
    volume_id = Column(String(255), nullable=False)
    size_gb = Column(Integer, nullable=False, default=0)
    volume_type = Column(String(50), nullable=True)
    state = Column(String(50), nullable=True)
    encrypted = Column(Boolean, nullable=False, default=False)
    kms_key_id = Column(String(512), nullable=True)
    region = Column(String(50), nullable=False)
    availability_zone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True) # provider create time, never overwritten
    iops = Column(Integer, nullable=True)
    throughput = Column(Integer, nullable=True)
    instance_id = Column(String(255), nullable=True)
    device = Column(String(50), nullable=True)
    attached_at = Column(DateTime(timezone=True), nullable=True)
    cost_per_month = Column(Numeric(10, 2), nullable=True)
    tags = Column(JSON, nullable=True)
    last_scanned_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class Snapshot(Base):
    __tablename__ = "volume_snapshots"
    __table_args__ = (UniqueConstraint("tenant_id", "snapshot_id", name="uq_volume_snapshots_tenant_snapshot"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)
    # Null when the source volume is not (or no longer) in the inventory
    volume_id = Column(Uuid(as_uuid=True), ForeignKey("ebs_volumes.id"), nullable=True, index=True)
    source_volume_id = Column(String(255), nullable=True)
    snapshot_id = Column(String(255), nullable=False)
    size_gb = Column(Integer, nullable=False, default=0)
    state = Column(String(50), nullable=True)
    progress = Column(String(50), nullable=True)
    encrypted = Column(Boolean, nullable=False, default=False)
    kms_key_id = Column(String(512), nullable=True)
    region = Column(String(50), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    description = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    last_scanned_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class ScanRecord(Base):
    __tablename__ = "scan_history"

    scan_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)
    aws_account_id = Column(Uuid(as_uuid=True), ForeignKey("aws_accounts.id"), nullable=True, index=True)
    status = Column(String(50), nullable=False)
    started_at = Column(DateTime(timezone=True), default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    volumes_found = Column(Integer, nullable=False, default=0)
    snapshots_found = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    metrics = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=True, index=True)
    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(255), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
