from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class VolumeRecord(BaseModel):
    """One EBS volume as observed by a region scan, normalized for persistence."""
    tenant_id: str
    account_internal_id: UUID
    volume_id: str
    size_gb: int = 0
    volume_type: str = "unknown"
    state: str = "unknown"
    encrypted: bool = False
    kms_key_id: Optional[str] = None
    region: str
    availability_zone: Optional[str] = None
    create_time: Optional[datetime] = None
    iops: Optional[int] = None
    throughput: Optional[int] = None
    instance_id: Optional[str] = None
    device: Optional[str] = None
    attach_time: Optional[datetime] = None
    cost_per_month: float = 0.0
    tags: Dict[str, str] = Field(default_factory=dict)
    scanned_at: datetime


class SnapshotRecord(BaseModel):
    tenant_id: str
    snapshot_id: str
    source_volume_id: Optional[str] = None
    size_gb: int = 0
    state: str = "unknown"
    progress: Optional[str] = None
    encrypted: bool = False
    kms_key_id: Optional[str] = None
    region: str
    start_time: Optional[datetime] = None
    description: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    scanned_at: datetime
