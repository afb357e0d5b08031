import uuid
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from app.core.exceptions import DatabaseError, VolumeInUseError, VolumeNotFoundError
from app.crud import crud_audit
from app.db import models
from app.db.tenant_db import TenantScopedDatabase, TenantSession
from app.services.scanners.schemas import SnapshotRecord, VolumeRecord

volumes = models.Volume.__table__
snapshots = models.Snapshot.__table__

# Observed fields a rescan may overwrite. Identity fields (ids, create time, size, type) stay as first stored.
VOLUME_MUTABLE_FIELDS = ("state", "instance_id", "device", "attached_at", "cost_per_month", "tags", "last_scanned_at")
SNAPSHOT_MUTABLE_FIELDS = ("state", "progress", "description", "tags", "last_scanned_at")

UPSERT_BATCH_SIZE = 500

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _upsert_insert(session: TenantSession):
    try:
        return _DIALECT_INSERTS[session.dialect_name]
    except KeyError:
        raise DatabaseError(f"Upsert is not supported on dialect '{session.dialect_name}'")


def _batches(rows: List[Dict[str, Any]], size: int = UPSERT_BATCH_SIZE):
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _volume_row(record: VolumeRecord) -> Dict[str, Any]:
    return {
        "id": uuid.uuid4(),
        "tenant_id": record.tenant_id,
        "aws_account_id": record.account_internal_id,
        "volume_id": record.volume_id,
        "size_gb": record.size_gb,
        "volume_type": record.volume_type,
        "state": record.state,
        "encrypted": record.encrypted,
        "kms_key_id": record.kms_key_id,
        "region": record.region,
        "availability_zone": record.availability_zone,
        "created_at": record.create_time,
        "iops": record.iops,
        "throughput": record.throughput,
        "instance_id": record.instance_id,
        "device": record.device,
        "attached_at": record.attach_time,
        "cost_per_month": record.cost_per_month,
        "tags": record.tags,
        "last_scanned_at": record.scanned_at,
        "updated_at": record.scanned_at,
    }


def upsert_volumes(session: TenantSession, records: Sequence[VolumeRecord]) -> int:
    """Insert-or-update volumes keyed by (tenant_id, volume_id). Returns the number of records written."""
    rows = [_volume_row(r) for r in records if r.tenant_id == session.tenant_id]
    if len(rows) != len(records):
        raise DatabaseError("Refusing to upsert volumes belonging to another tenant.")
    if not rows:
        return 0

    insert = _upsert_insert(session)
    for batch in _batches(rows):
        statement = insert(volumes).values(batch)
        set_ = {field: statement.excluded[field] for field in VOLUME_MUTABLE_FIELDS}
        set_["updated_at"] = models.utcnow()
        statement = statement.on_conflict_do_update(
            index_elements=[volumes.c.tenant_id, volumes.c.volume_id],
            set_=set_,
        )
        session.execute(statement)
    logger.debug(f"Upserted {len(rows)} volumes for tenant {session.tenant_id}.")
    return len(rows)


def upsert_snapshots(session: TenantSession, records: Sequence[SnapshotRecord]) -> int:
    """Insert-or-update snapshots keyed by (tenant_id, snapshot_id), linking each to its inventoried volume."""
    if any(r.tenant_id != session.tenant_id for r in records):
        raise DatabaseError("Refusing to upsert snapshots belonging to another tenant.")
    if not records:
        return 0

    source_ids = sorted({r.source_volume_id for r in records if r.source_volume_id})
    volume_ids: Dict[str, Any] = {}
    if source_ids:
        found = session.execute(
            select(volumes.c.id, volumes.c.volume_id).where(
                volumes.c.tenant_id == session.tenant_id,
                volumes.c.volume_id.in_(source_ids),
            )
        )
        volume_ids = {row["volume_id"]: row["id"] for row in found}

    rows = [
        {
            "id": uuid.uuid4(),
            "tenant_id": r.tenant_id,
            "volume_id": volume_ids.get(r.source_volume_id),
            "source_volume_id": r.source_volume_id,
            "snapshot_id": r.snapshot_id,
            "size_gb": r.size_gb,
            "state": r.state,
            "progress": r.progress,
            "encrypted": r.encrypted,
            "kms_key_id": r.kms_key_id,
            "region": r.region,
            "started_at": r.start_time,
            "description": r.description,
            "tags": r.tags,
            "last_scanned_at": r.scanned_at,
            "created_at": r.scanned_at,
            "updated_at": r.scanned_at,
        }
        for r in records
    ]

    insert = _upsert_insert(session)
    for batch in _batches(rows):
        statement = insert(snapshots).values(batch)
        set_ = {field: statement.excluded[field] for field in SNAPSHOT_MUTABLE_FIELDS}
        set_["volume_id"] = statement.excluded.volume_id
        set_["updated_at"] = models.utcnow()
        statement = statement.on_conflict_do_update(
            index_elements=[snapshots.c.tenant_id, snapshots.c.snapshot_id],
            set_=set_,
        )
        session.execute(statement)
    logger.debug(f"Upserted {len(rows)} snapshots for tenant {session.tenant_id}.")
    return len(rows)


def get_volume(db: TenantScopedDatabase, tenant_id: str, volume_id: str) -> Optional[Dict[str, Any]]:
    rows = db.query_with_tenant(
        tenant_id,
        select(volumes).where(volumes.c.tenant_id == tenant_id, volumes.c.volume_id == volume_id),
    )
    return rows[0] if rows else None


def list_volumes(
    db: TenantScopedDatabase,
    tenant_id: str,
    skip: int = 0,
    limit: int = 100,
    state: Optional[str] = None,
    region: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """List volumes with optional filters and pagination."""
    statement = select(volumes).where(volumes.c.tenant_id == tenant_id)
    if state:
        statement = statement.where(volumes.c.state == state)
    if region:
        statement = statement.where(volumes.c.region == region)
    statement = statement.order_by(volumes.c.cost_per_month.desc(), volumes.c.volume_id).offset(skip).limit(limit)
    return db.query_with_tenant(tenant_id, statement)


def request_volume_deletion(
    db: TenantScopedDatabase,
    tenant_id: str,
    volume_id: str,
    user_id: Optional[str],
    user_role: str,
) -> Dict[str, Any]:
    """Mark an unattached volume as 'deleting' and write the audit entry in the same transaction."""

    def _mark_deleting(session: TenantSession) -> Dict[str, Any]:
        rows = session.execute(
            select(volumes.c.id, volumes.c.volume_id, volumes.c.state).where(
                volumes.c.tenant_id == tenant_id,
                volumes.c.volume_id == volume_id,
            )
        )
        if not rows:
            raise VolumeNotFoundError(f"Volume {volume_id} not found")
        volume = rows[0]
        if volume["state"] == "in-use":
            raise VolumeInUseError("Cannot delete volume that is in use")

        session.execute(
            update(volumes).where(volumes.c.id == volume["id"]).values(state="deleting", updated_at=models.utcnow())
        )
        crud_audit.record(
            session,
            action="DELETE_VOLUME",
            resource_type="EBS_VOLUME",
            resource_id=volume_id,
            user_id=user_id,
            details={"userRole": user_role, "previousState": volume["state"]},
        )
        volume["state"] = "deleting"
        return volume

    return db.transaction_with_tenant(tenant_id, _mark_deleting)
