from typing import List, Optional, Any, Dict
from uuid import UUID

from sqlalchemy import select, update

from app.db import models
from app.db.tenant_db import TenantScopedDatabase
from app.api.v1 import schemas

scans = models.ScanRecord.__table__

_TERMINAL = [s.value for s in schemas.TERMINAL_SCAN_STATUSES]


def get_scan(db: TenantScopedDatabase, tenant_id: str, scan_id: UUID) -> Optional[Dict[str, Any]]:
    """Get a scan by its ID."""
    rows = db.query_with_tenant(
        tenant_id,
        select(scans).where(scans.c.tenant_id == tenant_id, scans.c.scan_id == scan_id),
    )
    return rows[0] if rows else None


def list_scans(
    db: TenantScopedDatabase,
    tenant_id: str,
    skip: int = 0,
    limit: int = 100,
    status: Optional[schemas.ScanStatus] = None,
) -> List[Dict[str, Any]]:
    """List scans with optional filters and pagination."""
    statement = select(scans).where(scans.c.tenant_id == tenant_id)
    if status:
        statement = statement.where(scans.c.status == status.value)
    statement = statement.order_by(scans.c.started_at.desc()).offset(skip).limit(limit)
    return db.query_with_tenant(tenant_id, statement)


def create_scan(db: TenantScopedDatabase, tenant_id: str, scan_id: UUID, account_internal_id: Optional[UUID] = None) -> Dict[str, Any]:
    """Create a new scan record in the queued state."""
    now = models.utcnow()
    db.query_with_tenant(
        tenant_id,
        scans.insert().values(
            scan_id=scan_id,
            tenant_id=tenant_id,
            aws_account_id=account_internal_id,
            status=schemas.ScanStatus.QUEUED.value,
            started_at=now,
            volumes_found=0,
            snapshots_found=0,
            created_at=now,
            updated_at=now,
        ),
    )
    return get_scan(db, tenant_id, scan_id)


def ensure_scan(db: TenantScopedDatabase, tenant_id: str, scan_id: UUID) -> Dict[str, Any]:
    """Return the scan record, creating it as queued when the message arrived without one."""
    existing = get_scan(db, tenant_id, scan_id)
    if existing is not None:
        return existing
    return create_scan(db, tenant_id, scan_id)


def update_scan_status(
    db: TenantScopedDatabase,
    tenant_id: str,
    scan_id: UUID,
    status: schemas.ScanStatus,
    error_message: Optional[str] = None,
    metrics: Optional[Dict[str, Any]] = None,
    account_internal_id: Optional[UUID] = None,
) -> bool:
    """
    Move a scan to ``status``. Terminal states also stamp ``completed_at``.

    Scans already in a terminal state are left untouched; returns False in that
    case (or when the scan does not exist).
    """
    now = models.utcnow()
    values: Dict[str, Any] = {"status": status.value, "updated_at": now}
    if status == schemas.ScanStatus.IN_PROGRESS:
        values["started_at"] = now
    if status in schemas.TERMINAL_SCAN_STATUSES:
        values["completed_at"] = now
    if error_message is not None:
        values["error_message"] = error_message
    if metrics is not None:
        values["metrics"] = metrics
        values["volumes_found"] = metrics.get("volumesFound", 0)
        values["snapshots_found"] = metrics.get("snapshotsFound", 0)
    if account_internal_id is not None:
        values["aws_account_id"] = account_internal_id

    statement = (
        update(scans)
        .where(
            scans.c.tenant_id == tenant_id,
            scans.c.scan_id == scan_id,
            scans.c.status.notin_(_TERMINAL),
        )
        .values(**values)
        .returning(scans.c.scan_id)
    )
    rows = db.query_with_tenant(tenant_id, statement)
    return bool(rows)
