import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from app.db import models
from app.db.tenant_db import TenantScopedDatabase, TenantSession

audit_logs = models.AuditLog.__table__


def record(
    session: TenantSession,
    action: str,
    resource_type: str,
    resource_id: str,
    user_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> uuid.UUID:
    """Append an audit entry inside the caller's tenant transaction. Entries are never updated."""
    entry_id = uuid.uuid4()
    session.execute(
        audit_logs.insert().values(
            id=entry_id,
            tenant_id=session.tenant_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            created_at=models.utcnow(),
        )
    )
    return entry_id


def list_entries(db: TenantScopedDatabase, tenant_id: str, limit: int = 100) -> List[Dict[str, Any]]:
    statement = (
        select(audit_logs)
        .where(audit_logs.c.tenant_id == tenant_id)
        .order_by(audit_logs.c.created_at.desc())
        .limit(limit)
    )
    return db.query_with_tenant(tenant_id, statement)
