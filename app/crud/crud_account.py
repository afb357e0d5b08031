import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update

from app.core.exceptions import AccountNotFoundError
from app.crud import crud_audit
from app.db import models
from app.db.tenant_db import TenantScopedDatabase, TenantSession

accounts = models.CloudAccount.__table__
tenants = models.Tenant.__table__


def ensure_tenant(session: TenantSession) -> None:
    """Create the session tenant's row on first use so foreign keys to it hold."""
    if session.execute(select(tenants.c.id).where(tenants.c.id == session.tenant_id)):
        return
    now = models.utcnow()
    session.execute(
        tenants.insert().values(id=session.tenant_id, name=session.tenant_id, status="active", created_at=now, updated_at=now)
    )


def get_account(db: TenantScopedDatabase, tenant_id: str, account_id: str) -> Optional[Dict[str, Any]]:
    """Get the tenant's cloud account row by its 12-digit AWS account id."""
    statement = select(accounts).where(
        accounts.c.tenant_id == tenant_id,
        accounts.c.account_id == account_id,
    )
    rows = db.query_with_tenant(tenant_id, statement)
    return rows[0] if rows else None


def list_accounts(db: TenantScopedDatabase, tenant_id: str, include_inactive: bool = False) -> List[Dict[str, Any]]:
    statement = select(accounts).where(accounts.c.tenant_id == tenant_id)
    if not include_inactive:
        statement = statement.where(accounts.c.is_active.is_(True))
    return db.query_with_tenant(tenant_id, statement.order_by(accounts.c.created_at))


def create_account(
    db: TenantScopedDatabase,
    tenant_id: str,
    account_id: str,
    role_arn: str,
    external_id: str,
    account_alias: Optional[str] = None,
    regions: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Insert a new cloud account for the tenant and return the stored row."""
    values = {
        "id": uuid.uuid4(),
        "tenant_id": tenant_id,
        "account_id": account_id,
        "account_alias": account_alias,
        "role_arn": role_arn,
        "external_id": external_id,
        "is_active": True,
        "regions": regions,
    }

    def _insert(session: TenantSession) -> Dict[str, Any]:
        ensure_tenant(session)
        session.execute(accounts.insert().values(**values))
        return session.execute(select(accounts).where(accounts.c.id == values["id"]))[0]

    return db.transaction_with_tenant(tenant_id, _insert)


def deactivate_account(db: TenantScopedDatabase, tenant_id: str, account_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    """Mark the account inactive (accounts are never hard-deleted) and audit the change."""

    def _deactivate(session: TenantSession) -> Dict[str, Any]:
        rows = session.execute(
            select(accounts).where(accounts.c.tenant_id == tenant_id, accounts.c.account_id == account_id)
        )
        if not rows:
            raise AccountNotFoundError(f"Account {account_id} not found")
        account = rows[0]
        session.execute(
            update(accounts)
            .where(accounts.c.id == account["id"])
            .values(is_active=False, updated_at=models.utcnow())
        )
        crud_audit.record(
            session,
            action="DEACTIVATE_ACCOUNT",
            resource_type="AWS_ACCOUNT",
            resource_id=account_id,
            user_id=user_id,
        )
        account["is_active"] = False
        return account

    return db.transaction_with_tenant(tenant_id, _deactivate)
