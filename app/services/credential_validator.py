import hmac
from typing import Any, Dict, Optional

from loguru import logger

from app.core.exceptions import DatabaseError
from app.crud import crud_account
from app.db.tenant_db import TenantScopedDatabase
from app.services.external_id import ExternalIdGenerator


class CredentialValidator:
    """
    Security gate run before any cross-account call.

    Confirms the claimed account belongs to the tenant, is active, and that the
    claimed role ARN and external id are the ones registered for it. Rejection
    reasons go to the internal log only; callers just see a failed check.
    """

    def __init__(self, db: TenantScopedDatabase, external_ids: ExternalIdGenerator):
        self._db = db
        self._external_ids = external_ids

    def verify(
        self,
        tenant_id: str,
        account_id: str,
        claimed_role_arn: str,
        claimed_external_id: str,
    ) -> Optional[Dict[str, Any]]:
        """Return the matching account row when every check passes, otherwise None."""
        try:
            account = crud_account.get_account(self._db, tenant_id, account_id)
        except DatabaseError as e:
            logger.error(f"Account validation failed closed for tenant {tenant_id}, account {account_id}: {e}")
            return None

        if account is None:
            logger.error(f"Account {account_id} not found for tenant {tenant_id}")
            return None

        if not account.get("is_active"):
            logger.error(f"Account {account_id} is not active for tenant {tenant_id}")
            return None

        if account.get("role_arn") != claimed_role_arn:
            logger.error(f"Role ARN mismatch for account {account_id} (tenant {tenant_id})")
            return None

        # Must match both the stored row and the request, guarding against either being tampered with.
        stored_external_id = account.get("external_id") or ""
        if not (
            self._external_ids.matches(tenant_id, account_id, stored_external_id)
            and hmac.compare_digest(stored_external_id.encode("utf-8"), (claimed_external_id or "").encode("utf-8"))
        ):
            logger.error(f"External ID mismatch for account {account_id} (tenant {tenant_id})")
            return None

        logger.info(f"Account {account_id} validated for tenant {tenant_id}")
        return account

    def validate(self, tenant_id: str, account_id: str, claimed_role_arn: str, claimed_external_id: str) -> bool:
        return self.verify(tenant_id, account_id, claimed_role_arn, claimed_external_id) is not None
