import hashlib
import hmac
from typing import Optional

from app.core.config import settings
from app.core.exceptions import ConfigurationError

EXTERNAL_ID_LENGTH = 32


class ExternalIdGenerator:
    """
    Binds a (tenant, AWS account) pair to the external id the customer places
    in their IAM trust policy.

    HMAC-SHA256 over ``"{tenant_id}:{account_id}"`` keyed with a process-wide
    secret, truncated to 32 hex characters. The same secret must be used at
    registration and at scan time, across restarts.
    """

    def __init__(self, secret: Optional[str] = None):
        secret = secret if secret is not None else settings.EXTERNAL_ID_SECRET
        if not secret:
            raise ConfigurationError("EXTERNAL_ID_SECRET must be configured.")
        self._key = secret.encode("utf-8")

    def generate(self, tenant_id: str, account_id: str) -> str:
        message = f"{tenant_id}:{account_id}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()[:EXTERNAL_ID_LENGTH]

    def matches(self, tenant_id: str, account_id: str, candidate: Optional[str]) -> bool:
        if not candidate:
            return False
        return hmac.compare_digest(self.generate(tenant_id, account_id).encode("utf-8"), candidate.encode("utf-8"))


def generate_external_id(tenant_id: str, account_id: str, secret: Optional[str] = None) -> str:
    return ExternalIdGenerator(secret).generate(tenant_id, account_id)
