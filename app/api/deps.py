from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from loguru import logger

from app.api.v1.schemas import TenantClaims
from app.db.tenant_db import TenantScopedDatabase
from app.services.external_id import ExternalIdGenerator

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_claims(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> TenantClaims:
    """
    Read tenant claims from the bearer token.

    The API gateway's authorizer has already verified the signature, so the
    claims are read without re-verifying it here.
    """
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        claims = jwt.get_unverified_claims(credentials.credentials)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not read token claims",
        )

    tenant_claims = TenantClaims.from_token_claims(claims)
    if not tenant_claims.tenant_id:
        logger.warning("Rejected request without a tenant id claim.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized: Missing tenant ID")
    return tenant_claims


def require_permission(permission: str) -> Callable[[TenantClaims], TenantClaims]:
    def _check(claims: TenantClaims = Depends(get_current_claims)) -> TenantClaims:
        if not claims.has_permission(permission):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return claims
    return _check


def require_admin(claims: TenantClaims = Depends(get_current_claims)) -> TenantClaims:
    if not claims.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator role required")
    return claims


# Process-wide persistence layer
@lru_cache()
def get_db() -> TenantScopedDatabase:
    return TenantScopedDatabase.from_settings()


@lru_cache()
def get_external_id_generator() -> ExternalIdGenerator:
    return ExternalIdGenerator()
