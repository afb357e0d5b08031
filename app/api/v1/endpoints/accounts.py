from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from app.api.deps import get_current_claims, get_db, get_external_id_generator, require_admin
from app.api.v1.schemas import CloudAccount, CloudAccountCreate, TenantClaims
from app.core.config import settings
from app.core.exceptions import AccountNotFoundError, DatabaseError
from app.crud import crud_account
from app.db.tenant_db import TenantScopedDatabase
from app.services.external_id import ExternalIdGenerator

router = APIRouter()


@router.post("/", response_model=CloudAccount, status_code=status.HTTP_201_CREATED)
async def register_account(
    account_in: CloudAccountCreate,
    db: TenantScopedDatabase = Depends(get_db),
    external_ids: ExternalIdGenerator = Depends(get_external_id_generator),
    claims: TenantClaims = Depends(require_admin),
) -> Any:
    """
    Register a customer AWS account. The returned external id goes into the customer's role trust policy.
    """
    if crud_account.get_account(db, claims.tenant_id, account_in.account_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Account already registered")

    role_arn = f"arn:aws:iam::{account_in.account_id}:role/{settings.CUSTOMER_ROLE_NAME}"
    try:
        account = crud_account.create_account(
            db,
            claims.tenant_id,
            account_id=account_in.account_id,
            role_arn=role_arn,
            external_id=external_ids.generate(claims.tenant_id, account_in.account_id),
            account_alias=account_in.account_alias,
            regions=account_in.regions,
        )
    except DatabaseError as e:
        logger.error(f"Failed to register account {account_in.account_id} for tenant {claims.tenant_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
    logger.info(f"Registered account {account_in.account_id} for tenant {claims.tenant_id}")
    return account


@router.get("/", response_model=List[CloudAccount])
async def list_accounts(
    db: TenantScopedDatabase = Depends(get_db),
    claims: TenantClaims = Depends(get_current_claims),
) -> Any:
    return crud_account.list_accounts(db, claims.tenant_id)


@router.delete("/{account_id}", response_model=CloudAccount)
async def deactivate_account(
    account_id: str,
    db: TenantScopedDatabase = Depends(get_db),
    claims: TenantClaims = Depends(require_admin),
) -> Any:
    """
    Deactivate an account. Scans against it are rejected from then on.
    """
    try:
        return crud_account.deactivate_account(db, claims.tenant_id, account_id, user_id=claims.user_id)
    except AccountNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
