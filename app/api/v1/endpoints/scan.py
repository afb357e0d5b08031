import uuid
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from app.api.deps import get_current_claims, get_db
from app.api.v1.schemas import Scan, ScanAccepted, ScanCreate, ScanRequestMessage, ScanStatus, TenantClaims
from app.core.celery_app import celery_app
from app.core.exceptions import DatabaseError
from app.crud import crud_scan
from app.db.tenant_db import TenantScopedDatabase

router = APIRouter()

PROCESS_SCAN_TASK = "tasks.process_scan_request"


@router.post("/", response_model=ScanAccepted, status_code=status.HTTP_202_ACCEPTED)
async def start_scan(
    scan_request: ScanCreate,
    db: TenantScopedDatabase = Depends(get_db),
    claims: TenantClaims = Depends(get_current_claims),
) -> Any:
    """
    Queue a scan of one registered account. The worker validates ownership before touching AWS.
    """
    scan_id = uuid.uuid4()
    message = ScanRequestMessage(
        scan_id=scan_id,
        tenant_id=claims.tenant_id,
        account_id=scan_request.account_id,
        role_arn=scan_request.role_arn,
        external_id=scan_request.external_id,
        regions=scan_request.regions,
    )
    try:
        crud_scan.create_scan(db, claims.tenant_id, scan_id)
        celery_app.send_task(PROCESS_SCAN_TASK, args=[message.model_dump(mode="json", by_alias=True)])
    except DatabaseError as e:
        logger.error(f"Failed to record scan request {scan_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
    except Exception as e:
        logger.error(f"Failed to enqueue scan {scan_id}: {e}")
        crud_scan.update_scan_status(db, claims.tenant_id, scan_id, ScanStatus.FAILED, error_message="Scan could not be queued")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scan queue unavailable")

    logger.info(f"Queued scan {scan_id} for tenant {claims.tenant_id}, account {scan_request.account_id}")
    return ScanAccepted(scan_id=scan_id)


@router.get("/{scan_id}", response_model=Scan)
async def get_scan(
    scan_id: UUID,
    db: TenantScopedDatabase = Depends(get_db),
    claims: TenantClaims = Depends(get_current_claims),
) -> Any:
    """
    Get scan status and aggregate metrics.
    """
    db_scan = crud_scan.get_scan(db, claims.tenant_id, scan_id)
    if not db_scan:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Scan not found",
        )
    return Scan.from_row(db_scan)


@router.get("/", response_model=List[Scan])
async def list_scans(
    scan_status: Optional[ScanStatus] = None,
    skip: int = 0,
    limit: int = 100,
    db: TenantScopedDatabase = Depends(get_db),
    claims: TenantClaims = Depends(get_current_claims),
) -> Any:
    """
    List the tenant's scans, newest first.
    """
    rows = crud_scan.list_scans(db, claims.tenant_id, skip=skip, limit=limit, status=scan_status)
    return [Scan.from_row(row) for row in rows]
