from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_current_claims, get_db, require_permission
from app.api.v1.schemas import TenantClaims, Volume
from app.core.exceptions import VolumeInUseError, VolumeNotFoundError
from app.crud import crud_volume
from app.db.tenant_db import TenantScopedDatabase

router = APIRouter()


@router.get("/", response_model=List[Volume])
async def list_volumes(
    state: Optional[str] = None,
    region: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: TenantScopedDatabase = Depends(get_db),
    claims: TenantClaims = Depends(get_current_claims),
) -> Any:
    return crud_volume.list_volumes(db, claims.tenant_id, skip=skip, limit=limit, state=state, region=region)


@router.delete("/{volume_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_volume(
    volume_id: str,
    db: TenantScopedDatabase = Depends(get_db),
    claims: TenantClaims = Depends(require_permission("volumes:delete")),
) -> Any:
    """
    Request deletion of an unattached volume. Admin only; the request is audited.
    """
    if not claims.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can delete volumes")
    try:
        crud_volume.request_volume_deletion(db, claims.tenant_id, volume_id, claims.user_id, claims.user_role)
    except VolumeNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Volume not found")
    except VolumeInUseError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return {"message": "Volume deletion initiated", "volumeId": volume_id, "status": "deleting"}
