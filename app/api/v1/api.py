from fastapi import APIRouter

from app.api.v1.endpoints import accounts, scan, volumes

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(scan.router, prefix="/scans", tags=["EBS Scanning"])
api_router.include_router(accounts.router, prefix="/accounts", tags=["AWS Accounts"])
api_router.include_router(volumes.router, prefix="/volumes", tags=["EBS Volumes"])
