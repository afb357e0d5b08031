# tasks/scan_worker.py

from functools import lru_cache
from typing import Any, Dict, Optional

from celery import shared_task
from loguru import logger
from pydantic import ValidationError

from app.api.v1.schemas import ScanRequestMessage
from app.db.tenant_db import TenantScopedDatabase
from app.providers.role_assumption import RoleAssumptionClient
from app.services.credential_validator import CredentialValidator
from app.services.external_id import ExternalIdGenerator
from app.services.pricing import get_pricing_table
from app.services.scan_orchestrator import ScanOrchestrator


@lru_cache()
def get_scan_orchestrator() -> ScanOrchestrator:
    """One orchestrator (and one connection pool) per worker process."""
    db = TenantScopedDatabase.from_settings()
    return ScanOrchestrator(
        db=db,
        validator=CredentialValidator(db, ExternalIdGenerator()),
        role_client=RoleAssumptionClient(),
        pricing=get_pricing_table(),
    )


@shared_task(name="tasks.process_scan_request")
def process_scan_request(message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Celery task consuming one scan request message."""
    try:
        request = ScanRequestMessage.model_validate(message)
    except ValidationError as e:
        # Rejected before any side effect; redelivery would fail the same way.
        logger.error(f"Discarding malformed scan request; invalid fields: {[err['loc'] for err in e.errors()]}")
        return None

    logger.info(f"Background task started: scan {request.scan_id} for tenant {request.tenant_id}")
    outcome = get_scan_orchestrator().process(request)
    logger.info(f"Background task finished: scan {request.scan_id} -> {outcome.status.value}")
    return {
        "scanId": str(outcome.scan_id),
        "status": outcome.status.value,
        "volumesFound": outcome.volumes_found,
        "errors": outcome.errors,
    }
