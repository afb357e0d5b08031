import concurrent.futures
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from loguru import logger

from app.api.v1.schemas import ScanRequestMessage, ScanStatus, TERMINAL_SCAN_STATUSES
from app.core.config import settings
from app.core.exceptions import DatabaseError, InvalidRoleArnError, RoleAssumptionError
from app.crud import crud_scan, crud_volume
from app.db.tenant_db import TenantScopedDatabase, TenantSession
from app.providers.aws_provider import AwsProvider
from app.providers.role_assumption import AssumedCredentials, RoleAssumptionClient
from app.services.credential_validator import CredentialValidator
from app.services.pricing import PricingTable
from app.services.scanners.ebs_scanner import scan_region, scan_snapshots
from app.services.scanners.utils import region_error

# What tenants see for hard-abort cases. Details stay in the worker log.
VALIDATION_FAILED_MESSAGE = "Invalid account credentials or ownership"
ROLE_ASSUMPTION_FAILED_MESSAGE = "Unable to assume the customer role"
INTERNAL_ERROR_MESSAGE = "Scan failed due to an internal error"


@dataclass
class RegionResult:
    region: str
    volumes: int = 0
    snapshots: int = 0
    error: Optional[str] = None


@dataclass
class ScanOutcome:
    scan_id: UUID
    status: ScanStatus
    volumes_found: int = 0
    snapshots_found: int = 0
    errors: List[str] = field(default_factory=list)
    duplicate_delivery: bool = False


class ScanOrchestrator:
    """
    Runs one scan request end to end:
    validate -> in-progress -> assume role -> scan/persist each region -> completed | failed.

    Region failures are recorded and do not fail the scan; only validation,
    role assumption, or an unexpected error outside a region's scope does.
    """

    def __init__(
        self,
        db: TenantScopedDatabase,
        validator: CredentialValidator,
        role_client: RoleAssumptionClient,
        pricing: PricingTable,
        volume_scanner: Callable[..., List[Any]] = scan_region,
        snapshot_scanner: Callable[..., List[Any]] = scan_snapshots,
        provider_factory: Callable[..., AwsProvider] = AwsProvider,
        timeout_seconds: int = settings.SCAN_TIMEOUT_SECONDS,
        region_concurrency: int = settings.SCAN_REGION_CONCURRENCY,
        refresh_margin_seconds: int = settings.CREDENTIAL_REFRESH_MARGIN_SECONDS,
        default_regions: Optional[List[str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._db = db
        self._validator = validator
        self._role_client = role_client
        self._pricing = pricing
        self._volume_scanner = volume_scanner
        self._snapshot_scanner = snapshot_scanner
        self._provider_factory = provider_factory
        self._timeout_seconds = timeout_seconds
        self._region_concurrency = max(1, region_concurrency)
        self._refresh_margin_seconds = refresh_margin_seconds
        self._default_regions = default_regions if default_regions is not None else list(settings.DEFAULT_SCAN_REGIONS)
        self._clock = clock

    def process(self, request: ScanRequestMessage) -> ScanOutcome:
        scan_id = request.scan_id
        deadline = self._clock() + self._timeout_seconds

        try:
            scan = crud_scan.ensure_scan(self._db, request.tenant_id, scan_id)
        except DatabaseError as e:
            # The scan id may already belong to another tenant
            logger.error(
                f"[{scan_id}] Rejected delivery: scan record could not be loaded or created "
                f"for tenant {request.tenant_id}: {e}"
            )
            return ScanOutcome(scan_id=scan_id, status=ScanStatus.FAILED)
        if ScanStatus(scan["status"]) in TERMINAL_SCAN_STATUSES:
            logger.warning(f"[{scan_id}] Scan already {scan['status']}; ignoring redelivered request.")
            return ScanOutcome(scan_id=scan_id, status=ScanStatus(scan["status"]), duplicate_delivery=True)

        try:
            return self._run(request, deadline)
        except Exception as e:
            logger.exception(f"[{scan_id}] Scan aborted by unexpected error: {e}")
            self._fail(request, INTERNAL_ERROR_MESSAGE)
            return ScanOutcome(scan_id=scan_id, status=ScanStatus.FAILED)

    def _run(self, request: ScanRequestMessage, deadline: float) -> ScanOutcome:
        scan_id = request.scan_id
        logger.info(f"[{scan_id}] Processing scan for tenant {request.tenant_id}, account {request.account_id}")

        account = self._validator.verify(request.tenant_id, request.account_id, request.role_arn, request.external_id)
        if account is None:
            logger.error(f"[{scan_id}] Account validation rejected; no cross-account call will be made.")
            self._fail(request, VALIDATION_FAILED_MESSAGE)
            return ScanOutcome(scan_id=scan_id, status=ScanStatus.FAILED)

        crud_scan.update_scan_status(
            self._db, request.tenant_id, scan_id, ScanStatus.IN_PROGRESS, account_internal_id=account["id"]
        )

        credentials = self._assume(request)
        if credentials is None:
            self._fail(request, ROLE_ASSUMPTION_FAILED_MESSAGE)
            return ScanOutcome(scan_id=scan_id, status=ScanStatus.FAILED)

        regions = self._target_regions(request, account)
        logger.info(f"[{scan_id}] Scanning {len(regions)} regions: {regions}")

        results: Dict[str, RegionResult] = {}
        if self._region_concurrency == 1 or len(regions) <= 1:
            for region in regions:
                if credentials.expires_within(self._refresh_margin_seconds):
                    logger.info(f"[{scan_id}] Credentials close to expiry, re-assuming role before {region}.")
                    credentials = self._assume(request)
                    if credentials is None:
                        self._fail(request, ROLE_ASSUMPTION_FAILED_MESSAGE)
                        return ScanOutcome(scan_id=scan_id, status=ScanStatus.FAILED)
                results[region] = self._scan_and_store(request, account["id"], region, credentials, deadline)
        else:
            workers = min(self._region_concurrency, len(regions))
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                futures_map = {
                    executor.submit(self._scan_and_store, request, account["id"], region, credentials, deadline): region
                    for region in regions
                }
                for future in concurrent.futures.as_completed(futures_map):
                    results[futures_map[future]] = future.result()

        ordered = [results[region] for region in regions]
        errors = [r.error for r in ordered if r.error]
        outcome = ScanOutcome(
            scan_id=scan_id,
            status=ScanStatus.COMPLETED,
            volumes_found=sum(r.volumes for r in ordered),
            snapshots_found=sum(r.snapshots for r in ordered),
            errors=errors,
        )
        crud_scan.update_scan_status(
            self._db,
            request.tenant_id,
            scan_id,
            ScanStatus.COMPLETED,
            metrics={
                "volumesFound": outcome.volumes_found,
                "snapshotsFound": outcome.snapshots_found,
                "errors": errors,
            },
        )
        logger.info(
            f"[{scan_id}] Scan completed: {outcome.volumes_found} volumes, "
            f"{outcome.snapshots_found} snapshots, {len(errors)} region errors."
        )
        return outcome

    def _assume(self, request: ScanRequestMessage) -> Optional[AssumedCredentials]:
        try:
            return self._role_client.assume(request.role_arn, request.external_id, str(request.scan_id))
        except (InvalidRoleArnError, RoleAssumptionError) as e:
            logger.error(f"[{request.scan_id}] Role assumption failed for {request.role_arn}: {e}")
            return None

    def _target_regions(self, request: ScanRequestMessage, account: Dict[str, Any]) -> List[str]:
        regions = request.regions or account.get("regions") or self._default_regions
        # Deduplicate, keeping request order
        return list(dict.fromkeys(r.strip() for r in regions if r and r.strip()))

    def _scan_and_store(
        self,
        request: ScanRequestMessage,
        account_internal_id: UUID,
        region: str,
        credentials: AssumedCredentials,
        deadline: float,
    ) -> RegionResult:
        scan_id = request.scan_id
        if self._clock() >= deadline:
            logger.warning(f"[{scan_id}] Scan time limit reached before {region}; skipping region.")
            return RegionResult(region=region, error=f"{region}: skipped, scan time limit reached")

        try:
            logger.info(f"[{scan_id}] Scanning region {region} for account {request.account_id}")
            provider = self._provider_factory(credentials, request.account_id, region)
            volumes = self._volume_scanner(provider, region, request.tenant_id, account_internal_id, self._pricing)
            snapshots = self._snapshot_scanner(provider, region, request.tenant_id, request.account_id)

            def _store(session: TenantSession) -> None:
                crud_volume.upsert_volumes(session, volumes)
                crud_volume.upsert_snapshots(session, snapshots)

            self._db.transaction_with_tenant(request.tenant_id, _store)
            return RegionResult(region=region, volumes=len(volumes), snapshots=len(snapshots))
        except Exception as e:
            logger.error(f"[{scan_id}] Error scanning region {region}: {e}")
            return RegionResult(region=region, error=region_error(region, e))

    def _fail(self, request: ScanRequestMessage, message: str) -> None:
        try:
            crud_scan.update_scan_status(self._db, request.tenant_id, request.scan_id, ScanStatus.FAILED, error_message=message)
        except DatabaseError as e:
            logger.error(f"[{request.scan_id}] Could not record failed status: {e}")
