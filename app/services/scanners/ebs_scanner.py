import datetime
from typing import List
from uuid import UUID

from loguru import logger

from app.providers.aws_provider import AwsProvider
from app.services.pricing import PricingTable
from app.services.scanners.schemas import SnapshotRecord, VolumeRecord
from app.services.scanners.utils import format_tags

PAGE_SIZE = 100


def scan_region(
    aws_provider: AwsProvider,
    region: str,
    tenant_id: str,
    account_internal_id: UUID,
    pricing: PricingTable,
) -> List[VolumeRecord]:
    """Page through every EBS volume in the region and price it. Errors propagate to the caller."""
    ec2_client = aws_provider.get_client("ec2", region=region)
    scanned_at = datetime.datetime.now(datetime.timezone.utc)
    records: List[VolumeRecord] = []

    logger.debug(f"Scanning EBS Volumes in {region} for account {aws_provider.account_id}...")
    paginator = ec2_client.get_paginator('describe_volumes')
    for page in paginator.paginate(PaginationConfig={'PageSize': PAGE_SIZE}):
        for volume in page.get('Volumes', []):
            size = volume.get('Size') or 0
            volume_type = volume.get('VolumeType') or 'unknown'
            iops = volume.get('Iops') or 0
            # Only the first attachment is tracked
            attachment = (volume.get('Attachments') or [{}])[0]

            records.append(VolumeRecord(
                tenant_id=tenant_id,
                account_internal_id=account_internal_id,
                volume_id=volume['VolumeId'],
                size_gb=size,
                volume_type=volume_type,
                state=volume.get('State') or 'unknown',
                encrypted=bool(volume.get('Encrypted')),
                kms_key_id=volume.get('KmsKeyId'),
                region=region,
                availability_zone=volume.get('AvailabilityZone'),
                create_time=volume.get('CreateTime'),
                iops=volume.get('Iops'),
                throughput=volume.get('Throughput'),
                instance_id=attachment.get('InstanceId'),
                device=attachment.get('Device'),
                attach_time=attachment.get('AttachTime'),
                cost_per_month=pricing.monthly_cost(volume_type, size, iops),
                tags=format_tags(volume.get('Tags', [])),
                scanned_at=scanned_at,
            ))

    logger.debug(f"Found {len(records)} EBS Volumes in {region}.")
    return records


def scan_snapshots(aws_provider: AwsProvider, region: str, tenant_id: str, owner_account_id: str) -> List[SnapshotRecord]:
    """List the snapshots owned by the customer account in the region."""
    ec2_client = aws_provider.get_client("ec2", region=region)
    scanned_at = datetime.datetime.now(datetime.timezone.utc)
    records: List[SnapshotRecord] = []

    logger.debug(f"Scanning EBS Snapshots in {region} for account {owner_account_id}...")
    paginator = ec2_client.get_paginator('describe_snapshots')
    for page in paginator.paginate(OwnerIds=[owner_account_id], PaginationConfig={'PageSize': PAGE_SIZE}):
        for snapshot in page.get('Snapshots', []):
            records.append(SnapshotRecord(
                tenant_id=tenant_id,
                snapshot_id=snapshot['SnapshotId'],
                source_volume_id=snapshot.get('VolumeId'),
                size_gb=snapshot.get('VolumeSize') or 0,
                state=snapshot.get('State') or 'unknown',
                progress=snapshot.get('Progress'),
                encrypted=bool(snapshot.get('Encrypted')),
                kms_key_id=snapshot.get('KmsKeyId'),
                region=region,
                start_time=snapshot.get('StartTime'),
                description=snapshot.get('Description'),
                tags=format_tags(snapshot.get('Tags', [])),
                scanned_at=scanned_at,
            ))

    logger.debug(f"Found {len(records)} EBS Snapshots in {region}.")
    return records
