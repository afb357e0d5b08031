import boto3
from botocore.config import Config as BotocoreConfig
from typing import Any, Optional

from loguru import logger

from app.providers.role_assumption import AssumedCredentials

# Describe calls are paginated and cheap; let botocore absorb throttling per call.
CLIENT_CONFIG = BotocoreConfig(retries={"max_attempts": 5, "mode": "adaptive"}, connect_timeout=10, read_timeout=60)


class AwsProvider:
    """
    Boto3 session bound to one scan's assumed credentials.

    Scan-local: never cached or shared across scans.
    """

    def __init__(self, credentials: AssumedCredentials, account_id: str, region: str = "us-east-1"):
        """
        Args:
            credentials: Temporary credentials for the customer role.
            account_id: The customer's 12-digit AWS account id.
            region: Default region for clients created without an override.
        """
        self.credentials = credentials
        self.account_id = account_id
        self.region = region
        self.session = boto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
            region_name=region,
        )

    def get_client(self, service_name: str, region: Optional[str] = None) -> Any:
        """
        Get a boto3 client for the specified AWS service.

        Args:
            service_name: Name of the AWS service
            region: Optional region override

        Returns:
            Boto3 client for the specified service
        """
        try:
            return self.session.client(service_name, region_name=region or self.region, config=CLIENT_CONFIG)
        except Exception as e:
            logger.error(f"Failed to create client for {service_name}: {str(e)}")
            raise
