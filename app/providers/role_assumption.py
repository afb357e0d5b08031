import datetime
import json
import re
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.config import Config as BotocoreConfig
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from app.core.config import settings
from app.core.exceptions import InvalidRoleArnError, RoleAssumptionError

# Applied on top of whatever the customer's role grants; the session can only discover.
SCANNER_SESSION_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Action": [
                "ec2:DescribeVolumes",
                "ec2:DescribeSnapshots",
                "ec2:DescribeInstances",
            ],
            "Resource": "*",
        }
    ],
}

SESSION_NAME_PREFIX = "EBSScanner-"
_SESSION_NAME_UNSAFE = re.compile(r"[^\w+=,.@-]")


@dataclass(frozen=True)
class AssumedCredentials:
    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime.datetime

    def expires_within(self, seconds: int, now: Optional[datetime.datetime] = None) -> bool:
        now = now or datetime.datetime.now(datetime.timezone.utc)
        expiration = self.expiration
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=datetime.timezone.utc)
        return expiration - now <= datetime.timedelta(seconds=seconds)

    def __repr__(self) -> str:
        return f"AssumedCredentials(access_key_id='{self.access_key_id}', expiration='{self.expiration.isoformat()}')"


def role_arn_pattern(role_name: str) -> "re.Pattern[str]":
    return re.compile(rf"^arn:aws:iam::\d{{12}}:role/{re.escape(role_name)}$")


class RoleAssumptionClient:
    """
    Exchanges a customer role ARN + external id for short-lived, discovery-only credentials.

    Only ARNs following the fixed customer role naming convention are accepted.
    Throttling and transient STS errors are retried by botocore's standard
    retry mode (exponential backoff with jitter); anything else surfaces as
    ``RoleAssumptionError``.
    """

    def __init__(
        self,
        sts_client: Any = None,
        role_name: str = settings.CUSTOMER_ROLE_NAME,
        duration_seconds: int = settings.ASSUME_ROLE_DURATION_SECONDS,
        max_attempts: int = settings.ASSUME_ROLE_MAX_ATTEMPTS,
    ):
        self._sts_client = sts_client
        self._max_attempts = max_attempts
        self._role_pattern = role_arn_pattern(role_name)
        self.duration_seconds = duration_seconds

    @property
    def sts(self) -> Any:
        if self._sts_client is None:
            self._sts_client = boto3.client(
                "sts",
                config=BotocoreConfig(retries={"max_attempts": self._max_attempts, "mode": "standard"}),
            )
        return self._sts_client

    def validate_role_arn(self, role_arn: str) -> None:
        if not role_arn or not self._role_pattern.fullmatch(role_arn):
            raise InvalidRoleArnError("Invalid role ARN format")

    def assume(self, role_arn: str, external_id: str, session_label: str) -> AssumedCredentials:
        self.validate_role_arn(role_arn)
        role_session_name = (SESSION_NAME_PREFIX + _SESSION_NAME_UNSAFE.sub("-", str(session_label)))[:64]

        logger.info(f"Assuming role {role_arn} with session name {role_session_name}")
        try:
            response = self.sts.assume_role(
                RoleArn=role_arn,
                RoleSessionName=role_session_name,
                ExternalId=external_id,
                DurationSeconds=self.duration_seconds,
                Policy=json.dumps(SCANNER_SESSION_POLICY),
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            logger.error(f"Failed to assume role '{role_arn}'. STS Error Code: {error_code}, Message: {e}")
            raise RoleAssumptionError(f"Failed to assume role (STS error code {error_code})") from e
        except BotoCoreError as e:
            logger.error(f"Failed to reach STS while assuming role '{role_arn}': {e}")
            raise RoleAssumptionError("Failed to assume role (STS unreachable)") from e

        creds = response.get('Credentials')
        if not creds:
            logger.error(f"AssumeRole call succeeded but no credentials were returned for role {role_arn}.")
            raise RoleAssumptionError("Failed to assume role")

        logger.info(f"Assumed role {role_arn}; credentials expire at {creds['Expiration']}")
        return AssumedCredentials(
            access_key_id=creds['AccessKeyId'],
            secret_access_key=creds['SecretAccessKey'],
            session_token=creds['SessionToken'],
            expiration=creds['Expiration'],
        )
