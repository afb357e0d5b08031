import json
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError
from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.orm import declarative_base

from app.core.config import Settings, settings
from app.core.exceptions import ConfigurationError

# Create a Base class for declarative class definitions
Base = declarative_base()


class SecretsManagerCredentials:
    """Database username/password held in AWS Secrets Manager, fetched once per instance."""

    def __init__(self, secret_arn: str, client: Any = None):
        self.secret_arn = secret_arn
        self._client = client
        self._cached: Optional[Dict[str, str]] = None

    def get(self) -> Dict[str, str]:
        if self._cached is not None:
            return self._cached

        client = self._client or boto3.client("secretsmanager")
        try:
            response = client.get_secret_value(SecretId=self.secret_arn)
        except ClientError as e:
            logger.error(f"Failed to read database secret {self.secret_arn}: {e}")
            raise ConfigurationError("Database credentials could not be loaded from Secrets Manager.") from e

        secret_string = response.get("SecretString")
        if not secret_string:
            raise ConfigurationError("Database credentials not found in secret.")
        secret = json.loads(secret_string)
        self._cached = {"username": secret["username"], "password": secret["password"]}
        return self._cached


def build_database_url(app_settings: Settings = settings, credentials: Optional[SecretsManagerCredentials] = None):
    """Resolve the database URL from DATABASE_URL or from the Secrets Manager secret + host."""
    if app_settings.DATABASE_URL:
        return app_settings.DATABASE_URL
    if not app_settings.DB_SECRET_ARN or not app_settings.DB_HOST:
        raise ConfigurationError("Set DATABASE_URL, or both DB_SECRET_ARN and DB_HOST.")

    credentials = credentials or SecretsManagerCredentials(app_settings.DB_SECRET_ARN)
    secret = credentials.get()
    return URL.create(
        "postgresql+psycopg2",
        username=secret["username"],
        password=secret["password"],
        host=app_settings.DB_HOST,
        port=app_settings.DB_PORT,
        database=app_settings.DB_NAME,
        query={"sslmode": "require"},
    )


def create_db_engine(app_settings: Settings = settings, credentials: Optional[SecretsManagerCredentials] = None) -> Engine:
    url = build_database_url(app_settings, credentials)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=app_settings.DB_POOL_SIZE,
        max_overflow=0,
        pool_timeout=app_settings.DB_POOL_TIMEOUT_SECONDS,
        pool_recycle=app_settings.DB_POOL_RECYCLE_SECONDS,
    )
