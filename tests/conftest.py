# tests/conftest.py

import os

# Settings are read at import time
os.environ.setdefault("EXTERNAL_ID_SECRET", "test-external-id-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import datetime
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from app.crud import crud_account
from app.db import models
from app.db.tenant_db import TenantScopedDatabase
from app.providers.role_assumption import AssumedCredentials
from app.services.external_id import ExternalIdGenerator
from app.services.scanners.schemas import VolumeRecord

TEST_SECRET = "unit-test-secret"
ROLE_NAME = "EBSVolumeManager-CustomerRole"


@pytest.fixture
def engine_state():
    """
    In-memory SQLite standing in for PostgreSQL: one shared connection (a pool of
    size 1), with set_config/current_setting emulated per connection.
    """
    state = SimpleNamespace(settings={}, statements=[])
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_connection, connection_record):
        def set_config(name, value, is_local):
            state.settings[name] = value
            return value

        def current_setting(name, missing_ok=None):
            return state.settings.get(name, "")

        dbapi_connection.create_function("set_config", 3, set_config)
        dbapi_connection.create_function("current_setting", 1, current_setting)
        dbapi_connection.create_function("current_setting", 2, current_setting)

    @event.listens_for(engine, "before_cursor_execute")
    def _record(conn, cursor, statement, parameters, context, executemany):
        state.statements.append((statement, parameters))

    models.Base.metadata.create_all(engine)
    state.engine = engine
    state.statements.clear()
    yield state
    engine.dispose()


@pytest.fixture
def tenant_db(engine_state):
    return TenantScopedDatabase(engine_state.engine, setting_name="app.current_tenant_id")


@pytest.fixture
def external_ids():
    return ExternalIdGenerator(TEST_SECRET)


@pytest.fixture
def register_account(tenant_db, external_ids):
    """Register an active account for a tenant and return its stored row."""
    def _register(tenant_id, account_id="123456789012", regions=None):
        return crud_account.create_account(
            tenant_db,
            tenant_id,
            account_id=account_id,
            role_arn=f"arn:aws:iam::{account_id}:role/{ROLE_NAME}",
            external_id=external_ids.generate(tenant_id, account_id),
            regions=regions,
        )
    return _register


def make_credentials(expires_in_seconds=3600):
    return AssumedCredentials(
        access_key_id="ASIATESTKEY",
        secret_access_key="secret",
        session_token="token",
        expiration=datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=expires_in_seconds),
    )


def make_volume(tenant_id, account_internal_id, volume_id, region="us-east-1", state="available", **overrides):
    values = dict(
        tenant_id=tenant_id,
        account_internal_id=account_internal_id,
        volume_id=volume_id,
        size_gb=100,
        volume_type="gp3",
        state=state,
        region=region,
        iops=3000,
        cost_per_month=8.0,
        tags={"Name": volume_id},
        scanned_at=datetime.datetime.now(datetime.timezone.utc),
    )
    values.update(overrides)
    return VolumeRecord(**values)


@pytest.fixture
def credentials_factory():
    return make_credentials


@pytest.fixture
def volume_factory():
    return make_volume


@pytest.fixture
def scan_id():
    return uuid.uuid4()
