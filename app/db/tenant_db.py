"""
Tenant-isolated access to the shared connection pool.

Every statement against tenant data runs on a borrowed connection whose
session-local tenant setting (read by the row-level security policies) is bound
as the first statement after checkout and cleared as the last statement before
the connection goes back to the pool. The raw connection never leaves this
module; callers only ever see a ``TenantSession``.
"""
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TypeVar, Union

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Executable

from app.core.config import Settings, settings
from app.core.exceptions import DatabaseError, TenantContextError
from app.db.session import SecretsManagerCredentials, create_db_engine

T = TypeVar("T")

Params = Optional[Union[Dict[str, Any], Sequence[Dict[str, Any]]]]

_SET_CONTEXT = text("SELECT set_config(:name, :value, :is_local)")


def _require_tenant(tenant_id: Optional[str]) -> str:
    if tenant_id is None or not str(tenant_id).strip():
        raise TenantContextError("Refusing database access without a tenant context.")
    return str(tenant_id)


class TenantSession:
    """
    A pooled connection bound to exactly one tenant.

    Only valid inside the ``query_with_tenant`` / ``transaction_with_tenant``
    call that created it; any use afterwards raises ``TenantContextError``.
    """

    def __init__(self, connection: Connection, tenant_id: str):
        self._connection: Optional[Connection] = connection
        self.tenant_id = tenant_id
        self.dialect_name = connection.dialect.name

    def execute(self, statement: Union[str, Executable], params: Params = None) -> List[Dict[str, Any]]:
        """Run one statement and return its rows as dicts (empty for DML)."""
        if self._connection is None:
            raise TenantContextError("Tenant session used after its connection was released.")
        if isinstance(statement, str):
            statement = text(statement)
        if params is None:
            result = self._connection.execute(statement)
        else:
            result = self._connection.execute(statement, params)
        if result.returns_rows:
            return [dict(row) for row in result.mappings()]
        return []

    def _release(self) -> None:
        self._connection = None


class TenantScopedDatabase:
    """Process-wide persistence layer. Owns the engine (and its pool) and nothing else."""

    def __init__(self, engine: Engine, setting_name: str = settings.TENANT_CONTEXT_SETTING):
        self._engine = engine
        self._setting_name = setting_name

    @classmethod
    def from_settings(
        cls,
        app_settings: Settings = settings,
        credentials: Optional[SecretsManagerCredentials] = None,
    ) -> "TenantScopedDatabase":
        if credentials is None and app_settings.DB_SECRET_ARN and not app_settings.DATABASE_URL:
            credentials = SecretsManagerCredentials(app_settings.DB_SECRET_ARN)
        engine = create_db_engine(app_settings, credentials)
        logger.info(f"Tenant-scoped database initialized (pool size {app_settings.DB_POOL_SIZE}).")
        return cls(engine, setting_name=app_settings.TENANT_CONTEXT_SETTING)

    @property
    def engine(self) -> Engine:
        return self._engine

    def _set_context(self, connection: Connection, value: str) -> None:
        connection.execute(_SET_CONTEXT, {"name": self._setting_name, "value": value, "is_local": False})
        connection.commit()

    @contextmanager
    def _scoped_connection(self, tenant_id: str) -> Iterator[Connection]:
        connection = self._engine.connect()
        try:
            self._set_context(connection, tenant_id)
            yield connection
        finally:
            try:
                if connection.in_transaction():
                    connection.rollback()
                self._set_context(connection, "")
            except SQLAlchemyError as e:
                # A connection whose context could not be cleared must never be reused.
                logger.error(f"Failed to reset tenant context, discarding pooled connection: {e}")
                connection.invalidate()
            finally:
                connection.close()

    def query_with_tenant(self, tenant_id: str, statement: Union[str, Executable], params: Params = None) -> List[Dict[str, Any]]:
        """Execute a single statement with the tenant context bound."""
        tenant_id = _require_tenant(tenant_id)
        try:
            with self._scoped_connection(tenant_id) as connection:
                session = TenantSession(connection, tenant_id)
                try:
                    rows = session.execute(statement, params)
                    connection.commit()
                    return rows
                finally:
                    session._release()
        except SQLAlchemyError as e:
            logger.error(f"Tenant query failed for tenant {tenant_id}: {e}")
            raise DatabaseError(f"Tenant query failed: {e}") from e

    def transaction_with_tenant(self, tenant_id: str, body: Callable[[TenantSession], T]) -> T:
        """
        Run ``body`` inside BEGIN/COMMIT with the tenant context bound.

        Any exception raised by ``body`` rolls the transaction back before the
        context is reset and the connection released, then propagates.
        """
        tenant_id = _require_tenant(tenant_id)
        try:
            with self._scoped_connection(tenant_id) as connection:
                session = TenantSession(connection, tenant_id)
                try:
                    with connection.begin():
                        return body(session)
                finally:
                    session._release()
        except SQLAlchemyError as e:
            logger.error(f"Tenant transaction failed for tenant {tenant_id}: {e}")
            raise DatabaseError(f"Tenant transaction failed: {e}") from e

    def close(self) -> None:
        self._engine.dispose()
        logger.info("Tenant-scoped database pool disposed.")
