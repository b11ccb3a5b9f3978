"""Database session bound to an environment and an operator.

A DatabaseSession owns one SQLAlchemy connection, reached through a
port-forward tunnel it also owns. Workflows use it for transaction scoping
and for the small query helpers the MySQL store is built on.
"""

from __future__ import annotations

import logging
import ssl
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Mapping

from sqlalchemy import URL, create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from wgfops.core.config import Environment, Settings
from wgfops.core.errors import TunnelError, TunnelTimeout, WgfOpsError
from wgfops.core.jobs import ClusterGateway
from wgfops.core.tunnel import TunnelHandle

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10

AUDIT_LOG_DDL = """
CREATE TABLE IF NOT EXISTS admin_audit_log (
  id BIGINT NOT NULL AUTO_INCREMENT PRIMARY KEY,
  action_type VARCHAR(64) NOT NULL,
  target_table VARCHAR(64) NOT NULL,
  target_uuid BINARY(16) NULL,
  details JSON NULL,
  operator VARCHAR(128) NOT NULL,
  environment VARCHAR(16) NOT NULL,
  executed_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
  INDEX idx_admin_audit_log_target (target_uuid),
  INDEX idx_admin_audit_log_executed (executed_at)
)
"""

# MySQL client/server error codes
_ER_ACCESS_DENIED = 1045
_ER_BAD_DB = 1049
_CR_CONN_HOST_ERROR = 2003
_CR_SERVER_LOST = 2013
_CR_SERVER_GONE = 2006


class SessionErrorKind(str, Enum):
    ACCESS_DENIED = "ACCESS_DENIED"
    DATABASE_MISSING = "DATABASE_MISSING"
    UNREACHABLE = "UNREACHABLE"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


_HINTS = {
    SessionErrorKind.ACCESS_DENIED: "Wrong credentials. Check the DB user/password in the env file.",
    SessionErrorKind.DATABASE_MISSING: "The database does not exist on this server. Check the DB name in the env file.",
    SessionErrorKind.UNREACHABLE: "The server could not be reached through the tunnel. Check the pod name and port.",
    SessionErrorKind.TIMEOUT: "The server did not answer in time. Try again.",
    SessionErrorKind.UNKNOWN: "Unexpected error while connecting.",
}


class SessionError(WgfOpsError):
    """Raised when a session cannot be established."""

    def __init__(self, kind: SessionErrorKind, message: str):
        super().__init__(message)
        self.kind = kind

    @property
    def hint(self) -> str:
        return _HINTS[self.kind]


def classify_error(exc: BaseException) -> SessionErrorKind:
    """Map a connection failure to a SessionErrorKind."""
    if isinstance(exc, TunnelTimeout):
        return SessionErrorKind.TIMEOUT
    if isinstance(exc, TunnelError):
        return SessionErrorKind.UNREACHABLE

    orig = exc.orig if isinstance(exc, DBAPIError) else exc
    args = getattr(orig, "args", ())
    code = args[0] if args and isinstance(args[0], int) else None

    if code == _ER_ACCESS_DENIED:
        return SessionErrorKind.ACCESS_DENIED
    if code == _ER_BAD_DB:
        return SessionErrorKind.DATABASE_MISSING
    if code == _CR_CONN_HOST_ERROR or isinstance(orig, ConnectionRefusedError):
        return SessionErrorKind.UNREACHABLE
    if code in (_CR_SERVER_LOST, _CR_SERVER_GONE) or isinstance(
        orig, (TimeoutError, ConnectionResetError)
    ):
        return SessionErrorKind.TIMEOUT
    return SessionErrorKind.UNKNOWN


def _unverified_tls_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def mysql_engine(
    *, host: str, port: int, user: str, password: str, database: str
) -> Engine:
    """Create a single-connection PyMySQL engine (TLS, certificate unchecked)."""
    url = URL.create(
        "mysql+pymysql",
        username=user,
        password=password,
        host=host,
        port=port,
        database=database,
    )
    return create_engine(
        url,
        poolclass=NullPool,
        connect_args={
            "connect_timeout": CONNECT_TIMEOUT_SECONDS,
            "ssl": _unverified_tls_context(),
            "charset": "utf8mb4",
        },
    )


@dataclass
class DatabaseSession:
    """
    A live connection tied to one environment and one operator.

    Attributes:
        connection: SQLAlchemy connection used for every statement.
        environment: Immutable for the session lifetime.
        operator: Free-text operator name recorded in the audit log.
        tunnel: Port-forward owned by this session.
    """

    connection: Connection
    environment: Environment
    operator: str
    tunnel: TunnelHandle | None = None
    engine: Engine | None = None
    gateway: ClusterGateway | None = None
    database: str = ""
    _in_transaction: bool = field(default=False, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    # -- transaction scoping --------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def begin(self) -> None:
        if self._in_transaction:
            raise RuntimeError("A transaction is already open on this session")
        self.connection.begin()
        self._in_transaction = True

    def commit(self) -> None:
        try:
            self.connection.commit()
        finally:
            self._in_transaction = False

    def rollback(self) -> None:
        try:
            self.connection.rollback()
        finally:
            self._in_transaction = False

    @contextmanager
    def transaction(self) -> Iterator[DatabaseSession]:
        """Commit on success; roll back and re-raise on any exception."""
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    # -- statements ------------------------------------------------------

    def _after_statement(self) -> None:
        # Outside an explicit transaction every statement is its own unit of
        # work, so the next read sees rows written by backend services.
        if not self._in_transaction:
            self.connection.commit()

    def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict]:
        rows = [dict(r) for r in self.connection.execute(text(sql), dict(params or {})).mappings()]
        self._after_statement()
        return rows

    def fetch_one(self, sql: str, params: Mapping[str, Any] | None = None) -> dict | None:
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """Run a write statement and return the affected row count."""
        result = self.connection.execute(text(sql), dict(params or {}))
        count = result.rowcount
        self._after_statement()
        return count

    def describe(self) -> int:
        """Return the number of tables in the session's schema."""
        row = self.fetch_one(
            "SELECT COUNT(*) AS total FROM information_schema.tables "
            "WHERE table_schema = :schema",
            {"schema": self.database},
        )
        return int(row["total"]) if row else 0

    # -- lifecycle -------------------------------------------------------

    def close(self) -> None:
        """Close the connection then the tunnel. Errors are swallowed."""
        if self._closed:
            return
        self._closed = True
        _release(self.connection, self.engine, self.tunnel, self.gateway)


def _release(
    connection: Connection | None,
    engine: Engine | None,
    tunnel: TunnelHandle | None,
    gateway: ClusterGateway | None,
) -> None:
    if connection is not None:
        try:
            connection.close()
        except SQLAlchemyError as exc:
            logger.debug("ignoring error while closing connection: %s", exc)
    if engine is not None:
        try:
            engine.dispose()
        except SQLAlchemyError as exc:
            logger.debug("ignoring error while disposing engine: %s", exc)
    if tunnel is not None and gateway is not None:
        gateway.close_tunnel(tunnel)


def create_session(
    settings: Settings,
    environment: Environment,
    operator: str,
    *,
    gateway: ClusterGateway,
    engine_factory: Callable[..., Engine] = mysql_engine,
) -> DatabaseSession:
    """
    Open a tunnel, connect, validate and prepare the audit table.

    Raises:
        SessionError: Categorized failure. The tunnel and the connection have
            been released when this propagates.
    """
    env_config = settings.environment(environment)
    tunnel: TunnelHandle | None = None
    engine: Engine | None = None
    connection: Connection | None = None

    try:
        tunnel = gateway.open_tunnel(env_config)
        engine = engine_factory(
            host="127.0.0.1",
            port=tunnel.local_port,
            user=env_config.user,
            password=env_config.password,
            database=env_config.database,
        )
        connection = engine.connect()
        connection.execute(text("SELECT 1"))
        connection.execute(text(AUDIT_LOG_DDL))
        connection.commit()
    except (WgfOpsError, SQLAlchemyError, OSError) as exc:
        _release(connection, engine, tunnel, gateway)
        if isinstance(exc, WgfOpsError) and not isinstance(exc, TunnelError):
            # ToolingUnavailable and friends already carry a precise message.
            raise
        kind = classify_error(exc)
        raise SessionError(kind, f"{environment.label}: {exc}") from exc

    logger.info(
        "session opened on %s (%s) for operator %s",
        environment.value,
        env_config.database,
        operator,
    )
    return DatabaseSession(
        connection=connection,
        environment=environment,
        operator=operator,
        tunnel=tunnel,
        engine=engine,
        gateway=gateway,
        database=env_config.database,
    )
