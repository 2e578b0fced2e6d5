"""
Databricks connection management.

Resolves connection settings (explicit host/HTTP path, the composite
``default`` connection string, or a stored secret), opens connections through
databricks-sql-connector with retry, and wraps them in a facade that makes
the lack of transaction support explicit.
"""

import re
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Generator, Optional, Sequence, Tuple

from databricks import sql

from databricks_federation.config.settings import DEFAULT_PORT, Settings, get_settings
from databricks_federation.infrastructure.sql import DatabricksDialect, Dialect
from databricks_federation.utils.logging import get_logger, mask_connection_string

from .exceptions import ConnectorError, ErrorClassification, map_exception
from .metrics import RequestContext
from .retry import CONNECTION_RETRYABLE, execute_with_retry
from .secrets import EnvironmentSecretStore, SecretPayload, SecretStore, load_secret_payload

logger = get_logger(__name__)

VALIDATION_QUERY = "SELECT 1"

_HTTP_PATH_PARAM = re.compile(r"(?i)httpPath=([^;&]+)")


@dataclass(frozen=True)
class ConnectionConfig:
    """Everything needed to open one Databricks connection."""

    server_hostname: str
    http_path: str
    access_token: str
    catalog: Optional[str] = None
    schema: Optional[str] = None
    port: int = DEFAULT_PORT

    def __repr__(self) -> str:
        return (
            f"ConnectionConfig(server_hostname={self.server_hostname!r}, "
            f"http_path={self.http_path!r}, access_token='***', "
            f"catalog={self.catalog!r}, schema={self.schema!r}, port={self.port})"
        )


def parse_default_connection_string(value: str) -> Tuple[str, int, str]:
    """
    Split a composite connection string into host, port and HTTP path.

    Accepted forms::

        databricks://host[:port]/http/path
        jdbc:databricks://host[:port];httpPath=/http/path
        host.cloud.databricks.com[:port]/http/path

    Raises:
        ValueError: For any other format
    """
    text = value.strip()
    if text.lower().startswith("jdbc:"):
        text = text[len("jdbc:"):]

    if text.lower().startswith("databricks://"):
        remainder = text[len("databricks://"):]
    elif ".databricks.com" in text.lower():
        remainder = text
    else:
        raise ValueError(f"Invalid connection string format: {mask_connection_string(value)}")

    http_path = ""
    param_match = _HTTP_PATH_PARAM.search(remainder)
    if param_match:
        http_path = param_match.group(1)
    authority, _, rest = remainder.split(";", 1)[0].partition("/")
    if not http_path and rest:
        http_path = "/" + rest

    host, _, port_text = authority.partition(":")
    if not host:
        raise ValueError(f"Invalid connection string format: {mask_connection_string(value)}")
    try:
        port = int(port_text) if port_text else DEFAULT_PORT
    except ValueError as exc:
        raise ValueError(f"Invalid port in connection string: {port_text}") from exc
    if http_path and not http_path.startswith("/"):
        http_path = "/" + http_path
    return host, port, http_path


def resolve_connection_config(
    settings: Settings,
    secret_store: SecretStore,
    catalog: Optional[str] = None,
) -> ConnectionConfig:
    """
    Resolve connection settings for one connection attempt.

    Host and HTTP path come from, in order: explicit settings, the composite
    ``default`` connection string, the secret. The access token comes from
    settings or else the secret.

    Raises:
        ConnectorError: InvalidInput when no host/path can be resolved or the
            connection string is malformed; InvalidCredentials when no token
            is available
    """
    host: Optional[str] = None
    http_path: Optional[str] = None
    port = settings.port
    secret: Optional[SecretPayload] = None

    if settings.host and settings.http_path:
        host, http_path = settings.host, settings.http_path
    elif settings.default_connection_string:
        try:
            host, port, http_path = parse_default_connection_string(
                settings.default_connection_string
            )
        except ValueError as exc:
            raise ConnectorError(
                ErrorClassification.INVALID_INPUT, str(exc), original_error=exc
            ) from exc

    if not (host and http_path) or not settings.token:
        secret = _load_secret(secret_store, settings.secret_name)

    if secret is not None and not (host and http_path):
        host = host or secret.server_hostname
        http_path = http_path or secret.http_path

    if not (host and http_path):
        raise ConnectorError(
            ErrorClassification.INVALID_INPUT,
            "Either DATABRICKS_HOST/DATABRICKS_HTTP_PATH, the 'default' connection "
            f"string or secret '{settings.secret_name}' with server_hostname/http_path is required",
        )

    token = settings.token or (secret.access_token if secret else None)
    if not token:
        raise ConnectorError(
            ErrorClassification.INVALID_CREDENTIALS,
            f"No access token configured (DATABRICKS_TOKEN or secret '{settings.secret_name}')",
        )

    return ConnectionConfig(
        server_hostname=host,
        http_path=http_path,
        access_token=token,
        catalog=catalog or settings.default_catalog,
        schema=settings.default_schema,
        port=port,
    )


def _load_secret(secret_store: SecretStore, secret_name: str) -> Optional[SecretPayload]:
    try:
        return load_secret_payload(secret_store, secret_name)
    except KeyError:
        logger.debug("connection.secret_missing", secret_name=secret_name)
        return None


class DatabricksConnection:
    """
    Facade over a databricks-sql-connector connection.

    Transaction calls are no-ops when the dialect reports
    ``supports_transactions = False``; they are logged at debug level so the
    skip stays visible.
    """

    def __init__(self, raw: Any, dialect: Dialect, config: Optional[ConnectionConfig] = None):
        self.raw = raw
        self.dialect = dialect
        self.config = config
        self._closed = False

    @property
    def autocommit(self) -> bool:
        return not self.dialect.supports_transactions or bool(
            getattr(self.raw, "autocommit", True)
        )

    def set_autocommit(self, enabled: bool) -> None:
        if not self.dialect.supports_transactions:
            logger.debug("connection.autocommit_ignored", requested=enabled)
            return
        self.raw.autocommit = enabled

    def commit(self) -> None:
        if not self.dialect.supports_transactions:
            logger.debug("connection.commit_ignored")
            return
        self.raw.commit()

    def rollback(self) -> None:
        if not self.dialect.supports_transactions:
            logger.debug("connection.rollback_ignored")
            return
        self.raw.rollback()

    def cursor(self) -> Any:
        return self.raw.cursor()

    def execute(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> Any:
        """Execute a statement and return the open cursor."""
        cursor = self.raw.cursor()
        if parameters is None:
            cursor.execute(statement)
        else:
            cursor.execute(statement, list(parameters))
        return cursor

    def is_valid(self) -> bool:
        cursor = self.raw.cursor()
        try:
            cursor.execute(VALIDATION_QUERY)
            cursor.fetchall()
            return True
        finally:
            cursor.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.raw.close()

    def __enter__(self) -> "DatabricksConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ConnectionManager:
    """
    Opens validated Databricks connections with retry.

    Example:
        >>> manager = ConnectionManager()
        >>> with manager.connection() as conn:
        ...     cursor = conn.execute("SELECT current_catalog()")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        secret_store: Optional[SecretStore] = None,
        dialect: Optional[Dialect] = None,
        connect: Optional[Callable[..., Any]] = None,
    ):
        self.settings = settings or get_settings()
        self.secret_store = secret_store or EnvironmentSecretStore()
        self.dialect = dialect or DatabricksDialect()
        self._connect = connect or sql.connect

    def get_connection(
        self, catalog: Optional[str] = None, context: Optional[RequestContext] = None
    ) -> DatabricksConnection:
        """
        Open and validate a connection.

        Connection and throttling failures are retried; everything else
        surfaces immediately as a classified ``ConnectorError``.
        """
        context = context or RequestContext(operation="get_connection")
        log = context.logger()
        config = resolve_connection_config(self.settings, self.secret_store, catalog)

        context.metrics.increment("connection.attempts")
        start = time.perf_counter()
        try:
            connection = execute_with_retry(
                lambda: self._open(config),
                "connection creation",
                retryable=CONNECTION_RETRYABLE,
            )
        except ConnectorError as exc:
            context.metrics.increment("connection.failures")
            log.error(
                "connection.failed",
                host=config.server_hostname,
                classification=exc.classification.value,
                duration_ms=int((time.perf_counter() - start) * 1000),
            )
            raise

        duration = time.perf_counter() - start
        context.metrics.increment("connection.successes")
        context.metrics.record_timing("connection.duration", duration)
        log.info(
            "connection.established",
            host=config.server_hostname,
            catalog=config.catalog,
            duration_ms=int(duration * 1000),
        )
        return connection

    def _open(self, config: ConnectionConfig) -> DatabricksConnection:
        kwargs = {
            "server_hostname": config.server_hostname,
            "http_path": config.http_path,
            "access_token": config.access_token,
            "_socket_timeout": self.settings.socket_timeout,
            "_retry_stop_after_attempts_duration": float(self.settings.connection_timeout),
        }
        if config.catalog:
            kwargs["catalog"] = config.catalog
        if config.schema:
            kwargs["schema"] = config.schema
        if config.port != DEFAULT_PORT:
            kwargs["_port"] = config.port

        raw = self._connect(**kwargs)
        connection = DatabricksConnection(raw, self.dialect, config)
        try:
            connection.is_valid()
        except Exception as exc:
            connection.close()
            raise map_exception("connection validation", exc) from exc
        return connection

    @contextmanager
    def connection(
        self, catalog: Optional[str] = None, context: Optional[RequestContext] = None
    ) -> Generator[DatabricksConnection, None, None]:
        """Context manager yielding a connection that is closed afterwards."""
        conn = self.get_connection(catalog, context)
        try:
            yield conn
        finally:
            conn.close()
