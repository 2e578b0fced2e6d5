"""
Unit tests for connection resolution, the connection facade and
ConnectionManager, with a mocked databricks-sql-connector.
"""

from unittest.mock import MagicMock, Mock

import pytest

from databricks_federation.config import Settings
from databricks_federation.infrastructure.sql import DatabricksDialect
from databricks_federation.io.connectors.connection_manager import (
    VALIDATION_QUERY,
    ConnectionManager,
    DatabricksConnection,
    parse_default_connection_string,
    resolve_connection_config,
)
from databricks_federation.io.connectors.exceptions import ConnectorError, ErrorClassification
from databricks_federation.io.connectors.metrics import RequestContext
from databricks_federation.io.connectors.secrets import EnvironmentSecretStore

SECRET_JSON = (
    '{"password": "dapi-from-secret", "server_hostname": "secret.cloud.databricks.com",'
    ' "http_path": "/sql/1.0/warehouses/secret"}'
)


def bare_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.mark.unit
class TestParseDefaultConnectionString:
    """Tests for parse_default_connection_string."""

    def test_databricks_url(self):
        assert parse_default_connection_string(
            "databricks://adb-1.azuredatabricks.net:443/sql/1.0/warehouses/abc"
        ) == ("adb-1.azuredatabricks.net", 443, "/sql/1.0/warehouses/abc")

    def test_jdbc_style_with_http_path_param(self):
        assert parse_default_connection_string(
            "jdbc:databricks://dbc-1.cloud.databricks.com:8443;httpPath=/sql/1.0/warehouses/x;PWD=secret"
        ) == ("dbc-1.cloud.databricks.com", 8443, "/sql/1.0/warehouses/x")

    def test_bare_databricks_host(self):
        assert parse_default_connection_string(
            "dbc-1.cloud.databricks.com/sql/1.0/warehouses/x"
        ) == ("dbc-1.cloud.databricks.com", 443, "/sql/1.0/warehouses/x")

    @pytest.mark.parametrize("value", ["mysql://host/db", "localhost:5432/db"])
    def test_other_formats_rejected(self, value):
        with pytest.raises(ValueError, match="Invalid connection string format"):
            parse_default_connection_string(value)


@pytest.mark.unit
class TestResolveConnectionConfig:
    """Tests for resolve_connection_config resolution order."""

    def test_explicit_host_and_path(self, settings):
        store = Mock()
        config = resolve_connection_config(settings, store)

        assert config.server_hostname == "adb-1234567890.12.azuredatabricks.net"
        assert config.http_path == "/sql/1.0/warehouses/abc123"
        assert config.access_token == "dapi-test-token"
        assert config.catalog == "main"
        store.get_secret.assert_not_called()

    def test_default_connection_string_with_secret_token(self):
        settings = bare_settings(
            default_connection_string="databricks://h.cloud.databricks.com:443/sql/wh"
        )
        store = EnvironmentSecretStore({"ATHENADATABRICKSFEDERATION_DEFAULT": SECRET_JSON})

        config = resolve_connection_config(settings, store)

        assert config.server_hostname == "h.cloud.databricks.com"
        assert config.http_path == "/sql/wh"
        assert config.access_token == "dapi-from-secret"

    def test_secret_supplies_everything(self):
        store = EnvironmentSecretStore({"ATHENADATABRICKSFEDERATION_DEFAULT": SECRET_JSON})
        config = resolve_connection_config(bare_settings(), store, catalog="analytics")

        assert config.server_hostname == "secret.cloud.databricks.com"
        assert config.http_path == "/sql/1.0/warehouses/secret"
        assert config.catalog == "analytics"

    def test_malformed_connection_string_is_invalid_input(self):
        settings = bare_settings(default_connection_string="postgres://x/y", token="t")
        with pytest.raises(ConnectorError) as exc_info:
            resolve_connection_config(settings, EnvironmentSecretStore({}))
        assert exc_info.value.classification is ErrorClassification.INVALID_INPUT

    def test_nothing_configured_is_invalid_input(self):
        with pytest.raises(ConnectorError) as exc_info:
            resolve_connection_config(bare_settings(), EnvironmentSecretStore({}))
        assert exc_info.value.classification is ErrorClassification.INVALID_INPUT

    def test_missing_token_is_invalid_credentials(self):
        settings = bare_settings(host="h", http_path="/p")
        with pytest.raises(ConnectorError) as exc_info:
            resolve_connection_config(settings, EnvironmentSecretStore({}))
        assert exc_info.value.classification is ErrorClassification.INVALID_CREDENTIALS

    def test_repr_hides_token(self, settings):
        config = resolve_connection_config(settings, Mock())
        assert "dapi-test-token" not in repr(config)


@pytest.mark.unit
class TestDatabricksConnection:
    """Tests for the connection facade."""

    def test_transaction_calls_are_noops(self):
        raw = MagicMock()
        conn = DatabricksConnection(raw, DatabricksDialect())

        conn.set_autocommit(False)
        conn.commit()
        conn.rollback()

        raw.commit.assert_not_called()
        raw.rollback.assert_not_called()
        assert conn.autocommit is True

    def test_transactional_dialect_delegates(self):
        dialect = Mock(supports_transactions=True)
        raw = MagicMock()
        conn = DatabricksConnection(raw, dialect)

        conn.commit()
        conn.rollback()

        raw.commit.assert_called_once()
        raw.rollback.assert_called_once()

    def test_execute_passes_parameters_as_list(self):
        raw = MagicMock()
        cursor = raw.cursor.return_value
        conn = DatabricksConnection(raw, DatabricksDialect())

        assert conn.execute("SELECT ?", ("a",)) is cursor
        cursor.execute.assert_called_once_with("SELECT ?", ["a"])

    def test_close_is_idempotent(self):
        raw = MagicMock()
        with DatabricksConnection(raw, DatabricksDialect()) as conn:
            pass
        conn.close()
        raw.close.assert_called_once()
        assert conn.closed


@pytest.mark.unit
class TestConnectionManager:
    """Tests for ConnectionManager.get_connection."""

    def test_connects_and_validates(self, settings):
        raw = MagicMock()
        connect = Mock(return_value=raw)
        manager = ConnectionManager(settings, secret_store=Mock(), connect=connect)
        context = RequestContext(query_id="q-1")

        conn = manager.get_connection(context=context)

        assert conn.raw is raw
        kwargs = connect.call_args.kwargs
        assert kwargs["server_hostname"] == settings.host
        assert kwargs["http_path"] == settings.http_path
        assert kwargs["access_token"] == "dapi-test-token"
        assert kwargs["catalog"] == "main"
        assert kwargs["_socket_timeout"] == settings.socket_timeout
        raw.cursor.return_value.execute.assert_called_once_with(VALIDATION_QUERY)
        assert context.metrics.count("connection.successes") == 1

    def test_connection_timeout_bounds_driver_retries(self, settings):
        connect = Mock(return_value=MagicMock())
        tuned = settings.model_copy(update={"connection_timeout": 12})
        manager = ConnectionManager(tuned, secret_store=Mock(), connect=connect)

        manager.get_connection()

        assert connect.call_args.kwargs["_retry_stop_after_attempts_duration"] == 12.0

    def test_retries_connection_errors(self, settings, no_sleep):
        raw = MagicMock()
        connect = Mock(side_effect=[OSError("Connection refused"), raw])
        manager = ConnectionManager(settings, secret_store=Mock(), connect=connect)

        conn = manager.get_connection()

        assert conn.raw is raw
        assert connect.call_count == 2
        assert no_sleep == [1.0]

    def test_auth_failure_not_retried(self, settings, no_sleep):
        connect = Mock(side_effect=Exception("Invalid token"))
        manager = ConnectionManager(settings, secret_store=Mock(), connect=connect)
        context = RequestContext()

        with pytest.raises(ConnectorError) as exc_info:
            manager.get_connection(context=context)

        assert exc_info.value.classification is ErrorClassification.INVALID_CREDENTIALS
        assert connect.call_count == 1
        assert context.metrics.count("connection.failures") == 1

    def test_failed_validation_closes_connection(self, settings, no_sleep):
        raw = MagicMock()
        raw.cursor.return_value.execute.side_effect = Exception("Access denied")
        manager = ConnectionManager(settings, secret_store=Mock(), connect=Mock(return_value=raw))

        with pytest.raises(ConnectorError):
            manager.get_connection()
        raw.close.assert_called_once()

    def test_context_manager_closes(self, settings):
        raw = MagicMock()
        manager = ConnectionManager(settings, secret_store=Mock(), connect=Mock(return_value=raw))

        with manager.connection() as conn:
            assert not conn.closed
        raw.close.assert_called_once()
