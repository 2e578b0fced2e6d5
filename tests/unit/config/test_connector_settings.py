"""
Unit tests for connector settings.
"""

import pytest
from pydantic import ValidationError

from databricks_federation.config import (
    DEFAULT_SECRET_NAME,
    MAX_SPLITS_PER_REQUEST,
    Settings,
    get_settings,
    resolve_catalog_name,
)


@pytest.mark.unit
class TestSettings:
    """Tests for Settings loading."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.host is None
        assert settings.port == 443
        assert settings.secret_name == DEFAULT_SECRET_NAME
        assert settings.fetch_size == 1000
        assert settings.max_splits_per_request == MAX_SPLITS_PER_REQUEST
        assert settings.query_passthrough_enabled is False

    def test_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("DATABRICKS_HOST", "adb-1.azuredatabricks.net")
        monkeypatch.setenv("DATABRICKS_HTTP_PATH", "/sql/1.0/warehouses/w")
        monkeypatch.setenv("DATABRICKS_FETCH_SIZE", "250")
        monkeypatch.setenv("DATABRICKS_QUERY_PASSTHROUGH_ENABLED", "true")

        settings = Settings(_env_file=None)

        assert settings.host == "adb-1.azuredatabricks.net"
        assert settings.http_path == "/sql/1.0/warehouses/w"
        assert settings.fetch_size == 250
        assert settings.query_passthrough_enabled is True

    def test_bare_default_connection_string(self, monkeypatch):
        monkeypatch.setenv("default", "databricks://h.cloud.databricks.com/sql/wh")
        settings = Settings(_env_file=None)
        assert settings.default_connection_string == "databricks://h.cloud.databricks.com/sql/wh"

    def test_catalog_aliases(self, monkeypatch):
        monkeypatch.setenv("DATABRICKS_CATALOG", "main")
        monkeypatch.setenv("DATABRICKS_SCHEMA", "sales")
        settings = Settings(_env_file=None)
        assert settings.default_catalog == "main"
        assert settings.default_schema == "sales"

    @pytest.mark.parametrize("field", ["fetch_size", "max_splits_per_request"])
    def test_positive_values_required(self, field):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: 0})

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


@pytest.mark.unit
class TestResolveCatalogName:
    def test_unmapped(self):
        assert resolve_catalog_name("main") == "main"

    def test_mapped_with_dash_replaced(self, monkeypatch):
        monkeypatch.setenv("lake_prod", "prod_catalog")
        assert resolve_catalog_name("lake-prod") == "prod_catalog"

    def test_empty(self):
        assert resolve_catalog_name("") == ""
