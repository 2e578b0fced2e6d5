"""
Configuration management for the Databricks federation connector.

This module provides environment-based configuration using Pydantic BaseSettings,
so the same connector build can run against different workspaces by changing
environment variables (or a .env file) only.

Connection values are resolved in this order by the connection manager:
1) DATABRICKS_HOST + DATABRICKS_HTTP_PATH
2) The composite ``default`` connection string
3) The secret named by DATABRICKS_SECRET_NAME
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

import structlog
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

# Determine project root for resolving .env by default
PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
ENV_FILE_OVERRIDE = os.getenv("DATABRICKS_FEDERATION_ENV_FILE")
if ENV_FILE_OVERRIDE:
    env_file_candidate = Path(ENV_FILE_OVERRIDE).expanduser()
    if not env_file_candidate.is_absolute():
        env_file_candidate = PROJECT_ROOT / env_file_candidate
    SETTINGS_ENV_FILE = env_file_candidate
else:
    SETTINGS_ENV_FILE = DEFAULT_ENV_FILE

DEFAULT_SECRET_NAME = "AthenaDatabricksFederation/default"
DEFAULT_PORT = 443
MAX_SPLITS_PER_REQUEST = 1_000_000


class Settings(BaseSettings):
    """
    Connector settings with environment variable support.

    Environment variables are loaded with the DATABRICKS_ prefix. For example,
    DATABRICKS_HOST overrides ``host`` and DATABRICKS_FETCH_SIZE overrides
    ``fetch_size``. The composite connection string is read from the bare
    ``default`` variable, matching how federation runtimes inject it.
    """

    LOG_LEVEL: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level (uppercase)",
    )

    # Remote workspace
    host: Optional[str] = Field(
        default=None, description="Databricks server hostname"
    )
    http_path: Optional[str] = Field(
        default=None, description="HTTP path of the SQL warehouse or cluster"
    )
    token: Optional[str] = Field(
        default=None, description="Personal access token used for token auth"
    )
    port: int = Field(default=DEFAULT_PORT, description="HTTPS port")
    default_catalog: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "DATABRICKS_DEFAULT_CATALOG", "DATABRICKS_CATALOG", "default_catalog"
        ),
        description="Catalog selected for new sessions",
    )
    default_schema: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "DATABRICKS_DEFAULT_SCHEMA", "DATABRICKS_SCHEMA", "default_schema"
        ),
        description="Schema selected for new sessions",
    )
    default_connection_string: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "default",
            "DATABRICKS_DEFAULT_CONNECTION_STRING",
            "default_connection_string",
        ),
        description="Composite connection descriptor (databricks://host:port/path)",
    )
    secret_name: str = Field(
        default=DEFAULT_SECRET_NAME,
        description="Name of the secret holding host, HTTP path and token",
    )

    # Timeouts are enforced by the driver connection, not by this layer
    connection_timeout: int = Field(
        default=30, description="Connection timeout in seconds"
    )
    socket_timeout: int = Field(default=60, description="Socket timeout in seconds")

    # Split and record settings
    fetch_size: int = Field(
        default=1000, description="Rows fetched per round trip when streaming"
    )
    max_splits_per_request: int = Field(
        default=MAX_SPLITS_PER_REQUEST,
        description="Maximum splits emitted before a continuation token is returned",
    )
    spill_bucket: str = Field(
        default="databricks-federation-spill", description="Spill bucket name"
    )
    spill_prefix: str = Field(default="athena-spill", description="Spill key prefix")
    query_passthrough_enabled: bool = Field(
        default=False, description="Advertise and accept query pass-through"
    )

    @field_validator("fetch_size", "max_splits_per_request")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Fetch size and split cap must be positive."""
        if v <= 0:
            raise ValueError("Value must be a positive integer")
        return v

    model_config = SettingsConfigDict(
        env_prefix="DATABRICKS_",
        env_file=str(SETTINGS_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache so settings are loaded once per process. Tests that
    monkeypatch the environment should call ``get_settings.cache_clear()``.

    Returns:
        Settings instance with loaded configuration
    """
    settings = Settings()
    logger.debug(
        "configuration.loaded",
        has_host=bool(settings.host),
        has_http_path=bool(settings.http_path),
        has_default_connection=bool(settings.default_connection_string),
        default_catalog=settings.default_catalog,
    )
    return settings


def resolve_catalog_name(catalog_name: str) -> str:
    """
    Map a host catalog name onto the remote catalog.

    The host may register the connector under a name that is not a valid
    Databricks catalog. An environment variable named after the host catalog
    (with ``-`` replaced by ``_``) holds the remote catalog to use instead.
    """
    if not catalog_name:
        return catalog_name
    env_var_name = catalog_name.replace("-", "_")
    mapped = os.getenv(env_var_name)
    if mapped:
        logger.info(
            "configuration.catalog_mapped",
            catalog=catalog_name,
            mapped_catalog=mapped,
            env_var=env_var_name,
        )
        return mapped
    return catalog_name
