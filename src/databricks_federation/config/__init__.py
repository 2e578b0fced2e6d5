"""Configuration management for the Databricks federation connector.

Usage:
    >>> from databricks_federation.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.host)
"""

from databricks_federation.config.settings import (
    DEFAULT_SECRET_NAME,
    MAX_SPLITS_PER_REQUEST,
    Settings,
    get_settings,
    resolve_catalog_name,
)

__all__ = [
    "DEFAULT_SECRET_NAME",
    "MAX_SPLITS_PER_REQUEST",
    "Settings",
    "get_settings",
    "resolve_catalog_name",
]
