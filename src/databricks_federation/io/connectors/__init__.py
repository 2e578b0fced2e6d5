"""Databricks connectors for metadata, splits and record reading.

Keep this package import lightweight: the exception and retry helpers are
imported eagerly, while handlers that pull in databricks-sql-connector and
pyarrow are loaded lazily on first attribute access.
"""

from __future__ import annotations

import importlib
from typing import Any

from .exceptions import ConnectorError, ErrorClassification, classify_error, map_exception
from .retry import execute_with_retry, execute_with_retry_async

__all__ = [
    "ConnectorError",
    "ErrorClassification",
    "classify_error",
    "map_exception",
    "execute_with_retry",
    "execute_with_retry_async",
    "ConnectionConfig",
    "ConnectionManager",
    "DatabricksConnection",
    "DatabricksMetadataHandler",
    "DatabricksRecordHandler",
    "DatabricksConnector",
    "DatabricksMuxConnector",
    "ConnectorMetrics",
    "RequestContext",
    "EnvironmentSecretStore",
    "SecretStore",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "ConnectionConfig": (".connection_manager", "ConnectionConfig"),
    "ConnectionManager": (".connection_manager", "ConnectionManager"),
    "DatabricksConnection": (".connection_manager", "DatabricksConnection"),
    "DatabricksMetadataHandler": (".metadata_handler", "DatabricksMetadataHandler"),
    "DatabricksRecordHandler": (".record_handler", "DatabricksRecordHandler"),
    "DatabricksConnector": (".composite_handler", "DatabricksConnector"),
    "DatabricksMuxConnector": (".composite_handler", "DatabricksMuxConnector"),
    "ConnectorMetrics": (".metrics", "ConnectorMetrics"),
    "RequestContext": (".metrics", "RequestContext"),
    "EnvironmentSecretStore": (".secrets", "EnvironmentSecretStore"),
    "SecretStore": (".secrets", "SecretStore"),
}


def __getattr__(name: str) -> Any:
    if name not in _LAZY_IMPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = _LAZY_IMPORTS[name]
    module = importlib.import_module(module_name, __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_IMPORTS.keys())))
