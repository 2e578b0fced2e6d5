"""SQL dialect implementations."""

from .databricks import DatabricksDialect

__all__ = ["DatabricksDialect"]
