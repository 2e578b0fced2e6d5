"""
Infrastructure Layer

Reusable services that support the connectors without holding connector
logic themselves.

Components:
- sql: identifier quoting, literal formatting, expression translation and
  the split SELECT builder for Databricks
"""

__all__: list[str] = []
