"""I/O layer: Databricks connectors."""
