"""Command-line interface for the Databricks federation connector."""
