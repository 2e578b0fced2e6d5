"""
Databricks federation connector.

Translates federated query requests into Databricks SQL, coordinates
partition-aware splits, manages remote connections and streams typed rows
back to the host as Arrow record batches.
"""

__version__ = "0.1.0"
