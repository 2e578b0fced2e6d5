"""Secret store access for Databricks credentials.

The connector only needs ``get_secret(name) -> mapping``. The default store
reads a JSON document from an environment variable derived from the secret
name, so the same code path works with any secret manager that injects
secrets into the environment.
"""

import json
import os
import re
from typing import Any, Mapping, Optional, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from databricks_federation.utils.logging import get_logger

logger = get_logger(__name__)


class SecretStore(Protocol):
    """Protocol for secret backends."""

    def get_secret(self, name: str) -> Mapping[str, Any]: ...


class SecretPayload(BaseModel):
    """Credential fields understood by the connection manager."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    access_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("password", "access_token", "token")
    )
    server_hostname: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("server_hostname", "host")
    )
    http_path: Optional[str] = None


def secret_env_var(name: str) -> str:
    """
    Environment variable holding the secret ``name``.

    >>> secret_env_var("AthenaDatabricksFederation/default")
    'ATHENADATABRICKSFEDERATION_DEFAULT'
    """
    return re.sub(r"[^A-Za-z0-9]+", "_", name).strip("_").upper()


class EnvironmentSecretStore:
    """
    Stateless secret store backed by environment variables.

    Each secret is a JSON object stored in the variable returned by
    ``secret_env_var(name)``.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ

    def get_secret(self, name: str) -> Mapping[str, Any]:
        environ = self._environ if self._environ is not None else os.environ
        env_var = secret_env_var(name)
        raw = environ.get(env_var)
        if raw is None:
            raise KeyError(f"Secret '{name}' not found (expected env var {env_var})")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Secret '{name}' is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise ValueError(f"Secret '{name}' must be a JSON object")
        logger.debug("secrets.loaded", secret_name=name, keys=sorted(payload))
        return payload


def load_secret_payload(store: SecretStore, name: str) -> SecretPayload:
    return SecretPayload.model_validate(dict(store.get_secret(name)))
