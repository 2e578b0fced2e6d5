"""Structured logging for the connector, built on structlog.

Every event is rendered as one JSON line carrying an ISO timestamp, the
level and the logger name. Credentials never reach the output: fields whose
key names a secret are replaced wholesale, and string values are scrubbed
of inline ``token=``/``PWD=`` parameters and Databricks personal access
tokens.

The level comes from the LOG_LEVEL setting (default INFO).

Usage:
    >>> from databricks_federation.utils.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("splits.generated", table="orders", split_count=4)
"""

import logging
import os
import re
from typing import Any, Dict, MutableMapping

import structlog
from structlog.types import EventDict, Processor

# Keys whose values are always withheld
SENSITIVE_KEYS = (
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"^pwd$", re.IGNORECASE),
)

REDACTED_VALUE = "[REDACTED]"

_INLINE_CREDENTIAL = re.compile(r"(?i)(token|pwd|password)=([^;&]+)")
_PERSONAL_ACCESS_TOKEN = re.compile(r"\bdapi[0-9a-f]{32}(?:-\d+)?\b")


def _is_sensitive(key: Any) -> bool:
    name = str(key)
    return any(pattern.search(name) for pattern in SENSITIVE_KEYS)


def mask_connection_string(value: str) -> str:
    """Mask credential parameters inside a connection string or URL.

    >>> mask_connection_string("jdbc:databricks://h:443;httpPath=/sql/x;PWD=dapi1")
    'jdbc:databricks://h:443;httpPath=/sql/x;PWD=***'
    """
    if not value:
        return value
    return _INLINE_CREDENTIAL.sub(r"\1=***", value)


def scrub_text(value: str) -> str:
    """Remove inline credentials and personal access tokens from free text."""
    return _PERSONAL_ACCESS_TOKEN.sub(REDACTED_VALUE, mask_connection_string(value))


def sanitize_for_logging(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``data`` that is safe to log.

    Sensitive keys are replaced by [REDACTED]; nested dictionaries are
    sanitized recursively and strings are scrubbed.

    Example:
        >>> sanitize_for_logging({"access_token": "dapi123", "host": "x"})
        {'access_token': '[REDACTED]', 'host': 'x'}
    """
    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive(key):
            sanitized[key] = REDACTED_VALUE
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_logging(value)
        elif isinstance(value, str):
            sanitized[key] = scrub_text(value)
        else:
            sanitized[key] = value
    return sanitized


def sanitization_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> MutableMapping[str, Any]:
    return sanitize_for_logging(dict(event_dict))


def _get_log_level() -> int:
    try:
        from databricks_federation.config import get_settings

        level_name = get_settings().LOG_LEVEL.upper()
    except Exception:
        # Malformed settings fall back to the raw environment
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()

    return getattr(logging, level_name, logging.INFO)


def _configure_structlog() -> None:
    level = _get_log_level()
    logging.basicConfig(format="%(message)s", level=level, handlers=[])

    if not logging.root.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        logging.root.addHandler(handler)

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        sanitization_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


_configure_structlog()


def get_logger(name: str) -> Any:
    """Logger for a module; pass ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> Any:
    """Logger with request identifiers already bound.

    Example:
        >>> logger = bind_context(query_id="q-1", catalog="main", table="orders")
        >>> logger.info("record_query.built")
    """
    return structlog.get_logger().bind(**kwargs)
