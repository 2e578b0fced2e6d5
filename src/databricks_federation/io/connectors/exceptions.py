"""Connector exceptions and Databricks error classification.

Every failure leaving the connector is a ``ConnectorError`` carrying one
``ErrorClassification``. Classification happens once, at the boundary where
a driver or I/O error is caught (``map_exception``).
"""

from enum import Enum
from typing import Dict, Optional, Tuple

from databricks_federation.utils.logging import get_logger, mask_connection_string

logger = get_logger(__name__)


class ErrorClassification(str, Enum):
    """Host-facing error categories."""

    INVALID_CREDENTIALS = "InvalidCredentials"
    CONNECTION_ERROR = "ConnectionError"
    ENTITY_NOT_FOUND = "EntityNotFound"
    THROTTLED = "Throttled"
    INVALID_INPUT = "InvalidInput"
    INTERNAL_ERROR = "InternalError"


AUTHENTICATION_PATTERNS: Tuple[str, ...] = (
    "authentication failed",
    "invalid token",
    "access denied",
    "unauthorized",
    "invalid credentials",
    "token expired",
)

CONNECTION_PATTERNS: Tuple[str, ...] = (
    "connection refused",
    "connection timed out",
    "network is unreachable",
    "no route to host",
    "connection reset",
    "unable to connect",
)

NOT_FOUND_PATTERNS: Tuple[str, ...] = (
    "table not found",
    "schema not found",
    "database not found",
    "column not found",
    "catalog not found",
    "table_or_view_not_found",
    "schema_not_found",
)

TRANSIENT_PATTERNS: Tuple[str, ...] = (
    "temporary failure",
    "service unavailable",
    "too many requests",
    "rate limit exceeded",
    "cluster is starting",
    "cluster is terminating",
    "resource temporarily unavailable",
)

# SQLSTATE class (first two characters) -> classification
SQL_STATE_CLASSES: Dict[str, ErrorClassification] = {
    "08": ErrorClassification.CONNECTION_ERROR,
    "28": ErrorClassification.INVALID_CREDENTIALS,
    "42": ErrorClassification.INVALID_INPUT,
}


class ConnectorError(Exception):
    """Structured error surfaced to the federation host."""

    def __init__(
        self,
        classification: ErrorClassification,
        message: str,
        original_error: Optional[BaseException] = None,
    ):
        self.classification = classification
        self.original_error = original_error
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.args[0]

    def __str__(self) -> str:
        return f"[{self.classification.value}] {self.message}"

    def to_dict(self) -> Dict[str, str]:
        """Error payload in the host's ``{errorCode, message}`` shape."""
        return {"errorCode": self.classification.value, "message": self.message}


def _matches(message: str, patterns: Tuple[str, ...]) -> bool:
    return any(pattern in message for pattern in patterns)


def classify_error(
    message: Optional[str],
    error_code: Optional[int] = None,
    sql_state: Optional[str] = None,
) -> ErrorClassification:
    """
    Classify a remote failure.

    Message patterns are checked first (authentication, connection, not
    found, transient, in that order), then the SQLSTATE class. Everything
    else is an internal error.

    Args:
        message: Driver error message
        error_code: Vendor error code, informational only
        sql_state: Five-character SQLSTATE

    Returns:
        The error classification

    Examples:
        >>> classify_error("Invalid token; Connection refused")
        <ErrorClassification.INVALID_CREDENTIALS: 'InvalidCredentials'>
        >>> classify_error("syntax error", sql_state="42601")
        <ErrorClassification.INVALID_INPUT: 'InvalidInput'>
    """
    if message is None:
        return ErrorClassification.INTERNAL_ERROR

    lowered = message.lower()
    if _matches(lowered, AUTHENTICATION_PATTERNS):
        return ErrorClassification.INVALID_CREDENTIALS
    if _matches(lowered, CONNECTION_PATTERNS):
        return ErrorClassification.CONNECTION_ERROR
    if _matches(lowered, NOT_FOUND_PATTERNS):
        return ErrorClassification.ENTITY_NOT_FOUND
    if _matches(lowered, TRANSIENT_PATTERNS):
        return ErrorClassification.THROTTLED

    if sql_state and len(sql_state) >= 2:
        classification = SQL_STATE_CLASSES.get(sql_state[:2])
        if classification is not None:
            return classification

    return ErrorClassification.INTERNAL_ERROR


def extract_sql_state(exc: BaseException) -> Optional[str]:
    """SQLSTATE from a driver exception, when the driver exposes one."""
    for attr in ("sql_state", "sqlstate", "sqlState"):
        value = getattr(exc, attr, None)
        if value:
            return str(value)
    context = getattr(exc, "context", None)
    if isinstance(context, dict):
        value = context.get("sql-state") or context.get("sql_state")
        if value:
            return str(value)
    return None


def extract_error_code(exc: BaseException) -> Optional[int]:
    for attr in ("error_code", "errno", "vendor_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def build_error_message(
    operation: str,
    message: str,
    sql_state: Optional[str] = None,
    error_code: Optional[int] = None,
) -> str:
    """
    ``Databricks <operation> failed: <message> (SQLState: .., ErrorCode: ..)``.

    Secrets embedded in connection strings are masked.
    """
    text = f"Databricks {operation} failed: {mask_connection_string(message)}"
    details = []
    if sql_state:
        details.append(f"SQLState: {sql_state}")
    if error_code:
        details.append(f"ErrorCode: {error_code}")
    if details:
        text += f" ({', '.join(details)})"
    return text


def map_exception(operation: str, exc: BaseException) -> ConnectorError:
    """
    Convert any exception into a classified ``ConnectorError``.

    ``ConnectorError`` instances pass through unchanged so an error is
    classified only once.
    """
    if isinstance(exc, ConnectorError):
        return exc

    raw_message = str(exc) or type(exc).__name__
    sql_state = extract_sql_state(exc)
    error_code = extract_error_code(exc)

    if isinstance(exc, PermissionError):
        classification = ErrorClassification.INVALID_CREDENTIALS
    elif isinstance(exc, (TimeoutError, ConnectionError)):
        classification = ErrorClassification.CONNECTION_ERROR
    elif isinstance(exc, (ValueError, TypeError)):
        classification = ErrorClassification.INVALID_INPUT
    else:
        classification = classify_error(raw_message, error_code, sql_state)
        if (
            classification is ErrorClassification.INTERNAL_ERROR
            and isinstance(exc, OSError)
        ):
            classification = ErrorClassification.CONNECTION_ERROR

    message = build_error_message(operation, raw_message, sql_state, error_code)
    logger.error(
        "connector.error",
        operation=operation,
        classification=classification.value,
        error_type=type(exc).__name__,
        sql_state=sql_state,
        error_code=error_code,
        message=message,
    )
    return ConnectorError(classification, message, original_error=exc)
