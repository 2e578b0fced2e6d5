"""Retry helpers with exponential backoff for remote Databricks calls.

Failures are classified via ``map_exception``; only classifications listed
as retryable are attempted again. The delay starts at one second, doubles
after each attempt and is capped at thirty seconds.
"""

import asyncio
import time
from typing import AbstractSet, Awaitable, Callable, TypeVar

from databricks_federation.utils.logging import get_logger

from .exceptions import ErrorClassification, map_exception

logger = get_logger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 3
INITIAL_DELAY_MS = 1000
BACKOFF_MULTIPLIER = 2.0
MAX_DELAY_MS = 30_000

DEFAULT_RETRYABLE: AbstractSet[ErrorClassification] = frozenset(
    {ErrorClassification.THROTTLED}
)
CONNECTION_RETRYABLE: AbstractSet[ErrorClassification] = frozenset(
    {ErrorClassification.THROTTLED, ErrorClassification.CONNECTION_ERROR}
)


def backoff_delays_ms(max_attempts: int = MAX_ATTEMPTS) -> list[int]:
    """
    Delays slept between attempts.

    >>> backoff_delays_ms(3)
    [1000, 2000]
    """
    delays = []
    delay = float(INITIAL_DELAY_MS)
    for _ in range(max_attempts - 1):
        delays.append(int(min(delay, MAX_DELAY_MS)))
        delay *= BACKOFF_MULTIPLIER
    return delays


def execute_with_retry(
    operation: Callable[[], T],
    operation_name: str,
    retryable: AbstractSet[ErrorClassification] = DEFAULT_RETRYABLE,
    max_attempts: int = MAX_ATTEMPTS,
) -> T:
    """
    Run ``operation`` with exponential backoff.

    Args:
        operation: Zero-argument callable doing the remote work
        operation_name: Name used in error messages and logs
        retryable: Classifications worth another attempt
        max_attempts: Total attempts including the first

    Returns:
        The operation's result

    Raises:
        ConnectorError: Classified failure of the last attempt, or the first
            non-retryable failure
    """
    delays = backoff_delays_ms(max_attempts)
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except Exception as exc:
            error = map_exception(operation_name, exc)
            if attempt >= max_attempts or error.classification not in retryable:
                if error is exc:
                    raise
                raise error from exc

            delay_ms = delays[attempt - 1]
            logger.warning(
                "retry.scheduled",
                operation=operation_name,
                attempt=attempt,
                max_attempts=max_attempts,
                delay_ms=delay_ms,
                classification=error.classification.value,
            )
            time.sleep(delay_ms / 1000.0)

    raise RuntimeError("unreachable")  # pragma: no cover


async def execute_with_retry_async(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    retryable: AbstractSet[ErrorClassification] = DEFAULT_RETRYABLE,
    max_attempts: int = MAX_ATTEMPTS,
) -> T:
    """
    Async variant of ``execute_with_retry``.

    Waits with ``asyncio.sleep`` so the delay is cancellable; cancelling the
    task during a wait stops further attempts.
    """
    delays = backoff_delays_ms(max_attempts)
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            error = map_exception(operation_name, exc)
            if attempt >= max_attempts or error.classification not in retryable:
                if error is exc:
                    raise
                raise error from exc

            delay_ms = delays[attempt - 1]
            logger.warning(
                "retry.scheduled",
                operation=operation_name,
                attempt=attempt,
                max_attempts=max_attempts,
                delay_ms=delay_ms,
                classification=error.classification.value,
            )
            await asyncio.sleep(delay_ms / 1000.0)

    raise RuntimeError("unreachable")  # pragma: no cover
