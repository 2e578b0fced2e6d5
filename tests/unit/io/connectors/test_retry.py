"""
Unit tests for execute_with_retry and its async variant.
"""

import asyncio
from unittest.mock import Mock

import pytest

from databricks_federation.io.connectors.exceptions import ConnectorError, ErrorClassification
from databricks_federation.io.connectors.retry import (
    CONNECTION_RETRYABLE,
    backoff_delays_ms,
    execute_with_retry,
    execute_with_retry_async,
)


@pytest.mark.unit
class TestBackoff:
    def test_delays_double(self):
        assert backoff_delays_ms(3) == [1000, 2000]

    def test_delays_capped(self):
        assert backoff_delays_ms(8)[-1] == 30_000


@pytest.mark.unit
class TestExecuteWithRetry:
    """Tests for the blocking retry helper."""

    def test_success_first_attempt(self, no_sleep):
        operation = Mock(return_value="ok")
        assert execute_with_retry(operation, "op") == "ok"
        assert operation.call_count == 1
        assert no_sleep == []

    def test_transient_error_three_attempts_then_propagates(self, no_sleep):
        error = ConnectorError(ErrorClassification.THROTTLED, "busy")
        operation = Mock(side_effect=error)

        with pytest.raises(ConnectorError) as exc_info:
            execute_with_retry(operation, "op")

        assert exc_info.value is error
        assert operation.call_count == 3
        assert no_sleep == [1.0, 2.0]

    def test_transient_driver_message_is_retried(self, no_sleep):
        operation = Mock(side_effect=[Exception("Service unavailable"), "done"])
        assert execute_with_retry(operation, "op") == "done"
        assert operation.call_count == 2
        assert no_sleep == [1.0]

    def test_non_retryable_raises_immediately(self, no_sleep):
        operation = Mock(side_effect=Exception("Invalid credentials supplied"))

        with pytest.raises(ConnectorError) as exc_info:
            execute_with_retry(operation, "op")

        assert exc_info.value.classification is ErrorClassification.INVALID_CREDENTIALS
        assert operation.call_count == 1
        assert no_sleep == []

    def test_connection_errors_only_retried_when_requested(self, no_sleep):
        failing = Mock(side_effect=Exception("Connection reset"))
        with pytest.raises(ConnectorError):
            execute_with_retry(failing, "op")
        assert failing.call_count == 1

        flaky = Mock(side_effect=[Exception("Connection reset"), "connected"])
        assert execute_with_retry(flaky, "connect", retryable=CONNECTION_RETRYABLE) == "connected"
        assert flaky.call_count == 2


@pytest.mark.unit
class TestExecuteWithRetryAsync:
    """Tests for the asyncio retry helper."""

    def test_retries_with_async_sleep(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr(
            "databricks_federation.io.connectors.retry.asyncio.sleep", fake_sleep
        )
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectorError(ErrorClassification.THROTTLED, "busy")
            return 42

        assert asyncio.run(execute_with_retry_async(operation, "op")) == 42
        assert len(attempts) == 3
        assert delays == [1.0, 2.0]

    def test_non_retryable_async(self):
        async def operation():
            raise ValueError("bad token")

        with pytest.raises(ConnectorError) as exc_info:
            asyncio.run(execute_with_retry_async(operation, "op"))
        assert exc_info.value.classification is ErrorClassification.INVALID_INPUT
