"""Pytest configuration: environment isolation and shared connector fixtures.

Unit tests never touch a real workspace. Every test starts from an
environment without DATABRICKS_* variables and with the settings cache
cleared, so configuration only comes from what the test sets explicitly.

Live tests (marked ``live``) run against a real workspace and are skipped
unless ``--run-live-tests`` or RUN_LIVE_TESTS=1 is given.
"""

from __future__ import annotations

import os
from typing import Any, Iterable, Iterator, List, Optional
from unittest.mock import MagicMock

import pytest

from databricks_federation.config import Settings, get_settings

LIVE_OPTION = "run_live_tests"
LIVE_MARK = "live"
LIVE_ENV = "RUN_LIVE_TESTS"

_ISOLATED_PREFIXES = ("DATABRICKS_",)
_ISOLATED_NAMES = ("default", "LOG_LEVEL")


def _env_enabled(name: str) -> bool:
    value = os.getenv(name, "")
    return value.lower() in {"1", "true", "yes", "on"}


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register opt-in flag for live workspace tests."""
    parser.addoption(
        "--run-live-tests",
        action="store_true",
        dest=LIVE_OPTION,
        default=False,
        help="Run tests that connect to a real Databricks workspace.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", f"{LIVE_MARK}: needs a real Databricks workspace")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Skip live tests unless explicitly enabled."""
    run_live = config.getoption(LIVE_OPTION) or _env_enabled(LIVE_ENV)
    if run_live:
        return
    skip_live = pytest.mark.skip(
        reason=f"live suite disabled (use --run-live-tests or {LIVE_ENV}=1)"
    )
    for item in items:
        if LIVE_MARK in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def isolated_environment(request, monkeypatch) -> Iterator[None]:
    """Strip connector variables from the environment and reset cached settings."""
    if LIVE_MARK not in request.keywords:
        for name in list(os.environ):
            if name.startswith(_ISOLATED_PREFIXES) or name in _ISOLATED_NAMES:
                monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with an explicit workspace and no .env file."""
    return Settings(
        _env_file=None,
        host="adb-1234567890.12.azuredatabricks.net",
        http_path="/sql/1.0/warehouses/abc123",
        token="dapi-test-token",
        default_catalog="main",
    )


def make_cursor(
    rows: Optional[Iterable[Any]] = None,
    batches: Optional[List[List[Any]]] = None,
    description: Optional[List[tuple]] = None,
) -> MagicMock:
    """DB-API cursor double: ``fetchall`` returns ``rows``, ``fetchmany`` walks ``batches``."""
    cursor = MagicMock(name="cursor")
    cursor.fetchall.return_value = list(rows or [])
    cursor.fetchmany.side_effect = list(batches or []) + [[]]
    cursor.description = description
    return cursor


def make_connection_manager(connection: Optional[MagicMock] = None) -> MagicMock:
    """Connection manager double whose ``connection()`` yields ``connection``."""
    connection = connection or MagicMock(name="connection")
    manager = MagicMock(name="connection_manager")
    manager.connection.return_value.__enter__.return_value = connection
    manager.connection.return_value.__exit__.return_value = False
    return manager


@pytest.fixture
def no_sleep(monkeypatch) -> List[float]:
    """Replace retry sleeps with a recorder of requested delays (seconds)."""
    delays: List[float] = []
    monkeypatch.setattr(
        "databricks_federation.io.connectors.retry.time.sleep", delays.append
    )
    return delays


@pytest.fixture
def cursor_factory():
    return make_cursor


@pytest.fixture
def manager_factory():
    return make_connection_manager
