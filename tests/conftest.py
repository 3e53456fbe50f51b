"""Shared test fixtures for the provisioner test suite."""
from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest

from src.shared.db.connection import ConnectionPool
from src.shared.db.schema import init_sites_db

_ORBIT_ENV = ("ORBIT_CONFIG_DIR", "ORBIT_LOG_LEVEL", "ORBIT_LOG_JSON", "ORBIT_TEST_DB")


@pytest.fixture(autouse=True)
def _isolate_orbit_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's Orbit environment out of the tests."""
    for name in _ORBIT_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sites_pool(tmp_path: Path) -> Generator[ConnectionPool, None, None]:
    """A connection pool over an initialised site database."""
    pool = ConnectionPool(tmp_path / "database.sqlite")
    init_sites_db(pool)
    yield pool
    pool.close()
