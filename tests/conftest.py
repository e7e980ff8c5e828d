"""
Pytest configuration and fixtures for cache writer tests.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import pytest

from dynacache.backends.memory import InMemoryBackend
from dynacache.backends.sqlite import SQLiteBackend
from dynacache.config import Settings, clear_settings_cache
from dynacache.writer import DefaultCacheWriter

CACHE_NAME = "users"


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing.

    Points the database into temp_dir and turns locking on.
    """
    env_vars = {
        "CACHE_DB_PATH": str(temp_dir / "cache" / "dynacache.db"),
        "CACHE_POLL_INTERVAL_MS": "20",
        "CACHE_MAX_LOCK_WAIT_MS": "1000",
        "CACHE_TTL_SECONDS": "60",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Settings:
    """Provide a Settings instance built from mock_env_vars."""
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    """Provide an empty in-memory backend."""
    return InMemoryBackend()


@pytest.fixture
async def sqlite_backend(temp_dir: Path) -> AsyncGenerator[SQLiteBackend, None]:
    """Create an initialized SQLite backend for testing."""
    backend = SQLiteBackend(temp_dir / "store" / "cache.db")
    await backend.init()
    yield backend
    await backend.close()


@pytest.fixture
async def writer(memory_backend: InMemoryBackend, clock: FakeClock) -> DefaultCacheWriter:
    """Non-locking writer over a provisioned in-memory table."""
    w = DefaultCacheWriter(memory_backend, clock=clock)
    await w.create_if_not_exists(CACHE_NAME, None)
    return w


@pytest.fixture
async def locking_writer(memory_backend: InMemoryBackend, clock: FakeClock) -> DefaultCacheWriter:
    """Locking writer over a provisioned in-memory table."""
    w = DefaultCacheWriter(
        memory_backend,
        poll_interval=timedelta(milliseconds=5),
        max_lock_wait=timedelta(seconds=2),
        clock=clock,
    )
    await w.create_if_not_exists(CACHE_NAME, None)
    return w


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
