"""
Tests for the SQLite backend.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from dynacache.backends.sqlite import SQLiteBackend
from dynacache.codec import encode, key_attribute
from dynacache.exceptions import TableAlreadyExistsError, TableNotFoundError
from dynacache.types import ABSENT, Found
from dynacache.writer import DefaultCacheWriter, locking_cache_writer

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestSQLiteTables:
    """Tests for table management."""

    @pytest.mark.asyncio
    async def test_create_table_twice(self, sqlite_backend: SQLiteBackend) -> None:
        """Test that creating an existing table raises."""
        await sqlite_backend.create_table("t", "key", 1, 1)

        with pytest.raises(TableAlreadyExistsError):
            await sqlite_backend.create_table("t", "key", 1, 1)

    @pytest.mark.asyncio
    async def test_operations_on_missing_table(self, sqlite_backend: SQLiteBackend) -> None:
        """Test that item operations on a missing table raise."""
        with pytest.raises(TableNotFoundError):
            await sqlite_backend.get_item("missing", key_attribute("k"))
        with pytest.raises(TableNotFoundError):
            await sqlite_backend.put_item("missing", encode("k", b"v"))
        with pytest.raises(TableNotFoundError):
            await sqlite_backend.delete_item("missing", key_attribute("k"))
        with pytest.raises(TableNotFoundError):
            await sqlite_backend.scan("missing")

    @pytest.mark.asyncio
    async def test_enable_ttl_sweep(self, sqlite_backend: SQLiteBackend) -> None:
        """Test that the TTL attribute is recorded."""
        await sqlite_backend.create_table("t", "key", 1, 1)
        assert await sqlite_backend.ttl_attribute("t") is None

        await sqlite_backend.enable_ttl_sweep("t", "ttl")

        assert await sqlite_backend.ttl_attribute("t") == "ttl"

    @pytest.mark.asyncio
    async def test_drop_table(self, sqlite_backend: SQLiteBackend) -> None:
        """Test that a dropped table is gone with its items."""
        await sqlite_backend.create_table("t", "key", 1, 1)
        await sqlite_backend.put_item("t", encode("k", b"v"))

        await sqlite_backend.drop_table("t")

        with pytest.raises(TableNotFoundError):
            await sqlite_backend.scan("t")

    @pytest.mark.asyncio
    async def test_not_initialized(self, temp_dir: Path) -> None:
        """Test that using the backend before init() fails."""
        backend = SQLiteBackend(temp_dir / "x.db")

        with pytest.raises(RuntimeError):
            await backend.scan("t")


class TestSQLiteItems:
    """Tests for item storage."""

    @pytest.mark.asyncio
    async def test_binary_and_null_values_survive(self, sqlite_backend: SQLiteBackend) -> None:
        """Test that binary payloads and the null marker are stored faithfully."""
        await sqlite_backend.create_table("t", "key", 1, 1)
        await sqlite_backend.put_item("t", encode("bin", b"\x00\xff\x10"))
        await sqlite_backend.put_item("t", encode("nul", None))

        assert await sqlite_backend.get_item("t", key_attribute("bin")) == {
            "key": {"S": "bin"},
            "value": {"B": b"\x00\xff\x10"},
        }
        assert await sqlite_backend.get_item("t", key_attribute("nul")) == {
            "key": {"S": "nul"},
            "value": {"NULL": True},
        }
        assert await sqlite_backend.get_item("t", key_attribute("none")) is None

    @pytest.mark.asyncio
    async def test_scan_is_per_table(self, sqlite_backend: SQLiteBackend) -> None:
        """Test that scan returns only the addressed table's items."""
        await sqlite_backend.create_table("a", "key", 1, 1)
        await sqlite_backend.create_table("b", "key", 1, 1)
        await sqlite_backend.put_item("a", encode("k1", b"1"))
        await sqlite_backend.put_item("a", encode("k2", b"2"))
        await sqlite_backend.put_item("b", encode("k1", b"3"))

        items = await sqlite_backend.scan("a")

        assert sorted(item["key"]["S"] for item in items) == ["k1", "k2"]

    @pytest.mark.asyncio
    async def test_sweep_expired(self, sqlite_backend: SQLiteBackend) -> None:
        """Test that the sweep removes only expired rows of swept tables."""
        await sqlite_backend.create_table("swept", "key", 1, 1)
        await sqlite_backend.enable_ttl_sweep("swept", "ttl")
        await sqlite_backend.create_table("kept", "key", 1, 1)

        short = timedelta(seconds=1)
        await sqlite_backend.put_item("swept", encode("old", b"v", ttl=short, now=NOW))
        await sqlite_backend.put_item("swept", encode("forever", b"v"))
        await sqlite_backend.put_item("kept", encode("old", b"v", ttl=short, now=NOW))

        removed = await sqlite_backend.sweep_expired(NOW + timedelta(minutes=1))

        assert removed == 1
        assert [i["key"]["S"] for i in await sqlite_backend.scan("swept")] == ["forever"]
        assert len(await sqlite_backend.scan("kept")) == 1


class TestWriterOnSQLite:
    """Tests for the writer running against SQLite."""

    @pytest.mark.asyncio
    async def test_writer_operations(self, sqlite_backend: SQLiteBackend) -> None:
        """Test the writer's operations end to end."""
        writer = DefaultCacheWriter(sqlite_backend)
        assert await writer.create_if_not_exists("c", timedelta(minutes=1)) is True

        await writer.put("c", "k1", b"v1", ttl=timedelta(minutes=1))
        assert await writer.get("c", "k1") == Found(b"v1")
        assert await writer.put_if_absent("c", "k1", b"v2") == Found(b"v1")

        await writer.remove("c", "k1")
        assert await writer.get("c", "k1") is ABSENT

    @pytest.mark.asyncio
    async def test_locking_clear(self, sqlite_backend: SQLiteBackend) -> None:
        """Test a locked clear on SQLite."""
        writer = locking_cache_writer(sqlite_backend, poll_interval=timedelta(milliseconds=5))
        await writer.create_if_not_exists("c", None)
        for i in range(5):
            await writer.put("c", f"k{i}", b"v")

        await writer.clear("c")

        assert await sqlite_backend.scan("c") == []
        assert not await writer.lock.is_locked("c")

    @pytest.mark.asyncio
    async def test_data_persists_across_connections(self, temp_dir: Path) -> None:
        """Test that items survive closing and reopening the database."""
        path = temp_dir / "persist.db"
        backend = SQLiteBackend(path)
        await backend.init()
        writer = DefaultCacheWriter(backend)
        await writer.create_if_not_exists("c", None)
        await writer.put("c", "k1", b"v")
        await backend.close()

        reopened = SQLiteBackend(path)
        await reopened.init()
        try:
            assert await DefaultCacheWriter(reopened).get("c", "k1") == Found(b"v")
        finally:
            await reopened.close()
