"""
SQLite-backed key-value store.

Persists cache tables in a single SQLite database using aiosqlite:
- _dynacache_tables: catalog of logical tables (key attribute, capacity
  hints, TTL sweep attribute)
- _dynacache_items: one row per item, the native item stored as JSON

Binary attribute values are base64-encoded inside the JSON document.
The TTL sweep is best-effort: enable_ttl_sweep() only records the
attribute, and expired rows are reaped when sweep_expired() is called.
"""

from __future__ import annotations

import base64
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import orjson

from dynacache.backends.base import KeyValueBackend
from dynacache.codec import NativeItem
from dynacache.exceptions import TableAlreadyExistsError, TableNotFoundError
from dynacache.logging import get_logger
from dynacache.types import utc_now

logger = get_logger(__name__)


def _dump_item(item: NativeItem) -> str:
    doc: dict[str, Any] = {}
    for name, attr in item.items():
        if "B" in attr:
            doc[name] = {"B": base64.b64encode(bytes(attr["B"])).decode("ascii")}
        else:
            doc[name] = attr
    return orjson.dumps(doc).decode("utf-8")


def _load_item(raw: str) -> NativeItem:
    doc = orjson.loads(raw)
    for name, attr in doc.items():
        if "B" in attr:
            doc[name] = {"B": base64.b64decode(attr["B"])}
    return doc


class SQLiteBackend(KeyValueBackend):
    """KeyValueBackend persisted in a local SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        """Initialize the backend.

        Args:
            db_path: Path to the SQLite database file (":memory:" allowed).
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the connection and create the catalog schema."""
        if self._db is not None:
            return

        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS _dynacache_tables (
                name TEXT PRIMARY KEY,
                key_attribute TEXT NOT NULL,
                read_capacity_units INTEGER NOT NULL,
                write_capacity_units INTEGER NOT NULL,
                ttl_attribute TEXT,
                created_at TEXT NOT NULL
            )
        """)
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS _dynacache_items (
                table_name TEXT NOT NULL,
                item_key TEXT NOT NULL,
                item TEXT NOT NULL,
                PRIMARY KEY (table_name, item_key)
            )
        """)
        await self._db.commit()

        logger.info("SQLite backend initialized", db_path=str(self.db_path))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def get_item(self, table: str, key: NativeItem) -> NativeItem | None:
        db = self._conn()
        key_attribute = await self._key_attribute(table, "get_item")
        async with db.execute(
            "SELECT item FROM _dynacache_items WHERE table_name = ? AND item_key = ?",
            (table, key[key_attribute]["S"]),
        ) as cursor:
            row = await cursor.fetchone()
        return _load_item(row["item"]) if row else None

    async def put_item(self, table: str, item: NativeItem) -> None:
        db = self._conn()
        key_attribute = await self._key_attribute(table, "put_item")
        await db.execute(
            "INSERT OR REPLACE INTO _dynacache_items (table_name, item_key, item) VALUES (?, ?, ?)",
            (table, item[key_attribute]["S"], _dump_item(item)),
        )
        await db.commit()

    async def delete_item(self, table: str, key: NativeItem) -> None:
        db = self._conn()
        key_attribute = await self._key_attribute(table, "delete_item")
        await db.execute(
            "DELETE FROM _dynacache_items WHERE table_name = ? AND item_key = ?",
            (table, key[key_attribute]["S"]),
        )
        await db.commit()

    async def scan(self, table: str) -> list[NativeItem]:
        db = self._conn()
        await self._key_attribute(table, "scan")
        async with db.execute(
            "SELECT item FROM _dynacache_items WHERE table_name = ?", (table,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [_load_item(row["item"]) for row in rows]

    async def create_table(
        self,
        table: str,
        key_attribute: str,
        read_capacity_units: int,
        write_capacity_units: int,
    ) -> None:
        db = self._conn()
        try:
            await db.execute(
                """
                INSERT INTO _dynacache_tables (
                    name, key_attribute, read_capacity_units,
                    write_capacity_units, created_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    table,
                    key_attribute,
                    read_capacity_units,
                    write_capacity_units,
                    utc_now().isoformat(),
                ),
            )
            await db.commit()
        except aiosqlite.IntegrityError as e:
            raise TableAlreadyExistsError(
                f"Table already exists: {table}",
                context={"table": table, "operation": "create_table"},
            ) from e

    async def enable_ttl_sweep(self, table: str, attribute_name: str) -> None:
        db = self._conn()
        await self._key_attribute(table, "enable_ttl_sweep")
        await db.execute(
            "UPDATE _dynacache_tables SET ttl_attribute = ? WHERE name = ?",
            (attribute_name, table),
        )
        await db.commit()

    async def drop_table(self, table: str) -> None:
        """Delete a table and all of its items."""
        db = self._conn()
        await db.execute("DELETE FROM _dynacache_items WHERE table_name = ?", (table,))
        await db.execute("DELETE FROM _dynacache_tables WHERE name = ?", (table,))
        await db.commit()

    async def ttl_attribute(self, table: str) -> str | None:
        """Attribute the TTL sweep is enabled on, if any."""
        db = self._conn()
        async with db.execute(
            "SELECT ttl_attribute FROM _dynacache_tables WHERE name = ?", (table,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise TableNotFoundError(
                f"Requested resource not found: {table}",
                context={"table": table, "operation": "describe_ttl"},
            )
        return row["ttl_attribute"]

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete expired items from every table with an enabled TTL sweep.

        Args:
            now: Reference time. Defaults to the current UTC time.

        Returns:
            Number of items deleted.
        """
        db = self._conn()
        cutoff = (now or utc_now()).timestamp()

        async with db.execute(
            "SELECT name, ttl_attribute FROM _dynacache_tables WHERE ttl_attribute IS NOT NULL"
        ) as cursor:
            tables = await cursor.fetchall()

        removed = 0
        for row in tables:
            path = f'$."{row["ttl_attribute"]}".N'
            cursor = await db.execute(
                """
                DELETE FROM _dynacache_items
                WHERE table_name = ?
                  AND json_extract(item, ?) IS NOT NULL
                  AND CAST(json_extract(item, ?) AS REAL) < ?
                """,
                (row["name"], path, path, cutoff),
            )
            removed += cursor.rowcount
        await db.commit()

        if removed:
            logger.info("TTL sweep removed expired items", removed=removed)
        return removed

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLiteBackend not initialized. Call init() first.")
        return self._db

    async def _key_attribute(self, table: str, operation: str) -> str:
        async with self._conn().execute(
            "SELECT key_attribute FROM _dynacache_tables WHERE name = ?", (table,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise TableNotFoundError(
                f"Requested resource not found: {table}",
                context={"table": table, "operation": operation},
            )
        return row["key_attribute"]
