"""
In-process backend.

Dict-backed implementation of KeyValueBackend for tests and local use.
Each call yields to the event loop once before touching state, so
concurrent tasks interleave the way remote round trips do.

The TTL sweep is recorded but never runs on its own; call sweep_expired()
to simulate the store finally reaping expired rows.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime

from dynacache.backends.base import KeyValueBackend
from dynacache.codec import NativeItem
from dynacache.exceptions import TableAlreadyExistsError, TableNotFoundError
from dynacache.logging import get_logger
from dynacache.types import utc_now

logger = get_logger(__name__)


@dataclass
class _Table:
    key_attribute: str
    read_capacity_units: int
    write_capacity_units: int
    ttl_attribute: str | None = None
    items: dict[str, NativeItem] = field(default_factory=dict)


class InMemoryBackend(KeyValueBackend):
    """Dict-based store with DynamoDB-like error semantics."""

    def __init__(self) -> None:
        self._tables: dict[str, _Table] = {}
        self.calls: list[tuple[str, str]] = []

    async def get_item(self, table: str, key: NativeItem) -> NativeItem | None:
        await self._round_trip("get_item", table)
        t = self._table(table, "get_item")
        item = t.items.get(self._key_of(t, key))
        return copy.deepcopy(item) if item is not None else None

    async def put_item(self, table: str, item: NativeItem) -> None:
        await self._round_trip("put_item", table)
        t = self._table(table, "put_item")
        t.items[self._key_of(t, item)] = copy.deepcopy(item)

    async def delete_item(self, table: str, key: NativeItem) -> None:
        await self._round_trip("delete_item", table)
        t = self._table(table, "delete_item")
        t.items.pop(self._key_of(t, key), None)

    async def scan(self, table: str) -> list[NativeItem]:
        await self._round_trip("scan", table)
        t = self._table(table, "scan")
        return [copy.deepcopy(item) for item in t.items.values()]

    async def create_table(
        self,
        table: str,
        key_attribute: str,
        read_capacity_units: int,
        write_capacity_units: int,
    ) -> None:
        await self._round_trip("create_table", table)
        if table in self._tables:
            raise TableAlreadyExistsError(
                f"Table already exists: {table}",
                context={"table": table, "operation": "create_table"},
            )
        self._tables[table] = _Table(key_attribute, read_capacity_units, write_capacity_units)

    async def enable_ttl_sweep(self, table: str, attribute_name: str) -> None:
        await self._round_trip("enable_ttl_sweep", table)
        self._table(table, "enable_ttl_sweep").ttl_attribute = attribute_name

    def table_names(self) -> list[str]:
        """Names of all existing tables."""
        return sorted(self._tables)

    def ttl_attribute(self, table: str) -> str | None:
        """Attribute the TTL sweep is enabled on, if any."""
        return self._table(table, "describe_ttl").ttl_attribute

    def raw_items(self, table: str) -> dict[str, NativeItem]:
        """Physical table contents, expired rows included."""
        return self._table(table, "raw_items").items

    def drop_table(self, table: str) -> None:
        """Delete a table outright."""
        self._tables.pop(table, None)

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Physically delete expired items from tables with a TTL sweep.

        Returns:
            Number of items deleted.
        """
        cutoff = (now or utc_now()).timestamp()
        removed = 0
        for t in self._tables.values():
            if t.ttl_attribute is None:
                continue
            for key, item in list(t.items.items()):
                ttl = item.get(t.ttl_attribute)
                if ttl is not None and "N" in ttl and float(ttl["N"]) < cutoff:
                    del t.items[key]
                    removed += 1
        if removed:
            logger.debug("TTL sweep removed expired items", removed=removed)
        return removed

    async def _round_trip(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        await asyncio.sleep(0)

    def _table(self, table: str, operation: str) -> _Table:
        t = self._tables.get(table)
        if t is None:
            raise TableNotFoundError(
                f"Requested resource not found: {table}",
                context={"table": table, "operation": operation},
            )
        return t

    @staticmethod
    def _key_of(t: _Table, item: NativeItem) -> str:
        return item[t.key_attribute]["S"]
