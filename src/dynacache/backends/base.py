"""
Base class for key-value backends.

A backend is the remote store the writer talks to. It offers plain item
operations only: there is no conditional write, so the writer builds its
advisory lock out of unconditional puts and deletes.

Error contract:
- Operations on a missing table raise TableNotFoundError.
- create_table on an existing table raises TableAlreadyExistsError.
- delete_item on a missing key is not an error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from dynacache.codec import NativeItem


class KeyValueBackend(ABC):
    """Abstract interface for the store behind a cache writer."""

    @abstractmethod
    async def get_item(self, table: str, key: NativeItem) -> NativeItem | None:
        """Fetch the item with the given primary key, or None."""
        ...

    @abstractmethod
    async def put_item(self, table: str, item: NativeItem) -> None:
        """Unconditionally insert or replace an item."""
        ...

    @abstractmethod
    async def delete_item(self, table: str, key: NativeItem) -> None:
        """Delete the item with the given primary key, if present."""
        ...

    @abstractmethod
    async def scan(self, table: str) -> list[NativeItem]:
        """Return every item in the table."""
        ...

    @abstractmethod
    async def create_table(
        self,
        table: str,
        key_attribute: str,
        read_capacity_units: int,
        write_capacity_units: int,
    ) -> None:
        """Create a table keyed on a single string attribute.

        Capacity units are throughput hints; stores without them ignore them.
        """
        ...

    @abstractmethod
    async def enable_ttl_sweep(self, table: str, attribute_name: str) -> None:
        """Ask the store to eventually delete items past ``attribute_name``."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None
