"""
Named cache on top of a CacheWriter.

Cache adds what the byte-level writer leaves out: value serialization,
per-cache TTL, extra attribute extraction, value loaders and
flush-on-boot. CacheBuilder assembles one fluently.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Awaitable, Callable

from dynacache.attributes import AttributeConfig, AttributeReader, MappingAttributeReader
from dynacache.backends.base import KeyValueBackend
from dynacache.exceptions import ValueRetrievalError
from dynacache.logging import get_logger
from dynacache.serializers import Serializer, StringSerializer
from dynacache.types import ABSENT, Absent, ExtraAttribute, Found
from dynacache.writer import CacheWriter, non_locking_cache_writer

logger = get_logger(__name__)

Loader = Callable[[], Any] | Callable[[], Awaitable[Any]]


@dataclass
class CacheConfig:
    """Per-cache settings.

    Defaults: no expiration, no flush on boot, one read/write capacity unit,
    UTF-8 string values and no extra attributes.
    """

    ttl: timedelta = timedelta(0)
    flush_on_boot: bool = False
    read_capacity_units: int = 1
    write_capacity_units: int = 1
    serializer: Serializer = field(default_factory=StringSerializer)
    attributes: list[AttributeConfig] = field(default_factory=list)
    attribute_reader: AttributeReader = field(default_factory=MappingAttributeReader)


class Cache:
    """A named cache storing serialized values through a CacheWriter."""

    def __init__(self, name: str, writer: CacheWriter, config: CacheConfig | None = None) -> None:
        if not name or not name.strip():
            raise ValueError("Cache name must not be empty")
        if writer is None:
            raise ValueError("Writer must not be None")
        self.name = name
        self.writer = writer
        self.config = config or CacheConfig()

    @property
    def ttl(self) -> timedelta:
        return self.config.ttl

    @property
    def flush_on_boot(self) -> bool:
        return self.config.flush_on_boot

    @property
    def native_backend(self) -> KeyValueBackend:
        return self.writer.native_backend

    async def initialize(self) -> bool:
        """Flush the cache if configured, then make sure its table exists.

        Returns:
            True if the table was created.
        """
        if self.config.flush_on_boot:
            await self.clear()
        return await self.writer.create_if_not_exists(
            self.name,
            self.config.ttl,
            self.config.read_capacity_units,
            self.config.write_capacity_units,
        )

    async def get(self, key: str) -> Found[Any] | Absent:
        """Look up ``key``. Found may wrap None for a stored null."""
        lookup = await self.writer.get(self.name, key)
        if isinstance(lookup, Found):
            return Found(self.config.serializer.deserialize(lookup.value))
        return ABSENT

    async def get_or_load(self, key: str, loader: Loader) -> Any:
        """Return the cached value, or load, store and return it.

        Args:
            key: Cache key.
            loader: Zero-argument callable, sync or async, producing the value.

        Raises:
            ValueRetrievalError: If the loader raises.
        """
        cached = await self.get(key)
        if isinstance(cached, Found):
            return cached.value

        try:
            value = loader()
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            raise ValueRetrievalError(
                f"Value for key '{key}' could not be loaded",
                context={"cache_name": self.name, "key": key},
            ) from e

        await self.put(key, value)
        return value

    async def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any existing entry."""
        await self.writer.put(
            self.name,
            key,
            self.config.serializer.serialize(value),
            self.config.ttl,
            self._attributes(value),
        )

    async def put_if_absent(self, key: str, value: Any) -> Found[Any] | Absent:
        """Store ``value`` unless ``key`` exists.

        Returns:
            ABSENT if stored, otherwise Found with the existing value.
        """
        result = await self.writer.put_if_absent(
            self.name,
            key,
            self.config.serializer.serialize(value),
            self.config.ttl,
            self._attributes(value),
        )
        if isinstance(result, Found):
            logger.debug("Key already exists in the cache, not replaced", key=key)
            return Found(self.config.serializer.deserialize(result.value))
        return ABSENT

    async def evict(self, key: str) -> None:
        """Remove ``key`` from the cache."""
        await self.writer.remove(self.name, key)

    async def clear(self) -> None:
        """Remove every entry from the cache."""
        await self.writer.clear(self.name)

    def _attributes(self, value: Any) -> list[ExtraAttribute]:
        return self.config.attribute_reader.read_all(self.config.attributes, value)

    def __repr__(self) -> str:
        return f"Cache(name={self.name!r}, ttl={self.config.ttl})"


class CacheBuilder:
    """Fluent builder for Cache instances.

    Uses a non-locking writer unless with_writer() supplies another.
    """

    def __init__(self, name: str, backend: KeyValueBackend) -> None:
        if backend is None:
            raise ValueError("Backend must not be None")
        if not name or not name.strip():
            raise ValueError("Cache name must contain at least one non-whitespace character")
        self.name = name
        self.writer: CacheWriter = non_locking_cache_writer(backend)
        self.config = CacheConfig()

    @classmethod
    def new_instance(cls, name: str, backend: KeyValueBackend) -> CacheBuilder:
        return cls(name, backend)

    def with_ttl(self, ttl: timedelta) -> CacheBuilder:
        self.config.ttl = ttl
        return self

    def with_flush_on_boot(self, flush_on_boot: bool) -> CacheBuilder:
        self.config.flush_on_boot = flush_on_boot
        return self

    def with_read_capacity_units(self, units: int) -> CacheBuilder:
        self.config.read_capacity_units = units
        return self

    def with_write_capacity_units(self, units: int) -> CacheBuilder:
        self.config.write_capacity_units = units
        return self

    def with_serializer(self, serializer: Serializer) -> CacheBuilder:
        self.config.serializer = serializer
        return self

    def with_attributes(
        self,
        attributes: list[AttributeConfig],
        reader: AttributeReader | None = None,
    ) -> CacheBuilder:
        self.config.attributes = list(attributes)
        if reader is not None:
            self.config.attribute_reader = reader
        return self

    def with_writer(self, writer: CacheWriter) -> CacheBuilder:
        self.writer = writer
        return self

    def build(self) -> Cache:
        """Create the Cache. Call ``await cache.initialize()`` before use."""
        return Cache(self.name, self.writer, replace(self.config))
