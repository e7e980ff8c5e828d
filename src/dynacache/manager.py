"""
Cache manager: builds and initializes a set of named caches.

Caches come either from explicit CacheBuilders or from the CACHES list in
Settings. In the latter case every cache shares one writer configured from
the locking settings.
"""

from __future__ import annotations

from typing import Iterable

from dynacache.attributes import MappingAttributeReader, parse_attribute_configs
from dynacache.backends.base import KeyValueBackend
from dynacache.cache import Cache, CacheBuilder
from dynacache.config import SerializerName, Settings
from dynacache.exceptions import ConfigurationError
from dynacache.logging import get_logger
from dynacache.serializers import (
    GZipSerializer,
    JsonSerializer,
    PickleSerializer,
    Serializer,
    StringSerializer,
)
from dynacache.writer import DefaultCacheWriter

logger = get_logger(__name__)


def serializer_for(name: SerializerName) -> Serializer:
    """Instantiate the serializer configured by name."""
    if name == "string":
        return StringSerializer()
    if name == "json":
        return JsonSerializer()
    if name == "gzip-json":
        return GZipSerializer(JsonSerializer())
    if name == "pickle":
        return PickleSerializer()
    raise ConfigurationError("Unknown serializer", context={"serializer": name})


class CacheManager:
    """Holds the caches of an application, keyed by name."""

    def __init__(self, builders: Iterable[CacheBuilder]) -> None:
        self._builders = list(builders)
        if not self._builders:
            raise ConfigurationError("At least one cache builder must be specified")
        self._caches: dict[str, Cache] = {}

    @classmethod
    def from_settings(cls, settings: Settings, backend: KeyValueBackend) -> CacheManager:
        """Create a manager for every cache listed in ``settings.CACHES``."""
        writer = DefaultCacheWriter(
            backend,
            poll_interval=settings.poll_interval,
            max_lock_wait=settings.max_lock_wait,
            clear_concurrency=settings.CACHE_CLEAR_CONCURRENCY,
        )
        builders = []
        for props in settings.CACHES:
            builders.append(
                CacheBuilder.new_instance(props.cache_name, backend)
                .with_ttl(props.ttl)
                .with_flush_on_boot(props.flush_on_boot)
                .with_read_capacity_units(props.read_capacity_units)
                .with_write_capacity_units(props.write_capacity_units)
                .with_serializer(serializer_for(props.serializer))
                .with_attributes(
                    parse_attribute_configs(a.model_dump(mode="json") for a in props.attributes),
                    MappingAttributeReader(),
                )
                .with_writer(writer)
            )
        return cls(builders)

    @property
    def cache_names(self) -> list[str]:
        return [b.name for b in self._builders]

    async def initialize(self) -> dict[str, bool]:
        """Build every cache and provision its table.

        Returns:
            Mapping of cache name to whether its table was newly created.
        """
        created: dict[str, bool] = {}
        for builder in self._builders:
            cache = builder.build()
            created[cache.name] = await cache.initialize()
            self._caches[cache.name] = cache
        logger.info(
            "Caches initialized",
            caches=len(created),
            created=[name for name, was_created in created.items() if was_created],
        )
        return created

    def get_cache(self, name: str) -> Cache:
        """Return an initialized cache.

        Raises:
            ConfigurationError: If the cache is unknown or not yet initialized.
        """
        cache = self._caches.get(name)
        if cache is None:
            raise ConfigurationError(
                f"Cache not available: {name}",
                context={"known": self.cache_names, "initialized": sorted(self._caches)},
            )
        return cache
