"""
Cache writer: put/get/put_if_absent/remove/clear against a KeyValueBackend.

The writer can run in locking or non-locking mode. Non-locking aims for
throughput but lets multi-step operations (put_if_absent, clear) overlap
with other callers. Locking mode sets a sentinel key around those
operations and makes every other operation wait while it is present.

The lock is advisory (see dynacache.lock): two concurrent put_if_absent
calls can both pass the lock check, both write the sentinel, both miss the
key and both write their value. The last write wins and both callers are
told their value was stored.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Iterable

from dynacache.backends.base import KeyValueBackend
from dynacache.cancellation import CancellationToken
from dynacache.codec import NativeItem, decode, encode, key_attribute
from dynacache.exceptions import BackendError, TableNotFoundError
from dynacache.lock import LockCoordinator, lock_key
from dynacache.logging import get_logger, log_context
from dynacache.provisioning import create_table_if_not_exists
from dynacache.ttl import is_expired, should_persist_ttl
from dynacache.types import (
    ABSENT,
    ATTRIBUTE_KEY,
    ATTRIBUTE_TTL,
    Absent,
    ExtraAttribute,
    Found,
    utc_now,
)

logger = get_logger(__name__)

DEFAULT_LOCK_POLL_INTERVAL = timedelta(milliseconds=50)

Lookup = Found[bytes | None] | Absent


class CacheWriter(ABC):
    """Low-level access to the store commands used for caching.

    Values are raw bytes (or None for a stored null); serialization is the
    caller's concern.
    """

    @property
    @abstractmethod
    def native_backend(self) -> KeyValueBackend:
        """The backend this writer talks to."""
        ...

    @abstractmethod
    async def create_if_not_exists(
        self,
        name: str,
        ttl: timedelta | None,
        read_capacity_units: int = 1,
        write_capacity_units: int = 1,
    ) -> bool:
        """Create the cache table. Returns True if it had to be created."""
        ...

    @abstractmethod
    async def put(
        self,
        name: str,
        key: str,
        value: bytes | None,
        ttl: timedelta | None = None,
        attributes: Iterable[ExtraAttribute] = (),
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Write the entry, overwriting any existing one."""
        ...

    @abstractmethod
    async def get(
        self,
        name: str,
        key: str,
        cancel_token: CancellationToken | None = None,
    ) -> Lookup:
        """Read the value for ``key``. Expired entries are ABSENT."""
        ...

    @abstractmethod
    async def put_if_absent(
        self,
        name: str,
        key: str,
        value: bytes | None,
        ttl: timedelta | None = None,
        attributes: Iterable[ExtraAttribute] = (),
        cancel_token: CancellationToken | None = None,
    ) -> Lookup:
        """Write the entry unless one exists.

        Returns ABSENT if the value was written, otherwise Found with the
        existing value, which is left untouched.
        """
        ...

    @abstractmethod
    async def remove(
        self,
        name: str,
        key: str,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Delete the entry for ``key``."""
        ...

    @abstractmethod
    async def clear(
        self,
        name: str,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Delete every entry of the cache.

        This is a full table scan followed by one delete per item, which can
        be slow on large tables.
        """
        ...


class DefaultCacheWriter(CacheWriter):
    """CacheWriter over a KeyValueBackend with optional sentinel locking."""

    def __init__(
        self,
        backend: KeyValueBackend,
        poll_interval: timedelta = timedelta(0),
        max_lock_wait: timedelta | None = None,
        clear_concurrency: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the writer.

        Args:
            backend: The store to read from and write to.
            poll_interval: Sleep between lock checks. Zero disables locking.
            max_lock_wait: Optional bound on lock waits. None waits forever.
            clear_concurrency: Maximum parallel deletes during clear().
                None dispatches all deletes at once.
            clock: Source of the current time for TTL computation and checks.
        """
        if clear_concurrency is not None and clear_concurrency < 1:
            raise ValueError("clear_concurrency must be at least 1")
        self._backend = backend
        self._lock = LockCoordinator(backend, poll_interval, max_lock_wait)
        self._clear_concurrency = clear_concurrency
        self._clock = clock

    @property
    def native_backend(self) -> KeyValueBackend:
        return self._backend

    @property
    def lock(self) -> LockCoordinator:
        """The coordinator guarding multi-step operations."""
        return self._lock

    @property
    def locking(self) -> bool:
        """True if this writer uses the sentinel lock."""
        return self._lock.locking_enabled

    async def create_if_not_exists(
        self,
        name: str,
        ttl: timedelta | None,
        read_capacity_units: int = 1,
        write_capacity_units: int = 1,
    ) -> bool:
        _require(name=name)
        with log_context(cache_name=name, operation="create"):
            created = await create_table_if_not_exists(
                self._backend,
                name,
                ATTRIBUTE_KEY,
                read_capacity_units,
                write_capacity_units,
            )
            if created and should_persist_ttl(ttl):
                # No verification: some stores accept the request and never sweep.
                try:
                    await self._backend.enable_ttl_sweep(name, ATTRIBUTE_TTL)
                except BackendError as e:
                    logger.warning("Could not enable TTL sweep", table=name, error=str(e))
            return created

    async def put(
        self,
        name: str,
        key: str,
        value: bytes | None,
        ttl: timedelta | None = None,
        attributes: Iterable[ExtraAttribute] = (),
        cancel_token: CancellationToken | None = None,
    ) -> None:
        _require(name=name, key=key)
        with log_context(cache_name=name, operation="put"):
            await self._lock.await_unlocked(name, cancel_token)
            await self._put_internal(name, key, value, ttl, attributes)

    async def get(
        self,
        name: str,
        key: str,
        cancel_token: CancellationToken | None = None,
    ) -> Lookup:
        _require(name=name, key=key)
        with log_context(cache_name=name, operation="get"):
            await self._lock.await_unlocked(name, cancel_token)
            return await self._get_internal(name, key)

    async def put_if_absent(
        self,
        name: str,
        key: str,
        value: bytes | None,
        ttl: timedelta | None = None,
        attributes: Iterable[ExtraAttribute] = (),
        cancel_token: CancellationToken | None = None,
    ) -> Lookup:
        _require(name=name, key=key)
        with log_context(cache_name=name, operation="put_if_absent"):
            await self._lock.await_unlocked(name, cancel_token)

            if self.locking:
                await self._lock.acquire(name)
            try:
                existing = await self._get_internal(name, key)
                if isinstance(existing, Found):
                    logger.debug("Key already present, not replaced", key=key)
                    return existing
                await self._put_internal(name, key, value, ttl, attributes)
                return ABSENT
            finally:
                if self.locking:
                    await self._lock.release(name)

    async def remove(
        self,
        name: str,
        key: str,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        _require(name=name, key=key)
        with log_context(cache_name=name, operation="remove"):
            await self._lock.await_unlocked(name, cancel_token)
            try:
                await self._backend.delete_item(name, key_attribute(key))
            except TableNotFoundError:
                logger.debug("Remove skipped, table does not exist", key=key)

    async def clear(
        self,
        name: str,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        _require(name=name)
        with log_context(cache_name=name, operation="clear"):
            await self._lock.await_unlocked(name, cancel_token)

            try:
                if self.locking:
                    await self._lock.acquire(name)
                items = await self._backend.scan(name)
                if self.locking:
                    # The sentinel goes last, in the release below.
                    sentinel = lock_key(name)
                    items = [i for i in items if i[ATTRIBUTE_KEY].get("S") != sentinel]
                await self._delete_all(name, items)
                logger.debug("Cache cleared", deleted=len(items))
            except TableNotFoundError:
                logger.debug("Clear skipped, table does not exist")
            finally:
                if self.locking:
                    await self._lock.release(name)

    async def _get_internal(self, name: str, key: str) -> Lookup:
        item = await self._backend.get_item(name, key_attribute(key))
        if item is None:
            return ABSENT
        entry = decode(item)
        if is_expired(entry, self._clock()):
            return ABSENT
        return Found(entry.value)

    async def _put_internal(
        self,
        name: str,
        key: str,
        value: bytes | None,
        ttl: timedelta | None,
        attributes: Iterable[ExtraAttribute],
    ) -> None:
        item = encode(key, value, ttl, attributes, now=self._clock())
        await self._backend.put_item(name, item)

    async def _delete_all(self, name: str, items: list[NativeItem]) -> None:
        """Delete every scanned item, in parallel, and wait for all of them."""
        semaphore = asyncio.Semaphore(self._clear_concurrency) if self._clear_concurrency else None

        async def delete_one(item: NativeItem) -> None:
            key = {ATTRIBUTE_KEY: item[ATTRIBUTE_KEY]}
            if semaphore is None:
                await self._backend.delete_item(name, key)
                return
            async with semaphore:
                await self._backend.delete_item(name, key)

        results = await asyncio.gather(
            *[delete_one(item) for item in items],
            return_exceptions=True,
        )

        failures = [
            r for r in results
            if isinstance(r, BaseException) and not isinstance(r, TableNotFoundError)
        ]
        if failures:
            logger.error("Clear failed for some items", failed=len(failures), total=len(items))
            raise failures[0]


def non_locking_cache_writer(
    backend: KeyValueBackend,
    clear_concurrency: int | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> DefaultCacheWriter:
    """Create a writer without locking behaviour."""
    return DefaultCacheWriter(
        backend,
        poll_interval=timedelta(0),
        clear_concurrency=clear_concurrency,
        clock=clock,
    )


def locking_cache_writer(
    backend: KeyValueBackend,
    poll_interval: timedelta = DEFAULT_LOCK_POLL_INTERVAL,
    max_lock_wait: timedelta | None = None,
    clear_concurrency: int | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> DefaultCacheWriter:
    """Create a writer that locks multi-step operations.

    Args:
        backend: The store to use.
        poll_interval: Sleep between lock checks. Must be positive.
        max_lock_wait: Optional bound on lock waits. None waits forever.
        clear_concurrency: Maximum parallel deletes during clear().
        clock: Source of the current time for TTL computation and checks.
    """
    if poll_interval <= timedelta(0):
        raise ValueError("poll_interval must be positive for a locking writer")
    return DefaultCacheWriter(
        backend,
        poll_interval=poll_interval,
        max_lock_wait=max_lock_wait,
        clear_concurrency=clear_concurrency,
        clock=clock,
    )


def _require(**values: str) -> None:
    for label, value in values.items():
        if not value:
            raise ValueError(f"{label.capitalize()} must not be empty")
