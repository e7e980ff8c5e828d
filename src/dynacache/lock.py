"""
Advisory sentinel-key lock.

The lock for cache ``name`` is the presence of the item ``name~lock`` in the
cache's own table. There is no in-process state: whether a cache is locked
is decided entirely by the store.

Guarantees and limits:
- acquire() is an unconditional put. Two callers that both see the lock
  free can both "acquire" it; the later write simply overwrites the
  sentinel. This race is accepted.
- The sentinel has no owner and no lease. A holder that dies without
  releasing leaves the cache locked until someone deletes the key.
- await_unlocked() polls with a fixed sleep. It is unbounded unless a
  max_wait is configured.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from dynacache.backends.base import KeyValueBackend
from dynacache.cancellation import CancellationToken
from dynacache.codec import decode, encode, key_attribute
from dynacache.exceptions import (
    LockInterruptedError,
    LockTimeoutError,
    TableNotFoundError,
)
from dynacache.logging import get_logger
from dynacache.ttl import is_expired
from dynacache.types import ABSENT, Absent, Found, utc_now

logger = get_logger(__name__)

LOCK_SUFFIX = "~lock"
LOCK_PAYLOAD = b"1"


def lock_key(cache_name: str) -> str:
    """Sentinel key guarding ``cache_name``."""
    return f"{cache_name}{LOCK_SUFFIX}"


class LockCoordinator:
    """Acquire, release and wait on a cache's sentinel lock.

    Locking is enabled iff ``poll_interval`` is positive. With locking
    disabled every method except release/acquire is a no-op check.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        poll_interval: timedelta = timedelta(0),
        max_wait: timedelta | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            backend: Store holding the sentinel items.
            poll_interval: Sleep between lock checks. Zero disables locking.
            max_wait: Optional bound on await_unlocked(). None waits forever.
        """
        if max_wait is not None and max_wait <= timedelta(0):
            raise ValueError("max_wait must be positive when given")
        self.backend = backend
        self.poll_interval = poll_interval
        self.max_wait = max_wait

    @property
    def locking_enabled(self) -> bool:
        """True if the coordinator polls and multi-step operations lock."""
        return self.poll_interval > timedelta(0)

    async def acquire(self, cache_name: str) -> None:
        """Write the sentinel item. Unconditional, no TTL."""
        await self.backend.put_item(cache_name, encode(lock_key(cache_name), LOCK_PAYLOAD))
        logger.debug("Lock acquired", cache=cache_name)

    async def release(self, cache_name: str) -> None:
        """Delete the sentinel item. A missing table counts as released."""
        try:
            await self.backend.delete_item(cache_name, key_attribute(lock_key(cache_name)))
        except TableNotFoundError:
            logger.debug("Lock release skipped, table is gone", cache=cache_name)
            return
        logger.debug("Lock released", cache=cache_name)

    async def check(self, cache_name: str) -> Found[bytes | None] | Absent:
        """Look up the sentinel item.

        Returns:
            Found with the sentinel payload if the lock is held, ABSENT if
            the sentinel or the whole table is missing.
        """
        try:
            item = await self.backend.get_item(cache_name, key_attribute(lock_key(cache_name)))
        except TableNotFoundError:
            return ABSENT
        if item is None:
            return ABSENT
        entry = decode(item)
        if is_expired(entry, utc_now()):
            return ABSENT
        return Found(entry.value)

    async def is_locked(self, cache_name: str) -> bool:
        """True if the sentinel for ``cache_name`` is present."""
        return isinstance(await self.check(cache_name), Found)

    async def await_unlocked(
        self,
        cache_name: str,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Block until the cache's sentinel is absent.

        Returns immediately when locking is disabled.

        Args:
            cache_name: Cache whose lock to wait on.
            cancel_token: Optional token that aborts the wait when cancelled.

        Raises:
            LockInterruptedError: If the token or the running task is
                cancelled while waiting. On task cancellation the token is
                marked cancelled and the task's cancellation is requested
                again, so callers further up still see it.
            LockTimeoutError: If max_wait is configured and exceeded.
        """
        if not self.locking_enabled:
            return

        loop = asyncio.get_running_loop()
        started = loop.time()
        waited = False

        while await self.is_locked(cache_name):
            if cancel_token is not None and cancel_token.cancelled:
                raise self._interrupted(cache_name, cancel_token)

            elapsed = loop.time() - started
            if self.max_wait is not None and elapsed >= self.max_wait.total_seconds():
                raise LockTimeoutError(
                    f"Timed out waiting to unlock cache {cache_name}",
                    context={"cache_name": cache_name, "waited_seconds": round(elapsed, 3)},
                )

            if not waited:
                logger.debug(
                    "Cache is locked, waiting",
                    cache=cache_name,
                    poll_interval_ms=self.poll_interval.total_seconds() * 1000,
                )
                waited = True

            await self._pause(cache_name, cancel_token)

        if waited:
            logger.debug(
                "Cache unlocked",
                cache=cache_name,
                waited_seconds=round(loop.time() - started, 3),
            )

    async def _pause(self, cache_name: str, cancel_token: CancellationToken | None) -> None:
        interval = self.poll_interval.total_seconds()
        try:
            if cancel_token is None:
                await asyncio.sleep(interval)
                return
            try:
                await asyncio.wait_for(cancel_token.wait(), timeout=interval)
            except asyncio.TimeoutError:
                return
            raise self._interrupted(cache_name, cancel_token)
        except asyncio.CancelledError as e:
            if cancel_token is not None:
                cancel_token.cancel("task cancelled")
            task = asyncio.current_task()
            if task is not None:
                task.cancel()
            raise self._interrupted(cache_name, cancel_token) from e

    @staticmethod
    def _interrupted(
        cache_name: str, cancel_token: CancellationToken | None
    ) -> LockInterruptedError:
        context: dict[str, str] = {"cache_name": cache_name}
        if cancel_token is not None and cancel_token.reason:
            context["reason"] = cancel_token.reason
        return LockInterruptedError(
            f"Interrupted while waiting to unlock cache {cache_name}",
            context=context,
        )
