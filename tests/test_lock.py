"""
Tests for the sentinel lock coordinator.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from dynacache.backends.memory import InMemoryBackend
from dynacache.cancellation import CancellationToken
from dynacache.exceptions import LockInterruptedError, LockTimeoutError
from dynacache.lock import LOCK_PAYLOAD, LockCoordinator, lock_key
from dynacache.types import ABSENT, Found

CACHE = "orders"


@pytest.fixture
async def backend() -> InMemoryBackend:
    """Backend with the test table provisioned."""
    b = InMemoryBackend()
    await b.create_table(CACHE, "key", 1, 1)
    return b


@pytest.fixture
def coordinator(backend: InMemoryBackend) -> LockCoordinator:
    """Locking coordinator polling every 5ms."""
    return LockCoordinator(backend, poll_interval=timedelta(milliseconds=5))


class TestAcquireRelease:
    """Tests for acquiring and releasing the sentinel."""

    def test_lock_key(self) -> None:
        """Test the sentinel key naming."""
        assert lock_key("orders") == "orders~lock"

    @pytest.mark.asyncio
    async def test_acquire_writes_sentinel(
        self, coordinator: LockCoordinator, backend: InMemoryBackend
    ) -> None:
        """Test that acquire stores the sentinel without a TTL."""
        await coordinator.acquire(CACHE)

        item = backend.raw_items(CACHE)["orders~lock"]
        assert item["value"] == {"B": LOCK_PAYLOAD}
        assert "ttl" not in item
        assert await coordinator.check(CACHE) == Found(LOCK_PAYLOAD)

    @pytest.mark.asyncio
    async def test_release_removes_sentinel(self, coordinator: LockCoordinator) -> None:
        """Test that release deletes the sentinel."""
        await coordinator.acquire(CACHE)
        await coordinator.release(CACHE)

        assert await coordinator.check(CACHE) is ABSENT
        assert not await coordinator.is_locked(CACHE)

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, coordinator: LockCoordinator) -> None:
        """Test that releasing an unheld lock is not an error."""
        await coordinator.release(CACHE)
        await coordinator.release(CACHE)

        assert not await coordinator.is_locked(CACHE)

    @pytest.mark.asyncio
    async def test_release_on_missing_table(self) -> None:
        """Test that releasing on a missing table is swallowed."""
        coordinator = LockCoordinator(InMemoryBackend(), poll_interval=timedelta(milliseconds=5))

        await coordinator.release("missing")

    @pytest.mark.asyncio
    async def test_missing_table_is_unlocked(self) -> None:
        """Test that a missing table counts as unlocked."""
        coordinator = LockCoordinator(InMemoryBackend(), poll_interval=timedelta(milliseconds=5))

        assert await coordinator.check("missing") is ABSENT
        await coordinator.await_unlocked("missing")

    @pytest.mark.asyncio
    async def test_double_acquire_overwrites(
        self, coordinator: LockCoordinator, backend: InMemoryBackend
    ) -> None:
        """Test that acquire is an unconditional put."""
        await coordinator.acquire(CACHE)
        await coordinator.acquire(CACHE)

        assert list(backend.raw_items(CACHE)) == ["orders~lock"]

    def test_max_wait_must_be_positive(self, backend: InMemoryBackend) -> None:
        """Test that a zero max_wait is rejected."""
        with pytest.raises(ValueError):
            LockCoordinator(backend, timedelta(milliseconds=5), max_wait=timedelta(0))


class TestAwaitUnlocked:
    """Tests for waiting on a held lock."""

    @pytest.mark.asyncio
    async def test_returns_immediately_when_disabled(self, backend: InMemoryBackend) -> None:
        """Test that a non-locking coordinator never checks the store."""
        coordinator = LockCoordinator(backend)
        await coordinator.acquire(CACHE)
        backend.calls.clear()

        await coordinator.await_unlocked(CACHE)

        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_returns_when_released_by_another_task(
        self, coordinator: LockCoordinator
    ) -> None:
        """Test that a waiter proceeds once the holder releases."""
        await coordinator.acquire(CACHE)
        waiter = asyncio.create_task(coordinator.await_unlocked(CACHE))

        await asyncio.sleep(0.03)
        assert not waiter.done()

        await coordinator.release(CACHE)
        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_token_cancel_interrupts_wait(self, coordinator: LockCoordinator) -> None:
        """Test that cancelling the token aborts the wait."""
        await coordinator.acquire(CACHE)
        token = CancellationToken()

        waiter = asyncio.create_task(coordinator.await_unlocked(CACHE, token))
        await asyncio.sleep(0.02)
        token.cancel("shutdown")

        with pytest.raises(LockInterruptedError) as exc_info:
            await asyncio.wait_for(waiter, timeout=1)

        assert exc_info.value.context["cache_name"] == CACHE
        assert exc_info.value.context["reason"] == "shutdown"

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self, coordinator: LockCoordinator) -> None:
        """Test that a cancelled token interrupts before sleeping."""
        await coordinator.acquire(CACHE)
        token = CancellationToken()
        token.cancel()

        with pytest.raises(LockInterruptedError):
            await coordinator.await_unlocked(CACHE, token)

    @pytest.mark.asyncio
    async def test_task_cancel_marks_token(self, coordinator: LockCoordinator) -> None:
        """Test that cancelling the task surfaces as an interrupted wait."""
        await coordinator.acquire(CACHE)
        token = CancellationToken()
        caught: list[LockInterruptedError] = []

        async def wait() -> None:
            try:
                await coordinator.await_unlocked(CACHE, token)
            except LockInterruptedError as e:
                caught.append(e)
                raise

        task = asyncio.create_task(wait())
        await asyncio.sleep(0.02)
        task.cancel()

        with pytest.raises((LockInterruptedError, asyncio.CancelledError)):
            await task

        assert len(caught) == 1
        assert isinstance(caught[0].__cause__, asyncio.CancelledError)
        assert token.cancelled
        assert token.reason == "task cancelled"

    @pytest.mark.asyncio
    async def test_max_wait_exceeded(self, backend: InMemoryBackend) -> None:
        """Test that a bounded wait times out on a lock that is never released."""
        coordinator = LockCoordinator(
            backend,
            poll_interval=timedelta(milliseconds=5),
            max_wait=timedelta(milliseconds=30),
        )
        await coordinator.acquire(CACHE)

        with pytest.raises(LockTimeoutError) as exc_info:
            await coordinator.await_unlocked(CACHE)

        assert exc_info.value.context["cache_name"] == CACHE


class TestCancellationToken:
    """Tests for the cancellation token."""

    def test_cancel_is_idempotent(self) -> None:
        """Test that the first reason sticks."""
        token = CancellationToken()
        assert not token.cancelled

        token.cancel("first")
        token.cancel("second")

        assert token.cancelled
        assert token.reason == "first"
        assert repr(token) == "CancellationToken(cancelled)"

    @pytest.mark.asyncio
    async def test_wait_wakes_on_cancel(self) -> None:
        """Test that waiters wake up when the token is cancelled."""
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())

        await asyncio.sleep(0)
        token.cancel()

        await asyncio.wait_for(waiter, timeout=1)
