"""
Cooperative cancellation for lock waits.

A CancellationToken is handed to writer operations by callers that want to
abort a pending lock wait without cancelling their whole task. The lock
coordinator also marks the token when the surrounding asyncio task is
cancelled, so other holders of the same token observe it.
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """One-shot cancellation flag that can be awaited."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Reason passed to the first cancel() call."""
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Mark the token cancelled and wake every waiter. Idempotent."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"CancellationToken({state})"
