"""
TTL policy: write-time expiry computation and read-time freshness checks.

The backend's own TTL sweep is asynchronous and may lag for a long time
(DynamoDB documents up to 48 hours), so expired rows can still be returned
by the store. Every read re-checks freshness here and treats an expired
entry exactly like a missing one.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from dynacache.types import CacheEntry


def should_persist_ttl(ttl: timedelta | None) -> bool:
    """Return True if ``ttl`` requests an expiration (non-null and positive)."""
    return ttl is not None and ttl > timedelta(0)


def compute_expiry(now: datetime, ttl: timedelta) -> datetime:
    """Absolute expiration instant for an entry written at ``now``."""
    return now + ttl


def is_expired(entry: CacheEntry, now: datetime) -> bool:
    """Return True if the entry carries a TTL and ``now`` is past it."""
    return entry.expires_at is not None and now > entry.expires_at


def to_epoch_seconds(instant: datetime) -> int:
    """Convert an instant to whole epoch seconds, rounding up.

    Rounding up keeps an entry visible for at least its requested TTL.
    """
    return math.ceil(instant.timestamp())


def from_epoch_seconds(seconds: int | float) -> datetime:
    """Convert epoch seconds back into an aware UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
