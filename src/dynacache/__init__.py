"""
dynacache: cache writer over eventually consistent key-value stores.

Provides put/get/put_if_absent/remove/clear with client-side TTL masking and
an optional advisory lock built from a sentinel key.
"""

from dynacache.cache import Cache, CacheBuilder, CacheConfig
from dynacache.cancellation import CancellationToken
from dynacache.manager import CacheManager
from dynacache.types import ABSENT, Absent, CacheEntry, ExtraAttribute, Found, ScalarKind
from dynacache.writer import (
    CacheWriter,
    DefaultCacheWriter,
    locking_cache_writer,
    non_locking_cache_writer,
)

__version__ = "0.1.0"

__all__ = [
    "ABSENT",
    "Absent",
    "Cache",
    "CacheBuilder",
    "CacheConfig",
    "CacheEntry",
    "CacheManager",
    "CacheWriter",
    "CancellationToken",
    "DefaultCacheWriter",
    "ExtraAttribute",
    "Found",
    "ScalarKind",
    "__version__",
    "locking_cache_writer",
    "non_locking_cache_writer",
]
