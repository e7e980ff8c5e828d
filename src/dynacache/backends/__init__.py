"""
Key-value backends for the cache writer.

- base.py: KeyValueBackend contract
- memory.py: in-process store for tests and local use
- sqlite.py: persistent store on aiosqlite
"""

from dynacache.backends.base import KeyValueBackend
from dynacache.backends.memory import InMemoryBackend
from dynacache.backends.sqlite import SQLiteBackend

__all__ = ["InMemoryBackend", "KeyValueBackend", "SQLiteBackend"]
