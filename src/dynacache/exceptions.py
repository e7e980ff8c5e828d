"""
Custom exception hierarchy for the cache writer.

All exceptions inherit from DynaCacheError, which provides optional context
for structured error handling and logging.

"Not found" is deliberately absent from this module: a missing or expired
entry is a normal result (see dynacache.types.ABSENT), not an error.
"""

from __future__ import annotations

from typing import Any


class DynaCacheError(Exception):
    """Base exception for all cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(DynaCacheError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Duplicate cache names in CACHES
        - Unknown cache name requested from the manager
    """

    pass


class BackendError(DynaCacheError):
    """Raised when the key-value backend rejects a request.

    Context should include:
        - table: The table the request addressed
        - operation: The backend operation (get_item, put_item, ...)
    """

    pass


class TableNotFoundError(BackendError):
    """Raised by a backend when the addressed table does not exist.

    The writer treats this as "already achieved" for remove, unlock and
    clear. Everywhere else it propagates.
    """

    pass


class TableAlreadyExistsError(BackendError):
    """Raised by a backend when creating a table whose name is taken.

    The provisioner maps this to a "not newly created" result.
    """

    pass


class MalformedItemError(DynaCacheError):
    """Raised when a stored item violates the entry layout.

    Context should include:
        - key: The partition key of the offending item (if readable)
        - attribute: The attribute that is missing or has the wrong type
    """

    pass


class LockInterruptedError(DynaCacheError):
    """Raised when waiting for a cache lock is cancelled.

    Context should include:
        - cache_name: The cache whose lock was being awaited
    """

    pass


class LockTimeoutError(DynaCacheError):
    """Raised when an optional maximum lock wait is exceeded.

    Context should include:
        - cache_name: The cache whose lock was being awaited
        - waited_seconds: How long the caller waited
    """

    pass


class SerializationError(DynaCacheError):
    """Raised when a value cannot be serialized or deserialized.

    Context should include:
        - serializer: The serializer class name
    """

    pass


class ValueRetrievalError(DynaCacheError):
    """Raised when a value loader fails during get_or_load.

    Context should include:
        - cache_name: The cache being read
        - key: The key whose value was being loaded
    """

    pass


class AttributeConfigError(DynaCacheError):
    """Raised when an extra attribute definition is invalid.

    Examples:
        - Empty attribute name
        - Name colliding with the reserved key/value/ttl attributes
        - Value that does not match the declared scalar kind
    """

    pass
