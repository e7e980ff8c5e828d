"""
Core types for the cache writer.

This module defines the data structures shared by the codec, the lock
coordinator and the writer:
- Found / ABSENT tagged lookup result
- ScalarKind enum for extra attribute types
- Frozen dataclasses for ExtraAttribute and CacheEntry
- Reserved attribute names and helper functions
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar, Union

from dynacache.exceptions import AttributeConfigError

T = TypeVar("T")

ATTRIBUTE_KEY = "key"
ATTRIBUTE_VALUE = "value"
ATTRIBUTE_TTL = "ttl"
RESERVED_ATTRIBUTES = frozenset({ATTRIBUTE_KEY, ATTRIBUTE_VALUE, ATTRIBUTE_TTL})

ScalarValue = Union[str, int, float, Decimal, bytes]


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Found(Generic[T]):
    """A lookup that found an entry. ``value`` may itself be None."""

    value: T


class Absent(Enum):
    """A lookup that found nothing (missing or expired)."""

    ABSENT = "absent"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent.ABSENT


class ScalarKind(str, Enum):
    """Scalar types an extra attribute can be stored as."""

    STRING = "S"
    NUMBER = "N"
    BINARY = "B"


def validate_attribute_name(name: str) -> str:
    """Check that an extra attribute name is usable.

    Args:
        name: Candidate attribute name.

    Returns:
        The name, unchanged.

    Raises:
        AttributeConfigError: If the name is empty or reserved.
    """
    if not name:
        raise AttributeConfigError("Attribute name must not be empty")
    if name.lower() in RESERVED_ATTRIBUTES:
        raise AttributeConfigError(
            f"Attribute name must not equal '{name.lower()}'",
            context={"reserved": sorted(RESERVED_ATTRIBUTES)},
        )
    return name


@dataclass(frozen=True)
class ExtraAttribute:
    """A typed, queryable attribute stored alongside a cache entry."""

    name: str
    kind: ScalarKind
    value: ScalarValue

    def __post_init__(self) -> None:
        validate_attribute_name(self.name)
        if not _matches_kind(self.value, self.kind):
            raise AttributeConfigError(
                "Attribute value does not match its kind",
                context={
                    "name": self.name,
                    "kind": self.kind.value,
                    "value_type": type(self.value).__name__,
                },
            )


def _matches_kind(value: object, kind: ScalarKind) -> bool:
    if kind is ScalarKind.STRING:
        return isinstance(value, str)
    if kind is ScalarKind.BINARY:
        return isinstance(value, (bytes, bytearray))
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    # NaN and infinities have no N representation the store can read back.
    return isinstance(value, int) or Decimal(value).is_finite()


@dataclass(frozen=True)
class CacheEntry:
    """A decoded cache item.

    ``value`` is None when the entry stores the explicit null marker.
    ``expires_at`` is None for entries that never expire.
    """

    key: str
    value: bytes | None
    expires_at: datetime | None = None
    attributes: tuple[ExtraAttribute, ...] = field(default_factory=tuple)

    def attribute(self, name: str) -> ExtraAttribute | None:
        """Look up an extra attribute by name."""
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None
