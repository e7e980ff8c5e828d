"""
Extra attribute extraction.

A cache can be configured to store some fields of the cached value as
separate, queryable attributes next to the serialized payload. Which field
maps to which attribute is declared with AttributeConfig; how the field is
read from a value is the job of an AttributeReader:

- AccessorAttributeReader: explicit accessor callables per field name
- MappingAttributeReader: reads keys from dict-like values

A field that is missing, None or cannot be converted to the declared kind
produces no attribute.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

from dynacache.exceptions import AttributeConfigError
from dynacache.logging import get_logger
from dynacache.types import ExtraAttribute, ScalarKind, ScalarValue, validate_attribute_name

logger = get_logger(__name__)


@dataclass(frozen=True)
class AttributeConfig:
    """Declares one extra attribute: the field name and its scalar kind."""

    name: str
    kind: ScalarKind = ScalarKind.STRING

    def __post_init__(self) -> None:
        validate_attribute_name(self.name)


class AttributeReader(ABC):
    """Extracts typed attribute values from cached objects."""

    @abstractmethod
    def read_field(self, value: Any, name: str) -> Any:
        """Return the raw field value.

        Raises:
            LookupError: If the field does not exist on ``value``.
        """
        ...

    def read(self, config: AttributeConfig, value: Any) -> ExtraAttribute | None:
        """Read one configured attribute from ``value``.

        Returns:
            The typed attribute, or None if the field is absent, None or
            not convertible to the configured kind.
        """
        try:
            raw = self.read_field(value, config.name)
        except LookupError:
            logger.debug(
                "Attribute not readable",
                attribute=config.name,
                value_type=type(value).__name__,
            )
            return None
        if raw is None:
            return None

        converted = _convert(raw, config.kind)
        if converted is None:
            logger.debug(
                "Attribute not convertible",
                attribute=config.name,
                kind=config.kind.value,
                raw_type=type(raw).__name__,
            )
            return None
        return ExtraAttribute(config.name, config.kind, converted)

    def read_all(self, configs: Iterable[AttributeConfig], value: Any) -> list[ExtraAttribute]:
        """Read every configured attribute, skipping unreadable ones."""
        if value is None:
            return []
        attributes = []
        for config in configs:
            attr = self.read(config, value)
            if attr is not None:
                attributes.append(attr)
        return attributes


class AccessorAttributeReader(AttributeReader):
    """Reads fields through explicitly registered accessor callables."""

    def __init__(self, accessors: Mapping[str, Callable[[Any], Any]]) -> None:
        for name in accessors:
            validate_attribute_name(name)
        self._accessors = dict(accessors)

    def read_field(self, value: Any, name: str) -> Any:
        accessor = self._accessors.get(name)
        if accessor is None:
            raise KeyError(name)
        try:
            return accessor(value)
        except (AttributeError, KeyError, IndexError, TypeError) as e:
            raise LookupError(name) from e


class MappingAttributeReader(AttributeReader):
    """Reads fields from mapping values by key."""

    def read_field(self, value: Any, name: str) -> Any:
        if not isinstance(value, Mapping):
            raise LookupError(name)
        return value[name]


def _convert(raw: Any, kind: ScalarKind) -> ScalarValue | None:
    if kind is ScalarKind.STRING:
        return raw if isinstance(raw, str) else str(raw)
    if kind is ScalarKind.BINARY:
        if isinstance(raw, (bytes, bytearray, memoryview)):
            return bytes(raw)
        return None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, Decimal)):
        return raw if Decimal(raw).is_finite() else None
    try:
        number = Decimal(str(raw))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_attribute_configs(entries: Iterable[Mapping[str, str]]) -> list[AttributeConfig]:
    """Build AttributeConfigs from plain ``{"name": ..., "kind": "S"}`` dicts."""
    configs = []
    for entry in entries:
        try:
            kind = ScalarKind(entry.get("kind", ScalarKind.STRING.value))
        except ValueError as e:
            raise AttributeConfigError(
                "Unknown attribute kind",
                context={"name": entry.get("name"), "kind": entry.get("kind")},
            ) from e
        configs.append(AttributeConfig(entry.get("name", ""), kind))
    return configs
