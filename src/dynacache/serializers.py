"""
Value serializers.

The writer stores bytes; a Cache turns values into bytes with one of these:
- StringSerializer: UTF-8 text
- JsonSerializer: JSON via orjson
- GZipSerializer: gzip-compresses the output of a parent serializer
- PickleSerializer: native Python object serialization

None always serializes to None (stored as the explicit null marker) and
None/empty input deserializes to None.
"""

from __future__ import annotations

import gzip
import pickle
from typing import Any, Protocol

import orjson

from dynacache.exceptions import SerializationError


class Serializer(Protocol):
    """Converts cache values to and from bytes."""

    def serialize(self, value: Any) -> bytes | None:
        ...

    def deserialize(self, data: bytes | None) -> Any:
        ...


class StringSerializer:
    """Serializes strings with a fixed text encoding."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def serialize(self, value: str | None) -> bytes | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise SerializationError(
                "StringSerializer only accepts str values",
                context={"serializer": type(self).__name__, "value_type": type(value).__name__},
            )
        return value.encode(self.encoding)

    def deserialize(self, data: bytes | None) -> str | None:
        if data is None:
            return None
        try:
            return data.decode(self.encoding)
        except UnicodeDecodeError as e:
            raise SerializationError(
                "Cannot decode value",
                context={"serializer": type(self).__name__, "encoding": self.encoding},
            ) from e


class JsonSerializer:
    """Serializes JSON-compatible values with orjson."""

    def __init__(self, option: int | None = None) -> None:
        self.option = option

    def serialize(self, value: Any) -> bytes | None:
        if value is None:
            return None
        try:
            return orjson.dumps(value, option=self.option)
        except TypeError as e:
            raise SerializationError(
                f"Could not write JSON: {e}",
                context={"serializer": type(self).__name__},
            ) from e

    def deserialize(self, data: bytes | None) -> Any:
        if not data:
            return None
        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise SerializationError(
                f"Could not read JSON: {e}",
                context={"serializer": type(self).__name__},
            ) from e


class GZipSerializer:
    """Compresses the bytes produced by a parent serializer."""

    def __init__(self, parent: Serializer) -> None:
        if parent is None:
            raise ValueError("Parent serializer must not be None")
        self.parent = parent

    def serialize(self, value: Any) -> bytes | None:
        data = self.parent.serialize(value)
        if not data:
            return None
        return gzip.compress(data)

    def deserialize(self, data: bytes | None) -> Any:
        if not data:
            return None
        try:
            raw = gzip.decompress(data)
        except (OSError, EOFError) as e:
            raise SerializationError(
                "Failed to unzip value",
                context={"serializer": type(self).__name__},
            ) from e
        return self.parent.deserialize(raw)


class PickleSerializer:
    """Serializes arbitrary Python objects with pickle.

    Only deserialize data written by trusted processes.
    """

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL) -> None:
        self.protocol = protocol

    def serialize(self, value: Any) -> bytes | None:
        if value is None:
            return None
        try:
            return pickle.dumps(value, protocol=self.protocol)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise SerializationError(
                "Cannot serialize value",
                context={"serializer": type(self).__name__, "value_type": type(value).__name__},
            ) from e

    def deserialize(self, data: bytes | None) -> Any:
        if data is None:
            return None
        try:
            return pickle.loads(data)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
            raise SerializationError(
                "Cannot deserialize the value",
                context={"serializer": type(self).__name__},
            ) from e
