"""
Tests for extra attribute extraction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import pytest

from dynacache.attributes import (
    AccessorAttributeReader,
    AttributeConfig,
    MappingAttributeReader,
    parse_attribute_configs,
)
from dynacache.exceptions import AttributeConfigError
from dynacache.types import ExtraAttribute, ScalarKind


@dataclass
class Profile:
    name: str
    age: int | None
    avatar: bytes = b""


class TestAttributeConfig:
    """Tests for attribute declarations."""

    def test_reserved_name_rejected(self) -> None:
        """Test that the value attribute cannot be redeclared."""
        with pytest.raises(AttributeConfigError):
            AttributeConfig("value")

    def test_parse_configs(self) -> None:
        """Test building configs from plain dicts."""
        configs = parse_attribute_configs([{"name": "tier"}, {"name": "age", "kind": "N"}])

        assert configs == [
            AttributeConfig("tier", ScalarKind.STRING),
            AttributeConfig("age", ScalarKind.NUMBER),
        ]

    def test_parse_unknown_kind(self) -> None:
        """Test that an unknown kind is a configuration error."""
        with pytest.raises(AttributeConfigError):
            parse_attribute_configs([{"name": "tier", "kind": "SS"}])


class TestMappingAttributeReader:
    """Tests for reading attributes from dicts."""

    def test_reads_configured_fields(self) -> None:
        """Test that present fields are converted to their kind."""
        reader = MappingAttributeReader()
        configs = [
            AttributeConfig("tier"),
            AttributeConfig("age", ScalarKind.NUMBER),
            AttributeConfig("zip", ScalarKind.STRING),
        ]

        attributes = reader.read_all(configs, {"tier": "gold", "age": "41", "zip": 10115})

        assert attributes == [
            ExtraAttribute("tier", ScalarKind.STRING, "gold"),
            ExtraAttribute("age", ScalarKind.NUMBER, Decimal("41")),
            ExtraAttribute("zip", ScalarKind.STRING, "10115"),
        ]

    def test_missing_and_none_fields_skipped(self) -> None:
        """Test that absent or None fields produce no attribute."""
        reader = MappingAttributeReader()
        configs = [AttributeConfig("tier"), AttributeConfig("age", ScalarKind.NUMBER)]

        assert reader.read_all(configs, {"age": None}) == []

    def test_unconvertible_values_skipped(self) -> None:
        """Test that values not matching the kind are dropped."""
        reader = MappingAttributeReader()
        configs = [
            AttributeConfig("age", ScalarKind.NUMBER),
            AttributeConfig("flag", ScalarKind.NUMBER),
            AttributeConfig("blob", ScalarKind.BINARY),
        ]

        assert reader.read_all(configs, {"age": "old", "flag": True, "blob": "text"}) == []

    def test_non_mapping_value(self) -> None:
        """Test that non-mapping values yield nothing."""
        reader = MappingAttributeReader()

        assert reader.read_all([AttributeConfig("tier")], "plain string") == []
        assert reader.read_all([AttributeConfig("tier")], None) == []


class TestAccessorAttributeReader:
    """Tests for reading attributes through accessors."""

    def test_reads_through_accessors(self) -> None:
        """Test that accessors pull fields from objects."""
        reader = AccessorAttributeReader(
            {"name": lambda p: p.name, "age": lambda p: p.age, "avatar": lambda p: p.avatar}
        )
        configs = [
            AttributeConfig("name"),
            AttributeConfig("age", ScalarKind.NUMBER),
            AttributeConfig("avatar", ScalarKind.BINARY),
        ]

        attributes = reader.read_all(configs, Profile("ada", 36, b"\x89PNG"))

        assert attributes == [
            ExtraAttribute("name", ScalarKind.STRING, "ada"),
            ExtraAttribute("age", ScalarKind.NUMBER, 36),
            ExtraAttribute("avatar", ScalarKind.BINARY, b"\x89PNG"),
        ]

    def test_unregistered_and_failing_accessors_skipped(self) -> None:
        """Test that unknown fields and accessor errors produce no attribute."""
        reader = AccessorAttributeReader({"email": lambda p: p.email})
        configs = [AttributeConfig("email"), AttributeConfig("name")]

        assert reader.read_all(configs, Profile("ada", None)) == []

    def test_reserved_accessor_name_rejected(self) -> None:
        """Test that accessors cannot target reserved attributes."""
        with pytest.raises(AttributeConfigError):
            AccessorAttributeReader({"ttl": lambda p: 1})
