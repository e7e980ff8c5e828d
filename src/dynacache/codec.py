"""
Entry codec: CacheEntry <-> native backend item.

Native items use the DynamoDB attribute-value layout, one single-key dict
per attribute:

    {
        "key":   {"S": "user:42"},
        "value": {"B": b"..."} or {"NULL": True},
        "ttl":   {"N": "1735689600"},       # optional, epoch seconds
        "tier":  {"S": "gold"},              # optional extra attributes
    }

A stored null value is written as the explicit ``{"NULL": True}`` marker.
An item without a value attribute at all is malformed, never a miss.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from dynacache.exceptions import MalformedItemError
from dynacache.ttl import (
    compute_expiry,
    from_epoch_seconds,
    should_persist_ttl,
    to_epoch_seconds,
)
from dynacache.types import (
    ATTRIBUTE_KEY,
    ATTRIBUTE_TTL,
    ATTRIBUTE_VALUE,
    RESERVED_ATTRIBUTES,
    CacheEntry,
    ExtraAttribute,
    ScalarKind,
    ScalarValue,
)

AttributeValue = dict[str, Any]
NativeItem = dict[str, AttributeValue]

NULL_MARKER: AttributeValue = {"NULL": True}


def key_attribute(key: str) -> NativeItem:
    """Build the primary-key map used by get/delete requests."""
    return {ATTRIBUTE_KEY: {"S": key}}


def encode(
    key: str,
    value: bytes | None,
    ttl: timedelta | None = None,
    attributes: Iterable[ExtraAttribute] = (),
    now: datetime | None = None,
) -> NativeItem:
    """Encode a cache entry into a native item.

    Args:
        key: Partition key.
        value: Payload bytes, or None to store the explicit null marker.
        ttl: Time to live. Zero, negative or None means no expiration.
        attributes: Extra attributes to store next to the value.
        now: Write time used to compute the expiry. Required when ttl is set.

    Returns:
        The native item.
    """
    item: NativeItem = {ATTRIBUTE_KEY: {"S": key}}

    if value is None:
        item[ATTRIBUTE_VALUE] = dict(NULL_MARKER)
    else:
        item[ATTRIBUTE_VALUE] = {"B": bytes(value)}

    if should_persist_ttl(ttl):
        if now is None:
            raise ValueError("now is required when a ttl is given")
        expires_at = compute_expiry(now, ttl)  # type: ignore[arg-type]
        item[ATTRIBUTE_TTL] = {"N": str(to_epoch_seconds(expires_at))}

    for attr in attributes:
        item[attr.name] = _encode_scalar(attr.kind, attr.value)

    return item


def decode(item: NativeItem) -> CacheEntry:
    """Decode a native item into a CacheEntry.

    Raises:
        MalformedItemError: If the key or value attribute is missing or
            carries an unexpected type.
    """
    key_attr = item.get(ATTRIBUTE_KEY)
    if not key_attr or "S" not in key_attr:
        raise MalformedItemError(
            "Item has no string key attribute",
            context={"attribute": ATTRIBUTE_KEY},
        )
    key = key_attr["S"]

    value_attr = item.get(ATTRIBUTE_VALUE)
    if value_attr is None:
        raise MalformedItemError(
            f"Attribute value does not match the expected '{ATTRIBUTE_VALUE}'",
            context={"key": key, "attribute": ATTRIBUTE_VALUE},
        )
    if value_attr.get("NULL"):
        value = None
    elif "B" in value_attr:
        value = bytes(value_attr["B"])
    else:
        raise MalformedItemError(
            "Value attribute is neither binary nor null",
            context={"key": key, "attribute": ATTRIBUTE_VALUE},
        )

    expires_at = None
    ttl_attr = item.get(ATTRIBUTE_TTL)
    if ttl_attr is not None:
        expires_at = from_epoch_seconds(float(_parse_number(key, ATTRIBUTE_TTL, ttl_attr)))

    attributes = tuple(
        _decode_attribute(key, name, attr)
        for name, attr in item.items()
        if name not in RESERVED_ATTRIBUTES
    )

    return CacheEntry(key=key, value=value, expires_at=expires_at, attributes=attributes)


def _encode_scalar(kind: ScalarKind, value: ScalarValue) -> AttributeValue:
    if kind is ScalarKind.BINARY:
        return {"B": bytes(value)}  # type: ignore[arg-type]
    return {kind.value: str(value)}


def _decode_attribute(key: str, name: str, attr: AttributeValue) -> ExtraAttribute:
    if "S" in attr:
        return ExtraAttribute(name, ScalarKind.STRING, attr["S"])
    if "B" in attr:
        return ExtraAttribute(name, ScalarKind.BINARY, bytes(attr["B"]))
    if "N" in attr:
        return ExtraAttribute(name, ScalarKind.NUMBER, _parse_number(key, name, attr))
    raise MalformedItemError(
        "Extra attribute is not a supported scalar",
        context={"key": key, "attribute": name, "types": sorted(attr)},
    )


def _parse_number(key: str, name: str, attr: AttributeValue) -> int | Decimal:
    raw = attr.get("N")
    try:
        number = Decimal(str(raw))
    except (InvalidOperation, ValueError) as e:
        raise MalformedItemError(
            "Numeric attribute cannot be parsed",
            context={"key": key, "attribute": name, "raw": raw},
        ) from e
    if not number.is_finite():
        raise MalformedItemError(
            "Numeric attribute is not finite",
            context={"key": key, "attribute": name, "raw": raw},
        )
    if number == number.to_integral_value():
        return int(number)
    return number
